"""User-facing wording for signup failures, shared by the server and the widget workflow."""

PAYMENT_FALLBACK = "We couldn't process your card. Please check your card and billing details and try again."

CONFIGURATION_MESSAGE = "Signup is temporarily unavailable. Please call or email us to get started."


def payment_failure_message(upstream: str) -> str:
    """Phase label plus the processor's text, or the generic fallback when it is empty.

    Examples:
        >>> payment_failure_message("Your card was declined.")
        'Payment failed: Your card was declined. Please check your card and billing details.'
    """
    detail = upstream.strip().rstrip(".")
    if not detail:
        return PAYMENT_FALLBACK
    return f"Payment failed: {detail}. Please check your card and billing details."


def crm_failure_message(upstream: str, support_email: str, support_phone: str) -> str:
    detail = f" ({upstream.strip()})" if upstream.strip() else ""
    return (
        "Your payment method was accepted, but we couldn't finish setting up your "
        f"service account{detail}. Please don't resubmit; contact us at "
        f"{support_email} or {support_phone} and we'll complete your signup."
    )
