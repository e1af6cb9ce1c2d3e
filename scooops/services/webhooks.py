"""
Sweep&GO webhook registry and dispatcher.

Handlers are registered by canonical event name. The CRM is not consistent
about dotted vs. underscored names, so every alias maps onto one canonical
name before lookup. Unknown event types are acknowledged, not rejected, so
the sender does not keep retrying them.

Usage:
    dispatcher = WebhookDispatcher(secret=config.crm.webhook_secret)
    dispatcher.register("client.created", send_welcome_email)
    result = await dispatcher.dispatch(event)
"""

import hashlib
import hmac
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Union

from scooops.schemas.booking_schema import WebhookEvent

logger = logging.getLogger(__name__)

WebhookHandler = Callable[[WebhookEvent], Union[None, Awaitable[None]]]

SIGNATURE_HEADERS = ("x-sweep-signature", "x-webhook-signature")

EVENT_ALIASES: dict[str, str] = {
    "client.created": "client.created",
    "client_created": "client.created",
    "client.updated": "client.updated",
    "client_updated": "client.updated",
    "payment.received": "payment.received",
    "payment_received": "payment.received",
    "payment.success": "payment.received",
    "payment.failed": "payment.failed",
    "payment_failed": "payment.failed",
    "service.completed": "service.completed",
    "service_completed": "service.completed",
    "cleanup.completed": "service.completed",
    "service.scheduled": "service.scheduled",
    "service_scheduled": "service.scheduled",
    "subscription.cancelled": "subscription.cancelled",
    "subscription_cancelled": "subscription.cancelled",
    "subscription.activated": "subscription.activated",
    "subscription_activated": "subscription.activated",
}

# Fields logged for each canonical event.
_SUMMARY_FIELDS: dict[str, tuple[str, ...]] = {
    "client.created": ("client_id", "client_name", "email"),
    "client.updated": ("client_id", "status"),
    "payment.received": ("client_id", "amount", "payment_status"),
    "payment.failed": ("client_id", "amount", "failure_reason"),
    "service.completed": ("client_id", "service_date", "service_type"),
    "service.scheduled": ("client_id", "service_date", "service_type"),
    "subscription.cancelled": ("client_id", "cancellation_date"),
    "subscription.activated": ("client_id", "activation_date"),
}


def canonical_event(event_type: str) -> Optional[str]:
    return EVENT_ALIASES.get(event_type.strip())


def sign_payload(secret: str, body: bytes) -> str:
    """Hex HMAC-SHA256 of the raw request body."""
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_signature(secret: str, body: bytes, signature: Optional[str]) -> bool:
    if not signature:
        return False
    return hmac.compare_digest(sign_payload(secret, body), signature.strip().lower())


@dataclass(frozen=True)
class DispatchResult:
    event_type: str
    canonical: Optional[str]
    handled: bool

    def as_dict(self) -> dict[str, Any]:
        if not self.handled:
            return {
                "received": True,
                "event_type": self.event_type,
                "message": "Event received but not processed",
            }
        return {
            "success": True,
            "event_type": self.event_type,
            "message": "Webhook processed successfully",
        }


def _log_summary(event: WebhookEvent) -> None:
    canonical = canonical_event(event.event_type) or event.event_type
    data = event.data or {}
    summary = {name: data.get(name) for name in _SUMMARY_FIELDS.get(canonical, ("client_id",))}
    logger.info("Sweep&GO %s: %s (org=%s)", canonical, summary, event.organization)


class WebhookDispatcher:
    """Holds handlers per canonical event and runs them in registration order."""

    def __init__(self, secret: str = "", install_defaults: bool = True) -> None:
        self._secret = secret
        self._handlers: dict[str, list[WebhookHandler]] = {}
        if install_defaults:
            for canonical in _SUMMARY_FIELDS:
                self.register(canonical, _log_summary)

    @property
    def requires_signature(self) -> bool:
        return bool(self._secret)

    def register(self, event_type: str, handler: WebhookHandler) -> None:
        """Register a handler by canonical name or any alias.

        Raises:
            KeyError: If the event type is not known.
        """
        canonical = canonical_event(event_type)
        if canonical is None:
            known = sorted(set(EVENT_ALIASES.values()))
            raise KeyError(f"Event '{event_type}' not recognised. Available: {known}")
        self._handlers.setdefault(canonical, []).append(handler)
        logger.debug("Webhook handler registered for %s", canonical)

    def get_registered_events(self) -> list[str]:
        return list(self._handlers.keys())

    def verify(self, body: bytes, headers: dict[str, str]) -> bool:
        """True when no secret is configured or the signature header matches."""
        if not self._secret:
            return True
        lowered = {k.lower(): v for k, v in headers.items()}
        signature = next((lowered[h] for h in SIGNATURE_HEADERS if lowered.get(h)), None)
        return verify_signature(self._secret, body, signature)

    async def dispatch(self, event: WebhookEvent) -> DispatchResult:
        """Run every handler for the event. Handler exceptions propagate."""
        canonical = canonical_event(event.event_type)
        handlers = self._handlers.get(canonical, []) if canonical else []
        if not handlers:
            logger.info("Unhandled webhook event type: %s", event.event_type)
            return DispatchResult(event.event_type, canonical, handled=False)
        for handler in handlers:
            result = handler(event)
            if inspect.isawaitable(result):
                await result
        return DispatchResult(event.event_type, canonical, handled=True)
