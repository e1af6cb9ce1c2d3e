"""Hosted checkout and self-service billing portal sessions."""

from typing import Any, Optional

from scooops.config import AppConfig
from scooops.errors import ConfigurationError, ScooopsError, ValidationFailed
from scooops.integrations.types import PaymentProvider
from scooops.logging_context import get_request_logger
from scooops.schemas.booking_schema import BillingPortalRequest, CheckoutRequest

logger = get_request_logger(__name__)

NO_BILLING_ACCOUNT = (
    "No billing account found for this email. "
    "Sign up first or use the email you used when subscribing."
)

# Deodorizer ids posted by the first checkout page.
LEGACY_DEODORIZER_IDS = {
    "deodorizer-1x": "weekly-deodorizer",
    "deodorizer-2x": "2x-weekly-deodorizer",
    "deodorizer-3x": "3x-weekly-deodorizer",
}


class NoBillingAccount(ScooopsError):
    """No payment-processor customer exists for the given email."""


class BillingService:
    """Redirect-based payment flows that bypass the embedded widget."""

    def __init__(self, config: AppConfig, payments: PaymentProvider) -> None:
        self._config = config
        self._payments = payments

    @property
    def _base_url(self) -> str:
        return self._config.business.site_url.rstrip("/")

    def _price(self, catalog_id: str, what: str) -> str:
        price_id = self._payments.price_id(catalog_id)
        if not price_id:
            raise ConfigurationError(f"Missing Price ID for {what}: {catalog_id}")
        return price_id

    def checkout_line_items(self, body: CheckoutRequest) -> list[dict[str, Any]]:
        """
        Base plan, extra dogs and deodorizer as Stripe line items.

        Raises:
            ValidationFailed: planId is missing.
            ConfigurationError: A needed price id is not configured.
        """
        if not body.plan_id:
            raise ValidationFailed(["planId"])
        items: list[dict[str, Any]] = [{"price": self._price(body.plan_id, "plan"), "quantity": 1}]
        if body.dogs > 1:
            items.append({"price": self._price("extra-dog", "Extra Dog"), "quantity": body.dogs - 1})
        if body.deodorizer:
            deodorizer_id = LEGACY_DEODORIZER_IDS.get(body.deodorizer, body.deodorizer)
            items.append({"price": self._price(deodorizer_id, "Deodorizer"), "quantity": 1})
        return items

    async def create_checkout(self, body: CheckoutRequest) -> str:
        """Return the hosted checkout URL for a plan selection."""
        items = self.checkout_line_items(body)
        url = await self._payments.create_checkout_session(
            email=(body.email or "").strip(),
            line_items=items,
            success_url=f"{self._base_url}/success.html",
            cancel_url=f"{self._base_url}/cancel.html",
            metadata={
                "address": body.address or "",
                "name": body.name or "",
                "planId": body.plan_id or "",
                "dogs": str(body.dogs),
            },
        )
        logger.info("Checkout session created for plan '%s'", body.plan_id)
        return url

    async def create_portal_session(self, body: BillingPortalRequest) -> str:
        """
        Look up the customer by email and open a billing portal session.

        Raises:
            ValidationFailed: Email is missing.
            NoBillingAccount: No customer has that email.
        """
        email = (body.email or "").strip()
        if not email:
            raise ValidationFailed(["email"])
        customer = await self._payments.find_customer_by_email(email)
        if customer is None:
            logger.info("Billing portal requested for unknown email")
            raise NoBillingAccount(NO_BILLING_ACCOUNT)
        return_url: Optional[str] = body.return_url or f"{self._base_url}/manage-billing.html"
        return await self._payments.create_billing_portal_session(customer["id"], return_url)
