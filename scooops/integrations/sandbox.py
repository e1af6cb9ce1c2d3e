"""
In-memory payment processor and CRM.

Used by the console demo and the test-suite in place of Stripe and
Sweep&GO. Every call is recorded so callers can assert on exactly which
remote operations a flow performed. Failures are injected per operation.
"""

import logging
import uuid
from datetime import datetime
from typing import Any, Optional

from scooops.errors import CrmError, PaymentError
from scooops.schemas.customer_schema import PaymentCard, ServiceAddress

logger = logging.getLogger(__name__)


class SandboxPayments:
    """Stand-in for StripeClient that keeps customers and subscriptions in dicts."""

    def __init__(
        self,
        price_ids: Optional[dict[str, str]] = None,
        configured: bool = True,
    ) -> None:
        self._price_ids = dict(price_ids or {})
        self._configured = configured
        self.failures: dict[str, PaymentError] = {}
        self.reset()

    def reset(self) -> None:
        """Clear all records and the call log."""
        self.customers: dict[str, dict[str, Any]] = {}
        self.subscriptions: dict[str, dict[str, Any]] = {}
        self.calls: list[str] = []

    @property
    def configured(self) -> bool:
        return self._configured

    def price_id(self, catalog_id: str) -> Optional[str]:
        return self._price_ids.get(catalog_id)

    def fail(self, operation: str, message: str, status_code: int = 402) -> None:
        """Make the next calls to ``operation`` raise PaymentError."""
        self.failures[operation] = PaymentError(message, status_code)

    def _record(self, operation: str) -> None:
        self.calls.append(operation)
        if operation in self.failures:
            raise self.failures[operation]

    async def create_customer(
        self,
        email: str,
        name: str,
        phone: str,
        billing_address: ServiceAddress,
        payment_method: Optional[str] = None,
        metadata: Optional[dict[str, str]] = None,
        idempotency_key: Optional[str] = None,
    ) -> str:
        self._record("create_customer")
        customer_id = f"cus_{uuid.uuid4().hex[:14]}"
        self.customers[customer_id] = {
            "email": email,
            "name": name,
            "phone": phone,
            "address": billing_address,
            "payment_method": payment_method,
            "metadata": dict(metadata or {}),
        }
        return customer_id

    async def create_subscription(
        self,
        customer_id: str,
        items: list[dict[str, Any]],
        billing_anchor: datetime,
        promotion_code: Optional[str] = None,
        default_payment_method: Optional[str] = None,
        metadata: Optional[dict[str, str]] = None,
        idempotency_key: Optional[str] = None,
    ) -> str:
        self._record("create_subscription")
        subscription_id = f"sub_{uuid.uuid4().hex[:14]}"
        self.subscriptions[subscription_id] = {
            "customer": customer_id,
            "items": list(items),
            "billing_anchor": billing_anchor,
            "promotion_code": promotion_code,
            "metadata": dict(metadata or {}),
        }
        return subscription_id

    async def update_customer_metadata(self, customer_id: str, metadata: dict[str, str]) -> None:
        self._record("update_customer_metadata")
        self.customers[customer_id]["metadata"].update(metadata)

    async def find_customer_by_email(self, email: str) -> Optional[dict[str, Any]]:
        self._record("find_customer_by_email")
        for customer_id, customer in self.customers.items():
            if customer["email"] == email:
                return {"id": customer_id, **customer}
        return None

    async def create_checkout_session(
        self,
        email: str,
        line_items: list[dict[str, Any]],
        success_url: str,
        cancel_url: str,
        metadata: Optional[dict[str, str]] = None,
    ) -> str:
        self._record("create_checkout_session")
        return f"https://checkout.sandbox/{uuid.uuid4().hex[:10]}"

    async def create_billing_portal_session(self, customer_id: str, return_url: str) -> str:
        self._record("create_billing_portal_session")
        return f"https://billing.sandbox/{customer_id}"


class SandboxCrm:
    """Stand-in for SweepAndGoClient that keeps leads and clients in lists."""

    def __init__(self, configured: bool = True) -> None:
        self._configured = configured
        self.failures: dict[str, CrmError] = {}
        self.reset()

    def reset(self) -> None:
        self.leads: list[dict[str, Any]] = []
        self.clients: dict[str, dict[str, Any]] = {}
        self.calls: list[str] = []

    @property
    def configured(self) -> bool:
        return self._configured

    def fail(self, operation: str, message: str, status_code: int = 422) -> None:
        self.failures[operation] = CrmError(message, status_code)

    def _record(self, operation: str) -> None:
        self.calls.append(operation)
        if operation in self.failures:
            raise self.failures[operation]

    async def create_lead(
        self,
        name: str,
        email: str,
        phone: str,
        address: str = "",
        city: str = "",
        state: str = "",
        zip_code: str = "",
        comment: str = "",
    ) -> dict[str, Any]:
        self._record("create_lead")
        lead = {
            "name": name,
            "email": email,
            "phone": phone,
            "address": address,
            "city": city,
            "state": state,
            "zip_code": zip_code,
            "comment": comment,
        }
        self.leads.append(lead)
        return {"status": "ok", "lead": len(self.leads)}

    async def create_client_with_package(
        self,
        first_name: str,
        last_name: str,
        email: str,
        phone: str,
        address: str,
        city: str,
        state: str,
        zip_code: str,
        clean_up_frequency: str,
        credit_card_token: str,
        package_id: Optional[str] = None,
        package_name: str = "Standard Plan",
        comment: str = "",
    ) -> tuple[str, dict[str, Any]]:
        self._record("create_client_with_package")
        client_id = f"cl_{uuid.uuid4().hex[:8]}"
        self.clients[client_id] = {
            "first_name": first_name,
            "last_name": last_name,
            "email": email,
            "phone": phone,
            "address": address,
            "city": city,
            "state": state,
            "zip_code": zip_code,
            "clean_up_frequency": clean_up_frequency,
            "credit_card_token": credit_card_token,
            "package_id": package_id,
            "package_name": package_name,
            "comment": comment,
        }
        logger.debug("Sandbox CRM client created: %s", client_id)
        return client_id, {"client_id": client_id}


DECLINED_CARD = "4000000000000002"


class SandboxTokenizer:
    """Stand-in for StripeTokenizer. The well-known decline test card is refused."""

    def __init__(self) -> None:
        self.tokens: list[str] = []

    async def tokenize(self, card: PaymentCard, billing_address: ServiceAddress) -> str:
        if card.number.replace(" ", "") == DECLINED_CARD:
            raise PaymentError("Your card was declined.", 402)
        token = f"tok_{uuid.uuid4().hex[:14]}"
        self.tokens.append(token)
        return token
