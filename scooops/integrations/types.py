"""Interfaces the signup services expect from the payment processor and the CRM."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional, Protocol

from scooops.schemas.customer_schema import ServiceAddress


class PaymentProvider(Protocol):
    """Server-side payment processor operations (implemented by StripeClient)."""

    @property
    def configured(self) -> bool: ...

    def price_id(self, catalog_id: str) -> Optional[str]: ...

    async def create_customer(
        self,
        email: str,
        name: str,
        phone: str,
        billing_address: ServiceAddress,
        payment_method: Optional[str] = None,
        metadata: Optional[dict[str, str]] = None,
        idempotency_key: Optional[str] = None,
    ) -> str: ...

    async def create_subscription(
        self,
        customer_id: str,
        items: list[dict[str, Any]],
        billing_anchor: datetime,
        promotion_code: Optional[str] = None,
        default_payment_method: Optional[str] = None,
        metadata: Optional[dict[str, str]] = None,
        idempotency_key: Optional[str] = None,
    ) -> str: ...

    async def update_customer_metadata(self, customer_id: str, metadata: dict[str, str]) -> None: ...

    async def find_customer_by_email(self, email: str) -> Optional[dict[str, Any]]: ...

    async def create_checkout_session(
        self,
        email: str,
        line_items: list[dict[str, Any]],
        success_url: str,
        cancel_url: str,
        metadata: Optional[dict[str, str]] = None,
    ) -> str: ...

    async def create_billing_portal_session(self, customer_id: str, return_url: str) -> str: ...


class CrmProvider(Protocol):
    """Field-service CRM operations (implemented by SweepAndGoClient)."""

    @property
    def configured(self) -> bool: ...

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
    ) -> dict[str, Any]: ...

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
    ) -> tuple[str, dict[str, Any]]: ...
