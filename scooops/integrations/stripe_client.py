"""
Stripe REST client for customers, subscriptions, checkout and billing portal.

Talks to the form-encoded Stripe API directly over httpx. Every failure
(HTTP error status, timeout, transport error) surfaces as PaymentError
carrying the upstream message and status code.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Optional

import httpx

from scooops.config import StripeConfig
from scooops.errors import ConfigurationError, PaymentError
from scooops.schemas.customer_schema import ServiceAddress

logger = logging.getLogger(__name__)


def encode_form(params: dict[str, Any], prefix: str = "") -> list[tuple[str, str]]:
    """Flatten nested dicts/lists into Stripe's bracketed form keys.

    Examples:
        >>> encode_form({"items": [{"price": "p_1", "quantity": 2}]})
        [('items[0][price]', 'p_1'), ('items[0][quantity]', '2')]
    """
    pairs: list[tuple[str, str]] = []
    for key, value in params.items():
        full_key = f"{prefix}[{key}]" if prefix else str(key)
        if value is None:
            continue
        if isinstance(value, dict):
            pairs.extend(encode_form(value, full_key))
        elif isinstance(value, (list, tuple)):
            for index, item in enumerate(value):
                item_key = f"{full_key}[{index}]"
                if isinstance(item, dict):
                    pairs.extend(encode_form(item, item_key))
                else:
                    pairs.append((item_key, str(item)))
        elif isinstance(value, bool):
            pairs.append((full_key, "true" if value else "false"))
        else:
            pairs.append((full_key, str(value)))
    return pairs


def _address_params(address: ServiceAddress) -> dict[str, str]:
    return {
        "line1": address.street,
        "city": address.city,
        "state": address.state,
        "postal_code": address.zip,
        "country": "US",
    }


def stripe_error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text.strip()
    if isinstance(body, dict):
        err = body.get("error")
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
        if isinstance(err, str):
            return err
    return response.text.strip()


class StripeClient:
    """Thin async wrapper over the Stripe endpoints the signup flow needs."""

    def __init__(
        self,
        config: StripeConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._config = config
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self._config.secret_key)

    def price_id(self, catalog_id: str) -> Optional[str]:
        return self._config.price_ids.get(catalog_id)

    async def _request(
        self,
        method: str,
        path: str,
        data: Optional[dict[str, Any]] = None,
        params: Optional[dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
    ) -> dict[str, Any]:
        if not self._config.secret_key:
            raise ConfigurationError("STRIPE_SECRET_KEY is not configured")

        headers = {"Authorization": f"Bearer {self._config.secret_key}"}
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key

        try:
            async with httpx.AsyncClient(
                base_url=self._config.api_base,
                timeout=self._config.timeout_sec,
                transport=self._transport,
            ) as client:
                resp = await client.request(
                    method,
                    path,
                    data=dict(encode_form(data)) if data else None,
                    params=params,
                    headers=headers,
                )
        except httpx.TimeoutException:
            logger.warning("Stripe %s %s timed out", method, path)
            raise PaymentError("The payment processor did not respond in time.", 504) from None
        except httpx.HTTPError as exc:
            logger.warning("Stripe %s %s transport error: %s", method, path, exc)
            raise PaymentError("Could not reach the payment processor.", 502) from None

        if resp.status_code >= 400:
            message = stripe_error_message(resp)
            logger.warning("Stripe %s %s failed (%s): %s", method, path, resp.status_code, message)
            raise PaymentError(message, resp.status_code)

        try:
            body = resp.json()
        except ValueError:
            body = None
        if not isinstance(body, dict):
            logger.error("Stripe %s %s returned an unreadable body: %.200s", method, path, resp.text)
            raise PaymentError("The payment processor returned an unexpected response.", 502)
        return body

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
        """Create a customer with the card attached as default payment method."""
        data: dict[str, Any] = {
            "email": email,
            "name": name,
            "phone": phone,
            "address": _address_params(billing_address),
            "metadata": metadata or {},
        }
        if payment_method:
            data["payment_method"] = payment_method
            data["invoice_settings"] = {"default_payment_method": payment_method}
        body = await self._request("POST", "/v1/customers", data=data, idempotency_key=idempotency_key)
        logger.info("Stripe customer created: %s", body.get("id"))
        return str(body["id"])

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
        """Create a recurring subscription that first bills on ``billing_anchor``."""
        data: dict[str, Any] = {
            "customer": customer_id,
            "items": items,
            "billing_cycle_anchor": int(billing_anchor.timestamp()),
            "proration_behavior": "none",
            "default_payment_method": default_payment_method,
            "metadata": metadata or {},
        }
        if promotion_code:
            data["discounts"] = [{"promotion_code": promotion_code}]
        body = await self._request(
            "POST", "/v1/subscriptions", data=data, idempotency_key=idempotency_key
        )
        logger.info("Stripe subscription created: %s for %s", body.get("id"), customer_id)
        return str(body["id"])

    async def update_customer_metadata(self, customer_id: str, metadata: dict[str, str]) -> None:
        await self._request("POST", f"/v1/customers/{customer_id}", data={"metadata": metadata})

    async def find_customer_by_email(self, email: str) -> Optional[dict[str, Any]]:
        body = await self._request("GET", "/v1/customers", params={"email": email, "limit": 1})
        customers = body.get("data") or []
        return customers[0] if customers else None

    async def create_checkout_session(
        self,
        email: str,
        line_items: list[dict[str, Any]],
        success_url: str,
        cancel_url: str,
        metadata: Optional[dict[str, str]] = None,
    ) -> str:
        """Hosted checkout in subscription mode; returns the redirect URL."""
        body = await self._request(
            "POST",
            "/v1/checkout/sessions",
            data={
                "customer_email": email,
                "payment_method_types": ["card"],
                "line_items": line_items,
                "mode": "subscription",
                "success_url": success_url,
                "cancel_url": cancel_url,
                "metadata": metadata or {},
            },
        )
        return str(body["url"])

    async def create_billing_portal_session(self, customer_id: str, return_url: str) -> str:
        body = await self._request(
            "POST",
            "/v1/billing_portal/sessions",
            data={"customer": customer_id, "return_url": return_url},
        )
        return str(body["url"])
