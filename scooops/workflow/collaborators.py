"""
Remote collaborators the booking workflow talks to while committing.

The workflow never calls the payment processor or the CRM server APIs
itself. It tokenizes the card with the processor's publishable key and
then hands the token to this service's own create-sweep-client function,
which runs both server-side phases.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional, Protocol

import httpx

from scooops.errors import PaymentError, UpstreamError
from scooops.integrations.stripe_client import encode_form, stripe_error_message
from scooops.schemas.booking_schema import CreateSweepClientRequest, SweepClientResponse
from scooops.schemas.customer_schema import PaymentCard, ServiceAddress

if TYPE_CHECKING:
    from scooops.services.signup import SignupService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GatewayReply:
    """HTTP status plus parsed body of a create-sweep-client call."""

    status_code: int
    body: SweepClientResponse


class PaymentTokenizer(Protocol):
    async def tokenize(self, card: PaymentCard, billing_address: ServiceAddress) -> str:
        """Return a one-time card token; raises PaymentError when the card is refused."""
        ...


class SignupGateway(Protocol):
    async def register(self, body: CreateSweepClientRequest) -> GatewayReply: ...

    async def submit_lead(self, body: CreateSweepClientRequest) -> GatewayReply: ...


class StripeTokenizer:
    """Card tokenization against the public Stripe tokens endpoint."""

    def __init__(
        self,
        publishable_key: str,
        api_base: str = "https://api.stripe.com",
        timeout_sec: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._key = publishable_key
        self._api_base = api_base
        self._timeout = timeout_sec
        self._transport = transport

    async def tokenize(self, card: PaymentCard, billing_address: ServiceAddress) -> str:
        if not self._key:
            raise PaymentError("Card payments are not available right now.", 503)
        params = {
            "card": {
                "number": card.number.replace(" ", ""),
                "exp_month": card.exp_month,
                "exp_year": card.exp_year,
                "cvc": card.cvc,
                "name": card.name or None,
                "address_line1": billing_address.street,
                "address_city": billing_address.city,
                "address_state": billing_address.state,
                "address_zip": billing_address.zip,
                "address_country": "US",
            }
        }
        try:
            async with httpx.AsyncClient(
                base_url=self._api_base, timeout=self._timeout, transport=self._transport
            ) as client:
                resp = await client.post(
                    "/v1/tokens",
                    data=dict(encode_form(params)),
                    headers={"Authorization": f"Bearer {self._key}"},
                )
        except httpx.TimeoutException:
            raise PaymentError("The payment processor did not respond in time.", 504) from None
        except httpx.HTTPError as exc:
            logger.warning("Tokenization transport error: %s", exc)
            raise PaymentError("Could not reach the payment processor.", 502) from None

        if resp.status_code >= 400:
            raise PaymentError(stripe_error_message(resp), resp.status_code)
        try:
            token = resp.json()["id"]
        except (ValueError, KeyError, TypeError):
            logger.error("Tokenization returned an unreadable body: %.200s", resp.text)
            raise PaymentError("The payment processor returned an unexpected response.", 502) from None
        logger.info("Card ending %s tokenized", card.last4)
        return str(token)


class HttpSignupGateway:
    """Posts to this service's create-sweep-client function over HTTP."""

    def __init__(
        self,
        functions_url: str,
        timeout_sec: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._url = functions_url.rstrip("/") + "/create-sweep-client"
        self._timeout = timeout_sec
        self._transport = transport

    async def _post(self, body: CreateSweepClientRequest) -> GatewayReply:
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.post(
                    self._url, json=body.model_dump(by_alias=True, exclude_none=True)
                )
        except httpx.HTTPError as exc:
            logger.error("create-sweep-client unreachable: %s", exc)
            raise UpstreamError("The signup service could not be reached.", 502) from None

        try:
            parsed = SweepClientResponse.model_validate(resp.json())
        except ValueError:
            parsed = SweepClientResponse(
                success=False, error=resp.text.strip() or f"HTTP {resp.status_code}"
            )
        return GatewayReply(status_code=resp.status_code, body=parsed)

    async def register(self, body: CreateSweepClientRequest) -> GatewayReply:
        return await self._post(body.model_copy(update={"is_lead_only": False}))

    async def submit_lead(self, body: CreateSweepClientRequest) -> GatewayReply:
        return await self._post(body.model_copy(update={"is_lead_only": True}))


class LocalSignupGateway:
    """Calls a SignupService in-process (console demo and tests)."""

    def __init__(self, service: SignupService) -> None:
        self._service = service

    async def register(self, body: CreateSweepClientRequest) -> GatewayReply:
        status, reply = await self._service.handle(body.model_copy(update={"is_lead_only": False}))
        return GatewayReply(status_code=status, body=reply)

    async def submit_lead(self, body: CreateSweepClientRequest) -> GatewayReply:
        status, reply = await self._service.handle(body.model_copy(update={"is_lead_only": True}))
        return GatewayReply(status_code=status, body=reply)
