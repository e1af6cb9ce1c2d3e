"""
Booking function endpoints.

The same router is mounted under ``/functions`` and under the legacy
``/.netlify/functions`` path the deployed site already calls.
"""

import json
import logging
from typing import Any, Optional

from fastapi import APIRouter, Header, Request
from fastapi.responses import JSONResponse

from scooops.config import AppConfig
from scooops.errors import ConfigurationError, CrmError, PaymentError, UnknownOptionError, ValidationFailed
from scooops.pricing.catalog import catalog_payload
from scooops.pricing.quote_engine import QuoteEngine
from scooops.schemas.booking_schema import (
    BillingPortalRequest,
    CheckoutRequest,
    CreateSweepClientRequest,
    SubmitBookingRequest,
    WebhookEvent,
)
from scooops.services.billing import BillingService, NoBillingAccount
from scooops.services.messages import CONFIGURATION_MESSAGE
from scooops.services.signup import SignupService
from scooops.services.webhooks import WebhookDispatcher

logger = logging.getLogger(__name__)

FUNCTION_PREFIXES = ("/functions", "/.netlify/functions")

router = APIRouter(tags=["functions"])
health_router = APIRouter(tags=["health"])


def _error(status_code: int, error: str, **extra: Any) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error, **extra})


@health_router.get("/health")
def health(request: Request) -> dict[str, Any]:
    config: AppConfig = request.app.state.config
    return {"status": "ok", "service": config.business.name}


@router.get("/catalog")
def get_catalog(request: Request) -> dict[str, Any]:
    config: AppConfig = request.app.state.config
    return catalog_payload(config.pricing)


@router.get("/quote")
def get_quote(
    request: Request,
    dogs: int = 1,
    frequency: str = "weekly",
    deodorizer: Optional[str] = None,
):
    engine: QuoteEngine = request.app.state.engine
    try:
        result = engine.quote(dogs, frequency, deodorizer or None)
    except UnknownOptionError as exc:
        return _error(400, str(exc))
    return result.as_dict()


@router.post("/create-sweep-client")
async def create_sweep_client(
    body: CreateSweepClientRequest,
    request: Request,
    idempotency_key: Optional[str] = Header(default=None, alias="Idempotency-Key"),
):
    signup: SignupService = request.app.state.signup
    status_code, reply = await signup.handle(body, idempotency_key=idempotency_key)
    return JSONResponse(
        status_code=status_code, content=reply.model_dump(by_alias=True, exclude_none=True)
    )


@router.post("/create-checkout")
async def create_checkout(body: CheckoutRequest, request: Request):
    billing: BillingService = request.app.state.billing
    try:
        url = await billing.create_checkout(body)
    except ValidationFailed as exc:
        return _error(400, exc.message)
    except ConfigurationError as exc:
        logger.error("Checkout misconfigured: %s", exc)
        return _error(500, CONFIGURATION_MESSAGE)
    except PaymentError as exc:
        logger.error("Checkout failed: %s", exc.message)
        return _error(500, exc.message)
    return {"url": url}


@router.post("/create-billing-portal-session")
async def create_billing_portal_session(body: BillingPortalRequest, request: Request):
    billing: BillingService = request.app.state.billing
    try:
        url = await billing.create_portal_session(body)
    except ValidationFailed:
        return _error(400, "Email is required")
    except NoBillingAccount as exc:
        return _error(404, str(exc))
    except ConfigurationError as exc:
        logger.error("Billing portal misconfigured: %s", exc)
        return _error(500, CONFIGURATION_MESSAGE)
    except PaymentError as exc:
        logger.error("Billing portal session error: %s", exc.message)
        return _error(500, exc.message)
    return {"url": url}


@router.post("/submit-booking")
async def submit_booking(body: SubmitBookingRequest, request: Request):
    signup: SignupService = request.app.state.signup
    try:
        data = await signup.submit_booking(body)
    except ValidationFailed as exc:
        return _error(400, exc.message)
    except ConfigurationError as exc:
        logger.error("Legacy booking misconfigured: %s", exc)
        return _error(500, CONFIGURATION_MESSAGE)
    except CrmError as exc:
        return _error(500, f"CRM ERROR: {exc.message}")
    return {"message": "Booking submitted successfully!", "data": data}


@router.post("/sweep-webhook")
async def sweep_webhook(request: Request):
    dispatcher: WebhookDispatcher = request.app.state.webhooks
    raw = await request.body()

    if not dispatcher.verify(raw, dict(request.headers)):
        logger.warning("Webhook rejected: bad or missing signature")
        return _error(401, "Invalid signature")

    try:
        payload = json.loads(raw or b"{}")
    except ValueError:
        return _error(400, "Invalid JSON")
    if not isinstance(payload, dict):
        return _error(400, "Invalid JSON")
    if not payload.get("event_type") or not isinstance(payload["event_type"], str):
        logger.error("Webhook missing event_type")
        return _error(400, "Missing event_type")

    try:
        event = WebhookEvent.model_validate(payload)
    except ValueError as exc:
        return _error(400, f"Invalid webhook payload: {exc}")

    logger.info(
        "Sweep&GO webhook received: %s (org=%s, has_data=%s)",
        event.event_type, event.organization, bool(event.data),
    )
    try:
        result = await dispatcher.dispatch(event)
    except Exception as exc:
        logger.exception("Webhook processing error for %s", event.event_type)
        return _error(500, "Webhook processing failed", message=str(exc))
    return result.as_dict()
