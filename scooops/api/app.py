"""FastAPI application factory for the booking functions."""

import logging
import uuid
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from scooops.api.routes import FUNCTION_PREFIXES, health_router, router
from scooops.config import AppConfig, load_config
from scooops.integrations.stripe_client import StripeClient
from scooops.integrations.sweep_client import SweepAndGoClient
from scooops.integrations.types import CrmProvider, PaymentProvider
from scooops.logging_context import set_request_id
from scooops.pricing.quote_engine import QuoteEngine
from scooops.services.billing import BillingService
from scooops.services.signup import SignupService
from scooops.services.webhooks import WebhookDispatcher

logger = logging.getLogger(__name__)


class RequestIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        req_id = request.headers.get("X-Request-Id") or str(uuid.uuid4())
        request.state.request_id = req_id
        set_request_id(req_id)
        response = await call_next(request)
        response.headers["X-Request-Id"] = req_id
        return response


def _describe_validation(exc: RequestValidationError) -> str:
    problems = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part != "body"]
        field = ".".join(loc)
        problems.append(f"{field}: {err.get('msg')}" if field else str(err.get("msg")))
    return "Invalid request: " + "; ".join(problems)


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": _describe_validation(exc)})


def create_app(
    config: Optional[AppConfig] = None,
    payments: Optional[PaymentProvider] = None,
    crm: Optional[CrmProvider] = None,
    dispatcher: Optional[WebhookDispatcher] = None,
) -> FastAPI:
    """
    Build the app with its collaborators.

    Tests and the console demo pass sandbox collaborators; in production the
    Stripe and Sweep&GO clients are built from ``config``.
    """
    config = config or load_config()
    payments = payments if payments is not None else StripeClient(config.stripe)
    crm = crm if crm is not None else SweepAndGoClient(config.crm)
    engine = QuoteEngine(config.pricing)

    app = FastAPI(title=f"{config.business.name} booking functions")
    app.state.config = config
    app.state.engine = engine
    app.state.signup = SignupService(config, payments, crm, engine)
    app.state.billing = BillingService(config, payments)
    app.state.webhooks = dispatcher or WebhookDispatcher(secret=config.crm.webhook_secret)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.cors_origins),
        allow_credentials="*" not in config.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestIdMiddleware)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)

    app.include_router(health_router)
    for prefix in FUNCTION_PREFIXES:
        app.include_router(router, prefix=prefix)

    logger.info("Booking functions ready under %s", ", ".join(FUNCTION_PREFIXES))
    return app
