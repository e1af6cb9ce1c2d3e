"""Shared test fixtures and helpers."""

from typing import Any

import pytest
from fastapi.testclient import TestClient

from scooops.api import create_app
from scooops.config import PRICE_ENV_VARS, AppConfig, BusinessConfig, CrmConfig, StripeConfig
from scooops.integrations.sandbox import SandboxCrm, SandboxPayments, SandboxTokenizer
from scooops.pricing.catalog import DEFAULT_RATE_TABLE
from scooops.pricing.quote_engine import QuoteEngine
from scooops.schemas.booking_schema import CreateSweepClientRequest
from scooops.schemas.customer_schema import PaymentCard
from scooops.services.signup import SignupService
from scooops.workflow.booking_workflow import BookingWorkflow
from scooops.workflow.collaborators import LocalSignupGateway
from scooops.workflow.state_machine import BookingStateMachine

SANDBOX_PRICE_IDS = {catalog_id: f"price_{catalog_id}" for catalog_id in PRICE_ENV_VARS}

GOOD_CARD = "4242424242424242"

CONTACT = {
    "name": "Diana Prince",
    "email": "diana@themyscira.example",
    "phone": "(949) 555-0199",
    "street": "12 Paradise Ln",
    "city": "Irvine",
    "state": "ca",
    "zip": "92618",
}


class BrokenLinkPayments(SandboxPayments):
    """Payment sandbox whose customer metadata update blows up."""

    async def update_customer_metadata(self, customer_id: str, metadata: dict[str, str]) -> None:
        self._record("update_customer_metadata")
        raise ValueError("Expecting value: line 1 column 1 (char 0)")


class CrashingCrm(SandboxCrm):
    """CRM sandbox whose registration fails with a non-CRM error."""

    async def create_client_with_package(self, **kwargs: Any) -> tuple[str, dict[str, Any]]:
        self._record("create_client_with_package")
        raise AttributeError("'list' object has no attribute 'get'")


def make_config(**business: Any) -> AppConfig:
    """AppConfig with test credentials and no environment dependence."""
    business_defaults = {
        "name": "Super Scooops",
        "site_url": "https://superscooops.test",
        "support_email": "help@superscooops.test",
        "support_phone": "(949) 555-0100",
        "max_dogs": 5,
        "success_redirect_delay_sec": 0.0,
    }
    business_defaults.update(business)
    return AppConfig(
        business=BusinessConfig(**business_defaults),
        stripe=StripeConfig(
            secret_key="sk_test_123",
            publishable_key="pk_test_123",
            api_base="https://stripe.test",
            promotion_code="promo_free_first",
            timeout_sec=5.0,
            price_ids=dict(SANDBOX_PRICE_IDS),
        ),
        crm=CrmConfig(
            api_key="sg_test_123",
            org_slug="super-scooops-test",
            api_base="https://sweep.test",
            webhook_secret="",
            timeout_sec=5.0,
        ),
        pricing=DEFAULT_RATE_TABLE,
        host="127.0.0.1",
        port=8888,
        log_level="INFO",
        cors_origins=("*",),
    )


def make_card(number: str = GOOD_CARD) -> PaymentCard:
    return PaymentCard(number=number, exp_month=12, exp_year=2030, cvc="123", name="Diana Prince")


def make_signup_body(**overrides: Any) -> CreateSweepClientRequest:
    """A complete create-sweep-client body for a weekly, one-dog signup."""
    payload: dict[str, Any] = {
        "name": CONTACT["name"],
        "email": CONTACT["email"],
        "phone": CONTACT["phone"],
        "address": CONTACT["street"],
        "city": CONTACT["city"],
        "state": CONTACT["state"],
        "zip": CONTACT["zip"],
        "planId": "sidekick",
        "dogs": 1,
        "frequencyId": "weekly",
        "preferredDay": "tuesday",
        "stripeToken": "tok_visa",
    }
    payload.update(overrides)
    return CreateSweepClientRequest.model_validate(payload)


def fill_contact(workflow: BookingWorkflow, **overrides: str) -> None:
    values = {**CONTACT, **overrides}
    for name, value in values.items():
        workflow.set_field(name, value)


@pytest.fixture
def config():
    return make_config()


@pytest.fixture
def engine():
    return QuoteEngine(DEFAULT_RATE_TABLE)


@pytest.fixture
def state_machine():
    return BookingStateMachine()


@pytest.fixture
def payments():
    return SandboxPayments(price_ids=SANDBOX_PRICE_IDS)


@pytest.fixture
def crm():
    return SandboxCrm()


@pytest.fixture
def tokenizer():
    return SandboxTokenizer()


@pytest.fixture
def signup(config, payments, crm):
    return SignupService(config, payments, crm)


@pytest.fixture
def workflow(config, tokenizer, signup):
    return BookingWorkflow(config, tokenizer, LocalSignupGateway(signup))


@pytest.fixture
def client(config, payments, crm):
    with TestClient(create_app(config, payments=payments, crm=crm)) as c:
        yield c
