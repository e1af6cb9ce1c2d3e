"""Tests for import chains and module integrity.

Ensures all public modules can be imported without errors and
that re-exports from __init__.py files work correctly.
"""


class TestSchemaImports:
    def test_import_outcome_schema(self):
        from scooops.schemas.outcome_schema import BookingOutcome, FailurePhase, SignupOutcome

        assert BookingOutcome.SUCCEEDED == "succeeded"
        assert FailurePhase.CRM == "crm"
        assert SignupOutcome(status=BookingOutcome.PENDING).status_code == 200

    def test_import_booking_schema(self):
        from scooops.schemas.booking_schema import CreateSweepClientRequest, SweepClientResponse

        body = CreateSweepClientRequest.model_validate({"planId": "hero", "isLeadOnly": True})
        assert body.plan_id == "hero"
        assert body.is_lead_only
        assert SweepClientResponse(success=True).error is None

    def test_import_customer_schema(self):
        from scooops.schemas.customer_schema import ServiceAddress

        address = ServiceAddress(street="12 Paradise Ln", city="Irvine", state="CA", zip="92618")
        assert address.state == "CA"


class TestPackageReExports:
    def test_pricing_package(self):
        from scooops.pricing import DEFAULT_RATE_TABLE, QuoteEngine

        assert QuoteEngine(DEFAULT_RATE_TABLE).required_service_days("2x-weekly") == 2

    def test_workflow_package(self):
        from scooops.workflow import (
            BookingState,
            BookingStateMachine,
            BookingWorkflow,
            ContactForm,
            HttpSignupGateway,
            LocalSignupGateway,
            StripeTokenizer,
        )

        assert BookingStateMachine().current_state == BookingState.QUOTING
        assert ContactForm().required_days == 1
        assert callable(BookingWorkflow)
        assert HttpSignupGateway and LocalSignupGateway and StripeTokenizer

    def test_api_package(self):
        from scooops.api import create_app

        assert callable(create_app)


class TestServiceImports:
    def test_signup_and_billing(self):
        from scooops.services.billing import BillingService, NoBillingAccount
        from scooops.services.signup import SignupService

        assert issubclass(NoBillingAccount, Exception)
        assert callable(SignupService) and callable(BillingService)

    def test_webhook_defaults(self):
        from scooops.services.webhooks import WebhookDispatcher

        events = WebhookDispatcher().get_registered_events()
        assert "client.created" in events
        assert "payment.failed" in events


class TestConsoleDemo:
    def test_console_session_imports(self):
        from console_demo import SCENARIOS, ConsoleSession

        session = ConsoleSession()
        assert "weekly" in SCENARIOS
        assert session.workflow.state.value == "quoting"
