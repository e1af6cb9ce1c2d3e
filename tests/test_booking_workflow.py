"""End-to-end tests for the booking widget workflow against the sandboxes."""

import asyncio

import pytest

from scooops.errors import UpstreamError, ValidationFailed
from scooops.integrations.sandbox import DECLINED_CARD, SandboxTokenizer
from scooops.schemas.booking_schema import SweepClientResponse
from scooops.schemas.outcome_schema import BookingOutcome, FailurePhase
from scooops.services.signup import SignupService
from scooops.workflow.booking_workflow import (
    BookingWorkflow,
    ClosedStep,
    ContactStep,
    FailedStep,
    PaymentStep,
    QuotingStep,
    SucceededStep,
)
from scooops.workflow.collaborators import GatewayReply, LocalSignupGateway
from scooops.workflow.state_machine import BookingState, InvalidTransitionError
from tests.conftest import (
    SANDBOX_PRICE_IDS,
    BrokenLinkPayments,
    CrashingCrm,
    fill_contact,
    make_card,
)


class SlowTokenizer(SandboxTokenizer):
    """Yields to the event loop before issuing a token."""

    async def tokenize(self, card, billing_address):
        await asyncio.sleep(0.01)
        return await super().tokenize(card, billing_address)


class UnreachableGateway:
    async def register(self, body):
        raise UpstreamError("The signup service could not be reached.", 502)

    async def submit_lead(self, body):
        raise UpstreamError("The signup service could not be reached.", 502)


class CrashingGateway:
    async def register(self, body):
        raise RuntimeError("connection reset while reading the reply")

    async def submit_lead(self, body):
        raise RuntimeError("connection reset while reading the reply")


class StaticGateway:
    """Answers every call with one canned reply."""

    def __init__(self, reply: GatewayReply) -> None:
        self.reply = reply

    async def register(self, body):
        return self.reply

    async def submit_lead(self, body):
        return self.reply


def _to_payment(workflow: BookingWorkflow, days=("tuesday",)) -> None:
    fill_contact(workflow)
    workflow.request_quote()
    for index, day in enumerate(days):
        workflow.set_service_day(index, day)
    workflow.continue_to_payment()


class TestSelection:
    def test_starts_quoting_weekly(self, workflow):
        assert workflow.state == BookingState.QUOTING
        assert isinstance(workflow.step, QuotingStep)
        assert workflow.step.quote.request.frequency_id == "weekly"

    def test_set_dogs_clamps(self, workflow):
        assert workflow.set_dogs(9).request.dogs == 5
        assert workflow.set_dogs(0).request.dogs == 1

    def test_frequency_change_clears_incompatible_deodorizer(self, workflow):
        workflow.set_deodorizer("weekly-deodorizer")
        workflow.set_frequency("monthly")
        assert workflow.deodorizer_id is None
        assert workflow.step.quote.request.deodorizer_id is None

    def test_frequency_change_keeps_compatible_deodorizer(self, workflow):
        workflow.set_deodorizer("monthly-deodorizer")
        workflow.set_frequency("bi-weekly")
        assert workflow.deodorizer_id == "monthly-deodorizer"

    def test_frequency_change_resizes_days(self, workflow):
        workflow.set_frequency("3x-weekly")
        assert workflow.form.service_days == [None, None, None]
        workflow.set_service_day(0, "monday")
        workflow.set_frequency("weekly")
        assert workflow.form.service_days == ["monday"]

    def test_incompatible_deodorizer_rejected(self, workflow):
        with pytest.raises(ValidationFailed, match="not available with Weekly"):
            workflow.set_deodorizer("2x-weekly-deodorizer")
        assert workflow.deodorizer_id is None

    def test_select_plan_sets_frequency(self, workflow):
        workflow.select_plan("hero")
        assert workflow.frequency_id == "2x-weekly"
        assert workflow.plan_id == "hero"
        workflow.set_frequency("weekly")
        assert workflow.plan_id is None

    def test_quote_updates_on_contact_step(self, workflow):
        fill_contact(workflow)
        workflow.request_quote()
        workflow.set_dogs(3)
        assert isinstance(workflow.step, ContactStep)
        assert str(workflow.step.quote.price_per_cleanup) == "25.00"

    def test_selection_locked_on_payment_step(self, workflow):
        _to_payment(workflow)
        with pytest.raises(InvalidTransitionError):
            workflow.set_dogs(2)


class TestStepTransitions:
    def test_quote_needs_zip_and_phone(self, workflow):
        with pytest.raises(ValidationFailed) as exc_info:
            workflow.request_quote()
        assert exc_info.value.missing == ["ZIP code", "phone"]
        assert workflow.state == BookingState.QUOTING

    def test_contact_errors_stay_on_contact_step(self, workflow):
        workflow.set_field("zip", "92618")
        workflow.set_field("phone", "9495550199")
        workflow.request_quote()
        with pytest.raises(ValidationFailed):
            workflow.continue_to_payment()
        assert workflow.state == BookingState.CONTACT_COLLECTION
        assert workflow.step.error.startswith("Missing required fields: name, email")

    def test_duplicate_days_block_payment(self, workflow):
        workflow.set_frequency("2x-weekly")
        fill_contact(workflow)
        workflow.request_quote()
        workflow.set_service_day(0, "friday")
        workflow.set_service_day(1, "friday")
        with pytest.raises(ValidationFailed, match="different day"):
            workflow.continue_to_payment()

    def test_payment_step_carries_contact(self, workflow):
        _to_payment(workflow)
        assert isinstance(workflow.step, PaymentStep)
        assert workflow.step.contact.service_days == ("tuesday",)

    def test_contact_locked_on_payment_step(self, workflow):
        workflow.set_frequency("2x-weekly")
        _to_payment(workflow, days=("monday", "thursday"))
        with pytest.raises(InvalidTransitionError):
            workflow.set_service_day(1, "monday")
        with pytest.raises(InvalidTransitionError):
            workflow.set_field("name", "Someone Else")
        assert workflow.form.service_days == ["monday", "thursday"]
        assert workflow.step.contact.name == "Diana Prince"

    def test_go_back_reopens_contact_fields(self, workflow):
        _to_payment(workflow)
        workflow.go_back()
        workflow.set_field("name", "Diana of Themyscira")
        workflow.continue_to_payment()
        assert workflow.step.contact.name == "Diana of Themyscira"

    def test_retry_needs_a_failed_commit(self, workflow):
        with pytest.raises(InvalidTransitionError):
            workflow.retry_payment()

    def test_go_back(self, workflow):
        _to_payment(workflow)
        assert isinstance(workflow.go_back(), ContactStep)
        assert isinstance(workflow.go_back(), QuotingStep)

    def test_dismiss(self, workflow, payments, crm):
        workflow.dismiss()
        assert workflow.step == ClosedStep(reason="dismissed")
        assert payments.calls == [] and crm.calls == []


class TestActivate:
    @pytest.mark.asyncio
    async def test_happy_path(self, workflow, payments, crm, tokenizer):
        _to_payment(workflow)
        outcome = await workflow.activate(make_card())
        assert outcome == BookingOutcome.SUCCEEDED
        assert workflow.state_trace() == [
            "quoting", "contact_collection", "payment_collection", "committing", "succeeded",
        ]
        assert len(tokenizer.tokens) == 1
        assert payments.calls.count("create_customer") == 1
        assert payments.calls.count("create_subscription") == 1
        assert crm.calls == ["create_client_with_package"]
        step = workflow.step
        assert isinstance(step, SucceededStep)
        assert step.client_id in crm.clients

    @pytest.mark.asyncio
    async def test_token_reaches_crm(self, workflow, crm, tokenizer):
        _to_payment(workflow)
        await workflow.activate(make_card())
        client = next(iter(crm.clients.values()))
        assert client["credit_card_token"] == tokenizer.tokens[0]

    @pytest.mark.asyncio
    async def test_commit_sends_validated_contact(self, workflow, crm, tokenizer):
        workflow.set_frequency("2x-weekly")
        _to_payment(workflow, days=("monday", "thursday"))
        workflow.form.set_field("name", "Someone Else")
        workflow.form.set_service_day(1, "monday")
        assert await workflow.activate(make_card()) == BookingOutcome.SUCCEEDED
        assert len(tokenizer.tokens) == 1
        client = next(iter(crm.clients.values()))
        assert client["first_name"] == "Diana"
        assert "Preferred Service Day: Monday, Thursday" in client["comment"]

    @pytest.mark.asyncio
    async def test_ignored_outside_payment_step(self, workflow, tokenizer):
        assert await workflow.activate(make_card()) == BookingOutcome.PENDING
        assert tokenizer.tokens == []

    @pytest.mark.asyncio
    async def test_repeat_after_success_is_noop(self, workflow, payments):
        _to_payment(workflow)
        await workflow.activate(make_card())
        calls = list(payments.calls)
        assert await workflow.activate(make_card()) == BookingOutcome.SUCCEEDED
        assert payments.calls == calls

    @pytest.mark.asyncio
    async def test_concurrent_activate_commits_once(self, config, signup, payments, crm):
        tokenizer = SlowTokenizer()
        workflow = BookingWorkflow(config, tokenizer, LocalSignupGateway(signup))
        _to_payment(workflow)
        results = await asyncio.gather(
            workflow.activate(make_card()), workflow.activate(make_card())
        )
        assert sorted(r.value for r in results) == ["pending", "succeeded"]
        assert len(tokenizer.tokens) == 1
        assert payments.calls.count("create_customer") == 1
        assert crm.calls == ["create_client_with_package"]

    @pytest.mark.asyncio
    async def test_incomplete_billing_address(self, workflow, tokenizer):
        _to_payment(workflow)
        workflow.set_billing_address(False, street="1 Main St")
        with pytest.raises(ValidationFailed, match="billing city"):
            await workflow.activate(make_card())
        assert workflow.state == BookingState.PAYMENT_COLLECTION
        assert workflow.step.error is not None
        assert tokenizer.tokens == []


class TestPaymentFailure:
    @pytest.mark.asyncio
    async def test_declined_card(self, workflow, payments, crm):
        _to_payment(workflow)
        outcome = await workflow.activate(make_card(DECLINED_CARD))
        assert outcome == BookingOutcome.FAILED
        step = workflow.step
        assert isinstance(step, FailedStep)
        assert step.phase == FailurePhase.PAYMENT
        assert step.retryable
        assert "declined" in step.message
        assert payments.calls == [] and crm.calls == []

    @pytest.mark.asyncio
    async def test_server_side_payment_failure(self, workflow, payments, crm):
        payments.fail("create_customer", "Your card has insufficient funds.")
        _to_payment(workflow)
        await workflow.activate(make_card())
        assert workflow.step.phase == FailurePhase.PAYMENT
        assert "insufficient funds" in workflow.step.message
        assert crm.calls == []

    @pytest.mark.asyncio
    async def test_retry_after_decline(self, workflow):
        _to_payment(workflow)
        await workflow.activate(make_card(DECLINED_CARD))
        assert isinstance(workflow.retry_payment(), PaymentStep)
        assert await workflow.activate(make_card()) == BookingOutcome.SUCCEEDED
        assert "failed" in workflow.state_trace()


class TestCrmFailure:
    @pytest.mark.asyncio
    async def test_crm_rejects_after_payment(self, workflow, payments, crm):
        crm.fail("create_client_with_package", "Zip code is outside the service area", 422)
        _to_payment(workflow)
        outcome = await workflow.activate(make_card())
        assert outcome == BookingOutcome.FAILED
        step = workflow.step
        assert step.phase == FailurePhase.CRM
        assert not step.retryable
        assert "payment method was accepted" in step.message
        assert len(payments.customers) == 1
        assert len(payments.subscriptions) == 1
        assert crm.clients == {}

    @pytest.mark.asyncio
    async def test_no_retry_after_crm_failure(self, workflow, crm):
        crm.fail("create_client_with_package", "boom", 500)
        _to_payment(workflow)
        await workflow.activate(make_card())
        with pytest.raises(InvalidTransitionError):
            workflow.retry_payment()
        workflow.dismiss()
        assert workflow.state == BookingState.CLOSED

    @pytest.mark.asyncio
    async def test_unreachable_gateway_after_token(self, config, tokenizer):
        workflow = BookingWorkflow(config, tokenizer, UnreachableGateway())
        _to_payment(workflow)
        await workflow.activate(make_card())
        assert workflow.step.phase == FailurePhase.CRM
        assert not workflow.step.retryable
        assert "help@superscooops.test" in workflow.step.message

    @pytest.mark.asyncio
    async def test_unexpected_crm_error_is_not_retryable(self, config, tokenizer, payments):
        service = SignupService(config, payments, CrashingCrm())
        workflow = BookingWorkflow(config, tokenizer, LocalSignupGateway(service))
        _to_payment(workflow)
        assert await workflow.activate(make_card()) == BookingOutcome.FAILED
        assert workflow.step.phase == FailurePhase.CRM
        assert not workflow.step.retryable
        assert len(payments.customers) == 1

    @pytest.mark.asyncio
    async def test_backlink_crash_still_succeeds(self, config, tokenizer, crm):
        payments = BrokenLinkPayments(price_ids=SANDBOX_PRICE_IDS)
        service = SignupService(config, payments, crm)
        workflow = BookingWorkflow(config, tokenizer, LocalSignupGateway(service))
        _to_payment(workflow)
        assert await workflow.activate(make_card()) == BookingOutcome.SUCCEEDED
        assert workflow.step.client_id in crm.clients

    @pytest.mark.asyncio
    async def test_server_error_without_phase_is_not_retryable(self, config, tokenizer):
        reply = GatewayReply(500, SweepClientResponse(success=False, error="Internal Server Error"))
        workflow = BookingWorkflow(config, tokenizer, StaticGateway(reply))
        _to_payment(workflow)
        await workflow.activate(make_card())
        assert workflow.step.phase == FailurePhase.CRM
        assert not workflow.step.retryable
        assert "payment method was accepted" in workflow.step.message

    @pytest.mark.asyncio
    async def test_bad_request_without_phase_stays_retryable(self, config, tokenizer):
        reply = GatewayReply(400, SweepClientResponse(success=False, error="Missing required fields: zip"))
        workflow = BookingWorkflow(config, tokenizer, StaticGateway(reply))
        _to_payment(workflow)
        await workflow.activate(make_card())
        assert workflow.step.phase == FailurePhase.PAYMENT
        assert workflow.step.retryable

    @pytest.mark.asyncio
    async def test_gateway_crash_does_not_hang_commit(self, config, tokenizer):
        workflow = BookingWorkflow(config, tokenizer, CrashingGateway())
        _to_payment(workflow)
        assert await workflow.activate(make_card()) == BookingOutcome.FAILED
        assert workflow.state == BookingState.FAILED
        assert workflow.step.phase == FailurePhase.CRM
        assert not workflow.step.retryable


class TestLeadExit:
    @pytest.mark.asyncio
    async def test_lead_from_contact_step(self, workflow, tokenizer, payments, crm):
        fill_contact(workflow)
        workflow.request_quote()
        assert await workflow.submit_lead("Do you scoop in the rain?") is True
        assert workflow.step == ClosedStep(reason="lead")
        assert tokenizer.tokens == []
        assert payments.calls == []
        assert crm.calls == ["create_lead"]
        assert "Question: Do you scoop in the rain?" in crm.leads[0]["comment"]

    @pytest.mark.asyncio
    async def test_lead_needs_email(self, workflow, crm):
        workflow.set_field("zip", "92618")
        workflow.set_field("phone", "9495550199")
        workflow.request_quote()
        with pytest.raises(ValidationFailed) as exc_info:
            await workflow.submit_lead()
        assert exc_info.value.missing == ["email"]
        assert crm.calls == []

    @pytest.mark.asyncio
    async def test_lead_rejected_stays_on_contact(self, workflow, crm):
        crm.fail("create_lead", "Organization not found", 404)
        fill_contact(workflow)
        workflow.request_quote()
        assert await workflow.submit_lead() is False
        assert workflow.state == BookingState.CONTACT_COLLECTION
        assert "Organization not found" in workflow.step.error


class TestHandOff:
    @pytest.mark.asyncio
    async def test_redirect_url(self, workflow):
        _to_payment(workflow)
        await workflow.activate(make_card())
        assert await workflow.hand_off() == "https://superscooops.test/success.html"

    @pytest.mark.asyncio
    async def test_nothing_to_hand_off(self, workflow):
        with pytest.raises(InvalidTransitionError):
            await workflow.hand_off()
