"""
Booking widget session: quote, contact, payment, then the two-phase commit.

One BookingWorkflow instance lives for one modal session. Its current
step is always one of the tagged step records below, so a caller can only
read the fields that are valid for the step it is on.

Usage:
    workflow = BookingWorkflow(config, tokenizer=StripeTokenizer(...),
                               gateway=HttpSignupGateway(...))
    workflow.set_frequency("2x-weekly")
    workflow.set_field("zip", "92618"); workflow.set_field("phone", "9495550142")
    workflow.request_quote()
    ...
    outcome = await workflow.activate(card)
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Union

from scooops.config import AppConfig
from scooops.errors import PaymentError, UpstreamError, ValidationFailed
from scooops.pricing.quote_engine import QuoteEngine
from scooops.schemas.booking_schema import CreateSweepClientRequest
from scooops.schemas.customer_schema import ContactDetails, PaymentCard, ServiceAddress
from scooops.schemas.outcome_schema import BookingOutcome, FailurePhase
from scooops.schemas.pricing_schema import QuoteResult
from scooops.services.messages import (
    PAYMENT_FALLBACK,
    crm_failure_message,
    payment_failure_message,
)
from scooops.workflow.collaborators import GatewayReply, PaymentTokenizer, SignupGateway
from scooops.workflow.contact_form import (
    CONTACT_FIELDS,
    ContactForm,
    check_fields,
    validate_billing_address,
)
from scooops.workflow.state_machine import (
    BookingState,
    BookingStateMachine,
    BookingTrigger,
    InvalidTransitionError,
)

logger = logging.getLogger(__name__)

DEFAULT_FREQUENCY = "weekly"

_EDITABLE_STATES = frozenset({BookingState.QUOTING, BookingState.CONTACT_COLLECTION})
_LEAD_FIELDS = tuple(d for d in CONTACT_FIELDS if d.name in ("email", "phone"))


# --------------------------------------------------------------------------- #
# Per-state step records
# --------------------------------------------------------------------------- #

@dataclass(frozen=True)
class QuotingStep:
    quote: QuoteResult


@dataclass(frozen=True)
class ContactStep:
    quote: QuoteResult
    error: Optional[str] = None


@dataclass(frozen=True)
class PaymentStep:
    quote: QuoteResult
    contact: ContactDetails
    error: Optional[str] = None


@dataclass(frozen=True)
class CommittingStep:
    quote: QuoteResult
    contact: ContactDetails


@dataclass(frozen=True)
class SucceededStep:
    client_id: Optional[str]
    customer_id: Optional[str]
    subscription_id: Optional[str]
    redirect_url: str


@dataclass(frozen=True)
class FailedStep:
    phase: FailurePhase
    message: str
    retryable: bool


@dataclass(frozen=True)
class ClosedStep:
    reason: str


WorkflowStep = Union[
    QuotingStep, ContactStep, PaymentStep, CommittingStep, SucceededStep, FailedStep, ClosedStep
]


class BookingWorkflow:
    """Drives one booking session through the state machine."""

    def __init__(
        self,
        config: AppConfig,
        tokenizer: PaymentTokenizer,
        gateway: SignupGateway,
        engine: Optional[QuoteEngine] = None,
    ) -> None:
        self._config = config
        self._tokenizer = tokenizer
        self._gateway = gateway
        self._engine = engine or QuoteEngine(config.pricing)
        self._sm = BookingStateMachine()

        self.dogs = 1
        self.frequency_id = DEFAULT_FREQUENCY
        self.deodorizer_id: Optional[str] = None
        self.plan_id: Optional[str] = None
        self.form = ContactForm(self._engine.required_service_days(self.frequency_id))
        self.billing_same_as_service = True
        self.billing_values: dict[str, str] = {}
        self._contact: Optional[ContactDetails] = None
        self._step: WorkflowStep = QuotingStep(quote=self.quote())

    # ------------------------------------------------------------------ #
    # Read-only views
    # ------------------------------------------------------------------ #

    @property
    def state(self) -> BookingState:
        return self._sm.current_state

    @property
    def step(self) -> WorkflowStep:
        return self._step

    @property
    def outcome(self) -> BookingOutcome:
        if self.state == BookingState.SUCCEEDED:
            return BookingOutcome.SUCCEEDED
        if self.state == BookingState.FAILED:
            return BookingOutcome.FAILED
        return BookingOutcome.PENDING

    def state_trace(self) -> list[str]:
        return self._sm.get_state_trace()

    # ------------------------------------------------------------------ #
    # Selection (drives the quote)
    # ------------------------------------------------------------------ #

    def _require_editable(self, action: str) -> None:
        if self.state not in _EDITABLE_STATES:
            raise InvalidTransitionError(f"Cannot {action} while '{self.state.value}'")

    def _refresh(self) -> QuoteResult:
        result = self.quote()
        if self.state == BookingState.QUOTING:
            self._step = QuotingStep(quote=result)
        elif self.state == BookingState.CONTACT_COLLECTION:
            self._step = ContactStep(quote=result)
        return result

    def quote(self) -> QuoteResult:
        """Price the current selection."""
        return self._engine.quote(self.dogs, self.frequency_id, self.deodorizer_id)

    def set_dogs(self, dogs: int) -> QuoteResult:
        self._require_editable("change the number of dogs")
        self.dogs = min(max(1, int(dogs)), self._config.business.max_dogs)
        return self._refresh()

    def set_frequency(self, frequency_id: str) -> QuoteResult:
        """
        Switch visit frequency.

        Resizes the service-day list and drops a deodorizer the new
        frequency does not offer before re-quoting.

        Raises:
            UnknownOptionError: If the frequency id is unknown.
        """
        self._require_editable("change frequency")
        freq = self._config.pricing.frequency(frequency_id)
        self.frequency_id = freq.id
        if self.deodorizer_id:
            option = self._config.pricing.deodorizer(self.deodorizer_id)
            if not option.supports(freq.id):
                logger.debug("Clearing deodorizer '%s' for '%s'", option.id, freq.id)
                self.deodorizer_id = None
        self.form.resize_service_days(self._engine.required_service_days(freq.id))
        if self.plan_id and self._config.pricing.plan(self.plan_id).frequency_id != freq.id:
            self.plan_id = None
        return self._refresh()

    def select_plan(self, plan_id: str) -> QuoteResult:
        """Pick a marketing plan card; sets its frequency."""
        plan = self._config.pricing.plan(plan_id)
        result = self.set_frequency(plan.frequency_id)
        self.plan_id = plan.id
        return result

    def set_deodorizer(self, deodorizer_id: Optional[str]) -> QuoteResult:
        """
        Raises:
            UnknownOptionError: If the deodorizer id is unknown.
            ValidationFailed: If it is not offered with the current frequency.
        """
        self._require_editable("change the deodorizer")
        if deodorizer_id:
            option = self._config.pricing.deodorizer(deodorizer_id)
            if not option.supports(self.frequency_id):
                freq = self._config.pricing.frequency(self.frequency_id)
                raise ValidationFailed(
                    invalid=[f"{option.label} is not available with {freq.label} service"]
                )
        self.deodorizer_id = deodorizer_id or None
        return self._refresh()

    # ------------------------------------------------------------------ #
    # Contact and billing fields
    # ------------------------------------------------------------------ #

    def set_field(self, name: str, value: str) -> None:
        self._require_editable(f"change {name}")
        self.form.set_field(name, value)

    def set_service_day(self, index: int, day: Optional[str]) -> None:
        self._require_editable("change service days")
        self.form.set_service_day(index, day)

    def set_billing_address(
        self,
        same_as_service: bool,
        street: str = "",
        city: str = "",
        state: str = "",
        zip_code: str = "",
    ) -> None:
        self.billing_same_as_service = same_as_service
        self.billing_values = {"street": street, "city": city, "state": state, "zip": zip_code}

    # ------------------------------------------------------------------ #
    # Transitions
    # ------------------------------------------------------------------ #

    def request_quote(self) -> ContactStep:
        """
        Quoting -> ContactCollection. Only ZIP code and phone must be present.

        Raises:
            ValidationFailed: Listing the missing quote-stage fields.
        """
        self._sm.require(BookingTrigger.QUOTE_REQUESTED)
        missing = self.form.missing_quote_fields()
        if missing:
            raise ValidationFailed(missing)
        self._sm.transition(BookingTrigger.QUOTE_REQUESTED)
        self._step = ContactStep(quote=self.quote())
        return self._step

    def continue_to_payment(self) -> PaymentStep:
        """
        ContactCollection -> PaymentCollection once every contact field is valid.

        On failure the workflow stays on the contact step with one aggregated
        message and the ValidationFailed is re-raised.
        """
        self._sm.require(BookingTrigger.CONTACT_VALID)
        try:
            contact = self.form.validate()
        except ValidationFailed as exc:
            self._step = ContactStep(quote=self.quote(), error=exc.message)
            raise
        self._contact = contact
        self._sm.transition(BookingTrigger.CONTACT_VALID)
        self._step = PaymentStep(quote=self.quote(), contact=contact)
        return self._step

    def go_back(self) -> WorkflowStep:
        self._sm.transition(BookingTrigger.GO_BACK)
        self._contact = None
        if self.state == BookingState.QUOTING:
            self._step = QuotingStep(quote=self.quote())
        else:
            self._step = ContactStep(quote=self.quote())
        return self._step

    def dismiss(self) -> ClosedStep:
        """Close the session without any remote call."""
        self._sm.transition(BookingTrigger.DISMISS)
        self._step = ClosedStep(reason="dismissed")
        return self._step

    def retry_payment(self) -> PaymentStep:
        """Failed (payment phase only) -> PaymentCollection."""
        contact = self._validated_contact("retry payment")
        self._sm.transition(BookingTrigger.RETRY_PAYMENT)
        self._step = PaymentStep(quote=self.quote(), contact=contact)
        return self._step

    async def submit_lead(self, question: str = "") -> bool:
        """
        Lead-only exit from the contact step. Needs email and phone; the
        payment tokenizer is never used.

        Returns True and closes the session when the CRM accepted the lead.

        Raises:
            ValidationFailed: Email or phone is missing or malformed.
        """
        self._sm.require(BookingTrigger.LEAD_SUBMITTED)
        missing, invalid, _ = check_fields(_LEAD_FIELDS, self.form.values)
        if missing or invalid:
            raise ValidationFailed(missing, invalid)

        body = self._request_body(question=question or None)
        try:
            reply = await self._gateway.submit_lead(body)
        except UpstreamError as exc:
            self._step = ContactStep(quote=self.quote(), error=exc.message)
            return False
        if not reply.body.success:
            self._step = ContactStep(
                quote=self.quote(), error=reply.body.error or "We couldn't send your question."
            )
            return False

        self._sm.transition(BookingTrigger.LEAD_SUBMITTED)
        self._step = ClosedStep(reason="lead")
        logger.info("Lead submitted from contact step")
        return True

    async def activate(self, card: PaymentCard) -> BookingOutcome:
        """
        Commit the booking: tokenize the card, then register through the gateway.

        Ignored (no remote calls) unless the workflow is on the payment step,
        so repeated clicks while committing or after success are harmless.

        Raises:
            ValidationFailed: A distinct billing address is incomplete.
        """
        if self.state != BookingState.PAYMENT_COLLECTION:
            logger.debug("activate ignored in state '%s'", self.state.value)
            return self.outcome
        contact = self._validated_contact("activate")

        try:
            billing = validate_billing_address(
                self.billing_same_as_service, contact.address, self.billing_values
            )
        except ValidationFailed as exc:
            self._step = PaymentStep(quote=self.quote(), contact=contact, error=exc.message)
            raise

        self._sm.transition(BookingTrigger.ACTIVATE)
        self._step = CommittingStep(quote=self.quote(), contact=contact)

        try:
            token = await self._tokenizer.tokenize(card, billing)
        except PaymentError as exc:
            logger.info("Tokenization refused: %s", exc.message)
            return self._fail(FailurePhase.PAYMENT, payment_failure_message(exc.message))
        except Exception:
            logger.exception("Tokenization failed unexpectedly")
            return self._fail(FailurePhase.PAYMENT, PAYMENT_FALLBACK)

        body = self._request_body(payment_token=token, billing=billing)
        try:
            reply = await self._gateway.register(body)
        except UpstreamError as exc:
            # the token was issued, so the server may have charged already
            logger.error("Signup outcome unknown after tokenization: %s", exc.message)
            return self._fail(FailurePhase.CRM, self._support_message(exc.message))
        except Exception:
            logger.exception("Signup outcome unknown after tokenization")
            return self._fail(FailurePhase.CRM, self._support_message(""))
        return self._apply_reply(reply)

    async def hand_off(self) -> str:
        """Wait the configured delay on the success screen, then return the redirect URL."""
        if not isinstance(self._step, SucceededStep):
            raise InvalidTransitionError(f"Nothing to hand off in state '{self.state.value}'")
        await asyncio.sleep(self._config.business.success_redirect_delay_sec)
        return self._step.redirect_url

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _support_message(self, detail: str) -> str:
        return crm_failure_message(
            detail, self._config.business.support_email, self._config.business.support_phone
        )

    def _apply_reply(self, reply: GatewayReply) -> BookingOutcome:
        body = reply.body
        if body.success:
            self._sm.transition(BookingTrigger.COMMIT_SUCCEEDED)
            self._step = SucceededStep(
                client_id=body.client_id,
                customer_id=body.customer_id,
                subscription_id=body.subscription_id,
                redirect_url=f"{self._config.business.site_url.rstrip('/')}/success.html",
            )
            logger.info("Booking committed: client=%s", body.client_id)
            return self.outcome
        if body.phase == FailurePhase.CRM.value:
            return self._fail(FailurePhase.CRM, body.error or self._support_message(""))
        if body.phase is None and reply.status_code >= 500:
            # server error with no phase: the charge may or may not have happened
            logger.error("Signup outcome unknown (HTTP %s): %s", reply.status_code, body.error)
            return self._fail(FailurePhase.CRM, self._support_message(""))
        return self._fail(FailurePhase.PAYMENT, body.error or PAYMENT_FALLBACK)

    def _validated_contact(self, action: str) -> ContactDetails:
        if self._contact is None:
            raise InvalidTransitionError(
                f"Cannot {action} before contact details are validated"
            )
        return self._contact

    def _fail(self, phase: FailurePhase, message: str) -> BookingOutcome:
        self._sm.retry_allowed = phase == FailurePhase.PAYMENT
        self._sm.transition(BookingTrigger.COMMIT_FAILED)
        self._step = FailedStep(phase=phase, message=message, retryable=self._sm.retry_allowed)
        logger.warning("Booking failed in %s phase: %s", phase.value, message)
        return self.outcome

    def _request_body(
        self,
        payment_token: Optional[str] = None,
        billing: Optional[ServiceAddress] = None,
        question: Optional[str] = None,
    ) -> CreateSweepClientRequest:
        if self._contact is not None:
            contact = self._contact
            values = {
                "name": contact.name,
                "email": contact.email,
                "phone": contact.phone,
                "street": contact.address.street,
                "city": contact.address.city,
                "state": contact.address.state,
                "zip": contact.address.zip,
            }
            days = list(contact.service_days)
        else:
            values = self.form.values
            days = [d for d in self.form.service_days if d]
        plan_name = self._config.pricing.plan(self.plan_id).name if self.plan_id else None
        separate_billing = billing is not None and not self.billing_same_as_service
        return CreateSweepClientRequest(
            name=values.get("name"),
            email=values.get("email"),
            phone=values.get("phone"),
            address=values.get("street"),
            city=values.get("city"),
            state=values.get("state"),
            zip=values.get("zip"),
            plan_id=self.plan_id,
            plan_name=plan_name,
            dogs=self.dogs,
            frequency_id=self.frequency_id,
            preferred_day=days[0] if days else None,
            preferred_days=days,
            deodorizer=self.deodorizer_id,
            total_price=f"{self.quote().price_per_cleanup:.2f}",
            billing_same_as_service=not separate_billing,
            billing_address=billing.street if separate_billing else None,
            billing_city=billing.city if separate_billing else None,
            billing_state=billing.state if separate_billing else None,
            billing_zip=billing.zip if separate_billing else None,
            stripe_token=payment_token,
            is_lead_only=payment_token is None,
            question=question,
        )
