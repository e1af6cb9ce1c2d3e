"""
Two-phase signup: payment processor first, then the CRM.

Phase A creates the billing customer (and, for recurring frequencies, a
subscription). Phase B registers the client in the CRM and only runs once
Phase A has returned a PaymentResult. A CRM failure after Phase A is
reported differently from a payment failure because the customer's card
is already on file and retrying could double-charge.

Usage:
    service = SignupService(config, payments=StripeClient(config.stripe),
                            crm=SweepAndGoClient(config.crm))
    outcome = await service.register(body)
"""

from datetime import date, datetime, time, timezone
from typing import Any, Optional

from scooops.config import AppConfig
from scooops.errors import ConfigurationError, CrmError, PaymentError, UnknownOptionError, ValidationFailed
from scooops.integrations.types import CrmProvider, PaymentProvider
from scooops.logging_context import get_request_logger
from scooops.pricing.quote_engine import QuoteEngine
from scooops.schemas.booking_schema import (
    CreateSweepClientRequest,
    SubmitBookingRequest,
    SweepClientResponse,
)
from scooops.schemas.customer_schema import CustomerRecord, ServiceAddress
from scooops.schemas.outcome_schema import (
    BookingOutcome,
    CrmResult,
    FailurePhase,
    PaymentResult,
    SignupOutcome,
)
from scooops.schemas.pricing_schema import FrequencySelection, ServicePlan
from scooops.services.messages import (
    CONFIGURATION_MESSAGE,
    crm_failure_message,
    payment_failure_message,
)
from scooops.utils import is_blank, next_weekday, split_name
from scooops.workflow.contact_form import (
    CONTACT_FIELDS,
    ContactForm,
    check_fields,
    validate_billing_address,
)

logger = get_request_logger(__name__)

DEFAULT_FREQUENCY = "weekly"
DEFAULT_SERVICE_DAY = "monday"
BILLING_ANCHOR_HOUR_UTC = 12

LEAD_FIELDS = tuple(d for d in CONTACT_FIELDS if d.name in ("email", "phone"))


def outcome_response(outcome: SignupOutcome) -> SweepClientResponse:
    """Render a SignupOutcome as the create-sweep-client reply body."""
    return SweepClientResponse(
        success=outcome.succeeded,
        mode=outcome.mode,
        client_id=outcome.crm.client_id if outcome.crm else None,
        customer_id=outcome.payment.customer_id if outcome.payment else None,
        subscription_id=outcome.payment.subscription_id if outcome.payment else None,
        phase=outcome.phase.value if outcome.phase else None,
        error=None if outcome.succeeded else outcome.message,
        data=outcome.data,
    )


class SignupService:
    """Validates signup requests and runs the two remote phases in order."""

    def __init__(
        self,
        config: AppConfig,
        payments: PaymentProvider,
        crm: CrmProvider,
        engine: Optional[QuoteEngine] = None,
    ) -> None:
        self._config = config
        self._payments = payments
        self._crm = crm
        self._engine = engine or QuoteEngine(config.pricing)

    async def handle(
        self, body: CreateSweepClientRequest, idempotency_key: Optional[str] = None
    ) -> tuple[int, SweepClientResponse]:
        """Run a create-sweep-client request and map it to (status code, reply)."""
        try:
            if body.is_lead_only:
                outcome = await self.submit_lead(body)
            else:
                outcome = await self.register(body, idempotency_key=idempotency_key)
        except ValidationFailed as exc:
            return 400, SweepClientResponse(success=False, error=exc.message)
        except ConfigurationError as exc:
            logger.error("Signup misconfigured: %s", exc)
            return 500, SweepClientResponse(success=False, error=CONFIGURATION_MESSAGE)
        return outcome.status_code, outcome_response(outcome)

    # ------------------------------------------------------------------ #
    # Registration (payment + CRM)
    # ------------------------------------------------------------------ #

    async def register(
        self,
        body: CreateSweepClientRequest,
        today: Optional[date] = None,
        idempotency_key: Optional[str] = None,
    ) -> SignupOutcome:
        """
        Run the full signup for a paying customer.

        Raises:
            ValidationFailed: Request is incomplete; nothing remote was called.
            ConfigurationError: A credential or price id is missing; nothing remote was called.
        """
        record = self.build_record(body)
        frequency = self._config.pricing.frequency(record.frequency_id)
        items = self._subscription_items(record, frequency)
        self._require_configured()

        payment = await self._payment_phase(
            record, frequency, items, today or date.today(), idempotency_key
        )
        if isinstance(payment, SignupOutcome):
            return payment

        # card is on file from here on: any failure is a CRM-phase failure
        try:
            crm = await self._crm_phase(record, frequency, body, payment)
        except Exception:
            logger.exception(
                "Unexpected error after payment succeeded (customer=%s)", payment.customer_id
            )
            return self._crm_failure(payment, "", 502)
        if isinstance(crm, SignupOutcome):
            return crm

        await self._link_accounts(payment.customer_id, crm.client_id)
        logger.info(
            "Signup complete: customer=%s subscription=%s client=%s",
            payment.customer_id, payment.subscription_id, crm.client_id,
        )
        return SignupOutcome(
            status=BookingOutcome.SUCCEEDED,
            mode="registration",
            payment=payment,
            crm=crm,
            data=crm.raw,
        )

    def build_record(self, body: CreateSweepClientRequest) -> CustomerRecord:
        """Validate a registration body into a CustomerRecord, reporting every problem at once."""
        missing: list[str] = []
        invalid: list[str] = []

        frequency_id = (body.frequency_id or DEFAULT_FREQUENCY).strip()
        required_days = 1
        try:
            frequency = self._config.pricing.frequency(frequency_id)
            required_days = self._engine.required_service_days(frequency.id)
        except UnknownOptionError:
            frequency = None
            invalid.append(f"Unknown service frequency '{frequency_id}'")

        days = body.service_days()
        if not days and required_days == 1:
            days = [DEFAULT_SERVICE_DAY]

        form = ContactForm(required_days=required_days)
        for name, value in (
            ("name", body.name), ("email", body.email), ("phone", body.phone),
            ("street", body.address), ("city", body.city), ("state", body.state), ("zip", body.zip),
        ):
            if value is not None:
                form.set_field(name, value)
        for index, day in enumerate(days[:required_days]):
            form.set_service_day(index, day)
        if len(days) > required_days:
            invalid.append(f"This plan takes {required_days} service day(s), got {len(days)}")

        contact = None
        try:
            contact = form.validate()
        except ValidationFailed as exc:
            missing.extend(exc.missing)
            invalid.extend(exc.invalid)

        deodorizer_id = body.deodorizer or None
        if deodorizer_id and frequency is not None:
            try:
                option = self._config.pricing.deodorizer(deodorizer_id)
                if not option.supports(frequency.id):
                    invalid.append(f"{option.label} is not available with {frequency.label} service")
            except UnknownOptionError:
                invalid.append(f"Unknown deodorizer option '{deodorizer_id}'")

        if is_blank(body.stripe_token):
            invalid.append("Stripe token is required for client registration")

        billing: Optional[ServiceAddress] = None
        if contact is not None:
            try:
                billing = validate_billing_address(
                    body.billing_same_as_service,
                    contact.address,
                    {
                        "street": body.billing_address,
                        "city": body.billing_city,
                        "state": body.billing_state,
                        "zip": body.billing_zip,
                    },
                )
            except ValidationFailed as exc:
                missing.extend(exc.missing)
                invalid.extend(exc.invalid)

        if missing or invalid or contact is None or frequency is None or billing is None:
            raise ValidationFailed(missing, invalid)

        return CustomerRecord(
            contact=contact,
            billing_address=billing,
            payment_token=str(body.stripe_token).strip(),
            dogs=max(1, body.dogs or 1),
            frequency_id=frequency.id,
            deodorizer_id=deodorizer_id,
            plan_id=body.plan_id,
        )

    def _require_configured(self) -> None:
        if not self._payments.configured:
            logger.error("Payment processor secret key is missing")
            raise ConfigurationError("STRIPE_SECRET_KEY is not configured")
        if not self._crm.configured:
            logger.error("Sweep&GO API key is missing")
            raise ConfigurationError("SWEEP_AND_GO_API_KEY is not configured")

    def _price(self, catalog_id: str) -> str:
        price_id = self._payments.price_id(catalog_id)
        if not price_id:
            logger.error("Missing Stripe price id for '%s'", catalog_id)
            raise ConfigurationError(f"Missing price id for '{catalog_id}'")
        return price_id

    def _subscription_items(
        self, record: CustomerRecord, frequency: FrequencySelection
    ) -> list[dict[str, Any]]:
        """Line items for the subscription; empty for non-recurring service."""
        if not frequency.recurring:
            return []
        items: list[dict[str, Any]] = [{"price": self._price(frequency.id), "quantity": 1}]
        if record.dogs > 1:
            items.append({"price": self._price("extra-dog"), "quantity": record.dogs - 1})
        if record.deodorizer_id:
            items.append({"price": self._price(record.deodorizer_id), "quantity": 1})
        return items

    def _metadata(self, record: CustomerRecord) -> dict[str, str]:
        return {
            "plan": record.plan_id or "",
            "frequency": record.frequency_id,
            "dogs": str(record.dogs),
            "deodorizer": record.deodorizer_id or "none",
            "service_days": ",".join(record.contact.service_days),
            "source": "website",
        }

    async def _payment_phase(
        self,
        record: CustomerRecord,
        frequency: FrequencySelection,
        items: list[dict[str, Any]],
        today: date,
        idempotency_key: Optional[str],
    ) -> "PaymentResult | SignupOutcome":
        contact = record.contact
        metadata = self._metadata(record)
        try:
            customer_id = await self._payments.create_customer(
                email=contact.email,
                name=contact.name,
                phone=contact.phone,
                billing_address=record.billing_address,
                payment_method=record.payment_token,
                metadata=metadata,
                idempotency_key=f"{idempotency_key}-customer" if idempotency_key else None,
            )
            subscription_id = None
            if frequency.recurring:
                anchor_day = next_weekday(today, contact.service_days[0])
                anchor = datetime.combine(
                    anchor_day, time(hour=BILLING_ANCHOR_HOUR_UTC), tzinfo=timezone.utc
                )
                promotion = (
                    self._config.stripe.promotion_code or None
                    if frequency.first_cleanup_free
                    else None
                )
                subscription_id = await self._payments.create_subscription(
                    customer_id=customer_id,
                    items=items,
                    billing_anchor=anchor,
                    promotion_code=promotion,
                    default_payment_method=record.payment_token,
                    metadata=metadata,
                    idempotency_key=f"{idempotency_key}-subscription" if idempotency_key else None,
                )
        except PaymentError as exc:
            logger.warning("Payment phase failed (%s): %s", exc.status_code, exc.message)
            return SignupOutcome(
                status=BookingOutcome.FAILED,
                phase=FailurePhase.PAYMENT,
                message=payment_failure_message(exc.message),
                status_code=exc.status_code if exc.status_code and exc.status_code >= 400 else 402,
            )
        return PaymentResult(customer_id=customer_id, subscription_id=subscription_id)

    def _package(self, record: CustomerRecord, body: CreateSweepClientRequest) -> tuple[Optional[str], str]:
        plan: Optional[ServicePlan] = None
        if record.plan_id:
            try:
                plan = self._config.pricing.plan(record.plan_id)
            except UnknownOptionError:
                plan = None
        if plan is None:
            plan = next(
                (p for p in self._config.pricing.plans if p.frequency_id == record.frequency_id),
                None,
            )
        package_id = record.plan_id or (plan.id if plan else None)
        package_name = body.plan_name or (plan.name if plan else "Standard Plan")
        return package_id, package_name

    def _registration_comment(
        self, record: CustomerRecord, frequency: FrequencySelection, payment: PaymentResult
    ) -> str:
        quote = self._engine.quote(record.dogs, record.frequency_id, record.deodorizer_id)
        deodorizer_label = (
            record.deodorizer_id.replace("-deodorizer", "").upper() if record.deodorizer_id else "NONE"
        )
        days = ", ".join(day.capitalize() for day in record.contact.service_days)
        lines = []
        if frequency.first_cleanup_free:
            lines.append("PROMO: FREE FIRST CLEANING")
        lines.extend([
            f"Preferred Service Day: {days}",
            f"Dogs: {record.dogs}",
            f"Deodorizer Mission: {deodorizer_label}",
            f"Quoted: ${quote.price_per_cleanup:.2f} per cleanup",
            f"Stripe Customer: {payment.customer_id}",
        ])
        return "\n".join(lines)

    async def _crm_phase(
        self,
        record: CustomerRecord,
        frequency: FrequencySelection,
        body: CreateSweepClientRequest,
        payment: PaymentResult,
    ) -> "CrmResult | SignupOutcome":
        contact = record.contact
        first_name, last_name = split_name(contact.name)
        package_id, package_name = self._package(record, body)
        try:
            client_id, raw = await self._crm.create_client_with_package(
                first_name=first_name,
                last_name=last_name,
                email=contact.email,
                phone=contact.phone,
                address=contact.address.street,
                city=contact.address.city,
                state=contact.address.state,
                zip_code=contact.address.zip,
                clean_up_frequency=frequency.crm_frequency,
                credit_card_token=record.payment_token,
                package_id=package_id,
                package_name=package_name,
                comment=self._registration_comment(record, frequency, payment),
            )
        except CrmError as exc:
            logger.error(
                "CRM phase failed after payment succeeded (customer=%s, status=%s): %s",
                payment.customer_id, exc.status_code, exc.message,
            )
            return self._crm_failure(payment, exc.message, exc.status_code)
        return CrmResult(client_id=client_id, raw=raw)

    def _crm_failure(
        self, payment: PaymentResult, detail: str, status_code: Optional[int]
    ) -> SignupOutcome:
        return SignupOutcome(
            status=BookingOutcome.FAILED,
            payment=payment,
            phase=FailurePhase.CRM,
            message=crm_failure_message(
                detail,
                self._config.business.support_email,
                self._config.business.support_phone,
            ),
            status_code=status_code if status_code and status_code >= 400 else 502,
        )

    async def _link_accounts(self, customer_id: str, client_id: str) -> None:
        """Best-effort backlink from the billing customer to the CRM client."""
        if not client_id:
            return
        try:
            await self._payments.update_customer_metadata(customer_id, {"sweep_client_id": client_id})
        except Exception as exc:
            logger.warning("Could not link customer %s to client %s: %s", customer_id, client_id, exc)

    # ------------------------------------------------------------------ #
    # Lead-only paths (no payment)
    # ------------------------------------------------------------------ #

    async def submit_lead(self, body: CreateSweepClientRequest) -> SignupOutcome:
        """
        Send an inquiry to the CRM without touching the payment processor.

        Raises:
            ValidationFailed: Email or phone is missing.
            ConfigurationError: The CRM key is missing.
        """
        missing, invalid, cleaned = check_fields(
            LEAD_FIELDS, {"email": body.email, "phone": body.phone}
        )
        if missing or invalid:
            raise ValidationFailed(missing, invalid)
        if not self._crm.configured:
            logger.error("Sweep&GO API key is missing")
            raise ConfigurationError("SWEEP_AND_GO_API_KEY is not configured")

        days = ", ".join(body.service_days()) or "Not specified"
        comment_lines = [
            "QUESTION FROM RECRUIT:",
            f"Plan: {body.plan_name or body.plan_id or 'Not specified'}",
            f"Dogs: {body.dogs or 1}",
            f"Total: ${body.total_price if body.total_price is not None else 'N/A'}",
            f"Preferred Day: {days}",
        ]
        if body.question and body.question.strip():
            comment_lines.append(f"Question: {body.question.strip()}")

        try:
            result = await self._crm.create_lead(
                name=(body.name or "").strip(),
                email=cleaned["email"],
                phone=cleaned["phone"],
                address=(body.address or "").strip(),
                city=(body.city or "").strip(),
                state=(body.state or "").strip(),
                zip_code=(body.zip or "").strip(),
                comment="\n".join(comment_lines),
            )
        except CrmError as exc:
            return SignupOutcome(
                status=BookingOutcome.FAILED,
                mode="lead",
                phase=FailurePhase.CRM,
                message=f"Failed to create lead: {exc.message}" if exc.message else "Failed to create lead",
                status_code=exc.status_code if exc.status_code and exc.status_code >= 400 else 502,
            )
        logger.info("Lead captured")
        return SignupOutcome(status=BookingOutcome.SUCCEEDED, mode="lead", data=result)

    async def submit_booking(self, body: SubmitBookingRequest) -> dict[str, Any]:
        """
        Legacy lead submission used by the first booking form.

        Raises:
            ValidationFailed: name, email or address is missing.
            ConfigurationError: The CRM key is missing.
            CrmError: The CRM rejected the lead.
        """
        missing = [
            label for label, value in (
                ("name", body.name), ("email", body.email), ("address", body.address),
            )
            if is_blank(value)
        ]
        if missing:
            raise ValidationFailed(missing)
        if not self._crm.configured:
            logger.error("Sweep&GO API key is missing")
            raise ConfigurationError("SWEEP_AND_GO_API_KEY is not configured")

        logger.info("Attempting legacy CRM submission")
        deodorizer = "Yes" if body.deodorizer else "No"
        return await self._crm.create_lead(
            name=str(body.name).strip(),
            email=str(body.email).strip(),
            phone="",
            address=str(body.address).strip(),
            zip_code=(body.zip or "").strip(),
            comment=f"Plan: {body.plan_id} | Dogs: {body.dogs} | Deodorizer: {deodorizer}",
        )

