"""Service plans, frequencies, add-ons and quote value objects."""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

from scooops.errors import UnknownOptionError


@dataclass(frozen=True)
class ServicePlan:
    """A named offering shown on the pricing cards."""

    id: str
    name: str
    price: Decimal
    frequency_id: str
    frequency_label: str
    description: str
    features: tuple[str, ...] = ()
    color: str = ""
    badge: Optional[str] = None


@dataclass(frozen=True)
class FrequencySelection:
    """
    A visit cadence with its pricing inputs.

    ``period_weeks`` is the length of the billing period in weeks, or None
    for a single non-recurring visit.
    """

    id: str
    label: str
    visits_per_period: int
    period_weeks: Optional[int]
    base_per_cleanup: Decimal
    factor: Decimal
    first_cleanup_free: bool
    recurring: bool
    crm_frequency: str

    @property
    def visits_per_week(self) -> Optional[Decimal]:
        if not self.period_weeks:
            return None
        return Decimal(self.visits_per_period) / Decimal(self.period_weeks)

    @property
    def period_label(self) -> str:
        if self.period_weeks is None:
            return "visit"
        if self.period_weeks == 1:
            return "week"
        return f"{self.period_weeks} weeks"


@dataclass(frozen=True)
class DeodorizerOption:
    """Yard deodorizer add-on, priced per application."""

    id: str
    label: str
    price_per_application: Decimal
    visits_per_week: Decimal
    frequency_ids: frozenset[str] = frozenset()

    def supports(self, frequency_id: str) -> bool:
        return frequency_id in self.frequency_ids


@dataclass(frozen=True)
class RateTable:
    """Immutable pricing configuration injected into the quote engine."""

    plans: tuple[ServicePlan, ...]
    frequencies: tuple[FrequencySelection, ...]
    deodorizers: tuple[DeodorizerOption, ...]
    extra_dog_per_cleanup: Decimal

    def frequency(self, frequency_id: str) -> FrequencySelection:
        for freq in self.frequencies:
            if freq.id == frequency_id:
                return freq
        valid = [f.id for f in self.frequencies]
        raise UnknownOptionError(f"Unknown frequency '{frequency_id}'. Valid: {valid}")

    def deodorizer(self, deodorizer_id: str) -> DeodorizerOption:
        for option in self.deodorizers:
            if option.id == deodorizer_id:
                return option
        valid = [d.id for d in self.deodorizers]
        raise UnknownOptionError(f"Unknown deodorizer '{deodorizer_id}'. Valid: {valid}")

    def plan(self, plan_id: str) -> ServicePlan:
        for plan in self.plans:
            if plan.id == plan_id:
                return plan
        valid = [p.id for p in self.plans]
        raise UnknownOptionError(f"Unknown plan '{plan_id}'. Valid: {valid}")

    def deodorizers_for(self, frequency_id: str) -> list[DeodorizerOption]:
        return [d for d in self.deodorizers if d.supports(frequency_id)]

    def validate(self) -> None:
        """Check internal consistency; raises ValueError on the first problem."""
        freq_ids = {f.id for f in self.frequencies}
        if len(freq_ids) != len(self.frequencies):
            raise ValueError("Duplicate frequency ids in rate table")
        if self.extra_dog_per_cleanup < 0:
            raise ValueError("Extra dog rate must be >= 0")
        for freq in self.frequencies:
            if freq.visits_per_period < 1:
                raise ValueError(f"Frequency '{freq.id}' must have at least one visit per period")
            if freq.factor <= 0:
                raise ValueError(f"Frequency '{freq.id}' factor must be > 0")
            if freq.recurring and not freq.period_weeks:
                raise ValueError(f"Recurring frequency '{freq.id}' needs a period length")
        for option in self.deodorizers:
            unknown = option.frequency_ids - freq_ids
            if unknown:
                raise ValueError(
                    f"Deodorizer '{option.id}' references unknown frequencies: {sorted(unknown)}"
                )
        for plan in self.plans:
            if plan.frequency_id not in freq_ids:
                raise ValueError(f"Plan '{plan.id}' references unknown frequency '{plan.frequency_id}'")


@dataclass(frozen=True)
class QuoteRequest:
    """Current selection in a booking session."""

    dogs: int
    frequency_id: str
    deodorizer_id: Optional[str] = None


@dataclass(frozen=True)
class QuoteResult:
    """Derived price for a QuoteRequest. Money values are rounded to the cent."""

    request: QuoteRequest
    frequency_label: str
    price_per_cleanup: Decimal
    period_total: Decimal
    cleanups_per_period: int
    period_label: str
    first_cleanup_free: bool
    line_items: tuple[tuple[str, Decimal], ...] = field(default_factory=tuple)

    def as_dict(self) -> dict:
        return {
            "dogs": self.request.dogs,
            "frequency": self.request.frequency_id,
            "frequencyLabel": self.frequency_label,
            "deodorizer": self.request.deodorizer_id,
            "pricePerCleanup": f"{self.price_per_cleanup:.2f}",
            "periodTotal": f"{self.period_total:.2f}",
            "cleanupsPerPeriod": self.cleanups_per_period,
            "period": self.period_label,
            "firstCleanupFree": self.first_cleanup_free,
            "lineItems": [
                {"label": label, "amount": f"{amount:.2f}"} for label, amount in self.line_items
            ],
        }
