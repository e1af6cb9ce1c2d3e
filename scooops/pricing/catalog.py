"""Default plans, visit frequencies and add-ons with their rates."""

from decimal import Decimal

from scooops.schemas.pricing_schema import (
    DeodorizerOption,
    FrequencySelection,
    RateTable,
    ServicePlan,
)

EXTRA_DOG_PER_CLEANUP = Decimal("2.50")
DEODORIZER_PER_APPLICATION = Decimal("6.25")

FREQUENCIES: tuple[FrequencySelection, ...] = (
    FrequencySelection(
        id="3x-weekly", label="3x Weekly", visits_per_period=3, period_weeks=1,
        base_per_cleanup=Decimal("20.00"), factor=Decimal("0.90"),
        first_cleanup_free=True, recurring=True, crm_frequency="three_times_a_week",
    ),
    FrequencySelection(
        id="2x-weekly", label="2x Weekly", visits_per_period=2, period_weeks=1,
        base_per_cleanup=Decimal("20.00"), factor=Decimal("0.95"),
        first_cleanup_free=True, recurring=True, crm_frequency="two_times_a_week",
    ),
    FrequencySelection(
        id="weekly", label="Weekly", visits_per_period=1, period_weeks=1,
        base_per_cleanup=Decimal("20.00"), factor=Decimal("1.00"),
        first_cleanup_free=True, recurring=True, crm_frequency="once_a_week",
    ),
    FrequencySelection(
        id="bi-weekly", label="Bi-Weekly", visits_per_period=1, period_weeks=2,
        base_per_cleanup=Decimal("25.00"), factor=Decimal("1.00"),
        first_cleanup_free=False, recurring=True, crm_frequency="bi_weekly",
    ),
    FrequencySelection(
        id="monthly", label="Monthly", visits_per_period=1, period_weeks=4,
        base_per_cleanup=Decimal("35.00"), factor=Decimal("1.00"),
        first_cleanup_free=False, recurring=True, crm_frequency="every_four_weeks",
    ),
    FrequencySelection(
        id="one-time", label="One-Time", visits_per_period=1, period_weeks=None,
        base_per_cleanup=Decimal("45.00"), factor=Decimal("1.00"),
        first_cleanup_free=False, recurring=False, crm_frequency="one_time",
    ),
)

# (id, label, applications per week)
_DEODORIZER_CADENCES: tuple[tuple[str, str, Decimal], ...] = (
    ("3x-weekly-deodorizer", "Deodorizer 3x Weekly", Decimal("3")),
    ("2x-weekly-deodorizer", "Deodorizer 2x Weekly", Decimal("2")),
    ("weekly-deodorizer", "Deodorizer Weekly", Decimal("1")),
    ("bi-weekly-deodorizer", "Deodorizer Bi-Weekly", Decimal("0.5")),
    ("monthly-deodorizer", "Deodorizer Monthly", Decimal("0.25")),
)


def _build_deodorizers(
    frequencies: tuple[FrequencySelection, ...],
) -> tuple[DeodorizerOption, ...]:
    """A deodorizer is offered with every recurring frequency at least as frequent as itself."""
    options = []
    for option_id, label, per_week in _DEODORIZER_CADENCES:
        eligible = frozenset(
            f.id for f in frequencies
            if f.visits_per_week is not None and f.visits_per_week >= per_week
        )
        options.append(DeodorizerOption(
            id=option_id,
            label=label,
            price_per_application=DEODORIZER_PER_APPLICATION,
            visits_per_week=per_week,
            frequency_ids=eligible,
        ))
    return tuple(options)


DEODORIZERS: tuple[DeodorizerOption, ...] = _build_deodorizers(FREQUENCIES)

PLANS: tuple[ServicePlan, ...] = (
    ServicePlan(
        id="sidekick",
        name="The Sidekick Plan",
        price=Decimal("20"),
        frequency_id="weekly",
        frequency_label="1x per week cleanup",
        description="Perfect for the Lone Wolf",
        features=(
            "1x weekly mission",
            "Perfect for the Lone Wolf",
            "Text alert when secured",
            "Free First Cleanup!",
        ),
        color="#28A745",
    ),
    ServicePlan(
        id="hero",
        name="The Hero Plan",
        price=Decimal("40"),
        frequency_id="2x-weekly",
        frequency_label="2x per week cleanup",
        description="Our Most Popular Defense",
        features=(
            "2x weekly mission",
            "Our Most Popular Defense",
            "Priority mission status",
            "Gate-lock photo confirmation",
        ),
        color="#0056B3",
        badge="MOST POPULAR",
    ),
    ServicePlan(
        id="super-scooper",
        name="The Super Scooops Plan",
        price=Decimal("56"),
        frequency_id="3x-weekly",
        frequency_label="3x per week cleanup",
        description="For the Full Pack",
        features=(
            "3x weekly mission",
            "For the Full Pack (3+ dogs)",
            "Ultra-sanitized equipment",
            "Elite odor neutralize included",
        ),
        color="#E60000",
    ),
)

DEFAULT_RATE_TABLE = RateTable(
    plans=PLANS,
    frequencies=FREQUENCIES,
    deodorizers=DEODORIZERS,
    extra_dog_per_cleanup=EXTRA_DOG_PER_CLEANUP,
)


def catalog_payload(rate_table: RateTable) -> dict:
    """Serializable view of the rate table for the booking widget."""
    return {
        "plans": [
            {
                "id": p.id,
                "name": p.name,
                "price": f"{p.price:.2f}",
                "frequency": p.frequency_id,
                "frequencyLabel": p.frequency_label,
                "description": p.description,
                "features": list(p.features),
                "color": p.color,
                "badge": p.badge,
            }
            for p in rate_table.plans
        ],
        "frequencies": [
            {
                "id": f.id,
                "label": f.label,
                "visitsPerPeriod": f.visits_per_period,
                "period": f.period_label,
                "firstCleanupFree": f.first_cleanup_free,
                "recurring": f.recurring,
                "deodorizers": [d.id for d in rate_table.deodorizers_for(f.id)],
            }
            for f in rate_table.frequencies
        ],
        "deodorizers": [
            {
                "id": d.id,
                "label": d.label,
                "pricePerApplication": f"{d.price_per_application:.2f}",
            }
            for d in rate_table.deodorizers
        ],
        "extraDogPerCleanup": f"{rate_table.extra_dog_per_cleanup:.2f}",
    }
