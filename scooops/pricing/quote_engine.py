"""
Deterministic price quotes for the booking widget.

The engine is a pure function of (dogs, frequency, deodorizer) and the
injected rate table. It is recomputed on every input change, so it does
no I/O and keeps no state between calls.

Usage:
    engine = QuoteEngine(DEFAULT_RATE_TABLE)
    result = engine.quote(dogs=3, frequency_id="weekly", deodorizer_id="weekly-deodorizer")
    result.price_per_cleanup  # Decimal("31.25")
"""

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from scooops.schemas.pricing_schema import (
    DeodorizerOption,
    FrequencySelection,
    QuoteRequest,
    QuoteResult,
    RateTable,
)

logger = logging.getLogger(__name__)

_CENT = Decimal("0.01")


def round_cents(amount: Decimal) -> Decimal:
    """Round half-up to the cent."""
    return amount.quantize(_CENT, rounding=ROUND_HALF_UP)


class QuoteEngine:
    """Prices a QuoteRequest against a rate table."""

    def __init__(self, rate_table: RateTable) -> None:
        self._rates = rate_table

    @property
    def rate_table(self) -> RateTable:
        return self._rates

    def resolve_deodorizer(
        self, frequency_id: str, deodorizer_id: Optional[str]
    ) -> Optional[DeodorizerOption]:
        """Return the deodorizer only if it is offered with this frequency."""
        if not deodorizer_id:
            return None
        option = self._rates.deodorizer(deodorizer_id)
        if not option.supports(frequency_id):
            logger.debug(
                "Deodorizer '%s' not offered with '%s'; pricing without it",
                deodorizer_id, frequency_id,
            )
            return None
        return option

    def available_deodorizers(self, frequency_id: str) -> list[DeodorizerOption]:
        self._rates.frequency(frequency_id)
        return self._rates.deodorizers_for(frequency_id)

    def required_service_days(self, frequency_id: str) -> int:
        """How many distinct preferred weekdays a booking must name."""
        freq = self._rates.frequency(frequency_id)
        if freq.period_weeks == 1:
            return freq.visits_per_period
        return 1

    def quote(
        self, dogs: int, frequency_id: str, deodorizer_id: Optional[str] = None
    ) -> QuoteResult:
        """
        Compute price per cleanup and per billing period.

        Raises:
            UnknownOptionError: If the frequency or deodorizer id is unknown.
        """
        dogs = max(1, int(dogs))
        freq = self._rates.frequency(frequency_id)
        deodorizer = self.resolve_deodorizer(frequency_id, deodorizer_id)
        visits = Decimal(freq.visits_per_period)

        base = freq.base_per_cleanup * visits
        extra_dogs = Decimal(max(0, dogs - 1)) * self._rates.extra_dog_per_cleanup * visits
        deodorizer_total = self._deodorizer_per_period(freq, deodorizer)

        subtotal = base + extra_dogs + deodorizer_total
        period = subtotal * freq.factor

        price_per_cleanup = round_cents(period / visits)
        period_total = price_per_cleanup * visits

        line_items = [(f"{freq.label} service", round_cents(base))]
        if extra_dogs:
            line_items.append((f"Extra dogs ({dogs - 1})", round_cents(extra_dogs)))
        if deodorizer is not None:
            line_items.append((deodorizer.label, round_cents(deodorizer_total)))
        if freq.factor != 1:
            line_items.append(("Route discount", round_cents(period - subtotal)))

        return QuoteResult(
            request=QuoteRequest(
                dogs=dogs,
                frequency_id=freq.id,
                deodorizer_id=deodorizer.id if deodorizer else None,
            ),
            frequency_label=freq.label,
            price_per_cleanup=price_per_cleanup,
            period_total=period_total,
            cleanups_per_period=freq.visits_per_period,
            period_label=freq.period_label,
            first_cleanup_free=freq.first_cleanup_free,
            line_items=tuple(line_items),
        )

    @staticmethod
    def _deodorizer_per_period(
        freq: FrequencySelection, deodorizer: Optional[DeodorizerOption]
    ) -> Decimal:
        if deodorizer is None:
            return Decimal("0")
        if freq.period_weeks is None:
            return deodorizer.price_per_application
        applications = deodorizer.visits_per_week * Decimal(freq.period_weeks)
        return deodorizer.price_per_application * applications
