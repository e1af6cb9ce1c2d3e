"""
Contact-step form with field definitions, normalization and aggregated validation.

Unlike a stop-at-first-error form, ``validate()`` reports every missing or
invalid field in a single ValidationFailed so the widget can show one
message listing everything the customer still needs to fix.

Usage:
    form = ContactForm(required_days=2)
    form.set_field("name", "Diana Prince")
    form.set_service_day(0, "monday")
    details = form.validate()  # raises ValidationFailed listing what's missing
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Optional

from scooops.errors import ValidationFailed
from scooops.schemas.customer_schema import ContactDetails, ServiceAddress
from scooops.utils import is_blank, looks_like_email, normalize_phone, normalize_weekday

logger = logging.getLogger(__name__)

MIN_PHONE_DIGITS = 10
MAX_PHONE_DIGITS = 15

_ZIP_RE = re.compile(r"^\d{5}(-\d{4})?$")


def _validate_email(value: str) -> bool:
    return looks_like_email(value)


def _validate_phone(value: str) -> bool:
    digits = re.sub(r"[^\d]", "", value)
    return MIN_PHONE_DIGITS <= len(digits) <= MAX_PHONE_DIGITS


def _validate_zip(value: str) -> bool:
    return bool(_ZIP_RE.match(value.strip()))


@dataclass(frozen=True)
class FieldDefinition:
    """Schema for a single contact field."""

    name: str
    label: str
    validator: Optional[Callable[[str], bool]] = None


CONTACT_FIELDS: tuple[FieldDefinition, ...] = (
    FieldDefinition("name", "name"),
    FieldDefinition("email", "email", _validate_email),
    FieldDefinition("phone", "phone", _validate_phone),
    FieldDefinition("street", "street address"),
    FieldDefinition("city", "city"),
    FieldDefinition("state", "state"),
    FieldDefinition("zip", "ZIP code", _validate_zip),
)

BILLING_FIELDS: tuple[FieldDefinition, ...] = (
    FieldDefinition("street", "billing street address"),
    FieldDefinition("city", "billing city"),
    FieldDefinition("state", "billing state"),
    FieldDefinition("zip", "billing ZIP code", _validate_zip),
)

QUOTE_STAGE_FIELDS: tuple[str, ...] = ("zip", "phone")


def _normalize(name: str, value: str) -> str:
    value = value.strip()
    if name == "phone":
        return normalize_phone(value)
    if name == "email":
        return value.lower()
    if name == "state":
        return value.upper()
    return value


def check_fields(
    definitions: tuple[FieldDefinition, ...], values: dict[str, Any]
) -> tuple[list[str], list[str], dict[str, str]]:
    """Return (missing labels, invalid messages, normalized values)."""
    missing: list[str] = []
    invalid: list[str] = []
    cleaned: dict[str, str] = {}
    for defn in definitions:
        raw = values.get(defn.name)
        if is_blank(raw):
            missing.append(defn.label)
            continue
        raw = str(raw)
        if defn.validator and not defn.validator(raw):
            invalid.append(f"The {defn.label} '{raw.strip()}' doesn't look right")
            continue
        cleaned[defn.name] = _normalize(defn.name, raw)
    return missing, invalid, cleaned


def check_service_days(days: list[Optional[str]], required: int) -> tuple[list[str], list[str], list[str]]:
    """
    Check that ``required`` distinct weekdays were chosen.

    Returns (missing labels, invalid messages, normalized days).
    """
    missing: list[str] = []
    invalid: list[str] = []
    normalized: list[str] = []
    padded = list(days[:required]) + [None] * max(0, required - len(days))
    for index, raw in enumerate(padded):
        label = "service day" if required == 1 else f"service day {index + 1}"
        if is_blank(raw):
            missing.append(label)
            continue
        day = normalize_weekday(str(raw))
        if day is None:
            invalid.append(f"'{str(raw).strip()}' is not a day of the week")
            continue
        normalized.append(day)
    if len(set(normalized)) != len(normalized):
        invalid.append("Each service day must be a different day of the week")
    return missing, invalid, normalized


def validate_billing_address(
    same_as_service: bool, service_address: ServiceAddress, values: dict[str, Any]
) -> ServiceAddress:
    """Return the billing address, defaulting to the service address."""
    if same_as_service:
        return service_address
    missing, invalid, cleaned = check_fields(BILLING_FIELDS, values)
    if missing or invalid:
        raise ValidationFailed(missing, invalid)
    return ServiceAddress(
        street=cleaned["street"], city=cleaned["city"], state=cleaned["state"], zip=cleaned["zip"]
    )


class ContactForm:
    """Mutable contact-step form state for one booking session."""

    def __init__(self, required_days: int = 1) -> None:
        self.values: dict[str, str] = {}
        self.service_days: list[Optional[str]] = [None] * required_days

    @property
    def required_days(self) -> int:
        return len(self.service_days)

    def set_field(self, name: str, value: str) -> None:
        if name not in {d.name for d in CONTACT_FIELDS}:
            valid = ", ".join(d.name for d in CONTACT_FIELDS)
            raise ValueError(f"Unknown field '{name}'. Valid: {valid}")
        self.values[name] = value

    def set_service_day(self, index: int, day: Optional[str]) -> None:
        if not 0 <= index < len(self.service_days):
            raise IndexError(
                f"Service day {index + 1} out of range; this plan needs {len(self.service_days)}"
            )
        self.service_days[index] = day

    def resize_service_days(self, required: int) -> None:
        """Grow or shrink the day list, keeping already-chosen days in order."""
        current = self.service_days[:required]
        self.service_days = current + [None] * (required - len(current))

    def missing_quote_fields(self) -> list[str]:
        labels = {d.name: d.label for d in CONTACT_FIELDS}
        return [labels[name] for name in QUOTE_STAGE_FIELDS if is_blank(self.values.get(name))]

    def validate(self) -> ContactDetails:
        """Validate every field at once; raises ValidationFailed listing all problems."""
        missing, invalid, cleaned = check_fields(CONTACT_FIELDS, self.values)
        day_missing, day_invalid, days = check_service_days(self.service_days, self.required_days)
        missing.extend(day_missing)
        invalid.extend(day_invalid)
        if missing or invalid:
            logger.debug("Contact validation failed: missing=%s invalid=%s", missing, invalid)
            raise ValidationFailed(missing, invalid)

        return ContactDetails(
            name=cleaned["name"],
            email=cleaned["email"],
            phone=cleaned["phone"],
            address=ServiceAddress(
                street=cleaned["street"],
                city=cleaned["city"],
                state=cleaned["state"],
                zip=cleaned["zip"],
            ),
            service_days=tuple(days),
        )
