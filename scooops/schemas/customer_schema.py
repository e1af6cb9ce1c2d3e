"""Customer contact details collected by the booking widget."""

from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class ServiceAddress:
    """Street address; also used as a billing address."""

    street: str
    city: str
    state: str
    zip: str


@dataclass(frozen=True)
class ContactDetails:
    """Validated contact step output."""

    name: str
    email: str
    phone: str
    address: ServiceAddress
    service_days: tuple[str, ...]


@dataclass(frozen=True)
class CustomerRecord:
    """
    Everything handed to the two remote collaborators for one signup.

    Lives only for the duration of a commit; never persisted locally.
    """

    contact: ContactDetails
    billing_address: ServiceAddress
    payment_token: str
    dogs: int
    frequency_id: str
    deodorizer_id: Optional[str] = None
    plan_id: Optional[str] = None


@dataclass(frozen=True)
class PaymentCard:
    """Raw card fields typed into the payment step. Only ever sent to the tokenizer."""

    number: str = field(repr=False)
    exp_month: int
    exp_year: int
    cvc: str = field(repr=False)
    name: str = ""

    @property
    def last4(self) -> str:
        digits = "".join(ch for ch in self.number if ch.isdigit())
        return digits[-4:]
