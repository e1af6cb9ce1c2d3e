"""Result types for the two-phase signup commit."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class BookingOutcome(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class FailurePhase(str, Enum):
    PAYMENT = "payment"
    CRM = "crm"


@dataclass(frozen=True)
class PaymentResult:
    """Phase A output: the billing records created upstream."""

    customer_id: str
    subscription_id: Optional[str] = None


@dataclass(frozen=True)
class CrmResult:
    """Phase B output: the CRM client registration."""

    client_id: str
    raw: Optional[dict[str, Any]] = None


@dataclass(frozen=True)
class SignupOutcome:
    """Reconciled result of one signup request."""

    status: BookingOutcome
    mode: str = "registration"
    payment: Optional[PaymentResult] = None
    crm: Optional[CrmResult] = None
    phase: Optional[FailurePhase] = None
    message: str = ""
    status_code: int = 200
    data: Any = None

    @property
    def succeeded(self) -> bool:
        return self.status == BookingOutcome.SUCCEEDED
