"""Exception hierarchy shared by the pricing, workflow and integration layers."""

from typing import Optional, Sequence


class ScooopsError(Exception):
    """Base class for all application errors."""


class UnknownOptionError(ScooopsError):
    """Raised when a plan, frequency or add-on id is not in the rate table."""


class ValidationFailed(ScooopsError):
    """Raised when collected form data is incomplete or inconsistent.

    ``missing`` holds the label of every empty required field and
    ``invalid`` every other problem, so one message can report them all.
    """

    def __init__(self, missing: Sequence[str] = (), invalid: Sequence[str] = ()) -> None:
        self.missing = list(missing)
        self.invalid = list(invalid)
        super().__init__(self.message)

    @property
    def message(self) -> str:
        parts = []
        if self.missing:
            parts.append(f"Missing required fields: {', '.join(self.missing)}")
        parts.extend(self.invalid)
        return ". ".join(parts)


class ConfigurationError(ScooopsError):
    """A collaborator credential or price id is missing."""


class UpstreamError(ScooopsError):
    """A remote collaborator rejected a request or could not be reached."""

    phase = "upstream"

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class PaymentError(UpstreamError):
    """Tokenization, customer or subscription setup failed."""

    phase = "payment"


class CrmError(UpstreamError):
    """The field-service CRM rejected or did not answer a request."""

    phase = "crm"
