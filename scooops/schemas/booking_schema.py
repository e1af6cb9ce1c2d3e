"""HTTP request and response bodies for the booking functions.

Field aliases match the camelCase keys the booking widget already posts.
Everything is optional at the schema level; required-field checks happen in
the services so that all missing fields are reported together.
"""

from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class _Body(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class CreateSweepClientRequest(_Body):
    """Body of POST /functions/create-sweep-client."""

    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None

    plan_id: Optional[str] = Field(default=None, alias="planId")
    plan_name: Optional[str] = Field(default=None, alias="planName")
    dogs: Optional[int] = None
    frequency_id: Optional[str] = Field(default=None, alias="frequencyId")
    preferred_day: Optional[str] = Field(default=None, alias="preferredDay")
    preferred_days: list[str] = Field(default_factory=list, alias="preferredDays")
    deodorizer: Optional[str] = None
    total_price: Optional[Union[str, float]] = Field(default=None, alias="totalPrice")

    billing_same_as_service: bool = Field(default=True, alias="billingSameAsService")
    billing_address: Optional[str] = Field(default=None, alias="billingAddress")
    billing_city: Optional[str] = Field(default=None, alias="billingCity")
    billing_state: Optional[str] = Field(default=None, alias="billingState")
    billing_zip: Optional[str] = Field(default=None, alias="billingZip")

    stripe_token: Optional[str] = Field(default=None, alias="stripeToken")
    is_lead_only: bool = Field(default=False, alias="isLeadOnly")
    question: Optional[str] = None

    def service_days(self) -> list[str]:
        if self.preferred_days:
            return [d for d in self.preferred_days if d and d.strip()]
        if self.preferred_day and self.preferred_day.strip():
            return [self.preferred_day]
        return []


class SweepClientResponse(_Body):
    """Reply of POST /functions/create-sweep-client."""

    success: bool
    mode: Optional[Literal["lead", "registration"]] = None
    client_id: Optional[str] = Field(default=None, alias="clientId")
    customer_id: Optional[str] = Field(default=None, alias="customerId")
    subscription_id: Optional[str] = Field(default=None, alias="subscriptionId")
    phase: Optional[Literal["payment", "crm"]] = None
    error: Optional[str] = None
    data: Optional[Any] = None


class CheckoutRequest(_Body):
    """Body of POST /functions/create-checkout."""

    email: Optional[str] = None
    plan_id: Optional[str] = Field(default=None, alias="planId")
    dogs: int = 1
    deodorizer: Optional[str] = None
    address: Optional[str] = None
    name: Optional[str] = None


class BillingPortalRequest(_Body):
    """Body of POST /functions/create-billing-portal-session."""

    email: Optional[str] = None
    return_url: Optional[str] = None


class SubmitBookingRequest(_Body):
    """Body of the legacy POST /functions/submit-booking."""

    name: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    zip: Optional[str] = None
    plan_id: Optional[str] = Field(default=None, alias="planId")
    dogs: Optional[int] = None
    deodorizer: Optional[bool] = None


class WebhookEvent(BaseModel):
    """Inbound Sweep&GO webhook envelope."""

    model_config = ConfigDict(extra="allow")

    event_type: str
    timestamp: Optional[str] = None
    organization: Optional[str] = None
    data: Optional[dict[str, Any]] = None
