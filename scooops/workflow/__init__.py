from scooops.workflow.booking_workflow import BookingWorkflow
from scooops.workflow.collaborators import (
    HttpSignupGateway,
    LocalSignupGateway,
    StripeTokenizer,
)
from scooops.workflow.contact_form import ContactForm
from scooops.workflow.state_machine import (
    BookingState,
    BookingStateMachine,
    BookingTrigger,
    InvalidTransitionError,
)

__all__ = [
    "BookingWorkflow",
    "BookingStateMachine",
    "BookingState",
    "BookingTrigger",
    "InvalidTransitionError",
    "ContactForm",
    "StripeTokenizer",
    "HttpSignupGateway",
    "LocalSignupGateway",
]
