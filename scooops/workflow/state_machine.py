"""
Finite state machine for the booking widget.

Defines the seven workflow states and the explicit transitions between
them. Steps only move along the table below; anything else is rejected
with the list of triggers that are valid from the current state.

Usage:
    sm = BookingStateMachine()
    sm.transition(BookingTrigger.QUOTE_REQUESTED)
    assert sm.current_state == BookingState.CONTACT_COLLECTION
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class BookingState(str, Enum):
    """All possible states of one booking session."""
    QUOTING = "quoting"
    CONTACT_COLLECTION = "contact_collection"
    PAYMENT_COLLECTION = "payment_collection"
    COMMITTING = "committing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CLOSED = "closed"


class BookingTrigger(str, Enum):
    """Events that cause state transitions."""
    QUOTE_REQUESTED = "quote_requested"
    CONTACT_VALID = "contact_valid"
    ACTIVATE = "activate"
    COMMIT_SUCCEEDED = "commit_succeeded"
    COMMIT_FAILED = "commit_failed"
    RETRY_PAYMENT = "retry_payment"
    GO_BACK = "go_back"
    LEAD_SUBMITTED = "lead_submitted"
    DISMISS = "dismiss"


TERMINAL_STATES = frozenset({BookingState.SUCCEEDED, BookingState.CLOSED})


@dataclass
class Transition:
    """A single valid state transition."""
    from_state: BookingState
    to_state: BookingState
    trigger: BookingTrigger
    guard: Optional[Callable[[], bool]] = None


@dataclass
class StateEntry:
    """Recorded history entry for a state visit."""
    state: BookingState
    entered_at: datetime
    trigger: Optional[BookingTrigger] = None


class InvalidTransitionError(Exception):
    """Raised when a transition is not valid from the current state."""


class BookingStateMachine:
    """
    Deterministic state machine controlling the booking steps.

    ``retry_allowed`` guards RETRY_PAYMENT out of Failed: the owner sets it
    to False when the failure happened after the card was charged.
    """

    def __init__(self) -> None:
        self._current_state = BookingState.QUOTING
        self._history: list[StateEntry] = [
            StateEntry(state=BookingState.QUOTING, entered_at=datetime.now(timezone.utc))
        ]
        self.retry_allowed = True
        self.transitions: list[Transition] = self._build_transitions()

    def _build_transitions(self) -> list[Transition]:
        S, T = BookingState, BookingTrigger
        return [
            # --- Forward path ---
            Transition(S.QUOTING, S.CONTACT_COLLECTION, T.QUOTE_REQUESTED),
            Transition(S.CONTACT_COLLECTION, S.PAYMENT_COLLECTION, T.CONTACT_VALID),
            Transition(S.PAYMENT_COLLECTION, S.COMMITTING, T.ACTIVATE),

            # --- Commit result ---
            Transition(S.COMMITTING, S.SUCCEEDED, T.COMMIT_SUCCEEDED),
            Transition(S.COMMITTING, S.FAILED, T.COMMIT_FAILED),
            Transition(S.FAILED, S.PAYMENT_COLLECTION, T.RETRY_PAYMENT,
                       guard=lambda: self.retry_allowed),

            # --- Back navigation ---
            Transition(S.CONTACT_COLLECTION, S.QUOTING, T.GO_BACK),
            Transition(S.PAYMENT_COLLECTION, S.CONTACT_COLLECTION, T.GO_BACK),

            # --- Exits ---
            Transition(S.CONTACT_COLLECTION, S.CLOSED, T.LEAD_SUBMITTED),
            Transition(S.QUOTING, S.CLOSED, T.DISMISS),
            Transition(S.CONTACT_COLLECTION, S.CLOSED, T.DISMISS),
            Transition(S.PAYMENT_COLLECTION, S.CLOSED, T.DISMISS),
            Transition(S.FAILED, S.CLOSED, T.DISMISS),
        ]

    @property
    def current_state(self) -> BookingState:
        return self._current_state

    def transition(self, trigger: BookingTrigger) -> BookingState:
        """
        Execute a state transition.

        Raises:
            InvalidTransitionError: If no valid transition exists.
        """
        for t in self.transitions:
            if t.from_state == self._current_state and t.trigger == trigger:
                if t.guard is not None and not t.guard():
                    continue
                old_state = self._current_state
                self._current_state = t.to_state
                self._history.append(StateEntry(
                    state=self._current_state,
                    entered_at=datetime.now(timezone.utc),
                    trigger=trigger,
                ))
                logger.debug(
                    "State transition: %s -> %s (trigger: %s)",
                    old_state.value, self._current_state.value, trigger.value,
                )
                return self._current_state

        self._reject(trigger)

    def _reject(self, trigger: BookingTrigger) -> None:
        valid = [t.value for t in self.get_valid_triggers()]
        raise InvalidTransitionError(
            f"No valid transition from '{self._current_state.value}' "
            f"with trigger '{trigger.value}'. Valid triggers: {valid}"
        )

    def can(self, trigger: BookingTrigger) -> bool:
        return trigger in self.get_valid_triggers()

    def require(self, trigger: BookingTrigger) -> None:
        """Raise InvalidTransitionError now if ``trigger`` could not fire, without moving."""
        if not self.can(trigger):
            self._reject(trigger)

    def get_valid_triggers(self) -> list[BookingTrigger]:
        """Return all triggers valid from the current state (guards applied)."""
        return [
            t.trigger for t in self.transitions
            if t.from_state == self._current_state and (t.guard is None or t.guard())
        ]

    def get_history(self) -> list[StateEntry]:
        return list(self._history)

    def get_state_trace(self) -> list[str]:
        """Return ordered list of state names visited."""
        return [entry.state.value for entry in self._history]

    def is_terminal(self) -> bool:
        return self._current_state in TERMINAL_STATES
