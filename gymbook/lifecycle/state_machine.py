"""
Finite state machine for the booking lifecycle.

Defines the booking states and the explicit (state, event) transitions
between them. Every change to a booking's state is computed here; an
event with no matching transition is rejected, never coerced.

Usage:
    machine = BookingStateMachine()
    new_state = machine.next_state(
        BookingState.REQUESTED, BookingEvent.HOST_ACCEPT, BookingMode.REQUEST_TO_BOOK
    )
    assert new_state == BookingState.HOST_ACCEPTED
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from gymbook.errors import IllegalTransitionError
from gymbook.schemas.offer_schema import BookingMode

logger = logging.getLogger(__name__)


class BookingState(str, Enum):
    """All possible states in a booking lifecycle."""
    REQUESTED = "requested"
    HOST_ACCEPTED = "host_accepted"
    HOST_DECLINED = "host_declined"
    HOLD_CREATED = "hold_created"
    AUTHORIZED = "authorized"
    CONFIRMED = "confirmed"
    RELEASED = "released"
    CANCELLED = "cancelled"


class BookingEvent(str, Enum):
    """Events that cause state transitions."""
    HOST_ACCEPT = "host_accept"
    HOST_DECLINE = "host_decline"
    CREATE_HOLD = "create_hold"
    RECORD_AUTHORIZATION = "record_authorization"
    CAPTURE = "capture"
    RELEASE = "release"
    HOST_RELEASE = "host_release"
    EXPIRE = "expire"
    CANCEL = "cancel"


def _request_to_book(mode: BookingMode) -> bool:
    return mode == BookingMode.REQUEST_TO_BOOK


def _instant(mode: BookingMode) -> bool:
    return mode == BookingMode.INSTANT


@dataclass(frozen=True)
class Transition:
    """A single valid state transition."""
    from_state: BookingState
    to_state: BookingState
    event: BookingEvent
    guard: Optional[Callable[[BookingMode], bool]] = None


# States in which the processor holds guest funds.
HOLDING_STATES = frozenset({BookingState.HOLD_CREATED, BookingState.AUTHORIZED})

# States that occupy offer capacity for their dates.
OCCUPYING_STATES = HOLDING_STATES | {BookingState.CONFIRMED}

TERMINAL_STATES = frozenset({
    BookingState.CONFIRMED,
    BookingState.HOST_DECLINED,
    BookingState.RELEASED,
    BookingState.CANCELLED,
})


class BookingStateMachine:
    """
    Deterministic state machine over a single booking.

    Transitions are pure: the machine holds no booking, it only maps
    (current state, event, booking mode) to the next state.
    """

    TRANSITIONS: list[Transition] = [
        # --- Host decision (request-to-book only) ---
        Transition(BookingState.REQUESTED, BookingState.HOST_ACCEPTED,
                   BookingEvent.HOST_ACCEPT, guard=_request_to_book),
        Transition(BookingState.REQUESTED, BookingState.HOST_DECLINED,
                   BookingEvent.HOST_DECLINE, guard=_request_to_book),

        # --- Card hold ---
        Transition(BookingState.REQUESTED, BookingState.HOLD_CREATED,
                   BookingEvent.CREATE_HOLD, guard=_instant),
        Transition(BookingState.HOST_ACCEPTED, BookingState.HOLD_CREATED,
                   BookingEvent.CREATE_HOLD),

        # --- Authorization and capture ---
        Transition(BookingState.HOLD_CREATED, BookingState.AUTHORIZED,
                   BookingEvent.RECORD_AUTHORIZATION),
        Transition(BookingState.AUTHORIZED, BookingState.CONFIRMED,
                   BookingEvent.CAPTURE),

        # --- Compensation: release the hold ---
        Transition(BookingState.HOLD_CREATED, BookingState.RELEASED,
                   BookingEvent.RELEASE),
        Transition(BookingState.AUTHORIZED, BookingState.RELEASED,
                   BookingEvent.RELEASE),
        Transition(BookingState.HOLD_CREATED, BookingState.HOST_DECLINED,
                   BookingEvent.HOST_RELEASE),
        Transition(BookingState.AUTHORIZED, BookingState.HOST_DECLINED,
                   BookingEvent.HOST_RELEASE),
        Transition(BookingState.HOLD_CREATED, BookingState.RELEASED,
                   BookingEvent.EXPIRE),
        Transition(BookingState.AUTHORIZED, BookingState.RELEASED,
                   BookingEvent.EXPIRE),

        # --- Post-confirmation ---
        Transition(BookingState.CONFIRMED, BookingState.CANCELLED,
                   BookingEvent.CANCEL),
    ]

    def next_state(
        self, current: BookingState, event: BookingEvent, mode: BookingMode
    ) -> BookingState:
        """
        Resolve the state a booking moves to.

        Args:
            current: The booking's committed state.
            event: The lifecycle event being applied.
            mode: The booking mode from the offer snapshot.

        Returns:
            The new booking state.

        Raises:
            IllegalTransitionError: If no valid transition exists.
        """
        for t in self.TRANSITIONS:
            if t.from_state == current and t.event == event:
                if t.guard is not None and not t.guard(mode):
                    continue
                logger.debug(
                    "State transition: %s -> %s (event: %s)",
                    current.value, t.to_state.value, event.value,
                )
                return t.to_state

        valid = [e.value for e in self.valid_events(current, mode)]
        raise IllegalTransitionError(
            current.value,
            event.value,
            f"No valid transition from '{current.value}' with event "
            f"'{event.value}' ({mode.value}). Valid events: {valid}",
        )

    def can_apply(self, current: BookingState, event: BookingEvent, mode: BookingMode) -> bool:
        return any(
            t.from_state == current and t.event == event and (t.guard is None or t.guard(mode))
            for t in self.TRANSITIONS
        )

    def valid_events(self, current: BookingState, mode: BookingMode) -> list[BookingEvent]:
        """Return all events valid from the given state for this booking mode."""
        return [
            t.event
            for t in self.TRANSITIONS
            if t.from_state == current and (t.guard is None or t.guard(mode))
        ]

    @staticmethod
    def is_terminal(state: BookingState) -> bool:
        """Check if a booking in this state has finished its lifecycle."""
        return state in TERMINAL_STATES
