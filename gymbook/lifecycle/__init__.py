from gymbook.lifecycle.keyed_locks import KeyedLocks
from gymbook.lifecycle.state_machine import (
    BookingEvent,
    BookingState,
    BookingStateMachine,
)

__all__ = [
    "BookingStateMachine",
    "BookingState",
    "BookingEvent",
    "KeyedLocks",
]
