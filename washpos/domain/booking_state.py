"""Booking lifecycle state machine.

States: draft → booked → in_progress → departed → completed, plus cancelled.
Forbidden moves (draft → cancelled, departed → cancelled) stay listed in the
table with ``allowed=False`` so they are rejected explicitly.
"""

from dataclasses import dataclass
from enum import Enum


class BookingState(str, Enum):
    """Lifecycle states of a car-wash booking."""

    DRAFT = "draft"
    BOOKED = "booked"
    IN_PROGRESS = "in_progress"
    DEPARTED = "departed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class BookingAction(str, Enum):
    """Operator actions that move a booking between states."""

    START = "Start"
    MANUAL_CONFIRM = "Manual Confirm"
    FINISH = "Finish"
    CANCEL = "Cancel"


@dataclass(frozen=True)
class Transition:
    action: BookingAction
    next_state: BookingState
    allowed: bool


@dataclass(frozen=True)
class StateDisplayInfo:
    label: str
    color: str
    icon: str
    description: str
    sort_order: int


INITIAL_STATE = BookingState.DRAFT

BOOKING_TRANSITIONS: dict[BookingState, list[Transition]] = {
    BookingState.DRAFT: [
        Transition(BookingAction.START, BookingState.IN_PROGRESS, True),
        Transition(BookingAction.MANUAL_CONFIRM, BookingState.BOOKED, True),
        Transition(BookingAction.CANCEL, BookingState.CANCELLED, False),
    ],
    BookingState.BOOKED: [
        Transition(BookingAction.START, BookingState.IN_PROGRESS, True),
        Transition(BookingAction.CANCEL, BookingState.CANCELLED, True),
    ],
    BookingState.IN_PROGRESS: [
        Transition(BookingAction.FINISH, BookingState.DEPARTED, True),
        Transition(BookingAction.CANCEL, BookingState.CANCELLED, True),
    ],
    BookingState.DEPARTED: [
        Transition(BookingAction.FINISH, BookingState.COMPLETED, True),
        Transition(BookingAction.CANCEL, BookingState.CANCELLED, False),
    ],
    BookingState.COMPLETED: [],  # Terminal state
    BookingState.CANCELLED: [],  # Terminal state
}

STATE_DISPLAY_INFO: dict[BookingState, StateDisplayInfo] = {
    BookingState.DRAFT: StateDisplayInfo(
        "Draft", "bg-gray-100 text-gray-800", "📝", "Booking is being prepared", 1
    ),
    BookingState.BOOKED: StateDisplayInfo(
        "Booked", "bg-blue-100 text-blue-800", "📅", "Booking is confirmed and scheduled", 2
    ),
    BookingState.IN_PROGRESS: StateDisplayInfo(
        "In Progress", "bg-orange-100 text-orange-800", "🚗", "Vehicle wash is in progress", 3
    ),
    BookingState.DEPARTED: StateDisplayInfo(
        "Departed", "bg-purple-100 text-purple-800", "🚙", "Vehicle has left the wash bay", 4
    ),
    BookingState.COMPLETED: StateDisplayInfo(
        "Completed", "bg-green-100 text-green-800", "✅", "Service completed successfully", 5
    ),
    BookingState.CANCELLED: StateDisplayInfo(
        "Cancelled", "bg-red-100 text-red-800", "❌", "Booking was cancelled", 6
    ),
}


def _find_transition(current: BookingState, action: str) -> Transition | None:
    for transition in BOOKING_TRANSITIONS.get(current, []):
        if transition.action.value == action:
            return transition
    return None


def is_valid_transition(current: BookingState, action: str) -> bool:
    """Check whether ``action`` is allowed from ``current``."""
    transition = _find_transition(current, action)
    return transition is not None and transition.allowed


def get_valid_actions(current: BookingState) -> list[BookingAction]:
    """Actions allowed from a state, in table order. Empty for terminal states."""
    return [t.action for t in BOOKING_TRANSITIONS.get(current, []) if t.allowed]


def resolve_next_state(current: BookingState, action: str) -> BookingState | None:
    """Target state for an allowed action, or None when the action is not allowed."""
    transition = _find_transition(current, action)
    if transition is None or not transition.allowed:
        return None
    return transition.next_state


def is_terminal(state: BookingState) -> bool:
    return not get_valid_actions(state)


def get_state_display_info(state: BookingState) -> StateDisplayInfo:
    return STATE_DISPLAY_INFO[state]


def get_all_states() -> list[BookingState]:
    """All lifecycle states ordered for display."""
    return sorted(BookingState, key=lambda s: STATE_DISPLAY_INFO[s].sort_order)


def parse_state(value: object) -> BookingState | None:
    """Coerce a stored value to a BookingState; None when it is not a known state."""
    if isinstance(value, BookingState):
        return value
    try:
        return BookingState(value)
    except ValueError:
        return None
