"""Booking lifecycle Pydantic schemas."""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from washpos.domain.booking_state import BookingAction, BookingState
from washpos.domain.payment_status import PaymentStatus


class FailureReason(str, Enum):
    """Why a lifecycle or payment operation did not go through."""

    NOT_FOUND = "not_found"
    UNKNOWN_STATE = "unknown_state"
    INVALID_TRANSITION = "invalid_transition"
    CONFLICT = "conflict"
    PERSISTENCE = "persistence"


class TransitionResult(BaseModel):
    """Outcome of a state change. ``error`` and ``reason`` are set when ``success`` is False."""

    success: bool
    new_state: BookingState | None = None
    error: str | None = None
    reason: FailureReason | None = None


class StateTransitionRecord(BaseModel):
    """One row of the transition log."""

    model_config = ConfigDict(from_attributes=True)

    id: int | None = None
    booking_id: int
    old_state: BookingState | None = None
    new_state: BookingState
    action: str | None = None
    timestamp: datetime | None = None


class StateInfoResponse(BaseModel):
    """Display info for one lifecycle state."""

    state: BookingState
    label: str
    color: str
    icon: str
    description: str
    sort_order: int
    terminal: bool


class BookingStateResponse(BaseModel):
    """Current state of a booking and what can be done next."""

    booking_id: int
    state: BookingState
    valid_actions: list[BookingAction]


class TransitionRequest(BaseModel):
    """Schema for requesting a transition."""

    action: BookingAction


class PaymentCreate(BaseModel):
    """Schema for recording a payment."""

    method: str | None = Field(None, min_length=1, max_length=30)
    amount: Decimal | None = Field(None, ge=0)


class FinishChoice(str, Enum):
    """Operator answer when finishing an unpaid wash."""

    PAY_NOW = "pay_now"
    PAY_LATER = "pay_later"
    CANCEL = "cancel"


class FinishOutcome(str, Enum):
    FINISHED_PAID = "finished_paid"
    FINISHED_UNPAID = "finished_unpaid"
    PAYMENT_DECISION_REQUIRED = "payment_decision_required"
    COLLECT_PAYMENT = "collect_payment"
    NO_ACTION = "no_action"
    FAILED = "failed"


class FinishRequest(BaseModel):
    """Schema for finishing a wash."""

    choice: FinishChoice | None = None


class FinishWashResult(BaseModel):
    """Outcome of the finish-wash workflow."""

    outcome: FinishOutcome
    payment_status: PaymentStatus
    new_state: BookingState | None = None
    choices: list[FinishChoice] = Field(default_factory=list)
    message: str
    reason: FailureReason | None = None


class PaymentResult(BaseModel):
    """Outcome of recording a payment."""

    success: bool
    payment_status: PaymentStatus
    transaction_id: int | None = None
    error: str | None = None
    reason: FailureReason | None = None


class BookingSummary(BaseModel):
    """Dashboard row for a booking."""

    booking_id: int
    state: BookingState
    state_label: str
    payment_status: PaymentStatus
    show_unpaid_badge: bool
    total_price: Decimal
    valid_actions: list[BookingAction]
