"""Pydantic schemas for API validation."""

from washpos.schemas.booking import (
    BookingStateResponse,
    BookingSummary,
    FailureReason,
    FinishChoice,
    FinishOutcome,
    FinishRequest,
    FinishWashResult,
    PaymentCreate,
    PaymentResult,
    StateInfoResponse,
    StateTransitionRecord,
    TransitionRequest,
    TransitionResult,
)

__all__ = [
    # Lifecycle
    "BookingStateResponse",
    "StateInfoResponse",
    "StateTransitionRecord",
    "FailureReason",
    "TransitionRequest",
    "TransitionResult",
    # Workflow
    "BookingSummary",
    "FinishChoice",
    "FinishOutcome",
    "FinishRequest",
    "FinishWashResult",
    "PaymentCreate",
    "PaymentResult",
]
