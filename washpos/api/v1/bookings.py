"""Booking lifecycle endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from washpos.api.deps import get_state_manager, get_workflow_service
from washpos.core.exceptions import (
    AppException,
    InvalidBookingStatus,
    NotFoundError,
    PersistenceError,
)
from washpos.domain import booking_state
from washpos.schemas.booking import (
    BookingStateResponse,
    BookingSummary,
    FailureReason,
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
from washpos.services.booking_state_service import BookingStateManager
from washpos.services.wash_workflow_service import WashWorkflowService

router = APIRouter()


def failure_to_exception(booking_id: int, reason: FailureReason | None, detail: str) -> AppException:
    """Map a failed result onto the HTTP exception the client sees."""
    if reason is FailureReason.NOT_FOUND:
        return NotFoundError("Booking", str(booking_id))
    if reason is FailureReason.PERSISTENCE:
        return PersistenceError(detail)
    return InvalidBookingStatus(detail)


@router.get("/states", response_model=list[StateInfoResponse])
async def list_states() -> list[StateInfoResponse]:
    """All lifecycle states in display order."""
    states = []
    for state in booking_state.get_all_states():
        info = booking_state.get_state_display_info(state)
        states.append(
            StateInfoResponse(
                state=state,
                label=info.label,
                color=info.color,
                icon=info.icon,
                description=info.description,
                sort_order=info.sort_order,
                terminal=booking_state.is_terminal(state),
            )
        )
    return states


@router.get("/summaries", response_model=list[BookingSummary])
async def list_summaries(
    workflow: Annotated[WashWorkflowService, Depends(get_workflow_service)],
    limit: int = Query(default=50, ge=1, le=200),
) -> list[BookingSummary]:
    """Dashboard rows, most recent first."""
    return await workflow.list_booking_summaries(limit=limit)


@router.get("/{booking_id}/state", response_model=BookingStateResponse)
async def get_booking_state(
    booking_id: int,
    manager: Annotated[BookingStateManager, Depends(get_state_manager)],
) -> BookingStateResponse:
    """Current state and allowed actions. Falls back to draft when unresolved."""
    state = await manager.get_current_state(booking_id)
    return BookingStateResponse(
        booking_id=booking_id,
        state=state,
        valid_actions=manager.get_valid_actions(state),
    )


@router.get("/{booking_id}/history", response_model=list[StateTransitionRecord])
async def get_booking_history(
    booking_id: int,
    manager: Annotated[BookingStateManager, Depends(get_state_manager)],
) -> list[StateTransitionRecord]:
    return await manager.get_state_history(booking_id)


@router.post("/{booking_id}/initialize", response_model=TransitionResult)
async def initialize_booking(
    booking_id: int,
    manager: Annotated[BookingStateManager, Depends(get_state_manager)],
) -> TransitionResult:
    """Set a new booking to draft."""
    result = await manager.initialize_booking(booking_id)
    if not result.success:
        raise failure_to_exception(booking_id, result.reason, result.error or "")
    return result


@router.post("/{booking_id}/transitions", response_model=TransitionResult)
async def transition_booking(
    booking_id: int,
    request: TransitionRequest,
    manager: Annotated[BookingStateManager, Depends(get_state_manager)],
) -> TransitionResult:
    """Apply a lifecycle action."""
    result = await manager.transition_state(booking_id, request.action)
    if not result.success:
        raise failure_to_exception(booking_id, result.reason, result.error or "")
    return result


@router.get("/{booking_id}/summary", response_model=BookingSummary)
async def get_booking_summary(
    booking_id: int,
    workflow: Annotated[WashWorkflowService, Depends(get_workflow_service)],
) -> BookingSummary:
    summary = await workflow.get_booking_summary(booking_id)
    if summary is None:
        raise NotFoundError("Booking", str(booking_id))
    return summary


@router.post("/{booking_id}/start", response_model=TransitionResult)
async def start_wash(
    booking_id: int,
    workflow: Annotated[WashWorkflowService, Depends(get_workflow_service)],
) -> TransitionResult:
    """Start the wash; the booking is marked unpaid until payment is recorded."""
    result = await workflow.start_wash(booking_id)
    if not result.success:
        raise failure_to_exception(booking_id, result.reason, result.error or "")
    return result


@router.post("/{booking_id}/payments", response_model=PaymentResult)
async def record_payment(
    booking_id: int,
    request: PaymentCreate,
    workflow: Annotated[WashWorkflowService, Depends(get_workflow_service)],
) -> PaymentResult:
    result = await workflow.record_payment(booking_id, method=request.method, amount=request.amount)
    if not result.success:
        raise failure_to_exception(booking_id, result.reason, result.error or "")
    return result


@router.post("/{booking_id}/finish", response_model=FinishWashResult)
async def finish_wash(
    booking_id: int,
    request: FinishRequest,
    workflow: Annotated[WashWorkflowService, Depends(get_workflow_service)],
) -> FinishWashResult:
    """Finish the wash.

    An unpaid booking without a ``choice`` returns 200 with outcome
    ``payment_decision_required``; resend with ``pay_now``, ``pay_later`` or
    ``cancel``.
    """
    result = await workflow.finish_wash(booking_id, request.choice)
    if result.outcome is FinishOutcome.FAILED:
        raise failure_to_exception(booking_id, result.reason, result.message)
    return result
