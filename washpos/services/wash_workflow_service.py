"""Wash workflow: start, take payment, finish.

Combines the lifecycle service with the notes-based payment status. The
finish step asks the operator what to do with an unpaid booking instead of
blocking; choosing to finish anyway leaves the unpaid marker in place so the
dashboard keeps showing it.
"""

import logging
from datetime import UTC, datetime
from decimal import Decimal

from washpos.config import Settings, get_settings
from washpos.core.exceptions import RecordStoreError
from washpos.domain import booking_state
from washpos.domain.booking_state import BookingAction, BookingState
from washpos.domain.payment_status import (
    UNPAID_MARKER,
    PaymentStatus,
    append_note,
    determine_payment_status,
    format_payment_annotation,
    format_status_note,
    has_payment_marker,
    should_show_unpaid_badge,
)
from washpos.schemas.booking import (
    BookingSummary,
    FailureReason,
    FinishChoice,
    FinishOutcome,
    FinishWashResult,
    PaymentResult,
    TransitionResult,
)
from washpos.services.booking_state_service import BookingStateManager
from washpos.services.record_store import BOOKINGS, TRANSACTIONS, RecordStore

logger = logging.getLogger(__name__)

# Notes are appended with a compare-and-swap on the previous text
NOTE_APPEND_ATTEMPTS = 3

FINISH_CHOICES = [FinishChoice.PAY_NOW, FinishChoice.PAY_LATER, FinishChoice.CANCEL]


class WashWorkflowService:
    """Service for the operator-facing wash workflow."""

    def __init__(
        self,
        store: RecordStore,
        state_manager: BookingStateManager | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.store = store
        self.settings = settings or get_settings()
        self.state_manager = state_manager or BookingStateManager(store, self.settings)

    async def _get_booking(self, booking_id: int) -> dict | None:
        rows = await self.store.select(BOOKINGS, {"id": booking_id}, limit=1)
        return rows[0] if rows else None

    async def _append_to_notes(self, booking_id: int, *lines: str) -> str | None:
        """Append lines to a booking's notes; return the new notes or None on failure."""
        for _ in range(NOTE_APPEND_ATTEMPTS):
            try:
                booking = await self._get_booking(booking_id)
                if booking is None:
                    return None
                old_notes = booking.get("notes")
                new_notes = old_notes
                for line in lines:
                    new_notes = append_note(new_notes, line)
                updated = await self.store.update(
                    BOOKINGS,
                    {"id": booking_id, "notes": old_notes},
                    {"notes": new_notes, "updated_at": datetime.now(UTC)},
                )
            except RecordStoreError as e:
                logger.error(f"Failed to append notes for booking {booking_id}: {e}")
                return None
            if updated:
                return new_notes
            logger.warning(f"Notes of booking {booking_id} changed while appending, retrying")

        logger.error(f"Gave up appending notes for booking {booking_id}")
        return None

    async def start_wash(self, booking_id: int) -> TransitionResult:
        """Start a wash and mark it unpaid unless a payment marker already exists."""
        result = await self.state_manager.transition_state(booking_id, BookingAction.START)
        if not result.success:
            return result

        lines = [format_status_note(result.new_state, datetime.now(UTC))]
        try:
            booking = await self._get_booking(booking_id)
        except RecordStoreError as e:
            logger.error(f"Could not read notes of booking {booking_id}: {e}")
            booking = None
        if booking is not None and not has_payment_marker(booking.get("notes")):
            lines.insert(0, UNPAID_MARKER)

        if await self._append_to_notes(booking_id, *lines) is None:
            logger.warning(f"Booking {booking_id} started but notes were not updated")
        return result

    async def record_payment(
        self,
        booking_id: int,
        method: str | None = None,
        amount: Decimal | None = None,
    ) -> PaymentResult:
        """Record a completed payment: annotate notes and write a transaction."""
        try:
            booking = await self._get_booking(booking_id)
        except RecordStoreError as e:
            logger.error(f"Could not read booking {booking_id} for payment: {e}")
            return PaymentResult(
                success=False,
                payment_status=PaymentStatus.UNPAID,
                error="Failed to record payment",
                reason=FailureReason.PERSISTENCE,
            )
        if booking is None:
            return PaymentResult(
                success=False,
                payment_status=PaymentStatus.UNPAID,
                error="Booking not found",
                reason=FailureReason.NOT_FOUND,
            )

        state = booking_state.parse_state(booking.get("state"))
        if state is BookingState.CANCELLED:
            return PaymentResult(
                success=False,
                payment_status=determine_payment_status(booking.get("notes"), state),
                error="Cannot take payment for a cancelled booking",
                reason=FailureReason.INVALID_TRANSITION,
            )

        method = method or self.settings.default_payment_method
        if amount is None:
            amount = Decimal(str(booking.get("total_price") or 0))
        paid_at = datetime.now(UTC)

        new_notes = await self._append_to_notes(
            booking_id, format_payment_annotation(method, amount, paid_at)
        )
        if new_notes is None:
            return PaymentResult(
                success=False,
                payment_status=determine_payment_status(booking.get("notes"), state),
                error="Failed to record payment",
                reason=FailureReason.PERSISTENCE,
            )

        transaction_id = None
        try:
            transaction = await self.store.insert(
                TRANSACTIONS,
                {
                    "booking_id": booking_id,
                    "customer_id": booking.get("customer_id"),
                    "amount": amount,
                    "payment_method": method,
                    "status": "completed",
                    "created_at": paid_at,
                },
            )
            transaction_id = transaction.get("id")
        except RecordStoreError as e:
            # Notes already say paid; the missing transaction row needs backfilling.
            logger.error(f"Booking {booking_id} marked paid but transaction was not written: {e}")

        logger.info(f"Payment recorded for booking {booking_id}: {method} {amount}")
        return PaymentResult(
            success=True,
            payment_status=determine_payment_status(new_notes, state),
            transaction_id=transaction_id,
        )

    async def finish_wash(
        self,
        booking_id: int,
        choice: FinishChoice | None = None,
    ) -> FinishWashResult:
        """Finish a wash, consulting payment status first.

        Only the in_progress → departed finish is gated. An unpaid booking
        without a choice comes back as PAYMENT_DECISION_REQUIRED and nothing
        is written.
        """
        try:
            booking = await self._get_booking(booking_id)
        except RecordStoreError as e:
            logger.error(f"Could not read booking {booking_id} before finishing: {e}")
            return FinishWashResult(
                outcome=FinishOutcome.FAILED,
                payment_status=PaymentStatus.UNPAID,
                message="Could not determine current booking state",
                reason=FailureReason.PERSISTENCE,
            )
        if booking is None:
            return FinishWashResult(
                outcome=FinishOutcome.FAILED,
                payment_status=PaymentStatus.UNPAID,
                message="Could not determine current booking state",
                reason=FailureReason.NOT_FOUND,
            )

        state = booking_state.parse_state(booking.get("state"))
        payment_status = determine_payment_status(booking.get("notes"), state)

        if state is BookingState.IN_PROGRESS and payment_status is PaymentStatus.UNPAID:
            if choice is None:
                return FinishWashResult(
                    outcome=FinishOutcome.PAYMENT_DECISION_REQUIRED,
                    payment_status=payment_status,
                    choices=list(FINISH_CHOICES),
                    message="Payment has not been completed for this booking",
                )
            if choice is FinishChoice.PAY_NOW:
                return FinishWashResult(
                    outcome=FinishOutcome.COLLECT_PAYMENT,
                    payment_status=payment_status,
                    message="Please complete payment first",
                )
            if choice is FinishChoice.CANCEL:
                return FinishWashResult(
                    outcome=FinishOutcome.NO_ACTION,
                    payment_status=payment_status,
                    message="No action taken",
                )

        result = await self.state_manager.transition_state(booking_id, BookingAction.FINISH)
        if not result.success:
            return FinishWashResult(
                outcome=FinishOutcome.FAILED,
                payment_status=payment_status,
                message=result.error or "Failed to update booking state",
                reason=result.reason,
            )

        notes = await self._append_to_notes(
            booking_id, format_status_note(result.new_state, datetime.now(UTC))
        )
        if notes is not None:
            payment_status = determine_payment_status(notes, result.new_state)

        if payment_status is PaymentStatus.PAID:
            outcome, message = FinishOutcome.FINISHED_PAID, "Wash finished. Payment status: PAID"
        else:
            outcome, message = (
                FinishOutcome.FINISHED_UNPAID,
                "Wash finished. Payment status: UNPAID (pay later)",
            )
        return FinishWashResult(
            outcome=outcome,
            payment_status=payment_status,
            new_state=result.new_state,
            message=message,
        )

    def summarize(self, booking: dict) -> BookingSummary:
        """Dashboard summary of a booking record."""
        state = booking_state.parse_state(booking.get("state"))
        if state is None:
            logger.warning(
                f"Booking {booking['id']} has unknown state {booking.get('state')!r}, "
                "summarizing as draft"
            )
            state = booking_state.INITIAL_STATE
        notes = booking.get("notes")
        return BookingSummary(
            booking_id=booking["id"],
            state=state,
            state_label=booking_state.get_state_display_info(state).label,
            payment_status=determine_payment_status(notes, state),
            show_unpaid_badge=should_show_unpaid_badge(notes, state),
            total_price=Decimal(str(booking.get("total_price") or 0)),
            valid_actions=booking_state.get_valid_actions(state),
        )

    async def get_booking_summary(self, booking_id: int) -> BookingSummary | None:
        try:
            booking = await self._get_booking(booking_id)
        except RecordStoreError as e:
            logger.warning(f"Could not read booking {booking_id} for summary: {e}")
            return None
        return self.summarize(booking) if booking else None

    async def list_booking_summaries(self, limit: int = 50) -> list[BookingSummary]:
        """Most recent bookings first."""
        try:
            rows = await self.store.select(
                BOOKINGS, order_by="created_at", descending=True, limit=limit
            )
        except RecordStoreError as e:
            logger.warning(f"Could not list bookings: {e}")
            return []
        return [self.summarize(row) for row in rows]
