"""Booking lifecycle service.

Owns the current state of a booking (the ``state`` column) and the
optional append-only transition log. Every public coroutine returns a
result instead of raising; UI paths call these on every render.
"""

import logging
from datetime import UTC, datetime

from washpos.config import Settings, get_settings
from washpos.core.exceptions import RecordStoreError
from washpos.domain import booking_state
from washpos.domain.booking_state import BookingAction, BookingState, INITIAL_STATE
from washpos.schemas.booking import FailureReason, StateTransitionRecord, TransitionResult
from washpos.services.record_store import BOOKINGS, STATE_TRANSITIONS, RecordStore

logger = logging.getLogger(__name__)


def _action_name(action: BookingAction | str) -> str:
    return action.value if isinstance(action, BookingAction) else str(action)


class BookingStateManager:
    """Service for validating and persisting booking state transitions."""

    def __init__(self, store: RecordStore, settings: Settings | None = None) -> None:
        self.store = store
        self.settings = settings or get_settings()

    @property
    def history_enabled(self) -> bool:
        return self.settings.booking_state_history_enabled

    async def get_current_state(self, booking_id: int) -> BookingState:
        """Current state of a booking, or ``draft`` when it cannot be resolved.

        Missing bookings, unknown stored values and store failures are logged
        and mapped to the initial state.
        """
        try:
            rows = await self.store.select(BOOKINGS, {"id": booking_id}, limit=1)
        except RecordStoreError as e:
            logger.warning(f"Could not read state of booking {booking_id}, defaulting to draft: {e}")
            return INITIAL_STATE

        if not rows:
            logger.warning(f"Booking {booking_id} not found, defaulting to draft")
            return INITIAL_STATE

        state = booking_state.parse_state(rows[0].get("state"))
        if state is None:
            logger.warning(
                f"Booking {booking_id} has unknown state {rows[0].get('state')!r}, defaulting to draft"
            )
            return INITIAL_STATE
        return state

    def is_valid_transition(self, current_state: BookingState, action: str) -> bool:
        return booking_state.is_valid_transition(current_state, action)

    def get_valid_actions(self, current_state: BookingState) -> list[BookingAction]:
        return booking_state.get_valid_actions(current_state)

    def get_all_states(self) -> list[BookingState]:
        return booking_state.get_all_states()

    async def _load_state_for_write(
        self, booking_id: int
    ) -> tuple[BookingState | None, FailureReason | None]:
        """Strict read used before a write: no fallback to draft."""
        try:
            rows = await self.store.select(BOOKINGS, {"id": booking_id}, limit=1)
        except RecordStoreError as e:
            logger.error(f"Could not read booking {booking_id} before transition: {e}")
            return None, FailureReason.PERSISTENCE
        if not rows:
            logger.warning(f"Transition requested for missing booking {booking_id}")
            return None, FailureReason.NOT_FOUND
        state = booking_state.parse_state(rows[0].get("state"))
        if state is None:
            logger.warning(f"Booking {booking_id} has unknown state {rows[0].get('state')!r}")
            return None, FailureReason.UNKNOWN_STATE
        return state, None

    async def transition_state(self, booking_id: int, action: str) -> TransitionResult:
        """Apply ``action`` to a booking.

        The write is conditional on the state read just before it, so a
        concurrent transition that lands first makes this one fail instead of
        silently overwriting it.
        """
        action = _action_name(action)
        current_state, reason = await self._load_state_for_write(booking_id)
        if current_state is None:
            return TransitionResult(
                success=False,
                error="Could not determine current booking state",
                reason=reason,
            )

        new_state = booking_state.resolve_next_state(current_state, action)
        if new_state is None:
            logger.info(f"Rejected '{action}' for booking {booking_id} in state '{current_state.value}'")
            return TransitionResult(
                success=False,
                error=f"Transition '{action}' is not allowed from state '{current_state.value}'",
                reason=FailureReason.INVALID_TRANSITION,
            )

        now = datetime.now(UTC)
        try:
            updated = await self.store.update(
                BOOKINGS,
                {"id": booking_id, "state": current_state.value},
                {"state": new_state.value, "updated_at": now},
            )
        except RecordStoreError as e:
            logger.error(f"Failed to persist transition of booking {booking_id}: {e}")
            return TransitionResult(
                success=False,
                error="Failed to update booking state",
                reason=FailureReason.PERSISTENCE,
            )

        if not updated:
            logger.warning(
                f"Lost update on booking {booking_id}: state moved away from '{current_state.value}'"
            )
            return TransitionResult(
                success=False,
                error=(
                    f"Booking state changed concurrently (expected '{current_state.value}'); "
                    "reload and retry"
                ),
                reason=FailureReason.CONFLICT,
            )

        await self._record_transition(booking_id, current_state, new_state, action, now)
        logger.info(
            f"Booking {booking_id}: {current_state.value} --{action}--> {new_state.value}"
        )
        return TransitionResult(success=True, new_state=new_state)

    async def initialize_booking(self, booking_id: int) -> TransitionResult:
        """Put a newly created booking into ``draft``."""
        now = datetime.now(UTC)
        try:
            updated = await self.store.update(
                BOOKINGS,
                {"id": booking_id},
                {"state": INITIAL_STATE.value, "updated_at": now},
            )
        except RecordStoreError as e:
            logger.error(f"Failed to initialize state of booking {booking_id}: {e}")
            return TransitionResult(
                success=False,
                error="Failed to initialize booking state",
                reason=FailureReason.PERSISTENCE,
            )

        if not updated:
            logger.warning(f"Cannot initialize missing booking {booking_id}")
            return TransitionResult(
                success=False,
                error="Failed to initialize booking state",
                reason=FailureReason.NOT_FOUND,
            )

        await self._record_transition(booking_id, None, INITIAL_STATE, None, now)
        return TransitionResult(success=True, new_state=INITIAL_STATE)

    async def get_state_history(self, booking_id: int) -> list[StateTransitionRecord]:
        """Transitions of a booking, oldest first.

        Without the transition log the current state is returned as the only
        entry.
        """
        if not self.history_enabled:
            return await self._current_state_as_history(booking_id)

        try:
            rows = await self.store.select(
                STATE_TRANSITIONS, {"booking_id": booking_id}, order_by="timestamp"
            )
        except RecordStoreError as e:
            logger.warning(f"Could not read state history of booking {booking_id}: {e}")
            return []
        return [StateTransitionRecord.model_validate(row) for row in rows]

    async def _current_state_as_history(self, booking_id: int) -> list[StateTransitionRecord]:
        try:
            rows = await self.store.select(BOOKINGS, {"id": booking_id}, limit=1)
        except RecordStoreError as e:
            logger.warning(f"Could not read booking {booking_id}: {e}")
            return []
        if not rows:
            return []
        booking = rows[0]
        return [
            StateTransitionRecord(
                booking_id=booking_id,
                old_state=None,
                new_state=booking_state.parse_state(booking.get("state")) or INITIAL_STATE,
                timestamp=booking.get("updated_at") or booking.get("created_at"),
            )
        ]

    async def _record_transition(
        self,
        booking_id: int,
        old_state: BookingState | None,
        new_state: BookingState,
        action: str | None,
        timestamp: datetime,
    ) -> None:
        if not self.history_enabled:
            return
        try:
            await self.store.insert(
                STATE_TRANSITIONS,
                {
                    "booking_id": booking_id,
                    "old_state": old_state.value if old_state else None,
                    "new_state": new_state.value,
                    "action": action,
                    "timestamp": timestamp,
                },
            )
        except RecordStoreError as e:
            # The state change is already committed; the audit row is lost.
            logger.error(f"Failed to append transition log for booking {booking_id}: {e}")
