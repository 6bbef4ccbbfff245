"""Payment status derived from booking notes.

Bookings carry no payment-status column. Payment is recorded by appending
annotations to the free-text ``notes`` field, e.g.::

    Payment Status: unpaid
    Status updated to in_progress at 2025-07-02 09:54:58
    Payment Status: paid | Payment Method: Cash | Amount Paid: $66.55 | Payment Date: ...

Notes are append-only, so a single booking may hold both markers. The
resolver below settles that deterministically: paid wins.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from washpos.domain.booking_state import BookingState

PAID_MARKER = "Payment Status: paid"
UNPAID_MARKER = "Payment Status: unpaid"
METHOD_MARKER = "Method:"

# "finished" predates the departed/completed split and still appears in old notes
INFERRED_PAID_STATES = frozenset(
    {BookingState.IN_PROGRESS.value, "finished", BookingState.COMPLETED.value}
)

NOTE_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


class PaymentStatus(str, Enum):
    """Binary payment status of a booking."""

    PAID = "paid"
    UNPAID = "unpaid"


def _state_name(state: BookingState | str | None) -> str:
    if state is None:
        return ""
    if isinstance(state, BookingState):
        return state.value
    return str(state)


def determine_payment_status(
    notes: str | None,
    state: BookingState | str | None,
) -> PaymentStatus:
    """Resolve paid/unpaid from notes text and lifecycle state.

    First match wins:
    1. explicit paid marker (even if an unpaid marker is also present)
    2. explicit unpaid marker
    3. a payment method fragment while in_progress/finished/completed
    4. unpaid
    """
    text = notes or ""

    if PAID_MARKER in text:
        return PaymentStatus.PAID
    if UNPAID_MARKER in text:
        return PaymentStatus.UNPAID
    if _state_name(state) in INFERRED_PAID_STATES and METHOD_MARKER in text:
        return PaymentStatus.PAID

    return PaymentStatus.UNPAID


def should_show_unpaid_badge(notes: str | None, state: BookingState | str | None) -> bool:
    """Whether summary views show the UNPAID indicator.

    Applies in every lifecycle state, completed included.
    """
    return determine_payment_status(notes, state) is PaymentStatus.UNPAID


def has_payment_marker(notes: str | None) -> bool:
    text = notes or ""
    return PAID_MARKER in text or UNPAID_MARKER in text


def format_payment_annotation(
    method: str,
    amount: Decimal | float | int,
    paid_at: datetime,
) -> str:
    """Build the annotation appended to notes when a payment is taken."""
    return (
        f"{PAID_MARKER} | Payment Method: {method} | "
        f"Amount Paid: ${Decimal(str(amount)):.2f} | "
        f"Payment Date: {paid_at.strftime(NOTE_TIMESTAMP_FORMAT)}"
    )


def format_status_note(state: BookingState | str, at: datetime) -> str:
    return f"Status updated to {_state_name(state)} at {at.strftime(NOTE_TIMESTAMP_FORMAT)}"


def append_note(notes: str | None, line: str) -> str:
    """Append a line to notes. Existing markers are left untouched."""
    if not notes:
        return line
    return f"{notes}\n{line}"
