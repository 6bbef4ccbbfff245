"""Database models."""

from washpos.models.booking import Booking, BookingStateTransition, Transaction

__all__ = [
    # Booking
    "Booking",
    "BookingStateTransition",
    # Payment
    "Transaction",
]
