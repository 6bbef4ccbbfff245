"""Booking-related database models."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from washpos.database import Base
from washpos.domain.booking_state import INITIAL_STATE


class Booking(Base):
    """Car-wash booking."""

    __tablename__ = "bookings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    customer_id: Mapped[int | None] = mapped_column(Integer, index=True)
    vehicle_id: Mapped[int | None] = mapped_column(Integer, index=True)

    # Free text: staff commentary plus payment/status annotations
    notes: Mapped[str | None] = mapped_column(Text)
    total_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"))

    # Status
    state: Mapped[str] = mapped_column(
        String(20), default=INITIAL_STATE.value, nullable=False, index=True
    )  # draft, booked, in_progress, departed, completed, cancelled

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    # Relationships
    state_transitions: Mapped[list["BookingStateTransition"]] = relationship(
        "BookingStateTransition", back_populates="booking"
    )
    transactions: Mapped[list["Transaction"]] = relationship(
        "Transaction", back_populates="booking"
    )


class BookingStateTransition(Base):
    """Append-only audit row written for every state change."""

    __tablename__ = "booking_state_transitions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    booking_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("bookings.id"), nullable=False, index=True
    )
    old_state: Mapped[str | None] = mapped_column(String(20))
    new_state: Mapped[str] = mapped_column(String(20), nullable=False)
    action: Mapped[str | None] = mapped_column(String(30))
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), index=True
    )

    # Relationships
    booking: Mapped["Booking"] = relationship("Booking", back_populates="state_transitions")


class Transaction(Base):
    """Completed payment taken for a booking."""

    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    booking_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("bookings.id"), nullable=False, index=True
    )
    customer_id: Mapped[int | None] = mapped_column(Integer)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    payment_method: Mapped[str] = mapped_column(String(30), nullable=False)  # Cash, Card, Digital
    status: Mapped[str] = mapped_column(String(20), default="completed")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    # Relationships
    booking: Mapped["Booking"] = relationship("Booking", back_populates="transactions")
