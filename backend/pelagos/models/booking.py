"""
Booking model: one customer's reservation of a seat in a time slot.

Key design decisions:
- `status` tracks the booking lifecycle, `payment_status` the money side.
  payment_status is 'paid' exactly when status is paid_deposit or completed.
- Rows are created by the hold step (pending_hold/unpaid) and only ever
  updated by the reconciliation flow; they are never deleted here.
- `booking_code` is the human-readable reference shown to the customer.
"""

import uuid

from sqlalchemy import Column, Integer, String, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship

from pelagos.db.base import Base, TimestampMixin

PENDING_HOLD = "pending_hold"
PAID_DEPOSIT = "paid_deposit"
EXPIRED = "expired"
CANCELLED = "cancelled"
COMPLETED = "completed"

BOOKING_STATUSES = (PENDING_HOLD, PAID_DEPOSIT, EXPIRED, CANCELLED, COMPLETED)
PAYMENT_STATUSES = ("unpaid", "pending", "paid")


def _in_clause(column: str, values: tuple) -> str:
    return f"{column} IN ({', '.join(repr(v) for v in values)})"


class Booking(Base, TimestampMixin):
    __tablename__ = "bookings"

    id = Column(String(64), primary_key=True, default=lambda: str(uuid.uuid4()))
    booking_code = Column(String(32), unique=True, index=True, nullable=True)
    user_id = Column(String(64), nullable=False, index=True)
    time_slot_id = Column(String(64), ForeignKey("time_slots.id"), nullable=True, index=True)
    status = Column(String(20), nullable=False, default=PENDING_HOLD)
    payment_status = Column(String(20), nullable=False, default="unpaid")
    customer_name = Column(String(255), nullable=True)
    customer_email = Column(String(255), nullable=True)
    participants = Column(Integer, nullable=False, default=1)
    amount = Column(Integer, nullable=True)  # minor units

    time_slot = relationship("TimeSlot", back_populates="bookings")
    payments = relationship("Payment", back_populates="booking")

    __table_args__ = (
        CheckConstraint(_in_clause("status", BOOKING_STATUSES), name="check_booking_status"),
        CheckConstraint(_in_clause("payment_status", PAYMENT_STATUSES), name="check_booking_payment_status"),
    )

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, code={self.booking_code}, status={self.status}/{self.payment_status})>"
