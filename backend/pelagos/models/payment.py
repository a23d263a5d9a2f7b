"""
Payment record: local bookkeeping for one gateway order.

The gateway order id (`order_id`) is the natural key used by both entry
points. Status moves created -> succeeded or created -> failed exactly once;
the conditional UPDATE in services.payment_store enforces it.
"""

import uuid

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship

from pelagos.db.base import Base, TimestampMixin

CREATED = "created"
SUCCEEDED = "succeeded"
FAILED = "failed"

TERMINAL_STATUSES = (SUCCEEDED, FAILED)


class Payment(Base, TimestampMixin):
    __tablename__ = "payments"

    id = Column(String(64), primary_key=True, default=lambda: str(uuid.uuid4()))
    booking_id = Column(String(64), ForeignKey("bookings.id"), nullable=False, index=True)
    order_id = Column(String(64), unique=True, index=True, nullable=False)
    gateway_payment_id = Column(String(64), nullable=True)
    amount = Column(Integer, nullable=False)  # minor units
    currency = Column(String(8), nullable=False, default="INR")
    provider = Column(String(32), nullable=False, default="razorpay")
    status = Column(String(20), nullable=False, default=CREATED)
    is_verified = Column(Boolean, nullable=False, default=False)
    verified_at = Column(DateTime(timezone=True), nullable=True)
    verified_by = Column(String(64), nullable=True)  # user id, or "webhook"

    booking = relationship("Booking", back_populates="payments")

    __table_args__ = (
        CheckConstraint("status IN ('created', 'succeeded', 'failed')", name="check_payment_status"),
        CheckConstraint("amount >= 0", name="check_payment_amount_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<Payment(order={self.order_id}, booking={self.booking_id}, status={self.status})>"
