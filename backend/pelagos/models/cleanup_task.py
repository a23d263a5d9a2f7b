"""
Outbox row for a best-effort step that follows a payment transition.

Rows are written in the same transaction as the payment/booking update, so
a committed transition always has its cleanup recorded. The unique
(booking_id, kind) pair means a booking can only ever own one seat
decrement and one hold release.
"""

from sqlalchemy import Column, Integer, String, Text, DateTime, UniqueConstraint, CheckConstraint, Index

from pelagos.db.base import Base, TimestampMixin

SEAT_DECREMENT = "seat_decrement"
HOLD_RELEASE = "hold_release"


class CleanupTask(Base, TimestampMixin):
    __tablename__ = "cleanup_tasks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    booking_id = Column(String(64), nullable=False, index=True)
    kind = Column(String(32), nullable=False)
    time_slot_id = Column(String(64), nullable=True)
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("booking_id", "kind", name="uq_cleanup_booking_kind"),
        CheckConstraint("kind IN ('seat_decrement', 'hold_release')", name="check_cleanup_kind"),
        Index("ix_cleanup_tasks_pending", "completed_at", "attempts"),
    )

    def __repr__(self) -> str:
        return f"<CleanupTask(id={self.id}, booking={self.booking_id}, kind={self.kind}, done={self.completed_at is not None})>"
