"""
Time slot with a seat ledger.

`seats_left` is the only contended value in the payment flow. It is
changed through a guarded UPDATE (see services.seat_ledger) and the CHECK
constraints below are the last line of defence against overselling.
"""

import uuid

from sqlalchemy import Column, Integer, String, Date, Time, CheckConstraint, Index
from sqlalchemy.orm import relationship

from pelagos.db.base import Base, TimestampMixin


class TimeSlot(Base, TimestampMixin):
    __tablename__ = "time_slots"

    id = Column(String(64), primary_key=True, default=lambda: str(uuid.uuid4()))
    school_id = Column(String(64), nullable=True, index=True)
    sport_id = Column(String(64), nullable=True)
    slot_date = Column(Date, nullable=True)
    start_time = Column(Time, nullable=True)
    end_time = Column(Time, nullable=True)
    capacity = Column(Integer, nullable=False)
    seats_left = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default="open")

    bookings = relationship("Booking", back_populates="time_slot")

    __table_args__ = (
        CheckConstraint("capacity > 0", name="check_slot_capacity_positive"),
        CheckConstraint("seats_left >= 0", name="check_seats_left_non_negative"),
        CheckConstraint("seats_left <= capacity", name="check_seats_left_lte_capacity"),
        Index("ix_time_slots_date", "slot_date"),
    )

    def __repr__(self) -> str:
        return f"<TimeSlot(id={self.id}, seats={self.seats_left}/{self.capacity})>"
