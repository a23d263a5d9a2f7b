"""
Hold: temporary reservation blocking a seat while the customer pays.
Created by the hold step, deleted once the booking is paid or has failed.
"""

import uuid

from sqlalchemy import Column, String, DateTime, ForeignKey, func

from pelagos.db.base import Base


class Hold(Base):
    __tablename__ = "holds"

    id = Column(String(64), primary_key=True, default=lambda: str(uuid.uuid4()))
    booking_id = Column(String(64), ForeignKey("bookings.id"), nullable=False, unique=True, index=True)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    def __repr__(self) -> str:
        return f"<Hold(booking={self.booking_id}, expires_at={self.expires_at})>"
