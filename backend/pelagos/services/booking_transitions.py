"""
Booking lifecycle transitions driven by payment outcomes.

Every transition is a conditional UPDATE on the current status, so applying
the same transition twice is a no-op and a booking can never move backward:

  pending_hold | expired  --confirm_paid-->  paid_deposit / paid
  pending_hold            --mark_expired-->  expired

paid_deposit and completed bookings are left alone by both. A cancelled
booking is never resurrected by a late payment; that case is logged so an
operator can refund it.

A booking that cannot be found is a data-integrity problem (the payment
record points at it) and is reported as 404.
"""

import enum
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from fastapi import HTTPException, status

from pelagos.models.booking import (
    Booking,
    PENDING_HOLD,
    PAID_DEPOSIT,
    EXPIRED,
    CANCELLED,
    COMPLETED,
)
from pelagos.core.logging import get_logger

logger = get_logger(__name__)

CONFIRMABLE = (PENDING_HOLD, EXPIRED)
ALREADY_PAID = (PAID_DEPOSIT, COMPLETED)


class BookingTransition(str, enum.Enum):
    APPLIED = "applied"
    ALREADY_APPLIED = "already_applied"
    BLOCKED = "blocked"


async def get_owned_booking(db: AsyncSession, booking_id: str, user_id: str) -> Optional[Booking]:
    """Load a booking only if it belongs to the given user."""
    result = await db.execute(
        select(Booking).where(
            Booking.id == booking_id,
            Booking.user_id == user_id,
        )
    )
    return result.scalar_one_or_none()


async def _reload(db: AsyncSession, booking_id: str) -> Booking:
    result = await db.execute(
        select(Booking)
        .where(Booking.id == booking_id)
        .execution_options(populate_existing=True)
    )
    booking = result.scalar_one_or_none()
    if booking is None:
        logger.error("booking_missing_for_payment", booking_id=booking_id)
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Booking not found",
        )
    return booking


async def confirm_paid(db: AsyncSession, booking_id: str) -> tuple[BookingTransition, Booking]:
    update_result = await db.execute(
        update(Booking)
        .where(Booking.id == booking_id, Booking.status.in_(CONFIRMABLE))
        .values(status=PAID_DEPOSIT, payment_status="paid")
        .execution_options(synchronize_session=False)
    )
    booking = await _reload(db, booking_id)

    if update_result.rowcount == 1:
        logger.info("booking_confirmed", booking_id=booking_id, booking_code=booking.booking_code)
        return BookingTransition.APPLIED, booking

    if booking.status in ALREADY_PAID:
        logger.info("booking_already_confirmed", booking_id=booking_id, current_status=booking.status)
        return BookingTransition.ALREADY_APPLIED, booking

    # cancelled: money was taken for a booking nobody wants any more
    logger.warning(
        "booking_confirm_blocked",
        booking_id=booking_id,
        current_status=booking.status,
    )
    return BookingTransition.BLOCKED, booking


async def mark_expired(db: AsyncSession, booking_id: str) -> tuple[BookingTransition, Booking]:
    update_result = await db.execute(
        update(Booking)
        .where(Booking.id == booking_id, Booking.status == PENDING_HOLD)
        .values(status=EXPIRED)
        .execution_options(synchronize_session=False)
    )
    booking = await _reload(db, booking_id)

    if update_result.rowcount == 1:
        logger.info("booking_expired", booking_id=booking_id)
        return BookingTransition.APPLIED, booking

    if booking.status in (EXPIRED, CANCELLED):
        return BookingTransition.ALREADY_APPLIED, booking

    logger.info("booking_expire_skipped", booking_id=booking_id, current_status=booking.status)
    return BookingTransition.BLOCKED, booking
