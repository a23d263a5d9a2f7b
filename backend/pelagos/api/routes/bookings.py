"""
Booking payment state, polled by the client after checkout.
"""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from pelagos.db.session import get_db
from pelagos.models.hold import Hold
from pelagos.models.payment import Payment
from pelagos.schemas.booking import BookingPaymentResponse, PaymentStateResponse
from pelagos.services.booking_transitions import get_owned_booking
from pelagos.core.security import get_current_user_id

router = APIRouter(prefix="/bookings", tags=["Bookings"])


@router.get("/{booking_id}/payment", response_model=BookingPaymentResponse)
async def get_booking_payment(
    booking_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Current booking status, payment records and whether the hold is still in place."""
    booking = await get_owned_booking(db, booking_id, user_id)
    if not booking:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Booking not found",
        )

    payments = await db.execute(
        select(Payment)
        .where(Payment.booking_id == booking_id)
        .order_by(Payment.created_at.desc())
    )
    hold = await db.scalar(select(Hold.id).where(Hold.booking_id == booking_id))

    return BookingPaymentResponse(
        booking_id=booking.id,
        booking_code=booking.booking_code,
        status=booking.status,
        payment_status=booking.payment_status,
        time_slot_id=booking.time_slot_id,
        hold_active=hold is not None,
        payments=[PaymentStateResponse.model_validate(p) for p in payments.scalars().all()],
    )
