"""
Pydantic schemas for booking and payment state views.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel


class PaymentStateResponse(BaseModel):
    order_id: str
    status: str
    is_verified: bool
    verified_at: Optional[datetime]
    amount: int
    currency: str

    model_config = {"from_attributes": True}


class BookingPaymentResponse(BaseModel):
    booking_id: str
    booking_code: Optional[str]
    status: str
    payment_status: str
    time_slot_id: Optional[str]
    hold_active: bool
    payments: list[PaymentStateResponse]
