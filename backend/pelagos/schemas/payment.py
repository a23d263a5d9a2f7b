"""
Pydantic schemas for the client-verification endpoint.

Request fields are optional at the schema level so that a missing field is
answered with the documented 400 rather than a validation 422.
"""

from typing import Optional
from pydantic import BaseModel, Field


class VerifyPaymentRequest(BaseModel):
    order_id: Optional[str] = Field(None, alias="orderId")
    payment_id: Optional[str] = Field(None, alias="paymentId")
    signature: Optional[str] = None
    booking_id: Optional[str] = Field(None, alias="bookingId")

    model_config = {"populate_by_name": True}

    def missing_fields(self) -> list[str]:
        fields = {
            "orderId": self.order_id,
            "paymentId": self.payment_id,
            "signature": self.signature,
            "bookingId": self.booking_id,
        }
        return [name for name, value in fields.items() if not value]


class VerifyPaymentResponse(BaseModel):
    success: bool = True
    booking_status: str = Field("confirmed", serialization_alias="bookingStatus")
    payment_id: str = Field(..., serialization_alias="paymentId")
    booking_code: Optional[str] = Field(None, serialization_alias="bookingCode")
