from pelagos.schemas.booking import BookingPaymentResponse, PaymentStateResponse
from pelagos.schemas.payment import VerifyPaymentRequest, VerifyPaymentResponse
from pelagos.schemas.webhook import WebhookEvent, WebhookAck
from pelagos.schemas.time_slot import TimeSlotAvailability
from pelagos.schemas.cleanup import CleanupTaskResponse, DrainResponse

__all__ = [
    "BookingPaymentResponse", "PaymentStateResponse",
    "VerifyPaymentRequest", "VerifyPaymentResponse",
    "WebhookEvent", "WebhookAck",
    "TimeSlotAvailability",
    "CleanupTaskResponse", "DrainResponse",
]
