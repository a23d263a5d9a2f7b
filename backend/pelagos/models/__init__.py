from pelagos.models.time_slot import TimeSlot
from pelagos.models.booking import Booking
from pelagos.models.payment import Payment
from pelagos.models.hold import Hold
from pelagos.models.cleanup_task import CleanupTask

__all__ = ["TimeSlot", "Booking", "Payment", "Hold", "CleanupTask"]
