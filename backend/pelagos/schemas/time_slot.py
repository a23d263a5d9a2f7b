"""
Pydantic schemas for time-slot availability.
"""

from datetime import date, time
from typing import Optional
from pydantic import BaseModel


class TimeSlotAvailability(BaseModel):
    id: str
    slot_date: Optional[date]
    start_time: Optional[time]
    end_time: Optional[time]
    capacity: int
    seats_left: int
    status: str
    cached: bool = False

    model_config = {"from_attributes": True}
