"""
Pydantic schemas for the cleanup outbox operator endpoints.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel


class CleanupTaskResponse(BaseModel):
    id: int
    booking_id: str
    kind: str
    time_slot_id: Optional[str]
    attempts: int
    last_error: Optional[str]
    completed_at: Optional[datetime]
    created_at: datetime

    model_config = {"from_attributes": True}


class DrainResponse(BaseModel):
    attempted: int
    completed: int
    failed: int
