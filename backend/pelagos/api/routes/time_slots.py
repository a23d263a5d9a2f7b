"""
Public seat availability with Redis caching.
"""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from pelagos.db.session import get_db
from pelagos.models.time_slot import TimeSlot
from pelagos.schemas.time_slot import TimeSlotAvailability
from pelagos.services.cache_service import get_cached_slot, set_cached_slot
from pelagos.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/time-slots", tags=["Time Slots"])


@router.get("/{slot_id}", response_model=TimeSlotAvailability)
async def get_time_slot(
    slot_id: str,
    db: AsyncSession = Depends(get_db),
):
    """
    Seats left for a slot. Cached briefly; the cache entry is dropped
    whenever a settled payment takes a seat.
    """
    cached = await get_cached_slot(slot_id)
    if cached:
        logger.info("time_slot_cache_hit", slot_id=slot_id)
        cached["cached"] = True
        return TimeSlotAvailability(**cached)

    slot = await db.get(TimeSlot, slot_id)
    if not slot:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Time slot {slot_id} not found",
        )

    availability = TimeSlotAvailability.model_validate(slot)
    await set_cached_slot(slot_id, availability.model_dump(mode="json"))
    return availability
