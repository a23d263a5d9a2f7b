"""
Hold release once a booking's fate is known.
"""

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from pelagos.models.hold import Hold
from pelagos.core.logging import get_logger

logger = get_logger(__name__)


async def release_hold(db: AsyncSession, booking_id: str) -> bool:
    """Delete the booking's hold. A missing hold is fine; returns whether one was removed."""
    result = await db.execute(
        delete(Hold)
        .where(Hold.booking_id == booking_id)
        .execution_options(synchronize_session=False)
    )
    released = result.rowcount > 0
    logger.info("hold_released" if released else "hold_already_released", booking_id=booking_id)
    return released
