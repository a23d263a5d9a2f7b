"""
Seat ledger: the remaining-capacity counter on a time slot.

The decrement is a single guarded statement rather than read-then-write:

  UPDATE time_slots SET seats_left = seats_left - 1
  WHERE id = :slot_id AND seats_left > 0

Two concurrent payments for the last seat both issue the statement; the
row lock serialises them and the second one no longer matches
`seats_left > 0`, so the counter stops at zero instead of going negative.

An exhausted ledger is logged, not raised. The customer has paid; a
bookkeeping edge case must not undo that.

Callers own the transaction and must only call this once per booking
(services.cleanup_queue guarantees that).
"""

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from pelagos.models.time_slot import TimeSlot
from pelagos.core.logging import get_logger
from pelagos.core.metrics import record_seat_update

logger = get_logger(__name__)


async def decrement_one_seat(db: AsyncSession, time_slot_id: str) -> bool:
    """Take one seat from the slot. Returns False if none were left."""
    result = await db.execute(
        update(TimeSlot)
        .where(TimeSlot.id == time_slot_id, TimeSlot.seats_left > 0)
        .values(seats_left=TimeSlot.seats_left - 1)
        .execution_options(synchronize_session=False)
    )

    decremented = result.rowcount == 1
    record_seat_update(decremented)

    if decremented:
        logger.info("seat_decremented", time_slot_id=time_slot_id)
    else:
        logger.warning("seat_ledger_exhausted", time_slot_id=time_slot_id)
    return decremented
