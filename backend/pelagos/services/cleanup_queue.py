"""
Outbox for the best-effort steps that follow a payment transition.

WHY AN OUTBOX
=============

Seat decrement and hold release must happen at least once after a payment
settles, but must not fail the request that settled it. The webhook path
gets redeliveries from the gateway; the client-verification path gets
nothing. So the steps are recorded as `cleanup_tasks` rows inside the same
transaction that flips the payment record, and executed:

  1. inline, right after the commit, bounded by CLEANUP_INLINE_TIMEOUT_SECONDS
  2. by the periodic drain in main.py for anything left pending

Exactly-once execution per task:
  - UNIQUE (booking_id, kind): a booking owns at most one seat decrement
  - run_task claims a row with
        UPDATE cleanup_tasks SET completed_at = now()
        WHERE id = :id AND completed_at IS NULL
    and performs the step in the same transaction. If the step fails the
    claim rolls back with it; a concurrent runner sees rowcount 0 and skips.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from pelagos.models.booking import Booking
from pelagos.models.cleanup_task import CleanupTask, SEAT_DECREMENT, HOLD_RELEASE
from pelagos.services.seat_ledger import decrement_one_seat
from pelagos.services.hold_releaser import release_hold
from pelagos.services.cache_service import invalidate_slot_cache
from pelagos.core.logging import get_logger
from pelagos.core.metrics import record_cleanup_run

logger = get_logger(__name__)

DONE = "done"
FAILED = "failed"
SKIPPED = "skipped"


@dataclass
class DrainResult:
    attempted: int = 0
    completed: int = 0
    failed: int = 0


async def enqueue(
    db: AsyncSession,
    booking_id: str,
    kind: str,
    time_slot_id: Optional[str] = None,
) -> Optional[CleanupTask]:
    """Record a step for the booking unless one of that kind already exists."""
    existing = await db.execute(
        select(CleanupTask).where(
            CleanupTask.booking_id == booking_id,
            CleanupTask.kind == kind,
        )
    )
    if existing.scalar_one_or_none():
        logger.info("cleanup_task_exists", booking_id=booking_id, kind=kind)
        return None

    task = CleanupTask(booking_id=booking_id, kind=kind, time_slot_id=time_slot_id)
    db.add(task)
    await db.flush()
    return task


async def enqueue_success_cleanup(
    db: AsyncSession,
    booking: Booking,
    take_seat: bool = True,
) -> None:
    if take_seat and booking.time_slot_id:
        await enqueue(db, booking.id, SEAT_DECREMENT, booking.time_slot_id)
    await enqueue(db, booking.id, HOLD_RELEASE)


async def enqueue_failure_cleanup(db: AsyncSession, booking: Booking) -> None:
    await enqueue(db, booking.id, HOLD_RELEASE)


async def run_task(db: AsyncSession, task_id: int) -> str:
    task = await db.get(CleanupTask, task_id, populate_existing=True)
    if task is None or task.completed_at is not None:
        return SKIPPED

    # plain values: the ORM instance is expired by a rollback below
    kind = task.kind
    booking_id = task.booking_id
    time_slot_id = task.time_slot_id

    decremented = False
    try:
        claim = await db.execute(
            update(CleanupTask)
            .where(CleanupTask.id == task_id, CleanupTask.completed_at.is_(None))
            .values(
                completed_at=datetime.now(timezone.utc),
                attempts=CleanupTask.attempts + 1,
                last_error=None,
            )
            .execution_options(synchronize_session=False)
        )
        if claim.rowcount == 0:
            await db.rollback()
            record_cleanup_run(kind, SKIPPED)
            return SKIPPED

        if kind == SEAT_DECREMENT:
            decremented = await decrement_one_seat(db, time_slot_id)
        elif kind == HOLD_RELEASE:
            await release_hold(db, booking_id)

        await db.commit()
    except Exception as e:
        await db.rollback()
        logger.error(
            "cleanup_task_failed",
            task_id=task_id,
            booking_id=booking_id,
            kind=kind,
            error=str(e),
        )
        record_cleanup_run(kind, FAILED)
        await _record_failure(db, task_id, str(e))
        return FAILED

    if decremented:
        await invalidate_slot_cache(time_slot_id)

    record_cleanup_run(kind, DONE)
    logger.info("cleanup_task_done", task_id=task_id, booking_id=booking_id, kind=kind)
    return DONE


async def _record_failure(db: AsyncSession, task_id: int, error: str) -> None:
    try:
        await db.execute(
            update(CleanupTask)
            .where(CleanupTask.id == task_id, CleanupTask.completed_at.is_(None))
            .values(attempts=CleanupTask.attempts + 1, last_error=error[:1000])
            .execution_options(synchronize_session=False)
        )
        await db.commit()
    except Exception as e:
        await db.rollback()
        logger.error("cleanup_failure_not_recorded", task_id=task_id, error=str(e))


async def _pending_ids(
    db: AsyncSession,
    booking_id: Optional[str] = None,
    max_attempts: Optional[int] = None,
    limit: Optional[int] = None,
) -> list[int]:
    query = select(CleanupTask.id).where(CleanupTask.completed_at.is_(None))
    if booking_id is not None:
        query = query.where(CleanupTask.booking_id == booking_id)
    if max_attempts is not None:
        query = query.where(CleanupTask.attempts < max_attempts)
    query = query.order_by(CleanupTask.id.asc())
    if limit is not None:
        query = query.limit(limit)
    result = await db.execute(query)
    return list(result.scalars().all())


async def _drain(db: AsyncSession, task_ids: list[int]) -> DrainResult:
    outcome = DrainResult()
    for task_id in task_ids:
        result = await run_task(db, task_id)
        if result == SKIPPED:
            continue
        outcome.attempted += 1
        if result == DONE:
            outcome.completed += 1
        else:
            outcome.failed += 1
    return outcome


async def drain_for_booking(db: AsyncSession, booking_id: str, timeout: float) -> DrainResult:
    """
    Run a booking's pending steps right after its payment settled.
    Never raises: whatever does not finish in time stays pending for the
    periodic drain.
    """
    try:
        task_ids = await _pending_ids(db, booking_id=booking_id)
        return await asyncio.wait_for(_drain(db, task_ids), timeout=timeout)
    except asyncio.TimeoutError:
        await db.rollback()
        logger.warning("cleanup_deferred", booking_id=booking_id, reason="timeout", timeout=timeout)
    except Exception as e:
        await db.rollback()
        logger.error("cleanup_deferred", booking_id=booking_id, reason="error", error=str(e))
    return DrainResult()


async def drain_pending(db: AsyncSession, limit: int, max_attempts: int) -> DrainResult:
    task_ids = await _pending_ids(db, max_attempts=max_attempts, limit=limit)
    outcome = await _drain(db, task_ids)

    stuck = await db.scalar(
        select(func.count())
        .select_from(CleanupTask)
        .where(CleanupTask.completed_at.is_(None), CleanupTask.attempts >= max_attempts)
    )
    if stuck:
        logger.warning("cleanup_tasks_stuck", count=stuck, max_attempts=max_attempts)

    if outcome.attempted:
        logger.info(
            "cleanup_drain_finished",
            attempted=outcome.attempted,
            completed=outcome.completed,
            failed=outcome.failed,
        )
    return outcome


async def list_tasks(db: AsyncSession, pending_only: bool = True, limit: int = 100) -> list[CleanupTask]:
    query = select(CleanupTask)
    if pending_only:
        query = query.where(CleanupTask.completed_at.is_(None))
    result = await db.execute(query.order_by(CleanupTask.id.desc()).limit(limit))
    return list(result.scalars().all())
