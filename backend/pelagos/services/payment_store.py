"""
Payment record access keyed by gateway order id.

IDEMPOTENCY GUARD
=================

The webhook and the client verification can arrive for the same order at
the same time, on different server instances. The only thing they share is
the database, so the "already processed?" question is answered by the
write itself:

  UPDATE payments SET status = 'succeeded', ...
  WHERE order_id = :order_id AND status = 'created'

Exactly one caller sees rowcount == 1 and owns every downstream side
effect (booking confirmation, seat decrement, hold release). Everyone else
sees rowcount == 0 and re-reads the row only to tell "already terminal"
apart from "no such order".

Under PostgreSQL READ COMMITTED a concurrent UPDATE on the same row blocks
until the first commits, then re-evaluates the WHERE clause against the new
row version, so the loser reliably gets zero rows.

Callers own the transaction: these functions never commit.
"""

import enum
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from pelagos.models.payment import Payment, CREATED, SUCCEEDED, FAILED
from pelagos.core.logging import get_logger
from pelagos.core.metrics import record_payment_transition

logger = get_logger(__name__)


class TransitionStatus(str, enum.Enum):
    APPLIED = "applied"
    ALREADY_TERMINAL = "already_terminal"
    NOT_FOUND = "not_found"


@dataclass
class TransitionResult:
    status: TransitionStatus
    payment: Optional[Payment] = None

    @property
    def applied(self) -> bool:
        return self.status is TransitionStatus.APPLIED


async def find_by_order_id(db: AsyncSession, order_id: str) -> Optional[Payment]:
    result = await db.execute(select(Payment).where(Payment.order_id == order_id))
    return result.scalar_one_or_none()


async def _reload(db: AsyncSession, order_id: str) -> Optional[Payment]:
    result = await db.execute(
        select(Payment)
        .where(Payment.order_id == order_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _transition(
    db: AsyncSession,
    order_id: str,
    target: str,
    values: dict,
) -> TransitionResult:
    update_result = await db.execute(
        update(Payment)
        .where(Payment.order_id == order_id, Payment.status == CREATED)
        .values(status=target, **values)
        .execution_options(synchronize_session=False)
    )

    payment = await _reload(db, order_id)

    if update_result.rowcount == 1:
        record_payment_transition(target, "applied")
        logger.info(
            "payment_transition_applied",
            order_id=order_id,
            booking_id=payment.booking_id,
            target=target,
        )
        return TransitionResult(TransitionStatus.APPLIED, payment)

    if payment is None:
        record_payment_transition(target, "not_found")
        logger.error("payment_record_missing", order_id=order_id, target=target)
        return TransitionResult(TransitionStatus.NOT_FOUND)

    record_payment_transition(target, "already_terminal")
    logger.info(
        "payment_already_terminal",
        order_id=order_id,
        current_status=payment.status,
        target=target,
    )
    return TransitionResult(TransitionStatus.ALREADY_TERMINAL, payment)


async def mark_succeeded(
    db: AsyncSession,
    order_id: str,
    verified_by: str,
    gateway_payment_id: Optional[str] = None,
    at: Optional[datetime] = None,
) -> TransitionResult:
    """Move a created payment to succeeded. Only the first caller wins."""
    return await _transition(
        db,
        order_id,
        SUCCEEDED,
        {
            "is_verified": True,
            "verified_at": at or datetime.now(timezone.utc),
            "verified_by": verified_by,
            "gateway_payment_id": gateway_payment_id,
        },
    )


async def mark_failed(
    db: AsyncSession,
    order_id: str,
    gateway_payment_id: Optional[str] = None,
) -> TransitionResult:
    """Move a created payment to failed. A succeeded payment stays succeeded."""
    return await _transition(
        db,
        order_id,
        FAILED,
        {"gateway_payment_id": gateway_payment_id},
    )
