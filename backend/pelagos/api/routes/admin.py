"""
Operator endpoints for the cleanup outbox.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from pelagos.db.session import get_db
from pelagos.core.config import Settings, get_settings
from pelagos.core.security import require_admin_key
from pelagos.schemas.cleanup import CleanupTaskResponse, DrainResponse
from pelagos.services import cleanup_queue

router = APIRouter(
    prefix="/admin/cleanup-tasks",
    tags=["Admin"],
    dependencies=[Depends(require_admin_key)],
)


@router.get("/", response_model=list[CleanupTaskResponse])
async def list_cleanup_tasks(
    pending_only: bool = Query(True),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    """Seat decrements and hold releases, newest first."""
    return await cleanup_queue.list_tasks(db, pending_only=pending_only, limit=limit)


@router.post("/drain", response_model=DrainResponse)
async def drain_cleanup_tasks(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Run pending tasks now instead of waiting for the periodic drain."""
    result = await cleanup_queue.drain_pending(
        db,
        limit=settings.CLEANUP_BATCH_SIZE,
        max_attempts=settings.CLEANUP_MAX_ATTEMPTS,
    )
    return DrainResponse(attempted=result.attempted, completed=result.completed, failed=result.failed)
