"""
Client-initiated payment verification after checkout.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from pelagos.db.session import get_db
from pelagos.api.deps import get_reconciliation_service
from pelagos.core.security import get_current_user_id
from pelagos.schemas.payment import VerifyPaymentRequest, VerifyPaymentResponse
from pelagos.services.reconciliation_service import ReconciliationService

router = APIRouter(prefix="/payments", tags=["Payments"])


@router.post("/verify", response_model=VerifyPaymentResponse)
async def verify_payment(
    payload: VerifyPaymentRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    """
    Confirm a booking from the checkout result.

    The caller must own the booking. The checkout signature is checked and
    the payment is looked up at the gateway before anything is written.
    Calling this again for an already confirmed booking returns the same
    success response.
    """
    return await service.verify_client_payment(db, user_id, payload)
