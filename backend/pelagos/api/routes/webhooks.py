"""
Gateway webhook endpoint.

The body is read raw: the signature covers the exact bytes the gateway
sent, so it must be verified before any JSON parsing.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from pelagos.db.session import get_db
from pelagos.api.deps import get_reconciliation_service
from pelagos.schemas.webhook import WebhookAck
from pelagos.services.reconciliation_service import ReconciliationService

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


@router.post("/razorpay", response_model=WebhookAck)
async def razorpay_webhook(
    request: Request,
    x_razorpay_signature: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db),
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    """
    Receive a payment event from Razorpay.

    Answers 200 for every signed, well-formed event, including ones that
    were already processed or are not payment events, so the gateway stops
    retrying. Errors are reserved for missing/invalid signatures (400/401),
    malformed payloads (400), unknown orders (404) and failed writes (500).
    """
    raw_body = await request.body()
    return await service.handle_webhook(db, raw_body, x_razorpay_signature)
