"""
Pydantic schemas for the gateway webhook envelope.

Only `event` is required up front. The payment entity is parsed lazily,
and only for the payment events the reconciliation flow acts on, so an
event it ignores is acknowledged whatever its payload looks like.
"""

from typing import Any, Optional
from pydantic import BaseModel


class PaymentEntity(BaseModel):
    id: Optional[str] = None
    order_id: Optional[str] = None
    amount: Optional[int] = None  # minor units
    currency: Optional[str] = None
    status: Optional[str] = None

    model_config = {"extra": "ignore"}


class WebhookEvent(BaseModel):
    event: str
    payload: Optional[dict[str, Any]] = None

    model_config = {"extra": "ignore"}

    def payment_entity(self) -> Optional[dict]:
        """Raw `payload.payment.entity`, or None when absent or not an object."""
        payment = (self.payload or {}).get("payment")
        if not isinstance(payment, dict):
            return None
        entity = payment.get("entity")
        return entity if isinstance(entity, dict) else None


class WebhookAck(BaseModel):
    status: str = "ok"
    event: str
    outcome: str  # applied, already_terminal, ignored
