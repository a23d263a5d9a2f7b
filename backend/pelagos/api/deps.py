"""
Shared FastAPI dependencies.
The gateway client and reconciliation service are built from injected
settings here rather than reading the environment inside handlers.
"""

from fastapi import Depends

from pelagos.core.config import Settings, get_settings
from pelagos.services.gateway_client import RazorpayGateway
from pelagos.services.interfaces.gateway import PaymentGateway
from pelagos.services.reconciliation_service import ReconciliationService

_gateway: PaymentGateway = None


def get_payment_gateway() -> PaymentGateway:
    """Process-wide gateway client, so HTTP connections are pooled."""
    global _gateway
    if _gateway is None:
        _gateway = RazorpayGateway(get_settings())
    return _gateway


async def close_payment_gateway() -> None:
    global _gateway
    if _gateway is not None:
        await _gateway.close()
        _gateway = None


def get_reconciliation_service(
    settings: Settings = Depends(get_settings),
    gateway: PaymentGateway = Depends(get_payment_gateway),
) -> ReconciliationService:
    return ReconciliationService(settings, gateway)
