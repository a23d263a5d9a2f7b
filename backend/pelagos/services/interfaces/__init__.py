"""
Service interfaces for dependency inversion.
Allows swapping implementations without changing business logic.
"""

from .gateway import PaymentGateway, GatewayPayment, GatewayUnavailableError

__all__ = ['PaymentGateway', 'GatewayPayment', 'GatewayUnavailableError']
