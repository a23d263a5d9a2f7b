"""
Payment gateway interface.
The client-verification flow asks the gateway directly whether a payment
exists before trusting the checkout signature alone.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional


class GatewayUnavailableError(Exception):
    """The gateway could not answer: timeout, transport error or non-2xx status."""

    def __init__(self, reason: str, status_code: Optional[int] = None):
        self.reason = reason
        self.status_code = status_code
        super().__init__(reason)


@dataclass
class GatewayPayment:
    id: str
    order_id: Optional[str]
    status: str
    amount: int  # minor units
    currency: Optional[str] = None
    raw: dict = field(default_factory=dict)

    @property
    def is_settled(self) -> bool:
        return self.status in ("authorized", "captured")


class PaymentGateway(ABC):
    """
    Implementations:
    - RazorpayGateway: HTTP lookup against the Razorpay REST API
    """

    @abstractmethod
    async def fetch_payment(self, payment_id: str) -> GatewayPayment:
        """
        Look up a payment by its gateway id.

        Raises:
            GatewayUnavailableError: the gateway did not give a usable answer
        """
        pass

    async def close(self) -> None:
        pass
