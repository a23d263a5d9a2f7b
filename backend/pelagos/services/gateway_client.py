"""
Razorpay REST client for payment lookups.

Uses HTTP basic auth with the key id/secret pair. Every failure mode is
folded into GatewayUnavailableError so the caller can answer "retry later"
without touching local state.
"""

import time
from typing import Optional

import httpx

from pelagos.core.config import Settings
from pelagos.core.logging import get_logger
from pelagos.core.metrics import gateway_latency, record_gateway_request
from pelagos.services.interfaces.gateway import (
    PaymentGateway,
    GatewayPayment,
    GatewayUnavailableError,
)

logger = get_logger(__name__)


class RazorpayGateway(PaymentGateway):

    def __init__(self, settings: Settings, client: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.settings.RAZORPAY_API_BASE,
                auth=(self.settings.RAZORPAY_KEY_ID, self.settings.RAZORPAY_KEY_SECRET),
                timeout=httpx.Timeout(self.settings.GATEWAY_TIMEOUT_SECONDS),
            )
        return self._client

    async def fetch_payment(self, payment_id: str) -> GatewayPayment:
        start = time.perf_counter()
        try:
            response = await self._get_client().get(f"/payments/{payment_id}")
        except httpx.TimeoutException as e:
            record_gateway_request("timeout")
            logger.error("gateway_timeout", payment_id=payment_id, error=str(e))
            raise GatewayUnavailableError("timeout") from e
        except httpx.HTTPError as e:
            record_gateway_request("transport_error")
            logger.error("gateway_transport_error", payment_id=payment_id, error=str(e))
            raise GatewayUnavailableError("transport_error") from e
        finally:
            gateway_latency.observe(time.perf_counter() - start)

        if response.status_code != 200:
            record_gateway_request("http_error")
            logger.error(
                "gateway_lookup_failed",
                payment_id=payment_id,
                status_code=response.status_code,
            )
            raise GatewayUnavailableError("http_error", status_code=response.status_code)

        try:
            data = response.json()
        except ValueError as e:
            record_gateway_request("http_error")
            raise GatewayUnavailableError("invalid_json") from e

        record_gateway_request("ok")
        return GatewayPayment(
            id=data.get("id", payment_id),
            order_id=data.get("order_id"),
            status=data.get("status", ""),
            amount=int(data.get("amount") or 0),
            currency=data.get("currency"),
            raw=data,
        )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
