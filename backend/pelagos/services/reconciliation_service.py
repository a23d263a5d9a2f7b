"""
Payment reconciliation: moves a booking from held to paid (or expired).

Two entry points share this service:

  - handle_webhook: gateway-initiated, authenticated by an HMAC over the raw body
  - verify_client_payment: customer-initiated after checkout, authenticated by
    a bearer token plus an HMAC over "<order_id>|<payment_id>"

Per attempt the flow is

  received -> signature_verified -> record_located
           -> already_terminal                        -> acknowledged
           -> transitioning -> committed -> cleanup   -> acknowledged

CONCURRENCY
===========

Both entry points may run at the same time for the same order, on
different instances. There is no in-process lock; the conditional UPDATE in
payment_store.mark_succeeded/mark_failed decides the single winner. The
winner, in one transaction:

  1. flips the payment record
  2. flips the booking
  3. records the seat decrement / hold release in the cleanup outbox

and commits. Losers see `already_terminal` and do nothing else, so a
duplicate webhook or a webhook racing the client can never take a second
seat. The outbox steps then run inline with a timeout and, failing that,
in the periodic drain.

Failures before the commit roll back everything and are reported to the
caller (gateway retries are safe because of the guard). Failures after the
commit are logged and never change the response.
"""

import asyncio
import enum
import time
from dataclasses import dataclass
from typing import Optional

import structlog
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from fastapi import HTTPException, status

from pelagos.core.config import Settings
from pelagos.core.logging import get_logger
from pelagos.core.metrics import (
    reconciliation_latency,
    record_verification,
    record_webhook_event,
)
from pelagos.models.payment import FAILED
from pelagos.schemas.payment import VerifyPaymentRequest, VerifyPaymentResponse
from pelagos.schemas.webhook import WebhookEvent, WebhookAck, PaymentEntity
from pelagos.services import payment_store, cleanup_queue
from pelagos.services.payment_store import TransitionStatus
from pelagos.services.booking_transitions import (
    BookingTransition,
    confirm_paid,
    get_owned_booking,
    mark_expired,
)
from pelagos.services.signature import verify_checkout_signature, verify_webhook_signature
from pelagos.services.interfaces.gateway import (
    PaymentGateway,
    GatewayPayment,
    GatewayUnavailableError,
)

logger = get_logger(__name__)

SUCCESS_EVENTS = ("payment.captured", "payment.authorized")
FAILURE_EVENTS = ("payment.failed",)
WEBHOOK_VERIFIER = "webhook"
RETRY_AFTER_SECONDS = "5"


class Outcome(str, enum.Enum):
    APPLIED = "applied"
    ALREADY_TERMINAL = "already_terminal"
    IGNORED = "ignored"


@dataclass
class Settlement:
    outcome: Outcome
    booking_id: Optional[str] = None
    payment_status: Optional[str] = None
    booking_transition: Optional[BookingTransition] = None


def _retryable(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=detail,
        headers={"Retry-After": RETRY_AFTER_SECONDS},
    )


class ReconciliationService:

    def __init__(self, settings: Settings, gateway: PaymentGateway):
        self.settings = settings
        self.gateway = gateway

    # ------------------------------------------------------------------
    # Webhook entry point
    # ------------------------------------------------------------------

    async def handle_webhook(
        self,
        db: AsyncSession,
        raw_body: bytes,
        signature: Optional[str],
    ) -> WebhookAck:
        if not signature:
            logger.warning("webhook_rejected", reason="missing_signature")
            record_webhook_event("unknown", "rejected")
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing signature")

        if not self.settings.RAZORPAY_WEBHOOK_SECRET:
            logger.error("webhook_secret_not_configured")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Webhook not configured",
            )

        if not verify_webhook_signature(raw_body, signature, self.settings.RAZORPAY_WEBHOOK_SECRET):
            logger.warning("webhook_rejected", reason="invalid_signature")
            record_webhook_event("unknown", "rejected")
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature")

        try:
            event = WebhookEvent.model_validate_json(raw_body)
        except ValidationError as e:
            logger.warning("webhook_rejected", reason="malformed_payload", errors=e.error_count())
            record_webhook_event("unknown", "rejected")
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Malformed payload")

        structlog.contextvars.bind_contextvars(gateway_event=event.event)
        logger.info("webhook_received")

        if event.event in SUCCESS_EVENTS:
            entity = self._payment_entity(event)
            settlement = await self.settle_success(db, entity.order_id, entity.id, WEBHOOK_VERIFIER)
        elif event.event in FAILURE_EVENTS:
            entity = self._payment_entity(event)
            settlement = await self.settle_failure(db, entity.order_id, entity.id)
        else:
            logger.info("webhook_event_ignored")
            settlement = Settlement(Outcome.IGNORED)

        record_webhook_event(event.event, settlement.outcome.value)
        return WebhookAck(event=event.event, outcome=settlement.outcome.value)

    @staticmethod
    def _payment_entity(event: WebhookEvent) -> PaymentEntity:
        raw = event.payment_entity()
        if raw is None:
            logger.warning("webhook_rejected", reason="missing_payment_entity")
            record_webhook_event(event.event, "rejected")
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Malformed payload")
        try:
            entity = PaymentEntity.model_validate(raw)
        except ValidationError as e:
            logger.warning("webhook_rejected", reason="malformed_payment_entity", errors=e.error_count())
            record_webhook_event(event.event, "rejected")
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Malformed payload")

        # no order id means no payment record can be resolved
        if not entity.order_id:
            logger.warning("payment_record_missing", reason="webhook_without_order_id", payment_id=entity.id)
            record_webhook_event(event.event, "not_found")
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Payment record not found")
        return entity

    # ------------------------------------------------------------------
    # Client-verification entry point
    # ------------------------------------------------------------------

    async def verify_client_payment(
        self,
        db: AsyncSession,
        user_id: str,
        request: VerifyPaymentRequest,
    ) -> VerifyPaymentResponse:
        missing = request.missing_fields()
        if missing:
            record_verification("rejected")
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Missing required fields: {', '.join(missing)}",
            )

        structlog.contextvars.bind_contextvars(
            order_id=request.order_id,
            booking_id=request.booking_id,
            user_id=user_id,
        )

        booking = await get_owned_booking(db, request.booking_id, user_id)
        if booking is None:
            logger.warning("verification_rejected", reason="booking_not_owned")
            record_verification("rejected")
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid booking")
        booking_code = booking.booking_code

        if not self.settings.RAZORPAY_KEY_SECRET:
            logger.error("gateway_secret_not_configured")
            record_verification("error")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Payment service configuration error",
            )

        if not verify_checkout_signature(
            request.order_id,
            request.payment_id,
            request.signature,
            self.settings.RAZORPAY_KEY_SECRET,
        ):
            logger.warning("verification_rejected", reason="invalid_signature")
            record_verification("rejected")
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid payment signature")

        gateway_payment = await self._confirm_with_gateway(request.payment_id)
        if gateway_payment.order_id and gateway_payment.order_id != request.order_id:
            logger.warning(
                "verification_rejected",
                reason="order_mismatch",
                gateway_order_id=gateway_payment.order_id,
            )
            record_verification("rejected")
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Payment does not match order")
        if not gateway_payment.is_settled:
            logger.warning("verification_rejected", reason="payment_not_settled", gateway_status=gateway_payment.status)
            record_verification("rejected")
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Payment not completed")

        record = await payment_store.find_by_order_id(db, request.order_id)
        if record is None:
            logger.error("payment_record_missing", reason="verify")
            record_verification("error")
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Payment record not found")
        if record.booking_id != booking.id:
            logger.warning("verification_rejected", reason="order_belongs_to_other_booking")
            record_verification("rejected")
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid booking")

        settlement = await self.settle_success(db, request.order_id, request.payment_id, user_id)

        if settlement.outcome is Outcome.ALREADY_TERMINAL and settlement.payment_status == FAILED:
            record_verification("rejected")
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Payment was already marked failed")
        if settlement.booking_transition is BookingTransition.BLOCKED:
            record_verification("rejected")
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Booking is no longer active")

        record_verification(
            "confirmed" if settlement.outcome is Outcome.APPLIED else "already_confirmed"
        )
        logger.info("booking_payment_verified", outcome=settlement.outcome.value)
        return VerifyPaymentResponse(payment_id=request.payment_id, booking_code=booking_code)

    async def _confirm_with_gateway(self, payment_id: str) -> GatewayPayment:
        try:
            return await asyncio.wait_for(
                self.gateway.fetch_payment(payment_id),
                timeout=self.settings.GATEWAY_TIMEOUT_SECONDS,
            )
        except asyncio.TimeoutError:
            logger.error("gateway_confirmation_failed", payment_id=payment_id, reason="timeout")
        except GatewayUnavailableError as e:
            logger.error("gateway_confirmation_failed", payment_id=payment_id, reason=e.reason)
        record_verification("error")
        raise _retryable("Failed to verify payment with gateway")

    # ------------------------------------------------------------------
    # Shared settlement steps
    # ------------------------------------------------------------------

    async def settle_success(
        self,
        db: AsyncSession,
        order_id: str,
        gateway_payment_id: str,
        verified_by: str,
    ) -> Settlement:
        structlog.contextvars.bind_contextvars(order_id=order_id)
        start = time.perf_counter()
        try:
            result = await payment_store.mark_succeeded(
                db,
                order_id,
                verified_by=verified_by,
                gateway_payment_id=gateway_payment_id,
            )
            if result.status is TransitionStatus.NOT_FOUND:
                await db.rollback()
                raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Payment record not found")

            booking_id = result.payment.booking_id
            if result.status is TransitionStatus.ALREADY_TERMINAL:
                payment_status = result.payment.status
                await db.rollback()
                return Settlement(Outcome.ALREADY_TERMINAL, booking_id, payment_status)

            transition, booking = await confirm_paid(db, booking_id)
            await cleanup_queue.enqueue_success_cleanup(
                db,
                booking,
                take_seat=transition is not BookingTransition.BLOCKED,
            )
            await db.commit()
        except HTTPException:
            await db.rollback()
            raise
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("payment_settlement_failed", target="succeeded", error=str(e))
            raise _retryable("Failed to update payment record")
        finally:
            reconciliation_latency.observe(time.perf_counter() - start)

        logger.info("payment_settled", booking_id=booking_id, booking_transition=transition.value)
        await cleanup_queue.drain_for_booking(
            db, booking_id, timeout=self.settings.CLEANUP_INLINE_TIMEOUT_SECONDS
        )
        return Settlement(Outcome.APPLIED, booking_id, "succeeded", transition)

    async def settle_failure(
        self,
        db: AsyncSession,
        order_id: str,
        gateway_payment_id: Optional[str],
    ) -> Settlement:
        structlog.contextvars.bind_contextvars(order_id=order_id)
        start = time.perf_counter()
        try:
            result = await payment_store.mark_failed(db, order_id, gateway_payment_id=gateway_payment_id)
            if result.status is TransitionStatus.NOT_FOUND:
                await db.rollback()
                raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Payment record not found")

            booking_id = result.payment.booking_id
            if result.status is TransitionStatus.ALREADY_TERMINAL:
                payment_status = result.payment.status
                await db.rollback()
                return Settlement(Outcome.ALREADY_TERMINAL, booking_id, payment_status)

            transition, booking = await mark_expired(db, booking_id)
            if transition is not BookingTransition.BLOCKED:
                await cleanup_queue.enqueue_failure_cleanup(db, booking)
            await db.commit()
        except HTTPException:
            await db.rollback()
            raise
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("payment_settlement_failed", target="failed", error=str(e))
            raise _retryable("Failed to update payment record")
        finally:
            reconciliation_latency.observe(time.perf_counter() - start)

        logger.info("payment_failure_settled", booking_id=booking_id, booking_transition=transition.value)
        await cleanup_queue.drain_for_booking(
            db, booking_id, timeout=self.settings.CLEANUP_INLINE_TIMEOUT_SECONDS
        )
        return Settlement(Outcome.APPLIED, booking_id, FAILED, transition)
