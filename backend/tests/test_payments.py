"""
Tests for client-initiated payment verification, including the race with
the gateway webhook.
"""

import pytest
from httpx import AsyncClient
from sqlalchemy import select

from pelagos.models import TimeSlot, Booking, Payment
from pelagos.services.interfaces.gateway import GatewayUnavailableError
from pelagos.services.signature import compute_signature


async def _payment(db, order_id: str) -> Payment:
    result = await db.execute(
        select(Payment)
        .where(Payment.order_id == order_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


@pytest.mark.asyncio
async def test_verify_confirms_booking(
    client: AsyncClient, auth_headers, held_booking, gateway, checkout_payload, db_session, fetch
):
    """Valid checkout signature plus a captured gateway payment confirms the booking."""
    gateway.add(held_booking.payment_id, held_booking.order_id)

    response = await client.post(
        "/api/v1/payments/verify",
        json=checkout_payload(held_booking),
        headers=auth_headers,
    )
    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "bookingStatus": "confirmed",
        "paymentId": held_booking.payment_id,
        "bookingCode": held_booking.booking_code,
    }
    assert gateway.calls == [held_booking.payment_id]

    payment = await _payment(db_session, held_booking.order_id)
    assert payment.status == "succeeded"
    assert payment.verified_by == held_booking.user_id

    booking = await fetch(Booking, held_booking.booking_id)
    assert booking.status == "paid_deposit"
    assert booking.payment_status == "paid"
    slot = await fetch(TimeSlot, held_booking.slot_id)
    assert slot.seats_left == 4


@pytest.mark.asyncio
async def test_verify_twice_returns_same_success(
    client: AsyncClient, auth_headers, held_booking, gateway, checkout_payload, fetch
):
    gateway.add(held_booking.payment_id, held_booking.order_id)
    payload = checkout_payload(held_booking)

    first = await client.post("/api/v1/payments/verify", json=payload, headers=auth_headers)
    second = await client.post("/api/v1/payments/verify", json=payload, headers=auth_headers)

    assert first.status_code == 200
    assert second.status_code == 200
    assert second.json() == first.json()

    slot = await fetch(TimeSlot, held_booking.slot_id)
    assert slot.seats_left == 4


@pytest.mark.asyncio
async def test_webhook_after_client_verification_is_noop(
    client: AsyncClient, auth_headers, held_booking, gateway, checkout_payload, webhook, fetch
):
    """Client and webhook both report the same payment: one seat, one confirmation."""
    gateway.add(held_booking.payment_id, held_booking.order_id)
    verify = await client.post(
        "/api/v1/payments/verify",
        json=checkout_payload(held_booking),
        headers=auth_headers,
    )
    assert verify.status_code == 200

    response = await webhook("payment.captured", held_booking.order_id, held_booking.payment_id)
    assert response.status_code == 200
    assert response.json()["outcome"] == "already_terminal"

    slot = await fetch(TimeSlot, held_booking.slot_id)
    assert slot.seats_left == 4


@pytest.mark.asyncio
async def test_client_verification_after_webhook_succeeds(
    client: AsyncClient, auth_headers, held_booking, gateway, checkout_payload, webhook, db_session, fetch
):
    gateway.add(held_booking.payment_id, held_booking.order_id)
    await webhook("payment.captured", held_booking.order_id, held_booking.payment_id)

    response = await client.post(
        "/api/v1/payments/verify",
        json=checkout_payload(held_booking),
        headers=auth_headers,
    )
    assert response.status_code == 200
    assert response.json()["bookingStatus"] == "confirmed"

    payment = await _payment(db_session, held_booking.order_id)
    assert payment.verified_by == "webhook"
    slot = await fetch(TimeSlot, held_booking.slot_id)
    assert slot.seats_left == 4


@pytest.mark.asyncio
async def test_verify_requires_authentication(client: AsyncClient, held_booking, checkout_payload):
    response = await client.post("/api/v1/payments/verify", json=checkout_payload(held_booking))
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_verify_rejects_invalid_token(client: AsyncClient, held_booking, checkout_payload):
    response = await client.post(
        "/api/v1/payments/verify",
        json=checkout_payload(held_booking),
        headers={"Authorization": "Bearer not-a-jwt"},
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_verify_rejects_booking_of_other_user(
    client: AsyncClient, other_auth_headers, held_booking, gateway, checkout_payload, fetch
):
    """A valid signature does not let one customer confirm another's booking."""
    gateway.add(held_booking.payment_id, held_booking.order_id)

    response = await client.post(
        "/api/v1/payments/verify",
        json=checkout_payload(held_booking),
        headers=other_auth_headers,
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid booking"
    assert gateway.calls == []

    booking = await fetch(Booking, held_booking.booking_id)
    assert booking.status == "pending_hold"


@pytest.mark.asyncio
async def test_verify_reports_missing_fields(client: AsyncClient, auth_headers, held_booking):
    response = await client.post(
        "/api/v1/payments/verify",
        json={"orderId": held_booking.order_id, "bookingId": held_booking.booking_id},
        headers=auth_headers,
    )
    assert response.status_code == 400
    detail = response.json()["detail"]
    assert "paymentId" in detail
    assert "signature" in detail


@pytest.mark.asyncio
async def test_verify_rejects_bad_signature(
    client: AsyncClient, auth_headers, held_booking, gateway, checkout_payload, db_session, fetch
):
    """A checkout signature made with the wrong secret changes nothing."""
    gateway.add(held_booking.payment_id, held_booking.order_id)
    payload = checkout_payload(held_booking)
    payload["signature"] = compute_signature(
        f"{held_booking.order_id}|{held_booking.payment_id}", "wrong-secret"
    )

    response = await client.post("/api/v1/payments/verify", json=payload, headers=auth_headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid payment signature"
    assert gateway.calls == []

    payment = await _payment(db_session, held_booking.order_id)
    assert payment.status == "created"
    booking = await fetch(Booking, held_booking.booking_id)
    assert booking.status == "pending_hold"
    assert booking.payment_status == "unpaid"


@pytest.mark.asyncio
async def test_gateway_outage_leaves_booking_pending(
    client: AsyncClient, auth_headers, held_booking, gateway, checkout_payload, db_session, fetch
):
    """Nothing is written when the gateway cannot confirm; the client may retry."""
    gateway.error = GatewayUnavailableError("timeout")

    response = await client.post(
        "/api/v1/payments/verify",
        json=checkout_payload(held_booking),
        headers=auth_headers,
    )
    assert response.status_code == 500
    assert response.json()["detail"] == "Failed to verify payment with gateway"
    assert response.headers["retry-after"] == "5"

    payment = await _payment(db_session, held_booking.order_id)
    assert payment.status == "created"
    booking = await fetch(Booking, held_booking.booking_id)
    assert booking.status == "pending_hold"
    slot = await fetch(TimeSlot, held_booking.slot_id)
    assert slot.seats_left == 5


@pytest.mark.asyncio
async def test_verify_rejects_unsettled_gateway_payment(
    client: AsyncClient, auth_headers, held_booking, gateway, checkout_payload, fetch
):
    gateway.add(held_booking.payment_id, held_booking.order_id, status="created")

    response = await client.post(
        "/api/v1/payments/verify",
        json=checkout_payload(held_booking),
        headers=auth_headers,
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Payment not completed"

    booking = await fetch(Booking, held_booking.booking_id)
    assert booking.status == "pending_hold"


@pytest.mark.asyncio
async def test_verify_rejects_payment_for_other_order(
    client: AsyncClient, auth_headers, held_booking, gateway, checkout_payload
):
    gateway.add(held_booking.payment_id, "order_someone_else")

    response = await client.post(
        "/api/v1/payments/verify",
        json=checkout_payload(held_booking),
        headers=auth_headers,
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Payment does not match order"


@pytest.mark.asyncio
async def test_verify_rejects_order_of_another_booking(
    client: AsyncClient, auth_headers, held_booking, make_held_booking, gateway, checkout_payload, fetch
):
    """The order must belong to the booking named in the request."""
    other = await make_held_booking("b2")
    gateway.add(other.payment_id, other.order_id)
    payload = checkout_payload(other)
    payload["bookingId"] = held_booking.booking_id

    response = await client.post("/api/v1/payments/verify", json=payload, headers=auth_headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid booking"

    booking = await fetch(Booking, held_booking.booking_id)
    assert booking.status == "pending_hold"


@pytest.mark.asyncio
async def test_verify_after_failure_webhook_conflicts(
    client: AsyncClient, auth_headers, held_booking, gateway, checkout_payload, webhook, fetch
):
    await webhook("payment.failed", held_booking.order_id, held_booking.payment_id)
    gateway.add(held_booking.payment_id, held_booking.order_id)

    response = await client.post(
        "/api/v1/payments/verify",
        json=checkout_payload(held_booking),
        headers=auth_headers,
    )
    assert response.status_code == 409

    booking = await fetch(Booking, held_booking.booking_id)
    assert booking.status == "expired"


@pytest.mark.asyncio
async def test_verify_cancelled_booking_conflicts(
    client: AsyncClient, auth_headers, make_held_booking, gateway, checkout_payload, fetch
):
    ids = await make_held_booking("cx", booking_status="cancelled")
    gateway.add(ids.payment_id, ids.order_id)

    response = await client.post(
        "/api/v1/payments/verify",
        json=checkout_payload(ids),
        headers=auth_headers,
    )
    assert response.status_code == 409
    assert response.json()["detail"] == "Booking is no longer active"

    slot = await fetch(TimeSlot, ids.slot_id)
    assert slot.seats_left == 5


@pytest.mark.asyncio
async def test_verify_rejects_non_post(client: AsyncClient, auth_headers, held_booking, gateway, fetch):
    for method in ("GET", "PUT"):
        response = await client.request(method, "/api/v1/payments/verify", headers=auth_headers)
        assert response.status_code == 405

    assert gateway.calls == []
    booking = await fetch(Booking, held_booking.booking_id)
    assert booking.status == "pending_hold"
