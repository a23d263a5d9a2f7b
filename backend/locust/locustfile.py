"""
Locust Load Test Suite

Run scenarios:
  locust -f locustfile.py --tags redelivery   # Duplicate/racing webhooks
  locust -f locustfile.py --tags throughput   # Test slot cache
  locust -f locustfile.py --tags edge         # Test bad input
  locust -f locustfile.py                     # All tests

Setup: seed a time slot and held bookings with payment records first, then
export
  LOCUST_WEBHOOK_SECRET=<RAZORPAY_WEBHOOK_SECRET of the server>
  LOCUST_ORDERS=order_1:pay_1,order_2:pay_2,...
  LOCUST_SLOT_ID=<time slot id>
"""

import json
import os
import random

from locust import HttpUser, task, between, tag, events

from pelagos.services.signature import compute_signature

WEBHOOK_SECRET = os.environ.get("LOCUST_WEBHOOK_SECRET", "")
SLOT_ID = os.environ.get("LOCUST_SLOT_ID", "")
ORDERS = [
    tuple(pair.split(":", 1))
    for pair in os.environ.get("LOCUST_ORDERS", "").split(",")
    if ":" in pair
]


def webhook_body(event: str, order_id: str, payment_id: str) -> bytes:
    return json.dumps({
        "entity": "event",
        "event": event,
        "payload": {
            "payment": {
                "entity": {
                    "id": payment_id,
                    "order_id": order_id,
                    "amount": 150000,
                    "currency": "INR",
                    "status": "captured",
                }
            }
        },
    }).encode()


def post_webhook(client, body: bytes, signature: str = None, name: str = "/api/v1/webhooks/razorpay"):
    headers = {"Content-Type": "application/json"}
    if signature is not None:
        headers["X-Razorpay-Signature"] = signature
    return client.post(
        "/api/v1/webhooks/razorpay",
        data=body,
        headers=headers,
        name=name,
        catch_response=True,
    )


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    print("\n" + "="*60)
    print(f"SETUP: {len(ORDERS)} seeded orders, slot {SLOT_ID or '-'}")
    print("="*60)


class RedeliveryUser(HttpUser):
    """
    TEST 1: Redelivery - every user replays the same few events

    Run: locust -f locustfile.py --tags redelivery -u 100 -r 50 --run-time 30s

    After test, verify:
      SELECT capacity - seats_left FROM time_slots WHERE id = :slot;
    Should equal the number of seeded orders (one seat per order), and
      SELECT COUNT(*) FROM cleanup_tasks WHERE kind = 'seat_decrement';
    should too.
    """
    wait_time = between(0, 0.1)

    @tag("redelivery")
    @task(5)
    def replay_captured(self):
        """Captured event for a random seeded order; the first wins, the rest are no-ops."""
        if not ORDERS:
            return
        order_id, payment_id = random.choice(ORDERS)
        body = webhook_body("payment.captured", order_id, payment_id)
        with post_webhook(self.client, body, compute_signature(body, WEBHOOK_SECRET)) as resp:
            if resp.status_code == 200 and resp.json()["outcome"] in ("applied", "already_terminal"):
                resp.success()
            else:
                resp.failure(f"Unexpected: {resp.status_code}")

    @tag("redelivery")
    @task(1)
    def racing_failure(self):
        """A failed event racing the captured ones must never undo a success."""
        if not ORDERS:
            return
        order_id, payment_id = random.choice(ORDERS)
        body = webhook_body("payment.failed", order_id, payment_id)
        with post_webhook(self.client, body, compute_signature(body, WEBHOOK_SECRET)) as resp:
            if resp.status_code == 200:
                resp.success()
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class ThroughputUser(HttpUser):
    """
    TEST 2: Throughput - Cache effectiveness

    Run twice:
      1. With Redis: locust -f locustfile.py --tags throughput -u 100 -r 20 --run-time 60s
      2. Without Redis: REDIS_ENABLED=false on the server, run again

    Compare:
      - Avg response time
      - Requests/sec
      - P95/P99 latency
    """
    wait_time = between(0.1, 0.5)

    @tag("throughput", "read")
    @task(10)
    def slot_availability(self):
        if SLOT_ID:
            self.client.get(f"/api/v1/time-slots/{SLOT_ID}", name="/api/v1/time-slots/{id} [cached]")

    @tag("throughput")
    @task(1)
    def health_check(self):
        self.client.get("/health")


class EdgeCaseUser(HttpUser):
    """
    TEST 3: Edge cases - Bad input handling

    Run: locust -f locustfile.py --tags edge -u 20 -r 5 --run-time 30s

    System should NOT crash, return proper error codes.
    """
    wait_time = between(0.5, 1.5)

    def _expect(self, resp, codes):
        if resp.status_code in codes:
            resp.success()
        else:
            resp.failure(f"Expected {codes}, got {resp.status_code}")

    @tag("edge")
    @task
    def missing_signature(self):
        body = webhook_body("payment.captured", "order_x", "pay_x")
        with post_webhook(self.client, body, name="webhook [no signature]") as resp:
            self._expect(resp, [400])

    @tag("edge")
    @task
    def forged_signature(self):
        body = webhook_body("payment.captured", "order_x", "pay_x")
        with post_webhook(self.client, body, "0" * 64, name="webhook [forged]") as resp:
            self._expect(resp, [401])

    @tag("edge")
    @task
    def unknown_order(self):
        body = webhook_body("payment.captured", f"order_missing_{random.randint(1, 10**6)}", "pay_x")
        with post_webhook(self.client, body, compute_signature(body, WEBHOOK_SECRET), name="webhook [unknown order]") as resp:
            self._expect(resp, [404])

    @tag("edge")
    @task
    def malformed_json(self):
        body = b"not json at all"
        with post_webhook(self.client, body, compute_signature(body, WEBHOOK_SECRET), name="webhook [malformed]") as resp:
            self._expect(resp, [400])

    @tag("edge")
    @task
    def verify_without_auth(self):
        with self.client.post(
            "/api/v1/payments/verify",
            json={"orderId": "order_x", "paymentId": "pay_x", "signature": "x", "bookingId": "b"},
            catch_response=True,
        ) as resp:
            self._expect(resp, [401])
