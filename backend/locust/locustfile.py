"""
Locust Load Test Suite

Needs an API running with PAYMENT_GATEWAY=mock and
MOCK_GATEWAY_AUTO_SETTLE=paid (every session settles as paid), and an event
seeded by the catalog service. Point the test at it with:

  LOAD_EVENT_ID=1 LOAD_TICKET_TYPE_ID=1 SECRET_KEY=... locust -f locustfile.py

Run scenarios:
  locust -f locustfile.py --tags concurrency  # Test overselling
  locust -f locustfile.py --tags polling      # Test status poll storms
  locust -f locustfile.py --tags edge         # Test bad input
  locust -f locustfile.py                     # All tests
"""

import os
import random
from datetime import datetime, timezone, timedelta

import jwt
from locust import HttpUser, task, between, tag

EVENT_ID = int(os.environ.get("LOAD_EVENT_ID", "1"))
TICKET_TYPE_ID = int(os.environ.get("LOAD_TICKET_TYPE_ID", "1"))
SECRET_KEY = os.environ.get("SECRET_KEY", "super-secret-key-change-in-production")

# Sessions created by any user, shared with the polling users
SESSION_IDS = []


def buyer_headers() -> dict:
    """Mint a token for a fresh random buyer."""
    token = jwt.encode(
        {
            "sub": str(random.randint(1, 10_000_000)),
            "exp": datetime.now(timezone.utc) + timedelta(hours=1),
        },
        SECRET_KEY,
        algorithm="HS256",
    )
    return {"Authorization": f"Bearer {token}"}


def selection(quantity: int = 1) -> dict:
    return {
        "event_id": EVENT_ID,
        "ticket_selections": [{"ticket_type_id": TICKET_TYPE_ID, "quantity": quantity}],
    }


class ConcurrencyUser(HttpUser):
    """
    TEST 1: Concurrency - many buyers, few tickets

    Run: locust -f locustfile.py --tags concurrency -u 100 -r 50 --run-time 30s

    After test, verify:
      SELECT SUM(quantity) FROM tickets WHERE ticket_type_id = X;
    plus open reservations must never exceed total_quantity.
    """
    wait_time = between(0, 0.1)

    def on_start(self):
        self.headers = buyer_headers()

    @tag("concurrency")
    @task
    def checkout_and_return(self):
        """Reserve, then come back from the gateway as a paid buyer."""
        with self.client.post(
            "/api/v1/purchases/intent",
            json=selection(),
            headers=self.headers,
            catch_response=True,
        ) as resp:
            if resp.status_code == 201:
                resp.success()
            elif resp.status_code == 409:
                resp.success()  # Expected: sold out
                return
            else:
                resp.failure(f"Unexpected: {resp.status_code}")
                return

        session_id = resp.json()["session_id"]
        SESSION_IDS.append((session_id, self.headers))
        self.client.get(
            f"/api/v1/purchases/status/{session_id}",
            headers=self.headers,
            name="/api/v1/purchases/status/{session_id}",
        )


class PollingUser(HttpUser):
    """
    TEST 2: Poll storm - returning browsers hammering the status endpoint

    Run: locust -f locustfile.py --tags polling -u 200 -r 50 --run-time 60s

    Compare gateway_calls_total against request count: with Redis up the
    throttle should keep gateway queries to one per session per interval.
    """
    wait_time = between(0.05, 0.2)

    @tag("polling")
    @task
    def poll_status(self):
        if not SESSION_IDS:
            return
        session_id, headers = random.choice(SESSION_IDS)
        with self.client.get(
            f"/api/v1/purchases/status/{session_id}",
            headers=headers,
            name="/api/v1/purchases/status/{session_id}",
            catch_response=True,
        ) as resp:
            if resp.status_code == 200:
                resp.success()
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class EdgeCaseUser(HttpUser):
    """
    TEST 3: Edge cases - Bad input handling

    Run: locust -f locustfile.py --tags edge -u 20 -r 5 --run-time 30s

    System should NOT crash, return proper error codes.
    """
    wait_time = between(0.5, 1.5)

    def on_start(self):
        self.headers = buyer_headers()

    def _expect(self, resp, codes):
        if resp.status_code in codes:
            resp.success()
        else:
            resp.failure(f"Expected {codes}, got {resp.status_code}")

    @tag("edge")
    @task
    def invalid_event_id(self):
        """Checkout for a non-existent event."""
        body = selection()
        body["event_id"] = 999999
        with self.client.post(
            "/api/v1/purchases/intent", json=body, headers=self.headers, catch_response=True
        ) as resp:
            self._expect(resp, [422])

    @tag("edge")
    @task
    def zero_quantity(self):
        with self.client.post(
            "/api/v1/purchases/intent", json=selection(0), headers=self.headers, catch_response=True
        ) as resp:
            self._expect(resp, [422])

    @tag("edge")
    @task
    def huge_quantity(self):
        with self.client.post(
            "/api/v1/purchases/intent", json=selection(999), headers=self.headers, catch_response=True
        ) as resp:
            self._expect(resp, [409, 422])

    @tag("edge")
    @task
    def unknown_session(self):
        with self.client.get(
            "/api/v1/purchases/status/not-a-session",
            headers=self.headers,
            name="/api/v1/purchases/status/{unknown}",
            catch_response=True,
        ) as resp:
            if resp.status_code == 200 and resp.json().get("unknown_session"):
                resp.success()
            else:
                resp.failure(f"Expected unknown_session, got {resp.status_code}")

    @tag("edge")
    @task
    def malformed_json(self):
        with self.client.post(
            "/api/v1/purchases/intent",
            data="not json at all",
            headers=self.headers,
            catch_response=True,
        ) as resp:
            self._expect(resp, [400, 422])

    @tag("edge")
    @task
    def missing_auth(self):
        with self.client.post(
            "/api/v1/purchases/intent", json=selection(), catch_response=True
        ) as resp:
            self._expect(resp, [401])
