"""
Locust Load Test Suite

Needs a seeded admin account (python -m attendease.seed) to create the
contested seat. Credentials come from ADMIN_EMAIL / ADMIN_PASSWORD.

Run scenarios:
  locust -f locustfile.py --tags concurrency  # Test double booking
  locust -f locustfile.py --tags throughput   # Test seat list cache
  locust -f locustfile.py --tags edge         # Test bad input
  locust -f locustfile.py                     # All tests
"""

import os
import random
from datetime import datetime, timezone, timedelta

from locust import HttpUser, task, between, tag, events

ADMIN_EMAIL = os.environ.get("ADMIN_EMAIL", "admin@attendease.dev")
ADMIN_PASSWORD = os.environ.get("ADMIN_PASSWORD", "change-me-admin")

# Shared state
SEAT_IDS = []
CONTESTED_SEAT_ID = None

# Every concurrency user asks for this exact window on the contested seat
CONTESTED_START = (datetime.now(timezone.utc) + timedelta(days=7)).replace(
    hour=10, minute=0, second=0, microsecond=0
)
CONTESTED_END = CONTESTED_START + timedelta(hours=2)


def random_email():
    return f"load_{random.randint(10000, 999999)}@test.com"


def random_phone():
    return "".join(random.choices("0123456789", k=10))


def register(client) -> dict:
    """Register a fresh student and return auth headers (empty on failure)."""
    resp = client.post("/api/v1/auth/register", json={
        "name": "Load Student",
        "email": random_email(),
        "phone": random_phone(),
        "password": "loadtest123",
    })
    if resp.status_code == 201:
        return {"Authorization": f"Bearer {resp.json()['access_token']}"}
    return {}


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    print("\n" + "="*60)
    print(f"SETUP: contested window {CONTESTED_START.isoformat()} - {CONTESTED_END.isoformat()}")
    print("="*60)


class ConcurrencyUser(HttpUser):
    """
    TEST 1: Concurrency - N students, one seat, one window

    Run: locust -f locustfile.py --tags concurrency -u 100 -r 50 --run-time 30s

    After test, verify:
      SELECT COUNT(*) FROM bookings
      WHERE seat_id = X AND status IN ('active', 'checked-in');
    Should be exactly 1
    """
    wait_time = between(0, 0.1)

    def on_start(self):
        self.headers = register(self.client)

        if not CONTESTED_SEAT_ID:
            resp = self.client.post("/api/v1/auth/login", json={
                "email": ADMIN_EMAIL,
                "password": ADMIN_PASSWORD,
            })
            if resp.status_code != 200:
                return
            admin_headers = {"Authorization": f"Bearer {resp.json()['access_token']}"}
            resp = self.client.post(
                "/api/v1/seats/",
                json={
                    "seat_number": f"LOAD-{random.randint(1000, 9999)}",
                    "floor": 1,
                    "section": "LOAD",
                    "description": "Contested seat",
                },
                headers=admin_headers,
            )
            if resp.status_code == 201:
                globals()["CONTESTED_SEAT_ID"] = resp.json()["id"]
                print(f"\n✓ Created contested seat {CONTESTED_SEAT_ID}\n")

    @tag("concurrency")
    @task
    def book_contested_seat(self):
        """All users fight for the same seat window."""
        if not CONTESTED_SEAT_ID or not self.headers:
            return

        with self.client.post("/api/v1/bookings/",
            json={
                "seat_id": CONTESTED_SEAT_ID,
                "start_time": CONTESTED_START.isoformat(),
                "end_time": CONTESTED_END.isoformat(),
            },
            headers=self.headers,
            catch_response=True
        ) as resp:
            if resp.status_code == 201:
                resp.success()
            elif resp.status_code in (400, 409):
                resp.success()  # Expected: seat taken, or this user already holds it
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class ThroughputUser(HttpUser):
    """
    TEST 2: Throughput - Seat list cache effectiveness

    Run twice:
      1. With Redis: locust -f locustfile.py --tags throughput -u 100 -r 20 --run-time 60s
      2. Without Redis: REDIS_ENABLED=false on the API, run again

    Compare avg response time, requests/sec and P95/P99 latency.
    """
    wait_time = between(0.1, 0.5)

    @tag("throughput", "read")
    @task(10)
    def list_seats_cached(self):
        floor = random.choice(["", "?floor=1", "?floor=2", "?available=true"])
        resp = self.client.get(f"/api/v1/seats/{floor}", name="/api/v1/seats/ [cached]")
        if resp.status_code == 200:
            for seat in resp.json().get("seats", []):
                if seat["id"] not in SEAT_IDS:
                    SEAT_IDS.append(seat["id"])

    @tag("throughput", "read")
    @task(3)
    def get_seat_detail(self):
        if SEAT_IDS:
            self.client.get(f"/api/v1/seats/{random.choice(SEAT_IDS)}", name="/api/v1/seats/{id}")

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

    def on_start(self):
        self.headers = register(self.client)

    def _expect(self, resp, codes):
        if resp.status_code in codes:
            resp.success()
        else:
            resp.failure(f"Expected {codes}, got {resp.status_code}")

    @tag("edge")
    @task
    def invalid_seat_id(self):
        start = datetime.now(timezone.utc) + timedelta(days=1)
        with self.client.post("/api/v1/bookings/",
            json={"seat_id": 999999, "start_time": start.isoformat(),
                  "end_time": (start + timedelta(hours=1)).isoformat()},
            headers=self.headers,
            catch_response=True
        ) as resp:
            self._expect(resp, [404, 400])

    @tag("edge")
    @task
    def window_in_the_past(self):
        start = datetime.now(timezone.utc) - timedelta(days=1)
        with self.client.post("/api/v1/bookings/",
            json={"seat_id": 1, "start_time": start.isoformat(),
                  "end_time": (start + timedelta(hours=1)).isoformat()},
            headers=self.headers,
            catch_response=True
        ) as resp:
            self._expect(resp, [400, 404])

    @tag("edge")
    @task
    def window_too_long(self):
        start = datetime.now(timezone.utc) + timedelta(days=1)
        with self.client.post("/api/v1/bookings/",
            json={"seat_id": 1, "start_time": start.isoformat(),
                  "end_time": (start + timedelta(hours=9)).isoformat()},
            headers=self.headers,
            catch_response=True
        ) as resp:
            self._expect(resp, [400, 404])

    @tag("edge")
    @task
    def garbage_qr(self):
        with self.client.post("/api/v1/attendance/checkin",
            json={"qr_data": "not-a-qr-code"},
            headers=self.headers,
            catch_response=True
        ) as resp:
            self._expect(resp, [400])

    @tag("edge")
    @task
    def malformed_json(self):
        with self.client.post("/api/v1/bookings/",
            data="not json at all",
            headers=self.headers,
            catch_response=True
        ) as resp:
            self._expect(resp, [400, 422])

    @tag("edge")
    @task
    def missing_auth(self):
        with self.client.post("/api/v1/bookings/",
            json={"seat_id": 1},
            catch_response=True
        ) as resp:
            self._expect(resp, [401])


class RealisticUser(HttpUser):
    """
    TEST 4: Realistic mixed workload

    Run: locust -f locustfile.py -u 200 -r 20 --run-time 120s

    Mostly browsing the seat map, some bookings and attendance history reads.
    """
    wait_time = between(1, 3)

    def on_start(self):
        self.headers = register(self.client)

    @task(50)
    def browse_seats(self):
        resp = self.client.get("/api/v1/seats/?available=true")
        if resp.status_code == 200:
            for seat in resp.json().get("seats", []):
                if seat["id"] not in SEAT_IDS:
                    SEAT_IDS.append(seat["id"])

    @task(10)
    def book_seat(self):
        if SEAT_IDS and self.headers:
            start = (datetime.now(timezone.utc) + timedelta(days=random.randint(1, 30))).replace(
                minute=0, second=0, microsecond=0
            )
            self.client.post("/api/v1/bookings/",
                json={
                    "seat_id": random.choice(SEAT_IDS),
                    "start_time": start.isoformat(),
                    "end_time": (start + timedelta(hours=random.randint(1, 4))).isoformat(),
                },
                headers=self.headers)

    @task(5)
    def my_bookings(self):
        if self.headers:
            self.client.get("/api/v1/bookings/me", headers=self.headers)

    @task(2)
    def attendance_history(self):
        if self.headers:
            self.client.get("/api/v1/attendance/history", headers=self.headers)
