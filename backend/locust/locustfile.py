"""
Locust Load Test Suite

Users and trips are seeded outside the API, so this file mints bearer
tokens itself from SECRET_KEY for user ids 1..LOAD_USER_COUNT.

Run scenarios:
  locust -f locustfile.py --tags contention   # Everyone fights for one trip
  locust -f locustfile.py --tags throughput   # Catalog cache
  locust -f locustfile.py --tags edge         # Bad input
  locust -f locustfile.py                     # All tests

Environment:
  SECRET_KEY            signing key shared with the API
  LOAD_USER_COUNT       number of seeded passenger ids (default 500)
  CONTENTION_TRIP_ID    trip everyone books in the contention test (default 1)
"""

import itertools
import os
import random

import jwt
from locust import HttpUser, task, between, tag, events

SECRET_KEY = os.getenv("SECRET_KEY", "super-secret-key-change-in-production")
LOAD_USER_COUNT = int(os.getenv("LOAD_USER_COUNT", "500"))
CONTENTION_TRIP_ID = int(os.getenv("CONTENTION_TRIP_ID", "1"))

# Shared state
TRIP_IDS = []
_user_ids = itertools.cycle(range(1, LOAD_USER_COUNT + 1))


def auth_headers(user_id: int) -> dict:
    token = jwt.encode({"sub": str(user_id)}, SECRET_KEY, algorithm="HS256")
    return {"Authorization": f"Bearer {token}"}


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    print("\n" + "=" * 60)
    print(f"Contention trip: {CONTENTION_TRIP_ID}, passenger ids 1..{LOAD_USER_COUNT}")
    print("=" * 60)


class ContentionUser(HttpUser):
    """
    TEST 1: Contention - many passengers, one trip

    Run: locust -f locustfile.py --tags contention -u 100 -r 50 --run-time 30s

    After test, verify no seat is held twice:
      SELECT seat_number, COUNT(*) FROM reservations
      WHERE trip_id = X AND status = 'active'
      GROUP BY seat_number HAVING COUNT(*) > 1;
    Should return no rows, and the active count should be <= capacity.
    """
    wait_time = between(0, 0.1)

    def on_start(self):
        self.user_id = next(_user_ids)
        self.headers = auth_headers(self.user_id)

    @tag("contention")
    @task(5)
    def book_any_seat(self):
        with self.client.post("/api/v1/reservations/",
            json={"trip_id": CONTENTION_TRIP_ID, "destination": "Load Test"},
            headers=self.headers,
            name="/api/v1/reservations/ [auto seat]",
            catch_response=True
        ) as resp:
            if resp.status_code in (201, 409):
                resp.success()  # 409: full, duplicate or time conflict
            else:
                resp.failure(f"Unexpected: {resp.status_code}")

    @tag("contention")
    @task(3)
    def book_seat_one(self):
        """Everyone wants the front seat."""
        with self.client.post("/api/v1/reservations/",
            json={"trip_id": CONTENTION_TRIP_ID, "destination": "Load Test", "seat_number": 1},
            headers=self.headers,
            name="/api/v1/reservations/ [seat 1]",
            catch_response=True
        ) as resp:
            if resp.status_code in (201, 409):
                resp.success()
            else:
                resp.failure(f"Unexpected: {resp.status_code}")

    @tag("contention")
    @task(2)
    def cancel_own(self):
        """Release a seat so the fight continues."""
        resp = self.client.get("/api/v1/reservations/my", headers=self.headers)
        if resp.status_code != 200:
            return
        for reservation in resp.json():
            with self.client.patch(f"/api/v1/reservations/{reservation['id']}/cancel",
                headers=self.headers,
                name="/api/v1/reservations/{id}/cancel",
                catch_response=True
            ) as cancel_resp:
                if cancel_resp.status_code in (200, 400):
                    cancel_resp.success()  # 400: lost a cancel race with ourselves
                else:
                    cancel_resp.failure(f"Unexpected: {cancel_resp.status_code}")

    @tag("contention")
    @task(1)
    def watch_occupancy(self):
        self.client.get(f"/api/v1/trips/{CONTENTION_TRIP_ID}/occupancy",
            name="/api/v1/trips/{id}/occupancy")


class ThroughputUser(HttpUser):
    """
    TEST 2: Throughput - Cache effectiveness

    Run twice:
      1. With Redis: locust -f locustfile.py --tags throughput -u 100 -r 20 --run-time 60s
      2. Without Redis: Stop Redis, run again
    """
    wait_time = between(0.1, 0.5)

    @tag("throughput", "read")
    @task(10)
    def list_trips_cached(self):
        direction = random.choice(["", "?direction=forward", "?direction=reverse"])
        resp = self.client.get(f"/api/v1/trips/{direction}", name="/api/v1/trips/ [cached]")
        if resp.status_code == 200:
            for trip in resp.json().get("trips", []):
                if trip["id"] not in TRIP_IDS:
                    TRIP_IDS.append(trip["id"])

    @tag("throughput", "read")
    @task(3)
    def get_occupancy(self):
        """Never cached; always hits the database."""
        if TRIP_IDS:
            self.client.get(f"/api/v1/trips/{random.choice(TRIP_IDS)}/occupancy",
                name="/api/v1/trips/{id}/occupancy")

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
        self.headers = auth_headers(next(_user_ids))

    def _expect(self, resp, codes):
        if resp.status_code in codes:
            resp.success()
        else:
            resp.failure(f"Expected {codes}, got {resp.status_code}")

    @tag("edge")
    @task
    def unknown_trip(self):
        with self.client.post("/api/v1/reservations/",
            json={"trip_id": 999999, "destination": "Nowhere"},
            headers=self.headers,
            catch_response=True
        ) as resp:
            self._expect(resp, (404,))

    @tag("edge")
    @task
    def seat_out_of_range(self):
        with self.client.post("/api/v1/reservations/",
            json={"trip_id": CONTENTION_TRIP_ID, "destination": "X", "seat_number": 0},
            headers=self.headers,
            catch_response=True
        ) as resp:
            self._expect(resp, (400,))

    @tag("edge")
    @task
    def blank_destination(self):
        with self.client.post("/api/v1/reservations/",
            json={"trip_id": CONTENTION_TRIP_ID, "destination": "   "},
            headers=self.headers,
            catch_response=True
        ) as resp:
            self._expect(resp, (400,))

    @tag("edge")
    @task
    def malformed_json(self):
        with self.client.post("/api/v1/reservations/",
            data="not json at all",
            headers=self.headers,
            catch_response=True
        ) as resp:
            self._expect(resp, (400, 422))

    @tag("edge")
    @task
    def missing_auth(self):
        with self.client.post("/api/v1/reservations/",
            json={"trip_id": CONTENTION_TRIP_ID, "destination": "X"},
            catch_response=True
        ) as resp:
            self._expect(resp, (401,))

    @tag("edge")
    @task
    def cancel_unknown(self):
        with self.client.patch("/api/v1/reservations/999999/cancel",
            headers=self.headers,
            name="/api/v1/reservations/{id}/cancel [unknown]",
            catch_response=True
        ) as resp:
            self._expect(resp, (404,))
