"""
Locust Load Test Suite

Run scenarios:
  locust -f locustfile.py --tags concurrency  # Racing transitions on one booking
  locust -f locustfile.py --tags lifecycle    # Full dispatch lifecycles with coupling
  locust -f locustfile.py --tags analytics    # Report reads (cache effectiveness)
  locust -f locustfile.py --tags edge         # Bad input
  locust -f locustfile.py                     # All tests
"""

import random
from datetime import date, timedelta

from locust import HttpUser, task, between, tag, events

SERVICE_TYPES = ["cargo", "passenger", "public"]

# Shared state
CONTESTED_BOOKING_ID = None


def booking_payload():
    return {
        "source": random.choice(["Mumbai", "Delhi", "Chennai", "Kolkata"]),
        "destination": random.choice(["Pune", "Jaipur", "Mysore", "Patna"]),
        "service_type": random.choice(SERVICE_TYPES),
        "price": f"{random.randint(500, 50000) / 100:.2f}",
        "user_id": random.randint(1, 1000),
        "truck_id": random.randint(1, 50),
    }


def accept_conflicts(resp, *expected):
    if resp.status_code in (200, 201, *expected):
        resp.success()
    else:
        resp.failure(f"Unexpected: {resp.status_code}")


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    print("\n" + "=" * 60)
    print("SETUP: bookings are created lazily by the first user")
    print("=" * 60)


class ConcurrencyUser(HttpUser):
    """
    TEST 1: Concurrency - many users race to move the same booking

    Run: locust -f locustfile.py --tags concurrency -u 100 -r 50 --run-time 30s

    Every user reads the booking and tries to move it along an edge with
    the version it read. Losers must get 409 version_conflict; a 200 for
    two writers holding the same version is a bug.
    """
    wait_time = between(0, 0.1)

    def on_start(self):
        global CONTESTED_BOOKING_ID
        if CONTESTED_BOOKING_ID is None:
            resp = self.client.post("/api/v1/bookings/", json=booking_payload())
            if resp.status_code == 201:
                CONTESTED_BOOKING_ID = resp.json()["id"]
                print(f"\nCreated contested booking {CONTESTED_BOOKING_ID}\n")

    @tag("concurrency")
    @task
    def race_transition(self):
        if CONTESTED_BOOKING_ID is None:
            return

        resp = self.client.get(f"/api/v1/bookings/{CONTESTED_BOOKING_ID}", name="/api/v1/bookings/{id}")
        if resp.status_code != 200:
            return
        booking = resp.json()
        target = {"pending": "confirmed", "confirmed": "in_progress", "in_progress": "completed"}.get(
            booking["status"]
        )
        if target is None:
            return

        with self.client.post(
            f"/api/v1/bookings/{CONTESTED_BOOKING_ID}/status",
            json={"target_status": target, "from_version": booking["version"]},
            name="/api/v1/bookings/{id}/status",
            catch_response=True,
        ) as resp:
            accept_conflicts(resp, 409)


class LifecycleUser(HttpUser):
    """
    TEST 2: Lifecycle - booking -> dispatch -> completion, repeated

    Run: locust -f locustfile.py --tags lifecycle -u 50 -r 10 --run-time 60s

    After test, verify no completed dispatch points at a booking that is
    neither completed nor cancelled.
    """
    wait_time = between(0.1, 0.5)

    @tag("lifecycle")
    @task
    def run_lifecycle(self):
        resp = self.client.post("/api/v1/bookings/", json=booking_payload())
        if resp.status_code != 201:
            return
        booking = resp.json()

        resp = self.client.post(
            f"/api/v1/bookings/{booking['id']}/status",
            json={"target_status": "confirmed", "from_version": booking["version"]},
            name="/api/v1/bookings/{id}/status",
        )
        if resp.status_code != 200:
            return

        resp = self.client.post("/api/v1/dispatches/", json={"booking_id": booking["id"]})
        if resp.status_code != 201:
            return
        dispatch = resp.json()

        self.client.post(
            f"/api/v1/dispatches/{dispatch['id']}/driver",
            json={"driver_id": random.randint(1, 200)},
            name="/api/v1/dispatches/{id}/driver",
        )
        version = dispatch["version"] + 1

        for target in ("dispatched", "in_transit", "arrived", "completed"):
            with self.client.post(
                f"/api/v1/dispatches/{dispatch['id']}/status",
                json={"target_status": target, "from_version": version},
                name="/api/v1/dispatches/{id}/status",
                catch_response=True,
            ) as resp:
                accept_conflicts(resp)
                if resp.status_code != 200:
                    return
                version = resp.json()["dispatch"]["version"]


class AnalyticsUser(HttpUser):
    """
    TEST 3: Analytics throughput - cache effectiveness

    Run twice:
      1. With Redis: locust -f locustfile.py --tags analytics -u 100 -r 20 --run-time 60s
      2. Without Redis: REDIS_ENABLED=false, run again

    Compare avg response time, requests/sec and P95/P99 latency.
    """
    wait_time = between(0.1, 0.5)

    @tag("analytics", "read")
    @task(10)
    def full_report(self):
        end = date.today() + timedelta(days=1)
        start = end - timedelta(days=random.choice([7, 30, 90]))
        self.client.get(
            f"/api/v1/analytics/bookings?start_date={start}&end_date={end}",
            name="/api/v1/analytics/bookings",
        )

    @tag("analytics", "read")
    @task(3)
    def peak_hours(self):
        self.client.get("/api/v1/analytics/bookings/peak-hours")

    @tag("analytics")
    @task(1)
    def health_check(self):
        self.client.get("/health")


class EdgeCaseUser(HttpUser):
    """
    TEST 4: Edge cases - Bad input handling

    Run: locust -f locustfile.py --tags edge -u 20 -r 5 --run-time 30s

    System should NOT crash, return proper error codes.
    """
    wait_time = between(0.5, 1.5)

    def _expect(self, resp, *codes):
        if resp.status_code in codes:
            resp.success()
        else:
            resp.failure(f"Expected {codes}, got {resp.status_code}")

    @tag("edge")
    @task
    def missing_booking(self):
        with self.client.get("/api/v1/bookings/999999", catch_response=True) as resp:
            self._expect(resp, 404)

    @tag("edge")
    @task
    def negative_price(self):
        with self.client.post(
            "/api/v1/bookings/", json={**booking_payload(), "price": "-5"}, catch_response=True
        ) as resp:
            self._expect(resp, 422)

    @tag("edge")
    @task
    def skipped_transition(self):
        resp = self.client.post("/api/v1/bookings/", json=booking_payload())
        if resp.status_code != 201:
            return
        booking = resp.json()
        with self.client.post(
            f"/api/v1/bookings/{booking['id']}/status",
            json={"target_status": "completed", "from_version": booking["version"]},
            name="/api/v1/bookings/{id}/status",
            catch_response=True,
        ) as resp:
            self._expect(resp, 409)

    @tag("edge")
    @task
    def inverted_window(self):
        with self.client.get(
            "/api/v1/analytics/bookings?start_date=2026-03-10&end_date=2026-03-01",
            catch_response=True,
        ) as resp:
            self._expect(resp, 422)

    @tag("edge")
    @task
    def malformed_json(self):
        with self.client.post("/api/v1/bookings/", data="not json at all", catch_response=True) as resp:
            self._expect(resp, 400, 422)
