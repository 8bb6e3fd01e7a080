"""
Locust Load Test Suite

Machines are created by an admin beforehand (accounts created through the
API are always regular users).

Run scenarios:
  locust -f locustfile.py --tags concurrency  # Test double booking
  locust -f locustfile.py --tags throughput   # Test cache
  locust -f locustfile.py --tags edge         # Test bad input
  locust -f locustfile.py                     # All tests
"""

import random
from locust import HttpUser, task, between, tag, events

# Shared state
MACHINE_IDS = []


def random_email():
    return f"load_{random.randint(10000, 99999)}@test.com"


def login(client):
    """Log in (first login creates the account) and return auth headers."""
    resp = client.post("/api/v1/auth/login", json={
        "email": random_email(),
        "password": "test123"
    })
    if resp.status_code == 200:
        return {"Authorization": f"Bearer {resp.json()['access_token']}"}
    return {}


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    print("\n" + "="*60)
    print("SETUP: make sure an admin has created at least one machine")
    print("="*60)


class ConcurrencyUser(HttpUser):
    """
    TEST 1: Concurrency - every user books the first machine

    Run: locust -f locustfile.py --tags concurrency -u 100 -r 50 --run-time 30s

    After test, verify:
      SELECT user_id, COUNT(*) FROM bookings GROUP BY user_id HAVING COUNT(*) > 1;
    Should return no rows, and the machine's queue_count should equal
    the number of bookings on it.
    """
    wait_time = between(0, 0.1)

    def on_start(self):
        self.headers = login(self.client)
        if not MACHINE_IDS:
            resp = self.client.get("/api/v1/machines/")
            if resp.status_code == 200:
                MACHINE_IDS.extend(m["id"] for m in resp.json()["machines"])

    @tag("concurrency")
    @task(5)
    def book_first_machine(self):
        """All users fight over one machine."""
        if not MACHINE_IDS or not self.headers:
            return

        with self.client.post("/api/v1/bookings/",
            json={"machine_id": MACHINE_IDS[0]},
            headers=self.headers,
            catch_response=True
        ) as resp:
            if resp.status_code == 201:
                resp.success()
            elif resp.status_code == 409:
                resp.success()  # Expected: already booked / out of order
            else:
                resp.failure(f"Unexpected: {resp.status_code}")

    @tag("concurrency")
    @task(1)
    def cancel_booking(self):
        """Leave the queue so the user can book again."""
        if self.headers:
            self.client.delete("/api/v1/bookings/active", headers=self.headers)


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
    def list_machines_cached(self):
        """Hammer the cached endpoint."""
        resp = self.client.get("/api/v1/machines/", name="/api/v1/machines/ [cached]")
        if resp.status_code == 200 and not MACHINE_IDS:
            MACHINE_IDS.extend(m["id"] for m in resp.json()["machines"])

    @tag("throughput", "read")
    @task(3)
    def get_machine_detail(self):
        if MACHINE_IDS:
            self.client.get(f"/api/v1/machines/{random.choice(MACHINE_IDS)}",
                name="/api/v1/machines/{id}")

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
        self.headers = login(self.client)

    @tag("edge")
    @task
    def invalid_machine_id(self):
        """Book non-existent machine."""
        with self.client.post("/api/v1/bookings/",
            json={"machine_id": "does-not-exist"},
            headers=self.headers,
            catch_response=True
        ) as resp:
            if resp.status_code in [404, 409]:
                resp.success()
            else:
                resp.failure(f"Expected 404/409, got {resp.status_code}")

    @tag("edge")
    @task
    def bad_qr_payload(self):
        with self.client.post("/api/v1/machines/scan",
            json={"payload": "https://example.com/not a machine"},
            headers=self.headers,
            catch_response=True
        ) as resp:
            if resp.status_code in [404, 422]:
                resp.success()
            else:
                resp.failure(f"Expected 404/422, got {resp.status_code}")

    @tag("edge")
    @task
    def start_without_booking(self):
        if not MACHINE_IDS:
            return
        with self.client.post("/api/v1/bookings/start",
            json={"machine_id": MACHINE_IDS[0]},
            headers=self.headers,
            catch_response=True
        ) as resp:
            if resp.status_code == 409:
                resp.success()
            else:
                resp.failure(f"Expected 409, got {resp.status_code}")

    @tag("edge")
    @task
    def malformed_json(self):
        """Send garbage data."""
        with self.client.post("/api/v1/bookings/",
            data="not json at all",
            headers=self.headers,
            catch_response=True
        ) as resp:
            if resp.status_code in [400, 422]:
                resp.success()
            else:
                resp.failure(f"Expected 400/422, got {resp.status_code}")

    @tag("edge")
    @task
    def missing_auth(self):
        """Try booking without auth."""
        with self.client.post("/api/v1/bookings/",
            json={"machine_id": "any"},
            catch_response=True
        ) as resp:
            if resp.status_code == 401:
                resp.success()
            else:
                resp.failure(f"Expected 401, got {resp.status_code}")


class RealisticUser(HttpUser):
    """
    TEST 4: Realistic mixed workload

    Run: locust -f locustfile.py -u 200 -r 20 --run-time 120s

    Mostly polling the machine list and notifications, some bookings.
    """
    wait_time = between(1, 3)

    def on_start(self):
        self.headers = login(self.client)

    @task(50)
    def browse_machines(self):
        resp = self.client.get("/api/v1/machines/")
        if resp.status_code == 200:
            for machine in resp.json().get("machines", []):
                if machine["id"] not in MACHINE_IDS:
                    MACHINE_IDS.append(machine["id"])

    @task(20)
    def poll_notifications(self):
        if self.headers:
            self.client.get("/api/v1/notifications/", headers=self.headers)

    @task(10)
    def book_machine(self):
        if MACHINE_IDS and self.headers:
            self.client.post("/api/v1/bookings/",
                json={"machine_id": random.choice(MACHINE_IDS)},
                headers=self.headers)

    @task(5)
    def check_active_booking(self):
        if self.headers:
            self.client.get("/api/v1/bookings/active", headers=self.headers)

    @task(3)
    def cancel_booking(self):
        if self.headers:
            self.client.delete("/api/v1/bookings/active", headers=self.headers)
