"""
Locust Load Test Suite

Run scenarios:
  locust -f locustfile.py --tags concurrency  # Reserve storm against one date
  locust -f locustfile.py --tags throughput   # Availability reads and cached overview
  locust -f locustfile.py --tags edge         # Bad input
  locust -f locustfile.py                     # All tests

Holds expire on their own (RESERVATION_TTL_MINUTES), so runs leave no
permanent state behind except capacity counters for the storm date.
"""

import random
from datetime import date, timedelta

from locust import HttpUser, between, events, tag, task

SERVICES = ["Daycare", "Boarding Small", "Boarding Large", "Trial Day"]

# One far-future date every ConcurrencyUser fights over
STORM_DATE = (date.today() + timedelta(days=60)).isoformat()
HOLD_IDS = []


def random_email():
    return f"load_{random.randint(10000, 99999)}@test.com"


def random_day(max_days=30):
    return (date.today() + timedelta(days=random.randint(1, max_days))).isoformat()


def hold_body(service, day, **extra):
    body = {
        "service": service,
        "date": day,
        "userEmail": random_email(),
        "dogId": f"dog-{random.randint(1, 10**6)}",
    }
    body.update(extra)
    return body


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    print("\n" + "=" * 60)
    print(f"Reserve storm date: {STORM_DATE}")
    print("Verify afterwards: reserved + confirmed <= capacity for that date")
    print("=" * 60)


class ConcurrencyUser(HttpUser):
    """
    TEST 1: Concurrency - many users, one daycare date

    Run: locust -f locustfile.py --tags concurrency -u 100 -r 50 --run-time 30s

    After test, verify:
      GET /api/v1/availability?service=Daycare&date=<STORM_DATE>
    reserved + confirmed must never exceed capacity.
    """
    wait_time = between(0, 0.1)

    @tag("concurrency")
    @task
    def reserve_last_places(self):
        with self.client.post(
            "/api/v1/reservations",
            json=hold_body("Daycare", STORM_DATE),
            name="/api/v1/reservations [storm]",
            catch_response=True,
        ) as resp:
            if resp.status_code == 201:
                resp.success()
            elif resp.status_code == 409:
                resp.success()  # Expected: FULL
            else:
                resp.failure(f"Unexpected: {resp.status_code}")

    @tag("concurrency")
    @task
    def retry_with_same_key(self):
        """A client retrying one request must never take two places."""
        body = hold_body("Boarding Small", STORM_DATE, idempotencyKey=f"retry-{random.randint(1, 50)}")
        with self.client.post(
            "/api/v1/reservations",
            json=body,
            name="/api/v1/reservations [retry]",
            catch_response=True,
        ) as resp:
            if resp.status_code in (201, 409, 422):
                resp.success()
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class ThroughputUser(HttpUser):
    """
    TEST 2: Throughput - Cache effectiveness

    Run twice:
      1. With Redis: locust -f locustfile.py --tags throughput -u 100 -r 20 --run-time 60s
      2. Without Redis: REDIS_ENABLED=false, run again

    Compare avg response time, requests/sec and P95/P99 latency of the
    overview. Availability is never cached, so it is the baseline.
    """
    wait_time = between(0.1, 0.5)

    @tag("throughput", "read")
    @task(10)
    def capacity_overview_cached(self):
        self.client.get(
            f"/api/v1/capacity/overview?date={random_day(7)}",
            name="/api/v1/capacity/overview [cached]",
        )

    @tag("throughput", "read")
    @task(5)
    def availability(self):
        service = random.choice(SERVICES)
        self.client.get(
            f"/api/v1/availability?service={service}&date={random_day()}",
            name="/api/v1/availability",
        )

    @tag("throughput")
    @task(2)
    def price_quote(self):
        checkin = date.today() + timedelta(days=random.randint(1, 30))
        checkout = checkin + timedelta(days=random.randint(1, 7))
        self.client.post(
            "/api/v1/pricing/quote",
            json={
                "service": "boarding:small",
                "dogCount": random.randint(1, 2),
                "checkin": f"{checkin.isoformat()}T09:00:00",
                "checkout": f"{checkout.isoformat()}T17:00:00",
                "checkoutTimeLabel": random.choice(["08:00 - 10:00", "16:00 - 18:00"]),
            },
        )

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

    def _expect(self, resp, allowed):
        if resp.status_code in allowed:
            resp.success()
        else:
            resp.failure(f"Expected {allowed}, got {resp.status_code}")

    @tag("edge")
    @task
    def unknown_service(self):
        with self.client.post(
            "/api/v1/reservations", json=hold_body("Grooming", random_day()), catch_response=True
        ) as resp:
            self._expect(resp, [422])

    @tag("edge")
    @task
    def past_date(self):
        yesterday = (date.today() - timedelta(days=1)).isoformat()
        with self.client.post(
            "/api/v1/reservations", json=hold_body("Daycare", yesterday), catch_response=True
        ) as resp:
            self._expect(resp, [422])

    @tag("edge")
    @task
    def bad_email(self):
        body = hold_body("Daycare", random_day())
        body["userEmail"] = "not-an-email"
        with self.client.post("/api/v1/reservations", json=body, catch_response=True) as resp:
            self._expect(resp, [422])

    @tag("edge")
    @task
    def malformed_json(self):
        with self.client.post(
            "/api/v1/reservations", data="not json at all", catch_response=True
        ) as resp:
            self._expect(resp, [400, 422])

    @tag("edge")
    @task
    def release_unknown(self):
        with self.client.post(
            "/api/v1/reservations/does-not-exist/release",
            name="/api/v1/reservations/{id}/release",
            catch_response=True,
        ) as resp:
            self._expect(resp, [200])

    @tag("edge")
    @task
    def unsigned_webhook(self):
        with self.client.post(
            "/api/v1/payments/webhook", data="{}", catch_response=True
        ) as resp:
            self._expect(resp, [400])

    @tag("edge")
    @task
    def admin_without_token(self):
        with self.client.get("/api/v1/admin/capacity", catch_response=True) as resp:
            self._expect(resp, [401])


class RealisticUser(HttpUser):
    """
    TEST 4: Realistic mixed workload

    Run: locust -f locustfile.py -u 200 -r 20 --run-time 120s

    Simulates real traffic:
      - Mostly checking dates and prices
      - Some holds, about a third of which are abandoned
    """
    wait_time = between(1, 3)

    @task(50)
    def check_dates(self):
        self.client.get(
            f"/api/v1/availability?service={random.choice(SERVICES)}&date={random_day()}",
            name="/api/v1/availability",
        )

    @task(10)
    def view_hold(self):
        if HOLD_IDS:
            self.client.get(
                f"/api/v1/reservations/{random.choice(HOLD_IDS)}",
                name="/api/v1/reservations/{id}",
            )

    @task(10)
    def place_hold(self):
        with self.client.post(
            "/api/v1/reservations",
            json=hold_body(random.choice(SERVICES), random_day()),
            catch_response=True,
        ) as resp:
            if resp.status_code == 201:
                HOLD_IDS.append(resp.json()["reservationId"])
                resp.success()
            elif resp.status_code == 409:
                resp.success()

    @task(3)
    def abandon_hold(self):
        if HOLD_IDS:
            hold_id = HOLD_IDS.pop(random.randrange(len(HOLD_IDS)))
            self.client.post(
                f"/api/v1/reservations/{hold_id}/release",
                name="/api/v1/reservations/{id}/release",
            )
