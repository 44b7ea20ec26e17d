"""
Locust Load Test Suite

Run scenarios:
  locust -f locustfile.py --tags concurrency  # Test over-acceptance
  locust -f locustfile.py --tags throughput   # Test cache
  locust -f locustfile.py --tags edge         # Test bad input
  locust -f locustfile.py                     # All tests

Registration only creates `user` accounts, so the scenarios that create
organisations and events log in with an existing platform admin:

  LOCUST_ADMIN_EMAIL=admin@example.com LOCUST_ADMIN_PASSWORD=... locust -f locustfile.py
"""

import os
import random
import string
from datetime import datetime, timedelta, timezone

from locust import HttpUser, between, events, tag, task

ADMIN_EMAIL = os.environ.get("LOCUST_ADMIN_EMAIL", "admin@example.com")
ADMIN_PASSWORD = os.environ.get("LOCUST_ADMIN_PASSWORD", "admin12345")
PASSWORD = "loadtest123"

# Shared state
EVENT_IDS = []
ORGANISATION_ID = None
CONCURRENCY_EVENT_ID = None


def random_email():
    return f"load_{random.randint(10000, 999999)}@test.com"


def random_name():
    return "User " + "".join(random.choices(string.ascii_lowercase, k=8))


def event_payload(title, capacity, price=0, status="published"):
    start = datetime.now(timezone.utc) + timedelta(days=random.randint(10, 90))
    return {
        "title": title,
        "description": "Load test event",
        "organisation_id": ORGANISATION_ID,
        "category": random.choice(["workshop", "seminar", "hackathon"]),
        "event_type": "offline",
        "city": "Testville",
        "start_date": start.isoformat(),
        "end_date": (start + timedelta(hours=3)).isoformat(),
        "registration_end_date": (start - timedelta(days=2)).isoformat(),
        "capacity": capacity,
        "price": price,
        "status": status,
    }


def register_and_login(client):
    """Create a fresh applicant; a new account keeps clear of the daily application limit."""
    email = random_email()
    client.post("/api/v1/auth/register", json={
        "name": random_name(),
        "email": email,
        "password": PASSWORD,
    })
    resp = client.post("/api/v1/auth/login", json={"email": email, "password": PASSWORD})
    if resp.status_code == 200:
        return {"Authorization": f"Bearer {resp.json()['access_token']}"}
    return {}


def admin_headers(client):
    resp = client.post("/api/v1/auth/login", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
    if resp.status_code != 200:
        print(f"\n✗ Admin login failed ({resp.status_code}); set LOCUST_ADMIN_EMAIL/LOCUST_ADMIN_PASSWORD\n")
        return {}
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}


def ensure_organisation(client, headers):
    global ORGANISATION_ID
    if ORGANISATION_ID or not headers:
        return ORGANISATION_ID
    resp = client.post("/api/v1/organisations/", json={
        "name": f"Load Test Org {random.randint(1, 10000)}",
        "type": "other",
        "description": "Created by locust",
        "email": random_email(),
    }, headers=headers)
    if resp.status_code == 201:
        ORGANISATION_ID = resp.json()["id"]
    return ORGANISATION_ID


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    print("\n" + "=" * 60)
    print("SETUP: the first applicant creates the concurrency test event")
    print("=" * 60)


class ConcurrencyUser(HttpUser):
    """
    TEST 1: Concurrency - 100 applicants → 10 slots of a paid event

    Paid applications are accepted on submission, so every request races for
    a slot through the conditional `registered_count` update.

    Run: locust -f locustfile.py --tags concurrency -u 100 -r 50 --run-time 30s

    After test, verify:
      SELECT registered_count, capacity FROM events WHERE id = X;
      SELECT COUNT(*) FROM applications WHERE event_id = X AND status = 'accepted';
    Both counts should be ≤ 10
    """
    wait_time = between(0, 0.1)

    def on_start(self):
        self.headers = register_and_login(self.client)

        if not CONCURRENCY_EVENT_ID:
            headers = admin_headers(self.client)
            if ensure_organisation(self.client, headers):
                resp = self.client.post(
                    "/api/v1/events/",
                    json=event_payload("Concurrency Test Event", capacity=10, price=25),
                    headers=headers,
                )
                if resp.status_code == 201:
                    globals()["CONCURRENCY_EVENT_ID"] = resp.json()["id"]
                    print(f"\n✓ Created paid event {CONCURRENCY_EVENT_ID} with 10 slots\n")

    @tag("concurrency")
    @task
    def apply_for_limited_slots(self):
        """All applicants fight for the same 10 slots."""
        if not CONCURRENCY_EVENT_ID or not self.headers:
            return

        with self.client.post("/api/v1/applications/",
            json={"event_id": CONCURRENCY_EVENT_ID},
            headers=self.headers,
            catch_response=True
        ) as resp:
            if resp.status_code == 201:
                resp.success()
            elif resp.status_code == 409:
                resp.success()  # Expected: full, or already applied
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class ThroughputUser(HttpUser):
    """
    TEST 2: Throughput - Cache effectiveness

    Run twice:
      1. With Redis: locust -f locustfile.py --tags throughput -u 100 -r 20 --run-time 60s
      2. Without Redis: REDIS_ENABLED=false on the API, run again

    Compare:
      - Avg response time
      - Requests/sec
      - P95/P99 latency
    """
    wait_time = between(0.1, 0.5)

    @tag("throughput", "read")
    @task(10)
    def list_events_cached(self):
        page = random.randint(1, 5)
        self.client.get(f"/api/v1/events/?page={page}&limit=20&status=published",
            name="/api/v1/events/ [cached]")

    @tag("throughput", "read")
    @task(3)
    def search_events(self):
        term = random.choice(["workshop", "load", "event"])
        self.client.get(f"/api/v1/events/?search={term}&sort=-start_date",
            name="/api/v1/events/?search")

    @tag("throughput", "read")
    @task(3)
    def get_event_detail(self):
        if EVENT_IDS:
            self.client.get(f"/api/v1/events/{random.choice(EVENT_IDS)}",
                name="/api/v1/events/{id}")

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
        self.headers = register_and_login(self.client)

    def expect(self, method, url, allowed, **kwargs):
        with self.client.request(method, url, catch_response=True, **kwargs) as resp:
            if resp.status_code in allowed:
                resp.success()
            else:
                resp.failure(f"Expected {allowed}, got {resp.status_code}")

    @tag("edge")
    @task
    def invalid_event_id(self):
        self.expect("POST", "/api/v1/applications/", [404, 429],
            json={"event_id": 999999}, headers=self.headers)

    @tag("edge")
    @task
    def oversized_message(self):
        self.expect("POST", "/api/v1/applications/", [422],
            json={"event_id": 1, "message": "x" * 501}, headers=self.headers)

    @tag("edge")
    @task
    def invalid_status_value(self):
        self.expect("PATCH", "/api/v1/applications/1/status", [400, 403, 404],
            json={"status": "maybe"}, headers=self.headers)

    @tag("edge")
    @task
    def malformed_json(self):
        self.expect("POST", "/api/v1/applications/", [400, 422],
            data="not json at all", headers=self.headers)

    @tag("edge")
    @task
    def bad_pagination(self):
        self.expect("GET", "/api/v1/events/?page=-3&limit=abc", [200])

    @tag("edge")
    @task
    def missing_auth(self):
        self.expect("POST", "/api/v1/applications/", [401], json={"event_id": 1})


class RealisticUser(HttpUser):
    """
    TEST 4: Realistic mixed workload

    Run: locust -f locustfile.py -u 200 -r 20 --run-time 120s

    Simulates real traffic:
      - Mostly browsing
      - Some applications and inbox checks
      - Rare event creation by the admin
    """
    wait_time = between(1, 3)

    def on_start(self):
        self.headers = register_and_login(self.client)

    @task(50)
    def browse_events(self):
        resp = self.client.get("/api/v1/events/?page=1&limit=20&status=published")
        if resp.status_code == 200:
            for event in resp.json().get("events", []):
                if event["id"] not in EVENT_IDS:
                    EVENT_IDS.append(event["id"])

    @task(20)
    def view_event(self):
        if EVENT_IDS:
            self.client.get(f"/api/v1/events/{random.choice(EVENT_IDS)}", name="/api/v1/events/{id}")

    @task(10)
    def apply(self):
        if EVENT_IDS and self.headers:
            self.client.post("/api/v1/applications/",
                json={"event_id": random.choice(EVENT_IDS), "message": "Count me in"},
                headers=self.headers)

    @task(5)
    def my_applications(self):
        if self.headers:
            self.client.get("/api/v1/applications/my", headers=self.headers)

    @task(5)
    def unread_notifications(self):
        if self.headers:
            self.client.get("/api/v1/notifications/unread-count", headers=self.headers)

    @task(1)
    def create_event(self):
        headers = admin_headers(self.client)
        if ensure_organisation(self.client, headers):
            resp = self.client.post("/api/v1/events/",
                json=event_payload(f"Event {random.randint(1, 10000)}", capacity=random.randint(10, 500)),
                headers=headers)
            if resp.status_code == 201:
                EVENT_IDS.append(resp.json()["id"])
