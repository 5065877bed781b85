from edupulse.models import Book, Course, User
from edupulse.pagination import page_meta, paginate_list, sanitize
from edupulse.seed import seed_demo_data


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "healthy"
    assert body["environment"] == "test"
    assert "uptime" in body


def test_detailed_health_checks_database(client):
    body = client.get("/health/detailed").json()
    assert body["database"]["status"] == "connected"
    assert body["database"]["latency_ms"] >= 0


def test_root(client):
    assert client.get("/").json()["docs"] == "/docs"


def test_unknown_route_uses_error_envelope(client):
    r = client.get("/api/v1/nope")
    assert r.status_code == 404
    assert r.json() == {"success": False, "error": {"message": "Not Found", "code": "NOT_FOUND_ERROR"}}


def test_request_validation_errors_are_400(client):
    r = client.post("/api/v1/auth/login", json={"email": "admin@example.com"})
    assert r.status_code == 400
    body = r.json()
    assert body["success"] is False
    assert body["error"]["code"] == "VALIDATION_ERROR"
    assert body["error"]["message"].startswith("password")


def test_request_id_is_echoed_or_generated(client):
    r = client.get("/health", headers={"X-Request-ID": "abc123"})
    assert r.headers["X-Request-ID"] == "abc123"

    generated = client.get("/health").headers["X-Request-ID"]
    assert len(generated) == 32


def test_sanitize_clamps_page_and_limit():
    assert sanitize(None, None) == (1, 10)
    assert sanitize(0, 500) == (1, 100)
    assert sanitize(-3, 0) == (1, 10)


def test_page_meta():
    meta = page_meta(25, 3, 10)
    assert meta["total_pages"] == 3
    assert meta["has_next"] is False
    assert meta["has_prev"] is True
    assert page_meta(0, 1, 10)["total_pages"] == 0


def test_paginate_list():
    page = paginate_list(list(range(25)), page=2, limit=10)
    assert page.items == list(range(10, 20))
    assert page.meta["has_next"] is True


def test_seed_demo_data_is_idempotent(db):
    accounts = seed_demo_data(db)
    assert accounts["teacher"] == "teacher@edupulse.local"
    seed_demo_data(db)

    assert db.query(Course).count() == 2
    assert db.query(Book).count() == 4
    assert db.query(User).filter(User.email == "student@edupulse.local").count() == 1
