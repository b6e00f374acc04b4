import pytest

from app import app as flask_app
from app import failed_attempts, limiter


@pytest.fixture
def client():
    flask_app.config.update(
        TESTING=True,
        TRUST_PROXY=False,
        BATCH_MAX_URLS=100,
        BATCH_WORKERS=1,
        SECURITY_STATS_ENABLED=False,
        VALIDATION_RATE_LIMIT="1000 per minute",
    )
    limiter.reset()
    failed_attempts.reset()
    failed_attempts.max_failures = 10
    with flask_app.test_client() as c:
        yield c
    failed_attempts.reset()


def test_validate_get(client):
    resp = client.get("/api/validate", query_string={"url": "example.com"})
    assert resp.status_code == 200
    assert resp.get_json() == {"valid": True, "sanitized": "https://example.com/", "protocol": "https:"}


def test_validate_post_rejects_blocked_scheme(client):
    resp = client.post("/api/validate", json={"url": "javascript:alert(1)"})
    assert resp.status_code == 400
    assert resp.get_json()["error"]["code"] == "PROTOCOL_NOT_ALLOWED"


def test_validate_post_without_url(client):
    resp = client.post("/api/validate", json={})
    assert resp.status_code == 400
    assert resp.get_json()["error"]["code"] == "INVALID_TYPE"


def test_batch(client):
    resp = client.post(
        "/api/validate/batch",
        json={"urls": ["https://good.com", "javascript:x", "https://good2.com"]},
    )
    assert resp.status_code == 200
    results = resp.get_json()["results"]
    assert len(results) == 3
    assert results[0]["result"]["sanitized"] == "https://good.com/"
    assert results[1]["result"] is None
    assert results[1]["error"]["code"] == "PROTOCOL_NOT_ALLOWED"
    assert results[2]["error"] is None


def test_batch_requires_array(client):
    resp = client.post("/api/validate/batch", json={"urls": "https://example.com"})
    assert resp.status_code == 400
    body = resp.get_json()
    assert body["error"]["code"] == "INVALID_INPUT"
    assert "must be an array" in body["error"]["message"]


def test_batch_size_limit(client):
    flask_app.config["BATCH_MAX_URLS"] = 2
    resp = client.post("/api/validate/batch", json={"urls": ["a.com", "b.com", "c.com"]})
    assert resp.status_code == 400
    assert resp.get_json()["error"]["code"] == "INVALID_INPUT"


def test_repeated_failures_block_client(client):
    failed_attempts.max_failures = 3
    for _ in range(3):
        assert client.get("/api/validate", query_string={"url": "data:,x"}).status_code == 400

    resp = client.get("/api/validate", query_string={"url": "https://example.com"})
    assert resp.status_code == 403
    assert resp.get_json()["error"]["code"] == "BLOCKED"
    assert client.get("/navigate", query_string={"url": "https://example.com"}).status_code == 403


def test_forwarded_client_address(client):
    flask_app.config["TRUST_PROXY"] = True
    failed_attempts.max_failures = 1
    bad = {"X-Forwarded-For": "203.0.113.7, 10.0.0.1"}
    client.get("/api/validate", query_string={"url": ""}, headers=bad)

    assert client.get("/api/validate", query_string={"url": "example.com"}, headers=bad).status_code == 403
    other = {"X-Forwarded-For": "198.51.100.2"}
    assert client.get("/api/validate", query_string={"url": "example.com"}, headers=other).status_code == 200


def test_validation_routes_share_rate_limit(client):
    flask_app.config["VALIDATION_RATE_LIMIT"] = "2 per minute"
    assert client.get("/api/validate", query_string={"url": "example.com"}).status_code == 200
    assert client.post("/api/validate/batch", json={"urls": ["example.com"]}).status_code == 200

    resp = client.get("/api/validate", query_string={"url": "example.com"})
    assert resp.status_code == 429
    assert resp.get_json()["error"]["code"] == "RATE_LIMITED"

    resp = client.get("/navigate", query_string={"url": "example.com"})
    assert resp.status_code == 429
    assert "RATE_LIMITED" in resp.get_data(as_text=True)
    # Rate limiting is not a validation failure
    assert failed_attempts.failure_count("127.0.0.1") == 0


def test_rate_limit_is_per_client(client):
    flask_app.config.update(TRUST_PROXY=True, VALIDATION_RATE_LIMIT="1 per minute")
    first = {"X-Forwarded-For": "203.0.113.7"}
    assert client.get("/api/validate", query_string={"url": "a.com"}, headers=first).status_code == 200
    assert client.get("/api/validate", query_string={"url": "a.com"}, headers=first).status_code == 429
    other = {"X-Forwarded-For": "198.51.100.2"}
    assert client.get("/api/validate", query_string={"url": "a.com"}, headers=other).status_code == 200


def test_navigate_frames_sanitized_url(client):
    resp = client.get("/navigate", query_string={"url": "example.com?q=<script>alert(1)</script>"})
    assert resp.status_code == 200
    html = resp.get_data(as_text=True)
    assert 'src="https://example.com/?q="' in html
    assert "<script" not in html
    assert "sandbox=" in html


def test_navigate_rejection_notice(client):
    resp = client.get("/navigate", query_string={"url": "javascript:alert(1)"})
    assert resp.status_code == 400
    html = resp.get_data(as_text=True)
    assert "PROTOCOL_NOT_ALLOWED" in html
    assert "<iframe" not in html


def test_navigate_without_url_redirects(client):
    resp = client.get("/navigate")
    assert resp.status_code == 302


def test_index(client):
    resp = client.get("/")
    assert resp.status_code == 200
    assert b"Enter URL" in resp.data


def test_security_headers(client):
    resp = client.get("/")
    assert "frame-src http: https:" in resp.headers["Content-Security-Policy"]
    assert resp.headers["X-Frame-Options"] == "SAMEORIGIN"
    assert resp.headers["X-Content-Type-Options"] == "nosniff"
    assert resp.headers["Referrer-Policy"] == "strict-origin-when-cross-origin"


def test_stats_route_hidden_by_default(client):
    assert client.get("/api/security/failed-attempts").status_code == 404


def test_stats_route(client):
    flask_app.config["SECURITY_STATS_ENABLED"] = True
    client.get("/api/validate", query_string={"url": "file:///etc/passwd"})
    stats = client.get("/api/security/failed-attempts").get_json()
    assert stats["total_clients"] == 1
    assert stats["recent_attempts"][0]["recent_errors"] == ["PROTOCOL_NOT_ALLOWED"]
