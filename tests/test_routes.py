from __future__ import annotations

from dataclasses import replace

from fastapi.testclient import TestClient

from creatorconnect.main import create_app


def test_index_and_health(client):
    r = client.get("/")
    assert r.status_code == 200
    assert r.json() == {"message": "CreatorConnect API", "version": "1.0.0", "status": "running"}

    r = client.get("/api/health")
    body = r.json()
    assert body["status"] == "OK"
    assert body["timestamp"].endswith("Z")
    assert r.headers["x-content-type-options"] == "nosniff"
    assert r.headers["x-frame-options"] == "DENY"


def test_unknown_route(client):
    r = client.get("/api/nope")
    assert r.status_code == 404
    assert r.json() == {"success": False, "message": "Route not found"}


def test_auth_required(client):
    r = client.get("/api/notifications")
    assert r.status_code == 401
    assert r.json()["success"] is False


def test_body_validation_errors(client, auth_header):
    r = client.post("/api/payments/support", json={"amount": 5}, headers=auth_header("s1"))
    assert r.status_code == 400
    body = r.json()
    assert body["message"] == "Validation failed"
    assert body["errors"][0]["field"] == "creator_id"


def test_domain_validation_errors_carry_fields(client, auth_header):
    r = client.post("/api/payments/support", json={"creator_id": "c1", "amount": 0}, headers=auth_header("s1"))
    assert r.status_code == 400
    body = r.json()
    assert body["success"] is False
    assert body["errors"][0]["field"] == "amount"


def test_unhandled_errors_become_500(settings, db):
    app = create_app(settings, db=db)

    @app.get("/boom")
    async def boom():
        raise RuntimeError("kaput")

    r = TestClient(app, raise_server_exceptions=False).get("/boom")
    assert r.status_code == 500
    assert r.json() == {"success": False, "message": "Internal Server Error"}


def test_unhandled_errors_include_stack_in_development(settings, db):
    dev = replace(settings, node_env="development")
    app = create_app(dev, db=db)

    @app.get("/boom")
    async def boom():
        raise RuntimeError("kaput")

    body = TestClient(app, raise_server_exceptions=False).get("/boom").json()
    assert body["message"] == "kaput"
    assert "RuntimeError" in body["stack"]


def test_unset_node_env_hides_stack_and_message(settings, db):
    app = create_app(replace(settings, node_env=""), db=db)

    @app.get("/boom")
    async def boom():
        raise RuntimeError("secret internals")

    body = TestClient(app, raise_server_exceptions=False).get("/boom").json()
    assert body == {"success": False, "message": "Internal Server Error"}


def test_service_errors_carry_stack_only_in_development(settings, db):
    dev = TestClient(create_app(replace(settings, node_env="development"), db=db))
    body = dev.get("/api/tiers/badid").json()
    assert body["message"] == "Tier not found"
    assert "NotFoundError" in body["stack"]
    assert "stack" not in dev.get("/api/nope").json()

    prod = TestClient(create_app(replace(settings, node_env="production"), db=db))
    assert "stack" not in prod.get("/api/tiers/badid").json()


def test_tier_and_subscription_flow(client, auth_header):
    r = client.post(
        "/api/tiers",
        json={"title": "Gold", "description": "All posts", "price": 10, "currency": "usd"},
        headers=auth_header("c1"),
    )
    assert r.status_code == 201
    tier = r.json()["data"]
    assert tier["currency"] == "USD"

    assert client.get(f"/api/tiers/{tier['id']}").json()["data"]["title"] == "Gold"
    assert len(client.get("/api/tiers/creator/c1").json()["data"]) == 1
    assert client.get("/api/tiers/badid").status_code == 404

    body = {"tier_id": tier["id"], "provider_subscription_ref": "sub_1", "renewal_date": "2030-01-01T00:00:00Z"}
    r = client.post("/api/subscriptions", json=body, headers=auth_header("s1"))
    assert r.status_code == 201
    assert r.json()["data"]["transaction"]["status"] == "succeeded"

    r = client.post("/api/subscriptions", json={**body, "provider_subscription_ref": "sub_2"}, headers=auth_header("s1"))
    assert r.status_code == 409

    assert client.get("/api/payments/access/c1", headers=auth_header("s1")).json()["data"]["member"] is True
    assert len(client.get("/api/subscriptions/subscribers", headers=auth_header("c1")).json()["data"]) == 1

    assert client.post("/api/subscriptions/sub_1/cancel", headers=auth_header("intruder")).status_code == 404
    r = client.post("/api/subscriptions/sub_1/cancel", headers=auth_header("s1"))
    assert r.status_code == 200
    assert r.json()["status"] == "canceled"
    assert r.json()["previous_status"] == "active"
    assert client.get("/api/subscriptions/mine?status=canceled", headers=auth_header("s1")).json()["data"][0]["id"]


def test_support_transactions_and_earnings(client, auth_header):
    r = client.post(
        "/api/payments/support",
        json={"creator_id": "c1", "amount": 5, "currency": "usd", "provider_payment_ref": "pi_1"},
        headers=auth_header("s1"),
    )
    assert r.status_code == 201
    tx = r.json()["data"]["transaction"]

    assert len(client.get("/api/payments/supports/given", headers=auth_header("s1")).json()["data"]) == 1
    assert len(client.get("/api/payments/supports/received", headers=auth_header("c1")).json()["data"]) == 1
    assert client.get("/api/payments/access/c1", headers=auth_header("s1")).json()["data"]["supporter"] is True

    assert client.get(f"/api/payments/transactions/{tx['id']}", headers=auth_header("c1")).status_code == 200
    assert client.get(f"/api/payments/transactions/{tx['id']}", headers=auth_header("x")).status_code == 404
    assert len(client.get("/api/payments/transactions", headers=auth_header("s1")).json()["data"]) == 1
    assert len(client.get("/api/payments/transactions?role=creator", headers=auth_header("c1")).json()["data"]) == 1

    # pending support does not count yet
    assert client.get("/api/payments/earnings", headers=auth_header("c1")).json()["data"]["totals"] == {}


def test_notifications_endpoints(client, auth_header, services):
    first = services.notifications.notify("u1", "One", "msg")
    services.notifications.notify("u1", "Two", "msg")
    h = auth_header("u1")

    assert client.get("/api/notifications/unread-count", headers=h).json()["data"]["count"] == 2
    r = client.get("/api/notifications?limit=1", headers=h).json()
    assert r["data"][0]["title"] == "Two"
    assert r["next_cursor"]

    assert client.post(f"/api/notifications/{first['_id']}/read", headers=h).json()["data"]["is_read"] is True
    assert client.post(f"/api/notifications/{first['_id']}/read", headers=auth_header("u2")).status_code == 404
    assert client.post("/api/notifications/read-all", headers=h).json()["data"]["updated"] == 1


def test_ai_log_endpoints(client, auth_header):
    h = auth_header("u1")
    r = client.post("/api/ai/logs", json={"prompt": "p" * 2001, "response": "r"}, headers=h)
    assert r.status_code == 400
    r = client.post("/api/ai/logs", json={"prompt": "ideas", "response": "r", "purpose": "idea_generation"}, headers=h)
    assert r.status_code == 201
    assert client.get("/api/ai/logs", headers=h).json()["data"][0]["purpose"] == "idea_generation"


def test_metrics_endpoint_when_enabled(settings, db):
    app = create_app(replace(settings, metrics_enabled=True), db=db)
    client = TestClient(app)
    client.get("/api/health")
    r = client.get("/metrics")
    assert r.status_code == 200
    assert "http_requests_total" in r.text
    assert 'path="/api/health"' in r.text


def test_post_unlock_endpoints(client, auth_header):
    r = client.post(
        "/api/payments/support",
        json={"creator_id": "c1", "amount": 3, "post_id": "post_1"},
        headers=auth_header("s1"),
    )
    assert r.json()["data"]["unlock"]["unlocked_by"] == "payment"
    assert client.get("/api/payments/unlocks/post_1", headers=auth_header("s1")).json()["data"]["unlocked"] is True
    assert client.get("/api/payments/unlocks/post_1", headers=auth_header("s2")).json()["data"]["unlocked"] is False

    r = client.post("/api/payments/unlocks", json={"creator_id": "c1", "post_id": "post_2"}, headers=auth_header("s1"))
    assert r.status_code == 403
    assert r.json()["success"] is False
    assert len(client.get("/api/payments/unlocks", headers=auth_header("s1")).json()["data"]) == 1
