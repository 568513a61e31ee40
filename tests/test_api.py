# =============================================================================
# tests/test_api.py - HTTP and WebSocket surface
# =============================================================================
# Runs the FastAPI app against a MemoryStore with a fake identity provider
# that maps fixed bearer tokens to users.
# =============================================================================

import pytest
from fastapi.testclient import TestClient

from app.core.dependencies import Providers, get_identity_provider, get_store
from app.config import settings
from app.main import app, limiter
from app.modules.profiles.service import ProfileService

ADMIN_HEADERS = {"Authorization": "Bearer admin-token"}
SUPPLIER_HEADERS = {"Authorization": "Bearer supplier-token"}


class FakeIdentity:
    def __init__(self, users):
        self.users = users

    def get_current_user(self, token):
        return self.users.get(token)

    def sign_out(self, token):
        self.users.pop(token, None)
        return True


@pytest.fixture
def client(store, admin_user, supplier_user):
    identity = FakeIdentity({"admin-token": admin_user, "supplier-token": supplier_user})
    ProfileService(store).ensure_profile(supplier_user)

    Providers._store = store
    Providers._identity = identity
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_identity_provider] = lambda: identity
    limiter.reset()
    with TestClient(app) as test_client:
        yield test_client
    limiter.reset()
    app.dependency_overrides.clear()
    Providers._store = None
    Providers._identity = None


def _send_request(client):
    return client.post("/api/v1/connections", json={"supplier_id": "S1"}, headers=ADMIN_HEADERS)


class TestHealth:

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}
        assert response.headers["X-Content-Type-Options"] == "nosniff"

    def test_default_rate_limit_applies(self, client):
        allowed = int(settings.rate_limit.split("/")[0])

        for _ in range(allowed):
            assert client.get("/").status_code == 200
        response = client.get("/")

        assert response.status_code == 429
        assert client.get("/health").status_code == 200


class TestAuth:

    def test_missing_token_is_rejected(self, client):
        response = client.get("/api/v1/auth/me")

        assert response.status_code in (401, 403)

    def test_unknown_token_is_401(self, client):
        response = client.get("/api/v1/auth/me", headers={"Authorization": "Bearer nope"})

        assert response.status_code == 401

    def test_me_creates_profile_from_metadata(self, client, store):
        response = client.get("/api/v1/auth/me", headers=ADMIN_HEADERS)

        assert response.status_code == 200
        body = response.json()
        assert body["user_type"] == "admin"
        assert body["company_name"] == "Acme Events"
        assert [r["id"] for r in store.rows("profiles")] == ["S1", "A1"]


class TestConnectionsApi:

    def test_full_request_lifecycle(self, client, store):
        sent = _send_request(client)
        assert sent.status_code == 201
        request_id = sent.json()["id"]
        assert sent.json()["requester_name"] == "Acme Events"
        assert sent.json()["supplier_name"] == "Best Catering"

        duplicate = _send_request(client)
        assert duplicate.status_code == 409
        assert duplicate.json()["code"] == "DUPLICATE_REQUEST"

        received = client.get("/api/v1/connections?direction=received", headers=SUPPLIER_HEADERS)
        assert [r["id"] for r in received.json()] == [request_id]

        accepted = client.post(f"/api/v1/connections/{request_id}/accept", headers=SUPPLIER_HEADERS)
        assert accepted.status_code == 200
        assert accepted.json()["status"] == "accepted"

        status = client.get(
            "/api/v1/connections/status",
            params={"requester_id": "A1", "supplier_id": "S1"},
            headers=ADMIN_HEADERS,
        )
        assert status.json() == {"connected": True}

        again = _send_request(client)
        assert again.status_code == 409
        assert again.json()["code"] == "ALREADY_CONNECTED"

        planners = client.get("/api/v1/roster/planners", headers=ADMIN_HEADERS)
        assert [p["email"] for p in planners.json()] == ["s@best.test"]
        liaisons = client.get("/api/v1/roster/liaisons", headers=SUPPLIER_HEADERS)
        assert [p["email"] for p in liaisons.json()] == ["a@acme.test"]

    def test_store_is_not_called_on_the_event_loop(self, client, store):
        request_id = _send_request(client).json()["id"]
        client.get("/api/v1/connections?direction=sent", headers=ADMIN_HEADERS)
        client.post(f"/api/v1/connections/{request_id}/decline", headers=SUPPLIER_HEADERS)
        client.get("/api/v1/suppliers", headers=ADMIN_HEADERS)
        client.put("/api/v1/profiles/me", json={"phone": "555-0100"}, headers=SUPPLIER_HEADERS)
        client.get("/api/v1/roster/planners", headers=ADMIN_HEADERS)
        client.get("/api/v1/auth/me", headers=ADMIN_HEADERS)
        client.get("/api/v1/notifications", headers=SUPPLIER_HEADERS)

        assert store.loop_calls == []

    def test_supplier_cannot_send_requests(self, client):
        response = client.post("/api/v1/connections", json={"supplier_id": "S1"}, headers=SUPPLIER_HEADERS)

        assert response.status_code == 403

    def test_admin_cannot_accept(self, client):
        request_id = _send_request(client).json()["id"]

        response = client.post(f"/api/v1/connections/{request_id}/accept", headers=ADMIN_HEADERS)

        assert response.status_code == 403

    def test_unknown_supplier_is_404(self, client):
        response = client.post("/api/v1/connections", json={"supplier_id": "nobody"}, headers=ADMIN_HEADERS)

        assert response.status_code == 404

    def test_accepting_unknown_request_is_404(self, client):
        response = client.post("/api/v1/connections/missing/accept", headers=SUPPLIER_HEADERS)

        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND_OR_UNAUTHORIZED"

    def test_store_outage_is_503(self, client, store):
        store.fail("select", "connection_requests", code="42P01")

        response = client.get("/api/v1/connections", headers=SUPPLIER_HEADERS)

        assert response.status_code == 503
        assert response.json()["code"] == "STORE_UNAVAILABLE"


class TestNotificationsApi:

    def test_supplier_sees_and_accepts_request(self, client, store):
        _send_request(client)

        feed = client.get("/api/v1/notifications", headers=SUPPLIER_HEADERS)
        assert feed.status_code == 200
        body = feed.json()
        assert body["unread_count"] == 1
        notification = body["notifications"][0]
        assert notification["message"] == "Acme Events wants to connect with you"
        assert notification["actionable"]

        accepted = client.post(f"/api/v1/notifications/{notification['id']}/accept", headers=SUPPLIER_HEADERS)
        assert accepted.status_code == 200
        assert accepted.json()["message"] == "Connection accepted! You can now message each other."

        admin_feed = client.get("/api/v1/notifications", headers=ADMIN_HEADERS).json()
        assert admin_feed["notifications"][0]["message"] == "Best Catering has accepted your connection request"

    def test_mark_all_read(self, client):
        _send_request(client)

        response = client.post("/api/v1/notifications/read-all", headers=SUPPLIER_HEADERS)

        assert response.status_code == 200
        assert response.json()["unread_count"] == 0

    def test_feed_outage_is_503(self, client, store):
        store.fail("select", "notifications")

        response = client.get("/api/v1/notifications", headers=SUPPLIER_HEADERS)

        assert response.status_code == 503


class TestSuppliersApi:

    def test_list_by_category(self, client, store):
        store.insert("profiles", {
            "id": "S2", "email": "hotel@example.com", "company_name": "Grand Hotel",
            "user_type": "supplier", "service_type": "Hotels",
        })

        response = client.get("/api/v1/suppliers", params={"category": "Dessert Caterers"}, headers=ADMIN_HEADERS)

        body = response.json()
        assert body["total"] == 1
        card = body["suppliers"][0]
        assert card["name"] == "Best Catering"
        assert card["image"] == "/images/venues/7.png"
        assert card["phone"] == "Not provided"

    def test_search_matches_address(self, client):
        response = client.get("/api/v1/suppliers", params={"search": "harbour"}, headers=ADMIN_HEADERS)

        assert [s["id"] for s in response.json()["suppliers"]] == ["S1"]

    def test_admin_profile_is_not_a_supplier(self, client):
        client.get("/api/v1/auth/me", headers=ADMIN_HEADERS)

        response = client.get("/api/v1/suppliers/A1", headers=ADMIN_HEADERS)

        assert response.status_code == 404


class TestNotificationsWebSocket:

    def test_bad_token_is_closed(self, client):
        from starlette.websockets import WebSocketDisconnect

        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect("/ws/notifications?token=nope") as ws:
                ws.receive_json()
        assert exc_info.value.code == 4001

    def test_snapshot_ping_and_live_update(self, client):
        with client.websocket_connect("/ws/notifications?token=supplier-token") as ws:
            first = ws.receive_json()
            assert first["type"] == "snapshot"
            assert first["unread_count"] == 0

            ws.send_text("ping")
            assert ws.receive_text() == "pong"

            _send_request(client)
            update = ws.receive_json()
            assert update["type"] == "snapshot"
            assert update["unread_count"] == 1

            ws.send_json({"action": "mark_all_read"})
            after = ws.receive_json()
            assert after["unread_count"] == 0
