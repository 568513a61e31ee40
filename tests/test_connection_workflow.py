# =============================================================================
# tests/test_connection_workflow.py - Connection Workflow Engine Tests
# =============================================================================
# Covers the request lifecycle (pending -> accepted | declined), the writes
# each transition triggers, and the partial-failure behavior of advisory steps.
# =============================================================================

import json

import pytest

from app.core.errors import (
    AlreadyConnectedError, DuplicateRequestError, InvalidConnectionRequestError,
    NotFoundOrUnauthorizedError, StoreUnavailableError,
)
from app.modules.connections.schemas import ConnectionDirection, ConnectionStatus, Party


def _notifications(store, **filters):
    return [n for n in store.rows("notifications") if all(n.get(k) == v for k, v in filters.items())]


# =============================================================================
# sendConnectionRequest
# =============================================================================

class TestSendConnectionRequest:

    def test_creates_pending_request_and_supplier_notification(self, engine, store, requester, supplier):
        result = engine.send_connection_request(requester, supplier)

        assert result.ok
        request = result.data
        assert request.requester_id == "A1"
        assert request.supplier_id == "S1"
        assert request.status == ConnectionStatus.PENDING

        rows = store.rows("connection_requests")
        assert len(rows) == 1
        assert rows[0]["status"] == "pending"

        notifications = _notifications(store, supplier_email="s@best.test")
        assert len(notifications) == 1
        notification = notifications[0]
        assert notification["type"] == "connection_request"
        assert notification["connection_request_id"] == request.id
        assert notification["status"] == "unread"
        assert "admin_user_id" not in notification
        content = json.loads(notification["content"])
        assert content["requester_name"] == "Acme Events"
        assert content["requester_email"] == "a@acme.test"
        assert content["message"] == "Acme Events invited you to connect"

    def test_second_pending_request_is_duplicate(self, engine, store, requester, supplier):
        engine.send_connection_request(requester, supplier)

        result = engine.send_connection_request(requester, supplier)

        assert not result.ok
        assert isinstance(result.error, DuplicateRequestError)
        assert result.error.message == "Connection request already sent and pending"
        assert len(store.rows("connection_requests")) == 1
        assert len(store.rows("notifications")) == 1

    def test_request_after_acceptance_is_already_connected(self, engine, store, requester, supplier):
        request = engine.send_connection_request(requester, supplier).data
        engine.accept_connection_request(request.id, supplier)

        result = engine.send_connection_request(requester, supplier)

        assert isinstance(result.error, AlreadyConnectedError)
        assert len(store.rows("connection_requests")) == 1

    def test_request_after_decline_is_allowed(self, engine, store, requester, supplier):
        request = engine.send_connection_request(requester, supplier).data
        engine.decline_connection_request(request.id, supplier)

        result = engine.send_connection_request(requester, supplier)

        assert result.ok
        assert len(store.rows("connection_requests")) == 2

    def test_self_request_is_rejected(self, engine, store, requester):
        result = engine.send_connection_request(requester, requester)

        assert isinstance(result.error, InvalidConnectionRequestError)
        assert store.rows("connection_requests") == []

    def test_notification_failure_still_reports_success(self, engine, store, requester, supplier):
        # One retry by default, so two failures exhaust the step
        store.fail("insert", "notifications", times=2)

        result = engine.send_connection_request(requester, supplier)

        assert result.ok
        assert len(store.rows("connection_requests")) == 1
        assert store.rows("notifications") == []

    def test_notification_insert_is_retried(self, engine, store, requester, supplier):
        store.fail("insert", "notifications", times=1)

        result = engine.send_connection_request(requester, supplier)

        assert result.ok
        assert len(store.rows("notifications")) == 1

    def test_missing_table_is_store_unavailable(self, engine, store, requester, supplier):
        store.fail("select", "connection_requests", code="42P01")

        result = engine.send_connection_request(requester, supplier)

        assert isinstance(result.error, StoreUnavailableError)
        assert "not set up" in result.error.message
        assert store.rows("connection_requests") == []

    def test_insert_failure_is_store_unavailable(self, engine, store, requester, supplier):
        store.fail("insert", "connection_requests")

        result = engine.send_connection_request(requester, supplier)

        assert isinstance(result.error, StoreUnavailableError)
        assert store.rows("notifications") == []


# =============================================================================
# acceptConnectionRequest
# =============================================================================

class TestAcceptConnectionRequest:

    def test_accept_updates_status_rosters_and_notifications(self, engine, store, requester, supplier):
        request = engine.send_connection_request(requester, supplier).data

        result = engine.accept_connection_request(request.id, supplier)

        assert result.ok
        assert result.data.status == ConnectionStatus.ACCEPTED
        assert store.rows("connection_requests")[0]["status"] == "accepted"

        planners = store.rows("planners")
        assert len(planners) == 1
        assert planners[0]["user_id"] == "A1"
        assert planners[0]["email"] == "s@best.test"
        assert planners[0]["connection_type"] == "supplier"

        liaisons = store.rows("liaisons")
        assert len(liaisons) == 1
        assert liaisons[0]["user_id"] == "S1"
        assert liaisons[0]["email"] == "a@acme.test"

        accepted = _notifications(store, type="connection_accepted")
        assert len(accepted) == 1
        assert accepted[0]["admin_user_id"] == "A1"
        assert accepted[0]["connection_request_id"] == request.id
        assert "supplier_email" not in accepted[0]

        original = _notifications(store, type="connection_request")[0]
        assert original["status"] == "read"

    def test_unknown_id_mutates_nothing(self, engine, store, requester, supplier):
        engine.send_connection_request(requester, supplier)
        before = store.rows("notifications")

        result = engine.accept_connection_request("does-not-exist", supplier)

        assert isinstance(result.error, NotFoundOrUnauthorizedError)
        assert store.rows("connection_requests")[0]["status"] == "pending"
        assert store.rows("notifications") == before
        assert store.rows("planners") == []
        assert store.rows("liaisons") == []

    def test_other_supplier_cannot_accept(self, engine, store, requester, supplier):
        request = engine.send_connection_request(requester, supplier).data
        intruder = Party(id="S2", name="Other Supplier", email="other@supplier.test")

        result = engine.accept_connection_request(request.id, intruder)

        assert isinstance(result.error, NotFoundOrUnauthorizedError)
        assert store.rows("connection_requests")[0]["status"] == "pending"
        assert store.rows("planners") == []

    def test_terminal_request_cannot_be_accepted(self, engine, store, requester, supplier):
        request = engine.send_connection_request(requester, supplier).data
        engine.decline_connection_request(request.id, supplier)

        result = engine.accept_connection_request(request.id, supplier)

        assert isinstance(result.error, NotFoundOrUnauthorizedError)
        assert store.rows("connection_requests")[0]["status"] == "declined"
        assert _notifications(store, type="connection_accepted") == []

    def test_existing_planner_is_not_duplicated(self, engine, store, requester, supplier):
        store.insert("planners", {"user_id": "A1", "name": "Best Catering", "email": "s@best.test"})
        request = engine.send_connection_request(requester, supplier).data

        engine.accept_connection_request(request.id, supplier)

        assert len(store.rows("planners")) == 1

    def test_roster_failure_does_not_roll_back(self, engine, store, requester, supplier):
        request = engine.send_connection_request(requester, supplier).data
        store.fail("insert", "planners", times=2)

        result = engine.accept_connection_request(request.id, supplier)

        assert result.ok
        assert store.rows("connection_requests")[0]["status"] == "accepted"
        assert store.rows("planners") == []
        assert len(store.rows("liaisons")) == 1
        assert len(_notifications(store, type="connection_accepted")) == 1

    def test_reread_failure_skips_requester_notification(self, engine, store, requester, supplier):
        request = engine.send_connection_request(requester, supplier).data
        # The status update does not select, so both failures land on the requester re-read
        store.fail("select", "connection_requests", times=2)

        result = engine.accept_connection_request(request.id, supplier)

        assert result.ok
        assert _notifications(store, type="connection_accepted") == []
        assert len(store.rows("planners")) == 1

    def test_status_update_failure_is_store_unavailable(self, engine, store, requester, supplier):
        request = engine.send_connection_request(requester, supplier).data
        store.fail("update", "connection_requests")

        result = engine.accept_connection_request(request.id, supplier)

        assert isinstance(result.error, StoreUnavailableError)
        assert store.rows("connection_requests")[0]["status"] == "pending"


# =============================================================================
# declineConnectionRequest
# =============================================================================

class TestDeclineConnectionRequest:

    def test_decline_notifies_requester_without_roster(self, engine, store, requester, supplier):
        request = engine.send_connection_request(requester, supplier).data

        result = engine.decline_connection_request(request.id, supplier)

        assert result.ok
        assert result.data.status == ConnectionStatus.DECLINED
        assert store.rows("connection_requests")[0]["status"] == "declined"

        declined = _notifications(store, type="connection_declined")
        assert len(declined) == 1
        assert declined[0]["admin_user_id"] == "A1"
        assert json.loads(declined[0]["content"])["message"] == "Best Catering has declined your connection request"

        assert _notifications(store, type="connection_request")[0]["status"] == "read"
        assert store.rows("planners") == []
        assert store.rows("liaisons") == []

    def test_decline_twice_fails_second_time(self, engine, store, requester, supplier):
        request = engine.send_connection_request(requester, supplier).data
        engine.decline_connection_request(request.id, supplier)

        result = engine.decline_connection_request(request.id, supplier)

        assert isinstance(result.error, NotFoundOrUnauthorizedError)
        assert len(_notifications(store, type="connection_declined")) == 1


# =============================================================================
# Queries
# =============================================================================

class TestQueries:

    @pytest.fixture
    def seeded(self, store):
        rows = [
            ("r1", "A1", "S1", "2024-01-01T10:00:00+00:00"),
            ("r2", "A1", "S2", "2024-01-03T10:00:00+00:00"),
            ("r3", "A2", "S1", "2024-01-02T10:00:00+00:00"),
        ]
        for request_id, requester_id, supplier_id, created_at in rows:
            store.insert("connection_requests", {
                "id": request_id,
                "requester_id": requester_id,
                "supplier_id": supplier_id,
                "status": "pending",
                "created_at": created_at,
            })
        return store

    def test_received_requests_newest_first(self, engine, seeded):
        result = engine.get_connection_requests("S1", ConnectionDirection.RECEIVED)

        assert [r.id for r in result.data] == ["r3", "r1"]

    def test_sent_requests_newest_first(self, engine, seeded):
        result = engine.get_connection_requests("A1", ConnectionDirection.SENT)

        assert [r.id for r in result.data] == ["r2", "r1"]

    def test_query_failure_is_store_unavailable(self, engine, store):
        store.fail("select", "connection_requests")

        result = engine.get_connection_requests("S1")

        assert isinstance(result.error, StoreUnavailableError)

    def test_connection_is_directional(self, engine, requester, supplier):
        request = engine.send_connection_request(requester, supplier).data
        assert engine.are_users_connected("A1", "S1").data.connected is False

        engine.accept_connection_request(request.id, supplier)

        assert engine.are_users_connected("A1", "S1").data.connected is True
        assert engine.are_users_connected("S1", "A1").data.connected is False

    def test_find_pending_request(self, engine, requester, supplier):
        request = engine.send_connection_request(requester, supplier).data

        assert engine.find_pending_request("A1", "S1").data.id == request.id
        assert engine.find_pending_request("A1", "S9").data is None
