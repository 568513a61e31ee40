import logging
from datetime import datetime, timezone
from typing import List, Optional

from app.core.errors import (
    AlreadyConnectedError, DuplicateRequestError, InvalidConnectionRequestError,
    MarketplaceError, NotFoundOrUnauthorizedError, StoreUnavailableError,
)
from app.core.result import Result
from app.database.store import PersistentStore, StoreError
from app.modules.auth.schemas import normalize_email
from app.modules.connections.saga import Saga
from app.modules.connections.schemas import (
    ACTIVE_STATUSES, ConnectionDirection, ConnectionRequest, ConnectionStatus,
    ConnectionStatusResponse, Party,
)
from app.modules.notifications.schemas import NotificationType
from app.modules.notifications.service import NotificationService
from app.modules.roster.service import RosterService

logger = logging.getLogger(__name__)

CONNECTION_REQUESTS_TABLE = "connection_requests"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class ConnectionWorkflowEngine:
    """Lifecycle of connection requests between event organizers and suppliers.

    Every public operation returns a Result and never raises. The status write
    is the source of truth; notification and roster writes that follow it are
    advisory and may be missing after a partial failure.
    """

    def __init__(
        self,
        store: PersistentStore,
        notifications: Optional[NotificationService] = None,
        roster: Optional[RosterService] = None,
    ):
        self.store = store
        self.notifications = notifications or NotificationService(store)
        self.roster = roster or RosterService(store)

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    def send_connection_request(self, requester: Party, supplier: Party) -> Result[ConnectionRequest]:
        if not requester.id or not supplier.id:
            return Result.failure(InvalidConnectionRequestError("Requester and supplier ids are required"))
        if requester.id == supplier.id:
            return Result.failure(InvalidConnectionRequestError(
                "Cannot send a connection request to yourself",
                details={"user_id": requester.id},
            ))

        try:
            existing = self.store.select(
                CONNECTION_REQUESTS_TABLE,
                {"requester_id": requester.id, "supplier_id": supplier.id, "status": ACTIVE_STATUSES},
                limit=1,
            )
        except StoreError as e:
            return Result.failure(StoreUnavailableError.from_store_error(e))
        if existing:
            if existing[0]["status"] == ConnectionStatus.ACCEPTED.value:
                return Result.failure(AlreadyConnectedError(requester.id, supplier.id))
            return Result.failure(DuplicateRequestError(requester.id, supplier.id))

        def insert_request() -> ConnectionRequest:
            now = _now()
            row = self.store.insert(CONNECTION_REQUESTS_TABLE, {
                "requester_id": requester.id,
                "requester_name": requester.name,
                "requester_email": normalize_email(requester.email),
                "supplier_id": supplier.id,
                "supplier_name": supplier.name,
                "supplier_email": normalize_email(supplier.email),
                "status": ConnectionStatus.PENDING.value,
                "created_at": now,
                "updated_at": now,
            })
            return ConnectionRequest(**row)

        def notify_supplier(request: ConnectionRequest):
            self.notifications.create(
                NotificationType.CONNECTION_REQUEST.value,
                {
                    "requester_name": requester.name,
                    "requester_email": requester.email,
                    "message": f"{requester.name} invited you to connect",
                },
                supplier_email=supplier.email,
                connection_request_id=request.id,
                metadata={
                    "admin_id": requester.id,
                    "admin_name": requester.name,
                    "supplier_id": supplier.id,
                    "supplier_name": supplier.name,
                },
            )

        saga = Saga("send_connection_request")\
            .core("insert_connection_request", insert_request)\
            .advisory("notify_supplier", notify_supplier)
        result = self._run(saga)
        if result.ok:
            logger.info(f"Connection request {result.data.id} sent: {requester.id} -> {supplier.id}")
        return result

    def accept_connection_request(self, connection_request_id: str, supplier: Party) -> Result[ConnectionRequest]:
        def add_liaison(request: ConnectionRequest):
            self.roster.add_liaison(supplier.id, request.requester_name or "", request.requester_email or "")

        def mark_request_notification_read(request: ConnectionRequest):
            self.notifications.mark_request_notification_read(request.id, supplier.email)

        def add_planner(request: ConnectionRequest):
            self.roster.add_planner(request.requester_id, supplier.name, supplier.email)

        def notify_requester(request: ConnectionRequest):
            self._notify_requester(request.id, supplier, accepted=True)

        saga = Saga("accept_connection_request")\
            .core("mark_accepted", lambda: self._transition(connection_request_id, supplier, ConnectionStatus.ACCEPTED))\
            .advisory("add_liaison", add_liaison)\
            .advisory("mark_request_notification_read", mark_request_notification_read)\
            .advisory("add_planner", add_planner)\
            .advisory("notify_requester", notify_requester)
        return self._run(saga)

    def decline_connection_request(self, connection_request_id: str, supplier: Party) -> Result[ConnectionRequest]:
        def mark_request_notification_read(request: ConnectionRequest):
            self.notifications.mark_request_notification_read(request.id, supplier.email)

        def notify_requester(request: ConnectionRequest):
            self._notify_requester(request.id, supplier, accepted=False)

        saga = Saga("decline_connection_request")\
            .core("mark_declined", lambda: self._transition(connection_request_id, supplier, ConnectionStatus.DECLINED))\
            .advisory("mark_request_notification_read", mark_request_notification_read)\
            .advisory("notify_requester", notify_requester)
        return self._run(saga)

    def get_connection_requests(
        self,
        user_id: str,
        direction: ConnectionDirection = ConnectionDirection.RECEIVED,
    ) -> Result[List[ConnectionRequest]]:
        column = "supplier_id" if direction == ConnectionDirection.RECEIVED else "requester_id"
        try:
            rows = self.store.select(
                CONNECTION_REQUESTS_TABLE, {column: user_id}, order_by="created_at", descending=True
            )
        except StoreError as e:
            return Result.failure(StoreUnavailableError.from_store_error(e))
        return Result.success([ConnectionRequest(**row) for row in rows])

    def are_users_connected(self, requester_id: str, supplier_id: str) -> Result[ConnectionStatusResponse]:
        """Directional: only an accepted requester -> supplier row counts."""
        try:
            rows = self.store.select(
                CONNECTION_REQUESTS_TABLE,
                {"requester_id": requester_id, "supplier_id": supplier_id, "status": ConnectionStatus.ACCEPTED.value},
                columns="status",
                limit=1,
            )
        except StoreError as e:
            return Result.failure(StoreUnavailableError.from_store_error(e))
        return Result.success(ConnectionStatusResponse(connected=bool(rows)))

    def find_pending_request(self, requester_id: str, supplier_id: str) -> Result[Optional[ConnectionRequest]]:
        """Pending request for a pair, used to resolve legacy notifications without a back-reference."""
        try:
            rows = self.store.select(
                CONNECTION_REQUESTS_TABLE,
                {"requester_id": requester_id, "supplier_id": supplier_id, "status": ConnectionStatus.PENDING.value},
                order_by="created_at",
                descending=True,
                limit=1,
            )
        except StoreError as e:
            return Result.failure(StoreUnavailableError.from_store_error(e))
        return Result.success(ConnectionRequest(**rows[0]) if rows else None)

    # -------------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------------

    def _transition(self, connection_request_id: str, supplier: Party, status: ConnectionStatus) -> ConnectionRequest:
        # Matching on supplier_id is the authorization check; matching on
        # pending keeps terminal rows immutable.
        rows = self.store.update(
            CONNECTION_REQUESTS_TABLE,
            {
                "id": connection_request_id,
                "supplier_id": supplier.id,
                "status": ConnectionStatus.PENDING.value,
            },
            {"status": status.value, "updated_at": _now()},
        )
        if not rows:
            raise NotFoundOrUnauthorizedError(connection_request_id)
        logger.info(f"Connection request {connection_request_id} {status.value} by {supplier.id}")
        return ConnectionRequest(**rows[0])

    def _notify_requester(self, connection_request_id: str, supplier: Party, accepted: bool):
        # Re-read so the recipient comes from the stored row, not the caller
        rows = self.store.select(
            CONNECTION_REQUESTS_TABLE, {"id": connection_request_id}, columns="requester_id", limit=1
        )
        if not rows or not rows[0].get("requester_id"):
            raise LookupError(f"Could not find admin user for connection request {connection_request_id}")

        verb = "accepted" if accepted else "declined"
        notification_type = NotificationType.CONNECTION_ACCEPTED if accepted else NotificationType.CONNECTION_DECLINED
        self.notifications.create(
            notification_type.value,
            {
                "supplier_name": supplier.name,
                "supplier_email": supplier.email,
                "message": f"{supplier.name} has {verb} your connection request",
            },
            admin_user_id=rows[0]["requester_id"],
            connection_request_id=connection_request_id,
            metadata={
                "admin_id": rows[0]["requester_id"],
                "supplier_id": supplier.id,
                "supplier_name": supplier.name,
                "supplier_email": supplier.email,
            },
        )

    def _run(self, saga: Saga) -> Result[ConnectionRequest]:
        try:
            report = saga.run()
        except MarketplaceError as e:
            return Result.failure(e)
        except StoreError as e:
            logger.error(f"{saga.name} failed: {e}")
            return Result.failure(StoreUnavailableError.from_store_error(e))
        except Exception as e:
            logger.exception(f"Unexpected error in {saga.name}: {e}")
            return Result.failure(MarketplaceError(f"Unexpected error: {e}"))
        return Result.success(report.core_result)
