import logging
from typing import List, Optional

from app.database.store import PersistentStore
from app.modules.auth.schemas import normalize_email
from app.modules.roster.schemas import ROSTER_TABLES, RosterMembership, RosterRole

logger = logging.getLogger(__name__)


class RosterService:
    """Planner/liaison rosters. Store errors propagate to the caller."""

    def __init__(self, store: PersistentStore):
        self.store = store

    def add_member(
        self,
        role: RosterRole,
        owner_id: str,
        name: str,
        email: str,
        connection_type: Optional[str] = None,
    ) -> RosterMembership:
        """Append a roster row unless one already exists for (owner, email)."""
        table = ROSTER_TABLES[role]
        email = normalize_email(email)
        existing = self.store.select(table, {"user_id": owner_id, "email": email}, limit=1)
        if existing:
            logger.info(f"{role.value} {email} already on roster of {owner_id}")
            return RosterMembership(role=role, **existing[0])

        row = {"user_id": owner_id, "name": name, "email": email}
        if connection_type:
            row["connection_type"] = connection_type
        created = self.store.insert(table, row)
        return RosterMembership(role=role, **created)

    def add_planner(self, requester_id: str, supplier_name: str, supplier_email: str) -> RosterMembership:
        """Supplier joins the requester's team."""
        return self.add_member(
            RosterRole.PLANNER, requester_id, supplier_name, supplier_email, connection_type="supplier"
        )

    def add_liaison(self, supplier_id: str, requester_name: str, requester_email: str) -> RosterMembership:
        """Requester becomes the supplier's liaison."""
        return self.add_member(RosterRole.LIAISON, supplier_id, requester_name, requester_email)

    def list_members(self, role: RosterRole, owner_id: str) -> List[RosterMembership]:
        rows = self.store.select(
            ROSTER_TABLES[role], {"user_id": owner_id}, order_by="created_at", descending=True
        )
        return [RosterMembership(role=role, **row) for row in rows]
