from enum import Enum
from pydantic import BaseModel
from typing import Optional
from datetime import datetime


class RosterRole(str, Enum):
    PLANNER = "planner"
    LIAISON = "liaison"


ROSTER_TABLES = {
    RosterRole.PLANNER: "planners",
    RosterRole.LIAISON: "liaisons",
}


class RosterMembership(BaseModel):
    id: Optional[str] = None
    user_id: str
    name: Optional[str] = None
    email: Optional[str] = None
    role: RosterRole
    connection_type: Optional[str] = None
    created_at: Optional[datetime] = None
