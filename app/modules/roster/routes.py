from typing import List

from fastapi import APIRouter, Depends, HTTPException
from app.core.dependencies import get_current_actor, get_roster_service
from app.database.store import StoreError
from app.modules.auth.schemas import Actor
from app.modules.roster.schemas import RosterMembership, RosterRole
from app.modules.roster.service import RosterService

router = APIRouter(prefix="/roster", tags=["roster"])


def _list(service: RosterService, role: RosterRole, owner_id: str) -> List[RosterMembership]:
    try:
        return service.list_members(role, owner_id)
    except StoreError as e:
        raise HTTPException(status_code=503, detail=f"Roster unavailable: {e.message}")


@router.get("/planners", response_model=List[RosterMembership])
def list_planners(
    actor: Actor = Depends(get_current_actor),
    service: RosterService = Depends(get_roster_service),
):
    """Suppliers on the current organizer's team"""
    return _list(service, RosterRole.PLANNER, actor.id)


@router.get("/liaisons", response_model=List[RosterMembership])
def list_liaisons(
    actor: Actor = Depends(get_current_actor),
    service: RosterService = Depends(get_roster_service),
):
    """Organizers the current supplier is connected with"""
    return _list(service, RosterRole.LIAISON, actor.id)
