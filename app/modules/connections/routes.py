from typing import List

from fastapi import APIRouter, Depends
from app.core.dependencies import (
    get_current_actor, get_profile_service, get_workflow_engine, require_role,
)
from app.modules.auth.schemas import Actor, UserRole
from app.modules.connections.schemas import (
    ConnectionDirection, ConnectionRequest, ConnectionRequestCreate,
    ConnectionStatusResponse, Party,
)
from app.modules.connections.service import ConnectionWorkflowEngine
from app.modules.profiles.service import ProfileService

router = APIRouter(prefix="/connections", tags=["connections"])


def _party(actor: Actor) -> Party:
    return Party(id=actor.id, name=actor.name, email=actor.email)


@router.post("", response_model=ConnectionRequest, status_code=201)
def send_connection_request(
    request_data: ConnectionRequestCreate,
    actor: Actor = Depends(require_role(UserRole.ADMIN)),
    profiles: ProfileService = Depends(get_profile_service),
    engine: ConnectionWorkflowEngine = Depends(get_workflow_engine),
):
    """Send a connection request from the current event organizer to a supplier"""
    supplier = profiles.get_supplier(request_data.supplier_id)
    supplier_party = Party(id=supplier.id, name=supplier.display_name, email=supplier.email)
    return engine.send_connection_request(_party(actor), supplier_party).unwrap()


@router.get("", response_model=List[ConnectionRequest])
def list_connection_requests(
    direction: ConnectionDirection = ConnectionDirection.RECEIVED,
    actor: Actor = Depends(get_current_actor),
    engine: ConnectionWorkflowEngine = Depends(get_workflow_engine),
):
    """Requests received (as supplier) or sent (as requester), newest first"""
    return engine.get_connection_requests(actor.id, direction).unwrap()


@router.get("/status", response_model=ConnectionStatusResponse)
def connection_status(
    requester_id: str,
    supplier_id: str,
    actor: Actor = Depends(get_current_actor),
    engine: ConnectionWorkflowEngine = Depends(get_workflow_engine),
):
    """Whether requester_id has an accepted request to supplier_id (directional)"""
    return engine.are_users_connected(requester_id, supplier_id).unwrap()


@router.post("/{connection_request_id}/accept", response_model=ConnectionRequest)
def accept_connection_request(
    connection_request_id: str,
    actor: Actor = Depends(require_role(UserRole.SUPPLIER)),
    engine: ConnectionWorkflowEngine = Depends(get_workflow_engine),
):
    """Accept a pending request addressed to the current supplier"""
    return engine.accept_connection_request(connection_request_id, _party(actor)).unwrap()


@router.post("/{connection_request_id}/decline", response_model=ConnectionRequest)
def decline_connection_request(
    connection_request_id: str,
    actor: Actor = Depends(require_role(UserRole.SUPPLIER)),
    engine: ConnectionWorkflowEngine = Depends(get_workflow_engine),
):
    """Decline a pending request addressed to the current supplier"""
    return engine.decline_connection_request(connection_request_id, _party(actor)).unwrap()
