"""Team leadership endpoints."""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel, ConfigDict

from helpdesk.api.deps import get_current_user, get_role_service
from helpdesk.db.models import User
from helpdesk.services.roles import RoleService

router = APIRouter(prefix="/teams", tags=["teams"])


class TeamLeaderRequest(BaseModel):
    user_id: UUID


class TeamLeaderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: UUID
    team_id: UUID
    assigned_at: datetime


@router.post("/{team_id}/leaders", response_model=TeamLeaderResponse, status_code=status.HTTP_201_CREATED)
async def add_team_leader(
    team_id: UUID,
    body: TeamLeaderRequest,
    current_user: User = Depends(get_current_user),
    service: RoleService = Depends(get_role_service),
):
    """Make a Team Leader (or Admin/Manager) a leader of the team."""
    return service.assign_team_leadership(current_user.id, body.user_id, team_id)


@router.delete("/{team_id}/leaders/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_team_leader(
    team_id: UUID,
    user_id: UUID,
    current_user: User = Depends(get_current_user),
    service: RoleService = Depends(get_role_service),
):
    service.remove_team_leadership(current_user.id, user_id, team_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
