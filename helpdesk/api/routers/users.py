"""User role and team assignment endpoints."""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from helpdesk.api.deps import get_current_user, get_engine, get_role_service
from helpdesk.api.schemas import AccessScopeResponse, TeamResponse, UserResponse
from helpdesk.core.rbac.engine import PermissionEngine
from helpdesk.db.models import User
from helpdesk.services.roles import RoleService

router = APIRouter(prefix="/users", tags=["users"])


# Schemas
class AssignRoleRequest(BaseModel):
    role_id: UUID


class AssignTeamRequest(BaseModel):
    team_id: UUID


class MyPermissionsResponse(BaseModel):
    user_id: UUID
    role: Optional[str]
    permissions: List[str]
    access_scope: AccessScopeResponse


# Endpoints
@router.get("/me/permissions", response_model=MyPermissionsResponse)
async def get_my_permissions(
    current_user: User = Depends(get_current_user),
    engine: PermissionEngine = Depends(get_engine),
):
    """Role, access scope and granted permissions of the caller."""
    role = engine.role_for(current_user.id)
    scope = engine.scope_for(current_user.id)
    return MyPermissionsResponse(
        user_id=current_user.id,
        role=role.value if role else None,
        permissions=engine.permissions_for_user(current_user.id),
        access_scope=AccessScopeResponse(
            organization_wide=scope.organization_wide,
            team_ids=sorted(scope.team_ids, key=str),
        ),
    )


@router.post("/{user_id}/assign-role", response_model=UserResponse)
async def assign_role(
    user_id: UUID,
    body: AssignRoleRequest,
    current_user: User = Depends(get_current_user),
    service: RoleService = Depends(get_role_service),
):
    """Assign a role to a user. Users cannot change their own role."""
    return service.assign_role(current_user.id, user_id, body.role_id)


@router.post("/{user_id}/assign-team", response_model=UserResponse)
async def assign_team(
    user_id: UUID,
    body: AssignTeamRequest,
    current_user: User = Depends(get_current_user),
    service: RoleService = Depends(get_role_service),
):
    return service.assign_to_team(current_user.id, user_id, body.team_id)


@router.delete("/{user_id}/team", response_model=UserResponse)
async def remove_from_team(
    user_id: UUID,
    team_id: UUID = Query(..., description="Team the user is removed from"),
    current_user: User = Depends(get_current_user),
    service: RoleService = Depends(get_role_service),
):
    return service.remove_from_team(current_user.id, user_id, team_id)


@router.get("/{user_id}/teams", response_model=List[TeamResponse])
async def get_user_teams(
    user_id: UUID,
    current_user: User = Depends(get_current_user),
    service: RoleService = Depends(get_role_service),
):
    """Primary team and led teams of a user."""
    return service.get_user_teams(current_user.id, user_id)
