"""Common schemas for the helpdesk API."""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class Pagination(BaseModel):
    """Pagination metadata returned with list responses."""
    total: int
    page: int
    limit: int
    total_pages: int
    has_next: bool
    has_prev: bool

    @classmethod
    def create(cls, total: int, page: int, limit: int) -> "Pagination":
        total_pages = (total + limit - 1) // limit if limit > 0 else 0
        return cls(
            total=total,
            page=page,
            limit=limit,
            total_pages=total_pages,
            has_next=page < total_pages,
            has_prev=page > 1,
        )


class ErrorResponse(BaseModel):
    """Body of every access control error."""
    error: str
    code: str
    message: str
    required_permission: Optional[str] = None


class TeamResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    description: Optional[str] = None


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: str
    name: Optional[str] = None
    role_id: Optional[UUID] = None
    team_id: Optional[UUID] = None
    is_active: bool
    created_at: datetime


class AccessScopeResponse(BaseModel):
    organization_wide: bool
    team_ids: List[UUID] = Field(default_factory=list)
