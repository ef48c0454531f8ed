"""Ticket read endpoints, filtered by the caller's access scope."""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict
from sqlalchemy import or_
from sqlalchemy.orm import Session

from helpdesk.api.deps import RBACDependency, get_db, get_engine
from helpdesk.api.schemas import Pagination
from helpdesk.core.rbac.engine import PermissionEngine
from helpdesk.core.rbac.errors import ResourceNotFoundError
from helpdesk.core.rbac.permissions import Action, Resource
from helpdesk.db.models import Ticket, TicketFollower, User

router = APIRouter(prefix="/tickets", tags=["tickets"])


class TicketResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    title: str
    description: Optional[str] = None
    status: str
    priority: str
    team_id: Optional[UUID] = None
    created_by: UUID
    assigned_to: Optional[UUID] = None
    customer_id: Optional[UUID] = None
    created_at: datetime


class TicketListResponse(BaseModel):
    data: List[TicketResponse]
    pagination: Pagination


@router.get("", response_model=TicketListResponse)
async def list_tickets(
    db: Session = Depends(get_db),
    engine: PermissionEngine = Depends(get_engine),
    current_user: User = Depends(RBACDependency(Action.READ, Resource.TICKETS)),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[str] = None,
):
    """
    List tickets visible to the caller.

    Organization-wide callers see every ticket, team-scoped callers the
    tickets of their teams, and everyone sees tickets they created, are
    assigned to, are the customer of, or follow.
    """
    query = db.query(Ticket)

    team_ids = engine.accessible_team_ids(current_user.id)
    if team_ids is not None:
        followed = db.query(TicketFollower.ticket_id).filter(TicketFollower.user_id == current_user.id)
        conditions = [
            Ticket.created_by == current_user.id,
            Ticket.assigned_to == current_user.id,
            Ticket.customer_id == current_user.id,
            Ticket.id.in_(followed),
        ]
        if team_ids:
            conditions.append(Ticket.team_id.in_(team_ids))
        query = query.filter(or_(*conditions))

    if status:
        query = query.filter(Ticket.status == status)

    total = query.count()
    tickets = query.order_by(Ticket.created_at.desc()).offset((page - 1) * limit).limit(limit).all()

    return TicketListResponse(
        data=[TicketResponse.model_validate(t) for t in tickets],
        pagination=Pagination.create(total, page, limit),
    )


@router.get("/{ticket_id}", response_model=TicketResponse)
async def get_ticket(
    ticket_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(RBACDependency(
        Action.READ,
        Resource.TICKETS,
        audit_action="view_ticket",
        resource_id_param="ticket_id",
    )),
):
    """Get a ticket the caller may read."""
    ticket = db.get(Ticket, ticket_id)
    if ticket is None:
        raise ResourceNotFoundError(Resource.TICKETS.value, ticket_id)
    return ticket
