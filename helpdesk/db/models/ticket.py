import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Text, Boolean, ForeignKey, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from helpdesk.db.base import Base


class Ticket(Base):
    __tablename__ = "tickets"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String(50), nullable=False, default="OPEN", index=True)
    priority = Column(String(20), nullable=False, default="MEDIUM")
    team_id = Column(Uuid, ForeignKey("teams.id", ondelete="SET NULL"), nullable=True, index=True)
    created_by = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    assigned_to = Column(Uuid, ForeignKey("users.id"), nullable=True, index=True)
    customer_id = Column(Uuid, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    team = relationship("Team", back_populates="tickets")
    followers = relationship("TicketFollower", back_populates="ticket", cascade="all, delete-orphan")


class TicketFollower(Base):
    __tablename__ = "ticket_followers"
    __table_args__ = (UniqueConstraint("ticket_id", "user_id", name="uq_ticket_follower"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    ticket_id = Column(Uuid, ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    ticket = relationship("Ticket", back_populates="followers")


class KnowledgeBaseArticle(Base):
    __tablename__ = "kb_articles"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    title = Column(String(255), nullable=False)
    content = Column(Text, nullable=True)
    author_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    team_id = Column(Uuid, ForeignKey("teams.id", ondelete="SET NULL"), nullable=True)
    is_published = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
