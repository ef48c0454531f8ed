import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Text, ForeignKey, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from helpdesk.db.base import Base


class Team(Base):
    __tablename__ = "teams"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(255), unique=True, nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    members = relationship("User", back_populates="team", foreign_keys="User.team_id")
    leaders = relationship("TeamLeader", back_populates="team", cascade="all, delete-orphan")
    tickets = relationship("Ticket", back_populates="team")


class TeamLeader(Base):
    """Leadership relation: a user may lead teams other than their own."""
    __tablename__ = "team_leaders"
    __table_args__ = (UniqueConstraint("user_id", "team_id", name="uq_team_leader"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    team_id = Column(Uuid, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    assigned_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    user = relationship("User", back_populates="team_leaderships")
    team = relationship("Team", back_populates="leaders")
