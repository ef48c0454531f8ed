import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Boolean, Text, Uuid
from sqlalchemy.orm import relationship

from helpdesk.db.base import Base


class Role(Base):
    __tablename__ = "roles"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(100), unique=True, nullable=False)
    description = Column(Text, nullable=True)
    is_system = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    users = relationship("User", back_populates="role")
