from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from helpdesk.core.config import get_settings
from helpdesk.db.base import Base

settings = get_settings()

engine = create_engine(settings.database_url, pool_pre_ping=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(bind=None) -> None:
    """Create all tables known to the model registry."""
    # Import models so they register with Base.metadata
    import helpdesk.db.models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
