"""Database seeding for the helpdesk.

Creates the three system roles.
"""

import uuid

from sqlalchemy.orm import Session

from helpdesk.db.models import Role
from helpdesk.core.rbac.roles import DEFAULT_ROLES


def seed_default_roles(db: Session) -> dict[str, Role]:
    """
    Create the default roles.

    Roles are idempotent - if they already exist, returns existing roles.

    Args:
        db: Database session

    Returns:
        Dict mapping role key to Role object
    """
    created_roles = {}

    for role_key, role_config in DEFAULT_ROLES.items():
        existing = db.query(Role).filter(Role.name == role_config["name"]).first()

        if existing:
            created_roles[role_key] = existing
            continue

        role = Role(
            id=uuid.uuid4(),
            name=role_config["name"],
            description=role_config["description"],
            is_system=role_config["is_system"],
        )
        db.add(role)
        created_roles[role_key] = role

    db.flush()
    return created_roles


# CLI script for seeding
if __name__ == "__main__":
    from helpdesk.db.session import SessionLocal, init_db

    init_db()
    db = SessionLocal()
    try:
        roles = seed_default_roles(db)
        db.commit()
        print(f"Seeded {len(roles)} roles:")
        for role in roles.values():
            print(f"  - {role.name}")
    except Exception as e:
        db.rollback()
        print(f"Seeding failed: {e}")
        raise
    finally:
        db.close()
