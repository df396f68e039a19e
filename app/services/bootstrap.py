"""Default roles, permissions and the optional bootstrap admin account."""

import logging
import uuid
from typing import TYPE_CHECKING

from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import ConflictError, NotFoundError, PersistenceError
from app.core.security import hash_password
from app.models import ADMIN_ROLE, USER_ROLE, Permission, Role, RolePermission, User, UserRole

if TYPE_CHECKING:
    from app.core.config import Settings

logger = logging.getLogger(__name__)

DEFAULT_PERMISSIONS = [
    ("profile", "read"),
    ("profile", "write"),
    ("task", "create"),
    ("task", "read"),
    ("task", "write"),
    ("task", "delete"),
]

# Role name -> granted (resource, action) pairs.
ROLE_GRANTS = {
    USER_ROLE: [
        ("profile", "read"),
        ("task", "create"),
        ("task", "read"),
        ("task", "write"),
        ("task", "delete"),
    ],
    ADMIN_ROLE: DEFAULT_PERMISSIONS,
}


def seed_roles(db: Session) -> bool:
    """Create default roles and permissions if the roles table is empty. Returns True if seeded."""
    if db.execute(select(Role.id).limit(1)).first() is not None:
        return False

    permissions = {
        pair: Permission(id=uuid.uuid4(), resource=pair[0], action=pair[1])
        for pair in DEFAULT_PERMISSIONS
    }
    db.add_all(permissions.values())
    for role_name, grants in ROLE_GRANTS.items():
        role = Role(id=uuid.uuid4(), name=role_name)
        db.add(role)
        for pair in grants:
            db.add(RolePermission(role_id=role.id, permission_id=permissions[pair].id))
    db.commit()
    logger.info("Seeded roles=%s permissions=%d", sorted(ROLE_GRANTS), len(DEFAULT_PERMISSIONS))
    return True


def create_account(
    db: Session, username: str, email: str, password: str, role_name: str = USER_ROLE
) -> User:
    """Insert a user holding role_name. Raises ConflictError or NotFoundError (unknown role)."""
    identifiers = (username, email)
    existing = db.execute(
        select(User.id).where(or_(User.username.in_(identifiers), User.email.in_(identifiers)))
    ).first()
    if existing is not None:
        raise ConflictError(f"User '{username}' or email '{email}' already exists")
    role_id = db.execute(select(Role.id).where(Role.name == role_name)).scalar_one_or_none()
    if role_id is None:
        raise NotFoundError(f"Role '{role_name}' does not exist")

    user = User(
        id=uuid.uuid4(),
        username=username,
        email=email,
        password_hash=hash_password(password),
    )
    try:
        db.add(user)
        db.add(UserRole(user_id=user.id, role_id=role_id))
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceError("Failed to create user", cause=e) from e
    return user


def seed_defaults(db: Session, settings: "Settings") -> None:
    """Idempotent startup bootstrap: default roles, then the admin account if configured."""
    seed_roles(db)

    if settings.BOOTSTRAP_ADMIN_PASSWORD is None:
        return
    username = settings.BOOTSTRAP_ADMIN_USERNAME
    exists = db.execute(select(User.id).where(User.username == username)).first()
    if exists is not None:
        return
    create_account(
        db,
        username,
        settings.BOOTSTRAP_ADMIN_EMAIL,
        settings.BOOTSTRAP_ADMIN_PASSWORD.get_secret_value(),
        role_name=ADMIN_ROLE,
    )
    logger.info("Created bootstrap admin account username=%s", username)
