"""Resolve a user's roles, admin flag and resource -> actions map from role assignments."""

import logging
import uuid
from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import StorageLookupError
from app.models import ADMIN_ROLE, Permission, Role, RolePermission, UserRole

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedPermissions:
    """
    Snapshot of what a user may do.

    roles keeps assignment-fetch order, which carries no meaning.
    permissions maps resource to a set of actions (duplicates collapsed).
    """

    roles: list[str] = field(default_factory=list)
    is_admin: bool = False
    permissions: dict[str, set[str]] = field(default_factory=dict)

    def as_claims(self) -> dict[str, list[str]]:
        """Permissions in the JSON shape embedded in access tokens (sorted action lists)."""
        return {resource: sorted(actions) for resource, actions in self.permissions.items()}


def resolve_permissions(db: Session, user_id: uuid.UUID) -> ResolvedPermissions:
    """
    Fetch role and permission assignments for user_id and group them by resource.

    A user with no roles resolves to an empty, non-admin snapshot.
    Raises StorageLookupError on any storage fault.
    """
    try:
        role_rows = db.execute(
            select(Role.id, Role.name)
            .join(UserRole, UserRole.role_id == Role.id)
            .where(UserRole.user_id == user_id)
            .order_by(UserRole.created_at)
        ).all()

        role_ids = [row.id for row in role_rows]
        permission_rows = []
        if role_ids:
            permission_rows = db.execute(
                select(Permission.resource, Permission.action)
                .join(RolePermission, RolePermission.permission_id == Permission.id)
                .where(RolePermission.role_id.in_(role_ids))
            ).all()
    except SQLAlchemyError as e:
        logger.error("Permission lookup failed for user_id=%s", user_id)
        raise StorageLookupError("Failed to resolve user permissions", cause=e) from e

    roles = [row.name for row in role_rows]
    permissions: dict[str, set[str]] = {}
    for row in permission_rows:
        permissions.setdefault(row.resource, set()).add(row.action)

    return ResolvedPermissions(
        roles=roles,
        is_admin=ADMIN_ROLE in roles,
        permissions=permissions,
    )
