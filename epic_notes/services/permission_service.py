"""
Roles and permissions.

A permission string is "action:entity[:access]", e.g. "delete:user:own" or
"delete:user:own,any". Access is "own" or "any"; leaving it out matches either.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Request
from sqlalchemy.orm import Session

from epic_notes.core.exceptions import ForbiddenException
from epic_notes.core.responses import Continue, Redirect
from epic_notes.models.role import Permission, Role
from epic_notes.models.user import User
from epic_notes.services.session_service import require_user_id

logger = logging.getLogger(__name__)

USER_ROLE = "user"
ADMIN_ROLE = "admin"

ACTIONS = ("create", "read", "update", "delete")
ENTITIES = ("user", "note")

# Seeded by the initial migration; get_or_create_role() fills them in lazily
# for databases created without it (e.g. the test suite's create_all).
DEFAULT_ROLE_PERMISSIONS = {
    USER_ROLE: [(action, entity, "own") for action in ACTIONS for entity in ENTITIES],
    ADMIN_ROLE: [(action, entity, "any") for action in ACTIONS for entity in ENTITIES],
}


@dataclass
class PermissionString:
    action: str
    entity: str
    access: Optional[list[str]] = None


def parse_permission_string(permission: str) -> PermissionString:
    parts = permission.split(":")
    if len(parts) not in (2, 3) or not all(parts[:2]):
        raise ValueError(f"Invalid permission string: {permission!r}")
    access = parts[2].split(",") if len(parts) == 3 and parts[2] else None
    return PermissionString(action=parts[0], entity=parts[1], access=access)


def _get_or_create_permission(db: Session, action: str, entity: str, access: str) -> Permission:
    permission = (
        db.query(Permission)
        .filter(Permission.action == action, Permission.entity == entity, Permission.access == access)
        .first()
    )
    if permission is None:
        permission = Permission(action=action, entity=entity, access=access)
        db.add(permission)
    return permission


def get_or_create_role(db: Session, name: str) -> Role:
    """Does not commit; the caller's transaction owns the new rows."""
    role = db.query(Role).filter(Role.name == name).first()
    if role is not None:
        return role

    role = Role(name=name)
    for action, entity, access in DEFAULT_ROLE_PERMISSIONS.get(name, []):
        role.permissions.append(_get_or_create_permission(db, action, entity, access))
    db.add(role)
    db.flush()
    logger.info(f"Created missing role '{name}'")
    return role


def user_has_permission(db: Session, user_id: str, permission: str) -> bool:
    parsed = parse_permission_string(permission)
    query = (
        db.query(User.id)
        .join(User.roles)
        .join(Role.permissions)
        .filter(
            User.id == user_id,
            Permission.action == parsed.action,
            Permission.entity == parsed.entity,
        )
    )
    if parsed.access:
        query = query.filter(Permission.access.in_(parsed.access))
    return query.first() is not None


def user_has_role(db: Session, user_id: str, name: str) -> bool:
    return (
        db.query(User.id)
        .join(User.roles)
        .filter(User.id == user_id, Role.name == name)
        .first()
        is not None
    )


def require_user_with_permission(
    request: Request, db: Session, permission: str
) -> "Continue[str] | Redirect":
    """Anonymous → login redirect; logged in without the permission → 403."""
    result = require_user_id(request, db)
    if isinstance(result, Redirect):
        return result
    if not user_has_permission(db, result.value, permission):
        logger.warning(f"User {result.value} lacks permission {permission}")
        raise ForbiddenException(f"Unauthorized: required permissions: {permission}")
    return result


def require_user_with_role(request: Request, db: Session, name: str) -> "Continue[str] | Redirect":
    result = require_user_id(request, db)
    if isinstance(result, Redirect):
        return result
    if not user_has_role(db, result.value, name):
        logger.warning(f"User {result.value} lacks role {name}")
        raise ForbiddenException(f"Unauthorized: required role: {name}")
    return result
