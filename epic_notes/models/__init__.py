# models/__init__.py
# Import all models here so that:
# 1. Alembic's env.py can import this single module and detect all tables.
# 2. SQLAlchemy relationship() calls resolve correctly (all classes in same metadata).
# Order matters: models with no foreign keys first, then dependents.

from epic_notes.models.user import User, Password, UserImage
from epic_notes.models.role import Role, Permission, user_roles, role_permissions
from epic_notes.models.session import Session
from epic_notes.models.connection import Connection
from epic_notes.models.verification import Verification

__all__ = [
    "User",
    "Password",
    "UserImage",
    "Role",
    "Permission",
    "user_roles",
    "role_permissions",
    "Session",
    "Connection",
    "Verification",
]
