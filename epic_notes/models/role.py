from sqlalchemy import Column, String, TIMESTAMP, ForeignKey, Table, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql.expression import text
from epic_notes.database import Base
from epic_notes.models.user import new_id


user_roles = Table(
    "user_roles",
    Base.metadata,
    Column("user_id", String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("role_id", String(36), ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
)

role_permissions = Table(
    "role_permissions",
    Base.metadata,
    Column("role_id", String(36), ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    Column("permission_id", String(36), ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True),
)


class Role(Base):
    __tablename__ = "roles"

    id = Column(String(36), primary_key=True, default=new_id, nullable=False)
    name = Column(String(50), unique=True, nullable=False)
    description = Column(String(255), nullable=False, server_default="")
    created_at = Column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    users = relationship("User", secondary=user_roles, back_populates="roles")
    permissions = relationship("Permission", secondary=role_permissions, back_populates="roles")


class Permission(Base):
    """
    A permission is the triple action:entity:access, e.g. "delete:user:own".
    access is "own" (only your own records) or "any".
    """
    __tablename__ = "permissions"
    __table_args__ = (
        UniqueConstraint("action", "entity", "access", name="uq_permissions_triple"),
    )

    id = Column(String(36), primary_key=True, default=new_id, nullable=False)
    action = Column(String(50), nullable=False)   # create | read | update | delete
    entity = Column(String(50), nullable=False)   # user | note | ...
    access = Column(String(20), nullable=False)   # own | any
    description = Column(String(255), nullable=False, server_default="")

    roles = relationship("Role", secondary=role_permissions, back_populates="permissions")
