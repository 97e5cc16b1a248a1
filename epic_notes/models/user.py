import uuid
from sqlalchemy import Column, String, TIMESTAMP, ForeignKey, LargeBinary
from sqlalchemy.orm import relationship
from sqlalchemy.sql.expression import text
from epic_notes.database import Base


def new_id() -> str:
    return str(uuid.uuid4())


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id, nullable=False)
    # Both stored lowercase; lookups lowercase their input too
    username = Column(String(50), unique=True, nullable=False, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(100), nullable=True)

    # Timestamps
    created_at = Column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at = Column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=text("CURRENT_TIMESTAMP"),
    )

    # ── Relationships ──────────────────────────────────────────────────────────
    # OAuth-only accounts have no password row
    password = relationship("Password", back_populates="user", uselist=False, cascade="all, delete-orphan")
    image = relationship("UserImage", back_populates="user", uselist=False, cascade="all, delete-orphan")
    sessions = relationship("Session", back_populates="user", cascade="all, delete-orphan")
    connections = relationship("Connection", back_populates="user", cascade="all, delete-orphan")
    roles = relationship("Role", secondary="user_roles", back_populates="users")


class Password(Base):
    """One-to-one with User. Only the bcrypt hash is ever stored."""
    __tablename__ = "passwords"

    user_id = Column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
        nullable=False,
    )
    hash = Column(String, nullable=False)

    user = relationship("User", back_populates="password")


class UserImage(Base):
    """Profile image. Populated from the OAuth provider avatar on OAuth signup."""
    __tablename__ = "user_images"

    id = Column(String(36), primary_key=True, default=new_id, nullable=False)
    user_id = Column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    alt_text = Column(String(255), nullable=True)
    content_type = Column(String(100), nullable=False)
    blob = Column(LargeBinary, nullable=False)
    created_at = Column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    user = relationship("User", back_populates="image")
