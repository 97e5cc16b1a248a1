from sqlalchemy import Column, String, TIMESTAMP, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql.expression import text
from epic_notes.database import Base
from epic_notes.models.user import new_id


class Connection(Base):
    """
    Links a local user to an identity at an OAuth provider.
    One external identity maps to at most one local user.
    """
    __tablename__ = "connections"
    __table_args__ = (
        UniqueConstraint("provider_name", "provider_id", name="uq_connections_provider"),
    )

    id = Column(String(36), primary_key=True, default=new_id, nullable=False)
    provider_name = Column(String(50), nullable=False)
    provider_id = Column(String(255), nullable=False)
    user_id = Column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    created_at = Column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    # ── Relationships ──────────────────────────────────────────────────────────
    user = relationship("User", back_populates="connections")
