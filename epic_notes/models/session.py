from sqlalchemy import Column, String, TIMESTAMP, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql.expression import text
from epic_notes.database import Base
from epic_notes.models.user import new_id


class Session(Base):
    """
    One authenticated browser session. The session cookie carries only `id`.

    A row whose expiration_date has passed is treated as missing and purged
    lazily the next time its cookie shows up. There is no sweeper.
    """
    __tablename__ = "sessions"

    id = Column(String(36), primary_key=True, default=new_id, nullable=False)
    user_id = Column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    expiration_date = Column(TIMESTAMP(timezone=True), nullable=False)
    created_at = Column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    # ── Relationships ──────────────────────────────────────────────────────────
    user = relationship("User", back_populates="sessions")
