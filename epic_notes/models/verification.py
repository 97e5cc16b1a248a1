from sqlalchemy import Column, Integer, String, TIMESTAMP, UniqueConstraint
from sqlalchemy.sql.expression import text
from epic_notes.database import Base
from epic_notes.models.user import new_id


class Verification(Base):
    """
    A typed, expiring TOTP secret for one (target, type) pair.

    - target is an opaque string (email, username or user id) with no FK, because
      signup codes are issued before the account exists.
    - At most one row per (target, type); issuing a new code overwrites the row,
      so only the newest code validates.
    - expires_at NULL means "never expires": the standing `2fa` row that marks
      two-factor as enabled for a user.
    """
    __tablename__ = "verifications"
    __table_args__ = (
        UniqueConstraint("target", "type", name="uq_verifications_target_type"),
    )

    id = Column(String(36), primary_key=True, default=new_id, nullable=False)
    type = Column(String(50), nullable=False)
    target = Column(String(255), nullable=False, index=True)
    secret = Column(String(255), nullable=False)   # base32, otpauth-compatible
    algorithm = Column(String(20), nullable=False)  # "SHA1" | "SHA256" | "SHA512"
    digits = Column(Integer, nullable=False)
    period = Column(Integer, nullable=False)        # seconds
    expires_at = Column(TIMESTAMP(timezone=True), nullable=True)
    created_at = Column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )
