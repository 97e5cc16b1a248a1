"""
Verification service: TOTP-backed codes for onboarding, password reset, email
change and two-factor authentication.

Design decisions:
  1. One row per (target, type). Issuing a code upserts that row with a fresh
     secret, so only the newest code ever validates. No accumulation, no
     "invalidate previous codes" pass.
  2. The code itself is never stored. It is re-derived from the stored secret,
     algorithm and period at check time (standard TOTP, one step of drift).
  3. Validation has no side effects. Callers consume (delete) the row after a
     successful check for single-use types; the standing `2fa` row is never
     consumed by a login.
  4. Not-found, expired and wrong code all look the same to the caller.
"""
import hashlib
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional
from urllib.parse import quote, urlencode

import pyotp
from fastapi import Request
from sqlalchemy import or_
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from epic_notes.config import settings
from epic_notes.core import clock
from epic_notes.models.user import new_id
from epic_notes.models.verification import Verification

logger = logging.getLogger(__name__)

# ── Verification types ────────────────────────────────────────────────────────
ONBOARDING_VERIFICATION_TYPE = "onboarding"
RESET_PASSWORD_VERIFICATION_TYPE = "reset-password"
CHANGE_EMAIL_VERIFICATION_TYPE = "change-email"
TWO_FA_VERIFICATION_TYPE = "2fa"
# 2FA enrollment that hasn't been confirmed with a first code yet
TWO_FA_VERIFY_VERIFICATION_TYPE = "2fa-verify"

# ── Query parameters of the /verify page ──────────────────────────────────────
CODE_QUERY_PARAM = "code"
TARGET_QUERY_PARAM = "target"
TYPE_QUERY_PARAM = "type"
REDIRECT_TO_QUERY_PARAM = "redirectTo"

DEFAULT_DIGITS = 6
DEFAULT_PERIOD = 30


@dataclass
class IssuedCode:
    code: str
    secret: str
    uri: str


@dataclass
class PreparedVerification:
    otp: str
    # Absolute link with the code prefilled, for the email
    verify_url: str
    # Same page without the code, where the browser is sent right away
    redirect_to: str


# ── TOTP primitives ───────────────────────────────────────────────────────────

def _totp(secret: str, algorithm: str, digits: int, period: int) -> pyotp.TOTP:
    return pyotp.TOTP(
        secret,
        digits=digits,
        digest=getattr(hashlib, algorithm.lower()),
        interval=period,
    )


def generate_secret() -> str:
    return pyotp.random_base32()


def get_otp_uri(
    *,
    secret: str,
    account_name: str,
    algorithm: str = "SHA1",
    digits: int = DEFAULT_DIGITS,
    period: int = DEFAULT_PERIOD,
    issuer: Optional[str] = None,
) -> str:
    """
    Build an otpauth:// URI that authenticator apps understand.
    Every parameter is written out explicitly (pyotp omits the defaults, which
    some apps then guess wrong).
    """
    issuer = issuer or settings.app_name
    label = quote(f"{issuer}:{account_name}", safe=":@")
    params = urlencode(
        {
            "secret": secret,
            "issuer": issuer,
            "algorithm": algorithm.upper(),
            "digits": str(digits),
            "period": str(period),
        }
    )
    return f"otpauth://totp/{label}?{params}"


def verification_otp_uri(verification: Verification, account_name: str) -> str:
    return get_otp_uri(
        secret=verification.secret,
        account_name=account_name,
        algorithm=verification.algorithm,
        digits=verification.digits,
        period=verification.period,
    )


# ── Persistence ───────────────────────────────────────────────────────────────

def _upsert_verification(db: Session, values: dict) -> None:
    """
    Single INSERT .. ON CONFLICT (target, type) DO UPDATE.
    Two concurrent issues for the same key resolve in the database: last writer wins.
    """
    dialect = db.get_bind().dialect.name
    insert = pg_insert if dialect == "postgresql" else sqlite_insert
    stmt = insert(Verification).values(id=new_id(), **values)
    stmt = stmt.on_conflict_do_update(
        index_elements=["target", "type"],
        set_={key: stmt.excluded[key] for key in values if key not in ("target", "type")},
    )
    db.execute(stmt)
    db.commit()


def issue_verification(
    db: Session,
    *,
    type: str,
    target: str,
    period: int,
    algorithm: str = "SHA256",
    digits: int = DEFAULT_DIGITS,
    expires: bool = True,
    expires_in: Optional[int] = None,
) -> IssuedCode:
    """
    Generate a fresh secret for (target, type), store it, and return the current code.

    The row lives for `expires_in` seconds (one `period` by default).
    expires=False leaves expires_at NULL (used for never-expiring rows).
    """
    now = clock.utcnow()
    secret = generate_secret()
    code = _totp(secret, algorithm, digits, period).at(now)
    lifetime = timedelta(seconds=expires_in if expires_in is not None else period)

    _upsert_verification(
        db,
        {
            "type": type,
            "target": target,
            "secret": secret,
            "algorithm": algorithm,
            "digits": digits,
            "period": period,
            "expires_at": now + lifetime if expires else None,
        },
    )
    uri = get_otp_uri(
        secret=secret,
        account_name=target,
        algorithm=algorithm,
        digits=digits,
        period=period,
    )
    logger.info(f"Issued {type} verification for target={target}")
    return IssuedCode(code=code, secret=secret, uri=uri)


def get_verification(db: Session, *, type: str, target: str) -> Optional[Verification]:
    return (
        db.query(Verification)
        .filter(Verification.target == target, Verification.type == type)
        .first()
    )


def is_code_valid(db: Session, *, code: str, type: str, target: str) -> bool:
    """
    True only if a live row exists for (target, type) and `code` matches it.

    A row with expires_at NULL never expires; otherwise it is valid strictly
    before expires_at.
    """
    now = clock.utcnow()
    verification = (
        db.query(Verification)
        .filter(
            Verification.target == target,
            Verification.type == type,
            or_(Verification.expires_at.is_(None), Verification.expires_at > now),
        )
        .first()
    )
    if not verification:
        return False

    totp = _totp(
        verification.secret,
        verification.algorithm,
        verification.digits,
        verification.period,
    )
    return totp.verify(code, for_time=now, valid_window=1)


def delete_verification(db: Session, *, type: str, target: str) -> bool:
    """Consume the (target, type) row. Returns False if there was nothing to delete."""
    deleted = (
        db.query(Verification)
        .filter(Verification.target == target, Verification.type == type)
        .delete(synchronize_session=False)
    )
    db.commit()
    return bool(deleted)


# ── Verify-page URLs ──────────────────────────────────────────────────────────

def get_redirect_to_url(
    *,
    type: str,
    target: str,
    redirect_to: Optional[str] = None,
) -> str:
    """Path of the /verify page for (type, target), optionally carrying redirectTo."""
    params = {TYPE_QUERY_PARAM: type, TARGET_QUERY_PARAM: target}
    if redirect_to:
        params[REDIRECT_TO_QUERY_PARAM] = redirect_to
    return f"/verify?{urlencode(params)}"


def get_domain_url(request: Request) -> str:
    return str(request.base_url).rstrip("/")


def prepare_verification(
    db: Session,
    request: Request,
    *,
    period: int,
    type: str,
    target: str,
    redirect_to: Optional[str] = None,
    algorithm: str = "SHA256",
) -> PreparedVerification:
    """
    Issue a code for (type, target) and build both URLs the calling flow needs:
    the verify link (code included) for the email, and the verify page for the
    browser redirect.
    """
    issued = issue_verification(db, type=type, target=target, period=period, algorithm=algorithm)
    redirect_path = get_redirect_to_url(type=type, target=target, redirect_to=redirect_to)
    verify_url = (
        f"{get_domain_url(request)}{redirect_path}&{urlencode({CODE_QUERY_PARAM: issued.code})}"
    )
    return PreparedVerification(otp=issued.code, verify_url=verify_url, redirect_to=redirect_path)
