"""
Two-factor gate.

A user has 2FA enabled when a standing `2fa` verification row exists for them.
New sessions of such users start out "pending": the session id waits in the
verification cookie until a code is accepted, and only then moves into the
session cookie. The session cookie's `verified_time` records the last
successful check, which also drives step-up re-verification for sensitive
settings.

Enrollment goes through a short-lived `2fa-verify` row that becomes the `2fa`
row once the user proves their authenticator produces matching codes.
"""
import logging
from datetime import timedelta
from typing import Optional

from fastapi import Request
from sqlalchemy.orm import Session

from epic_notes.config import settings
from epic_notes.core import clock
from epic_notes.core.cookies import session_storage, verification_storage
from epic_notes.core.responses import Continue, HeaderSet, Redirect, redirect, safe_redirect
from epic_notes.models.session import Session as LoginSession
from epic_notes.models.user import User
from epic_notes.models.verification import Verification
from epic_notes.schemas.cookies import SessionCookie, Toast, VerificationCookie
from epic_notes.services.session_service import delete_session_quietly, get_live_session
from epic_notes.services.toast_service import redirect_with_toast
from epic_notes.services.verification_service import (
    TWO_FA_VERIFICATION_TYPE,
    TWO_FA_VERIFY_VERIFICATION_TYPE,
    delete_verification,
    get_redirect_to_url,
    get_verification,
    is_code_valid,
    issue_verification,
    verification_otp_uri,
)

logger = logging.getLogger(__name__)

ENROLLMENT_PERIOD = 30
ENROLLMENT_EXPIRES_IN = 60 * 10


def is_two_fa_enabled(db: Session, user_id: str) -> bool:
    return get_verification(db, type=TWO_FA_VERIFICATION_TYPE, target=user_id) is not None


# ── Login gate ────────────────────────────────────────────────────────────────

def should_request_two_fa(request: Request, db: Session, user_id: str) -> bool:
    """
    True when the user has 2FA and this browser hasn't passed a check recently.

    A verified_time only counts if it belongs to a live session of this same
    user; a stale cookie left over from another login proves nothing.
    """
    if not is_two_fa_enabled(db, user_id):
        return False

    cookie = session_storage.read(request)
    if not cookie.session_id or cookie.verified_time is None:
        return True
    current = get_live_session(db, cookie.session_id)
    if current is None or current.user_id != user_id:
        return True

    elapsed = clock.utcnow() - clock.ensure_utc(cookie.verified_time)
    return elapsed > timedelta(seconds=settings.two_factor_reverify_seconds)


def handle_new_session(
    request: Request,
    db: Session,
    session: LoginSession,
    remember: bool = False,
    redirect_to: Optional[str] = None,
    *header_sets: HeaderSet,
) -> Redirect:
    """
    Finish a login. Users with 2FA are detoured to the verify page with the
    session parked in the verification cookie; everyone else gets the session
    cookie right away.
    """
    if should_request_two_fa(request, db, session.user_id):
        pending = VerificationCookie(unverified_session_id=session.id, remember=remember)
        logger.info(f"Session for user={session.user_id} awaits 2FA")
        return redirect(
            get_redirect_to_url(
                type=TWO_FA_VERIFICATION_TYPE,
                target=session.user_id,
                redirect_to=redirect_to,
            ),
            *header_sets,
            [verification_storage.commit(pending)],
        )

    expires = clock.ensure_utc(session.expiration_date) if remember else None
    return redirect(
        safe_redirect(redirect_to),
        *header_sets,
        [session_storage.commit(SessionCookie(session_id=session.id), expires=expires)],
    )


def _invalid_session() -> Redirect:
    return redirect_with_toast(
        "/login",
        Toast(
            type="error",
            title="Invalid session",
            description="Could not find session to verify. Please try again.",
        ),
        [verification_storage.destroy()],
    )


def handle_two_fa_verification(
    request: Request, db: Session, *, target: str, redirect_to: Optional[str] = None
) -> Redirect:
    """
    A `2fa` code for `target` was accepted. Either promote the pending login
    session or, for step-up checks, refresh verified_time on the current one.
    The standing `2fa` row is never consumed here.
    """
    now = clock.utcnow()
    pending_id = verification_storage.read(request).unverified_session_id
    session_cookie = session_storage.read(request)

    if pending_id:
        pending = get_live_session(db, pending_id)
        if pending is None or pending.user_id != target:
            return _invalid_session()
        remember = verification_storage.read(request).remember
        expires = clock.ensure_utc(pending.expiration_date) if remember else None
        session_header = session_storage.commit(
            SessionCookie(session_id=pending.id, verified_time=now), expires=expires
        )
        logger.info(f"2FA passed; session promoted for user={target}")
    else:
        current = get_live_session(db, session_cookie.session_id) if session_cookie.session_id else None
        if current is None or current.user_id != target:
            return _invalid_session()
        session_header = session_storage.commit(
            session_cookie.model_copy(update={"verified_time": now})
        )

    return redirect(
        safe_redirect(redirect_to),
        [session_header, verification_storage.destroy()],
    )


def require_recent_verification(
    request: Request, db: Session, user_id: str
) -> "Continue[None] | Redirect":
    """Step-up guard: sends the user through /verify again when their last check is too old."""
    if not should_request_two_fa(request, db, user_id):
        return Continue(None)

    current_url = request.url.path
    if request.url.query:
        current_url = f"{current_url}?{request.url.query}"
    return redirect_with_toast(
        get_redirect_to_url(type=TWO_FA_VERIFICATION_TYPE, target=user_id, redirect_to=current_url),
        Toast(
            type="message",
            title="Please Reverify",
            description="Please reverify your account before proceeding",
        ),
    )


def cancel_two_fa_login(request: Request, db: Session) -> Redirect:
    """Abandon a pending login: drop the parked session and the cookie that holds it."""
    pending_id = verification_storage.read(request).unverified_session_id
    if pending_id:
        delete_session_quietly(db, pending_id)
    return redirect("/", [verification_storage.destroy()])


# ── Enrollment ────────────────────────────────────────────────────────────────

def begin_enrollment(db: Session, user_id: str) -> None:
    """
    Start (or restart) enrollment with a fresh secret.
    SHA1/6 digits/30 s because that's what authenticator apps support everywhere.
    """
    issue_verification(
        db,
        type=TWO_FA_VERIFY_VERIFICATION_TYPE,
        target=user_id,
        period=ENROLLMENT_PERIOD,
        algorithm="SHA1",
        expires_in=ENROLLMENT_EXPIRES_IN,
    )


def get_enrollment(db: Session, user: User) -> Optional[str]:
    """otpauth:// URI of the pending enrollment, or None if there is none (or it expired)."""
    verification = get_verification(db, type=TWO_FA_VERIFY_VERIFICATION_TYPE, target=user.id)
    if verification is None:
        return None
    if verification.expires_at is not None and clock.ensure_utc(verification.expires_at) <= clock.utcnow():
        return None
    return verification_otp_uri(verification, account_name=user.email)


def confirm_enrollment(db: Session, user_id: str, code: str) -> bool:
    """Turn the pending `2fa-verify` row into the standing `2fa` row if `code` matches."""
    if not is_code_valid(db, code=code, type=TWO_FA_VERIFY_VERIFICATION_TYPE, target=user_id):
        return False

    delete_verification(db, type=TWO_FA_VERIFICATION_TYPE, target=user_id)
    db.query(Verification).filter(
        Verification.target == user_id,
        Verification.type == TWO_FA_VERIFY_VERIFICATION_TYPE,
    ).update(
        {Verification.type: TWO_FA_VERIFICATION_TYPE, Verification.expires_at: None},
        synchronize_session=False,
    )
    db.commit()
    logger.info(f"2FA enabled for user={user_id}")
    return True


def disable_two_fa(db: Session, user_id: str) -> None:
    delete_verification(db, type=TWO_FA_VERIFICATION_TYPE, target=user_id)
    logger.info(f"2FA disabled for user={user_id}")
