"""
Session service: login sessions persisted in the `sessions` table and referenced
by the signed `en_session` cookie.

The read path is self-healing: a cookie pointing at a missing or expired session
gets the stale row deleted and the cookie cleared, and the request continues as
anonymous. Guards return Continue/Redirect results; routers turn a Redirect into
the response.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional
from urllib.parse import urlencode

from fastapi import Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from epic_notes.config import settings
from epic_notes.core import clock
from epic_notes.core.cookies import session_storage, verification_storage
from epic_notes.core.responses import Continue, HeaderSet, Redirect, redirect, safe_redirect
from epic_notes.models.session import Session as LoginSession
from epic_notes.models.user import User
from epic_notes.services.verification_service import (
    TWO_FA_VERIFICATION_TYPE,
    get_redirect_to_url,
)

logger = logging.getLogger(__name__)

SESSION_EXPIRATION_TIME = timedelta(days=settings.session_expiration_days)

# Sentinel: "no redirectTo given" is different from "redirectTo explicitly None"
_UNSET = object()


def get_session_expiration_date() -> datetime:
    return clock.utcnow() + SESSION_EXPIRATION_TIME


def create_session(db: Session, user_id: str) -> LoginSession:
    session = LoginSession(user_id=user_id, expiration_date=get_session_expiration_date())
    db.add(session)
    db.commit()
    db.refresh(session)
    logger.info(f"Created session for user={user_id}")
    return session


def get_live_session(db: Session, session_id: str) -> Optional[LoginSession]:
    """A session that exists, has not expired, and still has a user."""
    return (
        db.query(LoginSession)
        .join(User, User.id == LoginSession.user_id)
        .filter(
            LoginSession.id == session_id,
            LoginSession.expiration_date > clock.utcnow(),
        )
        .first()
    )


def delete_session_quietly(db: Session, session_id: str) -> None:
    """
    Best-effort delete. Used by logout and the stale-cookie path: the client
    outcome must not depend on this succeeding, so a database error is logged
    and swallowed.
    """
    try:
        db.query(LoginSession).filter(LoginSession.id == session_id).delete(
            synchronize_session=False
        )
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.warning(f"Could not delete session {session_id}: {exc!r}")


def get_session_id(request: Request) -> Optional[str]:
    return session_storage.read(request).session_id


# ── Identity guards ───────────────────────────────────────────────────────────

def get_user_id(request: Request, db: Session) -> Continue[Optional[str]]:
    """
    Resolve the current user id from the session cookie.

    Returns Continue(None) when there is no session. When the cookie references
    a session that is gone or expired, the stale row is removed and the returned
    headers clear the cookie.
    """
    session_id = get_session_id(request)
    if not session_id:
        return Continue(None)

    session = get_live_session(db, session_id)
    if session is None:
        logger.info(f"Session {session_id} is missing or expired; clearing cookie")
        delete_session_quietly(db, session_id)
        return Continue(None, [session_storage.destroy()])
    return Continue(session.user_id)


def require_user_id(request: Request, db: Session, redirect_to=_UNSET) -> "Continue[str] | Redirect":
    """
    Like get_user_id, but anonymous requests are sent to /login.

    By default the current path (and query) rides along as redirectTo so the
    user lands back here after logging in. Pass redirect_to=None to suppress it.
    """
    result = get_user_id(request, db)
    if result.value:
        return result

    if redirect_to is _UNSET:
        redirect_to = request.url.path
        if request.url.query:
            redirect_to = f"{redirect_to}?{request.url.query}"
    login_url = "/login"
    if redirect_to:
        login_url = f"{login_url}?{urlencode({'redirectTo': redirect_to})}"
    return redirect(login_url, result.headers)


def require_user(request: Request, db: Session) -> "Continue[User] | Redirect":
    result = require_user_id(request, db)
    if isinstance(result, Redirect):
        return result
    user = db.query(User).filter(User.id == result.value).first()
    if user is None:
        return logout(request, db)
    return Continue(user, result.headers)


def require_anonymous(request: Request, db: Session) -> "Continue[None] | Redirect":
    """
    Guard for login/signup pages.

    A pending (not yet 2FA-verified) login sends the user back into the 2FA
    step; a fully logged-in user is sent home.
    """
    unverified_session_id = verification_storage.read(request).unverified_session_id
    if unverified_session_id:
        pending = get_live_session(db, unverified_session_id)
        if pending is not None:
            return redirect(
                get_redirect_to_url(type=TWO_FA_VERIFICATION_TYPE, target=pending.user_id)
            )

    result = get_user_id(request, db)
    if result.value:
        return redirect("/")
    return Continue(None, result.headers)


# ── Logout & housekeeping ─────────────────────────────────────────────────────

def logout(request: Request, db: Session, redirect_to: str = "/", *header_sets: HeaderSet) -> Redirect:
    """
    Delete the session row (best-effort) and clear the cookie.
    Always succeeds from the client's point of view, even when the row is
    already gone.
    """
    session_id = get_session_id(request)
    if session_id:
        delete_session_quietly(db, session_id)
    return redirect(safe_redirect(redirect_to), *header_sets, [session_storage.destroy()])


def sign_out_other_sessions(db: Session, user_id: str, current_session_id: str) -> int:
    """Delete every session of the user except the one making the request."""
    deleted = (
        db.query(LoginSession)
        .filter(LoginSession.user_id == user_id, LoginSession.id != current_session_id)
        .delete(synchronize_session=False)
    )
    db.commit()
    logger.info(f"Signed out {deleted} other session(s) for user={user_id}")
    return deleted


def count_sessions(db: Session, user_id: str) -> int:
    return (
        db.query(LoginSession)
        .filter(LoginSession.user_id == user_id, LoginSession.expiration_date > clock.utcnow())
        .count()
    )
