"""
Auth service: credential checks and account creation, plus the per-type
handlers that run once a /verify code has been accepted.
Routers only handle HTTP; the logic lives here.
"""
import logging
from typing import Optional
from urllib.parse import urlencode

from fastapi import Request
from sqlalchemy import or_
from sqlalchemy.orm import Session

from epic_notes.core.cookies import verification_storage
from epic_notes.core.exceptions import ConflictException, EmailDeliveryError, ForbiddenException
from epic_notes.core.responses import Redirect, redirect
from epic_notes.core.security import hash_password, pwd_context, verify_password
from epic_notes.models.connection import Connection
from epic_notes.models.session import Session as LoginSession
from epic_notes.models.user import Password, User, UserImage
from epic_notes.schemas.cookies import Toast
from epic_notes.services import permission_service
from epic_notes.services.email_service import send_email_changed_notice
from epic_notes.services.session_service import (
    create_session,
    get_session_expiration_date,
    require_user_id,
)
from epic_notes.services.toast_service import redirect_with_toast
from epic_notes.services.verification_service import (
    CHANGE_EMAIL_VERIFICATION_TYPE,
    ONBOARDING_VERIFICATION_TYPE,
    RESET_PASSWORD_VERIFICATION_TYPE,
    delete_verification,
)

logger = logging.getLogger(__name__)

# Pre-computed bcrypt hash used ONLY for constant-time comparison when the user
# doesn't exist, so "no such user" and "wrong password" take equally long.
# Generated once at module load. Never stored anywhere or used for real auth.
_DUMMY_HASH: str = pwd_context.hash("__dummy_timing_prevention__")


# ── Lookups ───────────────────────────────────────────────────────────────────

def get_user_by_username_or_email(db: Session, username_or_email: str) -> Optional[User]:
    value = username_or_email.strip().lower()
    return db.query(User).filter(or_(User.username == value, User.email == value)).first()


def ensure_available(db: Session, *, email: Optional[str] = None, username: Optional[str] = None) -> None:
    if email and db.query(User).filter(User.email == email.lower()).first():
        raise ConflictException("A user already exists with this email")
    if username and db.query(User).filter(User.username == username.lower()).first():
        raise ConflictException("A user already exists with this username")


# ── Credentials ───────────────────────────────────────────────────────────────

def verify_user_password(db: Session, password: str, *, username: str) -> Optional[User]:
    """
    Returns the user when `password` matches, otherwise None.

    None covers all failure modes alike: unknown user, OAuth-only account
    without a password, and wrong password.
    """
    user = db.query(User).filter(User.username == username.lower()).first()

    stored_hash = user.password.hash if user and user.password else None
    # Always run a bcrypt verify so response time doesn't reveal which case we hit
    password_ok = verify_password(password, stored_hash or _DUMMY_HASH)
    if not user or not stored_hash or not password_ok:
        return None
    return user


def login(db: Session, *, username: str, password: str) -> Optional[LoginSession]:
    """Check credentials and open a new session. None means invalid credentials."""
    user = verify_user_password(db, password, username=username)
    if user is None:
        logger.info(f"Failed login attempt for username={username}")
        return None
    return create_session(db, user.id)


def reset_user_password(db: Session, *, username: str, password: str) -> None:
    user = db.query(User).filter(User.username == username.lower()).first()
    if user is None:
        return
    if user.password:
        user.password.hash = hash_password(password)
    else:
        db.add(Password(user_id=user.id, hash=hash_password(password)))
    db.commit()
    logger.info(f"Password reset for user={user.id}")


# ── Account creation ──────────────────────────────────────────────────────────

def _create_user(db: Session, *, email: str, username: str, name: Optional[str]) -> User:
    user = User(email=email.lower(), username=username.lower(), name=name)
    user.roles.append(permission_service.get_or_create_role(db, permission_service.USER_ROLE))
    db.add(user)
    db.flush()  # flush to get the id assigned without committing
    return user


def signup(db: Session, *, email: str, username: str, password: str, name: Optional[str]) -> LoginSession:
    """
    Creates user + password + role link, then a session, in one commit.
    Raises ConflictException when the email or username is taken.
    """
    ensure_available(db, email=email, username=username)

    user = _create_user(db, email=email, username=username, name=name)
    db.add(Password(user_id=user.id, hash=hash_password(password)))
    session = LoginSession(user_id=user.id, expiration_date=get_session_expiration_date())
    db.add(session)

    db.commit()
    db.refresh(session)
    logger.info(f"New user signed up: {user.username} ({user.id})")
    return session


def signup_with_connection(
    db: Session,
    *,
    email: str,
    username: str,
    name: Optional[str],
    provider_name: str,
    provider_id: str,
    image: Optional[dict] = None,
) -> LoginSession:
    """
    OAuth signup: no password, the provider connection is the credential.
    `image` is the already-downloaded avatar ({"content_type", "blob"}) or None.
    """
    ensure_available(db, email=email, username=username)
    if (
        db.query(Connection)
        .filter(Connection.provider_name == provider_name, Connection.provider_id == provider_id)
        .first()
    ):
        raise ConflictException("This account is already connected to another user")

    user = _create_user(db, email=email, username=username, name=name)
    db.add(Connection(user_id=user.id, provider_name=provider_name, provider_id=provider_id))
    if image:
        db.add(
            UserImage(
                user_id=user.id,
                content_type=image["content_type"],
                blob=image["blob"],
                alt_text=f"{user.username}'s avatar",
            )
        )
    session = LoginSession(user_id=user.id, expiration_date=get_session_expiration_date())
    db.add(session)

    db.commit()
    db.refresh(session)
    logger.info(f"New user signed up via {provider_name}: {user.username} ({user.id})")
    return session


def delete_user(db: Session, user_id: str) -> None:
    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        return
    db.delete(user)
    db.commit()
    logger.info(f"Deleted user {user_id}")


# ── Post-verification handlers ────────────────────────────────────────────────
# Called by the /verify route after is_code_valid() accepted the code.

def handle_onboarding_verification(
    request: Request, db: Session, *, target: str, redirect_to: Optional[str] = None
) -> Redirect:
    """The email is proven: remember it and move on to the onboarding form."""
    delete_verification(db, type=ONBOARDING_VERIFICATION_TYPE, target=target)

    cookie = verification_storage.read(request)
    cookie = cookie.model_copy(update={"onboarding_email": target})
    location = "/onboarding"
    if redirect_to:
        location = f"{location}?{urlencode({'redirectTo': redirect_to})}"
    return redirect(location, [verification_storage.commit(cookie)])


def handle_reset_password_verification(
    request: Request, db: Session, *, target: str
) -> Optional[Redirect]:
    """
    `target` is whatever the user typed on the forgot-password form (username
    or email). None when it no longer matches a user.
    """
    user = get_user_by_username_or_email(db, target)
    if user is None:
        return None
    delete_verification(db, type=RESET_PASSWORD_VERIFICATION_TYPE, target=target)

    cookie = verification_storage.read(request)
    cookie = cookie.model_copy(update={"reset_password_username": user.username})
    return redirect("/reset-password", [verification_storage.commit(cookie)])


async def handle_change_email_verification(
    request: Request, db: Session, *, target: str
) -> Redirect:
    """
    The new address is proven. Swap it in and let the old address know.
    The notice is best-effort: the change already happened.
    """
    result = require_user_id(request, db)
    if isinstance(result, Redirect):
        return result
    if result.value != target:
        raise ForbiddenException("This code was issued for another account")

    new_email = verification_storage.read(request).new_email
    if not new_email:
        return redirect_with_toast(
            "/settings/profile",
            Toast(
                type="error",
                title="Could not find new email",
                description="Please try changing your email again.",
            ),
            result.headers,
        )

    user = db.query(User).filter(User.id == target).first()
    ensure_available(db, email=new_email)
    old_email = user.email
    user.email = new_email
    db.commit()
    delete_verification(db, type=CHANGE_EMAIL_VERIFICATION_TYPE, target=target)
    logger.info(f"User {user.id} changed email")

    try:
        await send_email_changed_notice(old_email)
    except EmailDeliveryError:
        logger.warning(f"Could not notify {old_email} about the email change for user={user.id}")

    return redirect_with_toast(
        "/settings/profile",
        Toast(
            type="success",
            title="Email Changed",
            description=f"Your email has been changed to {new_email}",
        ),
        result.headers,
        [verification_storage.destroy()],
    )
