"""
OAuth connection handling: starting the provider round trip, resolving the
callback into a login / link / onboarding outcome, and managing the linked
connections of a user.

Callback outcomes, checked in order:
  1. identity already linked and someone is logged in → error toast
  2. identity already linked → log in as the linked user
  3. logged in, identity unlinked → link it to the current user
  4. a user with the provider email exists → link it and log that user in
  5. otherwise → stash the profile and continue to /onboarding/<provider>
"""
import logging
import re
import secrets
from typing import Optional
from urllib.parse import urlencode

from fastapi import Request
from sqlalchemy.orm import Session

from epic_notes.config import settings
from epic_notes.core.cookies import (
    connection_storage,
    destroy_redirect_cookie,
    get_redirect_cookie_header,
    get_redirect_cookie_value,
    verification_storage,
)
from epic_notes.core.exceptions import ForbiddenException, NotFoundException, ProviderAuthError
from epic_notes.core.responses import HeaderSet, Redirect, combine_headers, redirect
from epic_notes.models.connection import Connection
from epic_notes.models.user import User
from epic_notes.schemas.auth import ProviderOnboardingForm
from epic_notes.schemas.cookies import ConnectionCookie, ProviderProfile, Toast
from epic_notes.services import auth_service
from epic_notes.services.image_service import download_image
from epic_notes.services.providers import OAuthProvider, ProviderRegistry
from epic_notes.services.session_service import create_session, get_user_id
from epic_notes.services.toast_service import create_toast_headers, redirect_with_toast
from epic_notes.services.two_factor_service import handle_new_session
from epic_notes.services.verification_service import get_domain_url

logger = logging.getLogger(__name__)

CONNECTIONS_PATH = "/settings/profile/connections"


def get_callback_url(request: Request, provider_name: str) -> str:
    if settings.github_redirect_uri and provider_name == "github":
        return settings.github_redirect_uri
    return f"{get_domain_url(request)}/auth/{provider_name}/callback"


def suggest_username(username: Optional[str]) -> Optional[str]:
    """Provider handle → something our username rules accept."""
    if not username:
        return None
    suggestion = re.sub(r"[^a-zA-Z0-9_]", "_", username).lower()[:20]
    return suggestion.ljust(3, "_")


# ── Round trip ────────────────────────────────────────────────────────────────

def start_oauth(request: Request, provider: OAuthProvider, redirect_to: Optional[str] = None) -> Redirect:
    """Fresh state nonce in the connection cookie, post-login target in the redirect cookie."""
    state = secrets.token_urlsafe(32)
    redirect_header = get_redirect_cookie_header(redirect_to)
    return redirect(
        provider.authorization_url(state, get_callback_url(request, provider.name)),
        [connection_storage.commit(ConnectionCookie(oauth_state=state))],
        [redirect_header] if redirect_header else None,
    )


async def authenticate_callback(request: Request, provider: OAuthProvider) -> ProviderProfile:
    """Check the state nonce, then let the provider turn the code into a profile."""
    code = request.query_params.get("code")
    state = request.query_params.get("state")
    expected_state = connection_storage.read(request).oauth_state
    if not code:
        raise ProviderAuthError("Callback is missing the code parameter", provider.name)
    if not state or not expected_state or not secrets.compare_digest(state, expected_state):
        raise ProviderAuthError("OAuth state mismatch", provider.name)
    return await provider.authenticate(code, get_callback_url(request, provider.name))


def _login_as(
    request: Request, db: Session, user_id: str, redirect_to: Optional[str], *header_sets: HeaderSet
) -> Redirect:
    session = create_session(db, user_id)
    return handle_new_session(request, db, session, True, redirect_to, *header_sets)


def _connect(db: Session, user_id: str, provider_name: str, provider_id: str) -> Connection:
    connection = Connection(user_id=user_id, provider_name=provider_name, provider_id=provider_id)
    db.add(connection)
    db.commit()
    logger.info(f"Connected {provider_name} account {provider_id} to user={user_id}")
    return connection


async def handle_oauth_callback(
    request: Request, db: Session, provider_name: str, providers: ProviderRegistry
) -> Redirect:
    provider = providers.get(provider_name)
    label = provider.label or provider_name

    redirect_to = get_redirect_cookie_value(request)
    cleanup = combine_headers(
        [connection_storage.destroy()],
        [destroy_redirect_cookie()] if redirect_to else None,
    )

    try:
        profile = await authenticate_callback(request, provider)
    except ProviderAuthError as exc:
        logger.error(f"{label} authentication failed: {exc}")
        return redirect_with_toast(
            "/login",
            Toast(
                type="error",
                title="Auth Failed",
                description=f"There was an error authenticating with {label}.",
            ),
            cleanup,
        )

    existing = (
        db.query(Connection)
        .filter(Connection.provider_name == provider_name, Connection.provider_id == profile.id)
        .first()
    )
    current = get_user_id(request, db)
    user_id = current.value
    headers = combine_headers(cleanup, current.headers)

    if existing and user_id:
        if existing.user_id == user_id:
            description = f"Your \"{profile.username or profile.email}\" {label} account is already connected."
        else:
            description = f"The \"{profile.username or profile.email}\" {label} account is already connected to another account."
        return redirect_with_toast(
            CONNECTIONS_PATH,
            Toast(type="error", title="Already Connected", description=description),
            headers,
        )

    if existing:
        return _login_as(request, db, existing.user_id, redirect_to, headers)

    if user_id:
        _connect(db, user_id, provider_name, profile.id)
        return redirect_with_toast(
            CONNECTIONS_PATH,
            Toast(
                type="success",
                title="Connected",
                description=f"Your \"{profile.username or profile.email}\" {label} account has been connected.",
            ),
            headers,
        )

    user = db.query(User).filter(User.email == profile.email.lower()).first()
    if user:
        _connect(db, user.id, provider_name, profile.id)
        return _login_as(
            request,
            db,
            user.id,
            CONNECTIONS_PATH,
            headers,
            create_toast_headers(
                Toast(
                    type="success",
                    title="Connected",
                    description=f"Your \"{profile.username or profile.email}\" {label} account has been connected.",
                )
            ),
        )

    # Brand new: let the user pick a username/name before the account exists
    stashed = profile.model_copy(update={"username": suggest_username(profile.username)})
    cookie = verification_storage.read(request).model_copy(
        update={
            "onboarding_email": profile.email.lower(),
            "provider_id": profile.id,
            "provider_profile": stashed,
        }
    )
    location = f"/onboarding/{provider_name}"
    if redirect_to:
        location = f"{location}?{urlencode({'redirectTo': redirect_to})}"
    return redirect(location, headers, [verification_storage.commit(cookie)])


# ── Onboarding ────────────────────────────────────────────────────────────────

def get_provider_onboarding(request: Request) -> Optional[ProviderProfile]:
    """The stashed profile, or None when there's no OAuth signup in progress."""
    cookie = verification_storage.read(request)
    if not cookie.onboarding_email or not cookie.provider_id or cookie.provider_profile is None:
        return None
    return cookie.provider_profile.model_copy(update={"email": cookie.onboarding_email})


async def complete_provider_onboarding(
    request: Request,
    db: Session,
    provider_name: str,
    form: ProviderOnboardingForm,
    *header_sets: HeaderSet,
) -> Redirect:
    profile = get_provider_onboarding(request)
    if profile is None:
        return redirect("/login", *header_sets)

    image = await download_image(profile.image_url) if profile.image_url else None
    session = auth_service.signup_with_connection(
        db,
        email=profile.email,
        username=form.username,
        name=form.name,
        provider_name=provider_name,
        provider_id=verification_storage.read(request).provider_id,
        image=image,
    )
    return handle_new_session(
        request,
        db,
        session,
        form.remember,
        form.redirect_to,
        *header_sets,
        [verification_storage.destroy()],
        create_toast_headers(
            Toast(type="success", title="Welcome", description="Thanks for signing up!")
        ),
    )


# ── Settings: connections ─────────────────────────────────────────────────────

def list_connections(db: Session, user_id: str) -> tuple[list[Connection], bool]:
    """All connections of the user, plus whether any of them may be removed."""
    connections = (
        db.query(Connection)
        .filter(Connection.user_id == user_id)
        .order_by(Connection.created_at)
        .all()
    )
    user = db.query(User).filter(User.id == user_id).first()
    has_password = user is not None and user.password is not None
    return connections, has_password or len(connections) > 1


def delete_connection(db: Session, user_id: str, connection_id: str) -> None:
    """Unlink, unless it would leave the user with no way to log in."""
    connection = (
        db.query(Connection)
        .filter(Connection.id == connection_id, Connection.user_id == user_id)
        .first()
    )
    if connection is None:
        raise NotFoundException("Connection")

    _, can_delete = list_connections(db, user_id)
    if not can_delete:
        raise ForbiddenException("You cannot delete your last connection unless you have a password.")

    db.delete(connection)
    db.commit()
    logger.info(f"Deleted {connection.provider_name} connection {connection_id} for user={user_id}")
