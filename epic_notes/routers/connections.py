"""
OAuth router: provider round trip, OAuth-only onboarding, and the connections
settings page.

  POST /auth/{provider}                          → redirect to the provider
  GET  /auth/{provider}/callback                 → login / link / onboarding
  GET|POST /onboarding/{provider}                → finish an OAuth signup
  GET  /settings/profile/connections             → list linked providers
  POST /settings/profile/connections/{id}/delete → unlink
"""
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Form, Request
from sqlalchemy.orm import Session

from epic_notes.core.exceptions import UnknownProviderException
from epic_notes.core.responses import Redirect, json_response, redirect
from epic_notes.database import get_db
from epic_notes.schemas.auth import ProviderOnboardingForm
from epic_notes.schemas.cookies import Toast
from epic_notes.schemas.user import ConnectionListResponse, ConnectionOut
from epic_notes.services import connection_service
from epic_notes.services.providers import ProviderRegistry, get_providers
from epic_notes.services.session_service import require_anonymous, require_user_id
from epic_notes.services.toast_service import redirect_with_toast

router = APIRouter()


def _ensure_provider(providers: ProviderRegistry, provider: str) -> None:
    if provider not in providers:
        raise UnknownProviderException(provider)


# ── Provider round trip ───────────────────────────────────────────────────────

@router.post("/auth/{provider}")
async def start_provider_auth(
    request: Request,
    provider: str,
    redirect_to: Annotated[Optional[str], Form()] = None,
    providers: ProviderRegistry = Depends(get_providers),
):
    return connection_service.start_oauth(request, providers.get(provider), redirect_to).to_response()


@router.get("/auth/{provider}/callback")
async def provider_callback(
    request: Request,
    provider: str,
    db: Session = Depends(get_db),
    providers: ProviderRegistry = Depends(get_providers),
):
    _ensure_provider(providers, provider)
    result = await connection_service.handle_oauth_callback(request, db, provider, providers)
    return result.to_response()


# ── OAuth onboarding ──────────────────────────────────────────────────────────

@router.get("/onboarding/{provider}")
async def provider_onboarding_page(
    request: Request,
    provider: str,
    db: Session = Depends(get_db),
    providers: ProviderRegistry = Depends(get_providers),
):
    """Prefill values for the signup form, taken from the stashed provider profile."""
    _ensure_provider(providers, provider)
    guard = require_anonymous(request, db)
    if isinstance(guard, Redirect):
        return guard.to_response()

    profile = connection_service.get_provider_onboarding(request)
    if profile is None:
        return redirect("/login", guard.headers).to_response()
    return json_response(
        {
            "email": profile.email,
            "username": profile.username,
            "name": profile.name,
            "image_url": profile.image_url,
        },
        guard.headers,
    )


@router.post("/onboarding/{provider}")
async def provider_onboarding(
    request: Request,
    provider: str,
    form: Annotated[ProviderOnboardingForm, Form()],
    db: Session = Depends(get_db),
    providers: ProviderRegistry = Depends(get_providers),
):
    _ensure_provider(providers, provider)
    guard = require_anonymous(request, db)
    if isinstance(guard, Redirect):
        return guard.to_response()

    result = await connection_service.complete_provider_onboarding(
        request, db, provider, form, guard.headers
    )
    return result.to_response()


# ── Settings: connections ─────────────────────────────────────────────────────

@router.get("/settings/profile/connections", response_model=ConnectionListResponse)
async def list_connections(request: Request, db: Session = Depends(get_db)):
    result = require_user_id(request, db)
    if isinstance(result, Redirect):
        return result.to_response()

    connections, can_delete = connection_service.list_connections(db, result.value)
    return {
        "connections": [ConnectionOut.model_validate(c) for c in connections],
        "can_delete_connections": can_delete,
    }


@router.post("/settings/profile/connections/{connection_id}/delete")
async def delete_connection(request: Request, connection_id: str, db: Session = Depends(get_db)):
    result = require_user_id(request, db)
    if isinstance(result, Redirect):
        return result.to_response()

    connection_service.delete_connection(db, result.value, connection_id)
    return redirect_with_toast(
        connection_service.CONNECTIONS_PATH,
        Toast(type="success", title="Deleted", description="Your connection has been deleted."),
    ).to_response()
