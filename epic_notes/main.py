"""
Application entry point.

Run locally:
    uvicorn epic_notes.main:app --reload --port 8000

API docs available at:
    http://localhost:8000/docs   (Swagger UI)
    http://localhost:8000/redoc  (ReDoc)
"""
import logging
from typing import Optional

from fastapi import Depends, FastAPI, Request
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy.orm import Session

from epic_notes.config import settings
from epic_notes.core.rate_limiter import limiter
from epic_notes.core.responses import json_response
from epic_notes.database import get_db
from epic_notes.routers import auth, connections, users
from epic_notes.routers import settings as settings_router
from epic_notes.services.providers import ProviderRegistry, build_provider_registry
from epic_notes.services.session_service import get_user_id
from epic_notes.services.toast_service import get_toast


def create_app(providers: Optional[ProviderRegistry] = None) -> FastAPI:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    app = FastAPI(
        title=f"{settings.app_name} API",
        description=(
            "Authentication and verification core: password and GitHub login, "
            "email verification codes, two-factor authentication and sessions."
        ),
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # ── Rate Limiter ──────────────────────────────────────────────────────────
    # Attach limiter to app state (required by slowapi)
    # Register the 429 handler so exceeded limits return proper JSON
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # ── OAuth providers ───────────────────────────────────────────────────────
    # Built once; handlers reach it through Depends(get_providers)
    app.state.providers = providers or build_provider_registry(settings)

    # ── Routers ───────────────────────────────────────────────────────────────
    # Login, signup, verify, onboarding, password reset
    app.include_router(auth.router, tags=["Auth"])

    # OAuth round trip, OAuth onboarding, connection settings
    app.include_router(connections.router, tags=["Connections"])

    # Profile, change email, two-factor
    app.include_router(settings_router.router, prefix="/settings/profile", tags=["Settings"])

    app.include_router(users.router, prefix="/users", tags=["Users"])

    # ── Home ──────────────────────────────────────────────────────────────────
    @app.get("/", tags=["Home"])
    def home(request: Request, db: Session = Depends(get_db)):
        """Who is logged in, plus the pending toast (read once, then cleared)."""
        user = get_user_id(request, db)
        toast, toast_headers = get_toast(request)
        return json_response(
            {
                "user_id": user.value,
                "toast": toast.model_dump() if toast else None,
            },
            user.headers,
            toast_headers,
        )

    # ── Health Check ──────────────────────────────────────────────────────────
    @app.get("/health", tags=["Health"])
    def health_check():
        """
        Simple health check endpoint for load balancers and Docker health checks.
        Returns 200 if the application is running.
        """
        return {"status": "ok", "version": "1.0.0"}

    return app


app = create_app()
