"""Shared fixtures: in-memory SQLite, a frozen clock, captured emails and a fake OAuth provider."""

from __future__ import annotations

import os

# Settings are read at import time, so the environment must be ready first.
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ["DATABASE_URL_OVERRIDE"] = "sqlite://"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["MAIL_SUPPRESS_SEND"] = "true"

from collections.abc import Iterator
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import epic_notes.models  # noqa: F401
from epic_notes.core import clock as clock_module
from epic_notes.core.exceptions import ProviderAuthError
from epic_notes.database import Base, get_db
from epic_notes.main import create_app
from epic_notes.routers import auth as auth_router
from epic_notes.routers import settings as settings_router
from epic_notes.schemas.cookies import ProviderProfile
from epic_notes.services import auth_service
from epic_notes.services.providers import OAuthProvider, ProviderRegistry


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def engine() -> Iterator[Any]:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, _record) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine: Any) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory: sessionmaker) -> Iterator[Any]:
    session = session_factory()
    yield session
    session.close()


# =============================================================================
# Clock
# =============================================================================


class FrozenClock:
    """Stands in for clock.utcnow(); starts at the real current time."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def frozen_clock(monkeypatch: pytest.MonkeyPatch) -> FrozenClock:
    # Real "now": signed cookies carry an exp claim checked against real time
    frozen = FrozenClock(datetime.now(timezone.utc).replace(microsecond=0))
    monkeypatch.setattr(clock_module, "utcnow", frozen)
    return frozen


# =============================================================================
# Email
# =============================================================================


@pytest.fixture
def outbox(monkeypatch: pytest.MonkeyPatch) -> list[dict[str, Any]]:
    """Capture outgoing emails instead of talking to SMTP."""
    sent: list[dict[str, Any]] = []

    def capture(kind: str):
        async def _send(email_to: str, otp: str | None = None, verify_url: str | None = None) -> None:
            sent.append({"kind": kind, "to": email_to, "otp": otp, "verify_url": verify_url})

        return _send

    monkeypatch.setattr(auth_router, "send_onboarding_email", capture("onboarding"))
    monkeypatch.setattr(auth_router, "send_reset_password_email", capture("reset-password"))
    monkeypatch.setattr(settings_router, "send_change_email_email", capture("change-email"))
    monkeypatch.setattr(auth_service, "send_email_changed_notice", capture("email-changed"))
    return sent


# =============================================================================
# OAuth
# =============================================================================


class FakeProvider(OAuthProvider):
    """Maps callback codes to canned profiles; any other code fails the exchange."""

    name = "fake"
    label = "Fake"

    def __init__(self) -> None:
        self.profiles: dict[str, ProviderProfile] = {}

    def authorization_url(self, state: str, redirect_uri: str) -> str:
        return f"https://fake.example/authorize?state={state}&redirect_uri={redirect_uri}"

    async def authenticate(self, code: str, redirect_uri: str) -> ProviderProfile:
        if code not in self.profiles:
            raise ProviderAuthError(f"unknown code {code}", self.name)
        return self.profiles[code]


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()


# =============================================================================
# App
# =============================================================================


@pytest.fixture
def app(session_factory: sessionmaker, fake_provider: FakeProvider) -> Any:
    app = create_app(providers=ProviderRegistry([fake_provider]))

    def _get_test_db() -> Iterator[Any]:
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_test_db
    return app


@pytest.fixture
def client(app: Any) -> TestClient:
    return TestClient(app, follow_redirects=False)


@pytest.fixture
def make_client(app: Any):
    """A second browser against the same app and database."""

    def _make() -> TestClient:
        return TestClient(app, follow_redirects=False)

    return _make

