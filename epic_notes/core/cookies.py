"""
Signed cookie stores, one per cookie purpose.

A store knows its cookie name, its payload model and its lifetime. Reading never
fails: a missing, tampered or expired cookie comes back as an empty model.
Writing returns a ("set-cookie", value) pair for the response orchestrator
instead of touching a response directly.

All cookies: http-only, SameSite=Lax, Path=/, Secure in production.
"""
from datetime import datetime
from typing import Generic, Optional, Type, TypeVar

from fastapi import Request, Response
from pydantic import BaseModel, ValidationError

from epic_notes.config import settings
from epic_notes.core.security import sign_cookie_value, unsign_cookie_value
from epic_notes.schemas.cookies import (
    ConnectionCookie,
    RedirectCookie,
    SessionCookie,
    Toast,
    VerificationCookie,
)

M = TypeVar("M", bound=BaseModel)


def serialize_cookie(name: str, value: str, **options) -> str:
    """Let Starlette format the Set-Cookie header so quoting/dates stay standard."""
    response = Response()
    response.set_cookie(
        name,
        value,
        path="/",
        httponly=True,
        samesite="lax",
        secure=settings.is_production,
        **options,
    )
    return response.headers["set-cookie"]


class CookieStore(Generic[M]):
    def __init__(self, name: str, model: Type[M], max_age: Optional[int] = None):
        self.name = name
        self.model = model
        self.max_age = max_age

    def read_optional(self, request: Request) -> Optional[M]:
        raw = request.cookies.get(self.name)
        if not raw:
            return None
        claims = unsign_cookie_value(raw)
        if claims is None:
            return None
        try:
            return self.model.model_validate(claims)
        except ValidationError:
            return None

    def read(self, request: Request) -> M:
        return self.read_optional(request) or self.model()

    def commit(self, value: M, expires: Optional[datetime] = None) -> tuple[str, str]:
        token = sign_cookie_value(value.model_dump(mode="json"), max_age=self.max_age)
        options = {}
        if self.max_age is not None:
            options["max_age"] = self.max_age
        if expires is not None:
            options["expires"] = expires
        return ("set-cookie", serialize_cookie(self.name, token, **options))

    def destroy(self) -> tuple[str, str]:
        return (
            "set-cookie",
            serialize_cookie(self.name, "", max_age=0, expires=0),
        )


class SessionCookieStore(CookieStore[SessionCookie]):
    """
    The session cookie is a browser-session cookie unless an explicit expiry is
    given ("remember me"). That expiry is kept inside the payload so later
    commits (e.g. recording a fresh 2FA check) don't silently drop it.
    """

    def commit(self, value: SessionCookie, expires: Optional[datetime] = None) -> tuple[str, str]:
        if expires is not None:
            value = value.model_copy(update={"expires": expires})
        return super().commit(value, expires=value.expires)


session_storage = SessionCookieStore("en_session", SessionCookie)
verification_storage = CookieStore(
    "en_verification", VerificationCookie, max_age=settings.verification_cookie_max_age
)
connection_storage = CookieStore("en_connection", ConnectionCookie, max_age=60 * 10)
redirect_storage = CookieStore("en_redirect-to", RedirectCookie, max_age=60 * 10)
toast_storage = CookieStore("en_toast", Toast)


# ── Post-login redirect target ────────────────────────────────────────────────

def get_redirect_cookie_header(redirect_to: Optional[str]) -> Optional[tuple[str, str]]:
    """Remember where to land after an OAuth round trip. Nothing to remember for "/"."""
    if not redirect_to or redirect_to == "/":
        return None
    return redirect_storage.commit(RedirectCookie(redirect_to=redirect_to))


def get_redirect_cookie_value(request: Request) -> Optional[str]:
    return redirect_storage.read(request).redirect_to


def destroy_redirect_cookie() -> tuple[str, str]:
    return redirect_storage.destroy()
