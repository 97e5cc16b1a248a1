"""Test helpers that aren't fixtures: seeding users, logging in, reading redirects."""

from __future__ import annotations

from typing import Any
from urllib.parse import parse_qs, urlsplit

import pyotp
from fastapi.testclient import TestClient

from epic_notes.core.security import hash_password
from epic_notes.models.user import Password, User
from epic_notes.services import permission_service
from epic_notes.services.verification_service import TWO_FA_VERIFICATION_TYPE, issue_verification

DEFAULT_PASSWORD = "kodylovesyou"


def create_user(
    db: Any,
    *,
    username: str = "kody",
    email: str = "kody@example.com",
    password: str | None = DEFAULT_PASSWORD,
    name: str = "Kody",
    role: str = permission_service.USER_ROLE,
) -> User:
    user = User(username=username, email=email, name=name)
    user.roles.append(permission_service.get_or_create_role(db, role))
    db.add(user)
    db.flush()
    if password is not None:
        db.add(Password(user_id=user.id, hash=hash_password(password)))
    db.commit()
    db.refresh(user)
    return user


def login(client: TestClient, username: str = "kody", password: str = DEFAULT_PASSWORD, **extra: Any):
    return client.post("/login", data={"username": username, "password": password, **extra})


def enable_two_fa(db: Any, user_id: str) -> pyotp.TOTP:
    """Give the user a standing 2fa row; returns a TOTP that produces matching codes."""
    issued = issue_verification(
        db,
        type=TWO_FA_VERIFICATION_TYPE,
        target=user_id,
        period=30,
        algorithm="SHA1",
        expires=False,
    )
    return pyotp.TOTP(issued.secret)


def query_params(location: str) -> dict[str, str]:
    return {key: values[0] for key, values in parse_qs(urlsplit(location).query).items()}


def set_cookie_headers(response: Any) -> list[str]:
    return response.headers.get_list("set-cookie")


def find_set_cookie(response: Any, name: str) -> str | None:
    for header in set_cookie_headers(response):
        if header.startswith(f"{name}="):
            return header
    return None
