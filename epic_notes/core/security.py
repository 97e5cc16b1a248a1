"""
Security utilities: password hashing and cookie signing.
Uses PyJWT (HS256) to sign cookie payloads. The cookie value is a compact JWT,
so tampering or a rotated-out secret simply yields an empty cookie.
"""
import jwt
from jwt.exceptions import InvalidTokenError
from passlib.context import CryptContext
from datetime import timedelta
from typing import Optional

from epic_notes.config import settings
from epic_notes.core import clock

# ── Password Hashing ──────────────────────────────────────────────────────────
# bcrypt with a fixed cost of 10 rounds.
# deprecated="auto" means passlib will flag old hashes for upgrade.
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=10)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


# ── Cookie Signing ────────────────────────────────────────────────────────────

def sign_cookie_value(payload: dict, max_age: Optional[int] = None) -> str:
    """
    Encode a cookie payload as a signed token.

    When max_age is given the token also carries an `exp` claim, so a stale
    cookie is rejected server-side even if the browser kept it around.
    Always signs with the first configured secret.
    """
    claims = dict(payload)
    if max_age is not None:
        claims["exp"] = clock.utcnow() + timedelta(seconds=max_age)
    return jwt.encode(claims, settings.secret_keys[0], algorithm=settings.cookie_algorithm)


def unsign_cookie_value(token: str) -> Optional[dict]:
    """
    Decode a signed cookie value. Every configured secret is tried so keys can
    be rotated without logging everyone out.
    Returns None for a bad signature, an expired token, or garbage input.
    """
    for secret in settings.secret_keys:
        try:
            claims = jwt.decode(token, secret, algorithms=[settings.cookie_algorithm])
        except InvalidTokenError:
            continue
        claims.pop("exp", None)
        return claims
    return None
