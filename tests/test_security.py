"""Tests for password hashing and signed cookie values."""

from __future__ import annotations

import pytest

from epic_notes.config import settings
from epic_notes.core.security import (
    hash_password,
    sign_cookie_value,
    unsign_cookie_value,
    verify_password,
)


# ===================================================================
# 1. Password hashing
# ===================================================================


class TestPasswordHashing:
    def test_verify_accepts_the_original_password(self) -> None:
        stored = hash_password("kodylovesyou")
        assert verify_password("kodylovesyou", stored)

    def test_verify_rejects_any_other_password(self) -> None:
        stored = hash_password("kodylovesyou")
        assert not verify_password("kodylovesme", stored)
        assert not verify_password("", stored)

    def test_hash_uses_bcrypt_cost_ten(self) -> None:
        assert hash_password("kodylovesyou").startswith("$2b$10$")

    def test_same_password_hashes_differently(self) -> None:
        # Fresh salt per hash
        assert hash_password("kodylovesyou") != hash_password("kodylovesyou")


# ===================================================================
# 2. Cookie signing
# ===================================================================


class TestCookieSigning:
    def test_round_trip(self) -> None:
        token = sign_cookie_value({"session_id": "abc"})
        assert unsign_cookie_value(token) == {"session_id": "abc"}

    def test_exp_claim_is_not_exposed(self) -> None:
        token = sign_cookie_value({"session_id": "abc"}, max_age=600)
        assert unsign_cookie_value(token) == {"session_id": "abc"}

    def test_tampered_value_is_rejected(self) -> None:
        token = sign_cookie_value({"session_id": "abc"})
        header, payload, signature = token.split(".")
        tampered = ".".join([header, payload, signature[::-1]])
        assert unsign_cookie_value(tampered) is None

    def test_garbage_is_rejected(self) -> None:
        assert unsign_cookie_value("not-a-token") is None

    def test_expired_value_is_rejected(self) -> None:
        token = sign_cookie_value({"session_id": "abc"}, max_age=-10)
        assert unsign_cookie_value(token) is None

    def test_rotated_secret_still_verifies(self, monkeypatch: pytest.MonkeyPatch) -> None:
        old_secret = settings.secret_keys[0]
        token = sign_cookie_value({"session_id": "abc"})

        monkeypatch.setattr(settings, "secret_key", f"brand-new-secret,{old_secret}")

        assert unsign_cookie_value(token) == {"session_id": "abc"}
        # New values are signed with the first secret only
        fresh = sign_cookie_value({"session_id": "def"})
        monkeypatch.setattr(settings, "secret_key", old_secret)
        assert unsign_cookie_value(fresh) is None

    def test_unknown_secret_is_rejected(self, monkeypatch: pytest.MonkeyPatch) -> None:
        token = sign_cookie_value({"session_id": "abc"})
        monkeypatch.setattr(settings, "secret_key", "some-other-secret")
        assert unsign_cookie_value(token) is None
