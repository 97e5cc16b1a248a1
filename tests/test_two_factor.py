"""Tests for the 2FA login detour, step-up re-verification and enrollment."""

from __future__ import annotations

import pyotp

from epic_notes.models.session import Session as LoginSession
from epic_notes.services import two_factor_service
from epic_notes.services.verification_service import TWO_FA_VERIFICATION_TYPE, get_verification
from helpers import create_user, enable_two_fa, find_set_cookie, login, query_params

TWO_FACTOR_PATH = "/settings/profile/two-factor"


def _submit_code(client, code: str, target: str, **extra):
    return client.post(
        "/verify",
        data={"code": code, "type": "2fa", "target": target, **extra},
    )


def _login_with_two_fa(client, db, frozen_clock, **extra):
    """Log kody in and pass the 2FA step. Returns (user, totp)."""
    user = create_user(db)
    totp = enable_two_fa(db, user.id)
    login(client, **extra)
    response = _submit_code(client, totp.at(frozen_clock.now), user.id)
    assert response.status_code == 302
    return user, totp


# ===================================================================
# 1. Login detour
# ===================================================================


class TestTwoFactorLogin:
    def test_login_parks_the_session(self, client, db, frozen_clock) -> None:
        user = create_user(db)
        enable_two_fa(db, user.id)

        response = login(client)

        assert response.status_code == 302
        assert response.headers["location"].startswith("/verify?")
        assert query_params(response.headers["location"]) == {"type": "2fa", "target": user.id}
        assert find_set_cookie(response, "en_session") is None
        assert find_set_cookie(response, "en_verification") is not None
        assert client.get("/").json()["user_id"] is None

    def test_valid_code_promotes_the_session(self, client, db, frozen_clock) -> None:
        user = create_user(db)
        totp = enable_two_fa(db, user.id)
        login(client)

        response = _submit_code(client, totp.at(frozen_clock.now), user.id)

        assert response.status_code == 302
        assert response.headers["location"] == "/"
        assert find_set_cookie(response, "en_session") is not None
        assert "max-age=0" in find_set_cookie(response, "en_verification").lower()
        assert client.get("/").json()["user_id"] == user.id

    def test_standing_row_survives_login(self, client, db, frozen_clock) -> None:
        user, _ = _login_with_two_fa(client, db, frozen_clock)
        db.expire_all()
        assert get_verification(db, type=TWO_FA_VERIFICATION_TYPE, target=user.id) is not None

    def test_code_in_the_link_works_too(self, client, db, frozen_clock) -> None:
        user = create_user(db)
        totp = enable_two_fa(db, user.id)
        login(client)

        response = client.get(
            "/verify",
            params={"type": "2fa", "target": user.id, "code": totp.at(frozen_clock.now)},
        )

        assert response.status_code == 302
        assert client.get("/").json()["user_id"] == user.id

    def test_wrong_code(self, client, db, frozen_clock) -> None:
        user = create_user(db)
        totp = enable_two_fa(db, user.id)
        login(client)
        good = totp.at(frozen_clock.now)
        wrong = "000000" if good != "000000" else "111111"

        response = _submit_code(client, wrong, user.id)

        assert response.status_code == 400
        assert response.json() == {"status": "error", "errors": {"code": ["Invalid code"]}}
        assert client.get("/").json()["user_id"] is None

    def test_remember_me_survives_the_detour(self, client, db, frozen_clock) -> None:
        user = create_user(db)
        totp = enable_two_fa(db, user.id)
        login(client, remember="on")

        response = _submit_code(client, totp.at(frozen_clock.now), user.id)

        assert "expires=" in find_set_cookie(response, "en_session").lower()

    def test_redirect_to_rides_through_the_detour(self, client, db, frozen_clock) -> None:
        user = create_user(db)
        totp = enable_two_fa(db, user.id)

        response = login(client, redirect_to="/settings/profile")
        assert query_params(response.headers["location"])["redirectTo"] == "/settings/profile"

        response = _submit_code(
            client, totp.at(frozen_clock.now), user.id, redirect_to="/settings/profile"
        )
        assert response.headers["location"] == "/settings/profile"

    def test_pending_login_sends_login_and_signup_back_to_verify(self, client, db, frozen_clock) -> None:
        user = create_user(db)
        enable_two_fa(db, user.id)
        login(client)

        for response in (login(client), client.post("/signup", data={"email": "new@example.com"})):
            assert response.status_code == 302
            assert query_params(response.headers["location"]) == {"type": "2fa", "target": user.id}

    def test_code_for_another_user_does_not_promote(self, client, db, frozen_clock) -> None:
        kody = create_user(db)
        enable_two_fa(db, kody.id)
        hannah = create_user(db, username="hannah", email="hannah@example.com")
        hannah_totp = enable_two_fa(db, hannah.id)
        login(client)

        response = _submit_code(client, hannah_totp.at(frozen_clock.now), hannah.id)

        assert response.status_code == 302
        assert response.headers["location"] == "/login"
        assert find_set_cookie(response, "en_session") is None
        toast = client.get("/").json()
        assert toast["user_id"] is None
        assert toast["toast"]["title"] == "Invalid session"

    def test_cancel_drops_the_pending_session(self, client, db, frozen_clock) -> None:
        user = create_user(db)
        enable_two_fa(db, user.id)
        login(client)
        assert db.query(LoginSession).count() == 1

        response = client.post("/verify/cancel")

        assert response.status_code == 302
        assert response.headers["location"] == "/"
        assert "max-age=0" in find_set_cookie(response, "en_verification").lower()
        db.expire_all()
        assert db.query(LoginSession).count() == 0

    def test_user_without_two_fa_is_not_asked(self, client, db) -> None:
        create_user(db)
        assert login(client).headers["location"] == "/"


# ===================================================================
# 2. Step-up re-verification
# ===================================================================


class TestRecentVerification:
    def test_fresh_check_allows_disable(self, client, db, frozen_clock) -> None:
        user, _ = _login_with_two_fa(client, db, frozen_clock)

        response = client.post(f"{TWO_FACTOR_PATH}/disable")

        assert response.status_code == 302
        assert response.headers["location"] == TWO_FACTOR_PATH
        assert not two_factor_service.is_two_fa_enabled(db, user.id)
        assert client.get("/").json()["toast"]["title"] == "2FA Disabled"

    def test_still_fresh_at_the_edge_of_the_window(self, client, db, frozen_clock) -> None:
        _login_with_two_fa(client, db, frozen_clock)
        frozen_clock.advance(hours=2)

        response = client.get(f"{TWO_FACTOR_PATH}/disable")

        assert response.status_code == 200
        assert response.json() == {"is_two_factor_enabled": True}

    def test_stale_check_asks_again(self, client, db, frozen_clock) -> None:
        user, totp = _login_with_two_fa(client, db, frozen_clock)
        frozen_clock.advance(hours=2, seconds=1)

        response = client.post(f"{TWO_FACTOR_PATH}/disable")

        assert response.status_code == 302
        assert query_params(response.headers["location"]) == {
            "type": "2fa",
            "target": user.id,
            "redirectTo": f"{TWO_FACTOR_PATH}/disable",
        }
        assert client.get("/").json()["toast"]["title"] == "Please Reverify"
        assert two_factor_service.is_two_fa_enabled(db, user.id)

        response = _submit_code(
            client, totp.at(frozen_clock.now), user.id, redirect_to=f"{TWO_FACTOR_PATH}/disable"
        )
        assert response.headers["location"] == f"{TWO_FACTOR_PATH}/disable"

        response = client.post(f"{TWO_FACTOR_PATH}/disable")
        assert response.headers["location"] == TWO_FACTOR_PATH
        assert not two_factor_service.is_two_fa_enabled(db, user.id)

    def test_step_up_needs_the_current_users_code(self, client, db, frozen_clock) -> None:
        _login_with_two_fa(client, db, frozen_clock)
        hannah = create_user(db, username="hannah", email="hannah@example.com")
        hannah_totp = enable_two_fa(db, hannah.id)

        response = _submit_code(client, hannah_totp.at(frozen_clock.now), hannah.id)

        assert response.headers["location"] == "/login"

    def test_user_without_two_fa_passes(self, client, db) -> None:
        create_user(db)
        login(client)
        assert client.get(f"{TWO_FACTOR_PATH}/disable").json() == {"is_two_factor_enabled": False}


# ===================================================================
# 3. Enrollment
# ===================================================================


class TestEnrollment:
    def _start(self, client) -> pyotp.TOTP:
        response = client.post(TWO_FACTOR_PATH)
        assert response.status_code == 302
        assert response.headers["location"] == f"{TWO_FACTOR_PATH}/verify"

        otp_uri = client.get(f"{TWO_FACTOR_PATH}/verify").json()["otp_uri"]
        assert otp_uri.startswith("otpauth://totp/")
        return pyotp.parse_uri(otp_uri)

    def test_full_enrollment(self, client, db, frozen_clock) -> None:
        user = create_user(db)
        login(client)
        assert client.get(TWO_FACTOR_PATH).json() == {"is_two_factor_enabled": False}

        totp = self._start(client)
        response = client.post(f"{TWO_FACTOR_PATH}/verify", data={"code": totp.at(frozen_clock.now)})

        assert response.status_code == 302
        assert response.headers["location"] == TWO_FACTOR_PATH
        assert client.get(TWO_FACTOR_PATH).json() == {"is_two_factor_enabled": True}
        db.expire_all()
        row = get_verification(db, type=TWO_FA_VERIFICATION_TYPE, target=user.id)
        assert row.expires_at is None
        assert row.algorithm == "SHA1"

    def test_enrolling_browser_counts_as_verified(self, client, db, frozen_clock) -> None:
        create_user(db)
        login(client)
        totp = self._start(client)
        client.post(f"{TWO_FACTOR_PATH}/verify", data={"code": totp.at(frozen_clock.now)})

        assert client.get(f"{TWO_FACTOR_PATH}/disable").status_code == 200

    def test_next_login_requires_the_code(self, client, db, frozen_clock) -> None:
        user = create_user(db)
        login(client)
        totp = self._start(client)
        client.post(f"{TWO_FACTOR_PATH}/verify", data={"code": totp.at(frozen_clock.now)})
        client.post("/logout")

        response = login(client)
        assert query_params(response.headers["location"]) == {"type": "2fa", "target": user.id}

        frozen_clock.advance(seconds=30)
        _submit_code(client, totp.at(frozen_clock.now), user.id)
        assert client.get("/").json()["user_id"] == user.id

    def test_wrong_code_keeps_2fa_off(self, client, db, frozen_clock) -> None:
        user = create_user(db)
        login(client)
        totp = self._start(client)
        good = totp.at(frozen_clock.now)
        wrong = "000000" if good != "000000" else "111111"

        response = client.post(f"{TWO_FACTOR_PATH}/verify", data={"code": wrong})

        assert response.status_code == 400
        assert not two_factor_service.is_two_fa_enabled(db, user.id)

    def test_enrollment_expires(self, client, db, frozen_clock) -> None:
        create_user(db)
        login(client)
        self._start(client)
        frozen_clock.advance(seconds=601)

        response = client.get(f"{TWO_FACTOR_PATH}/verify")

        assert response.status_code == 302
        assert response.headers["location"] == TWO_FACTOR_PATH

    def test_already_enabled(self, client, db, frozen_clock) -> None:
        _login_with_two_fa(client, db, frozen_clock)
        response = client.post(TWO_FACTOR_PATH)
        assert response.headers["location"] == TWO_FACTOR_PATH
