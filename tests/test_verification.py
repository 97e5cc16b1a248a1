"""Tests for the verification code engine: issue, validate, expire, consume."""

from __future__ import annotations

from urllib.parse import unquote

import pyotp
from starlette.requests import Request

from epic_notes.models.verification import Verification
from epic_notes.services.verification_service import (
    ONBOARDING_VERIFICATION_TYPE,
    RESET_PASSWORD_VERIFICATION_TYPE,
    delete_verification,
    get_otp_uri,
    get_redirect_to_url,
    is_code_valid,
    issue_verification,
    prepare_verification,
)
from helpers import query_params

EMAIL = "kody@example.com"


def _request() -> Request:
    return Request(
        {
            "type": "http",
            "scheme": "http",
            "server": ("testserver", 80),
            "path": "/signup",
            "query_string": b"",
            "headers": [(b"host", b"testserver")],
        }
    )


# ===================================================================
# 1. Issue & validate
# ===================================================================


class TestIssueAndValidate:
    def test_fresh_code_is_valid(self, db, frozen_clock) -> None:
        issued = issue_verification(db, type=ONBOARDING_VERIFICATION_TYPE, target=EMAIL, period=600)
        assert is_code_valid(db, code=issued.code, type=ONBOARDING_VERIFICATION_TYPE, target=EMAIL)

    def test_code_is_six_digits(self, db, frozen_clock) -> None:
        issued = issue_verification(db, type=ONBOARDING_VERIFICATION_TYPE, target=EMAIL, period=600)
        assert len(issued.code) == 6 and issued.code.isdigit()

    def test_valid_just_before_expiry(self, db, frozen_clock) -> None:
        issued = issue_verification(db, type=ONBOARDING_VERIFICATION_TYPE, target=EMAIL, period=600)
        frozen_clock.advance(seconds=599)
        assert is_code_valid(db, code=issued.code, type=ONBOARDING_VERIFICATION_TYPE, target=EMAIL)

    def test_invalid_just_after_expiry(self, db, frozen_clock) -> None:
        issued = issue_verification(db, type=ONBOARDING_VERIFICATION_TYPE, target=EMAIL, period=600)
        frozen_clock.advance(seconds=601)
        assert not is_code_valid(db, code=issued.code, type=ONBOARDING_VERIFICATION_TYPE, target=EMAIL)

    def test_wrong_code(self, db, frozen_clock) -> None:
        issued = issue_verification(db, type=ONBOARDING_VERIFICATION_TYPE, target=EMAIL, period=600)
        wrong = "000000" if issued.code != "000000" else "111111"
        assert not is_code_valid(db, code=wrong, type=ONBOARDING_VERIFICATION_TYPE, target=EMAIL)

    def test_code_is_bound_to_type_and_target(self, db, frozen_clock) -> None:
        issued = issue_verification(db, type=ONBOARDING_VERIFICATION_TYPE, target=EMAIL, period=600)
        assert not is_code_valid(db, code=issued.code, type=RESET_PASSWORD_VERIFICATION_TYPE, target=EMAIL)
        assert not is_code_valid(db, code=issued.code, type=ONBOARDING_VERIFICATION_TYPE, target="other@example.com")

    def test_unknown_target(self, db) -> None:
        assert not is_code_valid(db, code="123456", type=ONBOARDING_VERIFICATION_TYPE, target=EMAIL)

    def test_validation_has_no_side_effect(self, db, frozen_clock) -> None:
        issued = issue_verification(db, type=ONBOARDING_VERIFICATION_TYPE, target=EMAIL, period=600)
        for _ in range(2):
            assert is_code_valid(db, code=issued.code, type=ONBOARDING_VERIFICATION_TYPE, target=EMAIL)

    def test_never_expiring_row(self, db, frozen_clock) -> None:
        issued = issue_verification(
            db, type="2fa", target="user-1", period=30, algorithm="SHA1", expires=False
        )
        frozen_clock.advance(days=400)
        code = pyotp.TOTP(issued.secret).at(frozen_clock.now)
        assert is_code_valid(db, code=code, type="2fa", target="user-1")

    def test_custom_lifetime(self, db, frozen_clock) -> None:
        issue_verification(db, type="2fa-verify", target="user-1", period=30, expires_in=600)
        row = db.query(Verification).filter(Verification.target == "user-1").one()
        assert (row.expires_at.replace(tzinfo=None) - frozen_clock.now.replace(tzinfo=None)).total_seconds() == 600


# ===================================================================
# 2. One row per (target, type)
# ===================================================================


class TestUpsert:
    def test_newest_code_wins(self, db, frozen_clock) -> None:
        first = issue_verification(db, type=ONBOARDING_VERIFICATION_TYPE, target=EMAIL, period=600)
        second = issue_verification(db, type=ONBOARDING_VERIFICATION_TYPE, target=EMAIL, period=600)

        assert db.query(Verification).filter(Verification.target == EMAIL).count() == 1
        assert first.secret != second.secret
        assert is_code_valid(db, code=second.code, type=ONBOARDING_VERIFICATION_TYPE, target=EMAIL)
        if first.code != second.code:
            assert not is_code_valid(db, code=first.code, type=ONBOARDING_VERIFICATION_TYPE, target=EMAIL)

    def test_different_types_coexist(self, db, frozen_clock) -> None:
        issue_verification(db, type=ONBOARDING_VERIFICATION_TYPE, target=EMAIL, period=600)
        issue_verification(db, type=RESET_PASSWORD_VERIFICATION_TYPE, target=EMAIL, period=600)
        assert db.query(Verification).filter(Verification.target == EMAIL).count() == 2

    def test_delete_consumes_the_code(self, db, frozen_clock) -> None:
        issued = issue_verification(db, type=ONBOARDING_VERIFICATION_TYPE, target=EMAIL, period=600)
        assert delete_verification(db, type=ONBOARDING_VERIFICATION_TYPE, target=EMAIL)
        assert not is_code_valid(db, code=issued.code, type=ONBOARDING_VERIFICATION_TYPE, target=EMAIL)
        assert not delete_verification(db, type=ONBOARDING_VERIFICATION_TYPE, target=EMAIL)


# ===================================================================
# 3. URLs
# ===================================================================


class TestUrls:
    def test_redirect_to_url(self) -> None:
        url = get_redirect_to_url(type="2fa", target="user-1", redirect_to="/settings/profile")
        assert url.startswith("/verify?")
        assert query_params(url) == {"type": "2fa", "target": "user-1", "redirectTo": "/settings/profile"}

    def test_redirect_to_url_without_redirect(self) -> None:
        assert query_params(get_redirect_to_url(type="onboarding", target=EMAIL)) == {
            "type": "onboarding",
            "target": EMAIL,
        }

    def test_prepare_verification(self, db, frozen_clock) -> None:
        prepared = prepare_verification(
            db, _request(), period=600, type=ONBOARDING_VERIFICATION_TYPE, target=EMAIL
        )
        assert prepared.verify_url.startswith("http://testserver/verify?")
        assert query_params(prepared.verify_url)["code"] == prepared.otp
        assert "code" not in query_params(prepared.redirect_to)
        assert is_code_valid(db, code=prepared.otp, type=ONBOARDING_VERIFICATION_TYPE, target=EMAIL)

    def test_otp_uri_spells_out_every_parameter(self) -> None:
        uri = get_otp_uri(secret="JBSWY3DPEHPK3PXP", account_name=EMAIL, issuer="Epic Notes")
        assert uri.startswith("otpauth://totp/")
        assert unquote(uri.split("?")[0]) == f"otpauth://totp/Epic Notes:{EMAIL}"
        assert query_params(uri) == {
            "secret": "JBSWY3DPEHPK3PXP",
            "issuer": "Epic Notes",
            "algorithm": "SHA1",
            "digits": "6",
            "period": "30",
        }
