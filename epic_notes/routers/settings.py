"""
Settings router: profile summary, change email, other-session sign-out and
two-factor management.

Two-factor:
  POST /settings/profile/two-factor          → start enrollment
  GET  /settings/profile/two-factor/verify   → otpauth:// URI for the authenticator app
  POST /settings/profile/two-factor/verify   → confirm with a first code, 2FA is on
  POST /settings/profile/two-factor/disable  → needs a recent 2FA check
"""
from typing import Annotated

from fastapi import APIRouter, Depends, Form, Request
from sqlalchemy.orm import Session

from epic_notes.config import settings
from epic_notes.core import clock
from epic_notes.core.cookies import session_storage, verification_storage
from epic_notes.core.exceptions import EmailDeliveryError
from epic_notes.core.rate_limiter import limiter
from epic_notes.core.responses import Redirect, form_error, redirect
from epic_notes.database import get_db
from epic_notes.schemas.auth import ChangeEmailForm, TwoFactorCodeForm
from epic_notes.schemas.cookies import Toast
from epic_notes.schemas.user import (
    ProfileOut,
    TwoFactorSetupResponse,
    TwoFactorStatusResponse,
    UserOut,
)
from epic_notes.services import auth_service, two_factor_service
from epic_notes.services.email_service import send_change_email_email
from epic_notes.services.session_service import (
    count_sessions,
    get_session_id,
    require_user,
    require_user_id,
    sign_out_other_sessions,
)
from epic_notes.services.toast_service import redirect_with_toast
from epic_notes.services.verification_service import (
    CHANGE_EMAIL_VERIFICATION_TYPE,
    prepare_verification,
)

router = APIRouter()

TWO_FACTOR_PATH = "/settings/profile/two-factor"


# ── Profile ───────────────────────────────────────────────────────────────────

@router.get("", response_model=ProfileOut)
async def profile(request: Request, db: Session = Depends(get_db)):
    result = require_user(request, db)
    if isinstance(result, Redirect):
        return result.to_response()

    user = result.value
    return ProfileOut(
        user=UserOut.model_validate(user),
        has_password=user.password is not None,
        is_two_factor_enabled=two_factor_service.is_two_fa_enabled(db, user.id),
        session_count=count_sessions(db, user.id),
    )


@router.post("/change-email")
@limiter.limit("5/minute")
async def change_email(
    request: Request,
    form: Annotated[ChangeEmailForm, Form()],
    db: Session = Depends(get_db),
):
    """Code goes to the NEW address; the address only changes once it's verified."""
    result = require_user(request, db)
    if isinstance(result, Redirect):
        return result.to_response()
    user = result.value

    auth_service.ensure_available(db, email=form.email)

    prepared = prepare_verification(
        db,
        request,
        period=settings.verification_period_seconds,
        type=CHANGE_EMAIL_VERIFICATION_TYPE,
        target=user.id,
    )
    try:
        await send_change_email_email(form.email, prepared.otp, prepared.verify_url)
    except EmailDeliveryError:
        return form_error(
            {"form": ["We could not send you an email. Please try again later."]},
            status_code=500,
        )

    cookie = verification_storage.read(request).model_copy(update={"new_email": form.email})
    return redirect(prepared.redirect_to, [verification_storage.commit(cookie)]).to_response()


@router.post("/sign-out-of-sessions")
async def sign_out_of_sessions(request: Request, db: Session = Depends(get_db)):
    result = require_user_id(request, db)
    if isinstance(result, Redirect):
        return result.to_response()

    sign_out_other_sessions(db, result.value, get_session_id(request))
    return redirect_with_toast(
        "/settings/profile",
        Toast(type="success", title="Signed out", description="Everywhere else, that is."),
    ).to_response()


# ── Two-factor ────────────────────────────────────────────────────────────────

@router.get("/two-factor", response_model=TwoFactorStatusResponse)
async def two_factor_status(request: Request, db: Session = Depends(get_db)):
    result = require_user_id(request, db)
    if isinstance(result, Redirect):
        return result.to_response()
    return {"is_two_factor_enabled": two_factor_service.is_two_fa_enabled(db, result.value)}


@router.post("/two-factor")
async def enable_two_factor(request: Request, db: Session = Depends(get_db)):
    result = require_user_id(request, db)
    if isinstance(result, Redirect):
        return result.to_response()

    if two_factor_service.is_two_fa_enabled(db, result.value):
        return redirect(TWO_FACTOR_PATH).to_response()
    two_factor_service.begin_enrollment(db, result.value)
    return redirect(f"{TWO_FACTOR_PATH}/verify").to_response()


@router.get("/two-factor/verify", response_model=TwoFactorSetupResponse)
async def two_factor_setup(request: Request, db: Session = Depends(get_db)):
    result = require_user(request, db)
    if isinstance(result, Redirect):
        return result.to_response()

    otp_uri = two_factor_service.get_enrollment(db, result.value)
    if otp_uri is None:
        return redirect(TWO_FACTOR_PATH).to_response()
    return {"otp_uri": otp_uri}


@router.post("/two-factor/verify")
@limiter.limit("10/minute")
async def confirm_two_factor(
    request: Request,
    form: Annotated[TwoFactorCodeForm, Form()],
    db: Session = Depends(get_db),
):
    result = require_user_id(request, db)
    if isinstance(result, Redirect):
        return result.to_response()

    if not two_factor_service.confirm_enrollment(db, result.value, form.code):
        return form_error({"code": ["Invalid code"]})

    # The code just proved possession, so this browser counts as freshly verified
    session_cookie = session_storage.read(request).model_copy(update={"verified_time": clock.utcnow()})
    return redirect_with_toast(
        TWO_FACTOR_PATH,
        Toast(type="success", title="Enabled", description="Two-factor authentication has been enabled."),
        [session_storage.commit(session_cookie)],
    ).to_response()


@router.get("/two-factor/disable")
async def two_factor_disable_page(request: Request, db: Session = Depends(get_db)):
    result = require_user_id(request, db)
    if isinstance(result, Redirect):
        return result.to_response()

    recent = two_factor_service.require_recent_verification(request, db, result.value)
    if isinstance(recent, Redirect):
        return recent.to_response()
    return {"is_two_factor_enabled": two_factor_service.is_two_fa_enabled(db, result.value)}


@router.post("/two-factor/disable")
async def disable_two_factor(request: Request, db: Session = Depends(get_db)):
    result = require_user_id(request, db)
    if isinstance(result, Redirect):
        return result.to_response()

    recent = two_factor_service.require_recent_verification(request, db, result.value)
    if isinstance(recent, Redirect):
        return recent.to_response()

    two_factor_service.disable_two_fa(db, result.value)
    return redirect_with_toast(
        TWO_FACTOR_PATH,
        Toast(type="success", title="2FA Disabled", description="Two factor authentication has been disabled."),
    ).to_response()
