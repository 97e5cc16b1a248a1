"""
Auth router: password login, logout, email signup, code verification,
onboarding and password reset.

Signup:
  1. POST /signup          → code emailed, browser sent to /verify
  2. GET|POST /verify      → email proven, browser sent to /onboarding
  3. POST /onboarding      → user + password + session created

Password reset:
  1. POST /forgot-password → code emailed to the account's address
  2. GET|POST /verify      → browser sent to /reset-password
  3. POST /reset-password  → new password stored, back to /login

Login of a user with 2FA detours through /verify?type=2fa before the session
cookie is set. Every flow transition is a 302; recoverable failures come back
as 400 JSON `{"status": "error", "errors": {...}}`.
"""
import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Form, Query, Request
from sqlalchemy.orm import Session

from epic_notes.config import settings
from epic_notes.core.cookies import verification_storage
from epic_notes.core.exceptions import EmailDeliveryError
from epic_notes.core.rate_limiter import limiter
from epic_notes.core.responses import Redirect, form_error, json_response, redirect
from epic_notes.database import get_db
from epic_notes.schemas.auth import (
    ForgotPasswordForm,
    LoginForm,
    OnboardingForm,
    ResetPasswordForm,
    SignupForm,
    VerificationType,
    VerifyForm,
)
from epic_notes.schemas.cookies import Toast
from epic_notes.services import auth_service
from epic_notes.services.email_service import send_onboarding_email, send_reset_password_email
from epic_notes.services.session_service import logout as logout_session
from epic_notes.services.session_service import require_anonymous
from epic_notes.services.toast_service import create_toast_headers
from epic_notes.services.two_factor_service import (
    cancel_two_fa_login,
    handle_new_session,
    handle_two_fa_verification,
)
from epic_notes.services.verification_service import (
    CHANGE_EMAIL_VERIFICATION_TYPE,
    ONBOARDING_VERIFICATION_TYPE,
    RESET_PASSWORD_VERIFICATION_TYPE,
    TWO_FA_VERIFICATION_TYPE,
    is_code_valid,
    prepare_verification,
)

logger = logging.getLogger(__name__)

router = APIRouter()

EMAIL_FAILED_MESSAGE = "We could not send you an email. Please try again later."


def invalid_code():
    return form_error({"code": ["Invalid code"]})


# ── Login / Logout ────────────────────────────────────────────────────────────

@router.post("/login")
@limiter.limit("10/minute")
async def login(
    request: Request,
    form: Annotated[LoginForm, Form()],
    db: Session = Depends(get_db),
):
    guard = require_anonymous(request, db)
    if isinstance(guard, Redirect):
        return guard.to_response()

    session = auth_service.login(db, username=form.username, password=form.password)
    if session is None:
        return form_error({"form": ["Invalid username or password"]}, guard.headers)

    return handle_new_session(
        request, db, session, form.remember, form.redirect_to, guard.headers
    ).to_response()


@router.post("/logout")
async def logout(request: Request, db: Session = Depends(get_db)):
    """Always succeeds, even when the session is already gone."""
    return logout_session(request, db).to_response()


# ── Signup ────────────────────────────────────────────────────────────────────

@router.post("/signup")
@limiter.limit("5/minute")
async def signup(
    request: Request,
    form: Annotated[SignupForm, Form()],
    db: Session = Depends(get_db),
):
    guard = require_anonymous(request, db)
    if isinstance(guard, Redirect):
        return guard.to_response()

    auth_service.ensure_available(db, email=form.email)

    prepared = prepare_verification(
        db,
        request,
        period=settings.verification_period_seconds,
        type=ONBOARDING_VERIFICATION_TYPE,
        target=form.email,
    )
    try:
        await send_onboarding_email(form.email, prepared.otp, prepared.verify_url)
    except EmailDeliveryError:
        return form_error({"form": [EMAIL_FAILED_MESSAGE]}, guard.headers, status_code=500)

    return redirect(prepared.redirect_to, guard.headers).to_response()


# ── Verify ────────────────────────────────────────────────────────────────────

async def _handle_verification(
    request: Request,
    db: Session,
    *,
    code: str,
    type: str,
    target: str,
    redirect_to: Optional[str],
):
    """Check the code, then hand over to the flow that asked for it."""
    if not is_code_valid(db, code=code, type=type, target=target):
        logger.info(f"Rejected {type} code for target={target}")
        return invalid_code()

    if type == ONBOARDING_VERIFICATION_TYPE:
        result = auth_service.handle_onboarding_verification(
            request, db, target=target, redirect_to=redirect_to
        )
    elif type == RESET_PASSWORD_VERIFICATION_TYPE:
        result = auth_service.handle_reset_password_verification(request, db, target=target)
        if result is None:
            return invalid_code()
    elif type == CHANGE_EMAIL_VERIFICATION_TYPE:
        result = await auth_service.handle_change_email_verification(request, db, target=target)
    elif type == TWO_FA_VERIFICATION_TYPE:
        result = handle_two_fa_verification(request, db, target=target, redirect_to=redirect_to)
    else:
        return invalid_code()
    return result.to_response()


@router.get("/verify")
@limiter.limit("10/minute")
async def verify_page(
    request: Request,
    type: VerificationType,
    target: str,
    code: Optional[str] = None,
    redirect_to: Optional[str] = Query(None, alias="redirectTo"),
    db: Session = Depends(get_db),
):
    """
    With `code` in the query (the emailed link) the code is checked right away.
    Without it, returns what the form needs to render.
    """
    if code:
        return await _handle_verification(
            request, db, code=code, type=type, target=target, redirect_to=redirect_to
        )
    return {"type": type, "target": target, "redirect_to": redirect_to}


@router.post("/verify")
@limiter.limit("10/minute")
async def verify(
    request: Request,
    form: Annotated[VerifyForm, Form()],
    db: Session = Depends(get_db),
):
    return await _handle_verification(
        request, db, code=form.code, type=form.type, target=form.target, redirect_to=form.redirect_to
    )


@router.post("/verify/cancel")
async def cancel_verification(request: Request, db: Session = Depends(get_db)):
    return cancel_two_fa_login(request, db).to_response()


# ── Onboarding ────────────────────────────────────────────────────────────────

@router.get("/onboarding")
async def onboarding_page(request: Request, db: Session = Depends(get_db)):
    guard = require_anonymous(request, db)
    if isinstance(guard, Redirect):
        return guard.to_response()

    email = verification_storage.read(request).onboarding_email
    if not email:
        return redirect("/signup", guard.headers).to_response()
    return json_response({"email": email}, guard.headers)


@router.post("/onboarding")
async def onboarding(
    request: Request,
    form: Annotated[OnboardingForm, Form()],
    db: Session = Depends(get_db),
):
    guard = require_anonymous(request, db)
    if isinstance(guard, Redirect):
        return guard.to_response()

    email = verification_storage.read(request).onboarding_email
    if not email:
        return redirect("/signup", guard.headers).to_response()

    session = auth_service.signup(
        db,
        email=email,
        username=form.username,
        password=form.password,
        name=form.name,
    )
    return handle_new_session(
        request,
        db,
        session,
        form.remember,
        form.redirect_to,
        guard.headers,
        [verification_storage.destroy()],
        create_toast_headers(
            Toast(type="success", title="Welcome", description="Thanks for signing up!")
        ),
    ).to_response()


# ── Password reset ────────────────────────────────────────────────────────────

@router.post("/forgot-password")
@limiter.limit("5/minute")
async def forgot_password(
    request: Request,
    form: Annotated[ForgotPasswordForm, Form()],
    db: Session = Depends(get_db),
):
    guard = require_anonymous(request, db)
    if isinstance(guard, Redirect):
        return guard.to_response()

    user = auth_service.get_user_by_username_or_email(db, form.username_or_email)
    if user is None:
        return form_error(
            {"username_or_email": ["No user exists with this username or email"]},
            guard.headers,
        )

    prepared = prepare_verification(
        db,
        request,
        period=settings.verification_period_seconds,
        type=RESET_PASSWORD_VERIFICATION_TYPE,
        target=form.username_or_email,
    )
    try:
        await send_reset_password_email(user.email, prepared.otp, prepared.verify_url)
    except EmailDeliveryError:
        return form_error({"form": [EMAIL_FAILED_MESSAGE]}, guard.headers, status_code=500)

    return redirect(prepared.redirect_to, guard.headers).to_response()


@router.get("/reset-password")
async def reset_password_page(request: Request, db: Session = Depends(get_db)):
    guard = require_anonymous(request, db)
    if isinstance(guard, Redirect):
        return guard.to_response()

    username = verification_storage.read(request).reset_password_username
    if not username:
        return redirect("/login", guard.headers).to_response()
    return json_response({"username": username}, guard.headers)


@router.post("/reset-password")
async def reset_password(
    request: Request,
    form: Annotated[ResetPasswordForm, Form()],
    db: Session = Depends(get_db),
):
    guard = require_anonymous(request, db)
    if isinstance(guard, Redirect):
        return guard.to_response()

    username = verification_storage.read(request).reset_password_username
    if not username:
        return redirect("/login", guard.headers).to_response()

    auth_service.reset_user_password(db, username=username, password=form.password)
    return redirect("/login", guard.headers, [verification_storage.destroy()]).to_response()
