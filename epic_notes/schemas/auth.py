"""
Auth schemas: form bodies for login, signup, onboarding, password reset and
verification. Routes accept them as `Annotated[Model, Form()]`.
"""
from pydantic import AfterValidator, BaseModel, EmailStr, field_validator, model_validator
from typing import Annotated, Literal, Optional
import re

VerificationType = Literal["onboarding", "reset-password", "change-email", "2fa"]


def _validate_username(v: str) -> str:
    v = v.strip()
    if len(v) < 3 or len(v) > 20:
        raise ValueError("Username must be between 3 and 20 characters")
    if not re.match(r"^[a-zA-Z0-9_]+$", v):
        raise ValueError("Username can only include letters, numbers, and underscores")
    # Users can type the username in any case, but we store it in lowercase
    return v.lower()


def _validate_password(v: str) -> str:
    if len(v) < 6:
        raise ValueError("Password is too short")
    if len(v) > 100:
        raise ValueError("Password is too long")
    return v


def _validate_name(v: str) -> str:
    v = v.strip()
    if len(v) < 3 or len(v) > 40:
        raise ValueError("Name must be between 3 and 40 characters")
    return v


Username = Annotated[str, AfterValidator(_validate_username)]
Password = Annotated[str, AfterValidator(_validate_password)]
Name = Annotated[str, AfterValidator(_validate_name)]


class LoginForm(BaseModel):
    username: Username
    password: Password
    remember: bool = False
    redirect_to: Optional[str] = None


class SignupForm(BaseModel):
    email: EmailStr

    @field_validator("email")
    @classmethod
    def email_lower(cls, v: str) -> str:
        return v.lower()


class OnboardingForm(BaseModel):
    username: Username
    name: Name
    password: Password
    confirm_password: str
    agree_to_terms_of_service_and_privacy_policy: bool
    remember: bool = False
    redirect_to: Optional[str] = None

    @field_validator("agree_to_terms_of_service_and_privacy_policy")
    @classmethod
    def must_agree(cls, v: bool) -> bool:
        if not v:
            raise ValueError("You must agree to the terms of service and privacy policy")
        return v

    @model_validator(mode="after")
    def passwords_match(self) -> "OnboardingForm":
        if self.password != self.confirm_password:
            raise ValueError("The passwords must match")
        return self


class ProviderOnboardingForm(BaseModel):
    """OAuth signup has no password; the provider connection is the credential."""
    username: Username
    name: Name
    agree_to_terms_of_service_and_privacy_policy: bool
    remember: bool = False
    redirect_to: Optional[str] = None

    @field_validator("agree_to_terms_of_service_and_privacy_policy")
    @classmethod
    def must_agree(cls, v: bool) -> bool:
        if not v:
            raise ValueError("You must agree to the terms of service and privacy policy")
        return v


class ForgotPasswordForm(BaseModel):
    username_or_email: str

    @field_validator("username_or_email")
    @classmethod
    def not_blank(cls, v: str) -> str:
        v = v.strip().lower()
        if not v:
            raise ValueError("Username or email is required")
        return v


class ResetPasswordForm(BaseModel):
    password: Password
    confirm_password: str

    @model_validator(mode="after")
    def passwords_match(self) -> "ResetPasswordForm":
        if self.password != self.confirm_password:
            raise ValueError("The passwords did not match")
        return self


class VerifyForm(BaseModel):
    """Code submission for the /verify page (the GET variant reads the same fields from the query)."""
    code: str
    type: VerificationType
    target: str
    redirect_to: Optional[str] = None

    @field_validator("code", "target")
    @classmethod
    def strip(cls, v: str) -> str:
        return v.strip()


class ChangeEmailForm(BaseModel):
    email: EmailStr

    @field_validator("email")
    @classmethod
    def email_lower(cls, v: str) -> str:
        return v.lower()


class TwoFactorCodeForm(BaseModel):
    code: str

    @field_validator("code")
    @classmethod
    def six_digits(cls, v: str) -> str:
        v = v.strip()
        if len(v) != 6:
            raise ValueError("Code must be 6 characters")
        return v
