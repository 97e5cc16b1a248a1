from epic_notes.schemas.auth import (
    LoginForm, SignupForm, OnboardingForm, ProviderOnboardingForm,
    ForgotPasswordForm, ResetPasswordForm, VerifyForm, ChangeEmailForm, TwoFactorCodeForm,
    VerificationType,
)
from epic_notes.schemas.cookies import (
    SessionCookie, VerificationCookie, ConnectionCookie, RedirectCookie,
    ProviderProfile, Toast,
)
from epic_notes.schemas.user import (
    UserOut, ConnectionOut, ProfileOut, ConnectionListResponse,
    TwoFactorStatusResponse, TwoFactorSetupResponse,
)
