from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    # ── App ───────────────────────────────────────────────────
    app_name: str = "Epic Notes"
    environment: str = "development"
    log_level: str = "INFO"

    # ── Database ──────────────────────────────────────────────
    # DATABASE_URL_OVERRIDE wins over the individual parts when set.
    database_url_override: Optional[str] = None
    database_hostname: str = "localhost"
    database_port: str = "5432"
    database_password: str = "postgres"
    database_name: str = "epic_notes"
    database_username: str = "postgres"

    # ── Cookies / signing ─────────────────────────────────────
    # Comma-separated: the first secret signs, all of them verify (rotation).
    secret_key: str
    cookie_algorithm: str = "HS256"

    # ── Sessions & verification ───────────────────────────────
    session_expiration_days: int = 30
    verification_period_seconds: int = 60 * 10
    verification_cookie_max_age: int = 60 * 10
    # How long a 2FA check stays fresh before sensitive actions ask again
    two_factor_reverify_seconds: int = 60 * 60 * 2

    # ── GitHub OAuth ──────────────────────────────────────────
    # A client id starting with MOCK_ skips the network round-trip.
    github_client_id: str = "MOCK_GITHUB_CLIENT_ID"
    github_client_secret: str = "MOCK_GITHUB_CLIENT_SECRET"
    github_redirect_uri: Optional[str] = None

    # ── SMTP ──────────────────────────────────────────────────
    mail_username: str = ""
    mail_password: str = ""
    mail_from: str = "hello@epicnotes.dev"
    mail_server: str = "smtp.gmail.com"
    mail_port: int = 587
    mail_suppress_send: bool = False

    # ── Rate limiting ─────────────────────────────────────────
    rate_limit_enabled: bool = True

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def secret_keys(self) -> list[str]:
        """Split comma-separated secrets into a list, stripping whitespace."""
        return [key.strip() for key in self.secret_key.split(",") if key.strip()]

    @property
    def database_url(self) -> str:
        if self.database_url_override:
            return self.database_url_override
        return (
            f"postgresql://{self.database_username}:{self.database_password}"
            f"@{self.database_hostname}:{self.database_port}/{self.database_name}"
        )

    class Config:
        env_file = ".env"
        # Case-insensitive so SECRET_KEY and secret_key both work
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """
    Cached settings loader: reads .env once.
    Use this everywhere instead of instantiating Settings() directly.
    """
    return Settings()


# Module-level singleton for convenience imports
settings = get_settings()
