"""
Application settings, loaded from the environment (and an optional .env file).
"""

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    environment: str = "development"

    # Database.
    database_url: str = "sqlite+aiosqlite:///./auth_provider.db"
    db_pool_size: int = 16
    db_max_overflow: int = 8
    db_echo: bool = False

    # Public surfaces used to build redirects and magic links.
    base_url: str = "http://localhost:8000"
    login_path: str = "/login"
    onboarding_path: str = "/onboarding"
    email_verify_path: str = "/login/email/verify"

    # Session cookie transport.
    session_cookie_name: str = "auth-provider-session-token"
    session_max_age_days: int = 30
    session_cookie_secure: bool = False

    # Outbound email (SendGrid).
    sendgrid_api_key: Optional[str] = None
    sendgrid_template_id: Optional[str] = None
    email_sender: str = "no-reply@localhost"

    # Token endpoint client authentication policy.
    require_client_secret: bool = False

    # Per-instance rate limiter.
    rate_limit_per_minute: float = 30.0
    rate_limit_burst: int = 10

    # In-process expiry sweeper, 0 disables it.
    sweep_interval_seconds: int = 900

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


settings = Settings()
