# File: app/core/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional
import os


def _optional_float(name: str) -> Optional[float]:
    value = os.getenv(name)
    return float(value) if value else None


class Settings(BaseSettings):
    # ---------------------------
    # Meta / Pydantic settings
    # ---------------------------
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",  # Ignore unexpected env vars instead of erroring
    )

    # ---------------------------
    # API / Project
    # ---------------------------
    API_V1_STR: str = os.getenv("API_V1_STR", "/api/v1")
    PROJECT_NAME: str = os.getenv("PROJECT_NAME", "Relevante Camp Admin")

    # ---------------------------
    # Environment / Logging
    # ---------------------------
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")  # development | staging | production
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # ---------------------------
    # Local database (transient consent documents only)
    # ---------------------------
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./camp_admin.db")
    CONSENT_DOCUMENT_TTL_MINUTES: int = int(os.getenv("CONSENT_DOCUMENT_TTL_MINUTES", "60"))

    # ---------------------------
    # Remote backend (people directory + document functions)
    # ---------------------------
    SUPABASE_URL: str = os.getenv("SUPABASE_URL", "http://localhost:54321")
    SUPABASE_ANON_KEY: str = os.getenv("SUPABASE_ANON_KEY", "")
    # No client-side timeout unless one is configured explicitly
    REMOTE_CALL_TIMEOUT: Optional[float] = _optional_float("REMOTE_CALL_TIMEOUT")

    # ---------------------------
    # Email (SMTP)
    # ---------------------------
    SMTP_HOST: Optional[str] = os.getenv("SMTP_HOST")
    SMTP_PORT: int = int(os.getenv("SMTP_PORT", "587"))
    SMTP_USER: Optional[str] = os.getenv("SMTP_USER")
    SMTP_PASS: Optional[str] = os.getenv("SMTP_PASS")
    SMTP_FROM: Optional[str] = os.getenv("SMTP_FROM")
    SEND_EMAILS: bool = os.getenv("SEND_EMAILS", "true").lower() == "true"
    EMAIL_ASSETS_DIR: str = os.getenv("EMAIL_ASSETS_DIR", "public/logos")

    # ---------------------------
    # Consent signing
    # ---------------------------
    SIGNING_BASE_URL: str = os.getenv("SIGNING_BASE_URL", "https://camp-dahsboard.vercel.app")
    GUARDIAN_LOOKUP_DEBOUNCE_MS: int = int(os.getenv("GUARDIAN_LOOKUP_DEBOUNCE_MS", "800"))
    SIGNING_REDIRECT_DELAY_MS: int = int(os.getenv("SIGNING_REDIRECT_DELAY_MS", "2000"))
    SIGNING_SESSION_IDLE_MINUTES: int = int(os.getenv("SIGNING_SESSION_IDLE_MINUTES", "30"))
    # Off reproduces the delegate path that never flags the minor as signed
    MARK_SIGNED_ON_DELEGATE_CONSENT: bool = (
        os.getenv("MARK_SIGNED_ON_DELEGATE_CONSENT", "false").lower() == "true"
    )

    # ---------------------------
    # QR check-in
    # ---------------------------
    CHECK_IN_REDIRECT_DELAY_MS: int = int(os.getenv("CHECK_IN_REDIRECT_DELAY_MS", "350"))
    CHECK_IN_REDIRECT_URL: str = os.getenv("CHECK_IN_REDIRECT_URL", "/dashboard")

    # ---------------------------
    # Derived / Convenience
    # ---------------------------
    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT.lower() == "development"

    @property
    def smtp_configured(self) -> bool:
        return bool(self.SMTP_HOST and self.SMTP_USER and self.SMTP_PASS)

    @property
    def email_sender(self) -> Optional[str]:
        return self.SMTP_FROM or self.SMTP_USER

    def signing_url(self, participant_id: str) -> str:
        """Public contract-signing link sent to participants."""
        return f"{self.SIGNING_BASE_URL.rstrip('/')}/contract_sign/{participant_id}"


settings = Settings()
