"""
Configuration management for the BookNest API.

Loads settings from .env via pydantic-settings.

Security notes:
    - validate_production_settings() refuses insecure production config
    - outside production a missing JWT_SECRET is replaced by an ephemeral one
"""
import logging
import secrets

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # ── Database ────────────────────────────────────────────────────
    database_url: str = "sqlite:///./data/booknest.db"

    # ── Application ─────────────────────────────────────────────────
    environment: str = "development"
    app_version: str = "1.0.0"

    # ── Auth (JWT) ──────────────────────────────────────────────────
    jwt_secret: str = ""
    jwt_issuer: str = "booknest-api"
    jwt_access_ttl_minutes: int = 24 * 60

    # ── Accounts ────────────────────────────────────────────────────
    login_max_attempts: int = 5
    login_lock_minutes: int = 30
    password_reset_ttl_minutes: int = 10
    # No mail transport: the reset token is handed back in the response
    expose_reset_token: bool = True
    # When set, POST /api/admin/signup must carry a matching signupKey
    admin_signup_key: str = ""

    # ── Uploads ─────────────────────────────────────────────────────
    upload_dir: str = "uploads"
    max_upload_bytes: int = 5 * 1024 * 1024

    # ── Inventory ───────────────────────────────────────────────────
    low_stock_threshold: int = 5

    # ── Rate limiting ───────────────────────────────────────────────
    general_rate_limit: int = 500
    general_rate_window_seconds: int = 15 * 60
    auth_rate_limit: int = 50
    auth_rate_window_seconds: int = 60 * 60

    # ── Notifications (WebSocket) ───────────────────────────────────
    ws_heartbeat_seconds: int = 45
    ws_max_connections: int = 1000

    # ── CORS ────────────────────────────────────────────────────────
    cors_origins: str = "http://localhost:5173,http://localhost:5174,http://127.0.0.1:5173"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # allow unknown .env keys without crashing
    )

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def validate_production_settings(self):
        """
        Validate settings for production safety.

        Called during app startup. In production every problem is fatal;
        elsewhere problems are logged and a throwaway JWT secret is generated
        so the API still boots.
        """
        if self.is_production:
            if not self.jwt_secret:
                raise ValueError(
                    "JWT_SECRET must be set in production. "
                    "It is used to sign session tokens."
                )
            if "*" in self.cors_origins:
                raise ValueError(
                    "CORS_ORIGINS must not contain '*' in production. "
                    "Set explicit allowed origins."
                )
            if not self.admin_signup_key:
                raise ValueError(
                    "ADMIN_SIGNUP_KEY must be set in production. "
                    "Without it anyone can create an admin account."
                )
            if self.expose_reset_token:
                raise ValueError(
                    "EXPOSE_RESET_TOKEN must be false in production. "
                    "Password reset tokens would be returned to any caller."
                )
            logger.info("Production settings validated")
            return

        warnings = []
        if not self.jwt_secret:
            self.jwt_secret = secrets.token_urlsafe(48)
            warnings.append("JWT_SECRET not set, using an ephemeral secret (tokens die on restart)")
        if not self.admin_signup_key:
            warnings.append("ADMIN_SIGNUP_KEY not set (admin signup is open)")
        if self.expose_reset_token:
            warnings.append("EXPOSE_RESET_TOKEN=true (reset tokens returned in responses)")
        if "*" in self.cors_origins:
            warnings.append("CORS_ORIGINS contains '*' (open access)")
        for w in warnings:
            logger.warning(w)


# Global settings instance
settings = Settings()
