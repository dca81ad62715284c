"""
Session and identity-broker configuration.

Silent renewal and interactive login share the exchange step but differ in
retry policy: silent renewal makes a single attempt, interactive login
retries exchange rejections with growing backoff.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AuthConfig(BaseSettings):
    """
    Configuration for the session state machine and identity broker.

    All settings can be overridden via environment variables prefixed with AUTH_.

    Example:
        AUTH_JWT_LEEWAY_SECONDS=120
        AUTH_LOGIN_MAX_ATTEMPTS=3
    """

    model_config = SettingsConfigDict(
        env_prefix="AUTH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Local session-token validation
    jwt_leeway_seconds: int = Field(
        default=60,
        ge=0,
        le=3600,
        description="A token expiring within this window is treated as expired.",
    )

    # Interactive login retry policy
    login_max_attempts: int = Field(default=5, ge=1, le=10)
    login_base_delay_seconds: float = Field(default=1.0, ge=0.0, le=60.0)
    login_backoff_multiplier: float = Field(default=1.5, ge=1.0, le=4.0)
    login_max_delay_seconds: float = Field(default=30.0, ge=0.0, le=300.0)
    token_propagation_delay_seconds: float = Field(
        default=0.5,
        ge=0.0,
        le=10.0,
        description="Pause between obtaining a third-party token and exchanging it.",
    )

    # Periodic auth check
    check_interval_minutes: float = Field(default=5.0, gt=0.0, le=1440.0)

    # OAuth identity provider (device authorization grant)
    oauth_client_id: str | None = None
    oauth_client_secret: str | None = None
    oauth_scopes: str = "openid email profile"
    oauth_device_code_url: str = "https://oauth2.googleapis.com/device/code"
    oauth_token_url: str = "https://oauth2.googleapis.com/token"
    oauth_revoke_url: str = "https://oauth2.googleapis.com/revoke"
    oauth_login_timeout_seconds: float = Field(default=300.0, gt=0.0, le=1800.0)
