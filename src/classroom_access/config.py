"""Service configuration using pydantic-settings.

This module defines the AccessFixerSettings class that reads configuration
from environment variables with the ACCESS_FIXER_ prefix. The GitHub token,
organization and webhook secret must be set for the service to start.
"""

from enum import Enum
from typing import Annotated, List, Union

import structlog
from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from src.classroom_access.github.models import Permission

logger = structlog.get_logger(__name__)


class PermissionPolicy(str, Enum):
    """How the permission of a replacement invitation is chosen.

    Attributes:
        PRESERVE: Reuse the bot invitation's permission, falling back to
                  the configured default when it is missing or unknown.
        DEFAULT: Always use the configured default permission.
    """

    PRESERVE = "preserve"
    DEFAULT = "default"


class AccessFixerSettings(BaseSettings):
    """Service configuration from environment variables.

    All environment variables are prefixed with ACCESS_FIXER_
    (e.g., ACCESS_FIXER_GITHUB_TOKEN).

    Required fields:
    - github_token: Token of the account that re-issues invitations
    - github_org: Organization that owns the classroom repositories
    - webhook_secret: Shared secret for webhook signature verification
    """

    model_config = SettingsConfigDict(
        env_prefix="ACCESS_FIXER_",
        case_sensitive=False,
    )

    # -------------------------------------------------------------------------
    # GitHub Configuration
    # -------------------------------------------------------------------------
    github_token: str

    github_org: str

    webhook_secret: str

    # Supports GitHub Enterprise Server endpoints
    github_base_url: str = "https://api.github.com"

    # Inviter login identifying invitations created by the classroom bot
    classroom_bot_login: str = "github-classroom[bot]"

    # -------------------------------------------------------------------------
    # Feature Flags
    # -------------------------------------------------------------------------
    dry_run: bool = False

    auto_add_collaborator: bool = True

    default_permission: Permission = Permission.PUSH

    permission_policy: PermissionPolicy = PermissionPolicy.PRESERVE

    # -------------------------------------------------------------------------
    # Retry Configuration
    # -------------------------------------------------------------------------
    # Additional attempts after the first failed call
    max_retries: int = 3

    # Minimum delay between attempts, in milliseconds
    retry_delay_ms: int = 1000

    request_timeout_seconds: float = 30.0

    # -------------------------------------------------------------------------
    # Logging and Monitoring
    # -------------------------------------------------------------------------
    environment: str = "development"

    log_level: str = "info"

    log_format: str = "pretty"

    enable_metrics: bool = True

    # -------------------------------------------------------------------------
    # Server Configuration
    # -------------------------------------------------------------------------
    host: str = "0.0.0.0"

    port: int = 3000

    # Empty means every address may deliver webhooks
    allowed_ips: Annotated[List[str], NoDecode] = []

    cors_origin: str = "*"

    # -------------------------------------------------------------------------
    # Validators
    # -------------------------------------------------------------------------
    @field_validator("github_token", "github_org", "webhook_secret", "classroom_bot_login")
    @classmethod
    def validate_not_empty(cls, v: str, info) -> str:
        """Validate that required strings are not blank."""
        if not v or not v.strip():
            raise ValueError(f"{info.field_name} cannot be empty")
        return v.strip()

    @field_validator("github_base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Validate that the API base URL is an http(s) URL."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("github_base_url must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("max_retries")
    @classmethod
    def validate_max_retries(cls, v: int) -> int:
        if not 0 <= v <= 10:
            raise ValueError("max_retries must be between 0 and 10")
        return v

    @field_validator("retry_delay_ms")
    @classmethod
    def validate_retry_delay(cls, v: int) -> int:
        if v < 0:
            raise ValueError("retry_delay_ms cannot be negative")
        return v

    @field_validator("request_timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("request_timeout_seconds must be positive")
        return v

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        v = v.lower()
        if v not in ("development", "production", "test"):
            raise ValueError("environment must be development, production or test")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        v = v.lower()
        if v == "warn":
            v = "warning"
        if v not in ("debug", "info", "warning", "error"):
            raise ValueError("log_level must be debug, info, warning or error")
        return v

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        v = v.lower()
        if v not in ("json", "pretty"):
            raise ValueError("log_format must be json or pretty")
        return v

    @field_validator("allowed_ips", mode="before")
    @classmethod
    def split_allowed_ips(cls, v: Union[str, List[str], None]) -> List[str]:
        """Accept a comma-separated string of addresses."""
        if v is None:
            return []
        if isinstance(v, str):
            return [ip.strip() for ip in v.split(",") if ip.strip()]
        return [ip.strip() for ip in v if ip and ip.strip()]

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Validate that port is in valid range."""
        if not 1 <= v <= 65535:
            raise ValueError("port must be between 1 and 65535")
        return v

    @property
    def retry_delay_seconds(self) -> float:
        return self.retry_delay_ms / 1000.0

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


def warn_on_risky_settings(settings: AccessFixerSettings) -> List[str]:
    """Log warnings for settings that are unusual in production.

    Returns:
        The warning messages that were logged.
    """
    warnings: List[str] = []
    if settings.is_production:
        if settings.dry_run:
            warnings.append("dry_run is enabled in production")
        if settings.cors_origin == "*":
            warnings.append("CORS allows all origins in production")
    for message in warnings:
        logger.warning(message)
    return warnings


def get_settings() -> AccessFixerSettings:
    """Create and return an AccessFixerSettings instance.

    Raises:
        pydantic.ValidationError: If required fields are missing or invalid.
    """
    return AccessFixerSettings()
