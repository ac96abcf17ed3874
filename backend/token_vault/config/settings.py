"""
Token vault configuration.

Values come from environment variables; TokenVaultConfig.from_env() is
called once at start-up and the resulting object is injected everywhere.
"""

import os
from dataclasses import dataclass
from datetime import timedelta
from typing import Mapping, Optional

DEFAULT_DATABASE_URL = "sqlite:///./token_vault.db"
DEFAULT_TOKEN_URL = "https://auth.tesla.com/oauth2/v3/token"
DEFAULT_PROBE_URL = "https://owner-api.teslamotors.com/api/1/vehicles"
DEFAULT_CLIENT_ID = "ownerapi"
DEFAULT_SCOPE = "openid email offline_access"

DEFAULT_UPSTREAM_TIMEOUT_SECONDS = 30
DEFAULT_REFRESH_LEAD_SECONDS = 300  # 5 minutes
DEFAULT_RETENTION_DAYS = 7
DEFAULT_AUDIT_QUEUE_SIZE = 1000


class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid."""
    pass


def _get_int(environ: Mapping[str, str], name: str, default: int, minimum: int = 0) -> int:
    raw = environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")
    if value < minimum:
        raise ConfigurationError(f"{name} must be >= {minimum}, got {value}")
    return value


@dataclass(frozen=True)
class TokenVaultConfig:
    """Immutable service configuration."""
    encryption_key: str
    database_url: str = DEFAULT_DATABASE_URL
    token_url: str = DEFAULT_TOKEN_URL
    probe_url: str = DEFAULT_PROBE_URL
    client_id: str = DEFAULT_CLIENT_ID
    scope: str = DEFAULT_SCOPE
    upstream_timeout_seconds: int = DEFAULT_UPSTREAM_TIMEOUT_SECONDS
    refresh_lead_seconds: int = DEFAULT_REFRESH_LEAD_SECONDS
    retention_days: int = DEFAULT_RETENTION_DAYS
    audit_queue_size: int = DEFAULT_AUDIT_QUEUE_SIZE
    jwt_secret: Optional[str] = None

    def __repr__(self) -> str:
        # Secrets stay out of logs and tracebacks
        return (
            f"TokenVaultConfig(database_url={self.database_url!r}, "
            f"token_url={self.token_url!r}, probe_url={self.probe_url!r}, "
            f"client_id={self.client_id!r}, "
            f"refresh_lead_seconds={self.refresh_lead_seconds}, "
            f"retention_days={self.retention_days})"
        )

    @property
    def lead_time(self) -> timedelta:
        return timedelta(seconds=self.refresh_lead_seconds)

    @property
    def retention(self) -> timedelta:
        return timedelta(days=self.retention_days)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "TokenVaultConfig":
        """
        Build configuration from environment variables.

        Raises:
            ConfigurationError: If TOKEN_ENCRYPTION_KEY is missing or a
                numeric variable cannot be parsed.
        """
        if environ is None:
            environ = os.environ

        encryption_key = environ.get("TOKEN_ENCRYPTION_KEY")
        if not encryption_key:
            raise ConfigurationError(
                "TOKEN_ENCRYPTION_KEY environment variable is not set"
            )

        return cls(
            encryption_key=encryption_key,
            database_url=environ.get("DATABASE_URL") or DEFAULT_DATABASE_URL,
            token_url=environ.get("OAUTH_TOKEN_URL") or DEFAULT_TOKEN_URL,
            probe_url=environ.get("OAUTH_PROBE_URL") or DEFAULT_PROBE_URL,
            client_id=environ.get("OAUTH_CLIENT_ID") or DEFAULT_CLIENT_ID,
            scope=environ.get("OAUTH_SCOPE") or DEFAULT_SCOPE,
            upstream_timeout_seconds=_get_int(
                environ, "UPSTREAM_TIMEOUT_SECONDS", DEFAULT_UPSTREAM_TIMEOUT_SECONDS, minimum=1
            ),
            refresh_lead_seconds=_get_int(
                environ, "TOKEN_REFRESH_LEAD_SECONDS", DEFAULT_REFRESH_LEAD_SECONDS
            ),
            retention_days=_get_int(
                environ, "TOKEN_RETENTION_DAYS", DEFAULT_RETENTION_DAYS
            ),
            audit_queue_size=_get_int(
                environ, "AUDIT_QUEUE_SIZE", DEFAULT_AUDIT_QUEUE_SIZE, minimum=1
            ),
            jwt_secret=environ.get("JWT_SECRET") or None,
        )
