"""Runtime configuration."""

from token_vault.config.settings import (
    TokenVaultConfig,
    ConfigurationError,
    DEFAULT_TOKEN_URL,
    DEFAULT_PROBE_URL,
    DEFAULT_CLIENT_ID,
    DEFAULT_SCOPE,
)

__all__ = [
    "TokenVaultConfig",
    "ConfigurationError",
    "DEFAULT_TOKEN_URL",
    "DEFAULT_PROBE_URL",
    "DEFAULT_CLIENT_ID",
    "DEFAULT_SCOPE",
]
