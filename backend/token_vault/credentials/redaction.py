"""
Credential redaction utilities.

SECURITY REQUIREMENTS:
- Tokens NEVER appear in logs (access_token, refresh_token)
- ALLOWED in logs: account_id, token_type, scope, expires_at
- Audit error messages are redacted before they are persisted

Usage:
    from token_vault.credentials.redaction import redact_credential_value

    safe_error = redact_credential_value(str(exc))
"""

import logging
import re
from typing import Any

logger = logging.getLogger(__name__)

REDACTED_VALUE = "[REDACTED]"

# Keys that look sensitive by name but carry token metadata only
SAFE_KEYS = frozenset({
    "account_id",
    "token_type",
    "scope",
    "expires_at",
    "expires_in",
    "remaining_seconds",
    "upstream_status",
})

SECRET_KEY_PATTERNS = (
    "token", "secret", "credential", "auth", "bearer",
    "oauth", "api_key", "apikey", "password",
)

CREDENTIAL_SECRET_PATTERNS = [
    # Authorization header values
    re.compile(r"(?i)(bearer\s+)[A-Za-z0-9\-._~+/]+=*"),
    # JWTs
    re.compile(r"eyJ[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]*"),
    # key=value and "key": "value" pairs
    re.compile(r"(?i)((?:access|refresh|id)_token[\"']?\s*[:=]\s*[\"']?)[^\s\"'&,}]+"),
    re.compile(r"(?i)((?:client_secret|password)[\"']?\s*[:=]\s*[\"']?)[^\s\"'&,}]+"),
]


def is_credential_secret_key(key: str) -> bool:
    """
    Check if a key name indicates a credential secret.

    Args:
        key: The key name to check

    Returns:
        True if the key likely contains a secret
    """
    key_lower = key.lower()
    if key_lower in SAFE_KEYS:
        return False
    return any(pattern in key_lower for pattern in SECRET_KEY_PATTERNS)


def _replace(match: "re.Match") -> str:
    # Keep the key/prefix group, drop the secret
    if match.groups():
        return f"{match.group(1)}{REDACTED_VALUE}"
    return REDACTED_VALUE


def redact_credential_value(value: Any) -> Any:
    """
    Redact secret patterns from a value.

    Non-string values are returned unchanged.
    """
    if not isinstance(value, str):
        return value

    result = value
    for pattern in CREDENTIAL_SECRET_PATTERNS:
        result = pattern.sub(_replace, result)
    return result


def redact_credential_data(data: Any, _depth: int = 0) -> Any:
    """
    Recursively redact credential secrets from a data structure.

    SECURITY: Always use this before logging request/response payloads.

    Usage:
        safe_data = redact_credential_data({"access_token": "abc", "account_id": "a1"})
        logger.info("Token payload", extra=safe_data)
    """
    # Prevent infinite recursion
    if _depth > 10:
        return data

    if isinstance(data, dict):
        result = {}
        for key, value in data.items():
            if isinstance(key, str) and is_credential_secret_key(key):
                result[key] = REDACTED_VALUE
            else:
                result[key] = redact_credential_data(value, _depth + 1)
        return result

    if isinstance(data, (list, tuple)):
        return type(data)(redact_credential_data(item, _depth + 1) for item in data)

    if isinstance(data, str):
        return redact_credential_value(data)

    return data


# LogRecord attributes that are never user data
_RECORD_ATTRIBUTES = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys()
) | {"message", "asctime"}


class CredentialLoggingFilter(logging.Filter):
    """
    Logging filter that redacts credential secrets from log records.

    Usage:
        handler.addFilter(CredentialLoggingFilter())
    """

    def filter(self, record: logging.LogRecord) -> bool:
        # Redact the rendered message; redacting msg alone could break %-formatting
        if isinstance(record.msg, str):
            try:
                message = record.getMessage()
            except (TypeError, ValueError):
                message = None
            if message is not None:
                record.msg = redact_credential_value(message)
                record.args = None

        # Redact extra fields
        for key in list(record.__dict__.keys()):
            if key in _RECORD_ATTRIBUTES:
                continue
            if is_credential_secret_key(key):
                setattr(record, key, REDACTED_VALUE)
            else:
                value = getattr(record, key)
                if isinstance(value, (str, dict, list)):
                    setattr(record, key, redact_credential_data(value))

        return True


# Loggers that see credential material in their vicinity
CREDENTIAL_LOGGERS = [
    "token_vault",
    "token_vault.credentials.encryption",
    "token_vault.credentials.store",
    "token_vault.credentials.lifecycle",
    "token_vault.credentials.audit",
    "token_vault.integrations.oauth.client",
    "token_vault.api.routes.tokens",
    "audit.fallback",
]


def setup_credential_logging() -> CredentialLoggingFilter:
    """
    Configure credential-safe logging.

    Call this during application startup. Logger filters only see records
    emitted on that exact logger, so the filter goes on each credential
    logger and on the root handlers that receive propagated records.
    """
    credential_filter = CredentialLoggingFilter()

    for logger_name in CREDENTIAL_LOGGERS:
        log = logging.getLogger(logger_name)
        if not any(isinstance(f, CredentialLoggingFilter) for f in log.filters):
            log.addFilter(credential_filter)

    for handler in logging.getLogger().handlers:
        if not any(isinstance(f, CredentialLoggingFilter) for f in handler.filters):
            handler.addFilter(credential_filter)

    logger.info("Credential logging configured with redaction filter")
    return credential_filter
