"""
Credential custody building blocks.

SECURITY REQUIREMENTS:
- Tokens are encrypted at rest (AES-256-GCM)
- No plaintext tokens in logs or error messages
- Every token operation is recorded in the usage log

The orchestrator lives in token_vault.credentials.lifecycle and is not
re-exported here; it depends on token_vault.integrations, which in turn
imports the errors below.
"""

from token_vault.credentials.errors import (
    CredentialNotFoundError,
    PersistenceError,
    EncryptionFailureError,
    DecodeFailureError,
    UpstreamRejectedError,
    UpstreamUnreachableError,
    TokenUnavailableError,
)
from token_vault.credentials.store import (
    CredentialStore,
    CredentialRecord,
    UsageLogEntry,
    DEFAULT_AUDIT_LIMIT,
    MAX_AUDIT_LIMIT,
)
from token_vault.credentials.audit import AuditDispatcher
from token_vault.credentials.single_flight import SingleFlight
from token_vault.credentials.redaction import (
    REDACTED_VALUE,
    CredentialLoggingFilter,
    redact_credential_value,
    redact_credential_data,
    setup_credential_logging,
)

__all__ = [
    # Errors
    "CredentialNotFoundError",
    "PersistenceError",
    "EncryptionFailureError",
    "DecodeFailureError",
    "UpstreamRejectedError",
    "UpstreamUnreachableError",
    "TokenUnavailableError",
    # Store
    "CredentialStore",
    "CredentialRecord",
    "UsageLogEntry",
    "DEFAULT_AUDIT_LIMIT",
    "MAX_AUDIT_LIMIT",
    # Audit
    "AuditDispatcher",
    "SingleFlight",
    # Redaction
    "REDACTED_VALUE",
    "CredentialLoggingFilter",
    "redact_credential_value",
    "redact_credential_data",
    "setup_credential_logging",
]
