"""
Credential lifecycle errors.

Every error derives from AppError so the HTTP layer renders it with the
standard shape. Messages never carry token values.
"""

from typing import Optional

from fastapi import status

from token_vault.platform.errors import AppError, NotFoundError, ServiceUnavailableError


class CredentialNotFoundError(NotFoundError):
    """No credential record exists for the account (404)."""

    def __init__(self, account_id: str):
        super().__init__("Credential", account_id)
        self.account_id = account_id


class PersistenceError(AppError):
    """Storage layer failure (500)."""

    def __init__(self, operation: str, message: Optional[str] = None):
        super().__init__(
            code="PERSISTENCE_FAILURE",
            message=message or f"Credential storage failed during {operation}",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            details={"operation": operation},
        )
        self.operation = operation


class EncryptionFailureError(AppError):
    """Token could not be encrypted (500)."""

    def __init__(self, message: str = "Failed to encrypt token", field: Optional[str] = None):
        super().__init__(
            code="ENCRYPTION_FAILURE",
            message=message,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            details={"field": field} if field else None,
        )


class DecodeFailureError(AppError):
    """Stored ciphertext or upstream response could not be decoded (502)."""

    def __init__(self, message: str = "Failed to decode token data"):
        super().__init__(
            code="DECODE_FAILURE",
            message=message,
            status_code=status.HTTP_502_BAD_GATEWAY,
        )


class UpstreamRejectedError(AppError):
    """Upstream authorization server answered with a non-success status (502)."""

    def __init__(self, upstream_status: int, message: Optional[str] = None):
        super().__init__(
            code="UPSTREAM_REJECTED",
            message=message or f"Upstream rejected request: HTTP {upstream_status}",
            status_code=status.HTTP_502_BAD_GATEWAY,
            details={"upstream_status": upstream_status},
        )
        self.upstream_status = upstream_status


class UpstreamUnreachableError(ServiceUnavailableError):
    """Upstream could not be reached or timed out (503)."""

    def __init__(self, message: str = "Upstream authorization server unreachable"):
        super().__init__(message=message, code="UPSTREAM_UNREACHABLE")


class TokenUnavailableError(AppError):
    """A usable token could not be produced (424)."""

    def __init__(self, account_id: str, message: Optional[str] = None):
        super().__init__(
            code="TOKEN_UNAVAILABLE",
            message=message or "Token expired and refresh failed",
            status_code=status.HTTP_424_FAILED_DEPENDENCY,
            details={"account_id": account_id},
        )
        self.account_id = account_id
