"""
Token API schemas.

Pydantic models for token custody requests and responses. Only
ValidTokenResponse ever carries an access token.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class SaveTokenRequest(BaseModel):
    """Store or replace the token pair for an account."""

    account_id: str = Field(..., min_length=1, max_length=255)
    access_token: str = Field(..., min_length=1)
    refresh_token: str = Field(..., min_length=1)
    expires_in: int = Field(..., ge=0, description="Access token lifetime in seconds")
    token_type: str = Field(default="Bearer", max_length=50)
    scope: Optional[str] = None


class ValidateRequest(BaseModel):
    """Optional presented token; omit for upstream freshness check."""

    access_token: Optional[str] = None


class TokenMetadataResponse(BaseModel):
    """Public token metadata (no token values)."""

    account_id: str
    token_type: str
    scope: Optional[str] = None
    expires_at: datetime
    remaining_seconds: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class TokenListResponse(BaseModel):
    """All stored credentials."""

    tokens: list[TokenMetadataResponse]
    total: int


class ValidTokenResponse(BaseModel):
    """Usable access token for an account."""

    account_id: str
    access_token: str
    token_type: str
    scope: Optional[str] = None
    expires_at: datetime
    remaining_seconds: int


class ValidationResponse(BaseModel):
    """Outcome of a validation call."""

    valid: bool
    reason: str
    account_id: str
    expires_at: Optional[datetime] = None
    remaining_seconds: Optional[int] = None
    refreshed: bool = False


class UsageLogEntryResponse(BaseModel):
    """Single usage log entry."""

    id: Optional[int] = None
    account_id: str
    action: str
    success: bool
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None


class UsageLogResponse(BaseModel):
    """Usage log for an account, newest first."""

    account_id: str
    logs: list[UsageLogEntryResponse]
    count: int


class DeleteResponse(BaseModel):
    deleted: bool
    account_id: str


class SweepResponse(BaseModel):
    removed: int
