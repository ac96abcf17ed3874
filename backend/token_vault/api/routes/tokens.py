"""
Token custody API routes.

Handles:
- Saving and replacing an account's token pair
- Returning a usable access token (refreshing when due)
- Validation (match mode and upstream freshness mode)
- Explicit refresh, delete, usage log and sweep

Security:
- Every route requires a valid caller JWT (require_caller)
- Only GET /{account_id} returns a token value
- Token values are never read from the query string
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse

from token_vault.api.dependencies.auth import require_caller
from token_vault.api.dependencies.lifecycle import get_lifecycle_manager
from token_vault.api.schemas.tokens import (
    DeleteResponse,
    SaveTokenRequest,
    SweepResponse,
    TokenListResponse,
    TokenMetadataResponse,
    UsageLogEntryResponse,
    UsageLogResponse,
    ValidateRequest,
    ValidationResponse,
    ValidTokenResponse,
)
from token_vault.credentials.lifecycle import (
    TokenLifecycleManager,
    TokenMetadata,
    ValidationResult,
)
from token_vault.credentials.store import DEFAULT_AUDIT_LIMIT, MAX_AUDIT_LIMIT

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1/tokens",
    tags=["tokens"],
    dependencies=[Depends(require_caller)],
)


def _metadata_response(metadata: TokenMetadata) -> TokenMetadataResponse:
    return TokenMetadataResponse(
        account_id=metadata.account_id,
        token_type=metadata.token_type,
        scope=metadata.scope,
        expires_at=metadata.expires_at,
        remaining_seconds=metadata.remaining_seconds,
        created_at=metadata.created_at,
        updated_at=metadata.updated_at,
    )


def _validation_response(result: ValidationResult) -> JSONResponse:
    body = ValidationResponse(
        valid=result.valid,
        reason=result.reason,
        account_id=result.account_id,
        expires_at=result.expires_at,
        remaining_seconds=result.remaining_seconds,
        refreshed=result.refreshed,
    )
    return JSONResponse(
        status_code=status.HTTP_200_OK if result.valid else status.HTTP_401_UNAUTHORIZED,
        content=body.model_dump(mode="json"),
    )


@router.post("", status_code=status.HTTP_201_CREATED, response_model=TokenMetadataResponse)
async def save_token(
    body: SaveTokenRequest,
    manager: TokenLifecycleManager = Depends(get_lifecycle_manager),
):
    """Store or replace the token pair for an account."""
    metadata = await manager.save_or_update(
        account_id=body.account_id,
        access_token=body.access_token,
        refresh_token=body.refresh_token,
        ttl_seconds=body.expires_in,
        token_type=body.token_type,
        scope=body.scope,
    )
    return _metadata_response(metadata)


@router.get("", response_model=TokenListResponse)
async def list_tokens(manager: TokenLifecycleManager = Depends(get_lifecycle_manager)):
    """Metadata for every stored credential."""
    tokens = [_metadata_response(m) for m in await manager.list_tokens()]
    return TokenListResponse(tokens=tokens, total=len(tokens))


@router.post("/sweep", response_model=SweepResponse)
async def sweep_tokens(manager: TokenLifecycleManager = Depends(get_lifecycle_manager)):
    """Purge credentials expired beyond the retention window."""
    removed = await manager.sweep()
    return SweepResponse(removed=removed)


@router.get("/{account_id}", response_model=ValidTokenResponse)
async def get_token(
    account_id: str,
    manager: TokenLifecycleManager = Depends(get_lifecycle_manager),
):
    """
    Return a usable access token, refreshing it first when close to expiry.

    Returns 404 if no credential exists and 424 if a needed refresh failed.
    """
    valid = await manager.get_valid(account_id)
    metadata = valid.metadata
    return ValidTokenResponse(
        account_id=metadata.account_id,
        access_token=valid.access_token,
        token_type=metadata.token_type,
        scope=metadata.scope,
        expires_at=metadata.expires_at,
        remaining_seconds=metadata.remaining_seconds,
    )


@router.get("/{account_id}/validate", response_model=ValidationResponse)
async def validate_token(
    account_id: str,
    manager: TokenLifecycleManager = Depends(get_lifecycle_manager),
):
    """
    Freshness-mode validation; 200 when valid, 401 when not.

    Presented tokens are accepted only in the POST body so they never
    appear in URLs or access logs.
    """
    result = await manager.validate(account_id)
    return _validation_response(result)


@router.post("/{account_id}/validate", response_model=ValidationResponse)
async def validate_presented_token(
    account_id: str,
    body: Optional[ValidateRequest] = None,
    manager: TokenLifecycleManager = Depends(get_lifecycle_manager),
):
    """Validate with an optional presented token in the body."""
    presented = body.access_token if body else None
    result = await manager.validate(account_id, presented_token=presented)
    return _validation_response(result)


@router.post("/{account_id}/refresh", response_model=TokenMetadataResponse)
async def refresh_token(
    account_id: str,
    manager: TokenLifecycleManager = Depends(get_lifecycle_manager),
):
    """Force a refresh against the upstream token endpoint."""
    metadata = await manager.refresh(account_id)
    return _metadata_response(metadata)


@router.delete("/{account_id}", response_model=DeleteResponse)
async def delete_token(
    account_id: str,
    manager: TokenLifecycleManager = Depends(get_lifecycle_manager),
):
    """Delete the account's credential."""
    await manager.delete(account_id)
    return DeleteResponse(deleted=True, account_id=account_id)


@router.get("/{account_id}/logs", response_model=UsageLogResponse)
async def get_usage_logs(
    account_id: str,
    limit: int = Query(default=DEFAULT_AUDIT_LIMIT, le=MAX_AUDIT_LIMIT),
    manager: TokenLifecycleManager = Depends(get_lifecycle_manager),
):
    """Usage log for an account, newest first."""
    entries = await manager.list_audit_log(account_id, limit)
    logs = [UsageLogEntryResponse(**entry.to_dict()) for entry in entries]
    return UsageLogResponse(account_id=account_id, logs=logs, count=len(logs))
