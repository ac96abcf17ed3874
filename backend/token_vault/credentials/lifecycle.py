"""
Token lifecycle manager.

Orchestrates the credential store, the cipher and the upstream OAuth
client: decides when a token is stale, refreshes it, validates it, and
records every action in the usage log.

SECURITY REQUIREMENTS:
- Tokens are decrypted only here, immediately before use or return
- Plaintext tokens never appear in logs or error messages
- Every save, refresh, validate and delete call writes one audit entry

Usage:
    manager = TokenLifecycleManager.from_config(config, session_factory)
    await manager.save_or_update("acct-1", access, refresh, ttl_seconds=3600)
    token = await manager.get_valid("acct-1")
    result = await manager.validate("acct-1")
"""

import hmac
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import httpx
from sqlalchemy.ext.asyncio import async_sessionmaker

from token_vault.config.settings import TokenVaultConfig
from token_vault.credentials.audit import AuditDispatcher
from token_vault.credentials.encryption import build_cipher, decrypt_token, encrypt_token
from token_vault.credentials.errors import (
    CredentialNotFoundError,
    TokenUnavailableError,
    UpstreamUnreachableError,
)
from token_vault.credentials.redaction import redact_credential_value
from token_vault.credentials.single_flight import SingleFlight
from token_vault.credentials.store import (
    DEFAULT_AUDIT_LIMIT,
    CredentialRecord,
    CredentialStore,
    UsageLogEntry,
)
from token_vault.integrations.oauth.client import OAuthUpstreamClient
from token_vault.models.oauth_token import DEFAULT_TOKEN_TYPE
from token_vault.models.token_usage_log import UsageAction
from token_vault.platform.errors import AppError, ValidationError
from token_vault.utils.encryption import TokenCipher

logger = logging.getLogger(__name__)

# Validation reasons
REASON_VALID = "valid"
REASON_MATCH = "match"
REASON_MISMATCH = "mismatch"
REASON_EXPIRED = "expired"
REASON_NOT_FOUND = "not found"
REASON_REFRESHED_AND_VALID = "refreshed and valid"
REASON_EXPIRED_REFRESH_FAILED = "expired and refresh failed"
REASON_INVALID_REFRESH_FAILED = "invalid and refresh failed"
REASON_INVALID_AFTER_REFRESH = "invalid after refresh"
REASON_UPSTREAM_UNREACHABLE = "upstream unreachable"

PROBE_OK = 200


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class TokenMetadata:
    """
    Public view of a credential record.

    SECURITY: Does NOT include token values.
    """
    account_id: str
    token_type: str
    scope: Optional[str]
    expires_at: datetime
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: CredentialRecord) -> "TokenMetadata":
        return cls(
            account_id=record.account_id,
            token_type=record.token_type,
            scope=record.scope,
            expires_at=record.expires_at,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )

    @property
    def remaining_seconds(self) -> int:
        """Seconds until expiry, never negative."""
        return max(0, int((self.expires_at - _utc_now()).total_seconds()))


@dataclass
class ValidToken:
    """Decrypted access token plus metadata. Handle with care."""
    access_token: str
    metadata: TokenMetadata

    def __repr__(self) -> str:
        return f"ValidToken(metadata={self.metadata!r})"


@dataclass
class ValidationResult:
    """Outcome of a validate() call."""
    valid: bool
    reason: str
    account_id: str
    expires_at: Optional[datetime] = None
    remaining_seconds: Optional[int] = None
    refreshed: bool = False

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "reason": self.reason,
            "account_id": self.account_id,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "remaining_seconds": self.remaining_seconds,
            "refreshed": self.refreshed,
        }


class TokenLifecycleManager:
    """
    Orchestrator for stored OAuth credentials.

    Holds no mutable state besides the per-account refresh gate and the
    audit queue; store, cipher and upstream client are shared safely.
    """

    def __init__(
        self,
        store: CredentialStore,
        cipher: TokenCipher,
        upstream: OAuthUpstreamClient,
        config: TokenVaultConfig,
        audit: Optional[AuditDispatcher] = None,
    ):
        self.store = store
        self.cipher = cipher
        self.upstream = upstream
        self.config = config
        self.audit = audit or AuditDispatcher(store, max_queue_size=config.audit_queue_size)
        self._refresh_flights = SingleFlight()

    @classmethod
    def from_config(
        cls,
        config: TokenVaultConfig,
        session_factory: async_sessionmaker,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "TokenLifecycleManager":
        """Wire a manager from configuration. Fails fast on a bad key."""
        cipher = build_cipher(config.encryption_key)
        store = CredentialStore(session_factory)
        upstream = OAuthUpstreamClient(
            token_url=config.token_url,
            probe_url=config.probe_url,
            client_id=config.client_id,
            scope=config.scope,
            timeout=float(config.upstream_timeout_seconds),
            transport=transport,
        )
        return cls(store, cipher, upstream, config)

    async def close(self) -> None:
        """Flush pending audit entries and release the HTTP client."""
        await self.audit.stop()
        await self.upstream.close()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _audit(
        self,
        account_id: str,
        action: UsageAction,
        success: bool,
        error_message: Optional[str] = None,
    ) -> None:
        entry = UsageLogEntry(
            account_id=account_id,
            action=action.value,
            success=success,
            error_message=redact_credential_value(error_message) if error_message else None,
            created_at=_utc_now(),
        )
        await self.audit.submit(entry)

    def _is_stale(self, record: CredentialRecord) -> bool:
        return _utc_now() >= record.expires_at - self.config.lead_time

    @staticmethod
    def _is_expired(record: CredentialRecord) -> bool:
        return _utc_now() >= record.expires_at

    def _result(
        self,
        account_id: str,
        valid: bool,
        reason: str,
        record: Optional[CredentialRecord] = None,
        refreshed: bool = False,
    ) -> ValidationResult:
        if record is None:
            return ValidationResult(valid=valid, reason=reason, account_id=account_id, refreshed=refreshed)
        metadata = TokenMetadata.from_record(record)
        return ValidationResult(
            valid=valid,
            reason=reason,
            account_id=account_id,
            expires_at=metadata.expires_at,
            remaining_seconds=metadata.remaining_seconds,
            refreshed=refreshed,
        )

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def save_or_update(
        self,
        account_id: str,
        access_token: str,
        refresh_token: str,
        ttl_seconds: int,
        token_type: Optional[str] = DEFAULT_TOKEN_TYPE,
        scope: Optional[str] = None,
    ) -> TokenMetadata:
        """
        Encrypt and store a token pair for an account.

        Inserts and overwrites are both audited as "create".

        Raises:
            ValidationError: ttl_seconds is negative
            EncryptionFailureError: A token could not be encrypted
            PersistenceError: The store write failed
        """
        try:
            if ttl_seconds is None or ttl_seconds < 0:
                raise ValidationError("ttl_seconds must be >= 0", details={"ttl_seconds": ttl_seconds})

            record = CredentialRecord(
                account_id=account_id,
                access_token_encrypted=encrypt_token(self.cipher, access_token, field="access_token"),
                refresh_token_encrypted=encrypt_token(self.cipher, refresh_token, field="refresh_token"),
                expires_at=_utc_now() + timedelta(seconds=ttl_seconds),
                token_type=token_type or DEFAULT_TOKEN_TYPE,
                scope=scope,
            )
            stored = await self.store.upsert(record)
        except AppError as e:
            await self._audit(account_id, UsageAction.CREATE, False, e.message)
            raise

        await self._audit(account_id, UsageAction.CREATE, True)
        return TokenMetadata.from_record(stored)

    async def get_valid(self, account_id: str) -> ValidToken:
        """
        Return a usable access token, refreshing first when within lead time.

        Raises:
            CredentialNotFoundError: No record for the account
            TokenUnavailableError: Refresh was needed and failed
            DecodeFailureError: Stored ciphertext could not be decrypted
        """
        record = await self.store.get(account_id)

        if self._is_stale(record):
            logger.info(
                "Token within refresh lead time, refreshing",
                extra={"account_id": account_id, "expires_at": record.expires_at.isoformat()}
            )
            try:
                await self.refresh(account_id)
            except AppError as e:
                raise TokenUnavailableError(account_id) from e
            record = await self.store.get(account_id)

        access_token = decrypt_token(self.cipher, record.access_token_encrypted, field="access_token")
        return ValidToken(access_token=access_token, metadata=TokenMetadata.from_record(record))

    async def validate(self, account_id: str, presented_token: Optional[str] = None) -> ValidationResult:
        """
        Validate the stored token.

        Match mode (presented_token given): constant-time comparison with
        the stored access token plus a local expiry check. No upstream call.

        Freshness mode: refresh if locally expired, then probe upstream.
        A rejected probe triggers one refresh and one re-probe at most. An
        unreachable probe endpoint yields valid=False without a refresh.

        Writes exactly one "validate" audit entry. A missing record yields
        valid=False rather than an error.
        """
        try:
            if presented_token is not None:
                result = await self._validate_match(account_id, presented_token)
            else:
                result = await self._validate_freshness(account_id)
        except AppError as e:
            await self._audit(account_id, UsageAction.VALIDATE, False, e.message)
            raise

        await self._audit(
            account_id,
            UsageAction.VALIDATE,
            result.valid,
            None if result.valid else result.reason,
        )
        logger.info(
            "Token validated",
            extra={"account_id": account_id, "valid": result.valid, "reason": result.reason}
        )
        return result

    async def _validate_match(self, account_id: str, presented_token: str) -> ValidationResult:
        try:
            record = await self.store.get(account_id)
        except CredentialNotFoundError:
            return self._result(account_id, False, REASON_NOT_FOUND)

        stored_token = decrypt_token(self.cipher, record.access_token_encrypted, field="access_token")
        if not hmac.compare_digest(stored_token.encode("utf-8"), presented_token.encode("utf-8")):
            return self._result(account_id, False, REASON_MISMATCH, record)

        if self._is_expired(record):
            return self._result(account_id, False, REASON_EXPIRED, record)

        return self._result(account_id, True, REASON_MATCH, record)

    async def _probe(self, record: CredentialRecord) -> Optional[int]:
        """Probe upstream with the record's token; None when unreachable."""
        access_token = decrypt_token(self.cipher, record.access_token_encrypted, field="access_token")
        try:
            return await self.upstream.probe(access_token)
        except UpstreamUnreachableError:
            return None

    async def _validate_freshness(self, account_id: str) -> ValidationResult:
        try:
            record = await self.store.get(account_id)
        except CredentialNotFoundError:
            return self._result(account_id, False, REASON_NOT_FOUND)

        refreshed = False
        if self._is_expired(record):
            try:
                await self.refresh(account_id)
            except AppError:
                return self._result(account_id, False, REASON_EXPIRED_REFRESH_FAILED, record)
            refreshed = True
            record = await self.store.get(account_id)

        status = await self._probe(record)
        if status is None:
            return self._result(account_id, False, REASON_UPSTREAM_UNREACHABLE, record, refreshed=refreshed)
        if status == PROBE_OK:
            reason = REASON_REFRESHED_AND_VALID if refreshed else REASON_VALID
            return self._result(account_id, True, reason, record, refreshed=refreshed)

        logger.info(
            "Upstream rejected token, refreshing once",
            extra={"account_id": account_id, "upstream_status": status}
        )
        try:
            await self.refresh(account_id)
        except AppError:
            return self._result(account_id, False, REASON_INVALID_REFRESH_FAILED, record, refreshed=refreshed)

        record = await self.store.get(account_id)
        status = await self._probe(record)
        if status is None:
            return self._result(account_id, False, REASON_UPSTREAM_UNREACHABLE, record, refreshed=True)
        if status == PROBE_OK:
            return self._result(account_id, True, REASON_REFRESHED_AND_VALID, record, refreshed=True)
        return self._result(account_id, False, REASON_INVALID_AFTER_REFRESH, record, refreshed=True)

    async def refresh(self, account_id: str) -> TokenMetadata:
        """
        Exchange the stored refresh token for a new access token.

        Concurrent calls for the same account share one upstream request.

        Raises:
            CredentialNotFoundError: No record for the account
            DecodeFailureError: Stored refresh token or upstream body undecodable
            UpstreamRejectedError: Token endpoint answered non-200
            UpstreamUnreachableError: Token endpoint unreachable or timed out
        """
        if self._refresh_flights.in_flight(account_id):
            logger.debug("Joining in-flight token refresh", extra={"account_id": account_id})
        return await self._refresh_flights.do(account_id, lambda: self._do_refresh(account_id))

    async def _do_refresh(self, account_id: str) -> TokenMetadata:
        try:
            record = await self.store.get(account_id)
            current_refresh_token = decrypt_token(
                self.cipher, record.refresh_token_encrypted, field="refresh_token"
            )

            grant = await self.upstream.refresh_token(current_refresh_token)

            # Keep the old refresh token unless the upstream rotated it
            new_refresh_token = grant.refresh_token or current_refresh_token
            updated = CredentialRecord(
                account_id=account_id,
                access_token_encrypted=encrypt_token(self.cipher, grant.access_token, field="access_token"),
                refresh_token_encrypted=encrypt_token(self.cipher, new_refresh_token, field="refresh_token"),
                expires_at=_utc_now() + timedelta(seconds=grant.expires_in),
                token_type=grant.token_type or record.token_type,
                scope=grant.scope or record.scope,
            )
            stored = await self.store.upsert(updated)
        except AppError as e:
            logger.warning(
                "Token refresh failed",
                extra={"account_id": account_id, "error_code": e.code}
            )
            await self._audit(account_id, UsageAction.REFRESH, False, e.message)
            raise

        await self._audit(account_id, UsageAction.REFRESH, True)
        logger.info(
            "Token refreshed",
            extra={"account_id": account_id, "expires_at": stored.expires_at.isoformat()}
        )
        return TokenMetadata.from_record(stored)

    async def delete(self, account_id: str) -> None:
        """
        Physically delete the account's record.

        Raises:
            CredentialNotFoundError: Nothing to delete
        """
        try:
            await self.store.delete(account_id)
        except AppError as e:
            await self._audit(account_id, UsageAction.DELETE, False, e.message)
            raise

        await self._audit(account_id, UsageAction.DELETE, True)

    async def list_audit_log(self, account_id: str, limit: int = DEFAULT_AUDIT_LIMIT) -> List[UsageLogEntry]:
        """Usage entries for an account, newest first."""
        return await self.store.list_audit(account_id, limit)

    async def list_tokens(self) -> List[TokenMetadata]:
        """Metadata for every stored credential."""
        return [TokenMetadata.from_record(record) for record in await self.store.list_accounts()]

    def sweep_cutoff(self) -> datetime:
        return _utc_now() - self.config.retention

    async def sweep(self) -> int:
        """Purge records expired for longer than the retention window."""
        cutoff = self.sweep_cutoff()
        removed = await self.store.purge_expired(cutoff)
        logger.info(
            "Credential sweep completed",
            extra={"removed": removed, "cutoff": cutoff.isoformat()}
        )
        return removed

    async def count_sweepable(self) -> int:
        """How many records sweep() would remove now."""
        return await self.store.count_expired(self.sweep_cutoff())
