"""
Credential storage for encrypted OAuth tokens and their usage log.

The store holds no business logic: it never encrypts, decrypts, or
decides staleness. It persists what the lifecycle manager hands it.

SECURITY REQUIREMENTS:
- Only ciphertext reaches this layer
- Token columns are never logged
- Usage log is append-only (no update/delete operations exposed)

Usage:
    store = CredentialStore(session_factory)

    record = await store.upsert(CredentialRecord(...))
    record = await store.get("account-1")
    entries = await store.list_audit("account-1", limit=50)
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import AsyncIterator, List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from token_vault.credentials.errors import CredentialNotFoundError, PersistenceError
from token_vault.models.oauth_token import OAuthToken, DEFAULT_TOKEN_TYPE
from token_vault.models.token_usage_log import TokenUsageLog

logger = logging.getLogger(__name__)

DEFAULT_AUDIT_LIMIT = 100
MAX_AUDIT_LIMIT = 1000


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalise a datetime to aware UTC (SQLite returns naive values)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass
class CredentialRecord:
    """
    Stored credential with tokens still encrypted.

    SECURITY: Token fields hold ciphertext only. Never log them.
    """
    account_id: str
    access_token_encrypted: str
    refresh_token_encrypted: str
    expires_at: datetime
    token_type: str = DEFAULT_TOKEN_TYPE
    scope: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    id: Optional[int] = None

    def __repr__(self) -> str:
        return (
            f"CredentialRecord(account_id={self.account_id!r}, "
            f"token_type={self.token_type!r}, expires_at={self.expires_at!r})"
        )

    @classmethod
    def from_model(cls, row: OAuthToken) -> "CredentialRecord":
        return cls(
            id=row.id,
            account_id=row.account_id,
            access_token_encrypted=row.access_token_encrypted,
            refresh_token_encrypted=row.refresh_token_encrypted,
            token_type=row.token_type,
            scope=row.scope,
            expires_at=_as_utc(row.expires_at),
            created_at=_as_utc(row.created_at),
            updated_at=_as_utc(row.updated_at),
        )


@dataclass
class UsageLogEntry:
    """One usage/audit entry. error_message is already redacted."""
    account_id: str
    action: str
    success: bool
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None
    id: Optional[int] = None

    @classmethod
    def from_model(cls, row: TokenUsageLog) -> "UsageLogEntry":
        return cls(
            id=row.id,
            account_id=row.account_id,
            action=row.action,
            success=bool(row.success),
            error_message=row.error_message,
            created_at=_as_utc(row.created_at),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_id": self.account_id,
            "action": self.action,
            "success": self.success,
            "error_message": self.error_message,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class CredentialStore:
    """
    Persistence for credential records and usage log entries.

    Every operation opens its own short-lived session, so one store
    instance can be shared between concurrent requests.
    """

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    @asynccontextmanager
    async def _session(self, operation: str) -> AsyncIterator[AsyncSession]:
        session = self._session_factory()
        try:
            yield session
            await session.commit()
        except SQLAlchemyError as e:
            await session.rollback()
            logger.error(
                "Credential store operation failed",
                extra={"operation": operation, "error_type": type(e).__name__}
            )
            raise PersistenceError(operation) from e
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    def _upsert_statement(self, session: AsyncSession, values: dict):
        dialect = session.get_bind().dialect.name
        if dialect == "postgresql":
            insert_fn = pg_insert
        elif dialect == "sqlite":
            insert_fn = sqlite_insert
        else:
            return None

        stmt = insert_fn(OAuthToken).values(**values)
        update_values = {
            key: stmt.excluded[key]
            for key in values
            if key not in ("account_id", "created_at")
        }
        return stmt.on_conflict_do_update(
            index_elements=[OAuthToken.account_id],
            set_=update_values,
        )

    async def upsert(self, record: CredentialRecord) -> CredentialRecord:
        """
        Insert or replace the record for record.account_id atomically.

        Returns:
            The stored record with server-assigned timestamps

        Raises:
            PersistenceError: If the write fails
        """
        now = datetime.now(timezone.utc)
        values = {
            "account_id": record.account_id,
            "access_token_encrypted": record.access_token_encrypted,
            "refresh_token_encrypted": record.refresh_token_encrypted,
            "token_type": record.token_type or DEFAULT_TOKEN_TYPE,
            "scope": record.scope,
            "expires_at": _as_utc(record.expires_at),
            "created_at": now,
            "updated_at": now,
        }

        async with self._session("upsert") as session:
            stmt = self._upsert_statement(session, values)
            if stmt is not None:
                await session.execute(stmt)
            else:
                # Dialects without ON CONFLICT: lock the row and update in place
                result = await session.execute(
                    select(OAuthToken)
                    .where(OAuthToken.account_id == record.account_id)
                    .with_for_update()
                )
                row = result.scalar_one_or_none()
                if row is None:
                    session.add(OAuthToken(**values))
                else:
                    for key, value in values.items():
                        if key not in ("account_id", "created_at"):
                            setattr(row, key, value)
            await session.flush()

            result = await session.execute(
                select(OAuthToken).where(OAuthToken.account_id == record.account_id)
            )
            row = result.scalar_one()
            stored = CredentialRecord.from_model(row)

        logger.info(
            "Credential stored",
            extra={"account_id": record.account_id, "expires_at": stored.expires_at.isoformat()}
        )
        return stored

    async def get(self, account_id: str) -> CredentialRecord:
        """
        Fetch the record for an account.

        Raises:
            CredentialNotFoundError: If no record exists
            PersistenceError: If the read fails
        """
        async with self._session("get") as session:
            result = await session.execute(
                select(OAuthToken).where(OAuthToken.account_id == account_id)
            )
            row = result.scalar_one_or_none()
            if row is None:
                raise CredentialNotFoundError(account_id)
            return CredentialRecord.from_model(row)

    async def delete(self, account_id: str) -> None:
        """
        Physically delete the record for an account.

        Raises:
            CredentialNotFoundError: If nothing was deleted
        """
        async with self._session("delete") as session:
            result = await session.execute(
                delete(OAuthToken).where(OAuthToken.account_id == account_id)
            )
            if result.rowcount == 0:
                raise CredentialNotFoundError(account_id)

        logger.info("Credential deleted", extra={"account_id": account_id})

    async def append_audit(self, entry: UsageLogEntry) -> None:
        """
        Append one usage log entry.

        Raises:
            PersistenceError: If the insert fails. Callers treat this as
                non-fatal.
        """
        async with self._session("append_audit") as session:
            session.add(TokenUsageLog(
                account_id=entry.account_id,
                action=entry.action,
                success=entry.success,
                error_message=entry.error_message,
                created_at=entry.created_at or datetime.now(timezone.utc),
            ))

    async def list_audit(self, account_id: str, limit: int = DEFAULT_AUDIT_LIMIT) -> List[UsageLogEntry]:
        """
        List usage entries for an account, newest first.

        A limit of zero or less means DEFAULT_AUDIT_LIMIT; limits above
        MAX_AUDIT_LIMIT are capped.
        """
        if limit is None or limit <= 0:
            limit = DEFAULT_AUDIT_LIMIT
        limit = min(limit, MAX_AUDIT_LIMIT)

        async with self._session("list_audit") as session:
            result = await session.execute(
                select(TokenUsageLog)
                .where(TokenUsageLog.account_id == account_id)
                .order_by(TokenUsageLog.created_at.desc(), TokenUsageLog.id.desc())
                .limit(limit)
            )
            rows = result.scalars().all()
            return [UsageLogEntry.from_model(row) for row in rows]

    async def purge_expired(self, older_than: datetime) -> int:
        """
        Delete records whose expires_at is before older_than.

        Returns:
            Number of records removed
        """
        async with self._session("purge_expired") as session:
            result = await session.execute(
                delete(OAuthToken).where(OAuthToken.expires_at < _as_utc(older_than))
            )
            count = result.rowcount or 0

        logger.info(
            "Purged expired credentials",
            extra={"count": count, "older_than": _as_utc(older_than).isoformat()}
        )
        return count

    async def count_expired(self, older_than: datetime) -> int:
        """Count records purge_expired(older_than) would remove."""
        async with self._session("count_expired") as session:
            result = await session.execute(
                select(func.count(OAuthToken.id))
                .where(OAuthToken.expires_at < _as_utc(older_than))
            )
            return result.scalar_one()

    async def list_accounts(self) -> List[CredentialRecord]:
        """All stored records, ordered by account_id."""
        async with self._session("list_accounts") as session:
            result = await session.execute(
                select(OAuthToken).order_by(OAuthToken.account_id)
            )
            rows = result.scalars().all()
            return [CredentialRecord.from_model(row) for row in rows]
