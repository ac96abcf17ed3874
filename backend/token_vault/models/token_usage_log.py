"""
TokenUsageLog model - append-only usage/audit trail per account.

CRITICAL: This table is append-only. The store exposes inserts and reads
only; entries are never updated or deleted, not even when the account's
token row is removed.
"""

import enum

from sqlalchemy import Column, Integer, String, DateTime, Text, Boolean, Index

from token_vault.db_base import Base
from token_vault.models.base import utc_now


class UsageAction(str, enum.Enum):
    """Actions recorded in the usage log."""
    CREATE = "create"
    REFRESH = "refresh"
    VALIDATE = "validate"
    DELETE = "delete"


class TokenUsageLog(Base):
    """Single usage/audit entry."""

    __tablename__ = "token_usage_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    account_id = Column(String(255), nullable=False, index=True)
    action = Column(String(20), nullable=False)
    success = Column(Boolean, nullable=False, default=True)
    error_message = Column(Text, nullable=True)  # Redacted before insert
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)

    __table_args__ = (
        Index("ix_token_usage_logs_account_created", "account_id", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<TokenUsageLog(account_id={self.account_id}, "
            f"action={self.action}, success={self.success})>"
        )
