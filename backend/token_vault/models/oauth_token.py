"""
OAuthToken model - one encrypted upstream token pair per account.

SECURITY REQUIREMENTS:
- access_token_encrypted / refresh_token_encrypted hold AES-256-GCM blobs only
- Plaintext tokens never reach this table
- repr never includes token columns

Delete policy: rows are physically deleted. Usage log entries reference
the account by account_id string, so the audit trail survives deletion.
"""

from sqlalchemy import (
    Column, Integer, String, DateTime, Text, Index, UniqueConstraint
)

from token_vault.db_base import Base
from token_vault.models.base import TimestampMixin

DEFAULT_TOKEN_TYPE = "Bearer"


class OAuthToken(Base, TimestampMixin):
    """
    Encrypted OAuth credential for a single account.

    At most one row exists per account_id (unique constraint); writes go
    through an atomic insert-or-update keyed on that column.
    """

    __tablename__ = "oauth_tokens"

    id = Column(
        Integer,
        primary_key=True,
        autoincrement=True,
        comment="Surrogate primary key"
    )
    account_id = Column(
        String(255),
        nullable=False,
        comment="Opaque account identifier (unique)"
    )

    # Encrypted tokens - NEVER log these values
    access_token_encrypted = Column(
        Text,
        nullable=False,
        comment="base64(nonce || ciphertext || tag) - NEVER log"
    )
    refresh_token_encrypted = Column(
        Text,
        nullable=False,
        comment="base64(nonce || ciphertext || tag) - NEVER log"
    )

    # Token metadata (safe to log)
    token_type = Column(
        String(50),
        nullable=False,
        default=DEFAULT_TOKEN_TYPE,
        comment="Token type (Bearer, etc.)"
    )
    scope = Column(
        Text,
        nullable=True,
        comment="Upstream-granted scope"
    )
    expires_at = Column(
        DateTime(timezone=True),
        nullable=False,
        comment="When the access token stops being presentable upstream"
    )

    __table_args__ = (
        UniqueConstraint("account_id", name="uq_oauth_tokens_account_id"),
        Index("ix_oauth_tokens_expires_at", "expires_at"),
    )

    def __repr__(self) -> str:
        """Safe repr - NEVER include token values."""
        return (
            f"<OAuthToken("
            f"account_id={self.account_id}, "
            f"token_type={self.token_type}, "
            f"expires_at={self.expires_at})>"
        )
