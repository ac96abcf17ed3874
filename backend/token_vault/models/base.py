"""
Shared column mixins for ORM models.
"""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime


def utc_now() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(timezone.utc)


class TimestampMixin:
    """Server-assigned created_at / updated_at columns."""

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
        comment="When the row was first inserted"
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
        comment="When the row was last modified"
    )
