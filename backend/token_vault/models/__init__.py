"""
Database models for token custody.

Importing this package registers every table on Base.metadata.
"""

from token_vault.models.base import TimestampMixin, utc_now
from token_vault.models.oauth_token import OAuthToken, DEFAULT_TOKEN_TYPE
from token_vault.models.token_usage_log import TokenUsageLog, UsageAction

__all__ = [
    "TimestampMixin",
    "utc_now",
    "OAuthToken",
    "DEFAULT_TOKEN_TYPE",
    "TokenUsageLog",
    "UsageAction",
]
