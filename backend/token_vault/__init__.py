"""
Token Vault - custody service for upstream OAuth credentials.

Stores one access/refresh token pair per account, encrypted at rest,
refreshes it against the upstream authorization server before it expires,
and validates it locally and against a protected upstream resource.
"""

__version__ = "1.0.0"
