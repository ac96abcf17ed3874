"""Upstream OAuth authorization server client."""

from token_vault.integrations.oauth.client import OAuthUpstreamClient, TokenGrant

__all__ = ["OAuthUpstreamClient", "TokenGrant"]
