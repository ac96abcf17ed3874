"""
Client for the upstream OAuth authorization server.

Two calls:
- refresh_token(): POST JSON refresh grant to the token endpoint
- probe(): GET a protected resource with the access token as bearer

SECURITY:
- Request and response bodies are never logged
- Error messages carry status codes only
"""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from token_vault.credentials.errors import (
    DecodeFailureError,
    UpstreamRejectedError,
    UpstreamUnreachableError,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0


@dataclass
class TokenGrant:
    """Token endpoint response. refresh_token/token_type/scope may be absent."""
    access_token: str
    expires_in: int
    refresh_token: Optional[str] = None
    token_type: Optional[str] = None
    scope: Optional[str] = None

    def __repr__(self) -> str:
        return f"TokenGrant(expires_in={self.expires_in}, token_type={self.token_type!r})"


def _parse_grant(data) -> TokenGrant:
    if not isinstance(data, dict):
        raise DecodeFailureError("Token endpoint returned a non-object body")

    access_token = data.get("access_token")
    if not isinstance(access_token, str) or not access_token:
        raise DecodeFailureError("Token endpoint response missing access_token")

    expires_in = data.get("expires_in")
    if isinstance(expires_in, bool) or not isinstance(expires_in, (int, float)) or expires_in <= 0:
        raise DecodeFailureError("Token endpoint response missing or invalid expires_in")

    refresh_token = data.get("refresh_token")
    if not isinstance(refresh_token, str) or not refresh_token:
        refresh_token = None

    token_type = data.get("token_type")
    scope = data.get("scope")
    return TokenGrant(
        access_token=access_token,
        expires_in=int(expires_in),
        refresh_token=refresh_token,
        token_type=token_type if isinstance(token_type, str) and token_type else None,
        scope=scope if isinstance(scope, str) and scope else None,
    )


class OAuthUpstreamClient:
    """
    httpx-based client for the token endpoint and the protected probe.

    One AsyncClient is shared by all calls; no internal retries.
    """

    def __init__(
        self,
        token_url: str,
        probe_url: str,
        client_id: str,
        scope: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize upstream client.

        Args:
            token_url: OAuth token endpoint
            probe_url: Protected resource used to check an access token
            client_id: OAuth client id sent with refresh grants
            scope: Scope requested on refresh
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (tests use MockTransport)
        """
        self.token_url = token_url
        self.probe_url = probe_url
        self.client_id = client_id
        self.scope = scope

        self._client = httpx.AsyncClient(
            headers={"Accept": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    async def close(self):
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def refresh_token(self, refresh_token: str) -> TokenGrant:
        """
        Exchange a refresh token for a new access token.

        Raises:
            UpstreamUnreachableError: Transport failure or timeout
            UpstreamRejectedError: Non-200 response
            DecodeFailureError: Body is not JSON or lacks required fields
        """
        payload = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": self.client_id,
        }
        if self.scope:
            payload["scope"] = self.scope

        try:
            response = await self._client.post(self.token_url, json=payload)
        except httpx.TransportError as e:
            logger.warning(
                "Token endpoint unreachable",
                extra={"error_type": type(e).__name__}
            )
            raise UpstreamUnreachableError() from e

        if response.status_code != 200:
            logger.warning(
                "Token endpoint rejected refresh",
                extra={"upstream_status": response.status_code}
            )
            raise UpstreamRejectedError(response.status_code)

        try:
            data = response.json()
        except ValueError as e:
            raise DecodeFailureError("Token endpoint returned invalid JSON") from e

        return _parse_grant(data)

    async def probe(self, access_token: str) -> int:
        """
        Call the protected resource with the access token.

        Returns:
            HTTP status code (200 means the token is accepted)

        Raises:
            UpstreamUnreachableError: Transport failure or timeout
        """
        try:
            response = await self._client.get(
                self.probe_url,
                headers={"Authorization": f"Bearer {access_token}"},
            )
        except httpx.TransportError as e:
            logger.warning(
                "Probe endpoint unreachable",
                extra={"error_type": type(e).__name__}
            )
            raise UpstreamUnreachableError() from e

        logger.debug("Probe completed", extra={"upstream_status": response.status_code})
        return response.status_code
