"""
Shared pytest fixtures for token vault tests.

Upstream OAuth calls are served by FakeUpstream through httpx.MockTransport;
persistence uses a file-backed SQLite database (aiosqlite) per test.
"""

import base64
import json
import logging
from io import StringIO

import httpx
import pytest

from token_vault.config.settings import TokenVaultConfig
from token_vault.credentials.lifecycle import TokenLifecycleManager
from token_vault.credentials.redaction import CredentialLoggingFilter
from token_vault.credentials.store import CredentialStore
from token_vault.database.session import create_db_engine, create_session_factory, init_db
from token_vault.utils.encryption import TokenCipher

TEST_KEY = bytes(range(32))
TOKEN_URL = "https://auth.example.test/oauth2/v3/token"
PROBE_URL = "https://api.example.test/api/1/vehicles"
JWT_SECRET = "test-jwt-secret-not-real"


class FakeUpstream:
    """
    Scriptable upstream authorization server.

    token_responses / probe_responses are consumed in order. Each item is
    a status code, a JSON dict (served with 200), an httpx.Response, or
    one of the CONNECT_ERROR / TIMEOUT class sentinels. When a script runs
    out, refreshes return a fresh grant and probes return default_probe_status.
    """

    CONNECT_ERROR = "connect_error"
    TIMEOUT = "timeout"

    def __init__(self):
        self.token_responses = []
        self.probe_responses = []
        self.token_requests = []
        self.probe_requests = []
        self.default_probe_status = 200
        self.token_gate = None  # asyncio.Event that holds token responses
        self._grants_issued = 0

    def next_grant(self) -> dict:
        self._grants_issued += 1
        return {
            "access_token": f"new-access-{self._grants_issued}",
            "refresh_token": f"new-refresh-{self._grants_issued}",
            "expires_in": 3600,
            "token_type": "Bearer",
        }

    def token_bodies(self) -> list:
        return [json.loads(request.content) for request in self.token_requests]

    def probe_tokens(self) -> list:
        return [request.headers["Authorization"] for request in self.probe_requests]

    async def handler(self, request: httpx.Request) -> httpx.Response:
        if str(request.url) == TOKEN_URL:
            self.token_requests.append(request)
            if self.token_gate is not None:
                await self.token_gate.wait()
            outcome = self.token_responses.pop(0) if self.token_responses else self.next_grant()
        else:
            self.probe_requests.append(request)
            outcome = self.probe_responses.pop(0) if self.probe_responses else self.default_probe_status

        if outcome == self.CONNECT_ERROR:
            raise httpx.ConnectError("upstream down", request=request)
        if outcome == self.TIMEOUT:
            raise httpx.ReadTimeout("upstream slow", request=request)
        if isinstance(outcome, int):
            return httpx.Response(outcome, json={"error": "rejected"})
        if isinstance(outcome, dict):
            return httpx.Response(200, json=outcome)
        return outcome


@pytest.fixture
def cipher():
    return TokenCipher(TEST_KEY)


@pytest.fixture
def config(tmp_path):
    return TokenVaultConfig(
        encryption_key=base64.b64encode(TEST_KEY).decode("ascii"),
        database_url=f"sqlite:///{tmp_path}/vault.db",
        token_url=TOKEN_URL,
        probe_url=PROBE_URL,
        client_id="test-client",
        scope="openid offline_access",
        jwt_secret=JWT_SECRET,
    )


@pytest.fixture
async def engine(config):
    engine = create_db_engine(config.database_url)
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def store(session_factory):
    return CredentialStore(session_factory)


@pytest.fixture
def upstream():
    return FakeUpstream()


@pytest.fixture
def transport(upstream):
    return httpx.MockTransport(upstream.handler)


@pytest.fixture
async def manager(config, session_factory, transport):
    """Lifecycle manager with inline audit writes (dispatcher not started)."""
    manager = TokenLifecycleManager.from_config(config, session_factory, transport=transport)
    yield manager
    await manager.close()


@pytest.fixture
def log_capture():
    """Capture token_vault log output for testing token leakage."""
    log_stream = StringIO()
    handler = logging.StreamHandler(log_stream)
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter('%(levelname)s %(name)s %(message)s'))
    handler.addFilter(CredentialLoggingFilter())

    logger = logging.getLogger("token_vault")
    previous_level = logger.level
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)

    yield log_stream

    logger.removeHandler(handler)
    logger.setLevel(previous_level)

