"""
Tests for environment-driven configuration and engine setup.
"""

from dataclasses import FrozenInstanceError
from datetime import timedelta

import pytest

from token_vault.config.settings import (
    DEFAULT_AUDIT_QUEUE_SIZE,
    DEFAULT_CLIENT_ID,
    DEFAULT_DATABASE_URL,
    DEFAULT_REFRESH_LEAD_SECONDS,
    DEFAULT_TOKEN_URL,
    ConfigurationError,
    TokenVaultConfig,
)
from token_vault.database.session import create_db_engine, normalize_database_url


# =============================================================================
# TokenVaultConfig.from_env
# =============================================================================

class TestFromEnv:

    def test_missing_key_raises(self):
        with pytest.raises(ConfigurationError) as exc_info:
            TokenVaultConfig.from_env({})

        assert "TOKEN_ENCRYPTION_KEY" in str(exc_info.value)

    def test_empty_key_raises(self):
        with pytest.raises(ConfigurationError):
            TokenVaultConfig.from_env({"TOKEN_ENCRYPTION_KEY": ""})

    def test_defaults(self):
        config = TokenVaultConfig.from_env({"TOKEN_ENCRYPTION_KEY": "k" * 32})

        assert config.database_url == DEFAULT_DATABASE_URL
        assert config.token_url == DEFAULT_TOKEN_URL
        assert config.client_id == DEFAULT_CLIENT_ID
        assert config.refresh_lead_seconds == DEFAULT_REFRESH_LEAD_SECONDS
        assert config.audit_queue_size == DEFAULT_AUDIT_QUEUE_SIZE
        assert config.jwt_secret is None
        assert config.lead_time == timedelta(minutes=5)
        assert config.retention == timedelta(days=7)

    def test_overrides(self):
        config = TokenVaultConfig.from_env({
            "TOKEN_ENCRYPTION_KEY": "k" * 32,
            "DATABASE_URL": "postgresql://db/vault",
            "OAUTH_TOKEN_URL": "https://auth.example.test/token",
            "OAUTH_PROBE_URL": "https://api.example.test/me",
            "OAUTH_CLIENT_ID": "client-x",
            "OAUTH_SCOPE": "read",
            "UPSTREAM_TIMEOUT_SECONDS": "5",
            "TOKEN_REFRESH_LEAD_SECONDS": "60",
            "TOKEN_RETENTION_DAYS": "30",
            "AUDIT_QUEUE_SIZE": "10",
            "JWT_SECRET": "jwt",
        })

        assert config.database_url == "postgresql://db/vault"
        assert config.token_url == "https://auth.example.test/token"
        assert config.probe_url == "https://api.example.test/me"
        assert config.client_id == "client-x"
        assert config.scope == "read"
        assert config.upstream_timeout_seconds == 5
        assert config.lead_time == timedelta(seconds=60)
        assert config.retention == timedelta(days=30)
        assert config.audit_queue_size == 10
        assert config.jwt_secret == "jwt"

    def test_blank_numeric_uses_default(self):
        config = TokenVaultConfig.from_env({
            "TOKEN_ENCRYPTION_KEY": "k" * 32,
            "TOKEN_REFRESH_LEAD_SECONDS": "  ",
        })

        assert config.refresh_lead_seconds == DEFAULT_REFRESH_LEAD_SECONDS

    def test_non_integer_raises(self):
        with pytest.raises(ConfigurationError) as exc_info:
            TokenVaultConfig.from_env({
                "TOKEN_ENCRYPTION_KEY": "k" * 32,
                "TOKEN_RETENTION_DAYS": "a week",
            })

        assert "TOKEN_RETENTION_DAYS" in str(exc_info.value)

    @pytest.mark.parametrize("name", ["UPSTREAM_TIMEOUT_SECONDS", "AUDIT_QUEUE_SIZE"])
    def test_zero_rejected_where_minimum_is_one(self, name):
        with pytest.raises(ConfigurationError):
            TokenVaultConfig.from_env({"TOKEN_ENCRYPTION_KEY": "k" * 32, name: "0"})

    def test_negative_lead_rejected(self):
        with pytest.raises(ConfigurationError):
            TokenVaultConfig.from_env({
                "TOKEN_ENCRYPTION_KEY": "k" * 32,
                "TOKEN_REFRESH_LEAD_SECONDS": "-1",
            })

    def test_reads_process_environment(self, monkeypatch):
        monkeypatch.setenv("TOKEN_ENCRYPTION_KEY", "from-process-env-key-0123456789ab")
        monkeypatch.setenv("OAUTH_CLIENT_ID", "env-client")

        config = TokenVaultConfig.from_env()

        assert config.client_id == "env-client"

    def test_repr_hides_secrets(self):
        config = TokenVaultConfig(encryption_key="super-secret-key", jwt_secret="jwt-secret")

        text = repr(config)

        assert "super-secret-key" not in text
        assert "jwt-secret" not in text
        assert "database_url" in text

    def test_is_immutable(self):
        config = TokenVaultConfig(encryption_key="k")

        with pytest.raises(FrozenInstanceError):
            config.client_id = "other"


# =============================================================================
# Database URL and engine
# =============================================================================

class TestDatabaseSetup:

    def test_legacy_postgres_scheme_uses_asyncpg(self):
        assert normalize_database_url("postgres://u:p@h/db") == "postgresql+asyncpg://u:p@h/db"

    def test_plain_urls_get_async_drivers(self):
        assert normalize_database_url("postgresql://h/db") == "postgresql+asyncpg://h/db"
        assert normalize_database_url("sqlite:///./x.db") == "sqlite+aiosqlite:///./x.db"

    def test_explicit_driver_unchanged(self):
        assert normalize_database_url("postgresql+asyncpg://h/db") == "postgresql+asyncpg://h/db"
        assert normalize_database_url("sqlite+aiosqlite:///x.db") == "sqlite+aiosqlite:///x.db"

    async def test_in_memory_sqlite_shares_connection(self):
        engine = create_db_engine("sqlite://")
        try:
            assert engine.dialect.driver == "aiosqlite"
            assert engine.sync_engine.pool.__class__.__name__ == "StaticPool"
        finally:
            await engine.dispose()

    async def test_file_sqlite_uses_regular_pool(self, tmp_path):
        engine = create_db_engine(f"sqlite:///{tmp_path}/vault.db")
        try:
            assert engine.sync_engine.pool.__class__.__name__ != "StaticPool"
        finally:
            await engine.dispose()
