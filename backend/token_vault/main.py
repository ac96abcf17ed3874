"""
Token vault application entry point.

Run with:
    uvicorn token_vault.main:app
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI

from token_vault import __version__
from token_vault.api.routes import health, tokens
from token_vault.config.settings import TokenVaultConfig
from token_vault.credentials.lifecycle import TokenLifecycleManager
from token_vault.credentials.redaction import setup_credential_logging
from token_vault.database.session import create_db_engine, create_session_factory, init_db
from token_vault.platform.errors import AppError, ErrorHandlerMiddleware, app_error_handler

logger = logging.getLogger(__name__)


def create_app(
    config: Optional[TokenVaultConfig] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        config: Explicit configuration; read from the environment at
            start-up when omitted
        transport: Optional httpx transport for the upstream client
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        settings = config or TokenVaultConfig.from_env()
        setup_credential_logging()

        engine = create_db_engine(settings.database_url)
        await init_db(engine)
        manager = TokenLifecycleManager.from_config(
            settings,
            create_session_factory(engine),
            transport=transport,
        )
        manager.audit.start()

        if not settings.jwt_secret:
            logger.warning("JWT_SECRET not set; all token routes will reject callers")

        app.state.config = settings
        app.state.lifecycle_manager = manager
        logger.info("Token vault started", extra={"version": __version__})
        try:
            yield
        finally:
            await manager.close()
            await engine.dispose()
            app.state.lifecycle_manager = None
            logger.info("Token vault stopped")

    app = FastAPI(title="Token Vault", version=__version__, lifespan=lifespan)
    app.add_middleware(ErrorHandlerMiddleware)
    app.add_exception_handler(AppError, app_error_handler)
    app.include_router(health.router)
    app.include_router(tokens.router)
    return app


app = create_app()
