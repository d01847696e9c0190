"""
Prodit application factory.

create_app() wires the process-wide pieces once:
- Settings and the credential cipher (a bad key fails startup)
- Database engine, schema and session factory
- Shared httpx client and the per-tenant refresh lock registry
- Error handling, caller context and credential-safe logging

Run with:
    uvicorn --factory prodit.main:create_app
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI
from sqlalchemy.engine import Engine

from prodit.api.routes import connections, health, items, xero_auth
from prodit.config.settings import Settings, get_settings
from prodit.credentials.cipher import CredentialCipher
from prodit.credentials.redaction import setup_credential_logging
from prodit.database.session import create_db_engine, create_session_factory, init_schema
from prodit.integrations.xero.pipeline import RefreshLocks
from prodit.platform.caller_context import CallerContextMiddleware, CallerResolver
from prodit.platform.errors import AppError, ErrorHandlerMiddleware, app_error_handler

logger = logging.getLogger(__name__)


def _anonymous(request) -> None:
    return None


def create_app(
    settings: Optional[Settings] = None,
    engine: Optional[Engine] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    caller_resolver: Optional[CallerResolver] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Defaults to values from the environment
        engine: Defaults to an engine for settings.database_url
        http_client: Defaults to a client created on startup and closed on shutdown
        caller_resolver: Maps a request to the signed-in CallerIdentity

    Raises:
        ConfigError: If the token encryption key is missing or malformed
    """
    settings = settings or get_settings()
    setup_credential_logging()

    cipher = CredentialCipher.from_base64(settings.token_key)
    engine = engine or create_db_engine(settings.database_url)
    init_schema(engine)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owns_client = getattr(app.state, "http_client", None) is None
        if owns_client:
            app.state.http_client = httpx.AsyncClient(timeout=settings.http_timeout_seconds)
        logger.info(
            "Prodit started",
            extra={"environment": settings.environment, "public_url": settings.public_url},
        )
        try:
            yield
        finally:
            if owns_client:
                await app.state.http_client.aclose()
                app.state.http_client = None

    app = FastAPI(title="Prodit", version="3.0.0", lifespan=lifespan)

    app.state.settings = settings
    app.state.cipher = cipher
    app.state.engine = engine
    app.state.session_factory = create_session_factory(engine)
    app.state.refresh_locks = RefreshLocks()
    app.state.http_client = http_client

    app.add_middleware(CallerContextMiddleware, resolver=caller_resolver or _anonymous)
    app.add_middleware(ErrorHandlerMiddleware)
    app.add_exception_handler(AppError, app_error_handler)

    app.include_router(health.router)
    app.include_router(xero_auth.router)
    app.include_router(connections.router)
    app.include_router(items.router)

    return app
