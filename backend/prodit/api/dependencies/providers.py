"""
Service providers for route handlers.

Application-wide objects (cipher, http client, refresh locks, settings)
live on app.state and are created once in create_app(). Anything bound to
a database session is built per request.
"""

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from prodit.credentials.store import CredentialStore
from prodit.database.session import get_db_session
from prodit.integrations.xero.oauth import TokenLifecycleManager
from prodit.integrations.xero.pipeline import RequestPipeline
from prodit.services.catalog_service import CatalogService
from prodit.services.xero_connection_service import XeroConnectionService


def get_credential_store(
    request: Request,
    db_session: Session = Depends(get_db_session),
) -> CredentialStore:
    return CredentialStore(db_session, request.app.state.cipher)


def get_token_manager(request: Request) -> TokenLifecycleManager:
    return TokenLifecycleManager(request.app.state.settings, request.app.state.http_client)


def get_request_pipeline(
    request: Request,
    store: CredentialStore = Depends(get_credential_store),
    manager: TokenLifecycleManager = Depends(get_token_manager),
) -> RequestPipeline:
    state = request.app.state
    return RequestPipeline(store, manager, state.http_client, state.settings, state.refresh_locks)


def get_connection_service(
    store: CredentialStore = Depends(get_credential_store),
    manager: TokenLifecycleManager = Depends(get_token_manager),
) -> XeroConnectionService:
    return XeroConnectionService(store, manager)


def get_catalog_service(
    pipeline: RequestPipeline = Depends(get_request_pipeline),
) -> CatalogService:
    return CatalogService(pipeline)
