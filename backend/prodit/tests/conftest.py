"""
Shared fixtures for Prodit tests.

- An in-memory SQLite engine with the schema created
- A throwaway encryption key, cipher and CredentialStore
- A FakeXero behind an httpx.AsyncClient (MockTransport)
"""

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from prodit.config.settings import Settings
from prodit.credentials.cipher import CredentialCipher
from prodit.credentials.store import CredentialStore
from prodit.database.session import create_session_factory, init_schema
from prodit.tests.fakes import FakeXero


@pytest.fixture
def token_key() -> str:
    return CredentialCipher.generate_key_string()


@pytest.fixture
def cipher(token_key) -> CredentialCipher:
    return CredentialCipher.from_base64(token_key)


@pytest.fixture
def settings(token_key) -> Settings:
    return Settings(
        database_url="sqlite://",
        token_key=token_key,
        xero_client_id="client-id",
        xero_client_secret="client-secret",
        public_url="https://prodit.test",
    )


@pytest.fixture
def engine():
    """In-memory SQLite shared by every session in the test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_schema(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(engine):
    session = create_session_factory(engine)()
    yield session
    session.close()


@pytest.fixture
def store(db_session, cipher) -> CredentialStore:
    return CredentialStore(db_session, cipher)


@pytest.fixture
def fake_xero() -> FakeXero:
    return FakeXero()


@pytest.fixture
def http_client(fake_xero) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(fake_xero.handler))
