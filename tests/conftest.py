"""
Pytest configuration and shared fixtures for all tests.

This file provides:
- Database fixtures (in-memory SQLite for fast tests)
- A controllable clock and stub provider adapters
- A TokenManager wired to the test database
"""

import os
import sys

import pytest

# Prepopulate required env vars for settings before imports
os.environ.setdefault("APP_SECRET", "dummy_app_secret")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("AES_SECRET_KEY", "0f1e2d3c4b5a69788796a5b4c3d2e1f00f1e2d3c4b5a69788796a5b4c3d2e1f0")
os.environ.setdefault("QUICKBOOKS_CLIENT_ID", "dummy_qbo_client_id")
os.environ.setdefault("QUICKBOOKS_CLIENT_SECRET", "dummy_qbo_client_secret")
os.environ.setdefault("QUICKBOOKS_REDIRECT_URI", "https://app.test/api/v1/oauth/qbo/callback")
os.environ.setdefault("QUICKBOOKS_ENVIRONMENT", "sandbox")
os.environ.setdefault("XERO_CLIENT_ID", "dummy_xero_client_id")
os.environ.setdefault("XERO_CLIENT_SECRET", "dummy_xero_client_secret")
os.environ.setdefault("XERO_REDIRECT_URI", "https://app.test/api/v1/oauth/xero/callback")

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from integrations.config import settings
from integrations.constants.providers import Provider
from integrations.models import Base, CompanyCredential
from integrations.repositories.company_credential import CompanyCredentialRepository, token_fields
from integrations.services.token_cipher import TokenCipher
from integrations.services.token_manager import TokenManager
from tests.helpers import FakeClock, RecordingAuditService, StubAdapter


# ============================================================================
# DATABASE FIXTURES
# ============================================================================


@pytest.fixture
async def test_engine():
    """Create an in-memory SQLite database engine for testing."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory):
    """Create a database session for testing."""
    async with session_factory() as session:
        yield session
        await session.rollback()


# ============================================================================
# TOKEN MANAGER FIXTURES
# ============================================================================


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cipher() -> TokenCipher:
    return TokenCipher(settings.encryption.secret_key)


@pytest.fixture
def audit_service() -> RecordingAuditService:
    return RecordingAuditService()


@pytest.fixture
def qbo_adapter(clock) -> StubAdapter:
    return StubAdapter(Provider.QBO, clock)


@pytest.fixture
def xero_adapter(clock) -> StubAdapter:
    return StubAdapter(Provider.XERO, clock)


@pytest.fixture
def token_manager(session_factory, cipher, audit_service, qbo_adapter, xero_adapter, clock) -> TokenManager:
    return TokenManager(
        session_factory=session_factory,
        credential_repository_factory=CompanyCredentialRepository,
        adapters={Provider.QBO: qbo_adapter, Provider.XERO: xero_adapter},
        cipher=cipher,
        audit_service=audit_service,
        refresh_buffer_ms=300_000,
        clock=clock,
    )


@pytest.fixture
def credential_factory(session_factory, cipher):
    """Persist a credential row holding an encrypted record (or a raw blob) for a provider."""

    async def _create(
        company_id: str,
        provider: Provider,
        record=None,
        *,
        blob: str | None = None,
        account_id: str | None = None,
        connection_type: str | None = None,
    ) -> CompanyCredential:
        if blob is None and record is not None:
            blob = cipher.seal(record.to_json())
        if account_id is None and record is not None:
            account_id = record.account_id
        fields = token_fields(provider, blob, account_id)
        fields["connection_type"] = connection_type or provider.value
        async with session_factory() as session:
            repo = CompanyCredentialRepository(session)
            credential = await repo.upsert(company_id, fields)
            await session.commit()
            return credential

    return _create
