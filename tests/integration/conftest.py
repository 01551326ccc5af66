import pytest
from dependency_injector import providers
from httpx import ASGITransport, AsyncClient

from integrations.constants.providers import Provider
from integrations.container import get_container, reset_container
from integrations.logging_config import configure_logging
from integrations.repositories.audit_log import AuditLogRepository
from integrations.repositories.company_credential import CompanyCredentialRepository
from integrations.repositories.connection_health import ConnectionHealthRepository
from integrations.services.audit_service import AuditService
from integrations.services.token_manager import TokenManager
from main import app


@pytest.fixture
async def integration_environment(session_factory, cipher, qbo_adapter, xero_adapter, clock):
    """Point the container at the test database and stub provider adapters."""
    reset_container()
    container = get_container()

    audit_service = AuditService(
        session_factory=session_factory,
        audit_log_repository_factory=AuditLogRepository,
        connection_health_repository_factory=ConnectionHealthRepository,
    )
    token_manager = TokenManager(
        session_factory=session_factory,
        credential_repository_factory=CompanyCredentialRepository,
        adapters={Provider.QBO: qbo_adapter, Provider.XERO: xero_adapter},
        cipher=cipher,
        audit_service=audit_service,
        refresh_buffer_ms=300_000,
        clock=clock,
    )

    container.db_session_factory.override(providers.Callable(lambda: session_factory))
    container.token_cipher.override(providers.Object(cipher))
    container.audit_service.override(providers.Object(audit_service))
    container.token_manager.override(providers.Object(token_manager))

    try:
        configure_logging()
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            yield {
                "client": client,
                "container": container,
                "token_manager": token_manager,
                "audit_service": audit_service,
                "qbo_adapter": qbo_adapter,
                "xero_adapter": xero_adapter,
            }
    finally:
        container.db_session_factory.reset_override()
        container.token_cipher.reset_override()
        container.audit_service.reset_override()
        container.token_manager.reset_override()
        reset_container()


__all__ = ["integration_environment"]
