"""
Dependency Injection Container.

Centralizes dependency configuration so the token manager, adapters and
audit sink can be swapped for fakes in tests.
"""

from dependency_injector import containers, providers

from .config import settings
from .constants.providers import Provider
from .models.db_helper import db_helper

# Repositories
from .repositories.company_credential import CompanyCredentialRepository
from .repositories.audit_log import AuditLogRepository
from .repositories.connection_health import ConnectionHealthRepository

# Providers
from .providers.quickbooks import QuickBooksAdapter
from .providers.xero import XeroAdapter

# Services
from .services.audit_service import AuditService
from .services.token_cipher import TokenCipher
from .services.token_manager import TokenManager


class Container(containers.DeclarativeContainer):
    """
    Application DI container.

    The token manager is a Singleton: its in-flight refresh registry must be
    shared by every caller in the process.
    """

    # Database infrastructure
    database_helper = providers.Object(db_helper)
    db_engine = providers.Callable(lambda helper: helper.engine, database_helper)
    db_session_factory = providers.Callable(lambda helper: helper.session_factory, database_helper)

    # Repository factories
    company_credential_repository_factory = providers.Factory(CompanyCredentialRepository)
    audit_log_repository_factory = providers.Factory(AuditLogRepository)
    connection_health_repository_factory = providers.Factory(ConnectionHealthRepository)

    token_cipher = providers.Singleton(
        TokenCipher,
        secret=settings.encryption.secret_key,
    )

    qbo_adapter = providers.Singleton(
        QuickBooksAdapter,
        qbo_settings=settings.quickbooks,
        timeout_seconds=settings.tokens.http_timeout_seconds,
    )

    xero_adapter = providers.Singleton(
        XeroAdapter,
        xero_settings=settings.xero,
        timeout_seconds=settings.tokens.http_timeout_seconds,
    )

    provider_adapters = providers.Dict(
        {
            Provider.QBO: qbo_adapter,
            Provider.XERO: xero_adapter,
        }
    )

    audit_service = providers.Singleton(
        AuditService,
        session_factory=db_session_factory,
        audit_log_repository_factory=audit_log_repository_factory.provider,
        connection_health_repository_factory=connection_health_repository_factory.provider,
    )

    token_manager = providers.Singleton(
        TokenManager,
        session_factory=db_session_factory,
        credential_repository_factory=company_credential_repository_factory.provider,
        adapters=provider_adapters,
        cipher=token_cipher,
        audit_service=audit_service,
        refresh_buffer_ms=settings.tokens.refresh_buffer_seconds * 1000,
    )


# Global container instance
container = Container()


def get_container() -> Container:
    """
    Get the global container instance.

    Used as a FastAPI dependency:
        container: Container = Depends(get_container)
    """
    return container


def reset_container():
    """
    Reset container for testing.

    Clears all singletons and allows fresh initialization.
    """
    container.reset_singletons()
