from .company_credential import CompanyCredentialRepository
from .audit_log import AuditLogRepository
from .connection_health import ConnectionHealthRepository

__all__ = [
    "CompanyCredentialRepository",
    "AuditLogRepository",
    "ConnectionHealthRepository",
]
