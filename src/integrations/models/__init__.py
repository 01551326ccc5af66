__all__ = (
    "Base",
    "DatabaseHelper",
    "db_helper",
    "CompanyCredential",
    "AuditLog",
    "ConnectionHealth",
)

from .base import Base
from .db_helper import DatabaseHelper, db_helper
from .company_credential import CompanyCredential
from .audit_log import AuditLog
from .connection_health import ConnectionHealth
