"""Audit trail and connection health bookkeeping for provider connections."""

from __future__ import annotations

import logging
from typing import Callable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..constants.providers import HealthStatus, Provider
from ..errors import AuditQueryError
from ..models.audit_log import AuditLog
from ..repositories.audit_log import AuditLogRepository
from ..repositories.connection_health import ConnectionHealthRepository
from ..schemas.connection import ApiCallLog, ApiCallRecord, ConnectionHealthRecord

logger = logging.getLogger(__name__)


class AuditService:
    """
    Writes are fire-and-forget: a broken audit table must never abort the
    token operation that triggered the write. Reads raise AuditQueryError.
    """

    def __init__(
        self,
        *,
        session_factory: async_sessionmaker[AsyncSession],
        audit_log_repository_factory: Callable[..., AuditLogRepository],
        connection_health_repository_factory: Callable[..., ConnectionHealthRepository],
    ):
        self.session_factory = session_factory
        self.audit_log_repository_factory = audit_log_repository_factory
        self.connection_health_repository_factory = connection_health_repository_factory

    async def log_api_call(self, entry: ApiCallLog) -> None:
        try:
            async with self.session_factory() as session:
                repo = self.audit_log_repository_factory(session=session)
                await repo.create(
                    AuditLog(
                        user_id=entry.user_id,
                        company_id=entry.company_id,
                        api_endpoint=entry.api_endpoint,
                        connection_type=entry.connection_type.value,
                        request_method=entry.request_method,
                        response_status=entry.response_status,
                        ip_address=entry.ip_address,
                        user_agent=entry.user_agent,
                        error_message=entry.error_message,
                        response_time=entry.response_time,
                    )
                )
                await session.commit()
        except Exception:
            logger.exception(
                "Failed to write audit log | company_id=%s | endpoint=%s",
                entry.company_id,
                entry.api_endpoint,
            )

    async def update_connection_health(
        self,
        company_id: str,
        provider: Provider,
        status: HealthStatus,
        error_message: Optional[str] = None,
    ) -> None:
        try:
            async with self.session_factory() as session:
                repo = self.connection_health_repository_factory(session=session)
                await repo.upsert(
                    company_id=company_id,
                    connection_type=provider.value,
                    status=status.value,
                    error_message=error_message,
                )
                await session.commit()
        except Exception:
            logger.exception(
                "Failed to update connection health | company_id=%s | provider=%s | status=%s",
                company_id,
                provider.value,
                status.value,
            )

    async def get_connection_health(self, company_id: str) -> List[ConnectionHealthRecord]:
        try:
            async with self.session_factory() as session:
                repo = self.connection_health_repository_factory(session=session)
                rows = await repo.list_for_company(company_id)
        except SQLAlchemyError as exc:
            logger.error("Failed to read connection health | company_id=%s | error=%s", company_id, exc)
            raise AuditQueryError(f"Failed to read connection health for company {company_id}") from exc
        return [ConnectionHealthRecord.model_validate(row) for row in rows]

    async def get_recent_api_calls(self, company_id: str, limit: int = 50) -> List[ApiCallRecord]:
        try:
            async with self.session_factory() as session:
                repo = self.audit_log_repository_factory(session=session)
                rows = await repo.get_recent_for_company(company_id, limit=limit)
        except SQLAlchemyError as exc:
            logger.error("Failed to read audit logs | company_id=%s | error=%s", company_id, exc)
            raise AuditQueryError(f"Failed to read audit logs for company {company_id}") from exc
        return [ApiCallRecord.model_validate(row) for row in rows]
