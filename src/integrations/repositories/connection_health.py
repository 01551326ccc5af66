"""Repository for per-connection health snapshots."""

from __future__ import annotations

from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .base import BaseRepository
from ..models.connection_health import ConnectionHealth
from ..utils.time import now_db_utc


class ConnectionHealthRepository(BaseRepository[ConnectionHealth]):
    def __init__(self, session: AsyncSession):
        super().__init__(ConnectionHealth, session)

    async def get(self, company_id: str, connection_type: str) -> Optional[ConnectionHealth]:
        return await self.find_one(
            ConnectionHealth.company_id == company_id,
            ConnectionHealth.connection_type == connection_type,
        )

    async def upsert(
        self,
        *,
        company_id: str,
        connection_type: str,
        status: str,
        error_message: Optional[str] = None,
    ) -> ConnectionHealth:
        existing = await self.get(company_id, connection_type)
        fields = {"status": status, "error_message": error_message, "last_checked": now_db_utc()}
        if existing:
            return await self.apply(existing, fields)
        return await self.create(ConnectionHealth(company_id=company_id, connection_type=connection_type, **fields))

    async def list_for_company(self, company_id: str) -> List[ConnectionHealth]:
        stmt = (
            select(ConnectionHealth)
            .where(ConnectionHealth.company_id == company_id)
            .order_by(ConnectionHealth.last_checked.desc())
        )
        return await self.fetch_all(stmt)
