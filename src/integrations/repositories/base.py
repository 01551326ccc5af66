"""Base repository pattern for data access abstraction."""

from typing import Any, Generic, List, Mapping, Optional, Type, TypeVar

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.base import Base

T = TypeVar('T', bound=Base)


class BaseRepository(Generic[T]):
    """
    Generic repository over one connection table.

    Writes flush but never commit; the caller owns the transaction.
    """

    def __init__(self, model: Type[T], session: AsyncSession):
        self.model = model
        self.session = session

    async def find_one(self, *criteria) -> Optional[T]:
        """First row matching all criteria, lowest id first."""
        stmt = select(self.model).where(*criteria).order_by(self.model.id).limit(1)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def fetch_all(self, stmt: Select) -> List[T]:
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def create(self, entity: T) -> T:
        self.session.add(entity)
        await self.session.flush()
        return entity

    async def apply(self, entity: T, fields: Mapping[str, Any]) -> T:
        """Overwrite each given column on ``entity``."""
        for name, value in fields.items():
            setattr(entity, name, value)
        await self.session.flush()
        return entity
