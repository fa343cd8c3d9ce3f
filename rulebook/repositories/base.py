"""Shared data access for rulebook entities."""

from typing import Generic, Optional, Sequence, TypeVar
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from rulebook.models.base import RulebookBase

EntityT = TypeVar("EntityT", bound=RulebookBase)


class BaseRepository(Generic[EntityT]):
    """Lookups by primary key plus add/remove for one model class.

    Repositories flush but never commit: the service or router owning the
    unit of work decides when a transaction ends.
    """

    model_class: type[EntityT]

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, id: UUID) -> Optional[EntityT]:
        return await self.session.get(self.model_class, id)

    async def get_by_ids(self, ids: Sequence[UUID]) -> Sequence[EntityT]:
        if not ids:
            return []
        result = await self.session.execute(select(self.model_class).where(self.model_class.id.in_(list(ids))))
        return result.scalars().all()

    async def get_all_ids(self, offset: int = 0, limit: Optional[int] = None) -> list[UUID]:
        """Page through ids in insertion order, ties broken by id."""
        stmt = (
            select(self.model_class.id)
            .order_by(self.model_class.created_at, self.model_class.id)
            .offset(offset)
            .limit(limit)
        )
        return list((await self.session.execute(stmt)).scalars())

    async def count(self) -> int:
        total = await self.session.scalar(select(func.count()).select_from(self.model_class))
        return total or 0

    async def create(self, entity: EntityT) -> EntityT:
        self.session.add(entity)
        await self.session.flush()
        return entity
