# backend/app/db/repositories/base.py
from typing import Any, Generic, TypeVar, Type, Optional, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, delete

ModelType = TypeVar("ModelType")


class BaseRepository(Generic[ModelType]):
    """Base repository with common CRUD operations.

    Repositories flush but never commit; the calling service owns the
    transaction boundary.
    """

    def __init__(self, model: Type[ModelType], session: AsyncSession):
        self.model = model
        self.session = session

    @property
    def _pk(self):
        return self.model.__mapper__.primary_key[0]

    async def get(self, id: Any, for_update: bool = False) -> Optional[ModelType]:
        """Get by primary key, optionally locking the row"""
        query = select(self.model).where(self._pk == id)
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get_multi(
        self,
        skip: int = 0,
        limit: int = 100,
        filters: Optional[dict] = None
    ) -> List[ModelType]:
        """Get multiple records"""
        query = select(self.model)

        if filters:
            for key, value in filters.items():
                query = query.where(getattr(self.model, key) == value)

        query = query.offset(skip).limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def create(self, obj_in: dict) -> ModelType:
        """Create new record"""
        db_obj = self.model(**obj_in)
        self.session.add(db_obj)
        await self.session.flush()
        return db_obj

    async def update(self, id: Any, obj_in: dict) -> int:
        """Update record, returning the number of rows touched"""
        result = await self.session.execute(
            update(self.model).where(self._pk == id).values(**obj_in)
        )
        return result.rowcount

    async def delete(self, id: Any) -> bool:
        """Delete record"""
        result = await self.session.execute(
            delete(self.model).where(self._pk == id)
        )
        return result.rowcount > 0
