"""
Base Data Access Object (DAO) class.

WHY: The DAO pattern separates database operations from business logic,
making the codebase more testable and keeping SQL out of the workflow
engine.
"""

from typing import Any, Generic, Optional, Type, TypeVar

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from quickdesk.models.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseDAO(Generic[ModelType]):
    """
    Primary-key CRUD shared by every DAO.

    DAOs only flush; the request (or the dispatcher) owns the commit.
    """

    def __init__(self, model: Type[ModelType], session: AsyncSession):
        self.model = model
        self.session = session

    async def create(self, **kwargs: Any) -> ModelType:
        """
        Insert a row and return it with defaults populated.

        Raises:
            IntegrityError: If a unique constraint (e.g. an idempotency key)
                is violated
        """
        instance = self.model(**kwargs)
        self.session.add(instance)
        await self.session.flush()
        await self.session.refresh(instance)
        return instance

    async def get_by_id(self, id: Any) -> Optional[ModelType]:
        result = await self.session.execute(select(self.model).where(self.model.id == id))
        return result.scalar_one_or_none()

    async def update(self, instance: ModelType, **kwargs: Any) -> ModelType:
        """
        Apply field changes to a loaded instance and flush.

        Going through the instance (rather than a bulk UPDATE) keeps the
        identity map, onupdate timestamps and loaded relationships coherent.
        """
        for field, value in kwargs.items():
            setattr(instance, field, value)
        await self.session.flush()
        return instance

    async def delete(self, id: Any) -> bool:
        """Delete by primary key; False when nothing matched."""
        result = await self.session.execute(delete(self.model).where(self.model.id == id))
        return result.rowcount > 0
