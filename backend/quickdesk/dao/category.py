"""
Category Data Access Object.

WHY: Category lookups by id or by case-insensitive name are used on every
ticket create, update and filtered listing.
"""

import uuid
from typing import List, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from quickdesk.dao.base import BaseDAO
from quickdesk.models.category import Category


class CategoryDAO(BaseDAO[Category]):
    """Data Access Object for Category model."""

    def __init__(self, session: AsyncSession):
        super().__init__(Category, session)

    async def get_active_by_id(self, category_id: uuid.UUID) -> Optional[Category]:
        result = await self.session.execute(
            select(Category).where(Category.id == category_id, Category.is_active.is_(True))
        )
        return result.scalar_one_or_none()

    async def get_by_name(self, name: str, active_only: bool = True) -> Optional[Category]:
        """
        Find a category by exact name, ignoring case.

        Args:
            name: Category name as typed by a client ("technical")
            active_only: Skip deactivated categories

        Returns:
            Category if found, None otherwise
        """
        query = select(Category).where(func.lower(Category.name) == name.strip().lower())
        if active_only:
            query = query.where(Category.is_active.is_(True))
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def list_active(self) -> List[Category]:
        """Active categories sorted by name."""
        result = await self.session.execute(
            select(Category).where(Category.is_active.is_(True)).order_by(Category.name)
        )
        return list(result.scalars().all())
