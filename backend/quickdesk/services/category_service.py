"""
Category Directory service.

WHAT: Resolves client-supplied category references and seeds the default
category set.

WHY: Clients name a category either by id or by name ("Technical",
"technical"). Making that explicit as a tagged union (ById | ByName) gives
create, update and list one resolver with one failure mode:
ValidationError("Invalid category").

HOW:
- parse_category_ref() decides the variant once, at the edge
- CategoryService.resolve() looks up active categories only
- CategoryService.seed_categories() inserts missing names and is safe to
  rerun
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Union

from sqlalchemy.ext.asyncio import AsyncSession

from quickdesk.core.exceptions import ValidationError
from quickdesk.dao.category import CategoryDAO
from quickdesk.models.category import Category, DEFAULT_CATEGORY_COLOR

logger = logging.getLogger(__name__)

INVALID_CATEGORY_MESSAGE = "Invalid category"


@dataclass(frozen=True)
class ById:
    """Category referenced by its id."""

    id: uuid.UUID


@dataclass(frozen=True)
class ByName:
    """Category referenced by name, matched case-insensitively."""

    name: str


CategoryRef = Union[ById, ByName]


def parse_category_ref(raw: Union[str, uuid.UUID]) -> CategoryRef:
    """
    Classify a raw category value.

    Args:
        raw: Category id or name as sent by the client

    Returns:
        ById for a well-formed UUID, ByName otherwise

    Raises:
        ValidationError: If the value is blank
    """
    if isinstance(raw, uuid.UUID):
        return ById(raw)

    value = (raw or "").strip()
    if not value:
        raise ValidationError(INVALID_CATEGORY_MESSAGE)

    try:
        return ById(uuid.UUID(value))
    except ValueError:
        return ByName(value)


class CategoryService:
    """Category lookups and bootstrap seeding."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.category_dao = CategoryDAO(session)

    async def resolve(self, ref: CategoryRef) -> Category:
        """
        Resolve a reference to an active category.

        Args:
            ref: ById or ByName

        Returns:
            The matching active Category

        Raises:
            ValidationError: If no active category matches
        """
        if isinstance(ref, ById):
            category = await self.category_dao.get_active_by_id(ref.id)
        else:
            category = await self.category_dao.get_by_name(ref.name)

        if category is None:
            raise ValidationError(INVALID_CATEGORY_MESSAGE, category=str(ref))
        return category

    async def resolve_raw(self, raw: Union[str, uuid.UUID]) -> Category:
        """parse_category_ref() followed by resolve()."""
        return await self.resolve(parse_category_ref(raw))

    async def list_active(self) -> List[Category]:
        return await self.category_dao.list_active()

    async def seed_categories(self, seed_list: Iterable[Dict[str, Any]]) -> List[Category]:
        """
        Insert every seed category whose name does not exist yet.

        Existing categories, active or not, are left untouched, so rerunning
        the seed never duplicates or reactivates anything.

        Args:
            seed_list: Dicts with name, and optional description and color

        Returns:
            Categories created by this call
        """
        created = []
        for seed in seed_list:
            name = seed["name"].strip()
            if await self.category_dao.get_by_name(name, active_only=False) is not None:
                continue

            category = await self.category_dao.create(
                name=name,
                description=seed.get("description"),
                color=seed.get("color") or DEFAULT_CATEGORY_COLOR,
                is_active=True,
            )
            created.append(category)

        if created:
            logger.info(f"Seeded {len(created)} default categories")
        return created
