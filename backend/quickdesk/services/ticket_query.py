"""
Ticket Query Service.

WHAT: Filtered, searched, sorted and paginated ticket listings.

WHY: Listing applies the same visibility rule as the workflow engine: an
end user's listing is always restricted to tickets they created, whatever
filters they send.

HOW: Normalizes client filters (enum values, category reference, sort key,
assignment filter) into TicketDAO.list() arguments and computes the
pagination block.
"""

import math
import uuid
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from quickdesk.core.config import settings
from quickdesk.core.exceptions import InvalidIdentifierError, ValidationError
from quickdesk.dao.ticket import TicketDAO, SORTABLE_FIELDS
from quickdesk.models.ticket import Ticket, TicketPriority, TicketStatus
from quickdesk.models.user import User, UserRole
from quickdesk.services.category_service import CategoryService

# Client sort keys (camelCase from the web client) to SORTABLE_FIELDS keys
SORT_ALIASES = {
    "createdAt": "created_at",
    "updatedAt": "updated_at",
    "viewCount": "view_count",
}

ASSIGNED_TO_ME = "me"


@dataclass
class TicketFilters:
    """Listing parameters as received from the client."""

    status: Optional[str] = None
    category: Optional[str] = None
    priority: Optional[str] = None
    search: Optional[str] = None
    sort_by: Optional[str] = None
    sort_order: Optional[str] = None
    page: int = 1
    limit: int = 10
    assigned_to: Optional[str] = None


@dataclass
class Pagination:
    page: int
    pages: int
    total: int
    limit: int


@dataclass
class TicketPage:
    items: List[Ticket]
    pagination: Pagination


def resolve_sort(sort_by: Optional[str], sort_order: Optional[str]) -> tuple[str, bool]:
    """
    Map client sort parameters to (field, descending).

    Without sortBy the listing is newest first. With sortBy it is ascending
    unless sortOrder is "desc".

    Raises:
        ValidationError: Unknown sort field or order
    """
    if sort_order is not None and sort_order.lower() not in ("asc", "desc"):
        raise ValidationError("Invalid sort order", sort_order=sort_order)

    if not sort_by:
        return "created_at", (sort_order or "desc").lower() == "desc"

    field_name = SORT_ALIASES.get(sort_by, sort_by)
    if field_name not in SORTABLE_FIELDS:
        raise ValidationError("Invalid sort field", sort_by=sort_by)
    return field_name, (sort_order or "").lower() == "desc"


class TicketQueryService:
    """Read-only ticket listings."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.ticket_dao = TicketDAO(session)
        self.category_service = CategoryService(session)

    def _assigned_to_filter(self, principal: User, raw: Optional[str]) -> Optional[uuid.UUID]:
        """
        Assignment filter for the caller.

        Only support agents use it: "me" means themselves, anything else
        is an assignee id. Other roles never filter by assignee.
        """
        if principal.role != UserRole.SUPPORT_AGENT or not raw:
            return None
        if raw == ASSIGNED_TO_ME:
            return principal.id
        try:
            return uuid.UUID(raw)
        except ValueError:
            raise InvalidIdentifierError("Invalid assignee ID format", assigned_to=raw)

    async def list_tickets(self, principal: User, filters: TicketFilters) -> TicketPage:
        """
        One page of tickets visible to the principal.

        Args:
            principal: Requesting user
            filters: Client filters

        Returns:
            TicketPage with items and {page, pages, total, limit}

        Raises:
            ValidationError: Bad status, priority, category, sort or paging
        """
        if filters.page < 1:
            raise ValidationError("Page must be at least 1")
        if not 1 <= filters.limit <= settings.MAX_PAGE_SIZE:
            raise ValidationError(f"Limit must be between 1 and {settings.MAX_PAGE_SIZE}")

        try:
            status = TicketStatus(filters.status) if filters.status else None
        except ValueError:
            raise ValidationError("Invalid status", status=filters.status)
        try:
            priority = TicketPriority(filters.priority) if filters.priority else None
        except ValueError:
            raise ValidationError("Invalid priority", priority=filters.priority)

        category_id = None
        if filters.category:
            category_id = (await self.category_service.resolve_raw(filters.category)).id

        sort_field, descending = resolve_sort(filters.sort_by, filters.sort_order)

        if principal.role == UserRole.END_USER:
            created_by_id = principal.id
            assigned_to_id = None
        else:
            created_by_id = None
            assigned_to_id = self._assigned_to_filter(principal, filters.assigned_to)

        tickets, total = await self.ticket_dao.list(
            skip=(filters.page - 1) * filters.limit,
            limit=filters.limit,
            created_by_id=created_by_id,
            assigned_to_id=assigned_to_id,
            status=status,
            priority=priority,
            category_id=category_id,
            search=filters.search.strip() if filters.search else None,
            sort_by=sort_field,
            descending=descending,
        )

        return TicketPage(
            items=tickets,
            pagination=Pagination(
                page=filters.page,
                pages=math.ceil(total / filters.limit),
                total=total,
                limit=filters.limit,
            ),
        )
