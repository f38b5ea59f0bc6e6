"""
Ticket Data Access Object.

WHAT: DAO for ticket persistence, history bookkeeping and listing queries.

WHY: Encapsulates all ticket database operations:
1. Eager-loaded fetches for async-safe response building
2. Row-locked loads for read-modify-write workflow operations
3. Change-gated history records for status, priority and assignment
4. Atomic view counting
5. Filtered, sorted, paginated listing

HOW: Uses SQLAlchemy 2.0 async with the request's session; the caller's
transaction decides commit or rollback.
"""

import time
import uuid
from datetime import datetime
from typing import Any, List, Optional, Tuple

from sqlalchemy import select, func, or_, update, delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from quickdesk.models.base import utcnow
from quickdesk.models.ticket import (
    Ticket,
    TicketStatus,
    TicketPriority,
    TicketStatusChange,
    TicketPriorityChange,
    TicketAssignmentChange,
)
from quickdesk.models.vote import TicketVote


# Sort keys accepted by the listing endpoint
SORTABLE_FIELDS = {
    "created_at": Ticket.created_at,
    "updated_at": Ticket.updated_at,
    "subject": Ticket.subject,
    "status": Ticket.status,
    "priority": Ticket.priority,
    "view_count": Ticket.view_count,
}


def _summary_load_options() -> list:
    """Relationships every ticket response needs."""
    return [
        selectinload(Ticket.category),
        selectinload(Ticket.created_by),
        selectinload(Ticket.assigned_to),
        selectinload(Ticket.votes),
    ]


def _detail_load_options() -> list:
    """Summary relationships plus the three history sequences."""
    return _summary_load_options() + [
        selectinload(Ticket.status_history).selectinload(TicketStatusChange.changed_by),
        selectinload(Ticket.priority_history).selectinload(TicketPriorityChange.changed_by),
        selectinload(Ticket.assignment_history).selectinload(TicketAssignmentChange.changed_by),
        selectinload(Ticket.assignment_history).selectinload(
            TicketAssignmentChange.old_assigned_to
        ),
        selectinload(Ticket.assignment_history).selectinload(
            TicketAssignmentChange.new_assigned_to
        ),
    ]


class TicketDAO:
    """
    Data Access Object for Ticket operations.

    HOW: All methods are async and use the injected session.
    """

    def __init__(self, session: AsyncSession):
        """
        Initialize TicketDAO with database session.

        Args:
            session: AsyncSession for database operations
        """
        self.session = session

    # =========================================================================
    # CRUD Operations
    # =========================================================================

    async def create(
        self,
        created_by_id: uuid.UUID,
        subject: str,
        description: str,
        category_id: uuid.UUID,
        priority: TicketPriority = TicketPriority.MEDIUM,
        attachments: Optional[List[str]] = None,
        idempotency_key: Optional[str] = None,
    ) -> Ticket:
        """
        Create a new ticket in the OPEN state.

        The public link embeds the generated id, so it is assigned after the
        first flush.

        Args:
            created_by_id: Authoring user
            subject: Trimmed subject line
            description: Trimmed description
            category_id: Resolved category id
            priority: Initial priority
            attachments: Ordered attachment URLs
            idempotency_key: Client-supplied dedup key

        Returns:
            Created Ticket instance
        """
        ticket = Ticket(
            created_by_id=created_by_id,
            subject=subject,
            description=description,
            category_id=category_id,
            status=TicketStatus.OPEN,
            priority=priority,
            attachments=list(attachments or []),
            view_count=0,
            idempotency_key=idempotency_key,
        )
        self.session.add(ticket)
        await self.session.flush()

        ticket.public_link = f"ticket-{ticket.id}-{int(time.time() * 1000)}"
        await self.session.flush()

        return ticket

    async def get_by_id(self, ticket_id: uuid.UUID) -> Optional[Ticket]:
        """
        Get ticket by ID without relationships.

        Args:
            ticket_id: Ticket ID

        Returns:
            Ticket or None if not found
        """
        result = await self.session.execute(select(Ticket).where(Ticket.id == ticket_id))
        return result.scalar_one_or_none()

    async def get_by_id_with_relations(
        self,
        ticket_id: uuid.UUID,
        for_update: bool = False,
        refresh: bool = False,
    ) -> Optional[Ticket]:
        """
        Get ticket by ID with category, people, votes and history loaded.

        Args:
            ticket_id: Ticket ID
            for_update: Lock the ticket row until the transaction ends
                (SELECT ... FOR UPDATE; a no-op on SQLite)
            refresh: Overwrite any copy already in the session, used after
                bulk statements (view count, vote upserts)

        Returns:
            Ticket with relations or None
        """
        query = select(Ticket).options(*_detail_load_options()).where(Ticket.id == ticket_id)
        if for_update:
            query = query.with_for_update()
        if refresh:
            query = query.execution_options(populate_existing=True)

        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get_by_idempotency_key(
        self, created_by_id: uuid.UUID, idempotency_key: str
    ) -> Optional[Ticket]:
        """Ticket previously created by this user with this key, if any."""
        result = await self.session.execute(
            select(Ticket)
            .options(*_detail_load_options())
            .where(
                Ticket.created_by_id == created_by_id,
                Ticket.idempotency_key == idempotency_key,
            )
        )
        return result.scalar_one_or_none()

    def update_fields(self, ticket: Ticket, **fields: Any) -> Ticket:
        """
        Set untracked fields (subject, description, category).

        Args:
            ticket: Loaded ticket
            **fields: Column values to set

        Returns:
            The same ticket
        """
        for name, value in fields.items():
            setattr(ticket, name, value)
        return ticket

    async def delete(self, ticket_id: uuid.UUID) -> bool:
        """
        Delete a ticket with its votes and history.

        Comments must already be gone (CommentDAO.delete_for_ticket).

        Args:
            ticket_id: Ticket ID

        Returns:
            True if deleted, False if not found
        """
        for model in (
            TicketVote,
            TicketStatusChange,
            TicketPriorityChange,
            TicketAssignmentChange,
        ):
            await self.session.execute(
                delete(model)
                .where(model.ticket_id == ticket_id)
                .execution_options(synchronize_session=False)
            )

        result = await self.session.execute(
            delete(Ticket)
            .where(Ticket.id == ticket_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def increment_view_count(self, ticket_id: uuid.UUID) -> None:
        """
        Add one to view_count in a single UPDATE.

        WHY: `view_count = view_count + 1` is evaluated by the database, so
        concurrent readers never lose increments. updated_at is pinned
        because a view is not a modification.
        """
        await self.session.execute(
            update(Ticket)
            .where(Ticket.id == ticket_id)
            .values(view_count=Ticket.view_count + 1, updated_at=Ticket.updated_at)
            .execution_options(synchronize_session=False)
        )

    # =========================================================================
    # Tracked Field Changes
    # =========================================================================

    def change_status(
        self,
        ticket: Ticket,
        new_status: TicketStatus,
        changed_by_id: uuid.UUID,
        reason: str,
        now: Optional[datetime] = None,
    ) -> bool:
        """
        Move a ticket to a new status and record the transition.

        WHAT: Appends a history record and stamps resolved_at / closed_at on
        the first entry into those states.

        WHY: Any status may follow any other; the history and the one-time
        timestamps are the only bookkeeping. A no-op write records nothing.

        Requires status_history to be loaded.

        Args:
            ticket: Loaded ticket
            new_status: Target status
            changed_by_id: Acting user
            reason: Reason stored with the history record
            now: Timestamp for the record (defaults to current UTC time)

        Returns:
            True if the status changed
        """
        if ticket.status == new_status:
            return False

        now = now or utcnow()
        ticket.status_history.append(
            TicketStatusChange(
                old_status=ticket.status,
                new_status=new_status,
                changed_by_id=changed_by_id,
                changed_at=now,
                reason=reason,
            )
        )
        ticket.status = new_status

        if new_status == TicketStatus.RESOLVED and ticket.resolved_at is None:
            ticket.resolved_at = now
        if new_status == TicketStatus.CLOSED and ticket.closed_at is None:
            ticket.closed_at = now

        return True

    def change_priority(
        self,
        ticket: Ticket,
        new_priority: TicketPriority,
        changed_by_id: uuid.UUID,
        reason: str,
        now: Optional[datetime] = None,
    ) -> bool:
        """
        Change priority and record it. Requires priority_history to be loaded.

        Returns:
            True if the priority changed
        """
        if ticket.priority == new_priority:
            return False

        ticket.priority_history.append(
            TicketPriorityChange(
                old_priority=ticket.priority,
                new_priority=new_priority,
                changed_by_id=changed_by_id,
                changed_at=now or utcnow(),
                reason=reason,
            )
        )
        ticket.priority = new_priority
        return True

    def change_assignee(
        self,
        ticket: Ticket,
        new_assigned_to_id: Optional[uuid.UUID],
        changed_by_id: uuid.UUID,
        reason: str,
        now: Optional[datetime] = None,
    ) -> bool:
        """
        Reassign (or unassign, with None) and record it.

        Used by both the generic update and the dedicated assign operation,
        so every assignment change has a history record.
        Requires assignment_history to be loaded.

        Returns:
            True if the assignee changed
        """
        if ticket.assigned_to_id == new_assigned_to_id:
            return False

        ticket.assignment_history.append(
            TicketAssignmentChange(
                old_assigned_to_id=ticket.assigned_to_id,
                new_assigned_to_id=new_assigned_to_id,
                changed_by_id=changed_by_id,
                changed_at=now or utcnow(),
                reason=reason,
            )
        )
        ticket.assigned_to_id = new_assigned_to_id
        return True

    # =========================================================================
    # Listing
    # =========================================================================

    async def list(
        self,
        skip: int = 0,
        limit: int = 10,
        created_by_id: Optional[uuid.UUID] = None,
        assigned_to_id: Optional[uuid.UUID] = None,
        status: Optional[TicketStatus] = None,
        priority: Optional[TicketPriority] = None,
        category_id: Optional[uuid.UUID] = None,
        search: Optional[str] = None,
        sort_by: str = "created_at",
        descending: bool = True,
    ) -> Tuple[List[Ticket], int]:
        """
        List tickets with filtering, sorting and pagination.

        Args:
            skip: Number of records to skip
            limit: Maximum records to return
            created_by_id: Only tickets created by this user
            assigned_to_id: Only tickets assigned to this user
            status: Filter by status
            priority: Filter by priority
            category_id: Filter by category
            search: Case-insensitive substring of subject or description
            sort_by: Key of SORTABLE_FIELDS
            descending: Sort direction

        Returns:
            Tuple of (tickets list, total count before pagination)
        """
        base_query = select(Ticket)

        filters = [
            (Ticket.created_by_id, created_by_id),
            (Ticket.assigned_to_id, assigned_to_id),
            (Ticket.status, status),
            (Ticket.priority, priority),
            (Ticket.category_id, category_id),
        ]
        for column, value in filters:
            if value is not None:
                base_query = base_query.where(column == value)

        if search:
            # autoescape: "%" and "_" in the search text match literally
            base_query = base_query.where(
                or_(
                    Ticket.subject.icontains(search, autoescape=True),
                    Ticket.description.icontains(search, autoescape=True),
                )
            )

        count_query = select(func.count()).select_from(base_query.subquery())
        total = (await self.session.execute(count_query)).scalar_one()

        # id breaks ties so paging is stable for equal sort keys
        sort_column = SORTABLE_FIELDS[sort_by]
        if descending:
            ordering = (sort_column.desc(), Ticket.id.desc())
        else:
            ordering = (sort_column.asc(), Ticket.id.asc())

        list_query = (
            base_query.options(*_summary_load_options())
            .order_by(*ordering)
            .offset(skip)
            .limit(limit)
        )
        result = await self.session.execute(list_query)
        return list(result.scalars().all()), total
