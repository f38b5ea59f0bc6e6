"""
Unit tests for the ticket query service.

WHY: Listing must apply the visibility rule whatever filters the client
sends, and its sort and pagination contract is relied on by the web client:
1. End users only ever see their own tickets
2. assignedTo is honoured for support agents only
3. Default order is newest first; an explicit sortBy is ascending unless
   sortOrder=desc
4. pages = ceil(total / limit)
"""

import uuid
from datetime import datetime, timedelta

import pytest
import pytest_asyncio

from quickdesk.core.exceptions import InvalidIdentifierError, ValidationError
from quickdesk.models.ticket import TicketPriority, TicketStatus
from quickdesk.services.ticket_query import TicketFilters, TicketQueryService, resolve_sort
from tests.factories import CategoryFactory, TicketFactory, UserFactory


@pytest_asyncio.fixture
async def world(db_session):
    """Two end users with tickets, one agent with an assignment."""
    owner = await UserFactory.create_end_user(db_session, name="Owner")
    other = await UserFactory.create_end_user(db_session, name="Other")
    agent = await UserFactory.create_agent(db_session, name="Agent")
    admin = await UserFactory.create_admin(db_session, name="Admin")
    technical = await CategoryFactory.create(db_session, name="Technical")
    billing = await CategoryFactory.create(db_session, name="Billing")

    base = datetime(2026, 6, 1, 9, 0)
    tickets = [
        await TicketFactory.create(
            db_session,
            created_by=owner,
            category=technical,
            subject="Alpha outage",
            priority=TicketPriority.HIGH,
            assigned_to=agent,
            created_at=base,
        ),
        await TicketFactory.create(
            db_session,
            created_by=owner,
            category=billing,
            subject="Charlie invoice wrong",
            status=TicketStatus.RESOLVED,
            created_at=base + timedelta(hours=1),
        ),
        await TicketFactory.create(
            db_session,
            created_by=other,
            category=technical,
            subject="Bravo password reset",
            created_at=base + timedelta(hours=2),
        ),
    ]
    return {
        "owner": owner,
        "other": other,
        "agent": agent,
        "admin": admin,
        "technical": technical,
        "billing": billing,
        "tickets": tickets,
    }


def _subjects(page):
    return [t.subject for t in page.items]


class TestResolveSort:

    def test_default_is_created_at_descending(self):
        assert resolve_sort(None, None) == ("created_at", True)

    def test_explicit_sort_is_ascending(self):
        assert resolve_sort("subject", None) == ("subject", False)
        assert resolve_sort("createdAt", "desc") == ("created_at", True)
        assert resolve_sort("viewCount", "ASC") == ("view_count", False)

    def test_unknown_field_and_order(self):
        with pytest.raises(ValidationError):
            resolve_sort("password", None)
        with pytest.raises(ValidationError):
            resolve_sort("subject", "sideways")


class TestVisibility:

    @pytest.mark.asyncio
    async def test_end_user_sees_only_own(self, db_session, world):
        page = await TicketQueryService(db_session).list_tickets(world["owner"], TicketFilters())

        assert _subjects(page) == ["Charlie invoice wrong", "Alpha outage"]
        assert page.pagination.total == 2

    @pytest.mark.asyncio
    async def test_end_user_cannot_widen_with_assigned_to(self, db_session, world):
        filters = TicketFilters(assigned_to=str(world["agent"].id))

        page = await TicketQueryService(db_session).list_tickets(world["other"], filters)

        assert _subjects(page) == ["Bravo password reset"]

    @pytest.mark.asyncio
    async def test_admin_sees_everything(self, db_session, world):
        page = await TicketQueryService(db_session).list_tickets(world["admin"], TicketFilters())

        assert page.pagination.total == 3
        assert _subjects(page)[0] == "Bravo password reset"


class TestAssignedToFilter:

    @pytest.mark.asyncio
    async def test_agent_me(self, db_session, world):
        page = await TicketQueryService(db_session).list_tickets(
            world["agent"], TicketFilters(assigned_to="me")
        )

        assert _subjects(page) == ["Alpha outage"]

    @pytest.mark.asyncio
    async def test_agent_by_id(self, db_session, world):
        page = await TicketQueryService(db_session).list_tickets(
            world["agent"], TicketFilters(assigned_to=str(uuid.uuid4()))
        )

        assert page.items == []
        assert page.pagination.pages == 0

    @pytest.mark.asyncio
    async def test_agent_malformed_id(self, db_session, world):
        with pytest.raises(InvalidIdentifierError):
            await TicketQueryService(db_session).list_tickets(
                world["agent"], TicketFilters(assigned_to="someone")
            )

    @pytest.mark.asyncio
    async def test_admin_ignores_assigned_to(self, db_session, world):
        page = await TicketQueryService(db_session).list_tickets(
            world["admin"], TicketFilters(assigned_to="me")
        )

        assert page.pagination.total == 3


class TestFilters:

    @pytest.mark.asyncio
    async def test_status_priority_category_search(self, db_session, world):
        service = TicketQueryService(db_session)
        admin = world["admin"]

        resolved = await service.list_tickets(admin, TicketFilters(status="resolved"))
        high = await service.list_tickets(admin, TicketFilters(priority="high"))
        technical = await service.list_tickets(admin, TicketFilters(category="technical"))
        by_id = await service.list_tickets(admin, TicketFilters(category=str(world["billing"].id)))
        searched = await service.list_tickets(admin, TicketFilters(search="  PASSWORD "))

        assert _subjects(resolved) == ["Charlie invoice wrong"]
        assert _subjects(high) == ["Alpha outage"]
        assert _subjects(technical) == ["Bravo password reset", "Alpha outage"]
        assert _subjects(by_id) == ["Charlie invoice wrong"]
        assert _subjects(searched) == ["Bravo password reset"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "filters",
        [
            TicketFilters(status="pending"),
            TicketFilters(priority="critical"),
            TicketFilters(category="Nonexistent"),
            TicketFilters(page=0),
            TicketFilters(limit=0),
            TicketFilters(limit=101),
        ],
    )
    async def test_invalid_filters(self, db_session, world, filters):
        with pytest.raises(ValidationError):
            await TicketQueryService(db_session).list_tickets(world["admin"], filters)


class TestSortAndPaging:

    @pytest.mark.asyncio
    async def test_sort_by_subject(self, db_session, world):
        service = TicketQueryService(db_session)

        ascending = await service.list_tickets(world["admin"], TicketFilters(sort_by="subject"))
        descending = await service.list_tickets(
            world["admin"], TicketFilters(sort_by="subject", sort_order="desc")
        )

        assert _subjects(ascending) == [
            "Alpha outage",
            "Bravo password reset",
            "Charlie invoice wrong",
        ]
        assert _subjects(descending) == list(reversed(_subjects(ascending)))

    @pytest.mark.asyncio
    async def test_pagination_block(self, db_session, world):
        page = await TicketQueryService(db_session).list_tickets(
            world["admin"], TicketFilters(page=2, limit=2)
        )

        assert _subjects(page) == ["Alpha outage"]
        assert (page.pagination.page, page.pagination.pages) == (2, 2)
        assert (page.pagination.total, page.pagination.limit) == (3, 2)
