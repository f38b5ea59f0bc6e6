"""
Unit tests for Ticket DAO.

WHAT: Tests for TicketDAO persistence, history bookkeeping and listing.

WHY: Verifies that:
1. Tickets are created OPEN with a public link
2. Status, priority and assignment changes are change-gated and recorded
3. resolved_at / closed_at are stamped once and never cleared
4. View counting is a single atomic increment that leaves updated_at alone
5. Listing filters, searches, sorts and paginates correctly

HOW: Uses pytest-asyncio with in-memory SQLite database for isolation.
"""

import pytest
import pytest_asyncio
from datetime import datetime, timedelta

from quickdesk.dao.ticket import TicketDAO
from quickdesk.models.ticket import TicketStatus, TicketPriority
from tests.factories import CategoryFactory, TicketFactory, UserFactory


@pytest_asyncio.fixture
async def owner(db_session):
    return await UserFactory.create_end_user(db_session)


@pytest_asyncio.fixture
async def agent(db_session):
    return await UserFactory.create_agent(db_session)


@pytest_asyncio.fixture
async def category(db_session):
    return await CategoryFactory.create(db_session, name="Technical")


class TestTicketDAOCreate:
    """Tests for ticket creation."""

    @pytest.mark.asyncio
    async def test_create_ticket_defaults(self, db_session, owner, category):
        ticket_dao = TicketDAO(db_session)

        ticket = await ticket_dao.create(
            created_by_id=owner.id,
            subject="VPN drops every hour",
            description="The VPN client disconnects roughly every hour.",
            category_id=category.id,
        )

        assert ticket.id is not None
        assert ticket.status == TicketStatus.OPEN
        assert ticket.priority == TicketPriority.MEDIUM
        assert ticket.view_count == 0
        assert ticket.attachments == []
        assert ticket.public_link.startswith(f"ticket-{ticket.id}-")
        assert ticket.resolved_at is None and ticket.closed_at is None

    @pytest.mark.asyncio
    async def test_get_by_idempotency_key(self, db_session, owner, category):
        ticket_dao = TicketDAO(db_session)
        ticket = await ticket_dao.create(
            created_by_id=owner.id,
            subject="Keyed ticket",
            description="Created with an idempotency key.",
            category_id=category.id,
            idempotency_key="abc-123",
        )

        found = await ticket_dao.get_by_idempotency_key(owner.id, "abc-123")
        other_user = await UserFactory.create_end_user(db_session)

        assert found.id == ticket.id
        assert await ticket_dao.get_by_idempotency_key(other_user.id, "abc-123") is None


class TestTrackedChanges:
    """Tests for change-gated history."""

    @pytest.mark.asyncio
    async def test_status_change_records_history(self, db_session, owner, agent, category):
        ticket = await TicketFactory.create(db_session, created_by=owner, category=category)
        ticket_dao = TicketDAO(db_session)
        loaded = await ticket_dao.get_by_id_with_relations(ticket.id)

        changed = ticket_dao.change_status(
            loaded, TicketStatus.IN_PROGRESS, changed_by_id=agent.id, reason="Picked up"
        )
        await db_session.flush()

        assert changed is True
        assert loaded.status == TicketStatus.IN_PROGRESS
        assert len(loaded.status_history) == 1
        record = loaded.status_history[0]
        assert record.old_status == TicketStatus.OPEN
        assert record.new_status == TicketStatus.IN_PROGRESS
        assert record.changed_by_id == agent.id
        assert record.reason == "Picked up"

    @pytest.mark.asyncio
    async def test_same_status_records_nothing(self, db_session, owner, agent, category):
        ticket = await TicketFactory.create(db_session, created_by=owner, category=category)
        ticket_dao = TicketDAO(db_session)
        loaded = await ticket_dao.get_by_id_with_relations(ticket.id)

        assert ticket_dao.change_status(loaded, TicketStatus.OPEN, agent.id, "noop") is False
        assert ticket_dao.change_priority(loaded, TicketPriority.MEDIUM, agent.id, "noop") is False
        assert ticket_dao.change_assignee(loaded, None, agent.id, "noop") is False
        assert loaded.status_history == []
        assert loaded.priority_history == []
        assert loaded.assignment_history == []

    @pytest.mark.asyncio
    async def test_resolved_and_closed_stamped_once(self, db_session, owner, agent, category):
        """Reopening and resolving again keeps the first resolved_at."""
        ticket = await TicketFactory.create(db_session, created_by=owner, category=category)
        ticket_dao = TicketDAO(db_session)
        loaded = await ticket_dao.get_by_id_with_relations(ticket.id)

        first = datetime(2026, 1, 1, 9, 0)
        ticket_dao.change_status(loaded, TicketStatus.RESOLVED, agent.id, "Fixed", now=first)
        ticket_dao.change_status(
            loaded, TicketStatus.OPEN, agent.id, "Came back", now=first + timedelta(hours=1)
        )
        ticket_dao.change_status(
            loaded, TicketStatus.RESOLVED, agent.id, "Fixed again", now=first + timedelta(hours=2)
        )
        ticket_dao.change_status(
            loaded, TicketStatus.CLOSED, agent.id, "Done", now=first + timedelta(hours=3)
        )
        await db_session.flush()

        assert loaded.resolved_at == first
        assert loaded.closed_at == first + timedelta(hours=3)
        assert [r.new_status for r in loaded.status_history] == [
            TicketStatus.RESOLVED,
            TicketStatus.OPEN,
            TicketStatus.RESOLVED,
            TicketStatus.CLOSED,
        ]

    @pytest.mark.asyncio
    async def test_assignment_change_and_unassign(self, db_session, owner, agent, category):
        ticket = await TicketFactory.create(db_session, created_by=owner, category=category)
        ticket_dao = TicketDAO(db_session)
        loaded = await ticket_dao.get_by_id_with_relations(ticket.id)

        ticket_dao.change_assignee(loaded, agent.id, agent.id, "Taking it")
        ticket_dao.change_assignee(loaded, None, agent.id, "Handing back")
        await db_session.flush()

        assert loaded.assigned_to_id is None
        history = loaded.assignment_history
        assert (history[0].old_assigned_to_id, history[0].new_assigned_to_id) == (None, agent.id)
        assert (history[1].old_assigned_to_id, history[1].new_assigned_to_id) == (agent.id, None)


class TestViewCount:
    """Tests for atomic view counting."""

    @pytest.mark.asyncio
    async def test_increment_view_count(self, db_session, owner, category):
        created_at = datetime(2026, 3, 1, 12, 0)
        ticket = await TicketFactory.create(
            db_session, created_by=owner, category=category, created_at=created_at
        )
        ticket_dao = TicketDAO(db_session)

        await ticket_dao.increment_view_count(ticket.id)
        await ticket_dao.increment_view_count(ticket.id)
        reloaded = await ticket_dao.get_by_id_with_relations(ticket.id, refresh=True)

        assert reloaded.view_count == 2
        assert reloaded.updated_at == created_at


class TestTicketDAODelete:

    @pytest.mark.asyncio
    async def test_delete_removes_history(self, db_session, owner, agent, category):
        ticket = await TicketFactory.create(db_session, created_by=owner, category=category)
        ticket_dao = TicketDAO(db_session)
        loaded = await ticket_dao.get_by_id_with_relations(ticket.id)
        ticket_dao.change_status(loaded, TicketStatus.CLOSED, agent.id, "Done")
        await db_session.commit()
        db_session.expunge_all()

        assert await ticket_dao.delete(ticket.id) is True
        assert await ticket_dao.get_by_id(ticket.id) is None
        assert await ticket_dao.delete(ticket.id) is False


class TestTicketDAOList:
    """Tests for filtered, sorted, paginated listing."""

    @pytest.mark.asyncio
    async def test_default_order_newest_first(self, db_session, owner, category):
        base = datetime(2026, 2, 1)
        for day in range(3):
            await TicketFactory.create(
                db_session,
                created_by=owner,
                category=category,
                subject=f"Ticket day {day}",
                created_at=base + timedelta(days=day),
            )

        tickets, total = await TicketDAO(db_session).list()

        assert total == 3
        assert [t.subject for t in tickets] == ["Ticket day 2", "Ticket day 1", "Ticket day 0"]

    @pytest.mark.asyncio
    async def test_pagination(self, db_session, owner, category):
        base = datetime(2026, 2, 1)
        for i in range(5):
            await TicketFactory.create(
                db_session,
                created_by=owner,
                category=category,
                subject=f"Paged ticket {i}",
                created_at=base + timedelta(minutes=i),
            )

        page, total = await TicketDAO(db_session).list(
            skip=2, limit=2, sort_by="created_at", descending=False
        )

        assert total == 5
        assert [t.subject for t in page] == ["Paged ticket 2", "Paged ticket 3"]

    @pytest.mark.asyncio
    async def test_filters(self, db_session, owner, agent, category):
        other_category = await CategoryFactory.create(db_session, name="Billing")
        await TicketFactory.create(
            db_session,
            created_by=owner,
            category=category,
            status=TicketStatus.RESOLVED,
            priority=TicketPriority.HIGH,
            assigned_to=agent,
        )
        await TicketFactory.create(db_session, created_by=owner, category=other_category)
        ticket_dao = TicketDAO(db_session)

        _, resolved = await ticket_dao.list(status=TicketStatus.RESOLVED)
        _, high = await ticket_dao.list(priority=TicketPriority.HIGH)
        _, billing = await ticket_dao.list(category_id=other_category.id)
        _, assigned = await ticket_dao.list(assigned_to_id=agent.id)
        _, mine = await ticket_dao.list(created_by_id=owner.id)

        assert (resolved, high, billing, assigned, mine) == (1, 1, 1, 1, 2)

    @pytest.mark.asyncio
    async def test_search_is_case_insensitive(self, db_session, owner, category):
        await TicketFactory.create(
            db_session,
            created_by=owner,
            category=category,
            subject="Email not syncing",
            description="Outlook stops syncing after the update.",
        )
        await TicketFactory.create(
            db_session,
            created_by=owner,
            category=category,
            subject="Keyboard broken",
            description="Several keys do not respond at all.",
        )
        ticket_dao = TicketDAO(db_session)

        by_subject, _ = await ticket_dao.list(search="EMAIL")
        by_description, _ = await ticket_dao.list(search="outlook")

        assert [t.subject for t in by_subject] == ["Email not syncing"]
        assert [t.subject for t in by_description] == ["Email not syncing"]

    @pytest.mark.asyncio
    async def test_search_wildcards_match_literally(self, db_session, owner, category):
        """
        Test that "%" and "_" in the search text are plain characters.

        WHY: Search is a substring match; "100%" must not match every
        subject that merely contains "100".
        """
        await TicketFactory.create(
            db_session,
            created_by=owner,
            category=category,
            subject="Disk at 100 GB",
            description="The backup volume is almost full.",
        )
        await TicketFactory.create(
            db_session,
            created_by=owner,
            category=category,
            subject="CPU pinned at 100%",
            description="Build agent queue_worker never idles.",
        )
        ticket_dao = TicketDAO(db_session)

        percent, percent_total = await ticket_dao.list(search="100%")
        underscore, _ = await ticket_dao.list(search="queue_worker")
        no_match, no_match_total = await ticket_dao.list(search="Disk_at")

        assert percent_total == 1
        assert [t.subject for t in percent] == ["CPU pinned at 100%"]
        assert [t.subject for t in underscore] == ["CPU pinned at 100%"]
        assert (no_match, no_match_total) == ([], 0)

    @pytest.mark.asyncio
    async def test_sort_by_subject_ascending(self, db_session, owner, category):
        for subject in ("Charlie issue", "Alpha issue", "Bravo issue"):
            await TicketFactory.create(db_session, created_by=owner, category=category, subject=subject)

        tickets, _ = await TicketDAO(db_session).list(sort_by="subject", descending=False)

        assert [t.subject for t in tickets] == ["Alpha issue", "Bravo issue", "Charlie issue"]
