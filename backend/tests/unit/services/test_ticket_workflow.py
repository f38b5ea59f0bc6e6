"""
Unit tests for the ticket workflow service.

WHAT: Tests for TicketWorkflowService and its helpers.

WHY: The workflow service is the only writer for tickets and comments.
These tests pin down:
1. The visibility rule (end users only touch their own tickets)
2. Role gates (assignment, internal comments)
3. Change-gated history and one-time resolved/closed timestamps
4. View counting only on authorized reads
5. Vote mutual exclusion and idempotence
6. Two-tier reply threads
7. Which events are published, and to whom
8. Idempotency keys on create, comment and reply

HOW: Runs against in-memory SQLite with a RecordingPublisher in place of the
transactional queue.
"""

import uuid

import pytest
import pytest_asyncio

from quickdesk.core.exceptions import (
    AuthorizationError,
    CommentNotFoundError,
    ConflictError,
    InvalidIdentifierError,
    TicketNotFoundError,
    ValidationError,
)
from quickdesk.dao.comment import CommentDAO
from quickdesk.models.notification import NotificationType
from quickdesk.models.ticket import TicketPriority, TicketStatus
from quickdesk.services.ticket_workflow import (
    TicketWorkflowService,
    build_comment_tree,
    can_access_ticket,
    parse_ticket_id,
)
from tests.factories import (
    CategoryFactory,
    CommentFactory,
    RecordingPublisher,
    TicketFactory,
    UserFactory,
)


@pytest_asyncio.fixture
async def people(db_session):
    """An owner, a second end user, an agent and an admin."""
    return {
        "owner": await UserFactory.create_end_user(db_session, name="Olivia Owner"),
        "stranger": await UserFactory.create_end_user(db_session, name="Sam Stranger"),
        "agent": await UserFactory.create_agent(db_session, name="Alex Agent"),
        "admin": await UserFactory.create_admin(db_session, name="Ada Admin"),
    }


@pytest_asyncio.fixture
async def category(db_session):
    return await CategoryFactory.create(db_session, name="Technical")


@pytest_asyncio.fixture
async def ticket(db_session, people, category):
    return await TicketFactory.create(db_session, created_by=people["owner"], category=category)


@pytest.fixture
def recorder() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def workflow(db_session, recorder) -> TicketWorkflowService:
    return TicketWorkflowService(db_session, recorder)


class TestHelpers:

    def test_parse_ticket_id(self):
        ticket_id = uuid.uuid4()
        assert parse_ticket_id(str(ticket_id)) == ticket_id
        assert parse_ticket_id(ticket_id) is ticket_id

    def test_parse_ticket_id_rejects_garbage(self):
        with pytest.raises(InvalidIdentifierError) as exc_info:
            parse_ticket_id("not-a-ticket")
        assert exc_info.value.message == "Invalid ticket ID format"

    @pytest.mark.asyncio
    async def test_can_access_ticket(self, people, ticket):
        assert can_access_ticket(people["owner"], ticket)
        assert can_access_ticket(people["agent"], ticket)
        assert can_access_ticket(people["admin"], ticket)
        assert not can_access_ticket(people["stranger"], ticket)


class TestCreateTicket:

    @pytest.mark.asyncio
    async def test_create_ticket(self, workflow, recorder, people, category):
        ticket = await workflow.create_ticket(
            people["owner"],
            subject="  Cannot log in  ",
            description="Password reset link expired immediately",
            category="technical",
            priority="high",
            attachments=["https://files.example.com/shot.png"],
        )

        assert ticket.subject == "Cannot log in"
        assert ticket.status == TicketStatus.OPEN
        assert ticket.priority == TicketPriority.HIGH
        assert ticket.category.id == category.id
        assert ticket.created_by.id == people["owner"].id
        assert ticket.attachments == ["https://files.example.com/shot.png"]
        assert ticket.view_count == 0
        assert ticket.status_history == []

        assert len(recorder.events) == 1
        event = recorder.events[0]
        assert event.type == NotificationType.TICKET_CREATED
        assert event.recipient_id is None
        assert event.sender_name == "Olivia Owner"

    @pytest.mark.asyncio
    async def test_default_priority_and_category_by_id(self, workflow, people, category):
        ticket = await workflow.create_ticket(
            people["owner"], "Slow laptop", "Takes ten minutes to boot up", str(category.id)
        )

        assert ticket.priority == TicketPriority.MEDIUM
        assert ticket.category_id == category.id

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "subject,description,message",
        [
            ("Hey", "Long enough description", "Subject must be at least 5 characters"),
            ("x" * 101, "Long enough description", "Subject cannot exceed 100 characters"),
            ("Valid subject", "too short", "Description must be at least 10 characters"),
            ("Valid subject", "d" * 1001, "Description cannot exceed 1000 characters"),
        ],
    )
    async def test_length_limits(self, workflow, recorder, people, category, subject, description, message):
        with pytest.raises(ValidationError) as exc_info:
            await workflow.create_ticket(people["owner"], subject, description, "Technical")

        assert exc_info.value.message == message
        assert recorder.events == []

    @pytest.mark.asyncio
    async def test_unknown_category(self, workflow, people, category):
        with pytest.raises(ValidationError) as exc_info:
            await workflow.create_ticket(
                people["owner"], "Valid subject", "A valid description", "Nonexistent"
            )
        assert exc_info.value.message == "Invalid category"

    @pytest.mark.asyncio
    async def test_invalid_priority(self, workflow, people, category):
        with pytest.raises(ValidationError) as exc_info:
            await workflow.create_ticket(
                people["owner"], "Valid subject", "A valid description", "Technical", priority="asap"
            )
        assert exc_info.value.message == "Invalid priority"

    @pytest.mark.asyncio
    async def test_idempotency_key_replays(self, workflow, recorder, people, category):
        first = await workflow.create_ticket(
            people["owner"], "Printer jam", "Paper stuck in tray two", "Technical",
            idempotency_key="create-1",
        )
        second = await workflow.create_ticket(
            people["owner"], "Printer jam", "Paper stuck in tray two", "Technical",
            idempotency_key="create-1",
        )

        assert second.id == first.id
        assert len(recorder.of_type(NotificationType.TICKET_CREATED)) == 1


class TestGetTicket:

    @pytest.mark.asyncio
    async def test_owner_view_counts(self, workflow, people, ticket):
        view = await workflow.get_ticket(people["owner"], str(ticket.id))
        view = await workflow.get_ticket(people["agent"], str(ticket.id))

        assert view.ticket.id == ticket.id
        assert view.ticket.view_count == 2

    @pytest.mark.asyncio
    async def test_stranger_denied_without_counting(self, workflow, people, ticket):
        with pytest.raises(AuthorizationError) as exc_info:
            await workflow.get_ticket(people["stranger"], str(ticket.id))
        assert exc_info.value.message == "Not authorized to view this ticket"

        view = await workflow.get_ticket(people["owner"], str(ticket.id))
        assert view.ticket.view_count == 1

    @pytest.mark.asyncio
    async def test_missing_and_malformed(self, workflow, people):
        with pytest.raises(TicketNotFoundError):
            await workflow.get_ticket(people["agent"], str(uuid.uuid4()))
        with pytest.raises(InvalidIdentifierError):
            await workflow.get_ticket(people["agent"], "12345")

    @pytest.mark.asyncio
    async def test_internal_comments_hidden_from_end_user(self, db_session, workflow, people, ticket):
        public = await CommentFactory.create(
            db_session, ticket=ticket, author=people["owner"], content="public question"
        )
        await CommentFactory.create(
            db_session, ticket=ticket, author=people["agent"], content="internal note", is_internal=True
        )
        await CommentFactory.create(
            db_session,
            ticket=ticket,
            author=people["agent"],
            content="internal reply",
            is_internal=True,
            parent=public,
        )

        owner_view = await workflow.get_ticket(people["owner"], ticket.id)
        agent_view = await workflow.get_ticket(people["agent"], ticket.id)

        assert [n.comment.content for n in owner_view.comments] == ["public question"]
        assert owner_view.comments[0].replies == []
        assert len(agent_view.comments) == 2
        assert [r.content for r in agent_view.comments[0].replies] == ["internal reply"]


class TestUpdateTicket:

    @pytest.mark.asyncio
    async def test_status_change_records_history_and_notifies_owner(
        self, workflow, recorder, people, ticket
    ):
        updated = await workflow.update_ticket(
            people["agent"], ticket.id, status="in_progress", status_reason="Investigating"
        )

        assert updated.status == TicketStatus.IN_PROGRESS
        assert len(updated.status_history) == 1
        record = updated.status_history[0]
        assert (record.old_status, record.new_status) == (TicketStatus.OPEN, TicketStatus.IN_PROGRESS)
        assert record.reason == "Investigating"
        assert record.changed_by.id == people["agent"].id

        events = recorder.of_type(NotificationType.TICKET_UPDATED)
        assert len(events) == 1
        assert events[0].recipient_id == people["owner"].id
        assert events[0].payload["status"] == "in_progress"

    @pytest.mark.asyncio
    async def test_same_value_records_nothing(self, workflow, people, ticket):
        updated = await workflow.update_ticket(
            people["agent"], ticket.id, status="open", priority="medium"
        )

        assert updated.status_history == []
        assert updated.priority_history == []

    @pytest.mark.asyncio
    async def test_default_reasons(self, workflow, people, ticket):
        updated = await workflow.update_ticket(
            people["agent"], ticket.id, priority="urgent", assigned_to=str(people["agent"].id)
        )

        assert updated.priority_history[0].reason == "Priority updated"
        assert updated.assignment_history[0].reason == "Ticket reassigned"
        assert updated.assigned_to.id == people["agent"].id

    @pytest.mark.asyncio
    async def test_resolved_at_set_once(self, workflow, people, ticket):
        resolved = await workflow.update_ticket(people["agent"], ticket.id, status="resolved")
        first_resolved_at = resolved.resolved_at
        await workflow.update_ticket(people["agent"], ticket.id, status="open")
        again = await workflow.update_ticket(people["agent"], ticket.id, status="resolved")

        assert first_resolved_at is not None
        assert again.resolved_at == first_resolved_at
        assert again.closed_at is None
        assert len(again.status_history) == 3

    @pytest.mark.asyncio
    async def test_owner_update_does_not_notify(self, workflow, recorder, people, ticket):
        updated = await workflow.update_ticket(
            people["owner"], ticket.id, subject="Printer offline again"
        )

        assert updated.subject == "Printer offline again"
        assert recorder.events == []

    @pytest.mark.asyncio
    async def test_stranger_cannot_update(self, workflow, people, ticket):
        with pytest.raises(AuthorizationError) as exc_info:
            await workflow.update_ticket(people["stranger"], ticket.id, subject="Hijacked ticket")
        assert exc_info.value.message == "Not authorized to update this ticket"

    @pytest.mark.asyncio
    async def test_unassign_with_none(self, db_session, workflow, people, category):
        ticket = await TicketFactory.create(
            db_session, created_by=people["owner"], category=category, assigned_to=people["agent"]
        )

        updated = await workflow.update_ticket(people["admin"], ticket.id, assigned_to=None)

        assert updated.assigned_to is None
        record = updated.assignment_history[0]
        assert (record.old_assigned_to_id, record.new_assigned_to_id) == (people["agent"].id, None)

    @pytest.mark.asyncio
    async def test_assign_to_end_user_rejected(self, workflow, people, ticket):
        with pytest.raises(ValidationError) as exc_info:
            await workflow.update_ticket(
                people["agent"], ticket.id, assigned_to=str(people["stranger"].id)
            )
        assert exc_info.value.message == "Can only assign to support agents or admins"

    @pytest.mark.asyncio
    async def test_change_category(self, db_session, workflow, people, ticket):
        billing = await CategoryFactory.create(db_session, name="Billing")

        updated = await workflow.update_ticket(people["owner"], ticket.id, category="BILLING")

        assert updated.category.id == billing.id

    @pytest.mark.asyncio
    async def test_unknown_field_rejected(self, workflow, people, ticket):
        with pytest.raises(ValidationError):
            await workflow.update_ticket(people["agent"], ticket.id, view_count=99)


class TestAssignTicket:

    @pytest.mark.asyncio
    async def test_agent_assigns(self, workflow, recorder, people, ticket):
        updated = await workflow.assign_ticket(people["agent"], ticket.id, str(people["admin"].id))

        assert updated.assigned_to.id == people["admin"].id
        assert updated.assignment_history[0].reason == "Ticket assigned"

        event = recorder.of_type(NotificationType.TICKET_ASSIGNED)[0]
        assert event.recipient_id == people["owner"].id
        assert event.payload["assignee_name"] == "Ada Admin"

    @pytest.mark.asyncio
    async def test_end_user_cannot_assign(self, workflow, people, ticket):
        """Even the ticket's own creator is refused."""
        with pytest.raises(AuthorizationError) as exc_info:
            await workflow.assign_ticket(people["owner"], ticket.id, str(people["agent"].id))
        assert exc_info.value.message == "Only support agents and admins can assign tickets"

    @pytest.mark.asyncio
    async def test_unknown_assignee(self, workflow, people, ticket):
        with pytest.raises(ValidationError) as exc_info:
            await workflow.assign_ticket(people["agent"], ticket.id, str(uuid.uuid4()))
        assert exc_info.value.message == "Assignee not found"

    @pytest.mark.asyncio
    async def test_reassigning_same_agent_records_nothing(self, workflow, people, ticket):
        await workflow.assign_ticket(people["agent"], ticket.id, str(people["agent"].id))
        again = await workflow.assign_ticket(
            people["agent"], ticket.id, str(people["agent"].id), reason="Still mine"
        )

        assert len(again.assignment_history) == 1


class TestDeleteTicket:

    @pytest.mark.asyncio
    async def test_delete_cascades_comments(self, db_session, workflow, people, ticket):
        parent = await CommentFactory.create(db_session, ticket=ticket, author=people["owner"])
        await CommentFactory.create(db_session, ticket=ticket, author=people["agent"], parent=parent)

        await workflow.delete_ticket(people["owner"], str(ticket.id))

        assert await CommentDAO(db_session).count_for_ticket(ticket.id) == 0
        with pytest.raises(TicketNotFoundError):
            await workflow.get_ticket(people["agent"], str(ticket.id))

    @pytest.mark.asyncio
    async def test_stranger_cannot_delete(self, workflow, people, ticket):
        with pytest.raises(AuthorizationError):
            await workflow.delete_ticket(people["stranger"], str(ticket.id))


class TestVoting:

    @pytest.mark.asyncio
    async def test_vote_switch_and_repeat(self, workflow, people, ticket):
        await workflow.vote_ticket(people["agent"], ticket.id, "upvote")
        repeated = await workflow.vote_ticket(people["agent"], ticket.id, "upvote")
        assert repeated.upvotes == [people["agent"].id]

        switched = await workflow.vote_ticket(people["agent"], ticket.id, "downvote")
        assert switched.upvotes == []
        assert switched.downvotes == [people["agent"].id]
        assert switched.vote_count == -1

    @pytest.mark.asyncio
    async def test_invalid_vote_type(self, workflow, people, ticket):
        with pytest.raises(ValidationError) as exc_info:
            await workflow.vote_ticket(people["owner"], ticket.id, "sideways")
        assert exc_info.value.message == "Invalid vote type"

    @pytest.mark.asyncio
    async def test_stranger_cannot_vote(self, workflow, people, ticket):
        with pytest.raises(AuthorizationError):
            await workflow.vote_ticket(people["stranger"], ticket.id, "upvote")

    @pytest.mark.asyncio
    async def test_vote_on_comment(self, db_session, workflow, people, ticket):
        comment = await CommentFactory.create(db_session, ticket=ticket, author=people["agent"])

        voted = await workflow.vote_comment(people["owner"], ticket.id, str(comment.id), "upvote")

        assert voted.upvotes == [people["owner"].id]
        assert voted.vote_count == 1

    @pytest.mark.asyncio
    async def test_end_user_cannot_vote_on_internal_comment(self, db_session, workflow, people, ticket):
        note = await CommentFactory.create(
            db_session, ticket=ticket, author=people["agent"], is_internal=True
        )

        with pytest.raises(CommentNotFoundError):
            await workflow.vote_comment(people["owner"], ticket.id, str(note.id), "upvote")


class TestComments:

    @pytest.mark.asyncio
    async def test_staff_comment_notifies_owner(self, workflow, recorder, people, ticket):
        comment = await workflow.add_comment(people["agent"], ticket.id, "  Please try again  ")

        assert comment.content == "Please try again"
        assert comment.author.id == people["agent"].id
        event = recorder.of_type(NotificationType.TICKET_COMMENTED)[0]
        assert event.recipient_id == people["owner"].id
        assert event.payload["comment_content"] == "Please try again"

    @pytest.mark.asyncio
    async def test_own_comment_and_internal_note_do_not_notify(self, workflow, recorder, people, ticket):
        await workflow.add_comment(people["owner"], ticket.id, "Any update?")
        await workflow.add_comment(people["agent"], ticket.id, "Escalating", is_internal=True)

        assert recorder.events == []

    @pytest.mark.asyncio
    async def test_end_user_internal_comment_rejected(self, workflow, people, ticket):
        with pytest.raises(AuthorizationError) as exc_info:
            await workflow.add_comment(people["owner"], ticket.id, "secret", is_internal=True)
        assert exc_info.value.message == "End users cannot add internal comments"

    @pytest.mark.asyncio
    async def test_stranger_cannot_comment(self, workflow, people, ticket):
        with pytest.raises(AuthorizationError) as exc_info:
            await workflow.add_comment(people["stranger"], ticket.id, "me too")
        assert exc_info.value.message == "Not authorized to comment on this ticket"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("content", ["   ", "c" * 2001])
    async def test_content_limits(self, workflow, people, ticket, content):
        with pytest.raises(ValidationError):
            await workflow.add_comment(people["owner"], ticket.id, content)

    @pytest.mark.asyncio
    async def test_comment_idempotency(self, workflow, people, ticket):
        first = await workflow.add_comment(
            people["owner"], ticket.id, "Hello?", idempotency_key="c-1"
        )
        second = await workflow.add_comment(
            people["owner"], ticket.id, "Hello?", idempotency_key="c-1"
        )

        assert first.id == second.id

    @pytest.mark.asyncio
    async def test_comment_key_reused_on_other_ticket(self, db_session, workflow, people, ticket, category):
        other = await TicketFactory.create(db_session, created_by=people["owner"], category=category)
        await workflow.add_comment(people["owner"], ticket.id, "Hello?", idempotency_key="c-2")

        with pytest.raises(ConflictError):
            await workflow.add_comment(people["owner"], other.id, "Hello?", idempotency_key="c-2")


class TestReplies:

    @pytest.mark.asyncio
    async def test_reply_notifies_parent_author(self, workflow, recorder, people, ticket):
        parent = await workflow.add_comment(people["owner"], ticket.id, "It is still broken")

        reply = await workflow.reply_to_comment(
            people["agent"], ticket.id, str(parent.id), "Looking into it"
        )

        assert reply.parent_comment_id == parent.id
        event = recorder.of_type(NotificationType.COMMENT_REPLY)[0]
        assert event.recipient_id == people["owner"].id
        assert event.payload["parent_comment_id"] == str(parent.id)

    @pytest.mark.asyncio
    async def test_reply_to_reply_stays_two_tier(self, workflow, recorder, people, ticket):
        parent = await workflow.add_comment(people["owner"], ticket.id, "First")
        reply = await workflow.reply_to_comment(people["agent"], ticket.id, parent.id, "Second")

        nested = await workflow.reply_to_comment(people["owner"], ticket.id, reply.id, "Third")

        assert nested.parent_comment_id == parent.id
        # The author of the reply that was answered is the one notified
        assert recorder.of_type(NotificationType.COMMENT_REPLY)[-1].recipient_id == people["agent"].id

        view = await workflow.get_ticket(people["owner"], ticket.id)
        assert [r.content for r in view.comments[0].replies] == ["Second", "Third"]

    @pytest.mark.asyncio
    async def test_replying_to_self_does_not_notify(self, workflow, recorder, people, ticket):
        parent = await workflow.add_comment(people["owner"], ticket.id, "Note to self")
        await workflow.reply_to_comment(people["owner"], ticket.id, parent.id, "Addendum")

        assert recorder.of_type(NotificationType.COMMENT_REPLY) == []

    @pytest.mark.asyncio
    async def test_missing_parent(self, workflow, people, ticket):
        with pytest.raises(CommentNotFoundError) as exc_info:
            await workflow.reply_to_comment(people["owner"], ticket.id, str(uuid.uuid4()), "Hi")
        assert exc_info.value.message == "Parent comment not found"

    @pytest.mark.asyncio
    async def test_malformed_comment_id(self, workflow, people, ticket):
        with pytest.raises(InvalidIdentifierError) as exc_info:
            await workflow.reply_to_comment(people["owner"], ticket.id, "abc", "Hi")
        assert exc_info.value.message == "Invalid comment ID format"

    @pytest.mark.asyncio
    async def test_internal_reply_to_end_user_not_notified(self, workflow, recorder, people, ticket):
        parent = await workflow.add_comment(people["owner"], ticket.id, "Question")

        await workflow.reply_to_comment(
            people["agent"], ticket.id, parent.id, "Staff discussion", is_internal=True
        )

        assert recorder.of_type(NotificationType.COMMENT_REPLY) == []


class TestBuildCommentTree:

    @pytest.mark.asyncio
    async def test_filters_for_viewer(self, db_session, people, ticket):
        parent = await CommentFactory.create(db_session, ticket=ticket, author=people["owner"])
        await CommentFactory.create(
            db_session, ticket=ticket, author=people["agent"], parent=parent, is_internal=True
        )
        thread = await CommentDAO(db_session).list_thread(ticket.id)

        owner_tree = build_comment_tree(people["owner"], thread)
        admin_tree = build_comment_tree(people["admin"], thread)

        assert owner_tree[0].replies == []
        assert len(admin_tree[0].replies) == 1
