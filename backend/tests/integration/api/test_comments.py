"""
Integration tests for ticket comments, replies and comment votes.

WHAT: Tests for the comment thread endpoints via HTTP API.

WHY: Comment threads carry the conversation between users and staff:
1. Internal notes must never reach end users
2. Replies are two-tier (a reply to a reply joins the same thread)
3. The right person is notified for each comment and reply

HOW: Uses pytest-asyncio with AsyncClient; the notification publisher is
replaced with a recorder.
"""

import uuid

import pytest
import pytest_asyncio
from httpx import AsyncClient

from quickdesk.models.notification import NotificationType
from tests.factories import CategoryFactory, CommentFactory, TicketFactory, UserFactory


@pytest_asyncio.fixture
async def setup(db_session) -> dict:
    owner = await UserFactory.create_end_user(db_session, name="Olivia Owner")
    other = await UserFactory.create_end_user(db_session, name="Sam Stranger")
    agent = await UserFactory.create_agent(db_session, name="Alex Agent")
    category = await CategoryFactory.create(db_session, name="Technical")
    ticket = await TicketFactory.create(db_session, created_by=owner, category=category)
    return {"owner": owner, "other": other, "agent": agent, "ticket": ticket}


class TestAddComment:

    @pytest.mark.asyncio
    async def test_agent_comment_notifies_owner(self, client: AsyncClient, auth_headers, setup, publisher):
        ticket = setup["ticket"]

        response = await client.post(
            f"/api/tickets/{ticket.id}/comments",
            headers=auth_headers(setup["agent"]),
            json={"content": "Please restart the printer"},
        )

        assert response.status_code == 201
        comment = response.json()["data"]
        assert comment["content"] == "Please restart the printer"
        assert comment["is_internal"] is False
        assert comment["parent_comment_id"] is None
        assert comment["author"]["id"] == str(setup["agent"].id)

        events = publisher.of_type(NotificationType.TICKET_COMMENTED)
        assert len(events) == 1
        assert events[0].recipient_id == setup["owner"].id
        assert events[0].payload["comment_content"] == "Please restart the printer"

    @pytest.mark.asyncio
    async def test_owner_comment_notifies_nobody(self, client, auth_headers, setup, publisher):
        response = await client.post(
            f"/api/tickets/{setup['ticket'].id}/comments",
            headers=auth_headers(setup["owner"]),
            json={"content": "It is still offline"},
        )

        assert response.status_code == 201
        assert publisher.events == []

    @pytest.mark.asyncio
    async def test_internal_comment_hidden_from_owner(self, client, auth_headers, setup, publisher):
        """
        Test that internal notes are staff-only.

        WHY: Agents discuss tickets in internal notes; the end user must
        not see them in the detail view and must not be notified.
        """
        ticket = setup["ticket"]
        await client.post(
            f"/api/tickets/{ticket.id}/comments",
            headers=auth_headers(setup["agent"]),
            json={"content": "Customer is on the legacy plan", "isInternal": True},
        )

        owner_view = await client.get(f"/api/tickets/{ticket.id}", headers=auth_headers(setup["owner"]))
        agent_view = await client.get(f"/api/tickets/{ticket.id}", headers=auth_headers(setup["agent"]))

        assert owner_view.json()["data"]["comments"] == []
        assert len(agent_view.json()["data"]["comments"]) == 1
        assert agent_view.json()["data"]["comments"][0]["is_internal"] is True
        assert publisher.of_type(NotificationType.TICKET_COMMENTED) == []

    @pytest.mark.asyncio
    async def test_end_user_cannot_add_internal(self, client, auth_headers, setup):
        response = await client.post(
            f"/api/tickets/{setup['ticket'].id}/comments",
            headers=auth_headers(setup["owner"]),
            json={"content": "Sneaky internal note", "isInternal": True},
        )

        assert response.status_code == 403
        assert response.json()["message"] == "End users cannot add internal comments"

    @pytest.mark.asyncio
    async def test_other_user_cannot_comment(self, client, auth_headers, setup):
        response = await client.post(
            f"/api/tickets/{setup['ticket'].id}/comments",
            headers=auth_headers(setup["other"]),
            json={"content": "Me too"},
        )

        assert response.status_code == 403
        assert response.json()["message"] == "Not authorized to comment on this ticket"

    @pytest.mark.asyncio
    async def test_empty_content_rejected(self, client, auth_headers, setup):
        response = await client.post(
            f"/api/tickets/{setup['ticket'].id}/comments",
            headers=auth_headers(setup["owner"]),
            json={"content": "   "},
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_idempotency_key_replays(self, client, auth_headers, setup, publisher):
        headers = {**auth_headers(setup["agent"]), "Idempotency-Key": "comment-1"}
        url = f"/api/tickets/{setup['ticket'].id}/comments"

        first = await client.post(url, headers=headers, json={"content": "Looking into it"})
        second = await client.post(url, headers=headers, json={"content": "Looking into it"})

        assert first.json()["data"]["id"] == second.json()["data"]["id"]
        assert len(publisher.of_type(NotificationType.TICKET_COMMENTED)) == 1

    @pytest.mark.asyncio
    async def test_replay_hides_internal_replies(self, client, auth_headers, setup):
        """
        Test that a replayed comment is filtered like the detail view.

        WHY: The replay returns the stored comment with its thread, which
        may since have gained internal staff replies.
        """
        ticket = setup["ticket"]
        owner_headers = {**auth_headers(setup["owner"]), "Idempotency-Key": "owner-1"}
        url = f"/api/tickets/{ticket.id}/comments"

        first = await client.post(url, headers=owner_headers, json={"content": "Still broken"})
        comment_id = first.json()["data"]["id"]
        await client.post(
            f"{url}/{comment_id}/reply",
            headers=auth_headers(setup["agent"]),
            json={"content": "Staff only: check the license server", "isInternal": True},
        )

        replay = await client.post(url, headers=owner_headers, json={"content": "Still broken"})

        assert replay.status_code == 201
        assert replay.json()["data"]["id"] == comment_id
        assert replay.json()["data"]["replies"] == []


class TestReplies:

    @pytest.mark.asyncio
    async def test_reply_threads_and_notifies(self, client, auth_headers, db_session, setup, publisher):
        ticket = setup["ticket"]
        comment = await CommentFactory.create(db_session, ticket=ticket, author=setup["owner"])

        response = await client.post(
            f"/api/tickets/{ticket.id}/comments/{comment.id}/reply",
            headers=auth_headers(setup["agent"]),
            json={"content": "Try the other tray"},
        )

        assert response.status_code == 201
        reply = response.json()["data"]
        assert reply["parent_comment_id"] == str(comment.id)

        events = publisher.of_type(NotificationType.COMMENT_REPLY)
        assert len(events) == 1
        assert events[0].recipient_id == setup["owner"].id
        assert events[0].payload["parent_comment_id"] == str(comment.id)

    @pytest.mark.asyncio
    async def test_reply_to_reply_joins_thread(self, client, auth_headers, db_session, setup):
        """
        Test two-tier threading.

        WHY: Threads are never deeper than one level; replying to a reply
        attaches to the top-level comment.
        """
        ticket = setup["ticket"]
        root = await CommentFactory.create(db_session, ticket=ticket, author=setup["owner"])
        first_reply = await CommentFactory.create(
            db_session, ticket=ticket, author=setup["agent"], parent=root
        )

        response = await client.post(
            f"/api/tickets/{ticket.id}/comments/{first_reply.id}/reply",
            headers=auth_headers(setup["owner"]),
            json={"content": "That worked, thanks"},
        )

        assert response.json()["data"]["parent_comment_id"] == str(root.id)

        detail = await client.get(f"/api/tickets/{ticket.id}", headers=auth_headers(setup["owner"]))
        comments = detail.json()["data"]["comments"]
        assert len(comments) == 1
        assert [r["content"] for r in comments[0]["replies"]][-1] == "That worked, thanks"

    @pytest.mark.asyncio
    async def test_missing_parent(self, client, auth_headers, setup):
        response = await client.post(
            f"/api/tickets/{setup['ticket'].id}/comments/{uuid.uuid4()}/reply",
            headers=auth_headers(setup["owner"]),
            json={"content": "Hello there"},
        )

        assert response.status_code == 404
        assert response.json()["message"] == "Parent comment not found"

    @pytest.mark.asyncio
    async def test_malformed_comment_id(self, client, auth_headers, setup):
        response = await client.post(
            f"/api/tickets/{setup['ticket'].id}/comments/42/reply",
            headers=auth_headers(setup["owner"]),
            json={"content": "Hello there"},
        )

        assert response.status_code == 400
        assert response.json()["message"] == "Invalid comment ID format"


class TestCommentVotes:

    @pytest.mark.asyncio
    async def test_vote_on_comment(self, client, auth_headers, db_session, setup):
        ticket = setup["ticket"]
        comment = await CommentFactory.create(db_session, ticket=ticket, author=setup["agent"])

        response = await client.put(
            f"/api/tickets/{ticket.id}/comments/{comment.id}/vote",
            headers=auth_headers(setup["owner"]),
            json={"voteType": "upvote"},
        )

        assert response.status_code == 200
        assert response.json()["data"]["upvotes"] == [str(setup["owner"].id)]
        assert response.json()["data"]["vote_count"] == 1

    @pytest.mark.asyncio
    async def test_internal_comment_vote_hidden(self, client, auth_headers, db_session, setup):
        ticket = setup["ticket"]
        note = await CommentFactory.create(
            db_session, ticket=ticket, author=setup["agent"], is_internal=True
        )

        response = await client.put(
            f"/api/tickets/{ticket.id}/comments/{note.id}/vote",
            headers=auth_headers(setup["owner"]),
            json={"voteType": "upvote"},
        )

        assert response.status_code == 404
