"""
Comment Data Access Object.

WHAT: Persistence for ticket comments and their single level of replies.

WHY: Threads are read as a whole (every ticket view renders them), so the
thread query eager-loads authors, votes and replies in a fixed number of
SELECTs instead of lazy-loading per comment.
"""

import uuid
from typing import List, Optional

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from quickdesk.models.comment import Comment
from quickdesk.models.vote import CommentVote


def _thread_load_options() -> list:
    return [
        selectinload(Comment.author),
        selectinload(Comment.votes),
        selectinload(Comment.replies).selectinload(Comment.author),
        selectinload(Comment.replies).selectinload(Comment.votes),
    ]


class CommentDAO:
    """
    Data Access Object for Comment operations.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        ticket_id: uuid.UUID,
        author_id: uuid.UUID,
        content: str,
        attachments: Optional[List[str]] = None,
        is_internal: bool = False,
        parent_comment_id: Optional[uuid.UUID] = None,
        idempotency_key: Optional[str] = None,
    ) -> Comment:
        """
        Insert a comment, or a reply when parent_comment_id is set.

        Args:
            ticket_id: Owning ticket
            author_id: Commenting user
            content: Trimmed comment text
            attachments: Ordered attachment URLs
            is_internal: Staff-only note
            parent_comment_id: Top-level comment this replies to
            idempotency_key: Client-supplied dedup key

        Returns:
            Created Comment (relationships not loaded)
        """
        comment = Comment(
            ticket_id=ticket_id,
            author_id=author_id,
            content=content,
            attachments=list(attachments or []),
            is_internal=is_internal,
            is_edited=False,
            parent_comment_id=parent_comment_id,
            idempotency_key=idempotency_key,
        )
        self.session.add(comment)
        await self.session.flush()
        return comment

    async def get_for_ticket(
        self,
        ticket_id: uuid.UUID,
        comment_id: uuid.UUID,
        refresh: bool = False,
    ) -> Optional[Comment]:
        """
        Get a comment by id, only if it belongs to the given ticket.

        Args:
            ticket_id: Ticket the comment must belong to
            comment_id: Comment ID
            refresh: Overwrite the session's copy (after a vote upsert or a
                new reply)

        Returns:
            Comment with author, votes and replies loaded, or None
        """
        query = (
            select(Comment)
            .options(*_thread_load_options())
            .where(Comment.id == comment_id, Comment.ticket_id == ticket_id)
        )
        if refresh:
            query = query.execution_options(populate_existing=True)
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get_by_idempotency_key(
        self, author_id: uuid.UUID, idempotency_key: str
    ) -> Optional[Comment]:
        """Comment previously created by this author with this key, if any."""
        result = await self.session.execute(
            select(Comment)
            .options(*_thread_load_options())
            .where(Comment.author_id == author_id, Comment.idempotency_key == idempotency_key)
        )
        return result.scalar_one_or_none()

    async def list_thread(
        self, ticket_id: uuid.UUID, include_internal: bool = True
    ) -> List[Comment]:
        """
        Top-level comments of a ticket, oldest first, with replies loaded.

        Args:
            ticket_id: Ticket ID
            include_internal: False drops internal top-level comments; internal
                replies are left for the caller to filter

        Returns:
            List of top-level comments
        """
        query = (
            select(Comment)
            .options(*_thread_load_options())
            .where(Comment.ticket_id == ticket_id, Comment.parent_comment_id.is_(None))
            .order_by(Comment.created_at, Comment.id)
            .execution_options(populate_existing=True)
        )
        if not include_internal:
            query = query.where(Comment.is_internal.is_(False))
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def count_for_ticket(self, ticket_id: uuid.UUID) -> int:
        """Comments and replies still stored for a ticket."""
        result = await self.session.execute(
            select(Comment.id).where(Comment.ticket_id == ticket_id)
        )
        return len(result.all())

    async def delete_for_ticket(self, ticket_id: uuid.UUID) -> int:
        """
        Remove every comment of a ticket, replies included, with their votes.

        Replies go before their parents so the self-reference never dangles.

        Returns:
            Number of comments deleted
        """
        comment_ids = select(Comment.id).where(Comment.ticket_id == ticket_id)
        await self.session.execute(
            delete(CommentVote)
            .where(CommentVote.comment_id.in_(comment_ids))
            .execution_options(synchronize_session=False)
        )

        replies = await self.session.execute(
            delete(Comment)
            .where(Comment.ticket_id == ticket_id, Comment.parent_comment_id.is_not(None))
            .execution_options(synchronize_session=False)
        )
        top_level = await self.session.execute(
            delete(Comment)
            .where(Comment.ticket_id == ticket_id)
            .execution_options(synchronize_session=False)
        )
        return replies.rowcount + top_level.rowcount
