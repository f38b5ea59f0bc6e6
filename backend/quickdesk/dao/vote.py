"""
Vote Data Access Objects.

WHAT: Casts votes on tickets and comments.

WHY: Casting is "remove the user from both sets, then add to the chosen one".
With one row per (entity, user) that is a single upsert: insert the row, or
flip vote_type if the user already voted. The database applies it
atomically, so two users voting at once are both kept and a repeated vote
changes nothing.

HOW: PostgreSQL and SQLite both support INSERT ... ON CONFLICT DO UPDATE
through their SQLAlchemy dialect insert constructs. Other backends fall back
to a row-locked read followed by update-or-insert.
"""

import uuid
from typing import Generic, Type, TypeVar, Union

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from quickdesk.models.base import utcnow
from quickdesk.models.vote import CommentVote, TicketVote, VoteType


VoteModel = TypeVar("VoteModel", bound=Union[TicketVote, CommentVote])

_UPSERT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class VoteDAO(Generic[VoteModel]):
    """
    Shared upsert logic for vote tables.

    Subclasses set `model` and `target_column` (the foreign key naming the
    voted entity).
    """

    model: Type[VoteModel]
    target_column: str

    def __init__(self, session: AsyncSession):
        self.session = session

    async def cast(self, target_id: uuid.UUID, user_id: uuid.UUID, vote_type: VoteType) -> None:
        """
        Record `user_id`'s vote on the target, replacing any earlier vote.

        Args:
            target_id: Ticket or comment id
            user_id: Voting user
            vote_type: UPVOTE or DOWNVOTE
        """
        dialect_name = self.session.get_bind().dialect.name
        insert = _UPSERT_INSERTS.get(dialect_name)
        if insert is None:
            await self._cast_with_lock(target_id, user_id, vote_type)
            return

        now = utcnow()
        statement = insert(self.model).values(
            {
                self.target_column: target_id,
                "user_id": user_id,
                "vote_type": vote_type,
                "created_at": now,
                "updated_at": now,
            }
        )
        statement = statement.on_conflict_do_update(
            index_elements=[self.target_column, "user_id"],
            set_={"vote_type": statement.excluded.vote_type, "updated_at": now},
        )
        await self.session.execute(statement)

    async def _cast_with_lock(
        self, target_id: uuid.UUID, user_id: uuid.UUID, vote_type: VoteType
    ) -> None:
        target = getattr(self.model, self.target_column)
        result = await self.session.execute(
            select(self.model)
            .where(target == target_id, self.model.user_id == user_id)
            .with_for_update()
        )
        vote = result.scalar_one_or_none()
        if vote is None:
            self.session.add(
                self.model(**{self.target_column: target_id, "user_id": user_id, "vote_type": vote_type})
            )
        else:
            vote.vote_type = vote_type
        await self.session.flush()


class TicketVoteDAO(VoteDAO[TicketVote]):
    """Votes on tickets."""

    model = TicketVote
    target_column = "ticket_id"


class CommentVoteDAO(VoteDAO[CommentVote]):
    """Votes on comments."""

    model = CommentVote
    target_column = "comment_id"
