"""
Vote models for tickets and comments.

WHAT: One row per (entity, user) carrying the vote type.

WHY: A principal may sit in at most one of the upvote/downvote sets. Storing
the vote as a single row under a (entity_id, user_id) unique constraint makes
that mutual exclusion a property of the schema: casting a vote is an upsert
that either inserts the row or flips its type, so concurrent votes from
different users never overwrite each other and a repeated vote is a no-op.
"""

import enum
import uuid
from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, Integer, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from quickdesk.models.base import Base, TimestampMixin, str_enum

if TYPE_CHECKING:
    from quickdesk.models.ticket import Ticket
    from quickdesk.models.comment import Comment


class VoteType(str, enum.Enum):
    """Vote direction."""

    UPVOTE = "upvote"
    DOWNVOTE = "downvote"


class TicketVote(Base, TimestampMixin):
    """A user's current vote on a ticket."""

    __tablename__ = "ticket_votes"
    __table_args__ = (
        UniqueConstraint("ticket_id", "user_id", name="uq_ticket_votes_ticket_user"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ticket_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    vote_type: Mapped[VoteType] = mapped_column(str_enum(VoteType, "votetype"), nullable=False)

    ticket: Mapped["Ticket"] = relationship("Ticket", back_populates="votes")


class CommentVote(Base, TimestampMixin):
    """A user's current vote on a comment."""

    __tablename__ = "comment_votes"
    __table_args__ = (
        UniqueConstraint("comment_id", "user_id", name="uq_comment_votes_comment_user"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    comment_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("comments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    vote_type: Mapped[VoteType] = mapped_column(
        str_enum(VoteType, "votetype"), nullable=False
    )

    comment: Mapped["Comment"] = relationship("Comment", back_populates="votes")


class VoteSetsMixin:
    """
    Read-only vote set views over a `votes` collection.

    Requires the `votes` relationship to be loaded.
    """

    @property
    def upvotes(self) -> list:
        return [vote.user_id for vote in self.votes if vote.vote_type == VoteType.UPVOTE]

    @property
    def downvotes(self) -> list:
        return [vote.user_id for vote in self.votes if vote.vote_type == VoteType.DOWNVOTE]

    @property
    def vote_count(self) -> int:
        """Net score: upvotes minus downvotes."""
        return len(self.upvotes) - len(self.downvotes)
