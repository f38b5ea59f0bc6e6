"""
Comment model.

WHAT: Comments on tickets, with one level of replies and voting.

WHY: Threads are two-tier: a top-level comment (parent_comment_id NULL) owns
an ordered, flat list of replies. A reply never has replies of its own.
Internal comments (is_internal) are staff notes that end users never see.
"""

import uuid
from datetime import datetime
from typing import Optional, List, TYPE_CHECKING

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    JSON,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import relationship, Mapped, mapped_column

from quickdesk.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from quickdesk.models.vote import VoteSetsMixin

if TYPE_CHECKING:
    from quickdesk.models.ticket import Ticket
    from quickdesk.models.user import User
    from quickdesk.models.vote import CommentVote


CONTENT_MIN_LENGTH = 1
CONTENT_MAX_LENGTH = 2000


class Comment(Base, UUIDPrimaryKeyMixin, TimestampMixin, VoteSetsMixin):
    """Ticket comment or reply."""

    __tablename__ = "comments"
    __table_args__ = (
        Index("ix_comments_ticket_id_created_at", "ticket_id", "created_at"),
        UniqueConstraint(
            "author_id", "idempotency_key", name="uq_comments_author_idempotency_key"
        ),
    )

    ticket_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False
    )
    author_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    attachments: Mapped[List[str]] = mapped_column(JSON, default=list, nullable=False)
    is_internal: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # No edit operation exists yet; columns kept so edits need no migration
    is_edited: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    edited_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # NULL for top-level comments; always a top-level comment otherwise
    parent_comment_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("comments.id", ondelete="CASCADE"), nullable=True, index=True
    )

    idempotency_key: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Relationships
    ticket: Mapped["Ticket"] = relationship("Ticket")
    author: Mapped["User"] = relationship("User")
    parent: Mapped[Optional["Comment"]] = relationship(
        "Comment",
        remote_side="Comment.id",
        back_populates="replies",
    )
    replies: Mapped[List["Comment"]] = relationship(
        "Comment",
        back_populates="parent",
        order_by="Comment.created_at",
    )
    votes: Mapped[List["CommentVote"]] = relationship(
        "CommentVote",
        back_populates="comment",
        cascade="all, delete-orphan",
        order_by="CommentVote.id",
    )

    @property
    def is_reply(self) -> bool:
        return self.parent_comment_id is not None

    def __repr__(self) -> str:
        return f"<Comment(id={self.id}, ticket_id={self.ticket_id}, reply={self.is_reply})>"
