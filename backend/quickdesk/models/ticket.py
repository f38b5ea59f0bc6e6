"""
Ticket models for the help-desk workflow.

WHAT: SQLAlchemy models for tickets and their change history.

WHY: A ticket is a unit of support work tracked through status, priority and
assignment. Every change to one of those three fields leaves an append-only
history record (who, when, old, new, why), so the full lifecycle can be
reconstructed from the ticket alone.

HOW: Uses SQLAlchemy 2.0 with:
- Enums for status and priority fields
- One history table per tracked field, sharing TicketChangeMixin
- Votes in ticket_votes (see quickdesk.models.vote)
- Indexes for the listing filters
"""

import enum
import uuid
from datetime import datetime
from typing import Optional, List, TYPE_CHECKING

from sqlalchemy import (
    Integer,
    String,
    Text,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    JSON,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import relationship, Mapped, mapped_column, declared_attr

from quickdesk.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin, str_enum, utcnow
from quickdesk.models.vote import VoteSetsMixin

if TYPE_CHECKING:
    from quickdesk.models.category import Category
    from quickdesk.models.user import User
    from quickdesk.models.vote import TicketVote


# ============================================================================
# Enums
# ============================================================================


class TicketStatus(str, enum.Enum):
    """
    Ticket status values.

    WHY: Any status may follow any other. The only derived behaviour is that
    the first move into RESOLVED or CLOSED stamps resolved_at / closed_at.
    """

    OPEN = "open"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"


class TicketPriority(str, enum.Enum):
    """Ticket priority levels."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


# Field limits shared by schemas and the workflow engine
SUBJECT_MIN_LENGTH = 5
SUBJECT_MAX_LENGTH = 100
DESCRIPTION_MIN_LENGTH = 10
DESCRIPTION_MAX_LENGTH = 1000

DEFAULT_STATUS_REASON = "Status updated"
DEFAULT_PRIORITY_REASON = "Priority updated"
DEFAULT_ASSIGNMENT_REASON = "Ticket reassigned"


# ============================================================================
# Ticket Model
# ============================================================================


class Ticket(Base, UUIDPrimaryKeyMixin, TimestampMixin, VoteSetsMixin):
    """
    Support ticket.

    Security: end users only see tickets they created (enforced by the
    workflow engine and the listing service, not here).
    """

    __tablename__ = "tickets"
    __table_args__ = (
        Index("ix_tickets_status", "status"),
        Index("ix_tickets_priority", "priority"),
        Index("ix_tickets_created_by_id", "created_by_id"),
        Index("ix_tickets_assigned_to_id", "assigned_to_id"),
        Index("ix_tickets_created_at", "created_at"),
        # NULL keys never collide, so only keyed creates are deduplicated
        UniqueConstraint(
            "created_by_id", "idempotency_key", name="uq_tickets_creator_idempotency_key"
        ),
    )

    subject: Mapped[str] = mapped_column(String(SUBJECT_MAX_LENGTH), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)

    category_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("categories.id"), nullable=False
    )
    status: Mapped[TicketStatus] = mapped_column(
        str_enum(TicketStatus, "ticketstatus"),
        default=TicketStatus.OPEN,
        nullable=False,
    )
    priority: Mapped[TicketPriority] = mapped_column(
        str_enum(TicketPriority, "ticketpriority"),
        default=TicketPriority.MEDIUM,
        nullable=False,
    )

    # createdBy is immutable after creation
    created_by_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False
    )
    assigned_to_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=True
    )

    # Ordered opaque URLs from the upload service
    attachments: Mapped[List[str]] = mapped_column(JSON, default=list, nullable=False)

    view_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_public: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    public_link: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Set once on the first transition into the status, never cleared
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    idempotency_key: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Relationships
    category: Mapped["Category"] = relationship("Category")
    created_by: Mapped["User"] = relationship("User", foreign_keys=[created_by_id])
    assigned_to: Mapped[Optional["User"]] = relationship("User", foreign_keys=[assigned_to_id])

    votes: Mapped[List["TicketVote"]] = relationship(
        "TicketVote",
        back_populates="ticket",
        cascade="all, delete-orphan",
        order_by="TicketVote.id",
    )
    status_history: Mapped[List["TicketStatusChange"]] = relationship(
        "TicketStatusChange",
        cascade="all, delete-orphan",
        order_by="TicketStatusChange.id",
    )
    priority_history: Mapped[List["TicketPriorityChange"]] = relationship(
        "TicketPriorityChange",
        cascade="all, delete-orphan",
        order_by="TicketPriorityChange.id",
    )
    assignment_history: Mapped[List["TicketAssignmentChange"]] = relationship(
        "TicketAssignmentChange",
        cascade="all, delete-orphan",
        order_by="TicketAssignmentChange.id",
    )

    def __repr__(self) -> str:
        return f"<Ticket(id={self.id}, subject={self.subject!r}, status={self.status.value})>"


# ============================================================================
# History Models
# ============================================================================


class TicketChangeMixin:
    """
    Columns shared by the three append-only history tables.

    Integer ids give a total order per ticket even when two changes share
    a changed_at timestamp.
    """

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ticket_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    changed_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    changed_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    reason: Mapped[str] = mapped_column(String(500), nullable=False)

    @declared_attr
    def changed_by(cls) -> Mapped[Optional["User"]]:
        return relationship("User", foreign_keys=f"{cls.__name__}.changed_by_id")


class TicketStatusChange(Base, TicketChangeMixin):
    """One status transition."""

    __tablename__ = "ticket_status_history"

    old_status: Mapped[TicketStatus] = mapped_column(
        str_enum(TicketStatus, "ticketstatus"), nullable=False
    )
    new_status: Mapped[TicketStatus] = mapped_column(
        str_enum(TicketStatus, "ticketstatus"), nullable=False
    )


class TicketPriorityChange(Base, TicketChangeMixin):
    """One priority change."""

    __tablename__ = "ticket_priority_history"

    old_priority: Mapped[TicketPriority] = mapped_column(
        str_enum(TicketPriority, "ticketpriority"), nullable=False
    )
    new_priority: Mapped[TicketPriority] = mapped_column(
        str_enum(TicketPriority, "ticketpriority"), nullable=False
    )


class TicketAssignmentChange(Base, TicketChangeMixin):
    """One assignment change; either side may be unassigned (NULL)."""

    __tablename__ = "ticket_assignment_history"

    old_assigned_to_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    new_assigned_to_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    old_assigned_to: Mapped[Optional["User"]] = relationship(
        "User", foreign_keys=[old_assigned_to_id]
    )
    new_assigned_to: Mapped[Optional["User"]] = relationship(
        "User", foreign_keys=[new_assigned_to_id]
    )
