"""
Notification model.

WHAT: In-app notification records written by the notification dispatcher.

WHY: Each workflow event (ticket created, updated, assigned, commented,
comment reply) becomes one row per recipient, so users have an inbox with
read state independent of whether the email copy was delivered.
"""

import enum
import uuid
from datetime import datetime
from typing import Any, Dict, Optional, TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, JSON, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from quickdesk.models.base import Base, UUIDPrimaryKeyMixin, str_enum, utcnow

if TYPE_CHECKING:
    from quickdesk.models.user import User


class NotificationType(str, enum.Enum):
    """Workflow events that produce notifications."""

    TICKET_CREATED = "created"
    TICKET_UPDATED = "updated"
    TICKET_ASSIGNED = "assigned"
    TICKET_COMMENTED = "commented"
    COMMENT_REPLY = "comment_reply"


class Notification(Base, UUIDPrimaryKeyMixin):
    """One notification for one recipient."""

    __tablename__ = "notifications"
    __table_args__ = (
        Index("ix_notifications_recipient_read", "recipient_id", "is_read"),
    )

    recipient_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    sender_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    # Notifications outlive deleted tickets
    ticket_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("tickets.id", ondelete="SET NULL"), nullable=True
    )

    type: Mapped[NotificationType] = mapped_column(
        str_enum(NotificationType, "notificationtype"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    # "metadata" is reserved on declarative classes
    extra: Mapped[Dict[str, Any]] = mapped_column("metadata", JSON, default=dict, nullable=False)

    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    read_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    recipient: Mapped["User"] = relationship("User", foreign_keys=[recipient_id])
    sender: Mapped[Optional["User"]] = relationship("User", foreign_keys=[sender_id])

    def __repr__(self) -> str:
        return f"<Notification(id={self.id}, type={self.type.value}, recipient_id={self.recipient_id})>"
