"""
Database models package.

WHY: Centralizing model imports ensures Alembic can discover all models
for migration generation and makes it easier to import models elsewhere.
"""

from quickdesk.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin, utcnow
from quickdesk.models.user import User, UserRole, STAFF_ROLES
from quickdesk.models.category import Category
from quickdesk.models.vote import VoteType, TicketVote, CommentVote
from quickdesk.models.ticket import (
    Ticket,
    TicketStatus,
    TicketPriority,
    TicketStatusChange,
    TicketPriorityChange,
    TicketAssignmentChange,
)
from quickdesk.models.comment import Comment
from quickdesk.models.notification import Notification, NotificationType

__all__ = [
    "Base",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
    "utcnow",
    "User",
    "UserRole",
    "STAFF_ROLES",
    "Category",
    "VoteType",
    "TicketVote",
    "CommentVote",
    "Ticket",
    "TicketStatus",
    "TicketPriority",
    "TicketStatusChange",
    "TicketPriorityChange",
    "TicketAssignmentChange",
    "Comment",
    "Notification",
    "NotificationType",
]
