"""
Data Access Object (DAO) package.

WHY: DAOs provide a clean separation between database operations and business logic,
making the codebase more testable and maintainable.
"""

from quickdesk.dao.base import BaseDAO
from quickdesk.dao.user import UserDAO
from quickdesk.dao.category import CategoryDAO
from quickdesk.dao.ticket import TicketDAO
from quickdesk.dao.comment import CommentDAO
from quickdesk.dao.vote import TicketVoteDAO, CommentVoteDAO
from quickdesk.dao.notification import NotificationDAO

__all__ = [
    "BaseDAO",
    "UserDAO",
    "CategoryDAO",
    "TicketDAO",
    "CommentDAO",
    "TicketVoteDAO",
    "CommentVoteDAO",
    "NotificationDAO",
]
