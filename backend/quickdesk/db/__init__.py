"""Database package"""

from quickdesk.db.session import AsyncSessionLocal, engine, get_db
from quickdesk.models.base import Base

__all__ = ["Base", "AsyncSessionLocal", "engine", "get_db"]
