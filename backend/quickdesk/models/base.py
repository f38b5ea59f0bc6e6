"""
Base model class for all SQLAlchemy models.

WHY: Centralizing common model functionality (timestamps, ID) in a base class
ensures consistency across all models and reduces code duplication.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, Enum as SQLEnum, Uuid
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    """
    Current UTC time as a naive datetime.

    WHY: Columns are timezone-naive DateTime (stored as UTC) so values
    compare the same way on PostgreSQL and SQLite.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def str_enum(enum_cls: type, name: str) -> SQLEnum:
    """
    Enum column type that stores member values ("in_progress"), not names.

    WHY: The values are what the API speaks and what the migration declares.
    """
    return SQLEnum(
        enum_cls,
        name=name,
        values_callable=lambda members: [member.value for member in members],
    )


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy models.

    WHY: DeclarativeBase provides the foundation for SQLAlchemy 2.0 models
    with improved type hints and async support.
    """

    pass


class TimestampMixin:
    """
    Mixin to add created_at and updated_at timestamps to models.
    """

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )


class UUIDPrimaryKeyMixin:
    """
    Mixin to add an opaque UUID primary key to models.

    WHY: Ticket, comment, user and category ids are exposed in URLs and must
    not be guessable or sequential. A malformed id is rejected up front
    (InvalidIdentifierError) before any query runs.
    """

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
