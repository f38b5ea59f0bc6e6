"""
Category model.

WHY: Categories are named, colored classification tags. Tickets reference
them by id; clients may refer to them by name, which is why names are
unique regardless of case at the application layer.
"""

import uuid
from typing import Optional, TYPE_CHECKING

from sqlalchemy import String, Boolean, ForeignKey, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from quickdesk.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin

if TYPE_CHECKING:
    from quickdesk.models.user import User


DEFAULT_CATEGORY_COLOR = "#6B7280"


class Category(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """Ticket category."""

    __tablename__ = "categories"

    name: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    color: Mapped[str] = mapped_column(String(7), default=DEFAULT_CATEGORY_COLOR, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Seeded categories have no creator
    created_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_by: Mapped[Optional["User"]] = relationship("User")

    def __repr__(self) -> str:
        return f"<Category(id={self.id}, name={self.name})>"
