"""
User model.

WHY: Users are the principals of the help desk. Credentials live with the
identity provider; this table only carries what authorization and
notifications need: a role, an active flag, a display name and an email.
"""

import enum

from sqlalchemy import String, Boolean
from sqlalchemy.orm import Mapped, mapped_column

from quickdesk.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin, str_enum


class UserRole(str, enum.Enum):
    """
    User role enumeration.

    - END_USER: submits tickets, sees only their own
    - SUPPORT_AGENT: triages and works any ticket
    - ADMIN: everything an agent can do plus user management
    """

    END_USER = "end_user"
    SUPPORT_AGENT = "support_agent"
    ADMIN = "admin"


STAFF_ROLES = (UserRole.SUPPORT_AGENT, UserRole.ADMIN)


class User(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """
    User model representing a help-desk principal.
    """

    __tablename__ = "users"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)

    # Default END_USER ensures least-privilege access
    role: Mapped[UserRole] = mapped_column(
        str_enum(UserRole, "userrole"),
        nullable=False,
        default=UserRole.END_USER,
    )

    # Inactive users can't authenticate and get no staff broadcasts
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    @property
    def is_staff(self) -> bool:
        """Support agents and admins may access every ticket."""
        return self.role in STAFF_ROLES

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, role={self.role.value})>"
