"""
User Data Access Object.

WHY: UserDAO provides database operations for User model, following
the DAO pattern for separation of concerns and testability.
"""

from typing import List, Optional, Tuple
from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from quickdesk.dao.base import BaseDAO
from quickdesk.models.user import User, UserRole, STAFF_ROLES


class UserDAO(BaseDAO[User]):
    """
    Data Access Object for User model.
    """

    def __init__(self, session: AsyncSession):
        """Initialize UserDAO with session."""
        super().__init__(User, session)

    async def get_by_email(self, email: str) -> Optional[User]:
        """
        Retrieve user by email address, case-insensitively.

        Args:
            email: User's email address

        Returns:
            User instance if found, None otherwise
        """
        result = await self.session.execute(
            select(User).where(func.lower(User.email) == email.lower())
        )
        return result.scalar_one_or_none()

    async def create_user(
        self,
        email: str,
        name: str,
        role: UserRole = UserRole.END_USER,
        is_active: bool = True,
    ) -> User:
        """
        Create a user record.

        Email is stored lower-cased so lookups and the unique index agree.
        """
        return await self.create(
            email=email.lower(),
            name=name,
            role=role,
            is_active=is_active,
        )

    async def list_active_staff(self) -> List[User]:
        """
        All active support agents and admins.

        WHY: Recipients of the "ticket created" broadcast.
        """
        result = await self.session.execute(
            select(User)
            .where(User.role.in_(STAFF_ROLES), User.is_active.is_(True))
            .order_by(User.name)
        )
        return list(result.scalars().all())

    async def list_users(
        self,
        role: Optional[UserRole] = None,
        search: Optional[str] = None,
        is_active: Optional[bool] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> Tuple[List[User], int]:
        """
        List users with filters and pagination.

        Args:
            role: Only users with this role
            search: Case-insensitive substring of name or email
            is_active: Filter on the active flag
            skip: Offset
            limit: Page size

        Returns:
            Tuple of (users, total count before pagination)
        """
        query = select(User)
        if role is not None:
            query = query.where(User.role == role)
        if is_active is not None:
            query = query.where(User.is_active.is_(is_active))
        if search:
            query = query.where(
                or_(
                    User.name.icontains(search, autoescape=True),
                    User.email.icontains(search, autoescape=True),
                )
            )

        count_query = select(func.count()).select_from(query.subquery())
        total = (await self.session.execute(count_query)).scalar_one()

        query = query.order_by(User.name, User.id).offset(skip).limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all()), total
