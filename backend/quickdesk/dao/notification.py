"""
Notification Data Access Object.

WHY: Backs the in-app inbox. Every query is scoped to a recipient so one
user can never read or mark another user's notifications.
"""

import uuid
from typing import List, Optional, Tuple

from sqlalchemy import select, func, update
from sqlalchemy.ext.asyncio import AsyncSession

from quickdesk.dao.base import BaseDAO
from quickdesk.models.base import utcnow
from quickdesk.models.notification import Notification


class NotificationDAO(BaseDAO[Notification]):
    """Data Access Object for Notification model."""

    def __init__(self, session: AsyncSession):
        super().__init__(Notification, session)

    async def list_for_recipient(
        self,
        recipient_id: uuid.UUID,
        skip: int = 0,
        limit: int = 20,
        unread_only: bool = False,
    ) -> Tuple[List[Notification], int]:
        """
        Newest-first page of a user's notifications.

        Returns:
            Tuple of (notifications, total count before pagination)
        """
        query = select(Notification).where(Notification.recipient_id == recipient_id)
        if unread_only:
            query = query.where(Notification.is_read.is_(False))

        count_query = select(func.count()).select_from(query.subquery())
        total = (await self.session.execute(count_query)).scalar_one()

        query = (
            query.order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(skip)
            .limit(limit)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all()), total

    async def count_unread(self, recipient_id: uuid.UUID) -> int:
        result = await self.session.execute(
            select(func.count(Notification.id)).where(
                Notification.recipient_id == recipient_id,
                Notification.is_read.is_(False),
            )
        )
        return result.scalar_one()

    async def mark_read(
        self, notification_id: uuid.UUID, recipient_id: uuid.UUID
    ) -> Optional[Notification]:
        """
        Mark one notification read.

        Returns:
            The notification, or None when it does not exist or belongs to
            someone else
        """
        result = await self.session.execute(
            select(Notification).where(
                Notification.id == notification_id,
                Notification.recipient_id == recipient_id,
            )
        )
        notification = result.scalar_one_or_none()
        if notification is None:
            return None

        if not notification.is_read:
            notification.is_read = True
            notification.read_at = utcnow()
            await self.session.flush()
        return notification

    async def mark_all_read(self, recipient_id: uuid.UUID) -> int:
        """
        Mark every unread notification of a user read.

        Returns:
            Number of notifications updated
        """
        result = await self.session.execute(
            update(Notification)
            .where(
                Notification.recipient_id == recipient_id,
                Notification.is_read.is_(False),
            )
            .values(is_read=True, read_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount
