"""
Outbound notification queue.

WHAT: Carries workflow events (ticket created, updated, assigned, commented,
comment reply) from the request that caused them to the background
NotificationDispatcher.

WHY: Notifications are fire-and-forget. The workflow engine must never wait
on, or fail because of, email delivery. It also must not announce a change
that was rolled back, so events are held on the database session and only
released once the transaction commits.

HOW:
1. TransactionalPublisher.publish() stages the event in session.info
2. A Session "after_commit" listener moves staged events to the bounded
   asyncio queue with put_nowait (a full queue drops the event with a
   warning)
3. A transaction that ends without committing (rollback or close)
   discards staged events
4. NotificationDispatcher drains the queue in a background task

Savepoints (begin_nested) are not used anywhere in the workflow; their
commits would release events early.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Tuple

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from quickdesk.core.config import settings
from quickdesk.models.notification import NotificationType

logger = logging.getLogger(__name__)

_STAGED_EVENTS_KEY = "quickdesk.staged_notifications"


@dataclass(frozen=True)
class NotificationEvent:
    """
    One workflow event awaiting delivery.

    recipient_id is None for TICKET_CREATED, which goes to every active
    support agent and admin.
    """

    type: NotificationType
    ticket_id: uuid.UUID
    ticket_subject: str
    sender_id: uuid.UUID
    sender_name: str
    recipient_id: Optional[uuid.UUID] = None
    payload: Dict[str, Any] = field(default_factory=dict)


class NotificationQueue:
    """
    Bounded in-process event channel.

    WHY: Bounded so a stalled mail provider cannot grow memory without
    limit; producers never block.
    """

    def __init__(self, maxsize: int = 1000):
        self._queue: "asyncio.Queue[NotificationEvent]" = asyncio.Queue(maxsize=maxsize)

    def offer(self, notification_event: NotificationEvent) -> bool:
        """
        Enqueue without waiting.

        Returns:
            False if the queue was full and the event was dropped
        """
        try:
            self._queue.put_nowait(notification_event)
        except asyncio.QueueFull:
            logger.warning(
                f"Notification queue full, dropping {notification_event.type.value} "
                f"event for ticket {notification_event.ticket_id}"
            )
            return False
        return True

    async def get(self) -> NotificationEvent:
        return await self._queue.get()

    def task_done(self) -> None:
        self._queue.task_done()

    async def join(self) -> None:
        """Wait until every queued event has been processed."""
        await self._queue.join()

    def qsize(self) -> int:
        return self._queue.qsize()

    def empty(self) -> bool:
        return self._queue.empty()


class NotificationPublisher(Protocol):
    """What the workflow engine needs from a notification channel."""

    def publish(self, notification_event: NotificationEvent) -> None:
        ...


class TransactionalPublisher:
    """
    Publishes events when, and only if, the session's transaction commits.

    Example:
        publisher = TransactionalPublisher(session, get_notification_queue())
        publisher.publish(event)   # nothing queued yet
        await session.commit()     # event released to the queue
    """

    def __init__(self, session: AsyncSession, queue: NotificationQueue):
        self.session = session
        self.queue = queue

    def publish(self, notification_event: NotificationEvent) -> None:
        # staged events belong to a transaction so a rollback always sees them
        if not self.session.in_transaction():
            self.session.sync_session.begin()
        staged: List[Tuple[NotificationQueue, NotificationEvent]] = self.session.info.setdefault(
            _STAGED_EVENTS_KEY, []
        )
        staged.append((self.queue, notification_event))


@event.listens_for(Session, "after_commit")
def _release_staged_events(session: Session) -> None:
    staged = session.info.pop(_STAGED_EVENTS_KEY, None)
    if not staged:
        return
    for queue, notification_event in staged:
        queue.offer(notification_event)


@event.listens_for(Session, "after_transaction_end")
def _discard_staged_events(session: Session, transaction: Any) -> None:
    # after_commit has already drained a committed root transaction
    if transaction.parent is not None:
        return
    staged = session.info.pop(_STAGED_EVENTS_KEY, None)
    if staged:
        logger.debug(f"Transaction ended without commit, discarding {len(staged)} notification(s)")


# Module-level singleton
_notification_queue: Optional[NotificationQueue] = None


def get_notification_queue() -> NotificationQueue:
    """
    Get or create the process-wide notification queue.

    Returns:
        NotificationQueue instance
    """
    global _notification_queue

    if _notification_queue is None:
        _notification_queue = NotificationQueue(maxsize=settings.NOTIFICATION_QUEUE_SIZE)

    return _notification_queue
