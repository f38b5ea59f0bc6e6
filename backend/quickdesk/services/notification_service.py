"""
Notification Dispatcher for ticket workflow events.

WHAT: Drains the outbound notification queue and delivers each event as an
in-app Notification record plus an email.

WHY: Centralizes notification content (titles, messages, metadata) and
delivery so the workflow engine only has to describe what happened. Runs
outside the request: a failure here is logged and never reaches the caller
whose write triggered it.

HOW: A long-lived asyncio task started with the application. Each event is
handled in its own database session:
1. Resolve recipients (every active staff user for TICKET_CREATED,
   otherwise the event's recipient)
2. Write one Notification per recipient and commit
3. Send one email per recipient through EmailService
"""

import asyncio
import logging
from typing import Callable, List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from quickdesk.core.exceptions import EmailServiceError
from quickdesk.dao.notification import NotificationDAO
from quickdesk.dao.user import UserDAO
from quickdesk.db.session import AsyncSessionLocal
from quickdesk.models.notification import Notification, NotificationType
from quickdesk.models.user import User
from quickdesk.services.email import EmailService, get_email_service
from quickdesk.services.notification_queue import NotificationEvent, NotificationQueue

logger = logging.getLogger(__name__)


# ============================================================================
# Notification Content
# ============================================================================


NOTIFICATION_TITLES = {
    NotificationType.TICKET_CREATED: "New Ticket Created",
    NotificationType.TICKET_UPDATED: "Ticket Updated",
    NotificationType.TICKET_ASSIGNED: "Ticket Assigned",
    NotificationType.TICKET_COMMENTED: "New Comment on Your Ticket",
    NotificationType.COMMENT_REPLY: "New Reply to Your Comment",
}


def build_notification_text(notification_event: NotificationEvent) -> Tuple[str, str]:
    """
    Title and message for an event.

    Args:
        notification_event: Workflow event

    Returns:
        Tuple of (title, message)
    """
    subject = notification_event.ticket_subject
    sender = notification_event.sender_name
    event_type = notification_event.type

    if event_type == NotificationType.TICKET_CREATED:
        message = f"{sender} created a new ticket: {subject}"
    elif event_type == NotificationType.TICKET_UPDATED:
        message = f"{sender} updated your ticket: {subject}"
    elif event_type == NotificationType.TICKET_ASSIGNED:
        assignee = notification_event.payload.get("assignee_name") or "a support agent"
        message = f"Your ticket has been assigned to {assignee}: {subject}"
    elif event_type == NotificationType.TICKET_COMMENTED:
        message = f"{sender} commented on your ticket: {subject}"
    else:
        message = f"{sender} replied to your comment on ticket: {subject}"

    return NOTIFICATION_TITLES[event_type], message


def _email_excerpt(notification_event: NotificationEvent) -> Optional[str]:
    payload = notification_event.payload
    return payload.get("reply_content") or payload.get("comment_content")


# ============================================================================
# Dispatcher
# ============================================================================


class NotificationDispatcher:
    """
    Background consumer of the notification queue.

    Example:
        dispatcher = NotificationDispatcher(get_notification_queue())
        dispatcher.start()
        ...
        await dispatcher.stop()
    """

    def __init__(
        self,
        queue: NotificationQueue,
        session_factory: Optional[Callable[[], AsyncSession]] = None,
        email_service: Optional[EmailService] = None,
    ):
        """
        Initialize the dispatcher.

        Args:
            queue: Queue to drain
            session_factory: Factory for database sessions (defaults to the
                application's AsyncSessionLocal)
            email_service: Email service (defaults to the global instance)
        """
        self.queue = queue
        self._session_factory = session_factory or AsyncSessionLocal
        self._email_service = email_service
        self._task: Optional[asyncio.Task] = None

    def _get_email_service(self) -> EmailService:
        if self._email_service is None:
            self._email_service = get_email_service()
        return self._email_service

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start draining the queue in a background task."""
        if self.is_running:
            return
        self._task = asyncio.create_task(self.run(), name="notification-dispatcher")
        logger.info("Notification dispatcher started")

    async def stop(self) -> None:
        """Cancel the background task and wait for it to finish."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Notification dispatcher stopped")

    async def run(self) -> None:
        """Process events until cancelled; one failing event never stops the loop."""
        while True:
            notification_event = await self.queue.get()
            try:
                await self.process_event(notification_event)
            except Exception:
                logger.exception(
                    f"Failed to dispatch {notification_event.type.value} notification "
                    f"for ticket {notification_event.ticket_id}"
                )
            finally:
                self.queue.task_done()

    async def process_event(self, notification_event: NotificationEvent) -> List[Notification]:
        """
        Deliver one event to all of its recipients.

        Args:
            notification_event: Event to deliver

        Returns:
            The Notification records written
        """
        title, message = build_notification_text(notification_event)

        async with self._session_factory() as session:
            recipients = await self._resolve_recipients(session, notification_event)
            if not recipients:
                logger.debug(
                    f"No recipients for {notification_event.type.value} event "
                    f"on ticket {notification_event.ticket_id}"
                )
                return []

            notification_dao = NotificationDAO(session)
            notifications = []
            for recipient in recipients:
                notifications.append(
                    await notification_dao.create(
                        recipient_id=recipient.id,
                        sender_id=notification_event.sender_id,
                        ticket_id=notification_event.ticket_id,
                        type=notification_event.type,
                        title=title,
                        message=message,
                        extra=dict(notification_event.payload),
                    )
                )
            await session.commit()

        logger.info(
            f"Created {len(notifications)} {notification_event.type.value} notification(s) "
            f"for ticket {notification_event.ticket_id}"
        )

        for recipient in recipients:
            await self._send_email(recipient, notification_event, title, message)

        return notifications

    async def _resolve_recipients(
        self, session: AsyncSession, notification_event: NotificationEvent
    ) -> List[User]:
        user_dao = UserDAO(session)

        if notification_event.type == NotificationType.TICKET_CREATED:
            return await user_dao.list_active_staff()

        if notification_event.recipient_id is None:
            return []

        recipient = await user_dao.get_by_id(notification_event.recipient_id)
        if recipient is None or not recipient.is_active:
            return []
        return [recipient]

    async def _send_email(
        self,
        recipient: User,
        notification_event: NotificationEvent,
        title: str,
        message: str,
    ) -> None:
        """Send the email copy; failures are logged only."""
        try:
            result = await self._get_email_service().send_ticket_notification(
                to_email=recipient.email,
                user_name=recipient.name,
                notification_type=notification_event.type,
                title=title,
                message=message,
                ticket_id=str(notification_event.ticket_id),
                ticket_subject=notification_event.ticket_subject,
                sender_name=notification_event.sender_name,
                excerpt=_email_excerpt(notification_event),
            )
        except EmailServiceError as e:
            logger.error(f"Failed to render notification email for {recipient.email}: {e.message}")
            return

        if not result.success:
            logger.error(
                f"Failed to email {notification_event.type.value} notification "
                f"to {recipient.email}: {result.error}"
            )
