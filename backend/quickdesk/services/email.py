"""
Email delivery for ticket notifications.

WHAT: Sends the email copy of every workflow notification through a
pluggable provider: Resend in production, a logging mock everywhere else.

WHY: Email is a side channel. A failed send is logged and reported in the
returned EmailResult; it is never raised into the workflow that caused it.
Only a template problem (EmailServiceError) escapes, and the dispatcher
catches that.

HOW: EmailService renders the Jinja2 template through
EmailTemplateService and hands the message to the provider. ResendProvider
posts to the Resend HTTP API with httpx.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from quickdesk.core.config import settings
from quickdesk.models.notification import NotificationType
from quickdesk.services.email_template_service import (
    EmailTemplateService,
    get_email_template_service,
)

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"
RESEND_TIMEOUT_SECONDS = 30.0


@dataclass
class EmailMessage:
    """
    One outbound email.

    from_email defaults to EMAIL_FROM_NAME <EMAIL_FROM_ADDRESS>; metadata
    ({"ticket_id", "action"}) only goes to the log.
    """

    to_email: str
    subject: str
    html_content: str
    text_content: Optional[str] = None
    from_email: Optional[str] = None
    reply_to: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


@dataclass
class EmailResult:
    """Outcome of a send; error is set when success is False."""

    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None
    provider: Optional[str] = None


class EmailProvider(ABC):
    """Delivery backend behind EmailService."""

    name: str = "base"

    @abstractmethod
    async def send(self, message: EmailMessage) -> EmailResult:
        """Deliver one message. Delivery problems come back as a failed result."""

    @abstractmethod
    def is_configured(self) -> bool:
        """True when the provider has the credentials it needs."""

    def _failure(self, error: str) -> EmailResult:
        return EmailResult(success=False, error=error, provider=self.name)


class ResendProvider(EmailProvider):
    """Sends through the Resend HTTP API."""

    name = "resend"

    def __init__(self, api_key: Optional[str] = None):
        """
        Args:
            api_key: Resend API key (defaults to RESEND_API_KEY)
        """
        self._api_key = api_key or settings.RESEND_API_KEY
        self._sender = f"{settings.EMAIL_FROM_NAME} <{settings.EMAIL_FROM_ADDRESS}>"

    def is_configured(self) -> bool:
        return bool(self._api_key)

    def _payload(self, message: EmailMessage) -> Dict[str, Any]:
        payload = {
            "from": message.from_email or self._sender,
            "to": [message.to_email],
            "subject": message.subject,
            "html": message.html_content,
        }
        if message.text_content:
            payload["text"] = message.text_content
        if message.reply_to:
            payload["reply_to"] = message.reply_to
        return payload

    async def send(self, message: EmailMessage) -> EmailResult:
        if not self.is_configured():
            return self._failure("Resend API key not configured")

        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    RESEND_API_URL,
                    headers={"Authorization": f"Bearer {self._api_key}"},
                    json=self._payload(message),
                    timeout=RESEND_TIMEOUT_SECONDS,
                )
        except httpx.HTTPError as e:
            logger.error(f"Resend request to {message.to_email} failed: {e}")
            return self._failure(str(e))

        if response.status_code not in (200, 201):
            return self._failure(f"Resend API error: {response.status_code} - {response.text}")

        return EmailResult(success=True, message_id=response.json().get("id"), provider=self.name)


class MockEmailProvider(EmailProvider):
    """
    Logs messages instead of sending them.

    Used whenever RESEND_API_KEY is unset. Sent messages are kept on the
    class so tests can inspect them.
    """

    name = "mock"
    sent_emails: List[EmailMessage] = []

    def is_configured(self) -> bool:
        return True

    async def send(self, message: EmailMessage) -> EmailResult:
        logger.info(f"[MOCK EMAIL] to={message.to_email} subject={message.subject!r}")
        MockEmailProvider.sent_emails.append(message)
        return EmailResult(
            success=True,
            message_id=f"mock-{datetime.now(timezone.utc).timestamp()}",
            provider=self.name,
        )

    @classmethod
    def clear_sent_emails(cls):
        cls.sent_emails = []


class EmailService:
    """
    Renders and sends ticket notification emails.

    Example:
        result = await EmailService().send_ticket_notification(
            to_email="dana@example.com",
            user_name="Dana",
            notification_type=NotificationType.TICKET_UPDATED,
            title="Ticket Updated",
            message="Your ticket has been updated: VPN down",
            ticket_id=str(ticket.id),
            ticket_subject="VPN down",
        )
    """

    def __init__(
        self,
        provider: Optional[EmailProvider] = None,
        template_service: Optional[EmailTemplateService] = None,
    ):
        """
        Args:
            provider: Delivery backend (Resend when RESEND_API_KEY is set,
                otherwise the mock)
            template_service: Template renderer (shared instance by default)
        """
        if provider is not None:
            self._provider = provider
        elif settings.RESEND_API_KEY:
            self._provider = ResendProvider()
        else:
            logger.warning("RESEND_API_KEY not set, notification emails are only logged")
            self._provider = MockEmailProvider()

        self._template_service = template_service or get_email_template_service()

    @property
    def provider(self) -> EmailProvider:
        return self._provider

    async def send(self, message: EmailMessage) -> EmailResult:
        result = await self._provider.send(message)

        context = message.metadata or {}
        if result.success:
            logger.info(
                f"Email {result.message_id} sent to {message.to_email} via {result.provider}",
                extra=context,
            )
        else:
            logger.error(f"Email to {message.to_email} failed: {result.error}", extra=context)
        return result

    async def send_ticket_notification(
        self,
        to_email: str,
        user_name: str,
        notification_type: NotificationType,
        title: str,
        message: str,
        ticket_id: Optional[str],
        ticket_subject: str,
        sender_name: Optional[str] = None,
        excerpt: Optional[str] = None,
    ) -> EmailResult:
        """
        Send the email copy of a workflow notification.

        Args:
            to_email: Recipient address
            user_name: Recipient's display name
            notification_type: Workflow event
            title: Notification title
            message: Notification message
            ticket_id: Ticket the event concerns
            ticket_subject: Ticket subject
            sender_name: Who caused the event
            excerpt: Comment or reply text to quote

        Raises:
            EmailServiceError: If the template cannot be rendered
        """
        subject, html_content, text_content = self._template_service.render_ticket_notification(
            user_name=user_name,
            notification_type=notification_type,
            title=title,
            message=message,
            ticket_id=ticket_id,
            ticket_subject=ticket_subject,
            sender_name=sender_name,
            excerpt=excerpt,
        )

        return await self.send(
            EmailMessage(
                to_email=to_email,
                subject=subject,
                html_content=html_content,
                text_content=text_content,
                metadata={"ticket_id": ticket_id, "action": notification_type.value},
            )
        )


_email_service: Optional[EmailService] = None


def get_email_service() -> EmailService:
    """Shared EmailService used by the notification dispatcher."""
    global _email_service

    if _email_service is None:
        _email_service = EmailService()

    return _email_service
