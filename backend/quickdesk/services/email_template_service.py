"""
Email Template Service for rendering Jinja2 email templates.

WHAT: Loads and renders the HTML templates used for ticket notification
emails.

WHY: Template-based emails provide:
- Consistent branding across all notification types
- Content updates without code changes
- Template inheritance (every email extends base.html)

HOW: Uses a Jinja2 environment with FileSystemLoader over the package's
templates/email directory, with HTML auto-escaping on.
"""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape, TemplateNotFound

from quickdesk.core.config import settings
from quickdesk.core.exceptions import EmailServiceError
from quickdesk.models.notification import NotificationType


logger = logging.getLogger(__name__)


# Email subject per notification type; {ticket_subject} is filled in
_SUBJECTS = {
    NotificationType.TICKET_CREATED: "New Ticket Created: {ticket_subject}",
    NotificationType.TICKET_UPDATED: "Ticket Updated: {ticket_subject}",
    NotificationType.TICKET_ASSIGNED: "Ticket Assigned: {ticket_subject}",
    NotificationType.TICKET_COMMENTED: "New Comment on Ticket: {ticket_subject}",
    NotificationType.COMMENT_REPLY: "New Reply to Your Comment: {ticket_subject}",
}


class EmailTemplateService:
    """
    Service for rendering email templates.

    Example:
        template_service = EmailTemplateService()
        subject, html, text = template_service.render_ticket_notification(
            user_name="Dana",
            notification_type=NotificationType.TICKET_UPDATED,
            title="Ticket Updated",
            message="Your ticket has been updated: Cannot log in",
            ticket_id="...",
            ticket_subject="Cannot log in",
        )
    """

    def __init__(self, template_dir: Optional[Path] = None):
        """
        Initialize template service.

        Args:
            template_dir: Path to templates directory (defaults to quickdesk/templates/email)
        """
        if template_dir is None:
            template_dir = Path(__file__).parent.parent / "templates" / "email"

        self._template_dir = template_dir
        self._env = self._create_environment()

    def _create_environment(self) -> Environment:
        env = Environment(
            loader=FileSystemLoader(str(self._template_dir)),
            autoescape=select_autoescape(["html", "xml"]),
            trim_blocks=True,
            lstrip_blocks=True,
        )
        env.filters["truncate"] = self._truncate_filter
        return env

    @staticmethod
    def _truncate_filter(text: str, length: int = 200, suffix: str = "...") -> str:
        """
        Truncate text to specified length.

        Args:
            text: Text to truncate
            length: Maximum length
            suffix: Suffix to add if truncated

        Returns:
            Truncated text
        """
        if len(text) <= length:
            return text
        return text[: length - len(suffix)] + suffix

    def _get_base_context(self) -> Dict[str, Any]:
        """Variables every template receives (footer, branding, links)."""
        return {
            "year": datetime.now(timezone.utc).year,
            "frontend_url": settings.FRONTEND_URL,
            "platform_name": "QuickDesk",
        }

    def render_template(self, template_name: str, context: Dict[str, Any]) -> str:
        """
        Render a template with given context.

        Args:
            template_name: Name of template file (e.g., "ticket_notification.html")
            context: Template variables

        Returns:
            Rendered HTML string

        Raises:
            EmailServiceError: If template not found or render fails
        """
        try:
            template = self._env.get_template(template_name)
            full_context = {**self._get_base_context(), **context}
            return template.render(**full_context)
        except TemplateNotFound:
            logger.error(f"Email template not found: {template_name}")
            raise EmailServiceError(
                message=f"Email template not found: {template_name}",
                template=template_name,
            )
        except Exception as e:
            logger.error(f"Error rendering template {template_name}: {e}")
            raise EmailServiceError(
                message="Failed to render email template",
                template=template_name,
                error=str(e),
            )

    def render_ticket_notification(
        self,
        user_name: str,
        notification_type: NotificationType,
        title: str,
        message: str,
        ticket_id: Optional[str],
        ticket_subject: str,
        sender_name: Optional[str] = None,
        excerpt: Optional[str] = None,
    ) -> tuple[str, str, str]:
        """
        Render a ticket workflow notification.

        Args:
            user_name: Recipient's display name
            notification_type: Workflow event
            title: Headline shown in the email body
            message: One-line summary of what happened
            ticket_id: Ticket the event concerns
            ticket_subject: Ticket subject
            sender_name: Who triggered the event
            excerpt: Comment or reply text to quote

        Returns:
            Tuple of (subject, html_content, text_content)
        """
        ticket_url = f"{settings.FRONTEND_URL}/tickets/{ticket_id}" if ticket_id else settings.FRONTEND_URL
        context = {
            "user_name": user_name,
            "title": title,
            "message": message,
            "ticket_id": ticket_id,
            "ticket_subject": ticket_subject,
            "ticket_url": ticket_url,
            "sender_name": sender_name,
            "excerpt": excerpt,
        }

        html = self.render_template("ticket_notification.html", context)
        text = self._generate_text_version(
            f"Hi {user_name},\n\n"
            f"{message}\n\n"
            + (f"---\n{excerpt}\n---\n\n" if excerpt else "")
            + f"View ticket: {ticket_url}"
        )

        subject = _SUBJECTS[notification_type].format(ticket_subject=ticket_subject)
        return subject, html, text

    @staticmethod
    def _generate_text_version(content: str) -> str:
        """Plain text fallback with the standard footer."""
        footer = (
            "\n\n---\n"
            "QuickDesk\n"
            "You are receiving this because you are involved in this ticket."
        )
        return content.strip() + footer


# Module-level singleton
_template_service: Optional[EmailTemplateService] = None


def get_email_template_service() -> EmailTemplateService:
    """
    Get or create the global template service instance.

    Returns:
        EmailTemplateService instance
    """
    global _template_service

    if _template_service is None:
        _template_service = EmailTemplateService()

    return _template_service
