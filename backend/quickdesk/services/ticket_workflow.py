"""
Ticket Workflow Service.

WHAT: The single writer for tickets and comments. Every create, update,
assignment, vote, comment and reply goes through here.

WHY: The service layer:
1. Enforces the visibility rule (end users only touch tickets they created)
2. Enforces role gates (assignment, internal comments)
3. Records change-gated history for status, priority and assignment
4. Keeps votes mutually exclusive per user
5. Announces changes through the notification publisher

HOW: Each public method runs inside the caller's transaction (one request,
one transaction). Read-modify-write operations lock the ticket row
(SELECT ... FOR UPDATE); votes and view counts are single atomic
statements. Notifications are staged on the session and only released
after commit, so a failed write never notifies anyone and a failed
notification never fails a write.
"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional, Type, TypeVar, Union

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from quickdesk.core.exceptions import (
    AuthorizationError,
    CommentNotFoundError,
    ConflictError,
    InvalidIdentifierError,
    TicketNotFoundError,
    ValidationError,
)
from quickdesk.dao.comment import CommentDAO
from quickdesk.dao.ticket import TicketDAO
from quickdesk.dao.user import UserDAO
from quickdesk.dao.vote import CommentVoteDAO, TicketVoteDAO
from quickdesk.models.comment import Comment, CONTENT_MAX_LENGTH, CONTENT_MIN_LENGTH
from quickdesk.models.notification import NotificationType
from quickdesk.models.ticket import (
    Ticket,
    TicketPriority,
    TicketStatus,
    DEFAULT_ASSIGNMENT_REASON,
    DEFAULT_PRIORITY_REASON,
    DEFAULT_STATUS_REASON,
    DESCRIPTION_MAX_LENGTH,
    DESCRIPTION_MIN_LENGTH,
    SUBJECT_MAX_LENGTH,
    SUBJECT_MIN_LENGTH,
)
from quickdesk.models.user import User, UserRole
from quickdesk.models.vote import VoteType
from quickdesk.services.category_service import CategoryService
from quickdesk.services.notification_queue import NotificationEvent, NotificationPublisher

logger = logging.getLogger(__name__)

DEFAULT_ASSIGN_REASON = "Ticket assigned"

# Fields update_ticket accepts
UPDATABLE_FIELDS = frozenset(
    {
        "subject",
        "description",
        "category",
        "priority",
        "status",
        "assigned_to",
        "status_reason",
        "priority_reason",
        "assignment_reason",
    }
)

EnumType = TypeVar("EnumType", TicketStatus, TicketPriority, VoteType)


# ============================================================================
# Identifiers and Validation
# ============================================================================


def parse_ticket_id(raw: Union[str, uuid.UUID]) -> uuid.UUID:
    """
    Parse a ticket id from a path segment.

    Raises:
        InvalidIdentifierError: If the value is not a well-formed id
    """
    return _parse_id(raw, "Invalid ticket ID format")


def parse_comment_id(raw: Union[str, uuid.UUID]) -> uuid.UUID:
    """
    Parse a comment id from a path segment.

    Raises:
        InvalidIdentifierError: If the value is not a well-formed id
    """
    return _parse_id(raw, "Invalid comment ID format")


def _parse_id(raw: Union[str, uuid.UUID], message: str) -> uuid.UUID:
    if isinstance(raw, uuid.UUID):
        return raw
    try:
        return uuid.UUID(str(raw))
    except ValueError:
        raise InvalidIdentifierError(message, value=str(raw))


def _coerce_enum(enum_cls: Type[EnumType], value: Any, message: str) -> EnumType:
    try:
        return enum_cls(value)
    except ValueError:
        raise ValidationError(message, value=str(value))


def _clean_text(value: Optional[str], label: str, min_length: int, max_length: int) -> str:
    """Trim and length-check a free-text field."""
    text = (value or "").strip()
    if len(text) < min_length:
        raise ValidationError(f"{label} must be at least {min_length} characters")
    if len(text) > max_length:
        raise ValidationError(f"{label} cannot exceed {max_length} characters")
    return text


def can_access_ticket(principal: User, ticket: Ticket) -> bool:
    """
    The visibility rule.

    Support agents and admins may access any ticket; end users only the
    tickets they created.
    """
    return principal.is_staff or ticket.created_by_id == principal.id


def can_see_comment(principal: User, comment: Comment) -> bool:
    """Internal comments and replies are hidden from end users."""
    return principal.is_staff or not comment.is_internal


# ============================================================================
# Views
# ============================================================================


@dataclass
class CommentNode:
    """A top-level comment with the replies the viewer may see."""

    comment: Comment
    replies: List[Comment] = field(default_factory=list)


@dataclass
class TicketView:
    """A ticket as returned by get_ticket: the ticket plus its comment tree."""

    ticket: Ticket
    comments: List[CommentNode] = field(default_factory=list)


def build_comment_tree(principal: User, top_level: Iterable[Comment]) -> List[CommentNode]:
    """Two-tier comment tree filtered for the viewer."""
    return [
        CommentNode(
            comment=comment,
            replies=[reply for reply in comment.replies if can_see_comment(principal, reply)],
        )
        for comment in top_level
        if can_see_comment(principal, comment)
    ]


# ============================================================================
# Workflow Service
# ============================================================================


class TicketWorkflowService:
    """
    Service for ticket and comment mutations.

    Example:
        workflow = TicketWorkflowService(db, publisher)
        ticket = await workflow.create_ticket(
            user, "Cannot log in", "Password reset link expired immediately", "Technical"
        )
    """

    def __init__(self, session: AsyncSession, publisher: NotificationPublisher):
        """
        Initialize TicketWorkflowService.

        Args:
            session: Async database session (the request's transaction)
            publisher: Where notification events go
        """
        self.session = session
        self.publisher = publisher
        self.ticket_dao = TicketDAO(session)
        self.comment_dao = CommentDAO(session)
        self.user_dao = UserDAO(session)
        self.ticket_vote_dao = TicketVoteDAO(session)
        self.comment_vote_dao = CommentVoteDAO(session)
        self.category_service = CategoryService(session)

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _load_ticket(
        self,
        principal: User,
        raw_ticket_id: Union[str, uuid.UUID],
        denied_message: str,
        with_relations: bool = False,
        for_update: bool = False,
    ) -> Ticket:
        """
        Load a ticket the principal may access.

        Raises:
            InvalidIdentifierError: Malformed id
            TicketNotFoundError: No such ticket
            AuthorizationError: Visibility rule denies access
        """
        ticket_id = parse_ticket_id(raw_ticket_id)
        if with_relations:
            ticket = await self.ticket_dao.get_by_id_with_relations(ticket_id, for_update=for_update)
        else:
            ticket = await self.ticket_dao.get_by_id(ticket_id)

        if ticket is None:
            raise TicketNotFoundError(ticket_id=ticket_id)
        if not can_access_ticket(principal, ticket):
            logger.warning(f"User {principal.id} denied access to ticket {ticket_id}")
            raise AuthorizationError(denied_message, ticket_id=ticket_id)
        return ticket

    async def _load_comment(
        self,
        principal: User,
        ticket_id: uuid.UUID,
        raw_comment_id: Union[str, uuid.UUID],
        not_found_message: str = "Comment not found",
    ) -> Comment:
        """Comment on the ticket that the principal can see."""
        comment_id = parse_comment_id(raw_comment_id)
        comment = await self.comment_dao.get_for_ticket(ticket_id, comment_id)
        if comment is None or not can_see_comment(principal, comment):
            raise CommentNotFoundError(not_found_message, comment_id=comment_id)
        return comment

    async def _resolve_assignee(self, raw_assignee: Union[str, uuid.UUID]) -> User:
        """
        Resolve an assignee reference to an active support agent or admin.

        Raises:
            ValidationError: Unknown user, inactive user or wrong role
        """
        try:
            assignee_id = raw_assignee if isinstance(raw_assignee, uuid.UUID) else uuid.UUID(str(raw_assignee))
        except ValueError:
            raise ValidationError("Assignee not found", assignee=str(raw_assignee))

        assignee = await self.user_dao.get_by_id(assignee_id)
        if assignee is None or not assignee.is_active:
            raise ValidationError("Assignee not found", assignee_id=assignee_id)
        if not assignee.is_staff:
            raise ValidationError(
                "Can only assign to support agents or admins",
                assignee_id=assignee_id,
            )
        return assignee

    def _publish(
        self,
        event_type: NotificationType,
        ticket: Ticket,
        sender: User,
        recipient_id: Optional[uuid.UUID] = None,
        **payload: Any,
    ) -> None:
        self.publisher.publish(
            NotificationEvent(
                type=event_type,
                ticket_id=ticket.id,
                ticket_subject=ticket.subject,
                sender_id=sender.id,
                sender_name=sender.name,
                recipient_id=recipient_id,
                payload=payload,
            )
        )

    # =========================================================================
    # Tickets
    # =========================================================================

    async def create_ticket(
        self,
        principal: User,
        subject: str,
        description: str,
        category: Union[str, uuid.UUID],
        priority: Union[TicketPriority, str, None] = None,
        attachments: Optional[List[str]] = None,
        idempotency_key: Optional[str] = None,
    ) -> Ticket:
        """
        Create a ticket in the OPEN state.

        WHAT: Validates input, resolves the category and stores the ticket.

        WHY: Any authenticated user may open a ticket. Every active support
        agent and admin is told about it.

        Args:
            principal: Creating user
            subject: 5-100 characters after trimming
            description: 10-1000 characters after trimming
            category: Category id or name (case-insensitive)
            priority: Initial priority (defaults to medium)
            attachments: URLs returned by the upload service
            idempotency_key: Repeating a key returns the first ticket

        Returns:
            Ticket with relations loaded

        Raises:
            ValidationError: Bad lengths, priority or category
            ConflictError: Concurrent create with the same idempotency key
        """
        if idempotency_key:
            existing = await self.ticket_dao.get_by_idempotency_key(principal.id, idempotency_key)
            if existing is not None:
                logger.info(f"Replayed ticket {existing.id} for idempotency key")
                return existing

        clean_subject = _clean_text(subject, "Subject", SUBJECT_MIN_LENGTH, SUBJECT_MAX_LENGTH)
        clean_description = _clean_text(
            description, "Description", DESCRIPTION_MIN_LENGTH, DESCRIPTION_MAX_LENGTH
        )
        ticket_priority = (
            _coerce_enum(TicketPriority, priority, "Invalid priority")
            if priority is not None
            else TicketPriority.MEDIUM
        )
        resolved_category = await self.category_service.resolve_raw(category)

        try:
            ticket = await self.ticket_dao.create(
                created_by_id=principal.id,
                subject=clean_subject,
                description=clean_description,
                category_id=resolved_category.id,
                priority=ticket_priority,
                attachments=attachments,
                idempotency_key=idempotency_key,
            )
        except IntegrityError as e:
            logger.warning(f"Concurrent duplicate ticket insert rejected: {e.orig}")
            raise ConflictError("A matching ticket is already being created")

        logger.info(f"Ticket {ticket.id} created by user {principal.id}")

        self._publish(NotificationType.TICKET_CREATED, ticket, principal)

        return await self.ticket_dao.get_by_id_with_relations(ticket.id, refresh=True)

    async def get_ticket(
        self, principal: User, raw_ticket_id: Union[str, uuid.UUID]
    ) -> TicketView:
        """
        Read a ticket with its comment tree, counting the view.

        Every authorized call adds exactly one to view_count; denied or
        failed reads add nothing.

        Raises:
            InvalidIdentifierError: Malformed id
            TicketNotFoundError: No such ticket
            AuthorizationError: Visibility rule denies access
        """
        ticket = await self._load_ticket(
            principal, raw_ticket_id, "Not authorized to view this ticket"
        )
        await self.ticket_dao.increment_view_count(ticket.id)

        ticket = await self.ticket_dao.get_by_id_with_relations(ticket.id, refresh=True)
        top_level = await self.comment_dao.list_thread(
            ticket.id, include_internal=principal.is_staff
        )
        return TicketView(ticket=ticket, comments=build_comment_tree(principal, top_level))

    async def update_ticket(
        self,
        principal: User,
        raw_ticket_id: Union[str, uuid.UUID],
        **changes: Any,
    ) -> Ticket:
        """
        Apply a partial update.

        WHAT: Sets any of subject, description, category, priority, status
        and assigned_to. Only keys present in `changes` are touched, so
        assigned_to=None unassigns while omitting it leaves it alone.

        WHY: Status, priority and assignment changes each append one history
        record when (and only when) the value actually changes. The first
        move into RESOLVED / CLOSED stamps resolved_at / closed_at.

        Args:
            principal: Acting user
            raw_ticket_id: Ticket id
            **changes: Fields to set, plus optional status_reason,
                priority_reason and assignment_reason

        Returns:
            Updated ticket with relations loaded

        Raises:
            InvalidIdentifierError: Malformed id
            TicketNotFoundError: No such ticket
            AuthorizationError: Visibility rule denies access
            ValidationError: Bad field values, category or assignee
        """
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"Unknown fields: {', '.join(sorted(unknown))}")

        ticket = await self._load_ticket(
            principal,
            raw_ticket_id,
            "Not authorized to update this ticket",
            with_relations=True,
            for_update=True,
        )

        if "subject" in changes:
            self.ticket_dao.update_fields(
                ticket,
                subject=_clean_text(changes["subject"], "Subject", SUBJECT_MIN_LENGTH, SUBJECT_MAX_LENGTH),
            )
        if "description" in changes:
            self.ticket_dao.update_fields(
                ticket,
                description=_clean_text(
                    changes["description"], "Description", DESCRIPTION_MIN_LENGTH, DESCRIPTION_MAX_LENGTH
                ),
            )
        if "category" in changes:
            category = await self.category_service.resolve_raw(changes["category"])
            self.ticket_dao.update_fields(ticket, category=category)

        if changes.get("priority") is not None:
            self.ticket_dao.change_priority(
                ticket,
                _coerce_enum(TicketPriority, changes["priority"], "Invalid priority"),
                changed_by_id=principal.id,
                reason=changes.get("priority_reason") or DEFAULT_PRIORITY_REASON,
            )
        if changes.get("status") is not None:
            self.ticket_dao.change_status(
                ticket,
                _coerce_enum(TicketStatus, changes["status"], "Invalid status"),
                changed_by_id=principal.id,
                reason=changes.get("status_reason") or DEFAULT_STATUS_REASON,
            )
        if "assigned_to" in changes:
            raw_assignee = changes["assigned_to"]
            assignee = await self._resolve_assignee(raw_assignee) if raw_assignee else None
            self.ticket_dao.change_assignee(
                ticket,
                assignee.id if assignee else None,
                changed_by_id=principal.id,
                reason=changes.get("assignment_reason") or DEFAULT_ASSIGNMENT_REASON,
            )

        await self.session.flush()
        logger.info(f"Ticket {ticket.id} updated by user {principal.id}")

        if ticket.created_by_id != principal.id:
            self._publish(
                NotificationType.TICKET_UPDATED,
                ticket,
                principal,
                recipient_id=ticket.created_by_id,
                status=ticket.status.value,
                priority=ticket.priority.value,
            )

        return await self.ticket_dao.get_by_id_with_relations(ticket.id, refresh=True)

    async def delete_ticket(
        self, principal: User, raw_ticket_id: Union[str, uuid.UUID]
    ) -> None:
        """
        Delete a ticket and every comment and reply on it.

        Raises:
            InvalidIdentifierError: Malformed id
            TicketNotFoundError: No such ticket
            AuthorizationError: Visibility rule denies access
        """
        ticket = await self._load_ticket(
            principal, raw_ticket_id, "Not authorized to delete this ticket"
        )
        removed = await self.comment_dao.delete_for_ticket(ticket.id)
        await self.ticket_dao.delete(ticket.id)
        self.session.expunge(ticket)

        logger.info(
            f"Ticket {ticket.id} deleted by user {principal.id} ({removed} comments removed)"
        )

    async def assign_ticket(
        self,
        principal: User,
        raw_ticket_id: Union[str, uuid.UUID],
        assignee: Union[str, uuid.UUID],
        reason: Optional[str] = None,
    ) -> Ticket:
        """
        Assign a ticket to a support agent or admin.

        Records assignment history exactly like update_ticket does.

        Args:
            principal: Acting support agent or admin
            raw_ticket_id: Ticket id
            assignee: Id of the user to assign
            reason: Stored on the history record (default "Ticket assigned")

        Returns:
            Updated ticket with relations loaded

        Raises:
            AuthorizationError: Caller is an end user
            InvalidIdentifierError: Malformed ticket id
            TicketNotFoundError: No such ticket
            ValidationError: Assignee missing or not staff
        """
        if not principal.is_staff:
            raise AuthorizationError("Only support agents and admins can assign tickets")

        ticket = await self._load_ticket(
            principal,
            raw_ticket_id,
            "Not authorized to update this ticket",
            with_relations=True,
            for_update=True,
        )
        assignee_user = await self._resolve_assignee(assignee)

        self.ticket_dao.change_assignee(
            ticket,
            assignee_user.id,
            changed_by_id=principal.id,
            reason=reason or DEFAULT_ASSIGN_REASON,
        )
        await self.session.flush()
        logger.info(f"Ticket {ticket.id} assigned to user {assignee_user.id} by user {principal.id}")

        self._publish(
            NotificationType.TICKET_ASSIGNED,
            ticket,
            principal,
            recipient_id=ticket.created_by_id,
            assignee_id=str(assignee_user.id),
            assignee_name=assignee_user.name,
        )

        return await self.ticket_dao.get_by_id_with_relations(ticket.id, refresh=True)

    async def vote_ticket(
        self,
        principal: User,
        raw_ticket_id: Union[str, uuid.UUID],
        vote_type: Union[VoteType, str],
    ) -> Ticket:
        """
        Cast (or switch) the principal's vote on a ticket.

        Casting the same vote again changes nothing; casting the other type
        moves the principal between the upvote and downvote sets.

        Raises:
            ValidationError: Unknown vote type
            InvalidIdentifierError: Malformed id
            TicketNotFoundError: No such ticket
            AuthorizationError: Visibility rule denies access
        """
        vote = _coerce_enum(VoteType, vote_type, "Invalid vote type")
        ticket = await self._load_ticket(
            principal, raw_ticket_id, "Not authorized to view this ticket"
        )

        await self.ticket_vote_dao.cast(ticket.id, principal.id, vote)
        logger.info(f"User {principal.id} cast {vote.value} on ticket {ticket.id}")

        return await self.ticket_dao.get_by_id_with_relations(ticket.id, refresh=True)

    # =========================================================================
    # Comments
    # =========================================================================

    async def add_comment(
        self,
        principal: User,
        raw_ticket_id: Union[str, uuid.UUID],
        content: str,
        attachments: Optional[List[str]] = None,
        is_internal: bool = False,
        idempotency_key: Optional[str] = None,
    ) -> Comment:
        """
        Add a top-level comment.

        Args:
            principal: Commenting user
            raw_ticket_id: Ticket id
            content: 1-2000 characters after trimming
            attachments: URLs returned by the upload service
            is_internal: Staff-only note
            idempotency_key: Repeating a key returns the first comment

        Returns:
            Comment with author, votes and replies loaded

        Raises:
            AuthorizationError: Visibility rule denies access, or an end
                user asked for an internal comment
            ValidationError: Bad content length
            ConflictError: Concurrent create with the same idempotency key
        """
        ticket = await self._load_ticket(
            principal, raw_ticket_id, "Not authorized to comment on this ticket"
        )
        if is_internal and principal.role == UserRole.END_USER:
            raise AuthorizationError("End users cannot add internal comments")

        if idempotency_key:
            existing = await self.comment_dao.get_by_idempotency_key(principal.id, idempotency_key)
            if existing is not None:
                if existing.ticket_id != ticket.id or existing.parent_comment_id is not None:
                    raise ConflictError("Idempotency key already used for a different request")
                return existing

        clean_content = _clean_text(content, "Comment", CONTENT_MIN_LENGTH, CONTENT_MAX_LENGTH)

        try:
            comment = await self.comment_dao.create(
                ticket_id=ticket.id,
                author_id=principal.id,
                content=clean_content,
                attachments=attachments,
                is_internal=is_internal,
                idempotency_key=idempotency_key,
            )
        except IntegrityError as e:
            logger.warning(f"Concurrent duplicate comment insert rejected: {e.orig}")
            raise ConflictError("A matching comment is already being created")

        logger.info(f"Comment {comment.id} added to ticket {ticket.id} by user {principal.id}")

        if not is_internal and ticket.created_by_id != principal.id:
            self._publish(
                NotificationType.TICKET_COMMENTED,
                ticket,
                principal,
                recipient_id=ticket.created_by_id,
                comment_id=str(comment.id),
                comment_content=clean_content,
            )

        return await self.comment_dao.get_for_ticket(ticket.id, comment.id, refresh=True)

    async def vote_comment(
        self,
        principal: User,
        raw_ticket_id: Union[str, uuid.UUID],
        raw_comment_id: Union[str, uuid.UUID],
        vote_type: Union[VoteType, str],
    ) -> Comment:
        """
        Cast (or switch) the principal's vote on a comment or reply.

        Raises:
            ValidationError: Unknown vote type
            InvalidIdentifierError: Malformed ticket or comment id
            TicketNotFoundError: No such ticket
            CommentNotFoundError: No such (visible) comment on the ticket
            AuthorizationError: Visibility rule denies access
        """
        vote = _coerce_enum(VoteType, vote_type, "Invalid vote type")
        ticket = await self._load_ticket(
            principal, raw_ticket_id, "Not authorized to view this ticket"
        )
        comment = await self._load_comment(principal, ticket.id, raw_comment_id)

        await self.comment_vote_dao.cast(comment.id, principal.id, vote)
        logger.info(f"User {principal.id} cast {vote.value} on comment {comment.id}")

        return await self.comment_dao.get_for_ticket(ticket.id, comment.id, refresh=True)

    async def reply_to_comment(
        self,
        principal: User,
        raw_ticket_id: Union[str, uuid.UUID],
        raw_comment_id: Union[str, uuid.UUID],
        content: str,
        is_internal: bool = False,
        attachments: Optional[List[str]] = None,
        idempotency_key: Optional[str] = None,
    ) -> Comment:
        """
        Reply to a comment.

        Threads are two-tier: replying to a reply attaches the new reply to
        that reply's top-level comment. The notification still goes to the
        author of the comment actually replied to.

        Returns:
            The reply with author and votes loaded

        Raises:
            InvalidIdentifierError: Malformed ticket or comment id
            TicketNotFoundError: No such ticket
            CommentNotFoundError: "Parent comment not found"
            AuthorizationError: Visibility rule denies access, or an end
                user asked for an internal reply
            ValidationError: Bad content length
            ConflictError: Concurrent create with the same idempotency key
        """
        ticket = await self._load_ticket(
            principal, raw_ticket_id, "Not authorized to comment on this ticket"
        )
        parent = await self._load_comment(
            principal, ticket.id, raw_comment_id, not_found_message="Parent comment not found"
        )
        if is_internal and principal.role == UserRole.END_USER:
            raise AuthorizationError("End users cannot add internal comments")

        thread_root_id = parent.parent_comment_id or parent.id

        if idempotency_key:
            existing = await self.comment_dao.get_by_idempotency_key(principal.id, idempotency_key)
            if existing is not None:
                if existing.parent_comment_id != thread_root_id:
                    raise ConflictError("Idempotency key already used for a different request")
                return existing

        clean_content = _clean_text(content, "Reply", CONTENT_MIN_LENGTH, CONTENT_MAX_LENGTH)

        try:
            reply = await self.comment_dao.create(
                ticket_id=ticket.id,
                author_id=principal.id,
                content=clean_content,
                attachments=attachments,
                is_internal=is_internal,
                parent_comment_id=thread_root_id,
                idempotency_key=idempotency_key,
            )
        except IntegrityError as e:
            logger.warning(f"Concurrent duplicate reply insert rejected: {e.orig}")
            raise ConflictError("A matching reply is already being created")

        logger.info(f"Reply {reply.id} added to comment {thread_root_id} by user {principal.id}")

        parent_author = parent.author
        notify = parent_author.id != principal.id and (not is_internal or parent_author.is_staff)
        if notify:
            self._publish(
                NotificationType.COMMENT_REPLY,
                ticket,
                principal,
                recipient_id=parent_author.id,
                comment_id=str(reply.id),
                parent_comment_id=str(parent.id),
                reply_content=clean_content,
            )

        return await self.comment_dao.get_for_ticket(ticket.id, reply.id, refresh=True)
