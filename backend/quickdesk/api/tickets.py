"""
Ticket management API endpoints.

WHAT: RESTful API for the ticket lifecycle: tickets, comments, replies,
votes and assignment.

WHY: Tickets enable a structured support workflow with:
1. Status and priority tracking with full change history
2. Assignment to support agents
3. Comment threads with staff-only internal notes
4. Voting on tickets and comments
5. Attachment URLs from the upload endpoint

HOW: FastAPI router that delegates every rule to TicketWorkflowService
(mutations) and TicketQueryService (listing):
- The visibility rule (end users only see their own tickets)
- Role gates (assignment, internal comments)
- Notifications released after the request's transaction commits
Responses are built here from eagerly loaded ORM objects.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Header, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from quickdesk.core.config import settings
from quickdesk.core.deps import get_current_user, get_notification_publisher
from quickdesk.db.session import get_db
from quickdesk.models.comment import Comment
from quickdesk.models.ticket import Ticket
from quickdesk.models.user import User
from quickdesk.schemas.category import CategoryReference
from quickdesk.schemas.common import ApiResponse, PaginationMeta, UserReference
from quickdesk.schemas.ticket import (
    AssignmentChangeResponse,
    CommentCreate,
    CommentResponse,
    PriorityChangeResponse,
    ReplyCreate,
    StatusChangeResponse,
    TicketAssign,
    TicketCreate,
    TicketDetailResponse,
    TicketResponse,
    TicketSummaryResponse,
    TicketUpdate,
    VoteRequest,
)
from quickdesk.services.notification_queue import NotificationPublisher
from quickdesk.services.ticket_query import TicketFilters, TicketQueryService
from quickdesk.services.ticket_workflow import (
    TicketView,
    TicketWorkflowService,
    can_see_comment,
)


router = APIRouter(prefix="/tickets", tags=["tickets"])


def get_workflow_service(
    db: AsyncSession = Depends(get_db),
    publisher: NotificationPublisher = Depends(get_notification_publisher),
) -> TicketWorkflowService:
    """Workflow service bound to the request's session and publisher."""
    return TicketWorkflowService(db, publisher)


# ============================================================================
# Response Conversion
# ============================================================================


def _user_to_reference(user: Optional[User]) -> Optional[UserReference]:
    """
    Convert User model to UserReference schema.

    WHY: Provides minimal user info for embedding in responses.
    """
    if not user:
        return None
    return UserReference.model_validate(user)


def _comment_to_response(
    comment: Comment, replies: Optional[List[Comment]] = None
) -> CommentResponse:
    """
    Convert Comment model to CommentResponse schema.

    Args:
        comment: Comment with author and votes loaded
        replies: Replies visible to the caller (empty for replies)

    Returns:
        CommentResponse schema instance
    """
    return CommentResponse(
        id=comment.id,
        ticket_id=comment.ticket_id,
        author=_user_to_reference(comment.author),
        content=comment.content,
        attachments=list(comment.attachments or []),
        is_internal=comment.is_internal,
        is_edited=comment.is_edited,
        edited_at=comment.edited_at,
        parent_comment_id=comment.parent_comment_id,
        upvotes=comment.upvotes,
        downvotes=comment.downvotes,
        vote_count=comment.vote_count,
        replies=[_comment_to_response(reply) for reply in replies or []],
        created_at=comment.created_at,
        updated_at=comment.updated_at,
    )


def _visible_replies(current_user: User, comment: Comment) -> List[Comment]:
    """Replies of a top-level comment that the caller may see."""
    if comment.parent_comment_id is not None:
        return []
    return [reply for reply in comment.replies if can_see_comment(current_user, reply)]


def _ticket_fields(ticket: Ticket) -> dict:
    """Fields shared by every ticket response shape."""
    return dict(
        id=ticket.id,
        subject=ticket.subject,
        description=ticket.description,
        category=CategoryReference.model_validate(ticket.category) if ticket.category else None,
        status=ticket.status,
        priority=ticket.priority,
        created_by=_user_to_reference(ticket.created_by),
        assigned_to=_user_to_reference(ticket.assigned_to),
        attachments=list(ticket.attachments or []),
        upvotes=ticket.upvotes,
        downvotes=ticket.downvotes,
        vote_count=ticket.vote_count,
        view_count=ticket.view_count,
        is_public=ticket.is_public,
        public_link=ticket.public_link,
        resolved_at=ticket.resolved_at,
        closed_at=ticket.closed_at,
        created_at=ticket.created_at,
        updated_at=ticket.updated_at,
    )


def _history_fields(ticket: Ticket) -> dict:
    return dict(
        status_history=[
            StatusChangeResponse.model_validate(record) for record in ticket.status_history
        ],
        priority_history=[
            PriorityChangeResponse.model_validate(record) for record in ticket.priority_history
        ],
        assignment_history=[
            AssignmentChangeResponse.model_validate(record)
            for record in ticket.assignment_history
        ],
    )


def _ticket_to_summary(ticket: Ticket) -> TicketSummaryResponse:
    return TicketSummaryResponse(**_ticket_fields(ticket))


def _ticket_to_response(ticket: Ticket) -> TicketResponse:
    """
    Convert Ticket model to TicketResponse schema.

    Requires the detail relationships (history and its users) to be loaded.
    """
    return TicketResponse(**_ticket_fields(ticket), **_history_fields(ticket))


def _ticket_view_to_detail(view: TicketView) -> TicketDetailResponse:
    """Ticket plus the comment tree already filtered for the caller."""
    return TicketDetailResponse(
        **_ticket_fields(view.ticket),
        **_history_fields(view.ticket),
        comments=[_comment_to_response(node.comment, node.replies) for node in view.comments],
    )


# ============================================================================
# Ticket Endpoints
# ============================================================================


@router.post(
    "",
    response_model=ApiResponse[TicketResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Create ticket",
    description="Open a new support ticket",
)
async def create_ticket(
    data: TicketCreate,
    idempotency_key: Optional[str] = Header(default=None, alias="Idempotency-Key"),
    current_user: User = Depends(get_current_user),
    workflow: TicketWorkflowService = Depends(get_workflow_service),
) -> ApiResponse[TicketResponse]:
    """
    Create a new support ticket.

    WHAT: Creates an OPEN ticket with the given subject, description and
    category; priority defaults to medium.

    WHY: Any authenticated user may open a ticket. Every active support
    agent and admin is notified once the ticket is committed.

    Args:
        data: Ticket creation data
        idempotency_key: Optional key; a repeat returns the first ticket
        current_user: Current authenticated user
        workflow: Ticket workflow service

    Returns:
        Created ticket

    Raises:
        ValidationError (400): Bad lengths, priority or category
        ConflictError (409): Concurrent create with the same key
    """
    ticket = await workflow.create_ticket(
        current_user,
        subject=data.subject,
        description=data.description,
        category=data.category,
        priority=data.priority,
        attachments=data.attachments,
        idempotency_key=idempotency_key,
    )
    return ApiResponse(data=_ticket_to_response(ticket), message="Ticket created successfully")


@router.get(
    "",
    response_model=ApiResponse[List[TicketSummaryResponse]],
    status_code=status.HTTP_200_OK,
    summary="List tickets",
    description="Filtered, searched, sorted and paginated ticket list",
)
async def list_tickets(
    status_filter: Optional[str] = Query(default=None, alias="status", description="Ticket status"),
    category: Optional[str] = Query(default=None, description="Category id or name"),
    priority: Optional[str] = Query(default=None, description="Ticket priority"),
    search: Optional[str] = Query(default=None, description="Substring of subject or description"),
    sort_by: Optional[str] = Query(default=None, alias="sortBy", description="Sort field"),
    sort_order: Optional[str] = Query(default=None, alias="sortOrder", description="asc or desc"),
    page: int = Query(default=1, description="Page number (1-based)"),
    limit: int = Query(default=settings.DEFAULT_PAGE_SIZE, description="Page size"),
    assigned_to: Optional[str] = Query(
        default=None,
        alias="assignedTo",
        description="'me' or an assignee id (support agents only)",
    ),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[List[TicketSummaryResponse]]:
    """
    List tickets with filters.

    WHAT: Returns one page of tickets the caller may see.

    WHY: End users only ever see tickets they created, whatever filters
    they send. Support agents may narrow the list to their own assignments
    with assignedTo=me.

    Returns:
        Tickets and the pagination block {page, pages, total, limit}

    Raises:
        ValidationError (400): Bad filter, sort or paging values
    """
    result = await TicketQueryService(db).list_tickets(
        current_user,
        TicketFilters(
            status=status_filter,
            category=category,
            priority=priority,
            search=search,
            sort_by=sort_by,
            sort_order=sort_order,
            page=page,
            limit=limit,
            assigned_to=assigned_to,
        ),
    )
    return ApiResponse(
        data=[_ticket_to_summary(ticket) for ticket in result.items],
        pagination=PaginationMeta(
            page=result.pagination.page,
            pages=result.pagination.pages,
            total=result.pagination.total,
            limit=result.pagination.limit,
        ),
    )


@router.get(
    "/{ticket_id}",
    response_model=ApiResponse[TicketDetailResponse],
    status_code=status.HTTP_200_OK,
    summary="Get ticket",
    description="Ticket detail with history and comment thread",
)
async def get_ticket(
    ticket_id: str,
    current_user: User = Depends(get_current_user),
    workflow: TicketWorkflowService = Depends(get_workflow_service),
) -> ApiResponse[TicketDetailResponse]:
    """
    Get ticket details.

    WHAT: Returns the ticket with its history and comment tree and counts
    the view.

    WHY: Internal comments and replies are removed from an end user's view.

    Raises:
        InvalidIdentifierError (400): Malformed ticket id
        AuthorizationError (403): Caller may not view the ticket
        TicketNotFoundError (404): Ticket doesn't exist
    """
    view = await workflow.get_ticket(current_user, ticket_id)
    return ApiResponse(data=_ticket_view_to_detail(view))


@router.put(
    "/{ticket_id}",
    response_model=ApiResponse[TicketResponse],
    status_code=status.HTTP_200_OK,
    summary="Update ticket",
    description="Partial update of fields, status, priority and assignment",
)
async def update_ticket(
    ticket_id: str,
    data: TicketUpdate,
    current_user: User = Depends(get_current_user),
    workflow: TicketWorkflowService = Depends(get_workflow_service),
) -> ApiResponse[TicketResponse]:
    """
    Update a ticket.

    WHAT: Applies only the fields present in the body. Status, priority and
    assignment changes are recorded in history when the value changes.

    Raises:
        InvalidIdentifierError (400): Malformed ticket id
        ValidationError (400): Bad values, category or assignee
        AuthorizationError (403): Caller may not update the ticket
        TicketNotFoundError (404): Ticket doesn't exist
    """
    ticket = await workflow.update_ticket(current_user, ticket_id, **data.changes())
    return ApiResponse(data=_ticket_to_response(ticket), message="Ticket updated successfully")


@router.delete(
    "/{ticket_id}",
    response_model=ApiResponse[None],
    status_code=status.HTTP_200_OK,
    summary="Delete ticket",
    description="Delete a ticket with all of its comments and replies",
)
async def delete_ticket(
    ticket_id: str,
    current_user: User = Depends(get_current_user),
    workflow: TicketWorkflowService = Depends(get_workflow_service),
) -> ApiResponse[None]:
    """
    Delete a ticket.

    Raises:
        InvalidIdentifierError (400): Malformed ticket id
        AuthorizationError (403): Caller may not delete the ticket
        TicketNotFoundError (404): Ticket doesn't exist
    """
    await workflow.delete_ticket(current_user, ticket_id)
    return ApiResponse(message="Ticket deleted successfully")


@router.put(
    "/{ticket_id}/vote",
    response_model=ApiResponse[TicketResponse],
    status_code=status.HTTP_200_OK,
    summary="Vote on ticket",
    description="Upvote or downvote a ticket",
)
async def vote_ticket(
    ticket_id: str,
    data: VoteRequest,
    current_user: User = Depends(get_current_user),
    workflow: TicketWorkflowService = Depends(get_workflow_service),
) -> ApiResponse[TicketResponse]:
    """
    Vote on a ticket.

    Repeating a vote changes nothing; the other vote type moves the caller
    between the upvote and downvote sets.

    Raises:
        ValidationError (400): Invalid vote type
        AuthorizationError (403): Caller may not view the ticket
        TicketNotFoundError (404): Ticket doesn't exist
    """
    ticket = await workflow.vote_ticket(current_user, ticket_id, data.vote_type)
    return ApiResponse(data=_ticket_to_response(ticket), message="Vote recorded")


@router.put(
    "/{ticket_id}/assign",
    response_model=ApiResponse[TicketResponse],
    status_code=status.HTTP_200_OK,
    summary="Assign ticket",
    description="Assign a ticket to a support agent or admin (staff only)",
)
async def assign_ticket(
    ticket_id: str,
    data: TicketAssign,
    current_user: User = Depends(get_current_user),
    workflow: TicketWorkflowService = Depends(get_workflow_service),
) -> ApiResponse[TicketResponse]:
    """
    Assign a ticket.

    WHY: Assignment is recorded in assignment history and the ticket's
    creator is notified.

    Raises:
        AuthorizationError (403): Caller is an end user
        ValidationError (400): Assignee missing, inactive or not staff
        TicketNotFoundError (404): Ticket doesn't exist
    """
    ticket = await workflow.assign_ticket(
        current_user, ticket_id, data.assigned_to, reason=data.reason
    )
    return ApiResponse(data=_ticket_to_response(ticket), message="Ticket assigned successfully")


# ============================================================================
# Comment Endpoints
# ============================================================================


@router.post(
    "/{ticket_id}/comments",
    response_model=ApiResponse[CommentResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Add comment",
    description="Add a comment to a ticket",
)
async def add_comment(
    ticket_id: str,
    data: CommentCreate,
    idempotency_key: Optional[str] = Header(default=None, alias="Idempotency-Key"),
    current_user: User = Depends(get_current_user),
    workflow: TicketWorkflowService = Depends(get_workflow_service),
) -> ApiResponse[CommentResponse]:
    """
    Add a comment to a ticket.

    WHAT: Creates a top-level comment. Support agents and admins may mark
    it internal (hidden from end users).

    Raises:
        ValidationError (400): Bad content length
        AuthorizationError (403): Caller may not comment, or an end user
            asked for an internal comment
        TicketNotFoundError (404): Ticket doesn't exist
    """
    comment = await workflow.add_comment(
        current_user,
        ticket_id,
        content=data.content,
        attachments=data.attachments,
        is_internal=data.is_internal,
        idempotency_key=idempotency_key,
    )
    return ApiResponse(
        data=_comment_to_response(comment, _visible_replies(current_user, comment)),
        message="Comment added successfully",
    )


@router.put(
    "/{ticket_id}/comments/{comment_id}/vote",
    response_model=ApiResponse[CommentResponse],
    status_code=status.HTTP_200_OK,
    summary="Vote on comment",
    description="Upvote or downvote a comment or reply",
)
async def vote_comment(
    ticket_id: str,
    comment_id: str,
    data: VoteRequest,
    current_user: User = Depends(get_current_user),
    workflow: TicketWorkflowService = Depends(get_workflow_service),
) -> ApiResponse[CommentResponse]:
    """
    Vote on a comment.

    Raises:
        ValidationError (400): Invalid vote type
        AuthorizationError (403): Caller may not view the ticket
        CommentNotFoundError (404): Comment doesn't exist on the ticket
    """
    comment = await workflow.vote_comment(current_user, ticket_id, comment_id, data.vote_type)
    return ApiResponse(
        data=_comment_to_response(comment, _visible_replies(current_user, comment)),
        message="Vote recorded",
    )


@router.post(
    "/{ticket_id}/comments/{comment_id}/reply",
    response_model=ApiResponse[CommentResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Reply to comment",
    description="Reply to a comment; replies to replies join the same thread",
)
async def reply_to_comment(
    ticket_id: str,
    comment_id: str,
    data: ReplyCreate,
    idempotency_key: Optional[str] = Header(default=None, alias="Idempotency-Key"),
    current_user: User = Depends(get_current_user),
    workflow: TicketWorkflowService = Depends(get_workflow_service),
) -> ApiResponse[CommentResponse]:
    """
    Reply to a comment.

    WHY: Threads are two-tier; the reply is attached to the top-level
    comment of the thread and the author of the comment replied to is
    notified.

    Raises:
        ValidationError (400): Bad content length
        AuthorizationError (403): Caller may not comment on the ticket
        CommentNotFoundError (404): Parent comment not found
    """
    reply = await workflow.reply_to_comment(
        current_user,
        ticket_id,
        comment_id,
        content=data.content,
        is_internal=data.is_internal,
        attachments=data.attachments,
        idempotency_key=idempotency_key,
    )
    return ApiResponse(data=_comment_to_response(reply), message="Reply added successfully")
