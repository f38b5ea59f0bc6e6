"""
Pydantic schemas for ticket endpoints.

WHAT: Request/response schemas for tickets, comments, replies and votes.

WHY: Schemas define API contracts for ticket operations:
1. Validate incoming request data
2. Document API for OpenAPI/Swagger
3. Accept both snake_case and the web client's camelCase field names
4. Control which fields are exposed

HOW: Uses Pydantic v2 with Field constraints and AliasChoices for request
bodies. Responses are assembled in quickdesk.api.tickets from ORM objects
whose relationships were eager-loaded.
"""

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator

from quickdesk.models.comment import CONTENT_MAX_LENGTH, CONTENT_MIN_LENGTH
from quickdesk.models.ticket import (
    TicketPriority,
    TicketStatus,
    DESCRIPTION_MAX_LENGTH,
    DESCRIPTION_MIN_LENGTH,
    SUBJECT_MAX_LENGTH,
    SUBJECT_MIN_LENGTH,
)
from quickdesk.schemas.category import CategoryReference
from quickdesk.schemas.common import UserReference


# ============================================================================
# Ticket Requests
# ============================================================================


class TicketCreate(BaseModel):
    """
    Ticket creation request.

    WHAT: Data for opening a new ticket.

    WHY: category may be a category id or its name ("Technical").
    """

    subject: str = Field(
        ...,
        min_length=SUBJECT_MIN_LENGTH,
        max_length=SUBJECT_MAX_LENGTH,
        description="Brief summary of the issue",
    )
    description: str = Field(
        ...,
        min_length=DESCRIPTION_MIN_LENGTH,
        max_length=DESCRIPTION_MAX_LENGTH,
        description="Detailed description",
    )
    category: str = Field(..., min_length=1, description="Category id or name")
    priority: Optional[TicketPriority] = Field(
        default=None,
        description="Initial priority (defaults to medium)",
    )
    attachments: List[str] = Field(
        default_factory=list,
        description="URLs returned by POST /upload",
    )

    @field_validator("subject", "description", "category", mode="before")
    @classmethod
    def strip_whitespace(cls, v):
        """Surrounding whitespace does not count towards length limits."""
        return v.strip() if isinstance(v, str) else v

    class Config:
        json_schema_extra = {
            "example": {
                "subject": "Cannot log in",
                "description": "Password reset link expired immediately",
                "category": "Technical",
                "priority": "high",
            }
        }


class TicketUpdate(BaseModel):
    """
    Ticket update request.

    WHAT: Partial update; only fields present in the body are applied.

    WHY: assigned_to may be sent as null to unassign, so "absent" and
    "null" mean different things. The handler forwards only the fields the
    client actually set.
    """

    subject: Optional[str] = Field(
        default=None,
        min_length=SUBJECT_MIN_LENGTH,
        max_length=SUBJECT_MAX_LENGTH,
        description="Updated subject",
    )
    description: Optional[str] = Field(
        default=None,
        min_length=DESCRIPTION_MIN_LENGTH,
        max_length=DESCRIPTION_MAX_LENGTH,
        description="Updated description",
    )
    category: Optional[str] = Field(default=None, description="Category id or name")
    priority: Optional[TicketPriority] = Field(default=None, description="Updated priority")
    status: Optional[TicketStatus] = Field(default=None, description="Updated status")
    assigned_to: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("assigned_to", "assignedTo"),
        description="Assignee user id, or null to unassign",
    )
    status_reason: Optional[str] = Field(
        default=None,
        max_length=500,
        validation_alias=AliasChoices("status_reason", "statusReason"),
        description="Reason stored with the status history record",
    )
    priority_reason: Optional[str] = Field(
        default=None,
        max_length=500,
        validation_alias=AliasChoices("priority_reason", "priorityReason"),
        description="Reason stored with the priority history record",
    )
    assignment_reason: Optional[str] = Field(
        default=None,
        max_length=500,
        validation_alias=AliasChoices("assignment_reason", "assignmentReason"),
        description="Reason stored with the assignment history record",
    )

    @field_validator("subject", "description", "category", mode="before")
    @classmethod
    def strip_whitespace(cls, v):
        """Surrounding whitespace does not count towards length limits."""
        return v.strip() if isinstance(v, str) else v

    def changes(self) -> dict:
        """Fields the client sent, by field name."""
        return {name: getattr(self, name) for name in self.model_fields_set}


class TicketAssign(BaseModel):
    """
    Ticket assignment request.
    """

    assigned_to: str = Field(
        ...,
        validation_alias=AliasChoices("assigned_to", "assignedTo"),
        description="Id of the support agent or admin to assign",
    )
    reason: Optional[str] = Field(default=None, max_length=500, description="Assignment reason")


class VoteRequest(BaseModel):
    """
    Vote request for tickets and comments.

    vote_type is checked by the workflow service so an unknown value yields
    "Invalid vote type".
    """

    vote_type: str = Field(
        ...,
        validation_alias=AliasChoices("vote_type", "voteType"),
        description="upvote or downvote",
    )


# ============================================================================
# Comment Requests
# ============================================================================


class CommentCreate(BaseModel):
    """
    Comment creation request.
    """

    content: str = Field(
        ...,
        min_length=CONTENT_MIN_LENGTH,
        max_length=CONTENT_MAX_LENGTH,
        description="Comment content",
    )
    attachments: List[str] = Field(default_factory=list, description="Attachment URLs")
    is_internal: bool = Field(
        default=False,
        validation_alias=AliasChoices("is_internal", "isInternal"),
        description="True for staff-only notes (hidden from end users)",
    )

    @field_validator("content", mode="before")
    @classmethod
    def strip_whitespace(cls, v):
        return v.strip() if isinstance(v, str) else v


class ReplyCreate(CommentCreate):
    """Reply creation request; same fields as a comment."""


# ============================================================================
# Responses
# ============================================================================


class StatusChangeResponse(BaseModel):
    """One status history record."""

    old_status: TicketStatus
    new_status: TicketStatus
    changed_by: Optional[UserReference] = None
    changed_at: datetime
    reason: str

    class Config:
        from_attributes = True


class PriorityChangeResponse(BaseModel):
    """One priority history record."""

    old_priority: TicketPriority
    new_priority: TicketPriority
    changed_by: Optional[UserReference] = None
    changed_at: datetime
    reason: str

    class Config:
        from_attributes = True


class AssignmentChangeResponse(BaseModel):
    """One assignment history record; either side may be unassigned."""

    old_assigned_to: Optional[UserReference] = None
    new_assigned_to: Optional[UserReference] = None
    changed_by: Optional[UserReference] = None
    changed_at: datetime
    reason: str

    class Config:
        from_attributes = True


class CommentResponse(BaseModel):
    """
    Comment or reply response.

    WHAT: Replies carry parent_comment_id and an empty replies list;
    top-level comments carry the replies visible to the caller.
    """

    id: uuid.UUID = Field(..., description="Comment ID")
    ticket_id: uuid.UUID = Field(..., description="Parent ticket ID")
    author: Optional[UserReference] = Field(None, description="Comment author")
    content: str = Field(..., description="Comment content")
    attachments: List[str] = Field(default_factory=list, description="Attachment URLs")
    is_internal: bool = Field(..., description="True if staff-only note")
    is_edited: bool = Field(default=False, description="True if comment was edited")
    edited_at: Optional[datetime] = Field(None, description="Last edit timestamp")
    parent_comment_id: Optional[uuid.UUID] = Field(None, description="Set on replies")
    upvotes: List[uuid.UUID] = Field(default_factory=list, description="Users who upvoted")
    downvotes: List[uuid.UUID] = Field(default_factory=list, description="Users who downvoted")
    vote_count: int = Field(default=0, description="Upvotes minus downvotes")
    replies: List["CommentResponse"] = Field(default_factory=list, description="Replies")
    created_at: datetime = Field(..., description="Creation timestamp")
    updated_at: datetime = Field(..., description="Last update timestamp")


class TicketSummaryResponse(BaseModel):
    """
    Ticket as returned by list endpoints.

    WHAT: Everything except the history sequences and comments.
    """

    id: uuid.UUID = Field(..., description="Ticket ID")
    subject: str = Field(..., description="Ticket subject")
    description: str = Field(..., description="Ticket description")
    category: Optional[CategoryReference] = Field(None, description="Ticket category")
    status: TicketStatus = Field(..., description="Current status")
    priority: TicketPriority = Field(..., description="Current priority")
    created_by: Optional[UserReference] = Field(None, description="Ticket creator")
    assigned_to: Optional[UserReference] = Field(None, description="Assigned agent")
    attachments: List[str] = Field(default_factory=list, description="Attachment URLs")
    upvotes: List[uuid.UUID] = Field(default_factory=list, description="Users who upvoted")
    downvotes: List[uuid.UUID] = Field(default_factory=list, description="Users who downvoted")
    vote_count: int = Field(default=0, description="Upvotes minus downvotes")
    view_count: int = Field(default=0, description="Number of detail views")
    is_public: bool = Field(default=True, description="Public flag")
    public_link: Optional[str] = Field(None, description="Shareable link token")
    resolved_at: Optional[datetime] = Field(None, description="First time resolved")
    closed_at: Optional[datetime] = Field(None, description="First time closed")
    created_at: datetime = Field(..., description="Creation timestamp")
    updated_at: datetime = Field(..., description="Last update timestamp")


class TicketResponse(TicketSummaryResponse):
    """
    Ticket with its history, returned by create, update, assign and vote.
    """

    status_history: List[StatusChangeResponse] = Field(default_factory=list)
    priority_history: List[PriorityChangeResponse] = Field(default_factory=list)
    assignment_history: List[AssignmentChangeResponse] = Field(default_factory=list)


class TicketDetailResponse(TicketResponse):
    """
    Ticket detail with its comment tree, returned by GET /tickets/{id}.

    Internal comments and replies are already removed for end users.
    """

    comments: List[CommentResponse] = Field(default_factory=list)
