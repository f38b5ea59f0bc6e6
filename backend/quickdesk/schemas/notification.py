"""
Pydantic schemas for the notification inbox.

WHAT: Response models for in-app notifications.

WHY: The ORM column is named `extra` (declarative classes reserve
"metadata") but clients read `metadata`, so the response model accepts
either name on input and always emits `metadata`.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import AliasChoices, BaseModel, Field

from quickdesk.models.notification import NotificationType


class NotificationResponse(BaseModel):
    """One inbox entry."""

    id: uuid.UUID = Field(..., description="Notification ID")
    type: NotificationType = Field(..., description="Workflow event that caused it")
    title: str = Field(..., description="Short title")
    message: str = Field(..., description="Human-readable message")
    metadata: Dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("extra", "metadata"),
        description="Event payload (comment id, assignee, ...)",
    )
    ticket_id: Optional[uuid.UUID] = Field(None, description="Ticket the event concerns")
    sender_id: Optional[uuid.UUID] = Field(None, description="User who caused the event")
    is_read: bool = Field(..., description="Read flag")
    read_at: Optional[datetime] = Field(None, description="When it was marked read")
    created_at: datetime = Field(..., description="Creation timestamp")

    class Config:
        from_attributes = True


class UnreadCountResponse(BaseModel):
    unread_count: int = Field(..., ge=0, description="Unread notifications")


class MarkAllReadResponse(BaseModel):
    updated: int = Field(..., ge=0, description="Notifications marked read")
