"""
Shared response schemas.

WHAT: The response envelope and the small reference models embedded in
ticket, comment and notification responses.

WHY: Every endpoint answers with the same envelope:
{success, data, message, pagination}. Clients branch on `success` and read
`pagination` only from list endpoints.
"""

import uuid
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, Field

from quickdesk.models.user import UserRole

DataT = TypeVar("DataT")


class PaginationMeta(BaseModel):
    """Paging block of list responses; pages = ceil(total / limit)."""

    page: int = Field(..., ge=1, description="Current page (1-based)")
    pages: int = Field(..., ge=0, description="Total number of pages")
    total: int = Field(..., ge=0, description="Matching items before paging")
    limit: int = Field(..., ge=1, description="Page size")


class ApiResponse(BaseModel, Generic[DataT]):
    """
    Standard response envelope.

    Example:
        ApiResponse[TicketResponse](data=ticket, message="Ticket created")
    """

    success: bool = Field(default=True, description="False only on errors")
    data: Optional[DataT] = Field(default=None, description="Payload")
    message: Optional[str] = Field(default=None, description="Human-readable message")
    pagination: Optional[PaginationMeta] = Field(default=None, description="Set on list responses")


class UserReference(BaseModel):
    """
    Minimal user info for embedding in ticket and comment responses.
    """

    id: uuid.UUID = Field(..., description="User ID")
    name: str = Field(..., description="User name")
    email: str = Field(..., description="User email")
    role: UserRole = Field(..., description="User role")

    class Config:
        from_attributes = True
