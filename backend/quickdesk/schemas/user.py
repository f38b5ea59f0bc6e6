"""
Pydantic schemas for the user directory.

WHAT: User responses and the admin role/status change requests.
"""

import uuid
from datetime import datetime

from pydantic import AliasChoices, BaseModel, Field

from quickdesk.models.user import UserRole


class UserResponse(BaseModel):
    """
    User as returned by the directory endpoints.
    """

    id: uuid.UUID = Field(..., description="User ID")
    name: str = Field(..., description="Display name")
    email: str = Field(..., description="Email address")
    role: UserRole = Field(..., description="Role")
    is_active: bool = Field(..., description="Inactive users cannot authenticate")
    created_at: datetime = Field(..., description="Creation timestamp")
    updated_at: datetime = Field(..., description="Last update timestamp")

    class Config:
        from_attributes = True


class UserRoleUpdate(BaseModel):
    """Admin request to change a user's role."""

    role: UserRole = Field(..., description="New role")


class UserStatusUpdate(BaseModel):
    """Admin request to activate or deactivate a user."""

    is_active: bool = Field(
        ...,
        validation_alias=AliasChoices("is_active", "isActive"),
        description="False deactivates the account",
    )
