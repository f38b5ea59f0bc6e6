"""
Pydantic schemas for category endpoints.
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class CategoryReference(BaseModel):
    """Category as embedded in ticket responses."""

    id: uuid.UUID = Field(..., description="Category ID")
    name: str = Field(..., description="Category name")
    color: str = Field(..., description="Display color (#RRGGBB)")

    class Config:
        from_attributes = True


class CategoryResponse(CategoryReference):
    """Category as listed by GET /categories."""

    description: Optional[str] = Field(None, description="Category description")
    is_active: bool = Field(..., description="Inactive categories are hidden")
    created_at: datetime = Field(..., description="Creation timestamp")

    class Config:
        from_attributes = True
        json_schema_extra = {
            "example": {
                "id": "0f8fad5b-d9cb-469f-a165-70867728950e",
                "name": "Technical",
                "color": "#3B82F6",
                "description": "Technical issues and troubleshooting",
                "is_active": True,
                "created_at": "2024-01-01T00:00:00",
            }
        }
