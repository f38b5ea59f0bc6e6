"""
Category API endpoints.

WHAT: Public listing of active ticket categories.

WHY: The ticket form needs the category list before the user has done
anything else, so the endpoint requires no authentication.
"""

from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from quickdesk.db.session import get_db
from quickdesk.schemas.category import CategoryResponse
from quickdesk.schemas.common import ApiResponse
from quickdesk.services.category_service import CategoryService


router = APIRouter(prefix="/categories", tags=["categories"])


@router.get(
    "",
    response_model=ApiResponse[List[CategoryResponse]],
    status_code=status.HTTP_200_OK,
    summary="List categories",
    description="Active ticket categories sorted by name",
)
async def list_categories(
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[List[CategoryResponse]]:
    categories = await CategoryService(db).list_active()
    return ApiResponse(data=[CategoryResponse.model_validate(c) for c in categories])
