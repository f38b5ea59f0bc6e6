"""
Notification inbox API endpoints.

WHAT: The authenticated user's in-app notifications.

WHY: Notifications are written by the background dispatcher; this router
only reads them and flips read flags. Every query is scoped to the caller,
so a notification id belonging to someone else behaves like a missing one.
"""

import math
import uuid
from typing import List

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from quickdesk.core.config import settings
from quickdesk.core.deps import get_current_user
from quickdesk.core.exceptions import (
    InvalidIdentifierError,
    ResourceNotFoundError,
    ValidationError,
)
from quickdesk.dao.notification import NotificationDAO
from quickdesk.db.session import get_db
from quickdesk.models.user import User
from quickdesk.schemas.common import ApiResponse, PaginationMeta
from quickdesk.schemas.notification import (
    MarkAllReadResponse,
    NotificationResponse,
    UnreadCountResponse,
)


router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get(
    "",
    response_model=ApiResponse[List[NotificationResponse]],
    status_code=status.HTTP_200_OK,
    summary="List notifications",
    description="Newest-first page of the caller's notifications",
)
async def list_notifications(
    page: int = Query(default=1, description="Page number (1-based)"),
    limit: int = Query(default=20, description="Page size"),
    unread_only: bool = Query(default=False, alias="unreadOnly", description="Only unread"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[List[NotificationResponse]]:
    """
    List the caller's notifications.

    Raises:
        ValidationError (400): Bad paging values
    """
    if page < 1:
        raise ValidationError("Page must be at least 1")
    if not 1 <= limit <= settings.MAX_PAGE_SIZE:
        raise ValidationError(f"Limit must be between 1 and {settings.MAX_PAGE_SIZE}")

    notifications, total = await NotificationDAO(db).list_for_recipient(
        current_user.id,
        skip=(page - 1) * limit,
        limit=limit,
        unread_only=unread_only,
    )
    return ApiResponse(
        data=[NotificationResponse.model_validate(n) for n in notifications],
        pagination=PaginationMeta(
            page=page,
            pages=math.ceil(total / limit),
            total=total,
            limit=limit,
        ),
    )


@router.get(
    "/unread-count",
    response_model=ApiResponse[UnreadCountResponse],
    status_code=status.HTTP_200_OK,
    summary="Unread count",
)
async def get_unread_count(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[UnreadCountResponse]:
    count = await NotificationDAO(db).count_unread(current_user.id)
    return ApiResponse(data=UnreadCountResponse(unread_count=count))


@router.put(
    "/read-all",
    response_model=ApiResponse[MarkAllReadResponse],
    status_code=status.HTTP_200_OK,
    summary="Mark all read",
)
async def mark_all_read(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[MarkAllReadResponse]:
    updated = await NotificationDAO(db).mark_all_read(current_user.id)
    return ApiResponse(
        data=MarkAllReadResponse(updated=updated),
        message="All notifications marked as read",
    )


@router.put(
    "/{notification_id}/read",
    response_model=ApiResponse[NotificationResponse],
    status_code=status.HTTP_200_OK,
    summary="Mark read",
    description="Mark one of the caller's notifications read",
)
async def mark_read(
    notification_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[NotificationResponse]:
    """
    Mark one notification read.

    Raises:
        InvalidIdentifierError (400): Malformed id
        ResourceNotFoundError (404): No such notification for the caller
    """
    try:
        parsed_id = uuid.UUID(notification_id)
    except ValueError:
        raise InvalidIdentifierError("Invalid notification ID format", value=notification_id)

    notification = await NotificationDAO(db).mark_read(parsed_id, current_user.id)
    if notification is None:
        raise ResourceNotFoundError("Notification not found", notification_id=parsed_id)

    return ApiResponse(data=NotificationResponse.model_validate(notification))
