"""
User directory API endpoints.

WHAT: Staff lookup of users (for assignment pickers) and admin management
of roles and the active flag.

WHY: Credentials belong to the identity provider; QuickDesk only manages
what authorization needs. An admin cannot change their own role or
deactivate themselves, so the last admin can never lock everyone out by
accident.

HOW: FastAPI router with RBAC dependencies:
- require_staff for the directory listing
- require_admin for lookups by id and every mutation
"""

import logging
import math
import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from quickdesk.core.config import settings
from quickdesk.core.deps import get_current_user, require_admin, require_staff
from quickdesk.core.exceptions import (
    InvalidIdentifierError,
    UserNotFoundError,
    ValidationError,
)
from quickdesk.dao.user import UserDAO
from quickdesk.db.session import get_db
from quickdesk.models.user import User, UserRole
from quickdesk.schemas.common import ApiResponse, PaginationMeta
from quickdesk.schemas.user import UserResponse, UserRoleUpdate, UserStatusUpdate

logger = logging.getLogger(__name__)


router = APIRouter(prefix="/users", tags=["users"])


async def _get_user_or_404(db: AsyncSession, raw_user_id: str) -> User:
    """
    Load a user by path id.

    Raises:
        InvalidIdentifierError: Malformed id
        UserNotFoundError: No such user
    """
    try:
        user_id = uuid.UUID(raw_user_id)
    except ValueError:
        raise InvalidIdentifierError("Invalid user ID format", value=raw_user_id)

    user = await UserDAO(db).get_by_id(user_id)
    if user is None:
        raise UserNotFoundError(user_id=user_id)
    return user


@router.get(
    "",
    response_model=ApiResponse[List[UserResponse]],
    status_code=status.HTTP_200_OK,
    summary="List users",
    description="Paginated user directory (support agents and admins)",
)
async def list_users(
    role: Optional[UserRole] = Query(default=None, description="Filter by role"),
    search: Optional[str] = Query(default=None, description="Substring of name or email"),
    page: int = Query(default=1, ge=1, description="Page number (1-based)"),
    limit: int = Query(default=20, ge=1, le=100, description="Page size"),
    current_user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[List[UserResponse]]:
    """
    List users.

    WHY: Support agents need the directory to pick an assignee.
    """
    users, total = await UserDAO(db).list_users(
        role=role,
        search=search.strip() if search else None,
        skip=(page - 1) * limit,
        limit=limit,
    )
    return ApiResponse(
        data=[UserResponse.model_validate(u) for u in users],
        pagination=PaginationMeta(page=page, pages=math.ceil(total / limit), total=total, limit=limit),
    )


@router.get(
    "/me",
    response_model=ApiResponse[UserResponse],
    status_code=status.HTTP_200_OK,
    summary="Current user",
)
async def get_me(
    current_user: User = Depends(get_current_user),
) -> ApiResponse[UserResponse]:
    return ApiResponse(data=UserResponse.model_validate(current_user))


@router.get(
    "/{user_id}",
    response_model=ApiResponse[UserResponse],
    status_code=status.HTTP_200_OK,
    summary="Get user",
    description="Get a user by id (ADMIN only)",
)
async def get_user(
    user_id: str,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[UserResponse]:
    user = await _get_user_or_404(db, user_id)
    return ApiResponse(data=UserResponse.model_validate(user))


@router.put(
    "/{user_id}/role",
    response_model=ApiResponse[UserResponse],
    status_code=status.HTTP_200_OK,
    summary="Change role",
    description="Change a user's role (ADMIN only)",
)
async def update_user_role(
    user_id: str,
    data: UserRoleUpdate,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[UserResponse]:
    """
    Change a user's role.

    Raises:
        ValidationError (400): Admin tried to change their own role
        UserNotFoundError (404): No such user
    """
    user = await _get_user_or_404(db, user_id)
    if user.id == current_user.id:
        raise ValidationError("Cannot change your own role", user_id=user.id)

    user = await UserDAO(db).update(user, role=data.role)
    logger.info(f"User {user.id} role set to {data.role.value} by admin {current_user.id}")

    return ApiResponse(data=UserResponse.model_validate(user), message="User role updated")


@router.put(
    "/{user_id}/status",
    response_model=ApiResponse[UserResponse],
    status_code=status.HTTP_200_OK,
    summary="Activate or deactivate user",
    description="Set a user's active flag (ADMIN only)",
)
async def update_user_status(
    user_id: str,
    data: UserStatusUpdate,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[UserResponse]:
    """
    Activate or deactivate a user.

    WHY: Deactivated users can no longer authenticate and drop out of the
    staff broadcast for new tickets.

    Raises:
        ValidationError (400): Admin tried to deactivate themselves
        UserNotFoundError (404): No such user
    """
    user = await _get_user_or_404(db, user_id)
    if user.id == current_user.id and not data.is_active:
        raise ValidationError("Cannot deactivate your own account", user_id=user.id)

    user = await UserDAO(db).update(user, is_active=data.is_active)
    logger.info(
        f"User {user.id} {'activated' if data.is_active else 'deactivated'} "
        f"by admin {current_user.id}"
    )

    return ApiResponse(data=UserResponse.model_validate(user), message="User status updated")
