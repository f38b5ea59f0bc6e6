"""
FastAPI dependencies for authentication and authorization.

WHY: Dependencies provide reusable authentication and authorization logic
that can be injected into route handlers, so every route resolves the
caller to the same principal (id + role) and role gates read the same way
everywhere.
"""

import uuid
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from quickdesk.core.auth import verify_token
from quickdesk.core.exceptions import (
    AuthenticationError,
    AuthorizationError,
    TokenExpiredError,
    TokenInvalidError,
)
from quickdesk.dao.user import UserDAO
from quickdesk.db.session import get_db
from quickdesk.models.user import User, UserRole, STAFF_ROLES
from quickdesk.services.notification_queue import (
    NotificationPublisher,
    TransactionalPublisher,
    get_notification_queue,
)


# HTTP Bearer token security scheme
# Format: "Authorization: Bearer <token>"
# auto_error=False so a missing header goes through AuthenticationError (401)
security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Get current authenticated user from JWT token.

    WHY: This dependency:
    1. Extracts token from Authorization header
    2. Verifies token signature and expiration
    3. Reads the user id from the `sub` claim
    4. Fetches user from database
    5. Ensures user still exists and is active

    The role always comes from the database row, never from the token, so
    a role change takes effect on the next request.

    Usage:
        @router.get("/protected")
        async def protected_route(user: User = Depends(get_current_user)):
            return {"user_id": user.id}

    Args:
        credentials: JWT token from Authorization header
        db: Database session

    Returns:
        Authenticated User instance

    Raises:
        AuthenticationError: If token is missing, invalid, expired, or the
            user is unknown or inactive
    """
    if credentials is None:
        raise AuthenticationError(message="Not authenticated")

    try:
        payload = verify_token(credentials.credentials)
    except (TokenExpiredError, TokenInvalidError) as e:
        raise AuthenticationError(
            message=e.message,
            status_code=e.status_code,
        )

    subject = payload.get("sub")
    try:
        user_id = uuid.UUID(str(subject))
    except ValueError:
        raise AuthenticationError(message="Invalid token: missing user id")

    user = await UserDAO(db).get_by_id(user_id)

    if not user:
        # User might have been deleted after token was issued
        raise AuthenticationError(
            message="User not found",
            user_id=user_id,
        )

    if not user.is_active:
        raise AuthenticationError(
            message="User account is inactive",
            user_id=user_id,
        )

    return user


def require_role(*allowed_roles: UserRole):
    """
    Factory function to create a role requirement dependency.

    Usage:
        @router.get("/users")
        async def list_users(user: User = Depends(require_role(UserRole.ADMIN))):
            ...

    Args:
        *allowed_roles: Roles that may call the route

    Returns:
        Dependency function that checks the caller's role
    """

    async def role_checker(current_user: User = Depends(get_current_user)) -> User:
        """
        Check if user has one of the allowed roles.

        Raises:
            AuthorizationError: If user's role is not allowed
        """
        if current_user.role not in allowed_roles:
            raise AuthorizationError(
                message="Insufficient permissions",
                user_id=current_user.id,
                user_role=current_user.role.value,
                required_roles=[role.value for role in allowed_roles],
            )
        return current_user

    return role_checker


# Support agents and admins
require_staff = require_role(*STAFF_ROLES)

require_admin = require_role(UserRole.ADMIN)


def get_notification_publisher(
    db: AsyncSession = Depends(get_db),
) -> NotificationPublisher:
    """
    Publisher bound to the request's transaction.

    Events published during the request reach the dispatcher only if the
    request's transaction commits.
    """
    return TransactionalPublisher(db, get_notification_queue())
