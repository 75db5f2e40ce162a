"""
Request Dependencies

Authentication is delegated to an upstream identity provider; the gateway
forwards the authenticated user's id in the `X-User-Id` header. Roles are
read from the users table, never from the request.
"""

import logging
from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from campus_eats.core.exceptions import ForbiddenError, UnauthorizedError
from campus_eats.database import get_db
from campus_eats.models import User, UserRole
from campus_eats.services.notifications import BaseRealtimeNotifier, get_notifier
from campus_eats.services.orders import OrderLifecycleManager

logger = logging.getLogger(__name__)


async def get_current_user(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Resolve the authenticated user forwarded by the gateway."""
    if not x_user_id:
        raise UnauthorizedError("Missing X-User-Id header")

    user = await db.get(User, x_user_id)
    if user is None:
        raise UnauthorizedError(f"Unknown user {x_user_id}")
    return user


def require_roles(*roles: UserRole):
    """Dependency factory: only users with one of `roles` may continue."""

    async def checker(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles:
            raise ForbiddenError(f"Role {user.role.value} not allowed, need one of {[r.value for r in roles]}")
        return user

    return checker


def get_realtime_notifier() -> BaseRealtimeNotifier:
    return get_notifier()


def get_order_manager(
    db: AsyncSession = Depends(get_db),
    notifier: BaseRealtimeNotifier = Depends(get_realtime_notifier),
) -> OrderLifecycleManager:
    return OrderLifecycleManager(db, notifier)
