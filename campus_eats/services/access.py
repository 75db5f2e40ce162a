"""Role checks shared by the order and outlet services."""

from campus_eats.core.exceptions import ForbiddenError
from campus_eats.models import Outlet, User, UserRole


def is_app_admin(user: User) -> bool:
    return user.role == UserRole.APP_ADMIN


def can_manage_outlet(user: User, outlet: Outlet) -> bool:
    """Owners manage their own outlet; app admins manage every outlet."""
    return outlet.owner_id == user.id or is_app_admin(user)


def ensure_can_manage_outlet(user: User, outlet: Outlet) -> None:
    if not can_manage_outlet(user, outlet):
        raise ForbiddenError(f"User {user.id} does not manage outlet {outlet.id}")
