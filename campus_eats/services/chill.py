"""
Chill Period Throttle

An outlet enters a chill period when its active order count reaches its
capacity, or when its owner pauses it manually. While chilled, new orders
are refused. The stored flag is only half the story: a chill period whose
`chill_period_ends_at` has passed is treated as over even before the
periodic sweep clears the flag.

Version: 1.0.0
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from campus_eats.core.clock import as_utc, utcnow
from campus_eats.core.config import Settings, get_settings
from campus_eats.core.exceptions import NotFoundError, ValidationError
from campus_eats.models import Outlet, User
from campus_eats.services.access import ensure_can_manage_outlet

logger = logging.getLogger(__name__)


class ChillPeriodThrottle:
    """Opens, closes and expires outlet chill periods."""

    def __init__(self, db: AsyncSession, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or get_settings()

    async def evaluate_after_order(
        self,
        outlet_id: str,
        active_count: int,
        max_active: int,
        now: Optional[datetime] = None,
        current_ends_at: Optional[datetime] = None,
    ) -> bool:
        """
        Start an automatic chill period if the outlet is at capacity.

        Runs inside the order-creation transaction. A chill period that is
        already running past the default length (a manual pause) keeps its
        later expiry. Returns True when a chill period was set.
        """
        if active_count < max_active:
            return False

        now = now or utcnow()
        ends_at = now + timedelta(minutes=self.settings.chill_default_minutes)
        if current_ends_at is not None:
            ends_at = max(ends_at, as_utc(current_ends_at))

        await self.db.execute(
            update(Outlet)
            .where(Outlet.id == outlet_id)
            .values(is_chill_period=True, chill_period_ends_at=ends_at)
            .execution_options(synchronize_session=False)
        )

        logger.info(
            f"Outlet {outlet_id} at capacity ({active_count}/{max_active}), "
            f"chill period until {ends_at.isoformat()}"
        )
        return True

    # =========================================================================
    # MANUAL CONTROL
    # =========================================================================

    async def _load_managed_outlet(self, outlet_id: str, requester: User) -> Outlet:
        outlet = (await self.db.execute(
            select(Outlet)
            .where(Outlet.id == outlet_id)
            .execution_options(populate_existing=True)
        )).scalar_one_or_none()
        if outlet is None:
            raise NotFoundError(f"Outlet {outlet_id} not found")

        ensure_can_manage_outlet(requester, outlet)
        return outlet

    async def activate(
        self,
        outlet_id: str,
        duration_minutes: int,
        requester: User,
        now: Optional[datetime] = None,
    ) -> Outlet:
        """Pause an outlet for `duration_minutes`."""
        low, high = self.settings.chill_min_minutes, self.settings.chill_max_minutes
        if not low <= duration_minutes <= high:
            raise ValidationError(f"Duration must be between {low} and {high} minutes")

        outlet = await self._load_managed_outlet(outlet_id, requester)
        now = now or utcnow()

        outlet.is_chill_period = True
        outlet.chill_period_ends_at = now + timedelta(minutes=duration_minutes)
        await self.db.commit()
        await self.db.refresh(outlet)

        logger.info(f"Outlet {outlet_id} paused by {requester.id} for {duration_minutes} minutes")
        return outlet

    async def deactivate(self, outlet_id: str, requester: User) -> Outlet:
        """End an outlet's chill period now."""
        outlet = await self._load_managed_outlet(outlet_id, requester)

        outlet.is_chill_period = False
        outlet.chill_period_ends_at = None
        await self.db.commit()
        await self.db.refresh(outlet)

        logger.info(f"Outlet {outlet_id} resumed by {requester.id}")
        return outlet

    async def set_chill_period(
        self,
        outlet_id: str,
        is_active: bool,
        requester: User,
        duration_minutes: Optional[int] = None,
    ) -> Outlet:
        if not is_active:
            return await self.deactivate(outlet_id, requester)
        if duration_minutes is None:
            duration_minutes = self.settings.chill_default_minutes
        return await self.activate(outlet_id, duration_minutes, requester)

    # =========================================================================
    # SWEEP
    # =========================================================================

    async def sweep_expired(self, now: Optional[datetime] = None) -> int:
        """
        Clear every chill flag whose expiry has passed.

        Idempotent. Returns the number of outlets resumed.
        """
        now = now or utcnow()

        result = await self.db.execute(
            update(Outlet)
            .where(
                Outlet.is_chill_period.is_(True),
                or_(
                    Outlet.chill_period_ends_at.is_(None),
                    Outlet.chill_period_ends_at <= now,
                ),
            )
            .values(is_chill_period=False, chill_period_ends_at=None)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

        resumed = result.rowcount or 0
        if resumed:
            logger.info(f"Chill sweep resumed {resumed} outlet(s)")
        return resumed
