"""
Catalog Service

University, outlet and menu reads, plus the two dish rankings:

- Trending: available dishes across all outlets by lifetime order count.
- Comfort food: the dishes a user has ordered most often, counted by
  quantity over all of their orders.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from campus_eats.core.config import Settings, get_settings
from campus_eats.core.exceptions import NotFoundError, ValidationError
from campus_eats.models import Dish, Order, OrderItem, Outlet, University

logger = logging.getLogger(__name__)


@dataclass
class ComfortDish:
    dish: Dish
    outlet_name: str
    times_ordered: int


class CatalogService:

    def __init__(self, db: AsyncSession, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or get_settings()

    async def list_universities(self) -> list[University]:
        result = await self.db.execute(select(University).order_by(University.name))
        return list(result.scalars())

    # =========================================================================
    # OUTLETS
    # =========================================================================

    async def list_outlets(self, university_id: Optional[str] = None) -> list[Outlet]:
        stmt = select(Outlet).order_by(Outlet.name)
        if university_id is not None:
            stmt = stmt.where(Outlet.university_id == university_id)
        result = await self.db.execute(stmt.execution_options(populate_existing=True))
        return list(result.scalars())

    async def get_outlet(self, outlet_id: str) -> Outlet:
        outlet = (await self.db.execute(
            select(Outlet)
            .where(Outlet.id == outlet_id)
            .execution_options(populate_existing=True)
        )).scalar_one_or_none()
        if outlet is None:
            raise NotFoundError(f"Outlet {outlet_id} not found")
        return outlet

    async def get_owned_outlet(self, owner_id: str) -> Optional[Outlet]:
        """The outlet an owner runs; the oldest one if they run several."""
        result = await self.db.execute(
            select(Outlet)
            .where(Outlet.owner_id == owner_id)
            .order_by(Outlet.created_at, Outlet.id)
            .limit(1)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_dishes(self, outlet_id: str, available_only: bool = False) -> list[Dish]:
        stmt = select(Dish).where(Dish.outlet_id == outlet_id).order_by(Dish.category, Dish.name)
        if available_only:
            stmt = stmt.where(Dish.is_available.is_(True))
        result = await self.db.execute(stmt)
        return list(result.scalars())

    # =========================================================================
    # RANKINGS
    # =========================================================================

    def _limit(self, limit: Optional[int], default: int) -> int:
        limit = default if limit is None else limit
        if limit < 1:
            raise ValidationError("Limit must be at least 1")
        return limit

    async def trending(self, limit: Optional[int] = None) -> list[Dish]:
        limit = self._limit(limit, self.settings.trending_limit)
        result = await self.db.execute(
            select(Dish)
            .where(Dish.is_available.is_(True))
            .order_by(Dish.order_count.desc(), Dish.name, Dish.id)
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars())

    async def comfort_food(self, user_id: str, limit: Optional[int] = None) -> list[ComfortDish]:
        limit = self._limit(limit, self.settings.comfort_food_limit)
        times_ordered = func.sum(OrderItem.quantity).label("times_ordered")

        result = await self.db.execute(
            select(Dish, Outlet.name, times_ordered)
            .join(OrderItem, OrderItem.dish_id == Dish.id)
            .join(Order, Order.id == OrderItem.order_id)
            .join(Outlet, Outlet.id == Dish.outlet_id)
            .where(Order.user_id == user_id)
            .group_by(Dish.id, Outlet.name)
            .order_by(times_ordered.desc(), Dish.name)
            .limit(limit)
        )
        return [
            ComfortDish(dish=dish, outlet_name=outlet_name, times_ordered=count)
            for dish, outlet_name, count in result.all()
        ]
