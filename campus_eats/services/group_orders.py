"""
Group Orders

A group order is a shareable container, bound to one outlet, that
members attach their individual orders to while it is open. Its
`total_amount` accumulates the totals of attached orders (see
OrderLifecycleManager.create_order).
"""

import logging
import uuid
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from campus_eats.core.clock import utcnow
from campus_eats.core.config import Settings, get_settings
from campus_eats.core.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from campus_eats.models import GroupOrder, GroupOrderStatus, Order, Outlet

logger = logging.getLogger(__name__)


class GroupOrderService:

    def __init__(self, db: AsyncSession, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or get_settings()

    def _share_link(self) -> str:
        return f"{self.settings.group_share_prefix}{uuid.uuid4().hex[:8].upper()}"

    async def create(self, creator_id: str, outlet_id: str, name: str) -> GroupOrder:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Group order needs a name")

        outlet_exists = await self.db.scalar(select(Outlet.id).where(Outlet.id == outlet_id))
        if outlet_exists is None:
            raise ValidationError(f"Unknown outlet {outlet_id}")

        group = GroupOrder(
            creator_id=creator_id,
            outlet_id=outlet_id,
            name=name,
            status=GroupOrderStatus.OPEN,
            total_amount=0,
            share_link=self._share_link(),
        )
        self.db.add(group)
        try:
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(f"Group order '{name}' ({group.share_link}) opened by {creator_id}")
        return group

    async def get(self, group_order_id: str) -> GroupOrder:
        group = (await self.db.execute(
            select(GroupOrder)
            .where(GroupOrder.id == group_order_id)
            .execution_options(populate_existing=True)
        )).scalar_one_or_none()
        if group is None:
            raise NotFoundError(f"Group order {group_order_id} not found")
        return group

    async def get_by_link(self, share_link: str) -> GroupOrder:
        group = await self.db.scalar(select(GroupOrder).where(GroupOrder.share_link == share_link))
        if group is None:
            raise NotFoundError(f"Group order {share_link} not found")
        return group

    async def list_orders(self, group_order_id: str) -> list[Order]:
        result = await self.db.execute(
            select(Order)
            .where(Order.group_order_id == group_order_id)
            .order_by(Order.created_at)
        )
        return list(result.scalars())

    async def close(self, group_order_id: str, requester_id: str) -> GroupOrder:
        """Stop accepting new orders. Only the creator can close a group."""
        group = await self.get(group_order_id)
        if group.creator_id != requester_id:
            raise ForbiddenError(f"User {requester_id} did not create group order {group_order_id}")
        if group.status != GroupOrderStatus.OPEN:
            raise InvalidStateError("Group order is already closed")

        try:
            result = await self.db.execute(
                update(GroupOrder)
                .where(GroupOrder.id == group_order_id, GroupOrder.status == GroupOrderStatus.OPEN)
                .values(status=GroupOrderStatus.CLOSED, closed_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise ConflictError(f"Group order {group_order_id} was updated concurrently")
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(f"Group order {group.share_link} closed")
        return await self.get(group_order_id)
