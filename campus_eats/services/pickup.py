"""
Pickup Verifier

An order's `qr_code` is the pickup credential. Outlet staff scan it (or
type it in) to look the order up and hand it over; the student can also
confirm collection from their own device. Both paths only complete an
order that is `ready`, and both go through the lifecycle manager so the
outlet's active count and the student's realtime feed stay in step.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from campus_eats.core.exceptions import ForbiddenError, InvalidStateError, NotFoundError
from campus_eats.models import Order, OrderStatus, Outlet, User
from campus_eats.services.access import can_manage_outlet
from campus_eats.services.orders import OrderItemView, OrderLifecycleManager

logger = logging.getLogger(__name__)


@dataclass
class PickupDetails:
    order: Order
    outlet: Outlet
    items: list[OrderItemView]


class PickupVerifier:
    """Looks orders up by pickup code and completes them."""

    def __init__(self, db: AsyncSession, manager: OrderLifecycleManager):
        self.db = db
        self.manager = manager

    async def _find_by_code(self, code: str, outlet_id: Optional[str] = None) -> Optional[Order]:
        stmt = select(Order).where(Order.qr_code == code)
        if outlet_id is not None:
            stmt = stmt.where(Order.outlet_id == outlet_id)
        result = await self.db.execute(stmt.execution_options(populate_existing=True))
        return result.scalar_one_or_none()

    async def verify_by_code(self, code: str, requester: Optional[User] = None) -> PickupDetails:
        """
        Resolve a pickup code to its order, outlet and items.

        When a requester is given, only the ordering student and the
        outlet's managers may see the order.
        """
        order = await self._find_by_code(code)
        if order is None:
            raise NotFoundError(f"No order with pickup code {code}")

        outlet = await self.db.get(Outlet, order.outlet_id)
        if requester is not None and requester.id != order.user_id and not can_manage_outlet(requester, outlet):
            raise ForbiddenError(f"User {requester.id} may not view order {order.id}")

        items = await self.manager.get_order_items(order.id)
        return PickupDetails(order=order, outlet=outlet, items=items)

    async def confirm_pickup(self, order_id: str, user_id: str) -> Order:
        """The student confirms they collected a ready order."""
        order = await self.manager.get_order(order_id)
        if order.user_id != user_id:
            raise ForbiddenError(f"Order {order_id} does not belong to user {user_id}")
        if order.status != OrderStatus.READY:
            raise InvalidStateError(
                "Order not ready for pickup",
                current_status=order.status.value,
            )

        completed = await self.manager.update_status(order_id, OrderStatus.COMPLETED)
        logger.info(f"Order {order_id} picked up (confirmed by student)")
        return completed

    async def scan_by_outlet(self, code: str, outlet_id: str, requester: User) -> Order:
        """Outlet staff scan a pickup code at the counter."""
        outlet = await self.db.get(Outlet, outlet_id)
        if outlet is None or not can_manage_outlet(requester, outlet):
            raise ForbiddenError(f"User {requester.id} may not scan for outlet {outlet_id}")

        order = await self._find_by_code(code, outlet_id)
        if order is None:
            raise NotFoundError(f"Invalid QR code or order not found for outlet {outlet_id}")
        if order.status != OrderStatus.READY:
            raise InvalidStateError(
                f"Order is not ready yet. Current status: {order.status.value}",
                current_status=order.status.value,
            )

        completed = await self.manager.update_status(order.id, OrderStatus.COMPLETED)
        logger.info(f"Order {order.id} picked up (scanned at outlet {outlet_id})")
        return completed
