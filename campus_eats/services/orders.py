"""
Order Lifecycle Manager

Creates orders and moves them through the status workflow:

    pending → confirmed → preparing → ready → completed
    pending → cancelled
    confirmed → cancelled

Every transition is applied with a compare-and-swap UPDATE
(`WHERE status = <status read>`), so two concurrent transitions of the
same order cannot both succeed. The outlet's `active_orders_count` moves
in the same transaction as the order row: +1 on creation, -1 on reaching
a terminal state.

Realtime notifications are sent after commit and never fail the request.

Version: 1.0.0
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Iterable, Optional, Union

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from campus_eats.core.clock import utcnow
from campus_eats.core.config import Settings, get_settings
from campus_eats.core.exceptions import (
    ConflictError,
    InvalidStateError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from campus_eats.models import (
    ACTIVE_STATUSES,
    ORDER_TRANSITIONS,
    Dish,
    GroupOrder,
    GroupOrderStatus,
    Order,
    OrderItem,
    OrderStatus,
    Outlet,
    PaymentMethod,
    new_id,
)
from campus_eats.services.chill import ChillPeriodThrottle
from campus_eats.services.gamification import GamificationService
from campus_eats.services.notifications import BaseRealtimeNotifier, get_notifier

logger = logging.getLogger(__name__)


@dataclass
class LineItem:
    """One requested dish in a new order."""
    dish_id: str
    quantity: int
    price: int
    customizations: Optional[str] = None


@dataclass
class OrderItemView:
    """An order line joined with its dish name."""
    id: str
    dish_id: str
    dish_name: str
    quantity: int
    price: int
    customizations: Optional[str] = None


@dataclass
class OrderSummary:
    """An order with the display fields the order history needs."""
    order: Order
    outlet_name: str
    item_count: int


def generate_pickup_code(prefix: str = "ORDER-") -> str:
    """Opaque pickup credential: the prefix followed by a uuid4."""
    return f"{prefix}{uuid.uuid4()}"


def _coerce_line(item: Union[LineItem, dict[str, Any], Any]) -> LineItem:
    if isinstance(item, dict):
        line = LineItem(
            dish_id=item.get("dish_id"),
            quantity=item.get("quantity"),
            price=item.get("price"),
            customizations=item.get("customizations"),
        )
    elif isinstance(item, LineItem):
        line = item
    else:
        line = LineItem(
            dish_id=item.dish_id,
            quantity=item.quantity,
            price=item.price,
            customizations=getattr(item, "customizations", None),
        )

    if not line.dish_id:
        raise ValidationError("Each item needs a dish_id")
    if line.quantity is None or line.quantity <= 0:
        raise ValidationError("Item quantity must be positive")
    if line.price is None or line.price < 0:
        raise ValidationError("Item price cannot be negative")
    return line


class OrderLifecycleManager:
    """Creates orders and applies status transitions."""

    def __init__(
        self,
        db: AsyncSession,
        notifier: Optional[BaseRealtimeNotifier] = None,
        settings: Optional[Settings] = None,
    ):
        self.db = db
        self.notifier = notifier or get_notifier()
        self.settings = settings or get_settings()

    # =========================================================================
    # CREATE
    # =========================================================================

    async def create_order(
        self,
        user_id: str,
        outlet_id: str,
        items: Iterable[Union[LineItem, dict[str, Any]]],
        total_amount: int,
        payment_method: Union[PaymentMethod, str] = PaymentMethod.CASH,
        special_instructions: Optional[str] = None,
        group_order_id: Optional[str] = None,
    ) -> Order:
        """
        Place a new order.

        In one transaction: lock the outlet row, refuse if it is chilled,
        insert the order and its items, bump dish popularity and the
        outlet's active count, and start a chill period if the outlet just
        reached capacity.
        """
        lines = [_coerce_line(item) for item in items]
        if not lines:
            raise ValidationError("Order must contain at least one item")
        if total_amount is None or total_amount < 0:
            raise ValidationError("Total amount cannot be negative")
        try:
            payment_method = PaymentMethod(payment_method)
        except ValueError as e:
            raise ValidationError(f"Unsupported payment method '{payment_method}'") from e

        now = utcnow()

        try:
            outlet = (await self.db.execute(
                select(Outlet)
                .where(Outlet.id == outlet_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )).scalar_one_or_none()
            if outlet is None:
                raise ValidationError(f"Unknown outlet {outlet_id}")

            if self.settings.enforce_chill_period and outlet.is_effectively_chilled(now):
                raise InvalidStateError(
                    "Outlet is in chill period",
                    outlet_id=outlet_id,
                    ends_at=outlet.chill_period_ends_at,
                )

            await self._check_menu(outlet_id, lines)
            if group_order_id is not None:
                await self._check_group_order(group_order_id, outlet_id)

            order = Order(
                id=new_id(),
                user_id=user_id,
                outlet_id=outlet_id,
                group_order_id=group_order_id,
                status=OrderStatus.PENDING,
                payment_method=payment_method,
                payment_status="pending",
                total_amount=total_amount,
                special_instructions=special_instructions,
                estimated_ready_time=now + timedelta(minutes=self.settings.estimated_ready_minutes),
                qr_code=generate_pickup_code(self.settings.pickup_code_prefix),
                created_at=now,
            )
            self.db.add(order)
            self.db.add_all([
                OrderItem(
                    order_id=order.id,
                    dish_id=line.dish_id,
                    quantity=line.quantity,
                    price=line.price,
                    customizations=line.customizations,
                )
                for line in lines
            ])
            await self.db.flush()

            for line in lines:
                await self.db.execute(
                    update(Dish)
                    .where(Dish.id == line.dish_id)
                    .values(order_count=Dish.order_count + 1)
                    .execution_options(synchronize_session=False)
                )

            if group_order_id is not None:
                await self.db.execute(
                    update(GroupOrder)
                    .where(GroupOrder.id == group_order_id)
                    .values(total_amount=GroupOrder.total_amount + total_amount)
                    .execution_options(synchronize_session=False)
                )

            active_count = await self._increment_active(outlet_id)
            await ChillPeriodThrottle(self.db, self.settings).evaluate_after_order(
                outlet_id,
                active_count,
                outlet.max_active_orders,
                now,
                current_ends_at=outlet.chill_period_ends_at if outlet.is_chill_period else None,
            )

            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            f"📦 Order {order.id} placed at outlet {outlet_id} by user {user_id} "
            f"(₹{total_amount}, active {active_count}/{outlet.max_active_orders})"
        )

        order_id = order.id
        await self._award_first_order_badge(user_id)

        # A failed badge award rolls the session back and expires `order`
        order = await self.get_order(order_id)
        await self._notify_new_order(order)
        return order

    async def _check_menu(self, outlet_id: str, lines: list[LineItem]) -> None:
        dish_ids = {line.dish_id for line in lines}
        result = await self.db.execute(select(Dish).where(Dish.id.in_(dish_ids)))
        dishes = {dish.id: dish for dish in result.scalars()}

        for line in lines:
            dish = dishes.get(line.dish_id)
            if dish is None or dish.outlet_id != outlet_id:
                raise ValidationError(f"Dish {line.dish_id} is not on this outlet's menu")
            if not dish.is_available:
                raise ValidationError(f"{dish.name} is currently unavailable")

    async def _check_group_order(self, group_order_id: str, outlet_id: str) -> None:
        group = await self.db.get(GroupOrder, group_order_id)
        if group is None:
            raise ValidationError(f"Unknown group order {group_order_id}")
        if group.outlet_id != outlet_id:
            raise ValidationError("Group order belongs to a different outlet")
        if group.status != GroupOrderStatus.OPEN:
            raise InvalidStateError("Group order is closed")

    # =========================================================================
    # ACTIVE ORDER COUNTER
    # =========================================================================

    async def _increment_active(self, outlet_id: str) -> int:
        await self.db.execute(
            update(Outlet)
            .where(Outlet.id == outlet_id)
            .values(active_orders_count=Outlet.active_orders_count + 1)
            .execution_options(synchronize_session=False)
        )
        return await self.db.scalar(
            select(Outlet.active_orders_count).where(Outlet.id == outlet_id)
        )

    async def _decrement_active(self, outlet_id: str) -> None:
        result = await self.db.execute(
            update(Outlet)
            .where(Outlet.id == outlet_id, Outlet.active_orders_count > 0)
            .values(active_orders_count=Outlet.active_orders_count - 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            logger.warning(f"Active order count for outlet {outlet_id} already at 0, not decremented")

    async def reconcile_active_counts(self) -> int:
        """
        Recompute every outlet's active count from its orders.

        Each outlet is counted and committed in its own transaction, so its
        row lock is held only while that outlet is checked. Returns the
        number of outlets whose stored count was wrong.
        """
        corrected = 0
        outlet_ids = (await self.db.execute(select(Outlet.id))).scalars().all()

        for outlet_id in outlet_ids:
            try:
                stored = await self.db.scalar(
                    select(Outlet.active_orders_count)
                    .where(Outlet.id == outlet_id)
                    .with_for_update()
                )
                actual = await self.db.scalar(
                    select(func.count(Order.id)).where(
                        Order.outlet_id == outlet_id,
                        Order.status.in_(ACTIVE_STATUSES),
                    )
                ) or 0

                if stored != actual:
                    logger.warning(
                        f"Outlet {outlet_id} active count drifted: stored={stored}, actual={actual}"
                    )
                    await self.db.execute(
                        update(Outlet)
                        .where(Outlet.id == outlet_id)
                        .values(active_orders_count=actual)
                        .execution_options(synchronize_session=False)
                    )
                    corrected += 1

                await self.db.commit()
            except Exception:
                await self.db.rollback()
                raise

        return corrected

    # =========================================================================
    # STATUS TRANSITIONS
    # =========================================================================

    async def update_status(
        self,
        order_id: str,
        new_status: Union[OrderStatus, str],
    ) -> Order:
        """
        Move an order to `new_status`.

        Raises InvalidTransitionError if the target is not reachable from
        the current status and ConflictError if another transition of the
        same order committed first.
        """
        try:
            target = OrderStatus(new_status)
        except ValueError as e:
            raise ValidationError(f"Unknown order status '{new_status}'") from e

        order = await self.get_order(order_id)
        current = order.status

        allowed = ORDER_TRANSITIONS[current]
        if target not in allowed:
            raise InvalidTransitionError(
                f"Invalid status transition from '{current.value}' to '{target.value}'",
                allowed=sorted(s.value for s in allowed),
            )

        now = utcnow()
        values: dict[str, Any] = {"status": target, "updated_at": now}
        if target.is_terminal:
            values["completed_at"] = now

        try:
            result = await self.db.execute(
                update(Order)
                .where(Order.id == order_id, Order.status == current)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise ConflictError(f"Order {order_id} was updated concurrently")

            if target.is_terminal:
                await self._decrement_active(order.outlet_id)

            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        await self.db.refresh(order)
        logger.info(f"Order {order_id}: {current.value} → {target.value}")

        await self._notify_status_update(order)
        return order

    # =========================================================================
    # READS
    # =========================================================================

    async def get_order(self, order_id: str) -> Order:
        order = (await self.db.execute(
            select(Order)
            .where(Order.id == order_id)
            .execution_options(populate_existing=True)
        )).scalar_one_or_none()
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")
        return order

    async def get_order_items(self, order_id: str) -> list[OrderItemView]:
        result = await self.db.execute(
            select(OrderItem, Dish.name)
            .join(Dish, Dish.id == OrderItem.dish_id)
            .where(OrderItem.order_id == order_id)
            .order_by(OrderItem.id)
        )
        return [
            OrderItemView(
                id=item.id,
                dish_id=item.dish_id,
                dish_name=dish_name,
                quantity=item.quantity,
                price=item.price,
                customizations=item.customizations,
            )
            for item, dish_name in result.all()
        ]

    async def list_user_orders(self, user_id: str) -> list[OrderSummary]:
        item_counts = (
            select(OrderItem.order_id, func.sum(OrderItem.quantity).label("item_count"))
            .group_by(OrderItem.order_id)
            .subquery()
        )
        result = await self.db.execute(
            select(Order, Outlet.name, item_counts.c.item_count)
            .join(Outlet, Outlet.id == Order.outlet_id)
            .outerjoin(item_counts, item_counts.c.order_id == Order.id)
            .where(Order.user_id == user_id)
            .order_by(Order.created_at.desc())
        )
        return [
            OrderSummary(order=order, outlet_name=outlet_name, item_count=item_count or 0)
            for order, outlet_name, item_count in result.all()
        ]

    async def list_outlet_orders(
        self,
        outlet_id: str,
        status: Optional[OrderStatus] = None,
    ) -> list[Order]:
        stmt = (
            select(Order)
            .where(Order.outlet_id == outlet_id)
            .order_by(Order.created_at.desc())
        )
        if status is not None:
            stmt = stmt.where(Order.status == status)
        result = await self.db.execute(stmt)
        return list(result.scalars())

    # =========================================================================
    # SIDE EFFECTS
    # =========================================================================

    async def _award_first_order_badge(self, user_id: str) -> None:
        """Give the first-order badge; the order is already committed."""
        try:
            order_count = await self.db.scalar(
                select(func.count(Order.id)).where(Order.user_id == user_id)
            )
            if order_count == 1:
                await GamificationService(self.db, self.settings).award_badge_by_name(
                    user_id, self.settings.first_order_badge_name
                )
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"First-order badge for user {user_id} failed: {e}")

    async def _notify_new_order(self, order: Order) -> None:
        try:
            payload = order_payload(order, await self.get_order_items(order.id))
            result = await self.notifier.notify_new_order(order.outlet_id, payload)
            if not result.success:
                logger.warning(f"New order push for {order.id} failed: {result.error_message}")
        except Exception as e:
            logger.error(f"New order push for {order.id} raised: {e}")

    async def _notify_status_update(self, order: Order) -> None:
        try:
            result = await self.notifier.notify_order_status_update(
                order.user_id, order.id, order.status.value
            )
            if not result.success:
                logger.warning(f"Status push for {order.id} failed: {result.error_message}")
        except Exception as e:
            logger.error(f"Status push for {order.id} raised: {e}")


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def order_payload(order: Order, items: list[OrderItemView]) -> dict[str, Any]:
    """JSON-ready order snapshot for realtime pushes."""
    return {
        "id": order.id,
        "user_id": order.user_id,
        "outlet_id": order.outlet_id,
        "status": order.status.value,
        "payment_method": order.payment_method.value,
        "total_amount": order.total_amount,
        "special_instructions": order.special_instructions,
        "qr_code": order.qr_code,
        "estimated_ready_time": _isoformat(order.estimated_ready_time),
        "created_at": _isoformat(order.created_at),
        "items": [
            {
                "dish_id": item.dish_id,
                "dish_name": item.dish_name,
                "quantity": item.quantity,
                "price": item.price,
                "customizations": item.customizations,
            }
            for item in items
        ],
    }
