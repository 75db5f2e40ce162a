"""Order creation, the status workflow and the active order counter."""

import itertools
from datetime import timedelta

import pytest
from sqlalchemy import select, update
from sqlalchemy.exc import OperationalError

from campus_eats.core.clock import as_utc
from campus_eats.core.exceptions import (
    ConflictError,
    InvalidStateError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from campus_eats.models import (
    ORDER_TRANSITIONS,
    Dish,
    GroupOrder,
    Order,
    OrderItem,
    OrderStatus,
    Outlet,
    UserBadge,
)
from campus_eats.services.gamification import GamificationService
from campus_eats.services.group_orders import GroupOrderService
from campus_eats.services.notifications import MockRealtimeNotifier
from campus_eats.services.notifications.base import NotificationResult
from campus_eats.services.orders import OrderLifecycleManager

from conftest import advance, basket, place_order

PATH_TO = {
    OrderStatus.PENDING: [],
    OrderStatus.CONFIRMED: ["confirmed"],
    OrderStatus.PREPARING: ["confirmed", "preparing"],
    OrderStatus.READY: ["confirmed", "preparing", "ready"],
    OrderStatus.COMPLETED: ["confirmed", "preparing", "ready", "completed"],
    OrderStatus.CANCELLED: ["cancelled"],
}


async def active_count(db, outlet_id: str) -> int:
    return await db.scalar(select(Outlet.active_orders_count).where(Outlet.id == outlet_id))


async def non_terminal_orders(db, outlet_id: str) -> int:
    rows = await db.scalars(select(Order.status).where(Order.outlet_id == outlet_id))
    return sum(1 for status in rows if not status.is_terminal)


# =============================================================================
# CREATE
# =============================================================================

async def test_create_order_starts_pending_with_pickup_code(db, manager, campus, settings):
    order = await place_order(manager, campus, special_instructions="Less spicy")

    assert order.status == OrderStatus.PENDING
    assert order.qr_code.startswith(settings.pickup_code_prefix)
    assert order.special_instructions == "Less spicy"
    assert order.payment_status == "pending"
    eta = as_utc(order.estimated_ready_time) - as_utc(order.created_at)
    assert eta == timedelta(minutes=settings.estimated_ready_minutes)

    items = await manager.get_order_items(order.id)
    assert [(i.dish_name, i.quantity, i.price) for i in items] == [("Masala Dosa", 1, 60)]
    assert await active_count(db, campus.outlet_id) == 1


async def test_create_order_counts_each_line_item_once(db, manager, campus):
    items = [
        {"dish_id": "dish-dosa", "quantity": 3, "price": 60},
        {"dish_id": "dish-chai", "quantity": 2, "price": 15},
    ]
    await place_order(manager, campus, items=items, total_amount=210)

    counts = dict((await db.execute(select(Dish.id, Dish.order_count))).all())
    assert counts["dish-dosa"] == 1
    assert counts["dish-chai"] == 1


@pytest.mark.parametrize(
    "overrides",
    [
        {"items": []},
        {"items": [{"dish_id": "dish-dosa", "quantity": 0, "price": 60}]},
        {"items": [{"dish_id": "dish-dosa", "quantity": 1, "price": -1}]},
        {"total_amount": -5},
        {"outlet_id": "no-such-outlet"},
        {"items": [{"dish_id": "dish-elsewhere", "quantity": 1, "price": 70}]},
        {"items": [{"dish_id": "dish-off", "quantity": 1, "price": 120}]},
        {"payment_method": "card"},
    ],
    ids=[
        "empty", "zero-quantity", "negative-price", "negative-total",
        "unknown-outlet", "foreign-dish", "unavailable-dish", "unknown-payment",
    ],
)
async def test_create_order_rejects_invalid_input(db, manager, campus, overrides):
    with pytest.raises(ValidationError):
        await place_order(manager, campus, **overrides)

    assert await db.scalar(select(Order.id)) is None
    assert await db.scalar(select(OrderItem.id)) is None
    assert await active_count(db, campus.outlet_id) == 0


async def test_new_order_is_pushed_to_outlet(manager, campus, notifier):
    order = await place_order(manager, campus)

    assert notifier.events[0]["type"] == "new_order"
    assert notifier.events[0]["outlet_id"] == campus.outlet_id
    assert notifier.events[0]["order"]["id"] == order.id
    assert notifier.events[0]["order"]["items"][0]["dish_name"] == "Masala Dosa"


class ExplodingNotifier(MockRealtimeNotifier):
    async def notify_new_order(self, outlet_id, order):
        raise ConnectionError("socket gone")

    async def notify_order_status_update(self, user_id, order_id, status):
        return NotificationResult(success=False, error_message="nobody listening", provider="mock")


async def test_notifier_failure_does_not_fail_the_order(db, campus, settings):
    manager = OrderLifecycleManager(db, ExplodingNotifier(), settings)

    order = await place_order(manager, campus)
    confirmed = await manager.update_status(order.id, "confirmed")

    assert confirmed.status == OrderStatus.CONFIRMED
    assert await active_count(db, campus.outlet_id) == 1


async def test_first_order_awards_badge_once(db, manager, campus):
    await place_order(manager, campus)
    await place_order(manager, campus)

    badges = (await db.scalars(select(UserBadge).where(UserBadge.user_id == campus.student_id))).all()
    assert [b.badge_id for b in badges] == [campus.badge_id]


async def test_badge_failure_does_not_fail_the_order(db, manager, campus, notifier, monkeypatch):
    async def broken_award(self, user_id, name):
        raise OperationalError("INSERT INTO user_badges", {}, Exception("database is locked"))

    monkeypatch.setattr(GamificationService, "award_badge_by_name", broken_award)

    order = await place_order(manager, campus)

    assert order.status == OrderStatus.PENDING
    assert order.qr_code.startswith("ORDER-")
    assert notifier.events[-1]["type"] == "new_order"
    assert notifier.events[-1]["order"]["id"] == order.id
    assert await active_count(db, campus.outlet_id) == 1
    assert (await db.scalars(select(UserBadge))).all() == []


# =============================================================================
# STATUS WORKFLOW
# =============================================================================

@pytest.mark.parametrize(
    "current,target",
    list(itertools.product(OrderStatus, OrderStatus)),
    ids=lambda s: s.value,
)
async def test_transition_table_is_enforced(db, manager, campus, current, target):
    order = await place_order(manager, campus)
    await advance(manager, order.id, *PATH_TO[current])

    if target in ORDER_TRANSITIONS[current]:
        updated = await manager.update_status(order.id, target)
        assert updated.status == target
    else:
        with pytest.raises(InvalidTransitionError):
            await manager.update_status(order.id, target)
        assert (await manager.get_order(order.id)).status == current


async def test_terminal_states_have_no_exits():
    assert ORDER_TRANSITIONS[OrderStatus.COMPLETED] == frozenset()
    assert ORDER_TRANSITIONS[OrderStatus.CANCELLED] == frozenset()
    assert OrderStatus.COMPLETED.is_terminal and OrderStatus.CANCELLED.is_terminal


async def test_unknown_status_and_order(manager, campus):
    order = await place_order(manager, campus)

    with pytest.raises(ValidationError):
        await manager.update_status(order.id, "delivered")
    with pytest.raises(NotFoundError):
        await manager.update_status("missing", "confirmed")


async def test_status_changes_are_pushed_to_student(manager, campus, notifier):
    order = await place_order(manager, campus)
    await advance(manager, order.id, "confirmed", "preparing")

    pushes = [e for e in notifier.events if e["type"] == "order_status_update"]
    assert [(e["user_id"], e["status"]) for e in pushes] == [
        (campus.student_id, "confirmed"),
        (campus.student_id, "preparing"),
    ]


async def test_terminal_transition_stamps_completion(manager, campus):
    order = await place_order(manager, campus)
    assert order.completed_at is None

    cancelled = await manager.update_status(order.id, "cancelled")

    assert cancelled.completed_at is not None


async def test_lost_race_raises_conflict(db, manager, campus, monkeypatch):
    order = await place_order(manager, campus)
    order_id = order.id
    stale = await manager.get_order(order_id)

    # Another request confirms the order behind this manager's back
    await db.execute(
        update(Order)
        .where(Order.id == order_id)
        .values(status=OrderStatus.CONFIRMED)
        .execution_options(synchronize_session=False)
    )
    await db.commit()

    async def stale_get_order(order_id):
        return stale

    monkeypatch.setattr(manager, "get_order", stale_get_order)

    with pytest.raises(ConflictError):
        await manager.update_status(order_id, "cancelled")

    status = await db.scalar(select(Order.status).where(Order.id == order_id))
    assert status == OrderStatus.CONFIRMED
    assert await active_count(db, campus.outlet_id) == 1


# =============================================================================
# ACTIVE ORDER COUNTER
# =============================================================================

async def test_counter_matches_non_terminal_orders(db, manager, campus):
    orders = [await place_order(manager, campus) for _ in range(6)]

    await advance(manager, orders[0].id, "cancelled")
    await advance(manager, orders[1].id, "confirmed", "cancelled")
    await advance(manager, orders[2].id, "confirmed", "preparing", "ready", "completed")
    await advance(manager, orders[3].id, "confirmed", "preparing")
    await advance(manager, orders[4].id, "confirmed")

    assert await active_count(db, campus.outlet_id) == 3
    assert await active_count(db, campus.outlet_id) == await non_terminal_orders(db, campus.outlet_id)


async def test_counter_never_goes_negative(db, manager, campus):
    order = await place_order(manager, campus)
    await db.execute(
        update(Outlet).where(Outlet.id == campus.outlet_id).values(active_orders_count=0)
    )
    await db.commit()

    await manager.update_status(order.id, "cancelled")

    assert await active_count(db, campus.outlet_id) == 0


async def test_reconcile_repairs_drift(db, manager, campus):
    await place_order(manager, campus)
    await place_order(manager, campus)
    await db.execute(
        update(Outlet).where(Outlet.id == campus.outlet_id).values(active_orders_count=7)
    )
    await db.commit()

    corrected = await manager.reconcile_active_counts()

    assert corrected == 1
    assert await active_count(db, campus.outlet_id) == 2
    assert await manager.reconcile_active_counts() == 0


async def test_reconcile_commits_each_outlet_on_its_own(db, manager, campus, monkeypatch):
    await db.execute(update(Outlet).values(active_orders_count=3))
    await db.commit()

    commits = []
    real_commit = db.commit

    async def counting_commit():
        commits.append(1)
        await real_commit()

    monkeypatch.setattr(db, "commit", counting_commit)

    assert await manager.reconcile_active_counts() == 2
    assert len(commits) == 2
    assert await active_count(db, campus.outlet_id) == 0
    assert await active_count(db, campus.other_outlet_id) == 0


# =============================================================================
# READS
# =============================================================================

async def test_order_history_lists_newest_first(manager, campus):
    first = await place_order(manager, campus)
    second = await place_order(manager, campus, items=basket(campus, quantity=3), total_amount=180)

    history = await manager.list_user_orders(campus.student_id)

    assert [s.order.id for s in history] == [second.id, first.id]
    assert history[0].outlet_name == "Central Canteen"
    assert history[0].item_count == 3


async def test_outlet_queue_filters_by_status(manager, campus):
    first = await place_order(manager, campus)
    await place_order(manager, campus)
    await manager.update_status(first.id, "confirmed")

    confirmed = await manager.list_outlet_orders(campus.outlet_id, OrderStatus.CONFIRMED)

    assert [o.id for o in confirmed] == [first.id]
    assert len(await manager.list_outlet_orders(campus.outlet_id)) == 2


# =============================================================================
# GROUP ORDERS
# =============================================================================

async def test_group_order_accumulates_member_totals(db, manager, campus, settings):
    groups = GroupOrderService(db, settings)
    group = await groups.create(campus.student_id, campus.outlet_id, "CS Class Lunch")
    assert group.share_link.startswith(settings.group_share_prefix)

    await place_order(manager, campus, group_order_id=group.id, total_amount=60)
    await place_order(manager, campus, user_id=campus.other_student_id, group_order_id=group.id, total_amount=75)

    total = await db.scalar(select(GroupOrder.total_amount).where(GroupOrder.id == group.id))
    assert total == 135
    assert len(await groups.list_orders(group.id)) == 2


async def test_closed_or_foreign_group_rejects_orders(db, manager, campus, settings):
    groups = GroupOrderService(db, settings)
    other_id = (await groups.create(campus.student_id, campus.other_outlet_id, "Juice Run")).id
    group_id = (await groups.create(campus.student_id, campus.outlet_id, "Lunch")).id

    with pytest.raises(ValidationError):
        await place_order(manager, campus, group_order_id=other_id)

    await groups.close(group_id, campus.student_id)
    with pytest.raises(InvalidStateError):
        await place_order(manager, campus, group_order_id=group_id)

    assert await active_count(db, campus.outlet_id) == 0
