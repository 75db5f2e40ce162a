"""Shared fixtures: in-memory database, seeded campus, API client."""

import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["ENV_MODE"] = "development"
os.environ["DEBUG"] = "false"

from dataclasses import dataclass, field

import httpx
import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from campus_eats.core.config import get_settings
from campus_eats.database import Base, build_session_maker, get_db
from campus_eats.dependencies import get_realtime_notifier
from campus_eats.main import app
from campus_eats.models import (
    Badge,
    Challenge,
    ChallengeType,
    Dish,
    Outlet,
    Reward,
    RewardType,
    University,
    User,
    UserRole,
)
from campus_eats.services.notifications import MockRealtimeNotifier
from campus_eats.services.orders import OrderLifecycleManager


@dataclass
class Campus:
    """Ids of the seeded rows."""
    university_id: str = "uni-1"
    admin_id: str = "admin-1"
    owner_id: str = "owner-1"
    other_owner_id: str = "owner-2"
    student_id: str = "student-1"
    other_student_id: str = "student-2"
    outlet_id: str = "outlet-1"
    other_outlet_id: str = "outlet-2"
    dish_ids: list[str] = field(default_factory=lambda: ["dish-dosa", "dish-chai"])
    unavailable_dish_id: str = "dish-off"
    foreign_dish_id: str = "dish-elsewhere"
    badge_id: str = "badge-first"


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return build_session_maker(engine)


@pytest.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
async def campus(session_maker) -> Campus:
    ids = Campus()
    async with session_maker() as session:
        session.add(University(id=ids.university_id, name="Test University", location="Delhi", code="TU"))
        await session.flush()
        session.add_all([
            User(id=ids.admin_id, email="admin@test.com", role=UserRole.APP_ADMIN),
            User(id=ids.owner_id, email="owner1@test.com", role=UserRole.OUTLET_OWNER, university_id=ids.university_id),
            User(id=ids.other_owner_id, email="owner2@test.com", role=UserRole.OUTLET_OWNER, university_id=ids.university_id),
            User(id=ids.student_id, email="s1@test.com", first_name="Asha", role=UserRole.STUDENT,
                 university_id=ids.university_id, tokens=0),
            User(id=ids.other_student_id, email="s2@test.com", first_name="Vikram", role=UserRole.STUDENT,
                 university_id=ids.university_id, tokens=0),
        ])
        await session.flush()
        session.add_all([
            Outlet(id=ids.outlet_id, owner_id=ids.owner_id, university_id=ids.university_id,
                   name="Central Canteen", max_active_orders=10),
            Outlet(id=ids.other_outlet_id, owner_id=ids.other_owner_id, university_id=ids.university_id,
                   name="Juice Corner", max_active_orders=10),
        ])
        await session.flush()
        session.add_all([
            Dish(id="dish-dosa", outlet_id=ids.outlet_id, name="Masala Dosa", price=60, category="main"),
            Dish(id="dish-chai", outlet_id=ids.outlet_id, name="Masala Chai", price=15, category="beverage"),
            Dish(id=ids.unavailable_dish_id, outlet_id=ids.outlet_id, name="Thali", price=120,
                 category="main", is_available=False),
            Dish(id=ids.foreign_dish_id, outlet_id=ids.other_outlet_id, name="Mango Shake", price=70,
                 category="beverage"),
            Badge(id=ids.badge_id, name="First Bite", description="First order", icon="🍽️",
                  requirement="Place 1 order"),
            Challenge(title="Lunch Rush", description="Complete 2 orders", type=ChallengeType.DAILY,
                      requirement=2, reward_tokens=10),
        ])
        await session.commit()
    return ids


@pytest.fixture
async def rewards(session_maker) -> list[Reward]:
    catalog = [
        Reward(id="reward-a", type=RewardType.DISCOUNT, title="10% off", value=10, probability=50, position=0),
        Reward(id="reward-b", type=RewardType.FREE_ITEM, title="Free chai", value=15, probability=30, position=1),
        Reward(id="reward-c", type=RewardType.NO_WIN, title="Try again", probability=20, position=2),
    ]
    async with session_maker() as session:
        session.add_all(catalog)
        await session.commit()
    return catalog


@pytest.fixture
def notifier() -> MockRealtimeNotifier:
    return MockRealtimeNotifier()


@pytest.fixture
def manager(db, notifier, settings) -> OrderLifecycleManager:
    return OrderLifecycleManager(db, notifier, settings)


@pytest.fixture
async def client(session_maker, notifier):
    async def override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_realtime_notifier] = lambda: notifier

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


def basket(campus: Campus, quantity: int = 1) -> list[dict]:
    return [{"dish_id": campus.dish_ids[0], "quantity": quantity, "price": 60}]


async def place_order(manager: OrderLifecycleManager, campus: Campus, user_id: str = None, **kwargs):
    return await manager.create_order(
        user_id=user_id or campus.student_id,
        outlet_id=kwargs.pop("outlet_id", campus.outlet_id),
        items=kwargs.pop("items", basket(campus)),
        total_amount=kwargs.pop("total_amount", 60),
        **kwargs,
    )


async def advance(manager: OrderLifecycleManager, order_id: str, *statuses: str):
    order = None
    for status in statuses:
        order = await manager.update_status(order_id, status)
    return order
