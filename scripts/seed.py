"""
Database Seed Script

Creates a demo campus: one university, an admin, an outlet owner with one
outlet and menu, a handful of students, the reward-wheel catalog, badges
and challenges. Safe to run twice; an existing seed is left untouched.

Run from project root: python scripts/seed.py

Version: 1.0.0
"""

import asyncio
import sys

from sqlalchemy import select

from campus_eats.core.config import get_settings, setup_logging
from campus_eats.database import async_session_maker, engine, init_db
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

# Windows event loop fix
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

settings = get_settings()
logger = setup_logging()

UNIVERSITY_ID = "uni-demo"
ADMIN_ID = "app-admin"
OWNER_ID = "owner-demo"
OUTLET_ID = "outlet-demo"
STUDENT_IDS = [f"student-{n:02d}" for n in range(1, 11)]

MENU = [
    # name, category, price, calories, protein, carbs, sugar
    ("Masala Dosa", "main", 60, 350, 8, 52, 4),
    ("Paneer Butter Masala", "main", 140, 480, 18, 20, 9),
    ("Veg Biryani", "main", 120, 520, 12, 78, 5),
    ("Samosa", "side", 20, 260, 4, 30, 2),
    ("Cold Coffee", "beverage", 50, 180, 6, 24, 20),
    ("Masala Chai", "beverage", 15, 90, 3, 12, 10),
    ("Gulab Jamun", "dessert", 30, 300, 4, 44, 36),
]

REWARDS = [
    # type, title, value, weight
    (RewardType.NO_WIN, "Better luck next time", None, 40),
    (RewardType.DISCOUNT, "10% off your next order", 10, 30),
    (RewardType.FREE_ITEM, "Free Masala Chai", 15, 20),
    (RewardType.OFFER, "Free dessert with any main", 30, 10),
]

BADGES = [
    (settings.first_order_badge_name, "Placed your first order", "🍽️", "Place 1 order"),
    ("Regular", "A familiar face at the counter", "⭐", "Complete 10 orders"),
    ("Critic", "Your opinion matters", "📝", "Rate 5 orders"),
]

CHALLENGES = [
    ("Lunch Rush", "Complete 2 orders today", ChallengeType.DAILY, 2, 10),
    ("Campus Explorer", "Complete 5 orders this week", ChallengeType.WEEKLY, 5, 30),
]


async def seed() -> bool:
    """Insert the demo data. Returns False if it was already there."""
    await init_db()

    async with async_session_maker() as db:
        existing = await db.scalar(select(University.id).where(University.id == UNIVERSITY_ID))
        if existing:
            logger.info("Seed data already present, nothing to do")
            return False

        db.add(University(id=UNIVERSITY_ID, name="Demo Institute of Technology", location="New Delhi", code="DIT"))
        await db.flush()

        db.add_all([
            User(id=ADMIN_ID, email="admin@test.com", first_name="App", last_name="Admin", role=UserRole.APP_ADMIN),
            User(
                id=OWNER_ID,
                email="owner@test.com",
                first_name="Ravi",
                last_name="Kumar",
                role=UserRole.OUTLET_OWNER,
                university_id=UNIVERSITY_ID,
            ),
        ])
        db.add_all([
            User(
                id=student_id,
                email=f"{student_id}@test.com",
                first_name="Student",
                last_name=student_id.split("-")[1],
                role=UserRole.STUDENT,
                university_id=UNIVERSITY_ID,
                tokens=50,
            )
            for student_id in STUDENT_IDS
        ])
        await db.flush()

        db.add(Outlet(
            id=OUTLET_ID,
            owner_id=OWNER_ID,
            university_id=UNIVERSITY_ID,
            name="Central Canteen",
            description="South and North Indian staples",
            average_price=80,
            max_active_orders=settings.default_max_active_orders,
        ))
        await db.flush()

        db.add_all([
            Dish(
                outlet_id=OUTLET_ID,
                name=name,
                category=category,
                price=price,
                calories=calories,
                protein=protein,
                carbs=carbs,
                sugar=sugar,
            )
            for name, category, price, calories, protein, carbs, sugar in MENU
        ])
        db.add_all([
            Reward(type=reward_type, title=title, value=value, probability=weight, position=position)
            for position, (reward_type, title, value, weight) in enumerate(REWARDS)
        ])
        db.add_all([
            Badge(name=name, description=description, icon=icon, requirement=requirement)
            for name, description, icon, requirement in BADGES
        ])
        db.add_all([
            Challenge(title=title, description=description, type=kind, requirement=requirement, reward_tokens=tokens)
            for title, description, kind, requirement, tokens in CHALLENGES
        ])

        await db.commit()

    logger.info("=" * 60)
    logger.info("🌱 Seed complete")
    logger.info(f"   Outlet:   {OUTLET_ID} (owner {OWNER_ID})")
    logger.info(f"   Students: {STUDENT_IDS[0]} .. {STUDENT_IDS[-1]}")
    logger.info(f"   Admin:    {ADMIN_ID}")
    logger.info("=" * 60)
    return True


async def main() -> None:
    try:
        await seed()
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
