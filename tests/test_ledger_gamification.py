"""Token ledger, ratings, leaderboard, badges, challenges and dish rankings."""

from datetime import timedelta

import pytest
from sqlalchemy import select, update

from campus_eats.core.clock import utcnow
from campus_eats.core.exceptions import (
    ConflictError,
    ForbiddenError,
    InsufficientTokensError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from campus_eats.models import Outlet, Rating, User, UserBadge
from campus_eats.services.catalog import CatalogService
from campus_eats.services.gamification import GamificationService
from campus_eats.services.ledger import TokenLedger

from conftest import advance, place_order


async def completed_order(manager, campus, user_id=None):
    order = await place_order(manager, campus, user_id=user_id)
    return await advance(manager, order.id, "confirmed", "preparing", "ready", "completed")


async def set_tokens(db, user_id: str, tokens: int) -> None:
    await db.execute(update(User).where(User.id == user_id).values(tokens=tokens))
    await db.commit()


# =============================================================================
# LEDGER
# =============================================================================

async def test_credit_and_debit(db, campus):
    ledger = TokenLedger(db)

    assert await ledger.credit(campus.student_id, 30) == 30
    assert await ledger.debit(campus.student_id, 12) == 18
    await db.commit()

    assert await ledger.balance(campus.student_id) == 18


async def test_debit_never_overdraws(db, campus):
    await set_tokens(db, campus.student_id, 10)
    ledger = TokenLedger(db)

    with pytest.raises(InsufficientTokensError) as excinfo:
        await ledger.debit(campus.student_id, 11)

    assert excinfo.value.context == {"required": 11, "balance": 10}
    assert await ledger.balance(campus.student_id) == 10


@pytest.mark.parametrize("amount", [0, -5])
async def test_amounts_must_be_positive(db, campus, amount):
    ledger = TokenLedger(db)

    with pytest.raises(ValidationError):
        await ledger.credit(campus.student_id, amount)
    with pytest.raises(ValidationError):
        await ledger.debit(campus.student_id, amount)


async def test_unknown_user_has_no_balance(db):
    ledger = TokenLedger(db)

    with pytest.raises(NotFoundError):
        await ledger.balance("ghost")
    with pytest.raises(NotFoundError):
        await ledger.credit("ghost", 5)
    with pytest.raises(NotFoundError):
        await ledger.debit("ghost", 5)


# =============================================================================
# RATINGS
# =============================================================================

async def test_rating_credits_tokens_and_updates_outlet(db, manager, campus, settings):
    first = await completed_order(manager, campus)
    second = await completed_order(manager, campus, user_id=campus.other_student_id)
    ledger = TokenLedger(db)

    rating = await ledger.submit_rating(campus.student_id, first.id, 5, review="Crispy", dish_id="dish-dosa")
    await ledger.submit_rating(campus.other_student_id, second.id, 4)

    assert rating.tokens_earned == settings.rating_tokens
    assert await ledger.balance(campus.student_id) == settings.rating_tokens
    assert await ledger.balance(campus.other_student_id) == settings.rating_tokens

    outlet = (await db.execute(
        select(Outlet).where(Outlet.id == campus.outlet_id).execution_options(populate_existing=True)
    )).scalar_one()
    assert outlet.rating == 4.5
    assert outlet.total_ratings == 2


async def test_order_can_be_rated_once(db, manager, campus, settings):
    order = await completed_order(manager, campus)
    ledger = TokenLedger(db)
    await ledger.submit_rating(campus.student_id, order.id, 5)

    with pytest.raises(ConflictError):
        await ledger.submit_rating(campus.student_id, order.id, 3)

    assert await ledger.balance(campus.student_id) == settings.rating_tokens
    ratings = (await db.scalars(select(Rating).where(Rating.order_id == order.id))).all()
    assert len(ratings) == 1


async def test_rating_requires_completed_order(db, manager, campus):
    order = await place_order(manager, campus)
    await advance(manager, order.id, "confirmed", "preparing", "ready")

    with pytest.raises(InvalidStateError, match="completed"):
        await TokenLedger(db).submit_rating(campus.student_id, order.id, 4)


async def test_rating_validation(db, manager, campus):
    order = await completed_order(manager, campus)
    ledger = TokenLedger(db)

    with pytest.raises(ValidationError):
        await ledger.submit_rating(campus.student_id, order.id, 0)
    with pytest.raises(ValidationError):
        await ledger.submit_rating(campus.student_id, order.id, 6)
    with pytest.raises(ForbiddenError):
        await ledger.submit_rating(campus.other_student_id, order.id, 4)
    with pytest.raises(NotFoundError):
        await ledger.submit_rating(campus.student_id, "missing", 4)
    with pytest.raises(ValidationError):
        await ledger.submit_rating(campus.student_id, order.id, 4, dish_id=campus.foreign_dish_id)

    assert await ledger.balance(campus.student_id) == 0


# =============================================================================
# LEADERBOARD
# =============================================================================

async def test_leaderboard_ranks_by_tokens(db, manager, campus):
    await set_tokens(db, campus.student_id, 30)
    await set_tokens(db, campus.other_student_id, 50)
    await place_order(manager, campus)

    board = await GamificationService(db).leaderboard(limit=2)

    assert [(e.rank, e.user_id, e.tokens) for e in board] == [
        (1, campus.other_student_id, 50),
        (2, campus.student_id, 30),
    ]
    assert board[1].order_count == 1
    assert board[1].first_name == "Asha"


async def test_leaderboard_breaks_ties_by_signup_then_id(db, campus):
    earlier = utcnow() - timedelta(days=2)
    await db.execute(update(User).values(tokens=10, created_at=utcnow() - timedelta(days=1)))
    await db.execute(update(User).where(User.id == campus.other_student_id).values(created_at=earlier))
    await db.commit()

    board = await GamificationService(db).leaderboard()

    ids = [e.user_id for e in board]
    assert ids[0] == campus.other_student_id
    assert ids[1:] == sorted(ids[1:])


async def test_leaderboard_filters_by_university(db, campus):
    gamification = GamificationService(db)

    everyone = await gamification.leaderboard()
    campus_only = await gamification.leaderboard(university_id=campus.university_id)

    assert len(everyone) == 5
    assert campus.admin_id not in {e.user_id for e in campus_only}
    assert len(campus_only) == 4


async def test_leaderboard_limit_must_be_positive(db, campus):
    with pytest.raises(ValidationError):
        await GamificationService(db).leaderboard(limit=0)


# =============================================================================
# BADGES AND CHALLENGES
# =============================================================================

async def test_badge_is_awarded_once(db, campus):
    gamification = GamificationService(db)

    assert await gamification.award_badge(campus.student_id, campus.badge_id) is True
    assert await gamification.award_badge(campus.student_id, campus.badge_id) is False

    earned = await gamification.list_user_badges(campus.student_id)
    assert [badge.name for _, badge in earned] == ["First Bite"]

    with pytest.raises(NotFoundError):
        await gamification.award_badge(campus.student_id, "no-such-badge")


async def test_badge_lost_to_a_concurrent_award_returns_false(db, session_maker, campus, monkeypatch):
    real_scalar = db.scalar

    async def award_lands_in_between(statement, *args, **kwargs):
        monkeypatch.setattr(db, "scalar", real_scalar)
        async with session_maker() as other:
            other.add(UserBadge(user_id=campus.student_id, badge_id=campus.badge_id))
            await other.commit()
        return None

    monkeypatch.setattr(db, "scalar", award_lands_in_between)

    assert await GamificationService(db).award_badge(campus.student_id, campus.badge_id) is False

    rows = (await db.scalars(select(UserBadge).where(UserBadge.user_id == campus.student_id))).all()
    assert len(rows) == 1


async def test_award_by_unknown_name_is_skipped(db, campus):
    assert await GamificationService(db).award_badge_by_name(campus.student_id, "Night Owl") is False


async def test_challenge_progress_counts_completed_orders(db, manager, campus):
    gamification = GamificationService(db)
    await completed_order(manager, campus)
    await place_order(manager, campus)

    progress = await gamification.challenge_progress(campus.student_id)
    assert [(p.title, p.progress, p.requirement, p.completed) for p in progress] == [
        ("Lunch Rush", 1, 2, False),
    ]

    await completed_order(manager, campus)
    await completed_order(manager, campus)

    progress = await gamification.challenge_progress(campus.student_id)
    assert (progress[0].progress, progress[0].completed) == (2, True)


# =============================================================================
# DISH RANKINGS
# =============================================================================

async def test_trending_ranks_available_dishes_by_order_count(db, manager, campus):
    await place_order(manager, campus)
    await place_order(manager, campus)
    await place_order(manager, campus, items=[{"dish_id": "dish-chai", "quantity": 4, "price": 15}], total_amount=60)

    trending = await CatalogService(db).trending(limit=2)

    assert [(d.id, d.order_count) for d in trending] == [("dish-dosa", 2), ("dish-chai", 1)]
    everything = await CatalogService(db).trending()
    assert campus.unavailable_dish_id not in {d.id for d in everything}


async def test_comfort_food_sums_quantities_per_user(db, manager, campus):
    await place_order(manager, campus, items=[{"dish_id": "dish-dosa", "quantity": 1, "price": 60}])
    await place_order(manager, campus, items=[{"dish_id": "dish-chai", "quantity": 2, "price": 15}], total_amount=30)
    await place_order(manager, campus, items=[{"dish_id": "dish-chai", "quantity": 1, "price": 15}], total_amount=15)
    await place_order(manager, campus, user_id=campus.other_student_id)

    favourites = await CatalogService(db).comfort_food(campus.student_id)

    assert [(f.dish.id, f.outlet_name, f.times_ordered) for f in favourites] == [
        ("dish-chai", "Central Canteen", 3),
        ("dish-dosa", "Central Canteen", 1),
    ]
    assert await CatalogService(db).comfort_food("nobody") == []


async def test_outlet_reads(db, campus):
    catalog = CatalogService(db)

    outlets = await catalog.list_outlets(campus.university_id)
    assert [o.name for o in outlets] == ["Central Canteen", "Juice Corner"]

    menu = await catalog.list_dishes(campus.outlet_id, available_only=True)
    assert {d.id for d in menu} == {"dish-dosa", "dish-chai"}

    with pytest.raises(NotFoundError):
        await catalog.get_outlet("missing")
