"""
Token Ledger

Owns every change to a user's token balance. Balances are only ever
modified with SQL arithmetic evaluated by the database (`tokens = tokens + n`,
`tokens = tokens - n WHERE tokens >= n`), so concurrent requests cannot lose
an update or overdraw an account.

`credit` and `debit` run inside the caller's transaction; `submit_rating`
owns its own.
"""

import logging
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from campus_eats.core.config import Settings, get_settings
from campus_eats.core.exceptions import (
    ConflictError,
    ForbiddenError,
    InsufficientTokensError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from campus_eats.models import Dish, Order, OrderStatus, Outlet, Rating, User

logger = logging.getLogger(__name__)


class TokenLedger:
    """Credits and debits user token balances."""

    def __init__(self, db: AsyncSession, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or get_settings()

    async def balance(self, user_id: str) -> int:
        tokens = await self.db.scalar(select(User.tokens).where(User.id == user_id))
        if tokens is None:
            raise NotFoundError(f"User {user_id} not found")
        return tokens

    async def credit(self, user_id: str, amount: int) -> int:
        """Add tokens and return the new balance."""
        if amount <= 0:
            raise ValidationError("Credit amount must be positive")

        result = await self.db.execute(
            update(User)
            .where(User.id == user_id)
            .values(tokens=User.tokens + amount)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise NotFoundError(f"User {user_id} not found")

        logger.info(f"Credited {amount} tokens to user {user_id}")
        return await self.balance(user_id)

    async def debit(self, user_id: str, amount: int) -> int:
        """
        Remove tokens if the balance covers them and return the new balance.

        The balance check and the subtraction are one conditional UPDATE.
        """
        if amount <= 0:
            raise ValidationError("Debit amount must be positive")

        result = await self.db.execute(
            update(User)
            .where(User.id == user_id, User.tokens >= amount)
            .values(tokens=User.tokens - amount)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            # Distinguish a missing user from a short balance
            balance = await self.balance(user_id)
            raise InsufficientTokensError(required=amount, balance=balance)

        logger.info(f"Debited {amount} tokens from user {user_id}")
        return await self.balance(user_id)

    # =========================================================================
    # RATINGS
    # =========================================================================

    async def submit_rating(
        self,
        user_id: str,
        order_id: str,
        rating: int,
        review: Optional[str] = None,
        dish_id: Optional[str] = None,
    ) -> Rating:
        """
        Rate a completed order and credit the rating reward.

        Each order can be rated once; the unique constraint on
        `ratings.order_id` settles concurrent submissions.
        """
        if not 1 <= rating <= 5:
            raise ValidationError("Rating must be between 1 and 5")

        order = await self.db.get(Order, order_id)
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")
        if order.user_id != user_id:
            raise ForbiddenError(f"Order {order_id} does not belong to user {user_id}")
        if order.status != OrderStatus.COMPLETED:
            raise InvalidStateError("Only completed orders can be rated")

        already_rated = await self.db.scalar(select(Rating.id).where(Rating.order_id == order_id))
        if already_rated:
            raise ConflictError("Order already rated")

        if dish_id is not None:
            dish_outlet = await self.db.scalar(select(Dish.outlet_id).where(Dish.id == dish_id))
            if dish_outlet != order.outlet_id:
                raise ValidationError("Rated dish is not on this outlet's menu")

        tokens = self.settings.rating_tokens
        new_rating = Rating(
            user_id=user_id,
            order_id=order_id,
            outlet_id=order.outlet_id,
            dish_id=dish_id,
            rating=rating,
            review=review,
            tokens_earned=tokens,
        )

        try:
            self.db.add(new_rating)
            await self.db.flush()

            await self.credit(user_id, tokens)
            await self._refresh_outlet_rating(order.outlet_id)

            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise ConflictError("Order already rated") from e
        except Exception:
            await self.db.rollback()
            raise

        logger.info(f"Order {order_id} rated {rating}/5 by user {user_id} (+{tokens} tokens)")
        return new_rating

    async def _refresh_outlet_rating(self, outlet_id: str) -> None:
        """Recompute the outlet's average rating from all of its ratings."""
        row = (await self.db.execute(
            select(func.avg(Rating.rating), func.count(Rating.id))
            .where(Rating.outlet_id == outlet_id)
        )).one()
        average, count = row

        await self.db.execute(
            update(Outlet)
            .where(Outlet.id == outlet_id)
            .values(rating=round(float(average or 0), 2), total_ratings=count)
            .execution_options(synchronize_session=False)
        )
