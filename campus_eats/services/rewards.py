"""
Reward Wheel

Students spend tokens to spin a wheel of weighted rewards.

Selection: each catalog entry owns a half-open slice of the cumulative
weight line, in catalog order (`position`, then id). A draw `d` in
[0, total) lands on the first entry whose cumulative weight exceeds `d`:

    weights  [50, 30, 20]
    slices   [0, 50) [50, 80) [80, 100)

Entries with weight 0 own an empty slice and are never selected. Weights
are relative and need not sum to 100.

The debit and the claim row are written in one transaction; a spin either
costs tokens and records a claim, or does neither.

Version: 1.0.0
"""

import logging
import random
from dataclasses import dataclass
from typing import Callable, Optional, Protocol, Sequence, TypeVar

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from campus_eats.core.clock import utcnow
from campus_eats.core.config import Settings, get_settings
from campus_eats.core.exceptions import (
    InvalidStateError,
    NotFoundError,
    RewardCatalogEmptyError,
)
from campus_eats.models import Reward, RewardClaim
from campus_eats.services.ledger import TokenLedger

logger = logging.getLogger(__name__)


class Weighted(Protocol):
    probability: int


W = TypeVar("W", bound=Weighted)


def total_weight(rewards: Sequence[Weighted]) -> int:
    return sum(max(reward.probability, 0) for reward in rewards)


def select_reward(rewards: Sequence[W], draw: float) -> W:
    """Return the entry whose cumulative slice contains `draw`."""
    cumulative = 0
    for reward in rewards:
        cumulative += max(reward.probability, 0)
        if draw < cumulative:
            return reward
    raise ValueError(f"Draw {draw} is outside [0, {cumulative})")


@dataclass
class SpinOutcome:
    reward: Reward
    claim: RewardClaim
    remaining_tokens: int


class RewardWheel:
    """Token-funded spins and the claims they produce."""

    def __init__(
        self,
        db: AsyncSession,
        rng: Callable[[], float] = random.random,
        settings: Optional[Settings] = None,
    ):
        self.db = db
        self.rng = rng
        self.settings = settings or get_settings()

    async def list_rewards(self) -> list[Reward]:
        result = await self.db.execute(select(Reward).order_by(Reward.position, Reward.id))
        return list(result.scalars())

    async def spin(self, user_id: str) -> SpinOutcome:
        """
        Debit the spin cost, draw a reward and record the claim.

        Raises RewardCatalogEmptyError before touching the balance when the
        catalog has no positive weight.
        """
        rewards = await self.list_rewards()
        weight = total_weight(rewards)
        if weight <= 0:
            raise RewardCatalogEmptyError()

        cost = self.settings.spin_cost

        try:
            remaining = await TokenLedger(self.db, self.settings).debit(user_id, cost)

            reward = select_reward(rewards, self.rng() * weight)
            claim = RewardClaim(user_id=user_id, reward_id=reward.id, tokens_spent=cost)
            self.db.add(claim)

            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(f"🎡 User {user_id} spun the wheel: {reward.title} ({remaining} tokens left)")
        return SpinOutcome(reward=reward, claim=claim, remaining_tokens=remaining)

    # =========================================================================
    # CLAIMS
    # =========================================================================

    async def list_claims(self, user_id: str) -> list[tuple[RewardClaim, Reward]]:
        result = await self.db.execute(
            select(RewardClaim, Reward)
            .join(Reward, Reward.id == RewardClaim.reward_id)
            .where(RewardClaim.user_id == user_id)
            .order_by(RewardClaim.created_at.desc())
        )
        return [(claim, reward) for claim, reward in result.all()]

    async def use_claim(self, user_id: str, claim_id: str) -> RewardClaim:
        """Redeem a claim. Each claim can be used once."""
        try:
            result = await self.db.execute(
                update(RewardClaim)
                .where(
                    RewardClaim.id == claim_id,
                    RewardClaim.user_id == user_id,
                    RewardClaim.is_used.is_(False),
                )
                .values(is_used=True, used_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                owner = await self.db.scalar(
                    select(RewardClaim.user_id).where(RewardClaim.id == claim_id)
                )
                if owner != user_id:
                    raise NotFoundError(f"Claim {claim_id} not found for user {user_id}")
                raise InvalidStateError("Reward already used")

            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        claim = (await self.db.execute(
            select(RewardClaim)
            .where(RewardClaim.id == claim_id)
            .execution_options(populate_existing=True)
        )).scalar_one()
        logger.info(f"User {user_id} redeemed claim {claim_id}")
        return claim
