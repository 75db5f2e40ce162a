"""
Gamification Service

Leaderboard, badges and challenges.

Ranking: users are ordered by token balance, highest first. Ties are
broken by account age (earlier sign-up ranks higher), then by id, so the
order is stable between requests.

Badges are awarded at most once per user. The unique constraint on
(user_id, badge_id) keeps a single row when two awards race; the one
that loses returns False like any repeat award.

Version: 1.0.0
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from campus_eats.core.config import Settings, get_settings
from campus_eats.core.exceptions import NotFoundError, ValidationError
from campus_eats.models import (
    Badge,
    Challenge,
    Order,
    OrderStatus,
    User,
    UserBadge,
)

logger = logging.getLogger(__name__)


@dataclass
class LeaderboardEntry:
    rank: int
    user_id: str
    first_name: Optional[str]
    last_name: Optional[str]
    profile_image_url: Optional[str]
    tokens: int
    order_count: int


@dataclass
class ChallengeProgress:
    challenge_id: str
    title: str
    progress: int
    requirement: int
    completed: bool


class GamificationService:
    """Read models and awards for the gamification features."""

    def __init__(self, db: AsyncSession, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or get_settings()

    # =========================================================================
    # LEADERBOARD
    # =========================================================================

    async def leaderboard(
        self,
        limit: Optional[int] = None,
        university_id: Optional[str] = None,
    ) -> list[LeaderboardEntry]:
        limit = self.settings.leaderboard_limit if limit is None else limit
        if limit < 1:
            raise ValidationError("Leaderboard limit must be at least 1")

        order_count = func.count(Order.id).label("order_count")
        stmt = (
            select(
                User.id,
                User.first_name,
                User.last_name,
                User.profile_image_url,
                User.tokens,
                order_count,
            )
            .outerjoin(Order, Order.user_id == User.id)
            .group_by(
                User.id,
                User.first_name,
                User.last_name,
                User.profile_image_url,
                User.tokens,
                User.created_at,
            )
            .order_by(User.tokens.desc(), User.created_at.asc(), User.id.asc())
            .limit(limit)
        )
        if university_id is not None:
            stmt = stmt.where(User.university_id == university_id)

        rows = (await self.db.execute(stmt)).all()

        return [
            LeaderboardEntry(
                rank=index,
                user_id=row.id,
                first_name=row.first_name,
                last_name=row.last_name,
                profile_image_url=row.profile_image_url,
                tokens=row.tokens,
                order_count=row.order_count,
            )
            for index, row in enumerate(rows, start=1)
        ]

    # =========================================================================
    # BADGES
    # =========================================================================

    async def list_badges(self) -> list[Badge]:
        result = await self.db.execute(select(Badge).order_by(Badge.name))
        return list(result.scalars())

    async def list_user_badges(self, user_id: str) -> list[tuple[UserBadge, Badge]]:
        result = await self.db.execute(
            select(UserBadge, Badge)
            .join(Badge, Badge.id == UserBadge.badge_id)
            .where(UserBadge.user_id == user_id)
            .order_by(UserBadge.earned_at)
        )
        return [(user_badge, badge) for user_badge, badge in result.all()]

    async def award_badge(self, user_id: str, badge_id: str) -> bool:
        """
        Give a badge to a user. Commits.

        Returns True if the badge was newly awarded, False if the user
        already had it. Losing the race to a concurrent award rolls the
        session back, which expires every instance it holds.
        """
        badge = await self.db.get(Badge, badge_id)
        if badge is None:
            raise NotFoundError(f"Badge {badge_id} not found")
        badge_name = badge.name

        existing = await self.db.scalar(
            select(UserBadge.id).where(
                UserBadge.user_id == user_id,
                UserBadge.badge_id == badge_id,
            )
        )
        if existing:
            return False

        self.db.add(UserBadge(user_id=user_id, badge_id=badge_id))
        try:
            await self.db.commit()
        except IntegrityError:
            # A concurrent award inserted the same (user, badge) first
            await self.db.rollback()
            logger.info(f"Badge {badge_name} already awarded to user {user_id}")
            return False

        logger.info(f"🏅 Badge '{badge_name}' awarded to user {user_id}")
        return True

    async def award_badge_by_name(self, user_id: str, name: str) -> bool:
        badge_id = await self.db.scalar(select(Badge.id).where(Badge.name == name))
        if badge_id is None:
            logger.debug(f"Badge '{name}' is not configured, skipping award")
            return False
        return await self.award_badge(user_id, badge_id)

    # =========================================================================
    # CHALLENGES
    # =========================================================================

    async def list_challenges(self) -> list[Challenge]:
        result = await self.db.execute(
            select(Challenge)
            .where(Challenge.is_active.is_(True))
            .order_by(Challenge.type, Challenge.requirement)
        )
        return list(result.scalars())

    async def challenge_progress(self, user_id: str) -> list[ChallengeProgress]:
        """Progress towards each active challenge, counted in completed orders."""
        completed_orders = await self.db.scalar(
            select(func.count(Order.id)).where(
                Order.user_id == user_id,
                Order.status == OrderStatus.COMPLETED,
            )
        ) or 0

        return [
            ChallengeProgress(
                challenge_id=challenge.id,
                title=challenge.title,
                progress=min(completed_orders, challenge.requirement),
                requirement=challenge.requirement,
                completed=completed_orders >= challenge.requirement,
            )
            for challenge in await self.list_challenges()
        ]
