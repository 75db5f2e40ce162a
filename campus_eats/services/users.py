"""
User Accounts

A student picks their university once, after sign-up. The choice is
written with a conditional UPDATE (`WHERE university_id IS NULL`), so two
concurrent selections cannot both land.

Version: 1.0.0
"""

import logging

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from campus_eats.core.exceptions import ForbiddenError, NotFoundError
from campus_eats.models import University, User, UserRole

logger = logging.getLogger(__name__)


class UserService:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def select_university(self, user: User, university_id: str) -> User:
        """Set a student's university. Raises ForbiddenError if one is already set."""
        if user.role != UserRole.STUDENT:
            raise ForbiddenError("Only students can select a university")
        if user.university_id:
            raise ForbiddenError("University already set and cannot be changed")

        user_id = user.id
        try:
            university = await self.db.get(University, university_id)
            if university is None:
                raise NotFoundError(f"University {university_id} not found")

            result = await self.db.execute(
                update(User)
                .where(User.id == user_id, User.university_id.is_(None))
                .values(university_id=university_id)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise ForbiddenError("University already set and cannot be changed")

            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        user = await self.db.get(User, user_id, populate_existing=True)
        logger.info(f"User {user_id} joined university {university_id}")
        return user
