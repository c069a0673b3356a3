"""
User provisioning and daily goals.

Users are created lazily the first time an external id is seen. Two requests
racing on the same id both try to insert; the loser hits the primary key,
rolls back and re-reads the winner's row.
"""
import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from nutrilog.config import get_settings
from nutrilog.errors import StorageError, ValidationError
from nutrilog.models.user import User
from nutrilog.utils.validators import validate_positive

logger = logging.getLogger(__name__)


def placeholder_email(external_id: str) -> str:
    return f"{external_id}@placeholder"


async def _find_user(db: AsyncSession, user_id: str) -> Optional[User]:
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def ensure_user_exists(db: AsyncSession, user_id: str) -> User:
    """Return the user row, inserting it with default goals if missing."""
    if not user_id or not str(user_id).strip():
        raise ValidationError("User ID is required")

    try:
        user = await _find_user(db, user_id)
        if user:
            return user

        settings = get_settings()
        user = User(
            id=user_id,
            email=placeholder_email(user_id),
            daily_calorie_goal=settings.DEFAULT_DAILY_CALORIE_GOAL,
            daily_protein_goal=settings.DEFAULT_DAILY_PROTEIN_GOAL,
        )
        db.add(user)
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            logger.warning(f"Concurrent provisioning of user {user_id}, re-reading")
            user = await _find_user(db, user_id)
            if user is None:
                raise StorageError(f"User {user_id} vanished after unique violation")
            return user

        logger.info(f"Provisioned user {user_id}")
        return user
    except SQLAlchemyError as e:
        logger.exception(f"ensure_user_exists failed for {user_id}")
        raise StorageError(str(e)) from e


async def get_user_goals(db: AsyncSession, user_id: str) -> dict:
    user = await ensure_user_exists(db, user_id)
    return {
        "daily_calorie_goal": user.daily_calorie_goal,
        "daily_protein_goal": user.daily_protein_goal,
    }


async def update_user_goals(
    db: AsyncSession,
    user_id: str,
    daily_calorie_goal: Optional[int] = None,
    daily_protein_goal: Optional[float] = None,
) -> dict:
    """Patch goals; each given value must be positive."""
    if daily_calorie_goal is not None:
        validate_positive(daily_calorie_goal, "daily_calorie_goal")
        if int(daily_calorie_goal) != daily_calorie_goal:
            raise ValidationError("daily_calorie_goal must be a whole number")
    if daily_protein_goal is not None:
        validate_positive(daily_protein_goal, "daily_protein_goal")

    user = await ensure_user_exists(db, user_id)
    if daily_calorie_goal is not None:
        user.daily_calorie_goal = int(daily_calorie_goal)
    if daily_protein_goal is not None:
        user.daily_protein_goal = float(daily_protein_goal)

    try:
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.exception(f"Failed to update goals for {user_id}")
        raise StorageError(str(e)) from e

    return {
        "daily_calorie_goal": user.daily_calorie_goal,
        "daily_protein_goal": user.daily_protein_goal,
    }
