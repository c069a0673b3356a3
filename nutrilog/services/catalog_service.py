"""
Food catalog - CRUD and search over the shared food dictionary
"""
import logging
from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from nutrilog.errors import ConflictError, NotFoundError, StorageError, ValidationError
from nutrilog.models.food import Food, FoodCategory
from nutrilog.models.nutrition_record import NutritionRecord
from nutrilog.utils.validators import (
    validate_category,
    validate_non_negative,
    validate_required_text,
)

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 20
MIN_QUERY_LENGTH = 2

MUTABLE_FIELDS = {
    "name", "category", "brand", "serving_unit", "serving_size",
    "calories_per_100g", "protein_per_100g", "carbs_per_100g", "fat_per_100g",
    "is_published",
}
NUMERIC_FIELDS = {
    "serving_size", "calories_per_100g", "protein_per_100g", "carbs_per_100g", "fat_per_100g",
}
REQUIRED_NUMERIC_FIELDS = {"calories_per_100g", "protein_per_100g"}


def list_categories() -> list[str]:
    return [c.value for c in FoodCategory]


def _clean_attrs(attrs: dict) -> dict:
    unknown = set(attrs) - MUTABLE_FIELDS - {"id"}
    if unknown:
        raise ValidationError(f"Unknown food fields: {sorted(unknown)}")

    cleaned = dict(attrs)
    if "name" in cleaned:
        cleaned["name"] = validate_required_text(cleaned["name"], "name")
    if "category" in cleaned:
        cleaned["category"] = validate_category(cleaned["category"])
    for field in NUMERIC_FIELDS & set(cleaned):
        if cleaned[field] is None:
            if field in REQUIRED_NUMERIC_FIELDS:
                raise ValidationError(f"{field} is required")
            continue
        cleaned[field] = validate_non_negative(cleaned[field], field)
    if "is_published" in cleaned and cleaned["is_published"] is None:
        raise ValidationError("is_published must be true or false")
    return cleaned


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


async def create_food(db: AsyncSession, attrs: dict) -> Food:
    cleaned = _clean_attrs(attrs)
    if "name" not in cleaned:
        raise ValidationError("name is required")
    if "category" not in cleaned:
        raise ValidationError("category is required")
    if not cleaned.get("id"):
        cleaned.pop("id", None)

    food = Food(**cleaned)
    db.add(food)
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise ConflictError(f"Food {cleaned.get('id')} already exists") from e
    except SQLAlchemyError as e:
        await db.rollback()
        logger.exception("Failed to create food")
        raise StorageError(str(e)) from e
    return food


async def get_food(db: AsyncSession, food_id: str) -> Food:
    result = await db.execute(
        select(Food)
        .where(Food.id == food_id)
        .execution_options(populate_existing=True)
    )
    food = result.scalar_one_or_none()
    if not food:
        raise NotFoundError(f"Food {food_id} not found")
    return food


async def get_foods_by_category(db: AsyncSession, category: str) -> list[Food]:
    category = validate_category(category)
    result = await db.execute(
        select(Food)
        .where(Food.category == category, Food.is_published == True)  # noqa: E712
        .order_by(Food.name, Food.id)
    )
    return list(result.scalars().all())


async def search_foods(
    db: AsyncSession,
    category: Optional[str] = None,
    query: Optional[str] = None,
) -> list[Food]:
    """
    Short or missing query: every published food in the category.
    Otherwise case-insensitive substring match on name, at most 20 rows.
    A None category searches the whole catalog.
    """
    stmt = select(Food).where(Food.is_published == True)  # noqa: E712
    if category is not None:
        stmt = stmt.where(Food.category == validate_category(category))

    stmt = stmt.order_by(Food.name, Food.id)
    if query is not None and len(query) >= MIN_QUERY_LENGTH:
        pattern = f"%{_escape_like(query.lower())}%"
        stmt = stmt.where(func.lower(Food.name).like(pattern, escape="\\")).limit(SEARCH_LIMIT)

    result = await db.execute(stmt)
    return list(result.scalars().all())


async def update_food(db: AsyncSession, food_id: str, partial: dict) -> Food:
    cleaned = _clean_attrs(partial)
    if "id" in cleaned and cleaned["id"] != food_id:
        raise ValidationError("Food id cannot be changed")
    cleaned.pop("id", None)

    food = await get_food(db, food_id)
    for key, value in cleaned.items():
        setattr(food, key, value)

    try:
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.exception(f"Failed to update food {food_id}")
        raise StorageError(str(e)) from e
    return food


async def delete_food(db: AsyncSession, food_id: str) -> None:
    """Referenced foods cannot be deleted; unpublish them instead."""
    food = await get_food(db, food_id)

    in_use = await db.execute(
        select(func.count(NutritionRecord.id)).where(NutritionRecord.food_id == food_id)
    )
    if (in_use.scalar() or 0) > 0:
        raise ConflictError(f"Food {food_id} is referenced by records; unpublish it instead")

    await db.delete(food)
    try:
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.exception(f"Failed to delete food {food_id}")
        raise StorageError(str(e)) from e
