"""
Nutrition record store.

Two ingress shapes (catalog food + grams, or manual values) collapse into one
NutritionRecord tagged with its source type. Nutrients are computed once at
creation and stored on the record; edits to the catalog afterwards do not
change history, and updating a record never rescales it from its food.

After every committed mutation the weekly aggregate of the affected week(s)
is refreshed as a best-effort follow-up: a failure there is logged and
swallowed, the record mutation stands, and the next weekly read repairs it.
"""
import logging
from datetime import date, datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.attributes import set_committed_value

from nutrilog.config import get_settings
from nutrilog.errors import NotFoundError, StorageError, TransientError, ValidationError
from nutrilog.models.nutrition_record import NutritionRecord, SourceType
from nutrilog.services.user_service import ensure_user_exists
from nutrilog.services import catalog_service, weekly_stats_service
from nutrilog.utils.nutrition import scale
from nutrilog.utils.time_manager import TimeManager, get_time_manager
from nutrilog.utils.validators import (
    validate_category,
    validate_non_negative,
    validate_recorded_at,
)

logger = logging.getLogger(__name__)

MANUAL_PLACEHOLDER_NAME = "manual"
DEFAULT_RECENT_LIMIT = 50
MAX_RECENT_LIMIT = 200

UPDATABLE_FIELDS = {"name", "category", "calories", "protein", "amount", "recorded_at"}
FROZEN_FIELDS = {"id", "user_id", "source_type", "food_id"}


def _resolve_recorded_at(recorded_at: Optional[datetime], tm: TimeManager) -> datetime:
    now = tm.now()
    if recorded_at is None:
        return now
    return validate_recorded_at(
        tm.to_utc(recorded_at), now, get_settings().FUTURE_ALLOWANCE_SECONDS
    )


async def _commit(db: AsyncSession, action: str) -> None:
    try:
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.exception(f"Failed to {action}")
        raise StorageError(str(e)) from e


async def _refresh_week(db: AsyncSession, user_id: str, instant: datetime, tm: TimeManager) -> None:
    try:
        await weekly_stats_service.update_weekly_stats(db, user_id, instant, tm)
    except Exception as e:
        raise TransientError(f"weekly stats follow-up failed: {e}") from e


async def _follow_up_weekly(
    db: AsyncSession,
    user_id: str,
    instants: list[datetime],
    tm: TimeManager,
    record: Optional[NutritionRecord] = None,
) -> None:
    """Refresh each distinct affected week; failures never reach the caller."""
    if record is not None:
        record_id = record.id
        food = record.__dict__.get("food")
    seen = set()
    failed = False
    for instant in instants:
        week_start = tm.get_week_start_date(instant)
        if week_start in seen:
            continue
        seen.add(week_start)
        try:
            await _refresh_week(db, user_id, instant, tm)
        except TransientError as e:
            logger.warning(
                f"{e.detail} (user {user_id}, week {tm.get_date_string(week_start)}); "
                f"next read will recompute"
            )
            await db.rollback()
            failed = True

    if failed and record is not None:
        # rollback expired the committed record and its food; reload both for the response
        try:
            await db.refresh(record)
            if food is not None:
                await db.refresh(food)
        except SQLAlchemyError:
            logger.warning(f"Could not reload record {record_id} after follow-up failure")
            return
        set_committed_value(record, "food", food)


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------

async def create_from_food(
    db: AsyncSession,
    user_id: str,
    food_id: str,
    amount: float,
    recorded_at: Optional[datetime] = None,
    tm: Optional[TimeManager] = None,
) -> NutritionRecord:
    """Log ``amount`` grams of a catalog food."""
    tm = tm or get_time_manager()
    amount = validate_non_negative(amount, "amount")
    when = _resolve_recorded_at(recorded_at, tm)

    food = await catalog_service.get_food(db, food_id)

    await ensure_user_exists(db, user_id)

    nutrients = scale(food, amount)
    record = NutritionRecord(
        user_id=user_id,
        name=food.name,
        category=food.category,
        calories=nutrients.calories,
        protein=nutrients.protein,
        source_type=SourceType.FOOD,
        food_id=food.id,
        amount=amount,
        recorded_at=when,
    )
    db.add(record)
    await _commit(db, f"create food record for user {user_id}")
    set_committed_value(record, "food", food)

    await _follow_up_weekly(db, user_id, [when], tm, record)
    return record


async def create_manual(
    db: AsyncSession,
    user_id: str,
    category: str,
    calories: float,
    protein: float,
    name: Optional[str] = None,
    recorded_at: Optional[datetime] = None,
    tm: Optional[TimeManager] = None,
) -> NutritionRecord:
    """Log directly entered nutrient values."""
    tm = tm or get_time_manager()
    category = validate_category(category)
    calories = validate_non_negative(calories, "calories")
    protein = validate_non_negative(protein, "protein")
    when = _resolve_recorded_at(recorded_at, tm)

    await ensure_user_exists(db, user_id)

    record = NutritionRecord(
        user_id=user_id,
        name=(name or "").strip() or MANUAL_PLACEHOLDER_NAME,
        category=category,
        calories=calories,
        protein=protein,
        source_type=SourceType.MANUAL,
        food_id=None,
        amount=None,
        recorded_at=when,
    )
    db.add(record)
    await _commit(db, f"create manual record for user {user_id}")
    set_committed_value(record, "food", None)

    await _follow_up_weekly(db, user_id, [when], tm, record)
    return record


# ---------------------------------------------------------------------------
# Read
# ---------------------------------------------------------------------------

async def _query(db: AsyncSession, stmt) -> list[NutritionRecord]:
    try:
        result = await db.execute(stmt.options(selectinload(NutritionRecord.food)))
    except SQLAlchemyError as e:
        logger.exception("Record query failed")
        raise StorageError(str(e)) from e
    return list(result.scalars().all())


async def get_record(db: AsyncSession, user_id: str, record_id: str) -> NutritionRecord:
    """Records of other users are reported as missing."""
    records = await _query(
        db,
        select(NutritionRecord)
        .where(NutritionRecord.id == record_id, NutritionRecord.user_id == user_id)
        .execution_options(populate_existing=True),
    )
    if not records:
        raise NotFoundError(f"Record {record_id} not found")
    return records[0]


async def get_by_date(
    db: AsyncSession,
    user_id: str,
    day: Optional[date] = None,
    tm: Optional[TimeManager] = None,
) -> list[NutritionRecord]:
    """Records of one civil date, oldest first."""
    tm = tm or get_time_manager()
    if day is None:
        day = tm.local_date(tm.now())
    start, end = tm.get_date_bounds(day)
    return await _query(
        db,
        select(NutritionRecord)
        .where(
            NutritionRecord.user_id == user_id,
            NutritionRecord.recorded_at >= start,
            NutritionRecord.recorded_at <= end,
        )
        .order_by(NutritionRecord.recorded_at.asc(), NutritionRecord.id),
    )


async def get_by_range(
    db: AsyncSession,
    user_id: str,
    start_day: date,
    end_day: date,
    tm: Optional[TimeManager] = None,
) -> list[NutritionRecord]:
    """Records from the start of ``start_day`` to the end of ``end_day``, oldest first."""
    tm = tm or get_time_manager()
    if start_day > end_day:
        raise ValidationError("start must not be after end")
    start = tm.get_date_bounds(start_day).start
    end = tm.get_date_bounds(end_day).end
    return await _query(
        db,
        select(NutritionRecord)
        .where(
            NutritionRecord.user_id == user_id,
            NutritionRecord.recorded_at >= start,
            NutritionRecord.recorded_at <= end,
        )
        .order_by(NutritionRecord.recorded_at.asc(), NutritionRecord.id),
    )


async def get_recent(
    db: AsyncSession,
    user_id: str,
    limit: int = DEFAULT_RECENT_LIMIT,
) -> list[NutritionRecord]:
    """Most recent records, newest first."""
    limit = max(1, min(int(limit), MAX_RECENT_LIMIT))
    return await _query(
        db,
        select(NutritionRecord)
        .where(NutritionRecord.user_id == user_id)
        .order_by(NutritionRecord.recorded_at.desc(), NutritionRecord.id)
        .limit(limit),
    )


# ---------------------------------------------------------------------------
# Update / delete
# ---------------------------------------------------------------------------

async def update_record(
    db: AsyncSession,
    user_id: str,
    record_id: str,
    partial: dict,
    tm: Optional[TimeManager] = None,
) -> NutritionRecord:
    """
    Patch mutable fields. Nutrients are not recomputed from the food.
    Both the old and the new week are refreshed when recorded_at moves.
    """
    tm = tm or get_time_manager()
    frozen = FROZEN_FIELDS & set(partial)
    if frozen:
        raise ValidationError(f"Fields cannot be changed: {sorted(frozen)}")
    unknown = set(partial) - UPDATABLE_FIELDS
    if unknown:
        raise ValidationError(f"Unknown record fields: {sorted(unknown)}")

    record = await get_record(db, user_id, record_id)
    updates = dict(partial)

    if "name" in updates:
        name = (updates["name"] or "").strip()
        if not name:
            if record.source_type == SourceType.MANUAL:
                name = MANUAL_PLACEHOLDER_NAME
            else:
                raise ValidationError("name is required")
        updates["name"] = name
    if "category" in updates:
        updates["category"] = validate_category(updates["category"])
    for field in ("calories", "protein"):
        if field in updates:
            updates[field] = validate_non_negative(updates[field], field)
    if "amount" in updates:
        if record.source_type != SourceType.FOOD:
            raise ValidationError("amount applies only to food records")
        updates["amount"] = validate_non_negative(updates["amount"], "amount")
    if "recorded_at" in updates:
        if updates["recorded_at"] is None:
            raise ValidationError("recorded_at is required")
        updates["recorded_at"] = _resolve_recorded_at(updates["recorded_at"], tm)

    previous_at = record.recorded_at
    for key, value in updates.items():
        setattr(record, key, value)
    await _commit(db, f"update record {record_id}")

    await _follow_up_weekly(db, user_id, [record.recorded_at, previous_at], tm, record)
    return record


async def delete_record(
    db: AsyncSession,
    user_id: str,
    record_id: str,
    tm: Optional[TimeManager] = None,
) -> None:
    tm = tm or get_time_manager()
    record = await get_record(db, user_id, record_id)
    recorded_at = record.recorded_at

    await db.delete(record)
    await _commit(db, f"delete record {record_id}")

    await _follow_up_weekly(db, user_id, [recorded_at], tm)
