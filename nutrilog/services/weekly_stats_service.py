"""
Weekly aggregator - keeps weekly_stats in step with nutrition_records.

The aggregate is a follower of the record store, not part of its
transaction: record mutations commit first and then ask for a recompute of
the affected week. A recompute always re-reads the whole week, so running it
twice, late, or concurrently converges to the same row. Reads go through
get_or_create_weekly_stats, which recomputes before returning and repairs
any row left stale by a failed follow-up.
"""
import asyncio
import logging
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Iterable, Optional

from sqlalchemy import select, delete, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from nutrilog.errors import StorageError
from nutrilog.models.nutrition_record import NutritionRecord
from nutrilog.models.weekly_stats import WeeklyStats
from nutrilog.services.user_service import ensure_user_exists
from nutrilog.utils.db_compat import new_id, upsert
from nutrilog.utils.time_manager import TimeManager, get_time_manager

logger = logging.getLogger(__name__)

# One rebuild at a time per user within this process; entries live only
# while some caller holds or waits for the lock
_rebuild_locks: dict[str, asyncio.Lock] = {}
_rebuild_holders: dict[str, int] = {}

STAT_COLUMNS = [
    "total_calories",
    "total_protein",
    "avg_daily_calories",
    "avg_protein",
    "records_count",
    "actual_days",
    "updated_at",
]


def _acquire_rebuild_lock(user_id: str) -> asyncio.Lock:
    lock = _rebuild_locks.setdefault(user_id, asyncio.Lock())
    _rebuild_holders[user_id] = _rebuild_holders.get(user_id, 0) + 1
    return lock


def _release_rebuild_lock(user_id: str) -> None:
    remaining = _rebuild_holders.get(user_id, 0) - 1
    if remaining > 0:
        _rebuild_holders[user_id] = remaining
        return
    _rebuild_holders.pop(user_id, None)
    _rebuild_locks.pop(user_id, None)


def aggregate_week(records: Iterable, tm: TimeManager) -> dict:
    """Totals, distinct civil days and per-day averages for a week's records."""
    total_calories = 0.0
    total_protein = 0.0
    count = 0
    days = set()
    for record in records:
        total_calories += record.calories or 0.0
        total_protein += record.protein or 0.0
        count += 1
        days.add(tm.local_date(record.recorded_at))

    actual_days = len(days)
    return {
        "total_calories": total_calories,
        "total_protein": total_protein,
        "avg_daily_calories": total_calories / actual_days if actual_days else 0.0,
        "avg_protein": total_protein / actual_days if actual_days else 0.0,
        "records_count": count,
        "actual_days": actual_days,
    }


async def _records_between(
    db: AsyncSession, user_id: str, start: datetime, end: datetime
) -> list[NutritionRecord]:
    result = await db.execute(
        select(NutritionRecord)
        .where(
            NutritionRecord.user_id == user_id,
            NutritionRecord.recorded_at >= start,
            NutritionRecord.recorded_at <= end,
        )
        .order_by(NutritionRecord.recorded_at)
    )
    return list(result.scalars().all())


async def _load_row(db: AsyncSession, user_id: str, week_start: datetime) -> Optional[WeeklyStats]:
    result = await db.execute(
        select(WeeklyStats)
        .where(WeeklyStats.user_id == user_id, WeeklyStats.week_start_date == week_start)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _write_week(
    db: AsyncSession, user_id: str, week_start: datetime, stats: dict, tm: TimeManager
) -> None:
    now = tm.now()
    values = {
        "id": new_id(),
        "user_id": user_id,
        "week_start_date": week_start,
        "created_at": now,
        "updated_at": now,
        **stats,
    }
    await upsert(
        db,
        WeeklyStats,
        values,
        index_elements=["user_id", "week_start_date"],
        update_columns=STAT_COLUMNS,
    )


async def update_weekly_stats(
    db: AsyncSession,
    user_id: str,
    instant: datetime,
    tm: Optional[TimeManager] = None,
) -> WeeklyStats:
    """Recompute and upsert the week containing ``instant``."""
    tm = tm or get_time_manager()
    week_start, week_end = tm.get_week_bounds(instant)

    try:
        records = await _records_between(db, user_id, week_start, week_end)
        stats = aggregate_week(records, tm)
        await _write_week(db, user_id, week_start, stats, tm)
        await db.commit()
        row = await _load_row(db, user_id, week_start)
    except SQLAlchemyError as e:
        await db.rollback()
        logger.exception(f"Weekly stats update failed for user {user_id}, week {week_start.isoformat()}")
        raise StorageError(str(e)) from e

    logger.debug(
        f"Weekly stats {user_id} {tm.get_date_string(week_start)}: "
        f"{stats['records_count']} records over {stats['actual_days']} days"
    )
    return row


async def get_or_create_weekly_stats(
    db: AsyncSession,
    user_id: str,
    instant: Optional[datetime] = None,
    tm: Optional[TimeManager] = None,
) -> WeeklyStats:
    """Read path: always recompute, a stored row may be stale."""
    tm = tm or get_time_manager()
    await ensure_user_exists(db, user_id)
    return await update_weekly_stats(db, user_id, instant or tm.now(), tm)


async def get_weekly_stats_history(
    db: AsyncSession,
    user_id: str,
    weeks_back: int = 4,
    tm: Optional[TimeManager] = None,
) -> list[WeeklyStats]:
    tm = tm or get_time_manager()
    since = tm.get_week_start_date(tm.now() - timedelta(days=weeks_back * 7))
    try:
        result = await db.execute(
            select(WeeklyStats)
            .where(WeeklyStats.user_id == user_id, WeeklyStats.week_start_date >= since)
            .order_by(WeeklyStats.week_start_date.asc())
        )
    except SQLAlchemyError as e:
        logger.exception(f"Weekly history query failed for user {user_id}")
        raise StorageError(str(e)) from e
    return list(result.scalars().all())


async def daily_calories_for_week(
    db: AsyncSession,
    user_id: str,
    instant: Optional[datetime] = None,
    tm: Optional[TimeManager] = None,
) -> list[dict]:
    """Seven {date, calories} points, Monday first."""
    tm = tm or get_time_manager()
    week_start, week_end = tm.get_week_bounds(instant)
    try:
        records = await _records_between(db, user_id, week_start, week_end)
    except SQLAlchemyError as e:
        logger.exception(f"Daily series query failed for user {user_id}")
        raise StorageError(str(e)) from e

    per_day: dict[str, float] = defaultdict(float)
    for record in records:
        per_day[tm.get_date_string(record.recorded_at)] += record.calories or 0.0

    return [
        {"date": day.isoformat(), "calories": per_day.get(day.isoformat(), 0.0)}
        for day in tm.week_dates(week_start)
    ]


async def recalculate_all_weekly_stats(
    db: AsyncSession,
    user_id: str,
    tm: Optional[TimeManager] = None,
) -> dict:
    """
    Drop every weekly row of the user and rebuild from the record log.

    Weeks without records are not materialized. Returns
    {"recalculated": weeks written, "errors": weeks that failed}.
    """
    tm = tm or get_time_manager()

    lock = _acquire_rebuild_lock(user_id)
    try:
        async with lock:
            return await _rebuild_weeks(db, user_id, tm)
    finally:
        _release_rebuild_lock(user_id)


async def _rebuild_weeks(db: AsyncSession, user_id: str, tm: TimeManager) -> dict:
    try:
        await db.execute(delete(WeeklyStats).where(WeeklyStats.user_id == user_id))
        await db.commit()

        bounds = await db.execute(
            select(
                func.min(NutritionRecord.recorded_at),
                func.max(NutritionRecord.recorded_at),
            ).where(NutritionRecord.user_id == user_id)
        )
        earliest, latest = bounds.one()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.exception(f"Weekly rebuild failed to start for user {user_id}")
        raise StorageError(str(e)) from e

    if earliest is None:
        logger.info(f"Weekly rebuild for {user_id}: no records")
        return {"recalculated": 0, "errors": 0}

    last = max(tm.now(), latest)
    monday = tm.local_date(tm.get_week_start_date(earliest))
    last_monday = tm.local_date(tm.get_week_start_date(last))

    recalculated = 0
    errors = 0
    while monday <= last_monday:
        week_start = tm.start_of_date(monday)
        try:
            records = await _records_between(
                db, user_id, week_start, tm.get_week_end_date(week_start)
            )
            stats = aggregate_week(records, tm)
            if stats["records_count"] > 0:
                await _write_week(db, user_id, week_start, stats, tm)
                await db.commit()
                recalculated += 1
        except SQLAlchemyError:
            await db.rollback()
            errors += 1
            logger.exception(f"Weekly rebuild failed for {user_id}, week {monday.isoformat()}")
        monday += timedelta(days=7)

    logger.info(f"Weekly rebuild for {user_id}: {recalculated} weeks, {errors} errors")
    return {"recalculated": recalculated, "errors": errors}
