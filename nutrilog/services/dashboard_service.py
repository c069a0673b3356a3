"""
Dashboard read models: daily progress, weekly chart series, grouped history
"""
from datetime import timedelta
from itertools import groupby
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from nutrilog.services import record_service, user_service, weekly_stats_service
from nutrilog.utils.nutrition import (
    calorie_difference,
    calorie_progress,
    macro_ratios,
    protein_progress,
    sum_nutrition,
)
from nutrilog.utils.time_manager import TimeManager, get_time_manager


async def daily_view(db: AsyncSession, user_id: str, tm: Optional[TimeManager] = None) -> dict:
    tm = tm or get_time_manager()
    goals = await user_service.get_user_goals(db, user_id)
    now = tm.now()
    records = await record_service.get_by_date(db, user_id, tm.local_date(now), tm)
    totals = sum_nutrition(records)

    return {
        "date": tm.get_date_string(now),
        "records": records,
        "totals": totals.to_dict(),
        "calorie_progress": calorie_progress(totals.calories, goals["daily_calorie_goal"]).to_dict(),
        "protein_progress": protein_progress(totals.protein, goals["daily_protein_goal"]).to_dict(),
        "macro_ratios": [m.to_dict() for m in macro_ratios(totals)],
        "refresh_after_seconds": tm.seconds_until_next_midnight(now),
    }


async def weekly_view(db: AsyncSession, user_id: str, tm: Optional[TimeManager] = None) -> dict:
    tm = tm or get_time_manager()
    now = tm.now()
    last_week = now - timedelta(days=7)

    stats = await weekly_stats_service.get_or_create_weekly_stats(db, user_id, now, tm)
    this_week = await weekly_stats_service.daily_calories_for_week(db, user_id, now, tm)
    previous = await weekly_stats_service.daily_calories_for_week(db, user_id, last_week, tm)

    this_total = sum(point["calories"] for point in this_week)
    last_total = sum(point["calories"] for point in previous)

    return {
        "stats": stats,
        "week_range": tm.format_weekly_range(stats.week_start_date),
        "this_week_series": this_week,
        "last_week_series": previous,
        "week_over_week": calorie_difference(this_total, last_total),
        "refresh_after_seconds": tm.seconds_until_next_midnight(now),
    }


async def history_view(
    db: AsyncSession,
    user_id: str,
    limit: int = record_service.DEFAULT_RECENT_LIMIT,
    tm: Optional[TimeManager] = None,
) -> list[dict]:
    """Recent records grouped by civil date, newest date and newest record first."""
    tm = tm or get_time_manager()
    records = await record_service.get_recent(db, user_id, limit)

    groups = []
    for day, items in groupby(records, key=lambda r: tm.get_date_string(r.recorded_at)):
        items = sorted(items, key=lambda r: r.recorded_at, reverse=True)
        groups.append({
            "date": day,
            "records": items,
            "totals": sum_nutrition(items).to_dict(),
        })
    return groups
