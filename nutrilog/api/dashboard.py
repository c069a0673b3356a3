"""
Dashboard API - composed read views for the client
"""
from typing import List

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from nutrilog.api.auth import get_current_user_id
from nutrilog.api.records import RecordResponse
from nutrilog.api.weekly_stats import WeeklyStatsResponse
from nutrilog.database import get_db
from nutrilog.services import dashboard_service, record_service
from nutrilog.utils.time_manager import TimeManager, get_time_manager

router = APIRouter()


class Totals(BaseModel):
    calories: float
    protein: float
    carbs: float
    fat: float


class ProgressResponse(BaseModel):
    consumed: float
    goal: float
    remaining: float
    is_over_goal: bool
    percentage: float


class MacroRatioResponse(BaseModel):
    name: str
    value: int
    calories: float


class DailyView(BaseModel):
    date: str
    records: List[RecordResponse]
    totals: Totals
    calorie_progress: ProgressResponse
    protein_progress: ProgressResponse
    macro_ratios: List[MacroRatioResponse]
    refresh_after_seconds: float


class SeriesPoint(BaseModel):
    date: str
    calories: float


class WeekOverWeek(BaseModel):
    difference: float
    is_increase: bool
    percentage: int


class WeeklyView(BaseModel):
    stats: WeeklyStatsResponse
    week_range: str
    this_week_series: List[SeriesPoint]
    last_week_series: List[SeriesPoint]
    week_over_week: WeekOverWeek
    refresh_after_seconds: float


class HistoryGroup(BaseModel):
    date: str
    records: List[RecordResponse]
    totals: Totals


@router.get("/daily", response_model=DailyView)
async def daily(
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    tm: TimeManager = Depends(get_time_manager),
):
    return await dashboard_service.daily_view(db, user_id, tm)


@router.get("/weekly", response_model=WeeklyView)
async def weekly(
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    tm: TimeManager = Depends(get_time_manager),
):
    return await dashboard_service.weekly_view(db, user_id, tm)


@router.get("/history", response_model=List[HistoryGroup])
async def history(
    limit: int = Query(record_service.DEFAULT_RECENT_LIMIT, ge=1, le=record_service.MAX_RECENT_LIMIT),
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    tm: TimeManager = Depends(get_time_manager),
):
    return await dashboard_service.history_view(db, user_id, limit, tm)
