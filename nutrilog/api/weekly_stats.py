"""
Weekly statistics API - current week (recomputed on read) and history
"""
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from nutrilog.api.auth import get_current_user_id
from nutrilog.database import get_db
from nutrilog.services import weekly_stats_service
from nutrilog.utils.time_manager import TimeManager, get_time_manager

router = APIRouter()


class WeeklyStatsResponse(BaseModel):
    id: str
    user_id: str
    week_start_date: datetime
    total_calories: float
    total_protein: float
    avg_daily_calories: float
    avg_protein: float
    records_count: int
    actual_days: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


@router.get("/current", response_model=WeeklyStatsResponse)
async def current_week(
    at: Optional[datetime] = Query(None, description="any instant inside the wanted week"),
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    tm: TimeManager = Depends(get_time_manager),
):
    return await weekly_stats_service.get_or_create_weekly_stats(db, user_id, at, tm)


@router.get("/history", response_model=List[WeeklyStatsResponse])
async def history(
    weeks: int = Query(4, ge=0, le=104),
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    tm: TimeManager = Depends(get_time_manager),
):
    return await weekly_stats_service.get_weekly_stats_history(db, user_id, weeks, tm)
