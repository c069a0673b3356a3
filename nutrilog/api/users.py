"""
User goal endpoints
"""
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from nutrilog.api.auth import get_current_user_id
from nutrilog.database import get_db
from nutrilog.services import user_service

router = APIRouter()


class GoalsResponse(BaseModel):
    daily_calorie_goal: int
    daily_protein_goal: float


class GoalsUpdate(BaseModel):
    daily_calorie_goal: Optional[int] = None
    daily_protein_goal: Optional[float] = None


@router.get("/me/goals", response_model=GoalsResponse)
async def get_goals(
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    return await user_service.get_user_goals(db, user_id)


@router.put("/me/goals", response_model=GoalsResponse)
async def update_goals(
    data: GoalsUpdate,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    return await user_service.update_user_goals(
        db,
        user_id,
        daily_calorie_goal=data.daily_calorie_goal,
        daily_protein_goal=data.daily_protein_goal,
    )
