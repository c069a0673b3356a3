"""
Nutrition record API endpoints - log, list, edit and delete intake records
"""
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from nutrilog.api.auth import get_current_user_id
from nutrilog.api.foods import FoodResponse
from nutrilog.database import get_db
from nutrilog.models.nutrition_record import SourceType
from nutrilog.services import record_service
from nutrilog.utils.time_manager import TimeManager, get_time_manager

router = APIRouter()


# --- Pydantic Schemas ---

class RecordResponse(BaseModel):
    id: str
    user_id: str
    name: str
    category: str
    calories: float
    protein: float
    source_type: SourceType
    food_id: Optional[str] = None
    amount: Optional[float] = None
    recorded_at: datetime
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    food: Optional[FoodResponse] = None

    class Config:
        from_attributes = True


class FoodRecordCreate(BaseModel):
    food_id: str
    amount: float
    recorded_at: Optional[datetime] = None


class ManualRecordCreate(BaseModel):
    name: Optional[str] = None
    category: str
    calories: float
    protein: float = 0.0
    recorded_at: Optional[datetime] = None


class RecordUpdate(BaseModel):
    name: Optional[str] = None
    category: Optional[str] = None
    calories: Optional[float] = None
    protein: Optional[float] = None
    amount: Optional[float] = None
    recorded_at: Optional[datetime] = None


# --- Endpoints ---

@router.post("/food", response_model=RecordResponse)
async def create_food_record(
    data: FoodRecordCreate,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    tm: TimeManager = Depends(get_time_manager),
):
    return await record_service.create_from_food(
        db, user_id, data.food_id, data.amount, data.recorded_at, tm
    )


@router.post("/manual", response_model=RecordResponse)
async def create_manual_record(
    data: ManualRecordCreate,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    tm: TimeManager = Depends(get_time_manager),
):
    return await record_service.create_manual(
        db,
        user_id,
        category=data.category,
        calories=data.calories,
        protein=data.protein,
        name=data.name,
        recorded_at=data.recorded_at,
        tm=tm,
    )


@router.get("", response_model=List[RecordResponse])
async def list_records_by_date(
    date: Optional[str] = Query(None, description="YYYY-MM-DD, defaults to today"),
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    tm: TimeManager = Depends(get_time_manager),
):
    day = tm.parse_date_string(date) if date else None
    return await record_service.get_by_date(db, user_id, day, tm)


@router.get("/range", response_model=List[RecordResponse])
async def list_records_by_range(
    start: str = Query(..., description="YYYY-MM-DD"),
    end: str = Query(..., description="YYYY-MM-DD"),
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    tm: TimeManager = Depends(get_time_manager),
):
    return await record_service.get_by_range(
        db, user_id, tm.parse_date_string(start), tm.parse_date_string(end), tm
    )


@router.get("/recent", response_model=List[RecordResponse])
async def list_recent_records(
    limit: int = Query(record_service.DEFAULT_RECENT_LIMIT, ge=1, le=record_service.MAX_RECENT_LIMIT),
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    return await record_service.get_recent(db, user_id, limit)


@router.get("/{record_id}", response_model=RecordResponse)
async def get_record(
    record_id: str,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    return await record_service.get_record(db, user_id, record_id)


@router.put("/{record_id}", response_model=RecordResponse)
async def update_record(
    record_id: str,
    data: RecordUpdate,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    tm: TimeManager = Depends(get_time_manager),
):
    return await record_service.update_record(
        db, user_id, record_id, data.model_dump(exclude_unset=True), tm
    )


@router.delete("/{record_id}")
async def delete_record(
    record_id: str,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    tm: TimeManager = Depends(get_time_manager),
):
    await record_service.delete_record(db, user_id, record_id, tm)
    return {"message": "Record deleted"}
