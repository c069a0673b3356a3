"""
Food catalog API - search for all users, mutations for catalog admins
"""
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from nutrilog.api.auth import get_current_user_id, require_sync_token
from nutrilog.database import get_db
from nutrilog.services import catalog_service

router = APIRouter()


# --- Pydantic Schemas ---

class FoodResponse(BaseModel):
    id: str
    name: str
    category: str
    brand: Optional[str] = None
    serving_unit: Optional[str] = None
    serving_size: Optional[float] = None
    calories_per_100g: float
    protein_per_100g: float
    carbs_per_100g: Optional[float] = None
    fat_per_100g: Optional[float] = None
    is_published: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class FoodCreate(BaseModel):
    id: Optional[str] = None
    name: str
    category: str
    brand: Optional[str] = None
    serving_unit: Optional[str] = None
    serving_size: Optional[float] = None
    calories_per_100g: float = 0.0
    protein_per_100g: float = 0.0
    carbs_per_100g: Optional[float] = None
    fat_per_100g: Optional[float] = None
    is_published: bool = True


class FoodUpdate(BaseModel):
    name: Optional[str] = None
    category: Optional[str] = None
    brand: Optional[str] = None
    serving_unit: Optional[str] = None
    serving_size: Optional[float] = None
    calories_per_100g: Optional[float] = None
    protein_per_100g: Optional[float] = None
    carbs_per_100g: Optional[float] = None
    fat_per_100g: Optional[float] = None
    is_published: Optional[bool] = None


# --- Endpoints ---

@router.get("/categories", response_model=List[str])
async def list_categories(user_id: str = Depends(get_current_user_id)):
    return catalog_service.list_categories()


@router.get("", response_model=List[FoodResponse])
async def search_foods(
    category: Optional[str] = Query(None),
    q: Optional[str] = Query(None, description="name substring, at least 2 characters"),
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """Published foods of a category; filtered by name when q has 2+ characters (max 20)."""
    query = q.strip() if q is not None else None
    return await catalog_service.search_foods(db, category, query)


@router.get("/{food_id}", response_model=FoodResponse)
async def get_food(
    food_id: str,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    return await catalog_service.get_food(db, food_id)


@router.post("", response_model=FoodResponse, dependencies=[Depends(require_sync_token)])
async def create_food(data: FoodCreate, db: AsyncSession = Depends(get_db)):
    return await catalog_service.create_food(db, data.model_dump(exclude_none=True))


@router.put("/{food_id}", response_model=FoodResponse, dependencies=[Depends(require_sync_token)])
async def update_food(food_id: str, data: FoodUpdate, db: AsyncSession = Depends(get_db)):
    return await catalog_service.update_food(db, food_id, data.model_dump(exclude_unset=True))


@router.delete("/{food_id}", dependencies=[Depends(require_sync_token)])
async def delete_food(food_id: str, db: AsyncSession = Depends(get_db)):
    await catalog_service.delete_food(db, food_id)
    return {"message": "Food deleted"}
