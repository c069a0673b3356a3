"""
Nutrition record - one logged act of consumption (intake event)
"""
from enum import Enum

from sqlalchemy import Column, String, Float, ForeignKey, Index, Enum as SQLEnum
from sqlalchemy.orm import relationship

from nutrilog.database import Base
from nutrilog.utils.db_compat import UTCDateTime, new_id, utc_now


class SourceType(str, Enum):
    FOOD = "food"
    MANUAL = "manual"


class NutritionRecord(Base):
    """
    Nutrient values are copied from the food at creation time, so later
    catalog edits do not rewrite history. food_id and amount are set
    iff source_type is FOOD.
    """
    __tablename__ = "nutrition_records"

    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, ForeignKey("users.id"), nullable=False)

    name = Column(String, nullable=False)
    category = Column(String, nullable=False)
    calories = Column(Float, nullable=False, default=0.0)
    protein = Column(Float, nullable=False, default=0.0)

    source_type = Column(SQLEnum(SourceType, native_enum=False), nullable=False)
    food_id = Column(String, ForeignKey("foods.id"), nullable=True, index=True)
    amount = Column(Float, nullable=True)  # grams

    recorded_at = Column(UTCDateTime, nullable=False)

    created_at = Column(UTCDateTime, default=utc_now, nullable=False)
    updated_at = Column(UTCDateTime, default=utc_now, onupdate=utc_now, nullable=False)

    # Relationships
    food = relationship("Food", lazy="noload")

    __table_args__ = (
        Index("ix_nutrition_records_user_recorded", "user_id", "recorded_at"),
    )
