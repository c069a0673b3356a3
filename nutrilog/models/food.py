"""
Food catalog model - shared dictionary of foods with per-100g nutrients
"""
from enum import Enum

from sqlalchemy import Column, String, Float, Boolean

from nutrilog.database import Base
from nutrilog.utils.db_compat import UTCDateTime, new_id, utc_now


class FoodCategory(str, Enum):
    PROTEIN = "Protein"
    PRODUCE = "Produce/Fiber"
    CARBOHYDRATE = "Carbohydrate"
    OTHER = "Other"


# Lower-cased aliases seen in seed files and older clients
CATEGORY_ALIASES = {
    "produce": FoodCategory.PRODUCE.value,
    "fiber": FoodCategory.PRODUCE.value,
    "produce_fiber": FoodCategory.PRODUCE.value,
    "vegetable": FoodCategory.PRODUCE.value,
    "vegetables": FoodCategory.PRODUCE.value,
    "fruit": FoodCategory.PRODUCE.value,
    "carbs": FoodCategory.CARBOHYDRATE.value,
    "carb": FoodCategory.CARBOHYDRATE.value,
    "carbohydrates": FoodCategory.CARBOHYDRATE.value,
    "蛋白質": FoodCategory.PROTEIN.value,
    "蔬菜": FoodCategory.PRODUCE.value,
    "水果": FoodCategory.PRODUCE.value,
    "碳水化合物": FoodCategory.CARBOHYDRATE.value,
    "脂肪": FoodCategory.OTHER.value,
    "其他": FoodCategory.OTHER.value,
}


class Food(Base):
    """Catalog entry. Not owned by a user; edits never touch past records."""
    __tablename__ = "foods"

    id = Column(String, primary_key=True, default=new_id)
    name = Column(String, nullable=False, index=True)
    category = Column(String, nullable=False, index=True, default=FoodCategory.OTHER.value)
    brand = Column(String, nullable=True)
    serving_unit = Column(String, nullable=True)
    serving_size = Column(Float, nullable=True)

    # Per 100 g; zero when unknown
    calories_per_100g = Column(Float, nullable=False, default=0.0)
    protein_per_100g = Column(Float, nullable=False, default=0.0)
    carbs_per_100g = Column(Float, nullable=True)
    fat_per_100g = Column(Float, nullable=True)

    is_published = Column(Boolean, nullable=False, default=True)

    created_at = Column(UTCDateTime, default=utc_now, nullable=False)
    updated_at = Column(UTCDateTime, default=utc_now, onupdate=utc_now, nullable=False)
