from nutrilog.models.user import User
from nutrilog.models.food import Food, FoodCategory
from nutrilog.models.nutrition_record import NutritionRecord, SourceType
from nutrilog.models.weekly_stats import WeeklyStats

__all__ = [
    "User",
    "Food",
    "FoodCategory",
    "NutritionRecord",
    "SourceType",
    "WeeklyStats",
]
