"""
Input validation utilities
"""
import math
from datetime import datetime, timedelta
from typing import Any, Optional

from nutrilog.errors import ValidationError
from nutrilog.models.food import FoodCategory, CATEGORY_ALIASES


def validate_category(value: Any) -> str:
    """Strict check for API input: must be one of FoodCategory."""
    if isinstance(value, FoodCategory):
        return value.value
    valid = [c.value for c in FoodCategory]
    if value not in valid:
        raise ValidationError(f"Invalid category. Must be one of: {valid}")
    return value


def coerce_category(value: Any) -> str:
    """Lenient mapping used on catalog ingest; unknown values become Other."""
    if value is None:
        return FoodCategory.OTHER.value
    text = str(value).strip()
    if not text:
        return FoodCategory.OTHER.value
    for category in FoodCategory:
        if text.lower() == category.value.lower():
            return category.value
    return CATEGORY_ALIASES.get(text.lower(), FoodCategory.OTHER.value)


def validate_non_negative(value: Any, field: str) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a number")
    if math.isnan(number) or math.isinf(number) or number < 0:
        raise ValidationError(f"{field} must be a non-negative number")
    return number


def validate_positive(value: Any, field: str) -> float:
    number = validate_non_negative(value, field)
    if number == 0:
        raise ValidationError(f"{field} must be positive")
    return number


def validate_required_text(value: Optional[str], field: str) -> str:
    text = (value or "").strip()
    if not text:
        raise ValidationError(f"{field} is required")
    return text


def validate_recorded_at(recorded_at: datetime, now: datetime, allowance_seconds: int) -> datetime:
    """Reject timestamps further in the future than the clock-skew allowance."""
    if recorded_at > now + timedelta(seconds=allowance_seconds):
        raise ValidationError("recorded_at cannot be in the future")
    return recorded_at
