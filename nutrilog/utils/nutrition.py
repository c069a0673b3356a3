"""
Pure nutrient arithmetic: portion scaling, summaries, goal progress, macro split.

No I/O and no rounding of stored values; display rounding belongs to callers.
"""
import math
from dataclasses import dataclass, asdict
from typing import Any, Iterable

KCAL_PER_GRAM = {
    "Carbohydrate": 4,
    "Protein": 4,
    "Fat": 9,
}


@dataclass(frozen=True)
class NutritionSummary:
    calories: float = 0.0
    protein: float = 0.0
    carbs: float = 0.0
    fat: float = 0.0

    def __add__(self, other: "NutritionSummary") -> "NutritionSummary":
        return NutritionSummary(
            calories=self.calories + other.calories,
            protein=self.protein + other.protein,
            carbs=self.carbs + other.carbs,
            fat=self.fat + other.fat,
        )

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class Progress:
    consumed: float
    goal: float
    remaining: float  # overshoot magnitude when is_over_goal
    is_over_goal: bool
    percentage: float

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class MacroRatio:
    name: str
    value: int  # percent
    calories: float

    def to_dict(self) -> dict:
        return asdict(self)


def _num(value: Any) -> float:
    return float(value) if value is not None else 0.0


def scale(food: Any, grams: float) -> NutritionSummary:
    """Nutrients of ``grams`` of a food described per 100 g."""
    if grams is None or grams < 0:
        raise ValueError("Amount must be a non-negative number of grams")
    factor = grams / 100
    return NutritionSummary(
        calories=_num(food.calories_per_100g) * factor,
        protein=_num(food.protein_per_100g) * factor,
        carbs=_num(getattr(food, "carbs_per_100g", None)) * factor,
        fat=_num(getattr(food, "fat_per_100g", None)) * factor,
    )


def sum_nutrition(records: Iterable[Any]) -> NutritionSummary:
    total = NutritionSummary()
    for record in records:
        total = total + NutritionSummary(
            calories=_num(record.calories),
            protein=_num(record.protein),
            carbs=_num(getattr(record, "carbs", None)),
            fat=_num(getattr(record, "fat", None)),
        )
    return total


def _progress(consumed: float, goal: float) -> Progress:
    is_over = consumed > goal
    remaining = consumed - goal if is_over else max(0.0, goal - consumed)
    percentage = consumed / goal * 100 if goal > 0 else 0.0
    return Progress(
        consumed=consumed,
        goal=goal,
        remaining=remaining,
        is_over_goal=is_over,
        percentage=percentage,
    )


def calorie_progress(consumed: float, goal: float) -> Progress:
    return _progress(consumed, goal)


def protein_progress(consumed: float, goal: float) -> Progress:
    return _progress(consumed, goal)


def largest_remainder(shares: list[float], total: int = 100) -> list[int]:
    """Round non-negative shares to integers that sum to exactly ``total``."""
    weight = sum(shares)
    if weight <= 0:
        return [0] * len(shares)
    exact = [s / weight * total for s in shares]
    floors = [math.floor(x) for x in exact]
    leftover = total - sum(floors)
    # ties go to the earlier component
    order = sorted(range(len(shares)), key=lambda i: (-(exact[i] - floors[i]), i))
    for i in order[:leftover]:
        floors[i] += 1
    return floors


def macro_ratios(summary: NutritionSummary) -> list[MacroRatio]:
    """
    Calorie split between carbohydrate, protein, fat and untracked energy.

    Records that only carry calories and protein still contribute: whatever
    the tracked macros do not explain is reported as "Other".
    """
    carbs_kcal = summary.carbs * KCAL_PER_GRAM["Carbohydrate"]
    protein_kcal = summary.protein * KCAL_PER_GRAM["Protein"]
    fat_kcal = summary.fat * KCAL_PER_GRAM["Fat"]
    other_kcal = max(0.0, summary.calories - (carbs_kcal + protein_kcal + fat_kcal))

    names = ["Carbohydrate", "Protein", "Fat", "Other"]
    kcal = [max(0.0, carbs_kcal), max(0.0, protein_kcal), max(0.0, fat_kcal), other_kcal]
    percents = largest_remainder(kcal)
    return [
        MacroRatio(name=name, value=pct, calories=cal)
        for name, pct, cal in zip(names, percents, kcal)
    ]


def calorie_difference(current: float, previous: float) -> dict:
    difference = current - previous
    percentage = round(abs(difference) / previous * 100) if previous > 0 else 0
    return {
        "difference": difference,
        "is_increase": difference > 0,
        "percentage": percentage,
    }


def is_within_goal(current: float, target: float, tolerance: float = 0.1) -> bool:
    if target <= 0:
        return False
    return abs(current - target) / target <= tolerance
