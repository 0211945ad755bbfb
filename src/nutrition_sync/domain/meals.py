"""Domain models for meal logging and nutrition totals."""

import datetime as dt
import math
from dataclasses import dataclass, field
from enum import StrEnum
from uuid import UUID

from nutrition_sync.clock import parse_date


class MealMethod(StrEnum):
    """How a meal was captured. Provenance only."""

    MANUAL = "manual"
    CAMERA = "camera"
    SEARCH = "search"
    RECIPE = "recipe"


@dataclass(frozen=True)
class MealRecord:
    """A logged meal as stored remotely."""

    id: str
    user_id: UUID
    date: dt.date
    time: str
    name: str
    calories: int
    carbs: float = 0.0
    protein: float = 0.0
    fat: float = 0.0
    fiber: float = 0.0
    sugar: float = 0.0
    sodium: float = 0.0
    method: MealMethod = MealMethod.MANUAL
    meal_type: str | None = None
    image_uri: str | None = None
    confidence: float | None = None


@dataclass(frozen=True)
class NewMeal:
    """Input for creating a meal; date and time default from the clock."""

    name: str
    calories: object = 0
    carbs: object = 0.0
    protein: object = 0.0
    fat: object = 0.0
    fiber: object = 0.0
    sugar: object = 0.0
    sodium: object = 0.0
    method: MealMethod = MealMethod.MANUAL
    date: dt.date | None = None
    time: str | None = None
    meal_type: str | None = None
    portion: str | None = None
    image_uri: str | None = None
    confidence: float | None = None


@dataclass(frozen=True)
class Macros:
    carbs: float
    protein: float
    fat: float


@dataclass(frozen=True)
class Micros:
    fiber: float
    sugar: float
    sodium: float


@dataclass(frozen=True)
class NutritionTotals:
    """Summed nutrition over a set of meals."""

    calories: float = 0
    carbs: float = 0.0
    protein: float = 0.0
    fat: float = 0.0
    fiber: float = 0.0
    sugar: float = 0.0
    sodium: float = 0.0
    meal_count: int = 0

    @classmethod
    def from_meals(cls, meals: list[MealRecord]) -> "NutritionTotals":
        """Sum every field over the full meal list."""
        return cls(
            calories=sum(meal.calories for meal in meals),
            carbs=sum(meal.carbs for meal in meals),
            protein=sum(meal.protein for meal in meals),
            fat=sum(meal.fat for meal in meals),
            fiber=sum(meal.fiber for meal in meals),
            sugar=sum(meal.sugar for meal in meals),
            sodium=sum(meal.sodium for meal in meals),
            meal_count=len(meals),
        )

    @property
    def macros(self) -> Macros:
        return Macros(carbs=self.carbs, protein=self.protein, fat=self.fat)

    @property
    def micros(self) -> Micros:
        return Micros(fiber=self.fiber, sugar=self.sugar, sodium=self.sodium)


@dataclass(frozen=True)
class DailyNutrition:
    """Totals for one calendar date."""

    date: dt.date
    totals: NutritionTotals


@dataclass(frozen=True)
class WeeklyNutritionSummary:
    """Totals and per-day averages across an inclusive date range."""

    start: dt.date
    end: dt.date
    totals: NutritionTotals
    average_daily: dict[str, int]
    daily: list[DailyNutrition] = field(default_factory=list)

    @property
    def total_meals(self) -> int:
        return self.totals.meal_count


@dataclass(frozen=True)
class MealOperationResult:
    """Outcome of a user-initiated meal write."""

    success: bool
    meal: MealRecord | None = None
    error: str | None = None


AVERAGED_FIELDS = ("calories", "carbs", "protein", "fat", "fiber", "sugar", "sodium")


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def meal_from_row(row: dict[str, object]) -> MealRecord:
    """Build a meal from a remote row or a cached payload."""
    day = parse_date(row.get("meal_date") or row.get("date"))
    if day is None:
        raise ValueError(f"Meal row has no valid date: {row.get('id')}")
    method_raw = str(row.get("meal_method") or row.get("method") or "manual")
    try:
        method = MealMethod(method_raw)
    except ValueError:
        method = MealMethod.MANUAL
    confidence = row.get("confidence_score", row.get("confidence"))
    return MealRecord(
        id=str(row["id"]),
        user_id=UUID(str(row["user_id"])),
        date=day,
        time=str(row.get("meal_time") or row.get("time") or ""),
        name=str(row.get("meal_name") or row.get("name") or ""),
        calories=to_calories(row.get("calories")),
        carbs=to_grams(row.get("carbs")),
        protein=to_grams(row.get("protein")),
        fat=to_grams(row.get("fat")),
        fiber=to_grams(row.get("fiber")),
        sugar=to_grams(row.get("sugar")),
        sodium=to_grams(row.get("sodium")),
        method=method,
        meal_type=_optional_str(row.get("meal_type")),
        image_uri=_optional_str(row.get("image_uri") or row.get("imageUri")),
        confidence=float(confidence) if isinstance(confidence, int | float) else None,
    )


def meal_to_cache(meal: MealRecord) -> dict[str, object]:
    """Serialize a meal to a JSON-safe payload."""
    return {
        "id": meal.id,
        "user_id": str(meal.user_id),
        "date": meal.date.isoformat(),
        "time": meal.time,
        "name": meal.name,
        "calories": meal.calories,
        "carbs": meal.carbs,
        "protein": meal.protein,
        "fat": meal.fat,
        "fiber": meal.fiber,
        "sugar": meal.sugar,
        "sodium": meal.sodium,
        "method": meal.method.value,
        "meal_type": meal.meal_type,
        "image_uri": meal.image_uri,
        "confidence": meal.confidence,
    }


def to_calories(value: object) -> int:
    """Parse calories as a non-negative integer, defaulting to 0."""
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return max(value, 0)
    if isinstance(value, float):
        return max(int(value), 0) if math.isfinite(value) else 0
    if isinstance(value, str):
        try:
            return max(int(float(value.strip())), 0)
        except ValueError:
            return 0
    return 0


def to_grams(value: object) -> float:
    """Parse a nutrient amount as a non-negative float, defaulting to 0."""
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, int | float):
        amount = float(value)
    elif isinstance(value, str):
        try:
            amount = float(value.strip())
        except ValueError:
            return 0.0
    else:
        return 0.0
    if not math.isfinite(amount) or amount < 0:
        return 0.0
    return amount


def _optional_str(value: object) -> str | None:
    if value is None or value == "":
        return None
    return str(value)
