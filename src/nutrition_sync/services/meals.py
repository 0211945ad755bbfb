"""Remote meal store interface and insert payload building."""

from datetime import date
from typing import Protocol
from uuid import UUID

from nutrition_sync.clock import Clock, local_time_string, meal_type_for, today
from nutrition_sync.domain.meals import MealRecord, NewMeal, to_calories, to_grams


class MealRepository(Protocol):
    """Persistence interface for meal rows."""

    def create_meal(self, user_id: UUID, payload: dict[str, object]) -> MealRecord:
        """Insert a meal row and return it as stored."""

    def list_meals_for_date(self, user_id: UUID, day: date) -> list[MealRecord]:
        """Return a user's meals for one date ordered by time."""

    def list_meals_since(self, user_id: UUID, start: date) -> list[MealRecord]:
        """Return a user's meals on or after a date, newest first."""

    def update_meal(
        self, user_id: UUID, meal_id: str, updates: dict[str, object]
    ) -> MealRecord:
        """Update a meal row owned by the user and return it."""

    def delete_meal(self, user_id: UUID, meal_id: str) -> None:
        """Delete a meal row owned by the user."""


def build_meal_payload(meal: NewMeal, clock: Clock) -> dict[str, object]:
    """Normalize add-meal input into a remote row payload."""
    now = clock.now()
    return {
        "meal_name": meal.name,
        "calories": to_calories(meal.calories),
        "carbs": to_grams(meal.carbs),
        "protein": to_grams(meal.protein),
        "fat": to_grams(meal.fat),
        "fiber": to_grams(meal.fiber),
        "sugar": to_grams(meal.sugar),
        "sodium": to_grams(meal.sodium),
        "meal_method": meal.method.value,
        "meal_type": meal.meal_type or meal_type_for(now.hour),
        "portion_description": meal.portion,
        "image_uri": meal.image_uri,
        "confidence_score": meal.confidence,
        "meal_date": (meal.date or today(clock)).isoformat(),
        "meal_time": meal.time or local_time_string(clock),
    }
