"""Supabase repository for meals."""

from dataclasses import dataclass
from datetime import date
from uuid import UUID

from supabase import Client

from nutrition_sync.domain.meals import MealRecord, meal_from_row
from nutrition_sync.errors import RemoteStoreError
from nutrition_sync.services.meals import MealRepository

_TABLE = "meals"


@dataclass
class SupabaseMealRepository(MealRepository):
    """Supabase implementation for meal rows."""

    client: Client

    def create_meal(self, user_id: UUID, payload: dict[str, object]) -> MealRecord:
        """Insert a meal row and return the stored row."""
        response = (
            self.client.table(_TABLE)
            .insert({**payload, "user_id": str(user_id)})
            .execute()
        )
        if not response.data:
            raise RemoteStoreError("Failed to create meal")
        return meal_from_row(response.data[0])

    def list_meals_for_date(self, user_id: UUID, day: date) -> list[MealRecord]:
        """Return meals for a date ordered by meal time."""
        response = (
            self.client.table(_TABLE)
            .select("*")
            .eq("user_id", str(user_id))
            .eq("meal_date", day.isoformat())
            .order("meal_time", desc=False)
            .execute()
        )
        return [meal_from_row(row) for row in response.data or []]

    def list_meals_since(self, user_id: UUID, start: date) -> list[MealRecord]:
        """Return meals on or after a date, newest first."""
        response = (
            self.client.table(_TABLE)
            .select("*")
            .eq("user_id", str(user_id))
            .gte("meal_date", start.isoformat())
            .order("meal_date", desc=True)
            .order("meal_time", desc=True)
            .execute()
        )
        return [meal_from_row(row) for row in response.data or []]

    def update_meal(
        self, user_id: UUID, meal_id: str, updates: dict[str, object]
    ) -> MealRecord:
        """Update a meal row owned by the user."""
        response = (
            self.client.table(_TABLE)
            .update(updates)
            .eq("id", meal_id)
            .eq("user_id", str(user_id))
            .execute()
        )
        if not response.data:
            raise RemoteStoreError(f"Meal not found: {meal_id}")
        return meal_from_row(response.data[0])

    def delete_meal(self, user_id: UUID, meal_id: str) -> None:
        """Hard delete a meal row owned by the user."""
        self.client.table(_TABLE).delete().eq("id", meal_id).eq(
            "user_id", str(user_id)
        ).execute()
