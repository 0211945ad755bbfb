"""Tests for domain models."""

from datetime import UTC, date, datetime, timedelta
from uuid import uuid4

import pytest

from nutrition_sync.domain.meals import (
    MealMethod,
    NewMeal,
    NutritionTotals,
    meal_from_row,
    round_half_up,
)
from nutrition_sync.domain.subscriptions import (
    CustomerInfo,
    Entitlement,
    SubscriptionRecord,
    SubscriptionStatus,
    Tier,
)

NOW = datetime(2025, 1, 1, 12, tzinfo=UTC)


def test_meal_from_row_reads_remote_columns() -> None:
    user_id = uuid4()
    meal = meal_from_row(
        {
            "id": 42,
            "user_id": str(user_id),
            "meal_name": "Oats",
            "meal_date": "2025-01-01",
            "meal_time": "07:30:00",
            "calories": "310",
            "protein": "12.5",
            "sodium": None,
            "meal_method": "camera",
            "confidence_score": 0.8,
        }
    )

    assert meal.id == "42"
    assert meal.user_id == user_id
    assert meal.date == date(2025, 1, 1)
    assert meal.calories == 310
    assert meal.protein == 12.5
    assert meal.sodium == 0.0
    assert meal.method == MealMethod.CAMERA
    assert meal.confidence == 0.8


def test_meal_from_row_requires_date() -> None:
    with pytest.raises(ValueError):
        meal_from_row({"id": "1", "user_id": str(uuid4()), "meal_date": "soon"})


def test_totals_sum_every_field() -> None:
    user_id = uuid4()
    meals = [
        meal_from_row(
            {
                "id": str(index),
                "user_id": str(user_id),
                "meal_date": "2025-01-01",
                "calories": calories,
                "fiber": 2,
            }
        )
        for index, calories in enumerate((100, 250))
    ]

    totals = NutritionTotals.from_meals(meals)

    assert totals.calories == 350
    assert totals.micros.fiber == 4
    assert totals.meal_count == 2
    assert NutritionTotals.from_meals([]) == NutritionTotals()


def test_round_half_up() -> None:
    assert round_half_up(42.857) == 43
    assert round_half_up(2.5) == 3
    assert round_half_up(3.5) == 4
    assert round_half_up(0.49) == 0


def test_pro_entitlement_prefers_known_names() -> None:
    other = Entitlement(identifier="gold", is_active=True)
    premium = Entitlement(identifier="premium", is_active=True)

    assert CustomerInfo(
        app_user_id=None, active_entitlements={"gold": other, "premium": premium}
    ).pro_entitlement() == premium
    assert CustomerInfo(
        app_user_id=None, active_entitlements={"gold": other}
    ).pro_entitlement() == other
    assert CustomerInfo(app_user_id=None).pro_entitlement() is None


def test_subscription_record_active_needs_future_expiry() -> None:
    user_id = uuid4()

    def record(
        tier: Tier, status: SubscriptionStatus, expires_at: datetime | None
    ) -> SubscriptionRecord:
        return SubscriptionRecord(
            user_id=user_id, tier=tier, status=status, expires_at=expires_at
        )

    assert record(Tier.PRO, SubscriptionStatus.ACTIVE, None).is_active(NOW)
    assert record(
        Tier.PRO, SubscriptionStatus.ACTIVE, NOW + timedelta(days=1)
    ).is_active(NOW)
    assert not record(Tier.PRO, SubscriptionStatus.ACTIVE, NOW).is_active(NOW)
    assert not record(Tier.FREE, SubscriptionStatus.ACTIVE, None).is_active(NOW)
    assert not record(Tier.PRO, SubscriptionStatus.EXPIRED, None).is_active(NOW)


def test_new_meal_accepts_explicit_date_and_time() -> None:
    meal = NewMeal(name="Soup", calories=200, date=date(2025, 1, 2), time="19:00:00")

    assert meal.date == date(2025, 1, 2)
    assert meal.time == "19:00:00"
    assert NewMeal(name="Toast").date is None
