"""Tests for the daily meal tracker."""

import asyncio
from datetime import date, timedelta
from uuid import UUID

from nutrition_sync.domain.meals import MealMethod, NewMeal, NutritionTotals
from nutrition_sync.services.daily import DailyMealTracker
from nutrition_sync.services.meal_cache import MealCache
from nutrition_sync.services.session import UserSession
from tests.conftest import FixedClock, InMemoryMealRepository, meal_row

TODAY = date(2025, 1, 1)


def test_add_meal_then_totals_follow_remote(
    daily_tracker: DailyMealTracker, meal_repository: InMemoryMealRepository
) -> None:
    async def scenario() -> None:
        await daily_tracker.start()
        assert daily_tracker.daily_calories == 0

        result = await daily_tracker.add_meal(
            NewMeal(name="Bowl", calories=500, protein=30, carbs=40, fat=10)
        )

        assert result.success
        assert result.meal is not None
        assert daily_tracker.daily_calories == 500
        assert daily_tracker.daily_macros.protein == 30
        assert daily_tracker.daily_macros.carbs == 40
        assert daily_tracker.totals.meal_count == 1
        await daily_tracker.stop()

    asyncio.run(scenario())

    stored = next(iter(meal_repository.rows.values()))
    assert stored["meal_date"] == "2025-01-01"
    assert stored["meal_type"] == "lunch"
    assert stored["meal_method"] == MealMethod.MANUAL.value


def test_add_meal_normalizes_invalid_numbers(
    daily_tracker: DailyMealTracker, meal_repository: InMemoryMealRepository
) -> None:
    async def scenario() -> None:
        await daily_tracker.start()
        await daily_tracker.add_meal(
            NewMeal(name="Odd", calories="abc", protein=-5, fat="7.5")
        )
        await daily_tracker.stop()

    asyncio.run(scenario())

    stored = next(iter(meal_repository.rows.values()))
    assert stored["calories"] == 0
    assert stored["protein"] == 0.0
    assert stored["fat"] == 7.5


def test_delete_meal_updates_totals_without_refetch(
    daily_tracker: DailyMealTracker,
    meal_repository: InMemoryMealRepository,
    user_id: UUID,
) -> None:
    small = meal_repository.add_row(meal_row(user_id, TODAY, 300, meal_time="08:00:00"))
    meal_repository.add_row(meal_row(user_id, TODAY, 450, meal_time="13:00:00"))

    async def scenario() -> None:
        await daily_tracker.start()
        assert daily_tracker.daily_calories == 750
        fetches = len(meal_repository.fetched_dates)

        result = await daily_tracker.delete_meal(small.id)

        assert result.success
        assert result.meal == small
        assert daily_tracker.daily_calories == 450
        assert len(meal_repository.fetched_dates) == fetches
        await daily_tracker.stop()

    asyncio.run(scenario())


def test_totals_match_meal_list_after_each_change(
    daily_tracker: DailyMealTracker,
) -> None:
    async def scenario() -> None:
        await daily_tracker.start()
        for calories in (120, 340, 90):
            await daily_tracker.add_meal(NewMeal(name="Snack", calories=calories))
            assert daily_tracker.daily_calories == sum(
                meal.calories for meal in daily_tracker.meals
            )
        await daily_tracker.delete_meal(daily_tracker.meals[0].id)
        assert daily_tracker.daily_calories == sum(
            meal.calories for meal in daily_tracker.meals
        )
        await daily_tracker.stop()

    asyncio.run(scenario())


def test_failed_refresh_keeps_current_meals(
    daily_tracker: DailyMealTracker,
    meal_repository: InMemoryMealRepository,
    user_id: UUID,
) -> None:
    meal_repository.add_row(meal_row(user_id, TODAY, 600))

    async def scenario() -> None:
        await daily_tracker.start()
        before = list(daily_tracker.meals)
        meal_repository.fail_reads = True

        result = await daily_tracker.refresh_from_remote()

        assert result is None
        assert daily_tracker.meals == before
        assert daily_tracker.daily_calories == 600
        await daily_tracker.stop()

    asyncio.run(scenario())


def test_failed_add_returns_error_result(
    daily_tracker: DailyMealTracker, meal_repository: InMemoryMealRepository
) -> None:
    meal_repository.fail_writes = True

    async def scenario() -> None:
        await daily_tracker.start()
        result = await daily_tracker.add_meal(NewMeal(name="Toast", calories=200))
        assert not result.success
        assert result.error == "insert rejected"
        assert daily_tracker.meals == []
        await daily_tracker.stop()

    asyncio.run(scenario())


def test_signed_out_writes_skip_remote(
    meal_repository: InMemoryMealRepository,
    daily_cache: MealCache,
    clock: FixedClock,
) -> None:
    tracker = DailyMealTracker(
        repository=meal_repository,
        cache=daily_cache,
        session=UserSession(),
        clock=clock,
    )

    result = asyncio.run(tracker.add_meal(NewMeal(name="Toast", calories=200)))
    deleted = asyncio.run(tracker.delete_meal("missing"))

    assert not result.success
    assert result.error == "User not authenticated"
    assert not deleted.success
    assert meal_repository.rows == {}
    assert meal_repository.fetched_dates == []


def test_fresh_cache_skips_remote_fetch(
    daily_tracker: DailyMealTracker,
    meal_repository: InMemoryMealRepository,
    daily_cache: MealCache,
    user_id: UUID,
    clock: FixedClock,
) -> None:
    cached = meal_repository.add_row(meal_row(user_id, TODAY, 250))

    async def scenario() -> None:
        await daily_cache.write(user_id, TODAY, [cached], clock.now())
        clock.advance(minutes=4)
        await daily_tracker.start()
        await daily_tracker.wait_idle()
        assert daily_tracker.meals == [cached]
        await daily_tracker.stop()

    asyncio.run(scenario())

    assert meal_repository.fetched_dates == []


def test_stale_cache_is_shown_then_refreshed(
    daily_tracker: DailyMealTracker,
    meal_repository: InMemoryMealRepository,
    daily_cache: MealCache,
    user_id: UUID,
    clock: FixedClock,
) -> None:
    cached = meal_repository.add_row(meal_row(user_id, TODAY, 250))
    meal_repository.add_row(meal_row(user_id, TODAY, 150, meal_time="18:00:00"))

    async def scenario() -> None:
        await daily_cache.write(user_id, TODAY, [cached], clock.now())
        clock.advance(minutes=6)
        await daily_tracker.start()
        assert daily_tracker.meals == [cached]

        await daily_tracker.wait_idle()

        assert daily_tracker.daily_calories == 400
        snapshot = await daily_cache.read(user_id, TODAY)
        assert snapshot is not None
        assert len(snapshot.meals) == 2
        assert snapshot.synced_at == clock.now()
        await daily_tracker.stop()

    asyncio.run(scenario())

    assert meal_repository.fetched_dates == [TODAY]


def test_rollover_resets_before_loading_new_date(
    daily_tracker: DailyMealTracker,
    meal_repository: InMemoryMealRepository,
    daily_cache: MealCache,
    user_id: UUID,
    clock: FixedClock,
) -> None:
    meal_repository.add_row(meal_row(user_id, TODAY, 700))
    tomorrow = TODAY + timedelta(days=1)

    async def scenario() -> None:
        await daily_tracker.start()
        assert daily_tracker.daily_calories == 700
        assert not daily_tracker.check_rollover()

        clock.advance(days=1)
        assert daily_tracker.check_rollover()

        assert daily_tracker.current_date == tomorrow
        assert daily_tracker.meals == []
        assert daily_tracker.totals == NutritionTotals()

        await daily_tracker.wait_idle()

        assert await daily_cache.read(user_id, TODAY) is None
        assert daily_tracker.meals == []
        await daily_tracker.stop()

    asyncio.run(scenario())

    assert meal_repository.fetched_dates == [TODAY, tomorrow]


def test_refresh_discarded_when_user_signs_out_mid_fetch(
    daily_cache: MealCache, clock: FixedClock, user_id: UUID
) -> None:
    session = UserSession(user_id=user_id)

    class SigningOutRepository(InMemoryMealRepository):
        def list_meals_for_date(self, user_id, day):  # type: ignore[no-untyped-def]
            meals = super().list_meals_for_date(user_id, day)
            session.sign_out()
            return meals

    repository = SigningOutRepository()
    repository.add_row(meal_row(user_id, TODAY, 900))
    tracker = DailyMealTracker(
        repository=repository, cache=daily_cache, session=session, clock=clock
    )

    result = asyncio.run(tracker.refresh_from_remote())

    assert result is None
    assert tracker.meals == []


def test_update_meal_resyncs_day(
    daily_tracker: DailyMealTracker,
    meal_repository: InMemoryMealRepository,
    user_id: UUID,
) -> None:
    meal = meal_repository.add_row(meal_row(user_id, TODAY, 300))

    async def scenario() -> None:
        await daily_tracker.start()
        result = await daily_tracker.update_meal(meal.id, {"calories": 350})
        assert result.success
        assert daily_tracker.daily_calories == 350
        missing = await daily_tracker.update_meal("unknown", {"calories": 1})
        assert not missing.success
        await daily_tracker.stop()

    asyncio.run(scenario())
