"""Lazy, batched loading of meals for past dates."""

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, timedelta
from uuid import UUID

from nutrition_sync.clock import Clock, date_range, parse_timestamp, today
from nutrition_sync.domain.meals import (
    AVERAGED_FIELDS,
    DailyNutrition,
    MealRecord,
    NutritionTotals,
    WeeklyNutritionSummary,
    round_half_up,
)
from nutrition_sync.services.daily import DailyMealTracker
from nutrition_sync.services.meal_cache import MealCache
from nutrition_sync.services.meals import MealRepository
from nutrition_sync.services.session import UserSession
from nutrition_sync.services.storage import KeyValueStore

LAST_CLEANUP_KEY = "last_cache_cleanup"

_logger = logging.getLogger(__name__)


@dataclass
class MealHistoryService:
    """Serves meals and totals for arbitrary dates without loading full history.

    Today's meals always come from the daily tracker. Other dates are fetched
    on demand in small concurrent batches; recent dates are pre-filled from a
    per-user local cache while the remote fetch runs.
    """

    repository: MealRepository
    cache: MealCache
    daily: DailyMealTracker
    session: UserSession
    clock: Clock
    storage: KeyValueStore
    cleanup_caches: list[MealCache] = field(default_factory=list)
    batch_size: int = 5
    batch_delay_seconds: float = 0.1
    recent_days: int = 7
    retention_days: int = 30
    cleanup_interval_seconds: int = 86400

    history: dict[date, list[MealRecord]] = field(default_factory=dict, init=False)
    loaded_dates: set[date] = field(default_factory=set, init=False)
    loading: bool = field(default=False, init=False)

    async def get_meals_for_date(self, day: date) -> list[MealRecord]:
        """Return meals for a date, loading it if this session has not yet."""
        if day == today(self.clock):
            return list(self.daily.meals)
        if day in self.history:
            return list(self.history[day])
        await self.load_meal_history([day])
        return list(self.history.get(day, []))

    async def load_meal_history(self, days: Iterable[date]) -> None:
        """Load every date not already loaded this session.

        Each date is fetched remotely even when a cached copy was applied.
        Fetches run ``batch_size`` at a time with a short pause between
        batches; one failed date does not affect the others.
        """
        user_id = self.session.user_id
        if user_id is None:
            _logger.debug("Skipping meal history load: no signed-in user")
            return
        pending = [day for day in dict.fromkeys(days) if day not in self.loaded_dates]
        if not pending:
            return
        _logger.info("Loading meal history for %s dates", len(pending))
        recent_cutoff = today(self.clock) - timedelta(days=self.recent_days)
        self.loading = True
        try:
            for day in pending:
                if day >= recent_cutoff:
                    await self._apply_cached(user_id, day)
            for start in range(0, len(pending), self.batch_size):
                batch = pending[start : start + self.batch_size]
                await asyncio.gather(
                    *(self._fetch_date(user_id, day, recent_cutoff) for day in batch)
                )
                if start + self.batch_size < len(pending):
                    await asyncio.sleep(self.batch_delay_seconds)
        finally:
            self.loading = False

    async def get_recent_meals(self, days: int = 30) -> list[MealRecord]:
        """Return meals from the last ``days`` days in one query, newest first.

        Returns an empty list when nobody is signed in or the query fails.
        """
        user_id = self.session.user_id
        if user_id is None:
            return []
        start = today(self.clock) - timedelta(days=days)
        try:
            return await asyncio.to_thread(
                self.repository.list_meals_since, user_id, start
            )
        except Exception:
            _logger.exception("Failed to load recent meals since %s", start)
            return []

    async def get_nutrition_totals_for_date(self, day: date) -> NutritionTotals:
        return NutritionTotals.from_meals(await self.get_meals_for_date(day))

    async def get_weekly_nutrition_summary(
        self, start: date, end: date
    ) -> WeeklyNutritionSummary:
        """Sum nutrition over an inclusive range and average per calendar day.

        Averages divide by every day in the range, tracked or not.
        """
        days = list(date_range(start, end))
        if not days:
            raise ValueError(f"Empty date range: {start} to {end}")
        await self.load_meal_history(days)
        daily = [
            DailyNutrition(
                date=day, totals=await self.get_nutrition_totals_for_date(day)
            )
            for day in days
        ]
        totals = NutritionTotals(
            calories=sum(entry.totals.calories for entry in daily),
            carbs=sum(entry.totals.carbs for entry in daily),
            protein=sum(entry.totals.protein for entry in daily),
            fat=sum(entry.totals.fat for entry in daily),
            fiber=sum(entry.totals.fiber for entry in daily),
            sugar=sum(entry.totals.sugar for entry in daily),
            sodium=sum(entry.totals.sodium for entry in daily),
            meal_count=sum(entry.totals.meal_count for entry in daily),
        )
        average_daily = {
            name: round_half_up(getattr(totals, name) / len(days))
            for name in AVERAGED_FIELDS
        }
        return WeeklyNutritionSummary(
            start=start,
            end=end,
            totals=totals,
            average_daily=average_daily,
            daily=daily,
        )

    async def cleanup_old_cache(self) -> int:
        """Remove cached dates older than the retention window."""
        cutoff = today(self.clock) - timedelta(days=self.retention_days)
        removed = 0
        for cache in [self.cache, *self.cleanup_caches]:
            try:
                keys = await cache.remove_older_than(cutoff)
            except Exception:
                _logger.exception("Failed to clean %s cache", cache.namespace)
                continue
            removed += len(keys)
        if removed:
            _logger.info("Removed %s cached entries older than %s", removed, cutoff)
        return removed

    async def maybe_cleanup(self) -> bool:
        """Run the cleanup at most once per interval, tracked in storage."""
        now = self.clock.now()
        interval = timedelta(seconds=self.cleanup_interval_seconds)
        try:
            last = parse_timestamp(await self.storage.get_item(LAST_CLEANUP_KEY))
            if last is not None and now - last <= interval:
                return False
            await self.cleanup_old_cache()
            await self.storage.set_item(LAST_CLEANUP_KEY, now.isoformat())
        except Exception:
            _logger.exception("Cache cleanup failed")
            return False
        return True

    def reset(self) -> None:
        self.history.clear()
        self.loaded_dates.clear()

    async def _apply_cached(self, user_id: UUID, day: date) -> None:
        try:
            snapshot = await self.cache.read(user_id, day)
        except Exception:
            _logger.exception("Failed to read history cache for %s", day)
            return
        if snapshot is not None:
            self.history[day] = snapshot.meals

    async def _fetch_date(self, user_id: UUID, day: date, recent_cutoff: date) -> None:
        try:
            meals = await asyncio.to_thread(
                self.repository.list_meals_for_date, user_id, day
            )
        except Exception:
            _logger.exception("Failed to load meals for %s", day)
            return
        if self.session.user_id != user_id:
            return
        self.history[day] = meals
        self.loaded_dates.add(day)
        if day < recent_cutoff:
            return
        try:
            await self.cache.write(user_id, day, meals, self.clock.now())
        except Exception:
            _logger.exception("Failed to cache meals for %s", day)

