"""Today's meals and nutrition totals with local caching and date rollover."""

import asyncio
import logging
from collections.abc import Coroutine
from dataclasses import dataclass, field
from datetime import date, timedelta
from uuid import UUID

from nutrition_sync.clock import Clock, today
from nutrition_sync.domain.meals import (
    Macros,
    MealOperationResult,
    MealRecord,
    Micros,
    NewMeal,
    NutritionTotals,
)
from nutrition_sync.errors import AuthenticationError
from nutrition_sync.services.meal_cache import CacheSnapshot, MealCache, is_stale
from nutrition_sync.services.meals import MealRepository, build_meal_payload
from nutrition_sync.services.scheduling import PeriodicTask
from nutrition_sync.services.session import UserSession

_logger = logging.getLogger(__name__)


@dataclass
class DailyMealTracker:
    """Holds today's meals in memory and keeps them in sync.

    The meal list is served from the local cache first and refreshed from the
    remote store when the cache is missing or older than the freshness window.
    A periodic check resets everything when the local date changes.
    """

    repository: MealRepository
    cache: MealCache
    session: UserSession
    clock: Clock
    freshness_window_seconds: int = 300
    rollover_check_seconds: float = 30.0

    current_date: date | None = field(default=None, init=False)
    meals: list[MealRecord] = field(default_factory=list, init=False)
    totals: NutritionTotals = field(default_factory=NutritionTotals, init=False)
    loading: bool = field(default=False, init=False)
    _rollover_task: PeriodicTask | None = field(default=None, init=False, repr=False)
    _background: set[asyncio.Task[None]] = field(
        default_factory=set, init=False, repr=False
    )

    @property
    def daily_calories(self) -> float:
        return self.totals.calories

    @property
    def daily_macros(self) -> Macros:
        return self.totals.macros

    @property
    def daily_micros(self) -> Micros:
        return self.totals.micros

    async def start(self) -> None:
        """Load today's meals and begin watching for date rollover."""
        self.current_date = today(self.clock)
        await self.load()
        if self._rollover_task is None:
            self._rollover_task = PeriodicTask(
                name="daily-rollover-check",
                interval_seconds=self.rollover_check_seconds,
                callback=self._rollover_tick,
            )
        self._rollover_task.start()

    async def stop(self) -> None:
        """Stop rollover checks, drop in-flight refreshes and clear state."""
        if self._rollover_task is not None:
            await self._rollover_task.stop()
        for task in list(self._background):
            task.cancel()
        await asyncio.gather(*self._background, return_exceptions=True)
        self._background.clear()
        self.current_date = None
        self._set_meals([])

    async def read_cache(self) -> CacheSnapshot | None:
        """Return the cached entry for the current date, if usable."""
        user_id = self.session.user_id
        if user_id is None:
            return None
        try:
            return await self.cache.read(user_id, self._active_date())
        except Exception:
            _logger.exception("Failed to read meal cache")
            return None

    def needs_refresh(self, snapshot: CacheSnapshot | None) -> bool:
        return is_stale(
            snapshot,
            self.clock.now(),
            timedelta(seconds=self.freshness_window_seconds),
        )

    async def load(self) -> None:
        """Show cached meals immediately, then refresh if the cache is stale.

        A cache miss waits for the remote fetch; a stale hit refreshes in the
        background.
        """
        if self.session.user_id is None:
            return
        self.loading = True
        try:
            snapshot = await self.read_cache()
            if snapshot is not None:
                self._set_meals(snapshot.meals)
            if not self.needs_refresh(snapshot):
                _logger.debug("Meal cache fresh for %s", self.current_date)
                return
            if snapshot is None:
                await self.refresh_from_remote()
            else:
                self._spawn(self._background_refresh())
        finally:
            self.loading = False

    async def refresh_from_remote(self) -> list[MealRecord] | None:
        """Fetch the current date's meals and replace the in-memory list.

        Returns None without touching state when signed out, on failure, or
        when the user or date changed while the fetch was in flight.
        """
        user_id = self.session.user_id
        if user_id is None:
            _logger.debug("Skipping meal refresh: no signed-in user")
            return None
        day = self._active_date()
        try:
            meals = await asyncio.to_thread(
                self.repository.list_meals_for_date, user_id, day
            )
        except Exception:
            _logger.exception("Failed to refresh meals for %s", day)
            return None
        if self.session.user_id != user_id or self.current_date != day:
            _logger.info("Discarding meal refresh for %s: session moved on", day)
            return None
        self._set_meals(meals)
        await self._persist(user_id, day, meals)
        return meals

    async def add_meal(self, meal: NewMeal) -> MealOperationResult:
        """Create a meal remotely, then re-sync the day from the remote store."""
        try:
            user_id = self.session.require_user()
        except AuthenticationError as exc:
            return MealOperationResult(success=False, error=str(exc))
        payload = build_meal_payload(meal, self.clock)
        try:
            created = await asyncio.to_thread(
                self.repository.create_meal, user_id, payload
            )
        except Exception as exc:
            _logger.exception("Failed to add meal")
            return MealOperationResult(success=False, error=str(exc))
        _logger.info("Meal added: id=%s calories=%s", created.id, created.calories)
        await self.refresh_from_remote()
        return MealOperationResult(success=True, meal=created)

    async def update_meal(
        self, meal_id: str, updates: dict[str, object]
    ) -> MealOperationResult:
        """Update a meal remotely, then re-sync the day."""
        try:
            user_id = self.session.require_user()
        except AuthenticationError as exc:
            return MealOperationResult(success=False, error=str(exc))
        try:
            updated = await asyncio.to_thread(
                self.repository.update_meal, user_id, meal_id, updates
            )
        except Exception as exc:
            _logger.exception("Failed to update meal %s", meal_id)
            return MealOperationResult(success=False, error=str(exc))
        await self.refresh_from_remote()
        return MealOperationResult(success=True, meal=updated)

    async def delete_meal(self, meal_id: str) -> MealOperationResult:
        """Delete a meal remotely and drop it from the local list."""
        try:
            user_id = self.session.require_user()
        except AuthenticationError as exc:
            return MealOperationResult(success=False, error=str(exc))
        try:
            await asyncio.to_thread(self.repository.delete_meal, user_id, meal_id)
        except Exception as exc:
            _logger.exception("Failed to delete meal %s", meal_id)
            return MealOperationResult(success=False, error=str(exc))
        removed = next((meal for meal in self.meals if meal.id == meal_id), None)
        remaining = [meal for meal in self.meals if meal.id != meal_id]
        self._set_meals(remaining)
        await self._persist(user_id, self._active_date(), remaining)
        return MealOperationResult(success=True, meal=removed)

    def check_rollover(self) -> bool:
        """Reset state if the local date moved past the current date.

        The reset happens before this returns; eviction of the previous
        date's cache and the load for the new date run as a background task.
        """
        new_date = today(self.clock)
        if self.current_date is None or new_date == self.current_date:
            return False
        previous = self.current_date
        _logger.info("Local date rolled over: %s -> %s", previous, new_date)
        self.current_date = new_date
        self._set_meals([])
        self._spawn(self._after_rollover(previous))
        return True

    async def wait_idle(self) -> None:
        """Wait for background refreshes and rollover loads to finish."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def _rollover_tick(self) -> None:
        if self.check_rollover():
            await self.wait_idle()

    async def _after_rollover(self, previous: date) -> None:
        user_id = self.session.user_id
        if user_id is not None:
            try:
                await self.cache.evict(user_id, previous)
            except Exception:
                _logger.exception("Failed to evict meal cache for %s", previous)
        await self.load()

    async def _background_refresh(self) -> None:
        await self.refresh_from_remote()

    async def _persist(
        self, user_id: UUID, day: date, meals: list[MealRecord]
    ) -> None:
        try:
            await self.cache.write(user_id, day, meals, self.clock.now())
        except Exception:
            _logger.exception("Failed to write meal cache for %s", day)

    def _set_meals(self, meals: list[MealRecord]) -> None:
        self.meals = list(meals)
        self.totals = NutritionTotals.from_meals(self.meals)

    def _active_date(self) -> date:
        if self.current_date is None:
            self.current_date = today(self.clock)
        return self.current_date

    def _spawn(self, coro: Coroutine[object, object, None]) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
