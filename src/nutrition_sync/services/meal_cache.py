"""Per-date meal cache on top of the key-value store."""

import json
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from uuid import UUID

from nutrition_sync.clock import parse_date, parse_timestamp
from nutrition_sync.domain.meals import MealRecord, meal_from_row, meal_to_cache
from nutrition_sync.services.storage import KeyValueStore

_logger = logging.getLogger(__name__)

_SEPARATOR = ":"


@dataclass(frozen=True)
class CacheSnapshot:
    """Cached meals for one date and when they were written."""

    day: date
    meals: list[MealRecord]
    synced_at: datetime | None


@dataclass
class MealCache:
    """Meal lists keyed by namespace, user and date.

    Keys look like ``<namespace>:<user_id>:<YYYY-MM-DD>``; the write timestamp
    lives under ``<namespace>_synced:<user_id>:<YYYY-MM-DD>``.
    """

    storage: KeyValueStore
    namespace: str

    def meals_key(self, user_id: UUID, day: date) -> str:
        return _SEPARATOR.join((self.namespace, str(user_id), day.isoformat()))

    def synced_key(self, user_id: UUID, day: date) -> str:
        return _SEPARATOR.join(
            (f"{self.namespace}_synced", str(user_id), day.isoformat())
        )

    async def read(self, user_id: UUID, day: date) -> CacheSnapshot | None:
        """Return the cached entry, or None on a miss or corrupt blob."""
        raw = await self.storage.get_item(self.meals_key(user_id, day))
        if raw is None:
            return None
        try:
            payload = json.loads(raw)
            if not isinstance(payload, list):
                raise TypeError("cached meals are not a list")
            if not all(isinstance(row, dict) for row in payload):
                raise TypeError("cached meal is not an object")
            meals = [meal_from_row(row) for row in payload]
        except (ValueError, TypeError, KeyError) as exc:
            _logger.warning(
                "Discarding corrupt meal cache %s: %s",
                self.meals_key(user_id, day),
                exc,
            )
            return None
        synced_raw = await self.storage.get_item(self.synced_key(user_id, day))
        return CacheSnapshot(
            day=day, meals=meals, synced_at=parse_timestamp(synced_raw)
        )

    async def write(
        self, user_id: UUID, day: date, meals: list[MealRecord], synced_at: datetime
    ) -> None:
        """Persist meals for a date together with a fresh timestamp."""
        payload = json.dumps([meal_to_cache(meal) for meal in meals])
        await self.storage.set_item(self.meals_key(user_id, day), payload)
        await self.storage.set_item(
            self.synced_key(user_id, day), synced_at.isoformat()
        )

    async def evict(self, user_id: UUID, day: date) -> None:
        await self.storage.remove_items(
            [self.meals_key(user_id, day), self.synced_key(user_id, day)]
        )

    async def cached_entries(self) -> list[tuple[str, date]]:
        """Return every key owned by this namespace with the date it covers."""
        entries: list[tuple[str, date]] = []
        prefixes = (
            f"{self.namespace}{_SEPARATOR}",
            f"{self.namespace}_synced{_SEPARATOR}",
        )
        for key in await self.storage.get_all_keys():
            if not key.startswith(prefixes):
                continue
            day = parse_date(key.rsplit(_SEPARATOR, 1)[-1])
            if day is not None:
                entries.append((key, day))
        return entries

    async def remove_older_than(self, cutoff: date) -> list[str]:
        """Remove entries for dates before the cutoff and return their keys."""
        stale = [key for key, day in await self.cached_entries() if day < cutoff]
        if stale:
            await self.storage.remove_items(stale)
        return stale

    async def clear_user(self, user_id: UUID) -> None:
        """Remove every entry salted with the user id."""
        marker = f"{_SEPARATOR}{user_id}{_SEPARATOR}"
        keys = [key for key, _ in await self.cached_entries() if marker in key]
        if keys:
            await self.storage.remove_items(keys)


def is_stale(
    snapshot: CacheSnapshot | None, now: datetime, freshness: timedelta
) -> bool:
    """Return True when the snapshot should be refreshed from the remote store."""
    if snapshot is None or snapshot.synced_at is None or not snapshot.meals:
        return True
    return now - snapshot.synced_at > freshness

