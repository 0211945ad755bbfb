"""Daily feature usage limits."""

import asyncio
import logging
from dataclasses import dataclass
from datetime import date
from typing import Protocol
from uuid import UUID

from nutrition_sync.clock import Clock, today
from nutrition_sync.domain.subscriptions import UNLIMITED, UsageCheck

_logger = logging.getLogger(__name__)


class UsageRepository(Protocol):
    """Persistence interface for per-day feature counters."""

    def get_usage_count(self, user_id: UUID, feature: str, day: date) -> int:
        """Return the usage count for a feature on a date."""

    def increment_usage(self, user_id: UUID, feature: str, day: date) -> None:
        """Increment the usage count for a feature on a date."""


@dataclass
class FeatureUsageService:
    """Checks and records per-day usage of metered features."""

    repository: UsageRepository
    clock: Clock

    async def check_daily_usage(
        self, user_id: UUID, feature: str, limit: int
    ) -> UsageCheck:
        """Compare today's usage with a limit. Errors deny usage."""
        if limit == UNLIMITED:
            return UsageCheck(can_use=True, remaining=UNLIMITED, limit=UNLIMITED)
        try:
            used = await asyncio.to_thread(
                self.repository.get_usage_count, user_id, feature, today(self.clock)
            )
        except Exception:
            _logger.exception("Failed to read usage for %s", feature)
            return UsageCheck(can_use=False, limit=limit)
        return UsageCheck(
            can_use=used < limit,
            used=used,
            remaining=max(0, limit - used),
            limit=limit,
        )

    async def increment_daily_usage(self, user_id: UUID, feature: str) -> bool:
        """Record one use of a feature; returns False if it could not be saved."""
        try:
            await asyncio.to_thread(
                self.repository.increment_usage, user_id, feature, today(self.clock)
            )
        except Exception:
            _logger.exception("Failed to increment usage for %s", feature)
            return False
        return True
