"""Dependency container wiring for the application."""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from uuid import UUID

from supabase import create_client

from nutrition_sync.adapters.revenuecat_client import (
    BillingClient,
    HttpxRevenueCatClient,
)
from nutrition_sync.adapters.supabase_meal_repository import SupabaseMealRepository
from nutrition_sync.adapters.supabase_subscription_repository import (
    SupabaseSubscriptionRepository,
)
from nutrition_sync.adapters.supabase_usage_repository import SupabaseUsageRepository
from nutrition_sync.clock import Clock, LocalClock
from nutrition_sync.config import Settings
from nutrition_sync.services.daily import DailyMealTracker
from nutrition_sync.services.history import MealHistoryService
from nutrition_sync.services.meal_cache import MealCache
from nutrition_sync.services.session import UserSession
from nutrition_sync.services.storage import JsonFileKeyValueStore, KeyValueStore
from nutrition_sync.services.subscriptions import SubscriptionService
from nutrition_sync.services.usage import FeatureUsageService

_logger = logging.getLogger(__name__)


@dataclass
class AppContainer:
    """Holds application-wide dependencies and the user session lifecycle."""

    settings: Settings
    session: UserSession
    clock: Clock
    storage: KeyValueStore
    daily_cache: MealCache
    history_cache: MealCache
    billing_client: BillingClient
    daily_tracker: DailyMealTracker
    history_service: MealHistoryService
    usage_service: FeatureUsageService
    subscription_service: SubscriptionService
    close_resources: Callable[[], Awaitable[None]]

    async def sign_in(self, user_id: UUID) -> None:
        """Start the session-scoped services for a user."""
        self.session.sign_in(user_id)
        await self.daily_tracker.start()
        await self.history_service.maybe_cleanup()
        await self.subscription_service.initialize(user_id)
        self.subscription_service.start_polling()
        _logger.info("Session started")

    async def sign_out(self) -> None:
        """Stop session-scoped work and forget the user's cached data."""
        user_id = self.session.user_id
        await self.subscription_service.logout()
        await self.daily_tracker.stop()
        self.history_service.reset()
        if user_id is not None:
            await self.daily_cache.clear_user(user_id)
            await self.history_cache.clear_user(user_id)
        self.session.sign_out()
        _logger.info("Session ended")


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    supabase_client = create_client(
        resolved_settings.supabase_url, resolved_settings.supabase_key
    )
    meal_repository = SupabaseMealRepository(supabase_client)
    subscription_repository = SupabaseSubscriptionRepository(supabase_client)
    usage_repository = SupabaseUsageRepository(supabase_client)
    session = UserSession()
    clock = LocalClock(resolved_settings.timezone)
    storage = JsonFileKeyValueStore(resolved_settings.storage_path)
    daily_cache = MealCache(storage, namespace="daily")
    history_cache = MealCache(storage, namespace="history")
    billing_client = HttpxRevenueCatClient.create(
        api_key=resolved_settings.revenuecat_api_key,
        base_url=resolved_settings.revenuecat_base_url,
        platform=resolved_settings.revenuecat_platform,
        clock=clock,
    )
    daily_tracker = DailyMealTracker(
        repository=meal_repository,
        cache=daily_cache,
        session=session,
        clock=clock,
        freshness_window_seconds=resolved_settings.freshness_window_seconds,
        rollover_check_seconds=resolved_settings.rollover_check_seconds,
    )
    history_service = MealHistoryService(
        repository=meal_repository,
        cache=history_cache,
        daily=daily_tracker,
        session=session,
        clock=clock,
        storage=storage,
        cleanup_caches=[daily_cache],
        batch_size=resolved_settings.history_batch_size,
        batch_delay_seconds=resolved_settings.history_batch_delay_seconds,
        recent_days=resolved_settings.history_recent_days,
        retention_days=resolved_settings.cache_retention_days,
        cleanup_interval_seconds=resolved_settings.cache_cleanup_interval_seconds,
    )
    usage_service = FeatureUsageService(repository=usage_repository, clock=clock)
    subscription_service = SubscriptionService(
        billing=billing_client,
        repository=subscription_repository,
        clock=clock,
        usage=usage_service,
        allow_first_purchase_bootstrap=(
            resolved_settings.allow_first_purchase_bootstrap
        ),
        poll_seconds=resolved_settings.subscription_poll_seconds,
        platform=resolved_settings.revenuecat_platform,
    )

    async def close_resources() -> None:
        await subscription_service.stop_polling()
        await daily_tracker.stop()
        await billing_client.close()

    return AppContainer(
        settings=resolved_settings,
        session=session,
        clock=clock,
        storage=storage,
        daily_cache=daily_cache,
        history_cache=history_cache,
        billing_client=billing_client,
        daily_tracker=daily_tracker,
        history_service=history_service,
        usage_service=usage_service,
        subscription_service=subscription_service,
        close_resources=close_resources,
    )
