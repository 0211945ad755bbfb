"""Subscription reconciliation between the billing platform and the remote table."""

import asyncio
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Protocol
from uuid import UUID

from nutrition_sync.adapters.revenuecat_client import BillingClient
from nutrition_sync.clock import Clock
from nutrition_sync.domain.subscriptions import (
    FEATURE_LIMITS,
    UNLIMITED,
    CustomerInfo,
    FeatureLimits,
    PurchaseResult,
    SubscriptionInfo,
    SubscriptionRecord,
    SubscriptionStatus,
    Tier,
    UsageCheck,
)
from nutrition_sync.errors import PurchaseCancelledError
from nutrition_sync.services.scheduling import PeriodicTask
from nutrition_sync.services.usage import FeatureUsageService

_logger = logging.getLogger(__name__)

PREMIUM_FEATURES = {
    "unlimited_ai_scans": lambda limits: limits.ai_scans_per_day == UNLIMITED,
    "meal_planning": lambda limits: limits.can_access_meal_planning,
    "detailed_micros": lambda limits: limits.can_access_detailed_micros,
    "recipe_browser": lambda limits: limits.can_access_recipe_browser,
    "data_export": lambda limits: limits.can_export_data,
    "custom_macros": lambda limits: limits.can_create_custom_macros,
}

FEATURE_LIMIT_FIELDS = {
    "ai_scans": "ai_scans_per_day",
    "meal_history_days": "meal_history_days",
    "workout_plans": "workout_plans",
}


class SubscriptionRepository(Protocol):
    """Persistence interface for subscription records."""

    def get_subscription(self, user_id: UUID) -> SubscriptionRecord | None:
        """Return the user's record regardless of status."""

    def get_active_subscription(self, user_id: UUID) -> SubscriptionRecord | None:
        """Return the user's record only when its status is active."""

    def upsert_subscription(self, record: SubscriptionRecord) -> None:
        """Insert or replace the user's record."""


@dataclass
class SubscriptionService:
    """Resolves the signed-in user's tier and feature limits.

    Billing entitlements only grant access when they can be attributed to the
    signed-in user. Any failure while resolving leaves the user on the free
    tier.
    """

    billing: BillingClient
    repository: SubscriptionRepository
    clock: Clock
    usage: FeatureUsageService
    allow_first_purchase_bootstrap: bool = True
    poll_seconds: float = 30.0
    platform: str | None = None

    user_id: UUID | None = field(default=None, init=False)
    info: SubscriptionInfo = field(default_factory=SubscriptionInfo.free, init=False)
    _poller: PeriodicTask | None = field(default=None, init=False, repr=False)

    @property
    def current_tier(self) -> Tier:
        return self.info.tier

    @property
    def limits(self) -> FeatureLimits:
        return self.info.limits

    def is_premium(self) -> bool:
        return self.info.tier != Tier.FREE and self.info.is_active

    async def initialize(self, user_id: UUID) -> SubscriptionInfo:
        """Bind the service to a user and resolve their subscription."""
        self.user_id = user_id
        self.info = SubscriptionInfo.free()
        try:
            await self.billing.initialize(str(user_id))
        except Exception:
            _logger.exception("Failed to initialize billing client")
        return await self.refresh_subscription_status()

    async def refresh_subscription_status(
        self, user_id: UUID | None = None
    ) -> SubscriptionInfo:
        """Reconcile billing state with the stored record and cache the result."""
        user_id = user_id or self.user_id
        if user_id is None:
            _logger.debug("Skipping subscription refresh: no signed-in user")
            self.info = SubscriptionInfo.free()
            return self.info
        try:
            info = await self._resolve(user_id)
        except Exception:
            _logger.exception("Subscription refresh failed; falling back to free tier")
            info = SubscriptionInfo.free()
        if self.user_id not in (None, user_id):
            return SubscriptionInfo.free()
        self.info = info
        return info

    def get_subscription_info(self) -> SubscriptionInfo:
        return self.info

    def can_access_feature(self, feature: str) -> bool:
        """Return whether the current tier unlocks a feature.

        Features that are not gated are available on every tier.
        """
        check = PREMIUM_FEATURES.get(feature)
        if check is None:
            return True
        return bool(check(self.limits))

    def get_feature_limit(self, feature: str) -> int:
        """Return the numeric cap for a feature; UNLIMITED means no cap."""
        name = FEATURE_LIMIT_FIELDS.get(feature)
        if name is None:
            raise ValueError(f"Unknown feature limit: {feature}")
        return getattr(self.limits, name)

    async def check_feature_usage(self, feature: str) -> UsageCheck:
        """Compare today's usage of a metered feature with the tier limit."""
        if self.user_id is None:
            return UsageCheck(can_use=False)
        limit = self.get_feature_limit(feature)
        return await self.usage.check_daily_usage(self.user_id, feature, limit)

    async def record_feature_usage(self, feature: str) -> bool:
        if self.user_id is None:
            return False
        return await self.usage.increment_daily_usage(self.user_id, feature)

    async def purchase(self, product_id: str, receipt: str) -> PurchaseResult:
        """Submit a purchase and refresh the resolved subscription."""
        if self.user_id is None:
            return PurchaseResult(success=False, error="User not authenticated")
        try:
            await self.billing.purchase(product_id, receipt)
        except PurchaseCancelledError:
            _logger.info("Purchase of %s cancelled", product_id)
            return PurchaseResult(success=False, cancelled=True)
        except Exception as exc:
            _logger.exception("Purchase of %s failed", product_id)
            return PurchaseResult(success=False, error=str(exc))
        info = await self.refresh_subscription_status()
        return PurchaseResult(success=True, info=info)

    async def restore_purchases(self, receipt: str) -> PurchaseResult:
        """Restore previous purchases and refresh the resolved subscription."""
        if self.user_id is None:
            return PurchaseResult(success=False, error="User not authenticated")
        try:
            await self.billing.restore_purchases(receipt)
        except Exception as exc:
            _logger.exception("Restoring purchases failed")
            return PurchaseResult(success=False, error=str(exc))
        info = await self.refresh_subscription_status()
        return PurchaseResult(success=True, info=info)

    async def reset_to_free(self, user_id: UUID | None = None) -> SubscriptionInfo:
        """Overwrite the stored record with the free tier."""
        user_id = user_id or self.user_id
        if user_id is None:
            raise ValueError("No user to reset")
        await asyncio.to_thread(
            self.repository.upsert_subscription,
            SubscriptionRecord(
                user_id=user_id,
                tier=Tier.FREE,
                status=SubscriptionStatus.FREE,
                platform=self.platform,
                updated_at=self.clock.now(),
            ),
        )
        _logger.info("Subscription reset to free tier")
        if user_id == self.user_id:
            self.info = SubscriptionInfo.free()
        return SubscriptionInfo.free()

    async def logout(self) -> None:
        """Stop polling, log the billing customer out and drop to free tier."""
        await self.stop_polling()
        try:
            await self.billing.log_out()
        except Exception:
            _logger.exception("Billing log out failed")
        self.user_id = None
        self.info = SubscriptionInfo.free()

    def start_polling(self) -> None:
        if self._poller is None:
            self._poller = PeriodicTask(
                name="subscription-status-poll",
                interval_seconds=self.poll_seconds,
                callback=self._poll,
            )
        self._poller.start()

    async def stop_polling(self) -> None:
        if self._poller is not None:
            await self._poller.stop()

    async def _poll(self) -> None:
        previous = self.info.tier
        info = await self.refresh_subscription_status()
        if info.tier != previous:
            _logger.info("Subscription tier changed: %s -> %s", previous, info.tier)

    async def _resolve(self, user_id: UUID) -> SubscriptionInfo:
        customer = await self.billing.get_customer_info()
        if customer is None:
            return await self._resolve_from_record(user_id)
        return await self._resolve_from_customer(user_id, customer)

    async def _resolve_from_record(self, user_id: UUID) -> SubscriptionInfo:
        record = await asyncio.to_thread(self.repository.get_subscription, user_id)
        if record is None:
            return SubscriptionInfo.free()
        now = self.clock.now()
        if record.is_active(now):
            return _info_from_record(record, now)
        if record.status == SubscriptionStatus.ACTIVE:
            _logger.info("Stored subscription expired; correcting to free tier")
            await asyncio.to_thread(
                self.repository.upsert_subscription,
                replace(
                    record,
                    tier=Tier.FREE,
                    status=SubscriptionStatus.EXPIRED,
                    updated_at=now,
                ),
            )
        return SubscriptionInfo.free()

    async def _resolve_from_customer(
        self, user_id: UUID, customer: CustomerInfo
    ) -> SubscriptionInfo:
        now = self.clock.now()
        entitlement = customer.pro_entitlement()
        if entitlement is None:
            await asyncio.to_thread(
                self.repository.upsert_subscription,
                SubscriptionRecord(
                    user_id=user_id,
                    tier=Tier.FREE,
                    status=SubscriptionStatus.FREE,
                    platform=self.platform,
                    updated_at=now,
                ),
            )
            return SubscriptionInfo.free()

        if customer.app_user_id is not None and customer.app_user_id != str(user_id):
            _logger.warning(
                "Entitlement %s belongs to billing customer %s, not the signed-in "
                "user; forcing free tier",
                entitlement.identifier,
                customer.app_user_id,
            )
            return SubscriptionInfo.free()

        owned = await asyncio.to_thread(
            self.repository.get_active_subscription, user_id
        )
        if owned is None and not self.allow_first_purchase_bootstrap:
            _logger.warning(
                "Entitlement %s has no subscription record for the signed-in user; "
                "forcing free tier",
                entitlement.identifier,
            )
            return SubscriptionInfo.free()
        if owned is None:
            _logger.info(
                "Recording first purchase of %s", entitlement.product_identifier
            )

        record = SubscriptionRecord(
            user_id=user_id,
            tier=Tier.PRO,
            status=SubscriptionStatus.ACTIVE,
            product_id=entitlement.product_identifier,
            expires_at=entitlement.expiration_date,
            platform=self.platform,
            updated_at=now,
        )
        await asyncio.to_thread(self.repository.upsert_subscription, record)
        return _info_from_record(record, now)


def _info_from_record(record: SubscriptionRecord, now: datetime) -> SubscriptionInfo:
    active = record.is_active(now)
    tier = record.tier if active else Tier.FREE
    return SubscriptionInfo(
        tier=tier,
        is_active=active,
        expires_at=record.expires_at,
        product_id=record.product_id,
        limits=FEATURE_LIMITS[tier],
    )
