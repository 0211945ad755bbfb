"""Supabase repository for subscription records."""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID

from supabase import Client

from nutrition_sync.clock import parse_timestamp
from nutrition_sync.domain.subscriptions import (
    SubscriptionRecord,
    SubscriptionStatus,
    Tier,
)
from nutrition_sync.services.subscriptions import SubscriptionRepository

_logger = logging.getLogger(__name__)

EXPIRED = datetime(1970, 1, 1, tzinfo=UTC)
_TABLE = "user_subscriptions"
_COLUMNS = (
    "user_id, subscription_tier, subscription_status, subscription_product_id, "
    "subscription_expires_at, platform, updated_at"
)


@dataclass
class SupabaseSubscriptionRepository(SubscriptionRepository):
    """Supabase implementation for the user_subscriptions table."""

    client: Client

    def get_subscription(self, user_id: UUID) -> SubscriptionRecord | None:
        """Return the stored subscription row for a user."""
        response = (
            self.client.table(_TABLE)
            .select(_COLUMNS)
            .eq("user_id", str(user_id))
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _parse_row(response.data[0])

    def get_active_subscription(self, user_id: UUID) -> SubscriptionRecord | None:
        """Return the user's row only when its status is active."""
        response = (
            self.client.table(_TABLE)
            .select(_COLUMNS)
            .eq("user_id", str(user_id))
            .eq("subscription_status", SubscriptionStatus.ACTIVE.value)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _parse_row(response.data[0])

    def upsert_subscription(self, record: SubscriptionRecord) -> None:
        """Insert or update the user's row."""
        updated_at = record.updated_at or datetime.now(tz=UTC)
        self.client.table(_TABLE).upsert(
            {
                "user_id": str(record.user_id),
                "subscription_tier": record.tier.value,
                "subscription_status": record.status.value,
                "subscription_product_id": record.product_id,
                "subscription_expires_at": (
                    record.expires_at.isoformat() if record.expires_at else None
                ),
                "platform": record.platform,
                "updated_at": updated_at.isoformat(),
            },
            on_conflict="user_id",
        ).execute()


def _parse_row(row: dict[str, object]) -> SubscriptionRecord:
    tier_raw = str(row.get("subscription_tier") or Tier.FREE.value)
    status_raw = str(row.get("subscription_status") or SubscriptionStatus.FREE.value)
    try:
        tier = Tier(tier_raw)
    except ValueError:
        tier = Tier.FREE
    try:
        status = SubscriptionStatus(status_raw)
    except ValueError:
        status = SubscriptionStatus.INACTIVE
    return SubscriptionRecord(
        user_id=UUID(str(row["user_id"])),
        tier=tier,
        status=status,
        product_id=row.get("subscription_product_id"),
        expires_at=_expiry(row.get("subscription_expires_at")),
        platform=row.get("platform"),
        updated_at=_timestamp(row.get("updated_at")),
    )


def _timestamp(value: object) -> datetime | None:
    return parse_timestamp(value) if isinstance(value, str) else None


def _expiry(value: object) -> datetime | None:
    if value is None:
        return None
    parsed = _timestamp(value)
    if parsed is None:
        _logger.warning("Unreadable subscription expiry %r, treating as expired", value)
        return EXPIRED
    return parsed
