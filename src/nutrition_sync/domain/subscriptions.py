"""Subscription domain models and tier limits."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from uuid import UUID

UNLIMITED = -1


class Tier(StrEnum):
    FREE = "free"
    PRO = "pro"


class SubscriptionStatus(StrEnum):
    ACTIVE = "active"
    EXPIRED = "expired"
    FREE = "free"
    INACTIVE = "inactive"


@dataclass(frozen=True)
class FeatureLimits:
    """Feature caps for a tier. UNLIMITED means no cap."""

    ai_scans_per_day: int
    meal_history_days: int
    workout_plans: int
    can_export_data: bool
    can_access_meal_planning: bool
    can_access_detailed_micros: bool
    can_access_recipe_browser: bool
    can_create_custom_macros: bool
    support_level: str


FEATURE_LIMITS: dict[Tier, FeatureLimits] = {
    Tier.FREE: FeatureLimits(
        ai_scans_per_day=5,
        meal_history_days=7,
        workout_plans=1,
        can_export_data=False,
        can_access_meal_planning=False,
        can_access_detailed_micros=False,
        can_access_recipe_browser=False,
        can_create_custom_macros=False,
        support_level="community",
    ),
    Tier.PRO: FeatureLimits(
        ai_scans_per_day=UNLIMITED,
        meal_history_days=90,
        workout_plans=5,
        can_export_data=True,
        can_access_meal_planning=True,
        can_access_detailed_micros=True,
        can_access_recipe_browser=True,
        can_create_custom_macros=True,
        support_level="priority",
    ),
}

ENTITLEMENT_NAMES = ("Pro", "pro", "Premium", "premium", "CorePlus", "coreplus")


@dataclass(frozen=True)
class Entitlement:
    """A billing-platform entitlement as reported for the device customer."""

    identifier: str
    is_active: bool
    product_identifier: str | None = None
    expiration_date: datetime | None = None
    will_renew: bool = False


@dataclass(frozen=True)
class CustomerInfo:
    """Billing customer snapshot with its active entitlements.

    app_user_id is the id the customer was fetched under. An aliased customer
    keeps the id it was first created with in original_app_user_id.
    """

    app_user_id: str | None
    active_entitlements: dict[str, Entitlement] = field(default_factory=dict)
    original_app_user_id: str | None = None

    def pro_entitlement(self) -> Entitlement | None:
        """Return the entitlement granting pro access, if any."""
        for name in ENTITLEMENT_NAMES:
            entitlement = self.active_entitlements.get(name)
            if entitlement is not None:
                return entitlement
        for entitlement in self.active_entitlements.values():
            return entitlement
        return None


@dataclass(frozen=True)
class SubscriptionRecord:
    """Row of the remote subscription table."""

    user_id: UUID
    tier: Tier
    status: SubscriptionStatus
    product_id: str | None = None
    expires_at: datetime | None = None
    platform: str | None = None
    updated_at: datetime | None = None

    def is_active(self, now: datetime) -> bool:
        """Return True for a paid, active record that has not expired."""
        if self.tier == Tier.FREE or self.status != SubscriptionStatus.ACTIVE:
            return False
        return self.expires_at is None or self.expires_at > now


@dataclass(frozen=True)
class SubscriptionInfo:
    """Resolved subscription view for the signed-in user."""

    tier: Tier
    is_active: bool
    expires_at: datetime | None
    product_id: str | None
    limits: FeatureLimits

    @classmethod
    def free(cls) -> "SubscriptionInfo":
        return cls(
            tier=Tier.FREE,
            is_active=False,
            expires_at=None,
            product_id=None,
            limits=FEATURE_LIMITS[Tier.FREE],
        )


@dataclass(frozen=True)
class PurchaseResult:
    """Outcome of a purchase or restore."""

    success: bool
    cancelled: bool = False
    error: str | None = None
    info: SubscriptionInfo | None = None


@dataclass(frozen=True)
class UsageCheck:
    """Daily feature usage against a tier limit."""

    can_use: bool
    used: int = 0
    remaining: int = 0
    limit: int = 0
