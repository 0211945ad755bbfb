"""Supabase repository for daily feature usage counters."""

from dataclasses import dataclass
from datetime import date
from uuid import UUID

from supabase import Client

from nutrition_sync.services.usage import UsageRepository


@dataclass
class SupabaseUsageRepository(UsageRepository):
    """Supabase implementation for daily_feature_usage."""

    client: Client

    def get_usage_count(self, user_id: UUID, feature: str, day: date) -> int:
        """Return how often a feature was used on a date."""
        response = (
            self.client.table("daily_feature_usage")
            .select("usage_count")
            .eq("user_id", str(user_id))
            .eq("feature_name", feature)
            .eq("usage_date", day.isoformat())
            .limit(1)
            .execute()
        )
        if not response.data:
            return 0
        return int(response.data[0].get("usage_count") or 0)

    def increment_usage(self, user_id: UUID, feature: str, day: date) -> None:
        """Increment the counter through the increment_daily_usage RPC."""
        self.client.rpc(
            "increment_daily_usage",
            {
                "p_user_id": str(user_id),
                "p_feature_name": feature,
                "p_usage_date": day.isoformat(),
            },
        ).execute()
