"""RevenueCat billing client adapter."""

import logging
from dataclasses import dataclass, field
from typing import Protocol
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from nutrition_sync.adapters.revenuecat_models import (
    RevenueCatError,
    RevenueCatSubscriberResponse,
    to_customer_info,
)
from nutrition_sync.clock import Clock, LocalClock
from nutrition_sync.domain.subscriptions import CustomerInfo
from nutrition_sync.errors import BillingError, PurchaseCancelledError

# RevenueCat PURCHASE_CANCELLED error code.
_PURCHASE_CANCELLED_CODE = 1

_logger = logging.getLogger(__name__)


class BillingClient(Protocol):
    """Interface for billing platform interactions."""

    async def initialize(self, app_user_id: str) -> None:
        """Identify the device customer as the given app user."""

    async def get_customer_info(self) -> CustomerInfo | None:
        """Return the current customer, or None when billing is unavailable."""

    async def purchase(self, product_id: str, receipt: str) -> CustomerInfo:
        """Submit a purchase receipt and return the updated customer."""

    async def restore_purchases(self, receipt: str) -> CustomerInfo:
        """Re-submit a receipt to restore previous purchases."""

    async def log_out(self) -> None:
        """Forget the identified app user."""

    async def close(self) -> None:
        """Release client resources."""


@dataclass
class HttpxRevenueCatClient(BillingClient):
    """RevenueCat REST v1 client implemented with httpx."""

    api_key: str | None
    base_url: str
    platform: str
    http_client: httpx.AsyncClient
    app_user_id: str | None = None
    clock: Clock = field(default_factory=LocalClock)

    @classmethod
    def create(
        cls,
        api_key: str | None,
        base_url: str,
        platform: str,
        clock: Clock | None = None,
    ) -> "HttpxRevenueCatClient":
        """Create a RevenueCat client with a managed httpx session."""
        return cls(
            api_key=api_key,
            base_url=base_url.rstrip("/"),
            platform=platform,
            http_client=httpx.AsyncClient(),
            clock=clock or LocalClock(),
        )

    @property
    def available(self) -> bool:
        return bool(self.api_key)

    async def initialize(self, app_user_id: str) -> None:
        """Identify the device customer as the given app user."""
        if not self.available:
            _logger.info("RevenueCat API key not configured; billing unavailable")
        self.app_user_id = app_user_id

    async def get_customer_info(self) -> CustomerInfo | None:
        """Fetch the subscriber record for the identified user."""
        if not self.available or self.app_user_id is None:
            return None
        url = f"{self.base_url}/subscribers/{quote(self.app_user_id, safe='')}"
        response = await self.http_client.get(url, headers=self._headers(), timeout=10)
        response.raise_for_status()
        return self._parse_customer(response)

    async def purchase(self, product_id: str, receipt: str) -> CustomerInfo:
        """Post a receipt for a product."""
        return await self._post_receipt(receipt, product_id)

    async def restore_purchases(self, receipt: str) -> CustomerInfo:
        """Post a receipt without a product to restore purchases."""
        return await self._post_receipt(receipt, None)

    async def log_out(self) -> None:
        self.app_user_id = None

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()

    async def _post_receipt(self, receipt: str, product_id: str | None) -> CustomerInfo:
        if not self.available:
            raise BillingError("Billing is not configured")
        if self.app_user_id is None:
            raise BillingError("Billing customer is not identified")
        payload: dict[str, object] = {
            "app_user_id": self.app_user_id,
            "fetch_token": receipt,
        }
        if product_id is not None:
            payload["product_id"] = product_id
        response = await self.http_client.post(
            f"{self.base_url}/receipts",
            json=payload,
            headers=self._headers(),
            timeout=15,
        )
        if response.is_client_error:
            error = _parse_error(response)
            if error.code == _PURCHASE_CANCELLED_CODE:
                raise PurchaseCancelledError(error.message or "Purchase cancelled")
            raise BillingError(error.message or f"HTTP {response.status_code}")
        response.raise_for_status()
        return self._parse_customer(response)

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "X-Platform": self.platform,
        }

    def _parse_customer(self, response: httpx.Response) -> CustomerInfo:
        try:
            payload = RevenueCatSubscriberResponse.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise BillingError("Invalid subscriber payload") from exc
        return to_customer_info(payload, self.clock.now(), self.app_user_id)


def _parse_error(response: httpx.Response) -> RevenueCatError:
    try:
        return RevenueCatError.model_validate(response.json())
    except (ValueError, ValidationError):
        return RevenueCatError(message=response.text or None)
