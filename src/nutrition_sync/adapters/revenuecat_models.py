"""Pydantic models for RevenueCat REST payloads."""

from datetime import datetime

from pydantic import BaseModel, Field

from nutrition_sync.domain.subscriptions import CustomerInfo, Entitlement


class RevenueCatEntitlement(BaseModel):
    """Entitlement entry of a subscriber payload."""

    product_identifier: str | None = None
    expires_date: datetime | None = None
    purchase_date: datetime | None = None


class RevenueCatSubscription(BaseModel):
    """Subscription entry of a subscriber payload."""

    expires_date: datetime | None = None
    unsubscribe_detected_at: datetime | None = None
    billing_issues_detected_at: datetime | None = None


class RevenueCatSubscriber(BaseModel):
    """Subscriber payload."""

    original_app_user_id: str | None = None
    entitlements: dict[str, RevenueCatEntitlement] = Field(default_factory=dict)
    subscriptions: dict[str, RevenueCatSubscription] = Field(default_factory=dict)


class RevenueCatSubscriberResponse(BaseModel):
    """Response of GET /subscribers/{id} and POST /receipts."""

    request_date: datetime | None = None
    subscriber: RevenueCatSubscriber


class RevenueCatError(BaseModel):
    """Error body returned with non-2xx responses."""

    code: int | None = None
    message: str | None = None


def to_customer_info(
    payload: RevenueCatSubscriberResponse,
    now: datetime,
    app_user_id: str | None = None,
) -> CustomerInfo:
    """Convert a subscriber payload to CustomerInfo, keeping active entitlements.

    An entitlement without an expiry date is a lifetime grant. The customer is
    attributed to the app user id it was requested for, falling back to the
    subscriber's original id.
    """
    subscriber = payload.subscriber
    active: dict[str, Entitlement] = {}
    for name, entitlement in subscriber.entitlements.items():
        expires = entitlement.expires_date
        if expires is not None and expires <= now:
            continue
        subscription = subscriber.subscriptions.get(
            entitlement.product_identifier or ""
        )
        will_renew = (
            subscription is not None
            and subscription.unsubscribe_detected_at is None
            and subscription.billing_issues_detected_at is None
        )
        active[name] = Entitlement(
            identifier=name,
            is_active=True,
            product_identifier=entitlement.product_identifier,
            expiration_date=expires,
            will_renew=will_renew,
        )
    return CustomerInfo(
        app_user_id=app_user_id or subscriber.original_app_user_id,
        active_entitlements=active,
        original_app_user_id=subscriber.original_app_user_id,
    )
