"""Exception types raised across service boundaries."""


class NutritionSyncError(Exception):
    """Base error for the library."""


class AuthenticationError(NutritionSyncError):
    """Raised when an operation needs a signed-in user and none is present."""

    def __init__(self, message: str = "User not authenticated") -> None:
        super().__init__(message)


class RemoteStoreError(NutritionSyncError):
    """Raised when the remote data store rejects a call or returns no data."""


class BillingError(NutritionSyncError):
    """Raised when the billing platform call fails."""


class PurchaseCancelledError(BillingError):
    """Raised when the user cancelled a purchase."""
