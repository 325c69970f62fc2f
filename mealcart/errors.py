"""
Exception hierarchy for mealcart.

Every error carries a machine-readable ``code`` and a human-readable
``user_message`` that can be shown to a shopper without leaking internals.

Taxonomy:
- ValidationError: bad input (servings, household size, quantities)
- StorageError: local persistence failed (handled inside the store)
- RemoteError: anything that came back from, or failed to reach, the server
- MealPlanError: optimistic meal-plan updates that could not be applied
"""

from typing import Optional

import httpx


# Status codes that are worth retrying with backoff
RETRYABLE_STATUS_CODES = {408, 429, 500, 502, 503, 504}


class ErrorCode:
    """String codes attached to every MealCartError."""
    INVALID_HOUSEHOLD_SIZE = "INVALID_HOUSEHOLD_SIZE"
    INVALID_SERVING_SIZE = "INVALID_SERVING_SIZE"
    INVALID_QUANTITY = "INVALID_QUANTITY"
    UNPARSEABLE_QUANTITY = "UNPARSEABLE_QUANTITY"
    SCALING_CALCULATION_ERROR = "SCALING_CALCULATION_ERROR"
    MEASUREMENT_CONVERSION_ERROR = "MEASUREMENT_CONVERSION_ERROR"
    STORAGE_ERROR = "STORAGE_ERROR"
    STORAGE_QUOTA_EXCEEDED = "STORAGE_QUOTA_EXCEEDED"
    NETWORK_ERROR = "NETWORK_ERROR"
    SYNC_ERROR = "SYNC_ERROR"
    SYNC_CONFLICT = "SYNC_CONFLICT"
    NOT_FOUND = "NOT_FOUND"
    MEAL_PLAN_ERROR = "MEAL_PLAN_ERROR"


class MealCartError(Exception):
    """
    Base exception for mealcart.

    Attributes:
        message: Internal message for logs.
        code: One of the ErrorCode constants.
        user_message: Message safe to show to a user.
        recoverable: True if the caller can reasonably try again.
    """

    default_code = ErrorCode.SYNC_ERROR
    default_user_message = "Something went wrong. Please try again."

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        user_message: Optional[str] = None,
        recoverable: bool = True,
    ):
        self.message = message
        self.code = code or self.default_code
        self.user_message = user_message or self.default_user_message
        self.recoverable = recoverable
        super().__init__(message)


class ValidationError(MealCartError):
    """Input failed validation."""
    default_code = ErrorCode.INVALID_QUANTITY
    default_user_message = "Please check the values you entered."


class InvalidServingsError(ValidationError):
    """Raised when a serving count is zero, negative, or not a number."""
    default_code = ErrorCode.INVALID_SERVING_SIZE
    default_user_message = "Serving size must be greater than zero."

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message, recoverable=False)


class InvalidHouseholdSizeError(ValidationError):
    default_code = ErrorCode.INVALID_HOUSEHOLD_SIZE
    default_user_message = "Household size must be between 1 and 20 people."


class StorageError(MealCartError):
    """Local durable store failure. Never propagates out of the store."""
    default_code = ErrorCode.STORAGE_ERROR
    default_user_message = "Offline storage is unavailable. Changes are kept in memory only."


class StorageQuotaExceededError(StorageError):
    default_code = ErrorCode.STORAGE_QUOTA_EXCEEDED
    default_user_message = "Offline storage is full. Old shopping lists will be cleaned up."


class ShoppingListNotFoundError(MealCartError):
    """A local shopping list, category or item lookup came up empty."""
    default_code = ErrorCode.NOT_FOUND
    default_user_message = "That shopping list is no longer on this device."

    def __init__(self, message: str):
        super().__init__(message, recoverable=False)


class RemoteError(MealCartError):
    """
    Error talking to the remote API.

    Attributes:
        status_code: HTTP status if a response was received.
        retryable: Whether the sync queue should retry with backoff.
    """

    default_code = ErrorCode.SYNC_ERROR
    default_user_message = "We couldn't reach the server. Your changes are saved on this device."

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        retryable: bool = False,
        code: Optional[str] = None,
        user_message: Optional[str] = None,
    ):
        self.status_code = status_code
        self.retryable = retryable
        super().__init__(message, code=code, user_message=user_message, recoverable=retryable)


class NetworkError(RemoteError):
    """Timeouts, resets, DNS failures and 5xx responses."""
    default_code = ErrorCode.NETWORK_ERROR

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message, status_code=status_code, retryable=True)


class SyncConflictError(RemoteError):
    """Server rejected the write because its version moved on (HTTP 409)."""
    default_code = ErrorCode.SYNC_CONFLICT
    default_user_message = (
        "This list was changed on another device. Review the changes before syncing again."
    )

    def __init__(self, message: str, server_version: Optional[int] = None):
        self.server_version = server_version
        super().__init__(message, status_code=409, retryable=False)


class NotFoundError(RemoteError):
    default_code = ErrorCode.NOT_FOUND
    default_user_message = "We couldn't find that item on the server."

    def __init__(self, message: str):
        super().__init__(message, status_code=404, retryable=False)


class MealPlanError(MealCartError):
    """An optimistic meal-plan update was rolled back."""
    default_code = ErrorCode.MEAL_PLAN_ERROR
    default_user_message = "Your meal plan couldn't be saved. Your last change was undone."

    def __init__(
        self,
        message: str,
        original_error: Optional[Exception] = None,
        status_code: Optional[int] = None,
        retryable: bool = False,
    ):
        self.original_error = original_error
        self.status_code = status_code
        self.retryable = retryable
        super().__init__(message, recoverable=retryable)


class MealPlanConflictError(MealPlanError):
    default_code = ErrorCode.SYNC_CONFLICT
    default_user_message = (
        "Your meal plan was updated somewhere else. We've loaded the latest version."
    )


def classify_http_error(exc: Exception) -> MealCartError:
    """
    Map an httpx exception (or an already-classified error) into the taxonomy.

    Args:
        exc: Exception raised by an httpx call.

    Returns:
        A RemoteError subclass describing whether the failure is retryable.
    """
    if isinstance(exc, MealCartError):
        return exc
    if isinstance(exc, httpx.TimeoutException):
        return NetworkError(f"Request timed out: {exc}")
    if isinstance(exc, httpx.HTTPStatusError):
        return error_for_status(exc.response.status_code, str(exc))
    if isinstance(exc, httpx.TransportError):
        return NetworkError(f"Connection failed: {exc}")
    return RemoteError(f"Unexpected remote failure: {exc}", retryable=False)


def error_for_status(status_code: int, message: str) -> RemoteError:
    """Build the right RemoteError for an HTTP status code."""
    if status_code == 409:
        return SyncConflictError(message)
    if status_code == 404:
        return NotFoundError(message)
    if status_code in RETRYABLE_STATUS_CODES:
        return NetworkError(message, status_code=status_code)
    return RemoteError(message, status_code=status_code, retryable=False)
