"""
User preferences that drive scaling.
"""

from typing import Any, Dict

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, field_validator

from mealcart.errors import InvalidHouseholdSizeError

MIN_HOUSEHOLD_SIZE = 1
MAX_HOUSEHOLD_SIZE = 20
DEFAULT_HOUSEHOLD_SIZE = 2


class UserPreferences(BaseModel):
    """Per-user settings. household_size is the default serving count for every meal."""
    household_size: int = Field(default=DEFAULT_HOUSEHOLD_SIZE, ge=MIN_HOUSEHOLD_SIZE, le=MAX_HOUSEHOLD_SIZE)

    @field_validator("household_size", mode="before")
    @classmethod
    def reject_non_integers(cls, value):
        if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
            raise ValueError("household_size must be a whole number")
        return value


def validate_household_size(value) -> int:
    """
    Check a household size and return it.

    Raises:
        InvalidHouseholdSizeError: Unless value is a whole number from 1 to 20.
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidHouseholdSizeError(f"household size must be an integer, got {value!r}")
    if not MIN_HOUSEHOLD_SIZE <= value <= MAX_HOUSEHOLD_SIZE:
        raise InvalidHouseholdSizeError(
            f"household size must be between {MIN_HOUSEHOLD_SIZE} and {MAX_HOUSEHOLD_SIZE}, got {value}"
        )
    return value


def load_preferences(data: Dict[str, Any]) -> UserPreferences:
    """Validate a preferences payload, reporting problems as InvalidHouseholdSizeError."""
    try:
        return UserPreferences.model_validate(data)
    except PydanticValidationError as e:
        raise InvalidHouseholdSizeError(f"invalid preferences: {e.errors()[0]['msg']}") from e
