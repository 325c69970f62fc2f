"""
Unit tests for preferences.py and config.py.
"""

import pytest

from mealcart.config import MealCartSettings
from mealcart.errors import InvalidHouseholdSizeError
from mealcart.preferences import UserPreferences, load_preferences, validate_household_size


class TestHouseholdSize:
    @pytest.mark.parametrize("size", [1, 4, 20])
    def test_accepts_range(self, size):
        assert validate_household_size(size) == size

    @pytest.mark.parametrize("size", [0, 21, -3, 2.5, "4", None, True])
    def test_rejects_out_of_range_or_non_integer(self, size):
        with pytest.raises(InvalidHouseholdSizeError):
            validate_household_size(size)


class TestUserPreferences:
    def test_default(self):
        assert UserPreferences().household_size == 2

    def test_load(self):
        assert load_preferences({"household_size": 6}).household_size == 6

    @pytest.mark.parametrize("payload", [{"household_size": 0}, {"household_size": 25}, {"household_size": 2.5}])
    def test_load_rejects_invalid(self, payload):
        with pytest.raises(InvalidHouseholdSizeError):
            load_preferences(payload)


class TestSettings:
    def test_environment_overrides(self, monkeypatch, tmp_path):
        monkeypatch.setenv("MEALCART_DB_DIR", str(tmp_path))
        monkeypatch.setenv("MEALCART_SYNC_MAX_RETRIES", "5")
        settings = MealCartSettings()
        assert settings.db_dir == str(tmp_path)
        assert settings.sync_max_retries == 5

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("MEALCART_MAX_STORED_LISTS", raising=False)
        settings = MealCartSettings()
        assert settings.max_stored_lists == 20
        assert settings.default_household_size == 2
