"""
Unit tests for meal_plan_ops.py - pure copy-on-write plan mutations.
"""

from datetime import date

import pytest

from mealcart.errors import InvalidHouseholdSizeError, InvalidServingsError, ValidationError
from mealcart.meal_plan_ops import (
    apply_household_size,
    assign_meal,
    clear_day,
    clear_serving_override,
    copy_meal,
    duplicate_day,
    empty_meal_plan,
    remove_meal,
    swap_meals,
    update_servings,
    week_start_for,
)


class TestWeekStart:
    def test_aligns_to_monday(self):
        assert week_start_for(date(2025, 10, 30)) == date(2025, 10, 27)
        assert week_start_for(date(2025, 10, 27)) == date(2025, 10, 27)
        assert week_start_for(date(2025, 11, 2)) == date(2025, 10, 27)

    def test_empty_plan_has_every_day(self):
        plan = empty_meal_plan("u1", date(2025, 10, 29))
        assert plan.week_start_date == date(2025, 10, 27)
        assert len(plan.meals) == 7
        assert plan.is_empty()


class TestAssignAndRemove:
    def test_assign_uses_household_size(self, empty_plan, pancakes):
        plan = assign_meal(empty_plan, "wednesday", "lunch", pancakes, household_size=3)
        slot = plan.get_slot("wednesday", "lunch")
        assert slot.servings == 3
        assert not slot.manual_serving_override
        assert slot.scheduled_for == date(2025, 10, 29)
        assert slot.recipe_id == pancakes.id

    def test_assign_with_servings_sets_override(self, empty_plan, pancakes):
        plan = assign_meal(empty_plan, "monday", "dinner", pancakes, household_size=3, servings=6)
        slot = plan.get_slot("monday", "dinner")
        assert slot.servings == 6
        assert slot.manual_serving_override

    def test_original_plan_is_untouched(self, empty_plan, pancakes):
        """Mutations return new plans; the input never changes."""
        plan = assign_meal(empty_plan, "monday", "dinner", pancakes, household_size=2)
        assert empty_plan.is_empty()
        assert plan is not empty_plan
        assert remove_meal(plan, "monday", "dinner").is_empty()
        assert plan.get_slot("monday", "dinner") is not None

    def test_remove_missing_meal_is_noop(self, empty_plan):
        assert remove_meal(empty_plan, "monday", "dinner") is empty_plan

    @pytest.mark.parametrize("day,meal_type", [("funday", "dinner"), ("monday", "brunch")])
    def test_rejects_unknown_slot(self, empty_plan, pancakes, day, meal_type):
        with pytest.raises(ValidationError):
            assign_meal(empty_plan, day, meal_type, pancakes, household_size=2)

    def test_rejects_bad_household_size(self, empty_plan, pancakes):
        with pytest.raises(InvalidHouseholdSizeError):
            assign_meal(empty_plan, "monday", "dinner", pancakes, household_size=0)

    def test_rejects_bad_servings(self, empty_plan, pancakes):
        with pytest.raises(InvalidServingsError):
            assign_meal(empty_plan, "monday", "dinner", pancakes, household_size=2, servings=0)

    def test_clear_day(self, sample_plan):
        plan = clear_day(sample_plan, "monday")
        assert plan.meals["monday"] == {}
        assert plan.get_slot("tuesday", "dinner") is not None


class TestCopyAndSwap:
    def test_copy_meal(self, sample_plan):
        plan = copy_meal(sample_plan, "monday", "breakfast", "friday", "lunch")
        source = plan.get_slot("monday", "breakfast")
        copy = plan.get_slot("friday", "lunch")
        assert copy.recipe == source.recipe
        assert copy.id != source.id
        assert copy.scheduled_for == date(2025, 10, 31)
        assert copy.meal_type == "lunch"

    def test_copy_from_empty_slot_fails(self, sample_plan):
        with pytest.raises(ValidationError):
            copy_meal(sample_plan, "sunday", "dinner", "monday", "dinner")

    def test_duplicate_day_replaces_target(self, sample_plan, pancakes):
        plan = assign_meal(sample_plan, "saturday", "dinner", pancakes, household_size=4)
        plan = duplicate_day(plan, "tuesday", "saturday")
        assert set(plan.meals["saturday"]) == {"dinner"}
        assert plan.get_slot("saturday", "dinner").recipe.name == "Mac and Cheese"

    def test_swap_meals(self, sample_plan):
        plan = swap_meals(sample_plan, "monday", "breakfast", "tuesday", "dinner")
        assert plan.get_slot("monday", "breakfast").recipe.name == "Mac and Cheese"
        assert plan.get_slot("tuesday", "dinner").recipe.name == "Buttermilk Pancakes"
        assert plan.get_slot("monday", "breakfast").meal_type == "breakfast"

    def test_swap_with_empty_slot_moves(self, sample_plan):
        plan = swap_meals(sample_plan, "monday", "breakfast", "monday", "lunch")
        assert plan.get_slot("monday", "breakfast") is None
        assert plan.get_slot("monday", "lunch").recipe.name == "Buttermilk Pancakes"


class TestServings:
    def test_update_servings_sets_override(self, sample_plan):
        plan = update_servings(sample_plan, "tuesday", "dinner", 8)
        slot = plan.get_slot("tuesday", "dinner")
        assert slot.servings == 8
        assert slot.manual_serving_override

    @pytest.mark.parametrize("servings", [0, -2, 1.5])
    def test_update_servings_rejects_invalid(self, sample_plan, servings):
        with pytest.raises(InvalidServingsError):
            update_servings(sample_plan, "tuesday", "dinner", servings)

    def test_household_change_skips_overrides(self, sample_plan):
        """Overrides are never silently overwritten by household-size changes."""
        plan = update_servings(sample_plan, "tuesday", "dinner", 8)
        plan = apply_household_size(plan, 5)
        assert plan.get_slot("monday", "breakfast").servings == 5
        assert plan.get_slot("tuesday", "dinner").servings == 8

    def test_household_change_without_effect_returns_same_plan(self, sample_plan):
        assert apply_household_size(sample_plan, 4) is sample_plan

    def test_clear_override(self, sample_plan):
        plan = update_servings(sample_plan, "tuesday", "dinner", 8)
        plan = clear_serving_override(plan, "tuesday", "dinner", household_size=4)
        slot = plan.get_slot("tuesday", "dinner")
        assert slot.servings == 4
        assert not slot.manual_serving_override
