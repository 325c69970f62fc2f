"""
Unit tests for history.py - undo/redo snapshots.
"""

from datetime import date

import pytest

from mealcart.history import MealPlanHistory
from mealcart.meal_plan_ops import assign_meal, remove_meal


class TestPushAndBounds:
    def test_initialize_is_idempotent(self, empty_plan, sample_plan):
        history = MealPlanHistory()
        history.initialize_history(empty_plan)
        history.initialize_history(sample_plan)
        assert len(history) == 1
        assert history.get_history_summary()[0]["action"] == "Initial state"

    def test_bounded_to_max_size(self, empty_plan):
        """Pushing 8 states into a history of 5 keeps the newest 5."""
        history = MealPlanHistory(max_size=5)
        for i in range(8):
            history.push_state(empty_plan, f"step {i}")
        summary = history.get_history_summary()
        assert len(history) == 5
        assert [s["action"] for s in summary] == [f"step {i}" for i in range(3, 8)]
        assert summary[-1]["is_current"]

    def test_ids_are_sequential(self, empty_plan):
        history = MealPlanHistory()
        first = history.push_state(empty_plan, "a")
        second = history.push_state(empty_plan, "b")
        assert (first.id, second.id) == ("history-1", "history-2")

    def test_rejects_zero_size(self):
        with pytest.raises(ValueError):
            MealPlanHistory(max_size=0)


class TestUndoRedo:
    @pytest.fixture
    def history(self, empty_plan, pancakes):
        history = MealPlanHistory()
        history.initialize_history(empty_plan)
        with_meal = assign_meal(empty_plan, "monday", "dinner", pancakes, household_size=2)
        history.push_state(with_meal, "Add pancakes")
        return history

    def test_undo_restores_previous_state(self, history):
        restored = history.undo()
        assert restored.is_empty()
        assert restored.week_start_date == date(2025, 10, 27)
        assert history.can_redo()
        assert not history.can_undo()

    def test_redo_restores_dates(self, history):
        history.undo()
        restored = history.redo()
        slot = restored.get_slot("monday", "dinner")
        assert slot.scheduled_for == date(2025, 10, 27)
        assert slot.recipe.name == "Buttermilk Pancakes"

    def test_boundaries_return_none(self, history):
        assert history.redo() is None
        history.undo()
        assert history.undo() is None

    def test_push_after_undo_clears_redo(self, history, empty_plan):
        history.undo()
        history.push_state(remove_meal(empty_plan, "monday", "dinner"), "Something else")
        assert not history.can_redo()
        assert [s["action"] for s in history.get_history_summary()] == ["Initial state", "Something else"]

    def test_current_state_and_clear(self, history):
        assert history.get_current_state().get_slot("monday", "dinner") is not None
        history.clear_history()
        assert history.get_current_state() is None
        assert not history.can_undo()
        assert not history.can_redo()
