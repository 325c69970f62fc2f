"""
Pure meal-plan mutations.

Every function takes a MealPlan and returns a new one; the input is never
modified. Untouched days share their slot dicts with the input plan, which is
safe because nothing writes to them in place.
"""

import logging
import uuid
from dataclasses import replace
from datetime import date, datetime, timedelta
from typing import Dict, Optional

from mealcart.data.models import DAYS_OF_WEEK, MEAL_TYPES, MealPlan, MealSlot, Recipe
from mealcart.errors import InvalidServingsError, ValidationError
from mealcart.preferences import validate_household_size

logger = logging.getLogger(__name__)


def week_start_for(day: date) -> date:
    """Monday of the week containing ``day``."""
    if isinstance(day, datetime):
        day = day.date()
    return day - timedelta(days=day.weekday())


def day_date(plan: MealPlan, day: str) -> date:
    return plan.week_start_date + timedelta(days=DAYS_OF_WEEK.index(day))


def empty_meal_plan(user_id: str, week_start: date, plan_id: Optional[str] = None) -> MealPlan:
    now = datetime.now()
    return MealPlan(
        id=plan_id or f"plan_{uuid.uuid4().hex[:12]}",
        user_id=str(user_id),
        week_start_date=week_start_for(week_start),
        meals={day: {} for day in DAYS_OF_WEEK},
        created_at=now,
        updated_at=now,
    )


def _check_slot(day: str, meal_type: str) -> None:
    if day not in DAYS_OF_WEEK:
        raise ValidationError(f"unknown day {day!r}")
    if meal_type not in MEAL_TYPES:
        raise ValidationError(f"unknown meal type {meal_type!r}")


def _with_days(plan: MealPlan, changes: Dict[str, Dict[str, MealSlot]]) -> MealPlan:
    meals = {day: plan.meals.get(day, {}) for day in DAYS_OF_WEEK}
    meals.update(changes)
    return replace(plan, meals=meals, updated_at=datetime.now())


def _move_slot(slot: MealSlot, plan: MealPlan, day: str, meal_type: str, new_id: bool = False) -> MealSlot:
    return replace(
        slot,
        id=f"slot_{uuid.uuid4().hex[:12]}" if new_id else slot.id,
        scheduled_for=day_date(plan, day),
        meal_type=meal_type,
    )


def assign_meal(
    plan: MealPlan,
    day: str,
    meal_type: str,
    recipe: Recipe,
    household_size: int,
    servings: Optional[int] = None,
    notes: Optional[str] = None,
) -> MealPlan:
    """
    Put a recipe into a slot, replacing whatever was there.

    Without ``servings`` the slot follows the household size; with it, the
    slot is pinned as a manual override.
    """
    _check_slot(day, meal_type)
    validate_household_size(household_size)
    if servings is not None and servings <= 0:
        raise InvalidServingsError(f"servings must be greater than zero, got {servings}", field="servings")

    slot = MealSlot(
        id=f"slot_{uuid.uuid4().hex[:12]}",
        recipe_id=recipe.id,
        recipe=recipe,
        servings=servings if servings is not None else household_size,
        scheduled_for=day_date(plan, day),
        meal_type=meal_type,
        manual_serving_override=servings is not None,
        notes=notes,
    )
    return _with_days(plan, {day: {**plan.meals.get(day, {}), meal_type: slot}})


def remove_meal(plan: MealPlan, day: str, meal_type: str) -> MealPlan:
    _check_slot(day, meal_type)
    day_meals = dict(plan.meals.get(day, {}))
    if day_meals.pop(meal_type, None) is None:
        return plan
    return _with_days(plan, {day: day_meals})


def clear_day(plan: MealPlan, day: str) -> MealPlan:
    if day not in DAYS_OF_WEEK:
        raise ValidationError(f"unknown day {day!r}")
    if not plan.meals.get(day):
        return plan
    return _with_days(plan, {day: {}})


def copy_meal(plan: MealPlan, from_day: str, from_meal: str, to_day: str, to_meal: str) -> MealPlan:
    """Copy a slot (with its override) to another slot, overwriting the target."""
    _check_slot(from_day, from_meal)
    _check_slot(to_day, to_meal)
    source = plan.get_slot(from_day, from_meal)
    if source is None:
        raise ValidationError(f"no meal planned for {from_day} {from_meal}")

    copied = _move_slot(source, plan, to_day, to_meal, new_id=True)
    return _with_days(plan, {to_day: {**plan.meals.get(to_day, {}), to_meal: copied}})


def duplicate_day(plan: MealPlan, from_day: str, to_day: str) -> MealPlan:
    """Replace every meal on to_day with copies of from_day's meals."""
    if from_day not in DAYS_OF_WEEK or to_day not in DAYS_OF_WEEK:
        raise ValidationError(f"unknown day {from_day!r} or {to_day!r}")
    if from_day == to_day:
        return plan
    copies = {
        meal_type: _move_slot(slot, plan, to_day, meal_type, new_id=True)
        for meal_type, slot in plan.meals.get(from_day, {}).items()
    }
    return _with_days(plan, {to_day: copies})


def swap_meals(plan: MealPlan, day_a: str, meal_a: str, day_b: str, meal_b: str) -> MealPlan:
    """Exchange two slots. Either side may be empty, which makes this a move."""
    _check_slot(day_a, meal_a)
    _check_slot(day_b, meal_b)
    if (day_a, meal_a) == (day_b, meal_b):
        return plan

    slot_a = plan.get_slot(day_a, meal_a)
    slot_b = plan.get_slot(day_b, meal_b)
    if slot_a is None and slot_b is None:
        return plan

    days = {day_a: dict(plan.meals.get(day_a, {}))}
    days.setdefault(day_b, dict(plan.meals.get(day_b, {})))
    days[day_a].pop(meal_a, None)
    days[day_b].pop(meal_b, None)
    if slot_b is not None:
        days[day_a][meal_a] = _move_slot(slot_b, plan, day_a, meal_a)
    if slot_a is not None:
        days[day_b][meal_b] = _move_slot(slot_a, plan, day_b, meal_b)
    return _with_days(plan, days)


def update_servings(plan: MealPlan, day: str, meal_type: str, servings: int) -> MealPlan:
    """Pin a slot to a serving count. Household-size changes leave it alone afterwards."""
    _check_slot(day, meal_type)
    if isinstance(servings, bool) or not isinstance(servings, int) or servings <= 0:
        raise InvalidServingsError(f"servings must be a positive integer, got {servings!r}", field="servings")
    slot = plan.get_slot(day, meal_type)
    if slot is None:
        raise ValidationError(f"no meal planned for {day} {meal_type}")

    updated = replace(slot, servings=servings, manual_serving_override=True)
    return _with_days(plan, {day: {**plan.meals[day], meal_type: updated}})


def clear_serving_override(plan: MealPlan, day: str, meal_type: str, household_size: int) -> MealPlan:
    """Drop a slot's override so it follows the household size again."""
    _check_slot(day, meal_type)
    validate_household_size(household_size)
    slot = plan.get_slot(day, meal_type)
    if slot is None:
        raise ValidationError(f"no meal planned for {day} {meal_type}")

    updated = replace(slot, servings=household_size, manual_serving_override=False)
    return _with_days(plan, {day: {**plan.meals[day], meal_type: updated}})


def apply_household_size(plan: MealPlan, household_size: int) -> MealPlan:
    """Re-derive servings for every slot that isn't manually overridden."""
    validate_household_size(household_size)
    changes = {}
    for day in DAYS_OF_WEEK:
        day_meals = plan.meals.get(day, {})
        if any(not s.manual_serving_override and s.servings != household_size for s in day_meals.values()):
            changes[day] = {
                meal_type: slot if slot.manual_serving_override else replace(slot, servings=household_size)
                for meal_type, slot in day_meals.items()
            }
    if not changes:
        return plan
    logger.debug(f"[PLAN] household size {household_size} applied to {len(changes)} day(s) of {plan.id}")
    return _with_days(plan, changes)
