"""
Shopping list generation.

Turns a meal plan into a consolidated, aisle-ordered shopping list:
1. scale every planned recipe (respecting manual serving overrides)
2. merge ingredients that share a name and a compatible unit
3. round merged totals to practical measurements
4. bucket by category in store-aisle order
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from mealcart.data.models import MealPlan, MealSlot, ShoppingListItem
from mealcart.measurement import (
    are_units_compatible,
    convert_between_systems,
    normalize_unit,
    round_to_practical_measurement,
)
from mealcart.scaling import scale_meal_slot

logger = logging.getLogger(__name__)

ShoppingList = Dict[str, List[ShoppingListItem]]

# Store-aisle walking order
CATEGORY_ORDER = [
    "Produce",
    "Meat & Seafood",
    "Dairy & Eggs",
    "Pantry",
    "Grains & Bread",
    "Frozen",
    "Beverages",
    "Other",
]

# Lowercased category spellings seen in recipe data -> aisle name
CATEGORY_ALIASES = {
    "produce": "Produce",
    "vegetables": "Produce",
    "fruit": "Produce",
    "meat": "Meat & Seafood",
    "seafood": "Meat & Seafood",
    "meat & seafood": "Meat & Seafood",
    "meat and seafood": "Meat & Seafood",
    "dairy": "Dairy & Eggs",
    "eggs": "Dairy & Eggs",
    "dairy & eggs": "Dairy & Eggs",
    "dairy and eggs": "Dairy & Eggs",
    "pantry": "Pantry",
    "baking": "Pantry",
    "spices": "Pantry",
    "condiments": "Pantry",
    "grains": "Grains & Bread",
    "bread": "Grains & Bread",
    "bakery": "Grains & Bread",
    "grains & bread": "Grains & Bread",
    "grains and bread": "Grains & Bread",
    "frozen": "Frozen",
    "beverages": "Beverages",
    "drinks": "Beverages",
    "other": "Other",
}


class ShoppingListGenerator:
    """Builds consolidated shopping lists from planned meals."""

    def __init__(self):
        # Keyword -> aisle, used when an ingredient has no category
        self.category_mappings = {
            # Checked before "cream" and "egg"
            "ice cream": "Frozen",
            "eggplant": "Produce",
            # Produce
            "onion": "Produce",
            "garlic": "Produce",
            "tomato": "Produce",
            "lettuce": "Produce",
            "spinach": "Produce",
            "carrot": "Produce",
            "potato": "Produce",
            "broccoli": "Produce",
            "bell pepper": "Produce",
            "cucumber": "Produce",
            "avocado": "Produce",
            "lemon": "Produce",
            "lime": "Produce",
            "cilantro": "Produce",
            "parsley": "Produce",
            "basil": "Produce",
            "mushroom": "Produce",
            # Meat & Seafood
            "chicken": "Meat & Seafood",
            "beef": "Meat & Seafood",
            "pork": "Meat & Seafood",
            "turkey": "Meat & Seafood",
            "sausage": "Meat & Seafood",
            "salmon": "Meat & Seafood",
            "fish": "Meat & Seafood",
            "shrimp": "Meat & Seafood",
            "tuna": "Meat & Seafood",
            # Dairy & Eggs
            "milk": "Dairy & Eggs",
            "cheese": "Dairy & Eggs",
            "butter": "Dairy & Eggs",
            "cream": "Dairy & Eggs",
            "yogurt": "Dairy & Eggs",
            "egg": "Dairy & Eggs",
            # Grains & Bread
            "bread": "Grains & Bread",
            "tortilla": "Grains & Bread",
            "rice": "Grains & Bread",
            "pasta": "Grains & Bread",
            "oats": "Grains & Bread",
            # Pantry
            "flour": "Pantry",
            "sugar": "Pantry",
            "salt": "Pantry",
            "pepper": "Pantry",
            "oil": "Pantry",
            "vinegar": "Pantry",
            "beans": "Pantry",
            "sauce": "Pantry",
            "broth": "Pantry",
            # Frozen
            "frozen": "Frozen",
            # Beverages
            "juice": "Beverages",
            "coffee": "Beverages",
            "wine": "Beverages",
        }

    def generate_from_meal_plan(self, meal_plan: MealPlan, household_size: int) -> ShoppingList:
        """
        Generate the shopping list for every populated slot of a plan.

        Args:
            meal_plan: Plan to shop for
            household_size: Servings used for slots without a manual override

        Returns:
            Category -> items, in aisle order. Empty dict for an empty plan.
        """
        return self.generate_from_meals(meal_plan.iter_slots(), household_size)

    def generate_from_meals(self, meals: Iterable[MealSlot], household_size: int) -> ShoppingList:
        """Generate a shopping list from any collection of meal slots."""
        # name -> items with that name (one per incompatible unit family)
        consolidated: Dict[str, List[ShoppingListItem]] = {}
        meal_count = 0

        for slot in meals:
            meal_count += 1
            scaled_recipe = scale_meal_slot(slot, household_size)
            recipe_name = slot.recipe.name

            for scaled in scaled_recipe.ingredients:
                name_key = scaled.name.strip().lower()
                unit = normalize_unit(scaled.scaled_unit)
                bucket = consolidated.setdefault(name_key, [])

                existing = self._find_item(bucket, unit)
                if existing is not None:
                    existing.amount += convert_between_systems(scaled.scaled_quantity, unit, existing.unit)
                    existing.add_recipe(recipe_name)
                else:
                    if bucket:
                        logger.debug(
                            f"[SHOPPING] '{name_key}' in {unit!r} can't merge with "
                            f"{[item.unit for item in bucket]}, adding separate line"
                        )
                    bucket.append(ShoppingListItem(
                        name=scaled.name.strip(),
                        quantity="",
                        unit=unit,
                        category=self._resolve_category(scaled.category, scaled.name),
                        recipes=[recipe_name],
                        amount=scaled.scaled_quantity,
                    ))

        shopping_list: ShoppingList = {}
        for bucket in consolidated.values():
            for item in bucket:
                self._apply_practical_rounding(item)
                shopping_list.setdefault(item.category, []).append(item)

        result = sort_shopping_list(shopping_list)
        logger.info(
            f"[SHOPPING] {meal_count} meal(s) -> {get_total_item_count(result)} item(s) "
            f"in {len(result)} categories"
        )
        return result

    def _find_item(self, bucket: List[ShoppingListItem], unit: str) -> Optional[ShoppingListItem]:
        """Exact unit match first, then any compatible unit."""
        for item in bucket:
            if item.unit == unit:
                return item
        for item in bucket:
            if are_units_compatible(item.unit, unit):
                return item
        return None

    def _apply_practical_rounding(self, item: ShoppingListItem) -> None:
        practical = round_to_practical_measurement(item.amount, item.unit)
        if practical.unit != item.unit:
            item.amount = convert_between_systems(item.amount, item.unit, practical.unit)
            item.unit = practical.unit
        item.quantity = practical.display_quantity

    def _resolve_category(self, category: Optional[str], ingredient_name: str) -> str:
        """Canonical aisle name; unknown categories are kept as given."""
        cleaned = (category or "").strip()
        if cleaned:
            return CATEGORY_ALIASES.get(cleaned.lower(), cleaned)
        return self._categorize_ingredient(ingredient_name)

    def _categorize_ingredient(self, ingredient_name: str) -> str:
        ingredient_lower = ingredient_name.lower()
        for keyword, category in self.category_mappings.items():
            if keyword in ingredient_lower:
                return category
        return "Other"


def _category_sort_key(category: str):
    if category in CATEGORY_ORDER:
        return (0, CATEGORY_ORDER.index(category), "")
    return (1, 0, category.lower())


def sort_shopping_list(shopping_list: ShoppingList) -> ShoppingList:
    """Known aisles first in walking order, unknown ones alphabetically; items by name."""
    return {
        category: sorted(shopping_list[category], key=lambda item: item.name.lower())
        for category in sorted(shopping_list, key=_category_sort_key)
        if shopping_list[category]
    }


def is_empty(shopping_list: ShoppingList) -> bool:
    return not any(shopping_list.values())


def get_total_item_count(shopping_list: ShoppingList) -> int:
    return sum(len(items) for items in shopping_list.values())


def get_category_count(shopping_list: ShoppingList) -> int:
    return sum(1 for items in shopping_list.values() if items)


def shopping_list_to_dict(shopping_list: ShoppingList) -> Dict[str, List[Dict[str, Any]]]:
    return {category: [item.to_dict() for item in items] for category, items in shopping_list.items()}


def shopping_list_from_dict(data: Dict[str, List[Dict[str, Any]]]) -> ShoppingList:
    return sort_shopping_list({
        category: [ShoppingListItem.from_dict(item) for item in items]
        for category, items in data.items()
    })


_default_generator = ShoppingListGenerator()


def generate_from_meal_plan(meal_plan: MealPlan, household_size: int) -> ShoppingList:
    return _default_generator.generate_from_meal_plan(meal_plan, household_size)


def generate_from_meals(meals: Iterable[MealSlot], household_size: int) -> ShoppingList:
    return _default_generator.generate_from_meals(meals, household_size)
