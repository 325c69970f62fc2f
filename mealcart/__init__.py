"""
mealcart - recipe scaling, shopping list consolidation and offline sync.
"""

from mealcart.config import MealCartSettings, configure_logging, get_settings
from mealcart.history import MealPlanHistory
from mealcart.preferences import UserPreferences, validate_household_size
from mealcart.scaling import (
    calculate_scaling_factor,
    get_effective_serving_size,
    scale_ingredient_quantity,
    scale_recipe,
)
from mealcart.shopping_list import ShoppingListGenerator, generate_from_meal_plan

__version__ = "0.1.0"
