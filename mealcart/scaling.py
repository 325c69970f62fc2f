"""
Recipe scaling.

scaling factor = effective servings / recipe servings

Effective servings come from a single precedence rule: a manual override
(> 0) always wins over the household size.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional

from mealcart.data.models import Ingredient, MealSlot, Recipe
from mealcart.errors import InvalidServingsError, ValidationError
from mealcart.measurement import parse_quantity_detailed

logger = logging.getLogger(__name__)

# Anything past this is almost certainly bad data
MAX_SCALED_QUANTITY = 10000.0


@dataclass(frozen=True)
class ScaledIngredient:
    name: str
    scaled_quantity: float
    scaled_unit: str
    category: str
    original_quantity: float = 0.0
    parse_status: str = "parsed"  # parsed, missing, unparsed

    @property
    def has_parsing_issue(self) -> bool:
        return self.parse_status == "unparsed"


@dataclass
class ScaledRecipe:
    recipe: Recipe
    scaling_factor: float
    effective_servings: int
    ingredients: List[ScaledIngredient] = field(default_factory=list)
    parsing_issues: List[str] = field(default_factory=list)  # ingredient names


def _check_servings(value, field_name: str) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidServingsError(f"{field_name} must be a number, got {value!r}", field=field_name)
    if not math.isfinite(value) or value <= 0:
        raise InvalidServingsError(f"{field_name} must be greater than zero, got {value}", field=field_name)


def calculate_scaling_factor(original_servings: float, effective_servings: float) -> float:
    """
    Ratio of servings wanted to servings the recipe makes.

    Raises:
        InvalidServingsError: If either value is not a positive number.
    """
    _check_servings(original_servings, "original_servings")
    _check_servings(effective_servings, "effective_servings")
    return effective_servings / original_servings


def get_effective_serving_size(
    recipe: Recipe,
    household_size: int,
    manual_override: Optional[int] = None,
) -> int:
    """Return manual_override if present and > 0, else household_size."""
    if manual_override is not None and manual_override > 0:
        return manual_override
    return household_size


def scale_ingredient_quantity(ingredient: Ingredient, factor: float) -> ScaledIngredient:
    """
    Multiply an ingredient's parsed quantity by factor. The unit is left as-is;
    conversion happens when the shopping list is consolidated.
    """
    if isinstance(factor, bool) or not isinstance(factor, (int, float)) or not math.isfinite(factor) or factor <= 0:
        raise ValidationError(f"Scaling factor must be a positive finite number, got {factor!r}")

    parsed = parse_quantity_detailed(ingredient.quantity)
    if parsed.status == "unparsed":
        logger.warning(
            f"[SCALE] unparseable quantity '{parsed.original_text}' for '{ingredient.name}', "
            f"falling back to {parsed.value}"
        )

    scaled = parsed.value * factor
    if scaled > MAX_SCALED_QUANTITY:
        logger.warning(f"[SCALE] '{ingredient.name}' scaled to {scaled}, capping at {MAX_SCALED_QUANTITY}")
        scaled = MAX_SCALED_QUANTITY

    return ScaledIngredient(
        name=ingredient.name,
        scaled_quantity=scaled,
        scaled_unit=ingredient.unit,
        category=ingredient.category,
        original_quantity=parsed.value,
        parse_status=parsed.status,
    )


def scale_recipe(recipe: Recipe, factor: float) -> ScaledRecipe:
    """Scale every ingredient of a recipe."""
    if isinstance(factor, bool) or not isinstance(factor, (int, float)) or not math.isfinite(factor) or factor <= 0:
        raise ValidationError(f"Scaling factor must be a positive finite number, got {factor!r}")

    scaled = [scale_ingredient_quantity(ing, factor) for ing in recipe.ingredients]
    issues = [ing.name for ing in scaled if ing.has_parsing_issue]
    if issues:
        logger.info(f"[SCALE] {recipe.name}: {len(issues)} ingredient(s) used fallback quantities")

    return ScaledRecipe(
        recipe=recipe,
        scaling_factor=factor,
        effective_servings=max(1, round(recipe.servings * factor)),
        ingredients=scaled,
        parsing_issues=issues,
    )


def scale_meal_slot(slot: MealSlot, household_size: int) -> ScaledRecipe:
    """Scale a planned meal, honouring its manual serving override."""
    override = slot.servings if slot.manual_serving_override else None
    effective = get_effective_serving_size(slot.recipe, household_size, override)
    factor = calculate_scaling_factor(slot.recipe.servings, effective)
    return scale_recipe(slot.recipe, factor)
