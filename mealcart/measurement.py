"""
Fraction arithmetic and measurement conversion for recipe quantities.

Everything here is pure and synchronous. Quantities travel as floats; the
Fraction type is only used when a value has to be shown to a cook.

Conversion goes through a common unit per family:
- volume -> milliliter
- weight -> gram
- count  -> passed through unchanged
"""

import logging
import math
import re
from dataclasses import dataclass
from typing import Dict, Optional, Tuple, Union

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# Milliliters per unit
VOLUME_TO_ML: Dict[str, float] = {
    "cup": 236.59,
    "tablespoon": 14.79,
    "teaspoon": 4.93,
    "fluid ounce": 29.57,
    "pint": 473.18,
    "quart": 946.35,
    "gallon": 3785.41,
    "liter": 1000.0,
    "milliliter": 1.0,
}

# Grams per unit
WEIGHT_TO_G: Dict[str, float] = {
    "pound": 453.59,
    "ounce": 28.35,
    "kilogram": 1000.0,
    "gram": 1.0,
}

COUNT_UNITS = {"pieces", "cloves", "heads", "cans", "bottles", "whole", ""}

# Count units with no distinguishing container; these merge with each other
GENERIC_COUNT_UNITS = {"pieces", "whole", ""}

METRIC_UNITS = {"liter", "milliliter", "kilogram", "gram"}

UNIT_ALIASES: Dict[str, str] = {
    # volume
    "c": "cup", "cup": "cup", "cups": "cup",
    "tbsp": "tablespoon", "tbs": "tablespoon", "tbl": "tablespoon",
    "tablespoon": "tablespoon", "tablespoons": "tablespoon",
    "tsp": "teaspoon", "teaspoon": "teaspoon", "teaspoons": "teaspoon",
    "fl oz": "fluid ounce", "fl. oz": "fluid ounce", "floz": "fluid ounce",
    "fluid ounce": "fluid ounce", "fluid ounces": "fluid ounce",
    "pt": "pint", "pts": "pint", "pint": "pint", "pints": "pint",
    "qt": "quart", "qts": "quart", "quart": "quart", "quarts": "quart",
    "gal": "gallon", "gallon": "gallon", "gallons": "gallon",
    "l": "liter", "liter": "liter", "liters": "liter", "litre": "liter", "litres": "liter",
    "ml": "milliliter", "milliliter": "milliliter", "milliliters": "milliliter",
    "millilitre": "milliliter", "millilitres": "milliliter",
    # weight
    "lb": "pound", "lbs": "pound", "pound": "pound", "pounds": "pound",
    "oz": "ounce", "ounce": "ounce", "ounces": "ounce",
    "kg": "kilogram", "kilogram": "kilogram", "kilograms": "kilogram",
    "g": "gram", "gram": "gram", "grams": "gram",
    # count
    "piece": "pieces", "pieces": "pieces", "pc": "pieces", "pcs": "pieces",
    "clove": "cloves", "cloves": "cloves",
    "head": "heads", "heads": "heads",
    "can": "cans", "cans": "cans",
    "bottle": "bottles", "bottles": "bottles",
    "whole": "whole",
}

# Smallest amount worth putting on a shopping list
QUANTITY_MINIMUMS: Dict[str, float] = {
    "teaspoon": 1 / 32,
    "tablespoon": 1 / 8,
    "cup": 1 / 8,
    "gram": 1.0,
    "ounce": 1 / 16,
}

# unit -> (ceiling, promoted unit, multiplier)
QUANTITY_MAXIMUMS: Dict[str, Tuple[float, str, float]] = {
    "teaspoon": (12, "tablespoon", 1 / 3),
    "tablespoon": (8, "cup", 1 / 16),
    "fluid ounce": (16, "cup", 1 / 8),
    "gram": (1000, "kilogram", 1 / 1000),
    "ounce": (16, "pound", 1 / 16),
}

# Fractional remainders at or below this are shown as whole numbers
SIGNIFICANT_FRACTION = 0.05

UNICODE_FRACTIONS = {
    (1, 8): "⅛",
    (1, 6): "⅙",
    (1, 4): "¼",
    (1, 3): "⅓",
    (3, 8): "⅜",
    (1, 2): "½",
    (5, 8): "⅝",
    (2, 3): "⅔",
    (3, 4): "¾",
    (5, 6): "⅚",
    (7, 8): "⅞",
}

GLYPH_VALUES = {glyph: num / den for (num, den), glyph in UNICODE_FRACTIONS.items()}

PRACTICAL_DENOMINATORS = (2, 3, 4, 8)


# =============================================================================
# Types
# =============================================================================

@dataclass(frozen=True)
class Fraction:
    numerator: int
    denominator: int

    @property
    def value(self) -> float:
        return self.numerator / self.denominator


@dataclass(frozen=True)
class MixedNumber:
    whole: int
    fraction: Fraction


@dataclass(frozen=True)
class ParsedQuantity:
    """
    Result of parsing an ingredient quantity.

    status is one of:
    - "parsed": text was a number we understood
    - "missing": no quantity given ("salt to taste"); value defaults to 1
    - "unparsed": text present but not understood; value defaults to 1
    """
    value: float
    status: str
    original_text: str = ""

    @property
    def parsed(self) -> bool:
        return self.status == "parsed"


@dataclass(frozen=True)
class CommonMeasurement:
    quantity: float
    unit: str
    system: str  # "metric" or "imperial"


@dataclass(frozen=True)
class PracticalMeasurement:
    quantity: float
    unit: str
    display_text: str
    display_quantity: str
    fraction: Optional[Fraction] = None
    mixed_number: Optional[MixedNumber] = None


# =============================================================================
# Parsing
# =============================================================================

_MIXED_RE = re.compile(r'^(\d+)\s+(\d+)\s*/\s*(\d+)$')
_FRACTION_RE = re.compile(r'^(\d+)\s*/\s*(\d+)$')
_NUMBER_RE = re.compile(r'^\d*\.?\d+$')
_GLYPH_RE = re.compile(r'^(\d*)\s*([' + "".join(GLYPH_VALUES) + r'])$')


def parse_quantity_detailed(text: Union[str, int, float, None]) -> ParsedQuantity:
    """
    Parse a recipe quantity and report how trustworthy the result is.

    Accepts integers, decimals, simple fractions ("3/4"), mixed numbers
    ("1 1/2") and unicode fractions ("½", "1½"). Anything else falls back to 1.
    """
    if isinstance(text, bool):
        text = str(text)
    if isinstance(text, (int, float)):
        if math.isfinite(text) and text >= 0:
            return ParsedQuantity(float(text), "parsed", str(text))
        return ParsedQuantity(1.0, "unparsed", str(text))

    original = text or ""
    qty_str = original.strip()
    if not qty_str:
        return ParsedQuantity(1.0, "missing", original)

    mixed_match = _MIXED_RE.match(qty_str)
    if mixed_match:
        whole, num, denom = (int(g) for g in mixed_match.groups())
        if denom:
            return ParsedQuantity(whole + num / denom, "parsed", original)

    frac_match = _FRACTION_RE.match(qty_str)
    if frac_match:
        num, denom = (int(g) for g in frac_match.groups())
        if denom:
            return ParsedQuantity(num / denom, "parsed", original)

    glyph_match = _GLYPH_RE.match(qty_str)
    if glyph_match:
        whole, glyph = glyph_match.groups()
        return ParsedQuantity((int(whole) if whole else 0) + GLYPH_VALUES[glyph], "parsed", original)

    if _NUMBER_RE.match(qty_str):
        return ParsedQuantity(float(qty_str), "parsed", original)

    return ParsedQuantity(1.0, "unparsed", original)


def parse_quantity(text: Union[str, int, float, None]) -> float:
    """Parse a quantity string to float; unparsable input becomes 1."""
    result = parse_quantity_detailed(text)
    if result.status == "unparsed":
        logger.warning(f"[QUANTITY] could not parse '{result.original_text}', using 1")
    return result.value


# =============================================================================
# Fractions
# =============================================================================

def simplify(fraction: Fraction) -> Fraction:
    if fraction.denominator == 0:
        raise ValueError("denominator must not be zero")
    divisor = math.gcd(fraction.numerator, fraction.denominator) or 1
    numerator = fraction.numerator // divisor
    denominator = fraction.denominator // divisor
    if denominator < 0:
        numerator, denominator = -numerator, -denominator
    return Fraction(numerator, denominator)


def to_mixed_number(fraction: Fraction) -> MixedNumber:
    simplified = simplify(fraction)
    sign = -1 if simplified.numerator < 0 else 1
    whole, remainder = divmod(abs(simplified.numerator), simplified.denominator)
    return MixedNumber(whole * sign, Fraction(remainder, simplified.denominator))


def _practical_candidates():
    # Ordered by denominator so that ties keep the simplest fraction
    yield Fraction(1, 1)
    for denominator in PRACTICAL_DENOMINATORS:
        for numerator in range(1, denominator):
            if math.gcd(numerator, denominator) == 1:
                yield Fraction(numerator, denominator)


PRACTICAL_FRACTIONS = tuple(_practical_candidates())


def _nearest_practical(value: float) -> Fraction:
    best = PRACTICAL_FRACTIONS[0]
    best_diff = abs(value - best.value)
    for candidate in PRACTICAL_FRACTIONS[1:]:
        diff = abs(value - candidate.value)
        if diff < best_diff - 1e-9:
            best, best_diff = candidate, diff
    return best


def to_practical_fraction(decimal: float) -> Fraction:
    """
    Map a decimal to the nearest fraction a cook can measure.

    Denominators are limited to 2, 3, 4 and 8; on a tie the smaller
    denominator wins. Values above 1 come back as improper fractions.
    """
    if abs(decimal - round(decimal)) < 0.001:
        return Fraction(int(round(decimal)), 1)

    sign = -1 if decimal < 0 else 1
    magnitude = abs(decimal)
    whole = math.floor(magnitude)
    nearest = _nearest_practical(magnitude - whole)
    numerator = whole * nearest.denominator + nearest.numerator
    return simplify(Fraction(sign * numerator, nearest.denominator))


def _format_simple_fraction(fraction: Fraction) -> str:
    key = (fraction.numerator, fraction.denominator)
    return UNICODE_FRACTIONS.get(key, f"{fraction.numerator}/{fraction.denominator}")


def format_for_cooking(fraction: Fraction) -> str:
    """Render a fraction with unicode glyphs, e.g. Fraction(3, 2) -> '1 ½'."""
    simplified = simplify(fraction)
    if simplified.denominator == 1:
        return str(simplified.numerator)
    if simplified.numerator == 0:
        return "0"
    if abs(simplified.numerator) >= simplified.denominator:
        mixed = to_mixed_number(simplified)
        if mixed.fraction.numerator == 0:
            return str(mixed.whole)
        fraction_part = _format_simple_fraction(mixed.fraction)
        return fraction_part if mixed.whole == 0 else f"{mixed.whole} {fraction_part}"
    return _format_simple_fraction(simplified)


def format_number(value: float) -> str:
    """Format a float without trailing zeros (4.0 -> '4', 0.03125 -> '0.03125')."""
    if value == int(value):
        return str(int(value))
    return f"{value:.5f}".rstrip('0').rstrip('.')


# =============================================================================
# Units
# =============================================================================

def normalize_unit(unit: Optional[str]) -> str:
    """Canonical unit name. Unknown units come back lowercased and trimmed."""
    if not unit:
        return ""
    cleaned = re.sub(r'\s+', ' ', unit.strip().lower())
    if cleaned in UNIT_ALIASES:
        return UNIT_ALIASES[cleaned]
    cleaned = cleaned.rstrip('.')
    return UNIT_ALIASES.get(cleaned, cleaned)


def unit_family(unit: Optional[str]) -> Optional[str]:
    """Return "volume", "weight", "count", or None for units we don't know."""
    normalized = normalize_unit(unit)
    if normalized in VOLUME_TO_ML:
        return "volume"
    if normalized in WEIGHT_TO_G:
        return "weight"
    if normalized in COUNT_UNITS:
        return "count"
    return None


def are_units_compatible(unit1: Optional[str], unit2: Optional[str]) -> bool:
    """
    True if quantities in the two units can be summed.

    Volume and weight units convert within their family. Count units only
    merge when they name the same thing (2 cloves + 1 can is not 3 of anything),
    except pieces/whole/unitless which are interchangeable.
    """
    norm1 = normalize_unit(unit1)
    norm2 = normalize_unit(unit2)
    if norm1 == norm2:
        return True

    family1 = unit_family(norm1)
    family2 = unit_family(norm2)
    if family1 is None or family1 != family2:
        return False
    if family1 == "count":
        return norm1 in GENERIC_COUNT_UNITS and norm2 in GENERIC_COUNT_UNITS
    return True


def convert_to_common_unit(quantity: float, unit: Optional[str]) -> CommonMeasurement:
    """Convert volume to milliliters and weight to grams; count passes through."""
    normalized = normalize_unit(unit)
    system = "metric" if normalized in METRIC_UNITS else "imperial"

    if normalized in VOLUME_TO_ML:
        return CommonMeasurement(quantity * VOLUME_TO_ML[normalized], "milliliter", system)
    if normalized in WEIGHT_TO_G:
        return CommonMeasurement(quantity * WEIGHT_TO_G[normalized], "gram", system)
    return CommonMeasurement(quantity, normalized, "imperial")


def convert_between_systems(quantity: float, from_unit: Optional[str], to_unit: Optional[str]) -> float:
    """
    Convert a quantity between two units of the same family.

    Incompatible families (cup -> gram) return the quantity unchanged.
    """
    source = normalize_unit(from_unit)
    target = normalize_unit(to_unit)
    if source == target:
        return quantity
    if not are_units_compatible(source, target):
        logger.debug(f"[CONVERT] {source!r} and {target!r} are incompatible, keeping {quantity}")
        return quantity

    if source in VOLUME_TO_ML:
        return quantity * VOLUME_TO_ML[source] / VOLUME_TO_ML[target]
    if source in WEIGHT_TO_G:
        return quantity * WEIGHT_TO_G[source] / WEIGHT_TO_G[target]
    return quantity


def apply_quantity_limits(quantity: float, unit: Optional[str]) -> Tuple[float, str]:
    """
    Clamp tiny amounts up to a measurable minimum and promote large amounts
    to a bigger unit (12 tsp -> 4 tbsp -> 1/4 cup). Zero stays zero.
    """
    adjusted_unit = normalize_unit(unit)
    adjusted = quantity
    if adjusted == 0:
        return adjusted, adjusted_unit

    while adjusted_unit in QUANTITY_MAXIMUMS:
        ceiling, promoted_unit, multiplier = QUANTITY_MAXIMUMS[adjusted_unit]
        if adjusted < ceiling:
            break
        adjusted *= multiplier
        adjusted_unit = promoted_unit

    minimum = QUANTITY_MINIMUMS.get(adjusted_unit)
    if minimum is not None and 0 < adjusted < minimum:
        adjusted = minimum

    return adjusted, adjusted_unit


def round_to_reasonable_precision(quantity: float) -> float:
    """Precision coarsens with magnitude: 1/32, 1/8, 1/4, then whole numbers."""
    if quantity < 1:
        return round(quantity * 32) / 32
    if quantity < 10:
        return round(quantity * 8) / 8
    if quantity < 100:
        return round(quantity * 4) / 4
    return float(round(quantity))


def round_to_practical_measurement(quantity: float, unit: Optional[str]) -> PracticalMeasurement:
    """
    Turn a computed quantity into something a cook can measure and read.

    Volume amounts under 1 become a fraction glyph ("⅓ cup"); volume amounts
    between 1 and 10 become mixed numbers when the remainder is significant;
    everything else is rounded to a precision tier.
    """
    adjusted, adjusted_unit = apply_quantity_limits(quantity, unit)
    is_volume = adjusted_unit in VOLUME_TO_ML

    if is_volume and 0 < adjusted < 1:
        fraction = to_practical_fraction(adjusted)
        display = format_for_cooking(fraction)
        return PracticalMeasurement(
            quantity=adjusted,
            unit=adjusted_unit,
            display_text=f"{display} {adjusted_unit}".strip(),
            display_quantity=display,
            fraction=fraction,
        )

    if is_volume and 1 <= adjusted < 10:
        whole = math.floor(adjusted)
        remainder = adjusted - whole
        if remainder > SIGNIFICANT_FRACTION:
            fraction = to_practical_fraction(remainder)
            if fraction.denominator == 1:
                # remainder rounded up to a whole unit (2.97 -> 3)
                whole += fraction.numerator
                display = str(whole)
                return PracticalMeasurement(
                    quantity=float(whole),
                    unit=adjusted_unit,
                    display_text=f"{display} {adjusted_unit}",
                    display_quantity=display,
                )
            fraction_display = format_for_cooking(fraction)
            display = f"{whole} {fraction_display}" if whole > 0 else fraction_display
            return PracticalMeasurement(
                quantity=adjusted,
                unit=adjusted_unit,
                display_text=f"{display} {adjusted_unit}",
                display_quantity=display,
                mixed_number=MixedNumber(whole, fraction),
            )

    rounded = round_to_reasonable_precision(adjusted)
    display = format_number(rounded)
    return PracticalMeasurement(
        quantity=rounded,
        unit=adjusted_unit,
        display_text=f"{display} {adjusted_unit}".strip(),
        display_quantity=display,
    )
