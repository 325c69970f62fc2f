"""
Unit tests for measurement.py.

Tests cover:
- Quantity parsing and the fallback-to-1 statuses
- Practical fractions and cooking display
- Unit aliases, families and compatibility
- Conversion between units
- Quantity limits and practical rounding
"""

import pytest

from mealcart.measurement import (
    Fraction,
    MixedNumber,
    apply_quantity_limits,
    are_units_compatible,
    convert_between_systems,
    convert_to_common_unit,
    format_for_cooking,
    format_number,
    normalize_unit,
    parse_quantity,
    parse_quantity_detailed,
    round_to_practical_measurement,
    round_to_reasonable_precision,
    simplify,
    to_mixed_number,
    to_practical_fraction,
    unit_family,
)


# =============================================================================
# Parsing
# =============================================================================

class TestParseQuantity:
    """Tests for parse_quantity / parse_quantity_detailed."""

    @pytest.mark.parametrize("text,expected", [
        ("2", 2.0),
        ("0.25", 0.25),
        (".5", 0.5),
        ("3/4", 0.75),
        ("1 1/2", 1.5),
        ("½", 0.5),
        ("1½", 1.5),
        ("  2  ", 2.0),
    ])
    def test_parses_supported_formats(self, text, expected):
        """Integers, decimals, fractions, mixed numbers and glyphs all parse."""
        assert parse_quantity(text) == pytest.approx(expected)

    def test_numbers_pass_through(self):
        """Numeric input is accepted as-is."""
        assert parse_quantity(3) == 3.0
        assert parse_quantity_detailed(2.5).status == "parsed"

    def test_missing_quantity_defaults_to_one(self):
        """Empty quantity ("salt to taste") is 1 with status missing."""
        result = parse_quantity_detailed("")
        assert result.value == 1.0
        assert result.status == "missing"
        assert not result.parsed

    def test_unparseable_quantity_defaults_to_one(self):
        """Free text is 1 with status unparsed, keeping the original text."""
        result = parse_quantity_detailed("a pinch")
        assert result.value == 1.0
        assert result.status == "unparsed"
        assert result.original_text == "a pinch"

    def test_zero_denominator_is_unparsed(self):
        """1/0 is not a number."""
        assert parse_quantity_detailed("1/0").status == "unparsed"

    def test_unparsed_logs_warning(self, caplog):
        """parse_quantity warns when it falls back."""
        with caplog.at_level("WARNING"):
            assert parse_quantity("some") == 1.0
        assert "could not parse" in caplog.text


# =============================================================================
# Fractions
# =============================================================================

class TestFractions:
    """Tests for fraction helpers."""

    def test_simplify(self):
        assert simplify(Fraction(4, 8)) == Fraction(1, 2)
        assert simplify(Fraction(6, 3)) == Fraction(2, 1)

    def test_simplify_zero_denominator(self):
        with pytest.raises(ValueError):
            simplify(Fraction(1, 0))

    def test_to_mixed_number(self):
        assert to_mixed_number(Fraction(7, 4)) == MixedNumber(1, Fraction(3, 4))

    @pytest.mark.parametrize("decimal,expected", [
        (0.33, Fraction(1, 3)),
        (0.25, Fraction(1, 4)),
        (0.3, Fraction(1, 3)),
        (0.5, Fraction(1, 2)),
        (0.7, Fraction(2, 3)),
        (0.9, Fraction(7, 8)),
        (2.0, Fraction(2, 1)),
        (1.25, Fraction(5, 4)),
    ])
    def test_to_practical_fraction(self, decimal, expected):
        """Decimals snap to halves, thirds, quarters or eighths."""
        assert to_practical_fraction(decimal) == expected

    def test_tie_prefers_smaller_denominator(self):
        """0.1875 is equidistant from 1/8 and 1/4; 1/4 wins."""
        assert to_practical_fraction(0.1875) == Fraction(1, 4)

    @pytest.mark.parametrize("fraction,expected", [
        (Fraction(1, 3), "⅓"),
        (Fraction(3, 4), "¾"),
        (Fraction(3, 2), "1 ½"),
        (Fraction(4, 1), "4"),
        (Fraction(8, 4), "2"),
        (Fraction(5, 16), "5/16"),
    ])
    def test_format_for_cooking(self, fraction, expected):
        assert format_for_cooking(fraction) == expected

    def test_format_number_drops_trailing_zeros(self):
        assert format_number(4.0) == "4"
        assert format_number(1.5) == "1.5"
        assert format_number(0.03125) == "0.03125"


# =============================================================================
# Units
# =============================================================================

class TestUnits:
    """Tests for unit normalization and compatibility."""

    @pytest.mark.parametrize("raw,expected", [
        ("Cups", "cup"),
        ("TBSP", "tablespoon"),
        ("tsp.", "teaspoon"),
        ("lbs", "pound"),
        ("Fl Oz", "fluid ounce"),
        ("clove", "cloves"),
        ("", ""),
        (None, ""),
        ("Bunch", "bunch"),
    ])
    def test_normalize_unit(self, raw, expected):
        assert normalize_unit(raw) == expected

    def test_unit_family(self):
        assert unit_family("cups") == "volume"
        assert unit_family("g") == "weight"
        assert unit_family("cloves") == "count"
        assert unit_family("") == "count"
        assert unit_family("bunch") is None

    def test_same_family_is_compatible(self):
        assert are_units_compatible("cup", "tbsp")
        assert are_units_compatible("lb", "oz")

    def test_cross_family_is_incompatible(self):
        assert not are_units_compatible("cup", "gram")
        assert not are_units_compatible("bunch", "cup")

    def test_count_units_only_merge_when_generic(self):
        """Cloves and cans don't add up; pieces, whole and unitless do."""
        assert not are_units_compatible("cloves", "cans")
        assert are_units_compatible("pieces", "")
        assert are_units_compatible("whole", "piece")
        assert are_units_compatible("cloves", "clove")

    def test_unknown_units_match_themselves(self):
        assert are_units_compatible("bunch", "Bunch")


# =============================================================================
# Conversion
# =============================================================================

class TestConversion:
    """Tests for unit conversion."""

    def test_convert_to_common_unit_volume(self):
        result = convert_to_common_unit(2, "cups")
        assert result.unit == "milliliter"
        assert result.quantity == pytest.approx(473.18)
        assert result.system == "imperial"

    def test_convert_to_common_unit_metric_weight(self):
        result = convert_to_common_unit(1, "kg")
        assert result.unit == "gram"
        assert result.quantity == pytest.approx(1000)
        assert result.system == "metric"

    def test_convert_to_common_unit_count_passes_through(self):
        result = convert_to_common_unit(3, "cloves")
        assert result.quantity == 3
        assert result.unit == "cloves"

    def test_cup_to_tablespoons(self):
        assert convert_between_systems(1, "cup", "tablespoon") == pytest.approx(16, abs=0.01)

    def test_incompatible_conversion_keeps_quantity(self):
        """cup -> gram has no density; the quantity comes back unchanged."""
        assert convert_between_systems(2, "cup", "gram") == 2

    @pytest.mark.parametrize("unit_a,unit_b", [
        ("cup", "milliliter"),
        ("teaspoon", "tablespoon"),
        ("quart", "liter"),
        ("pound", "gram"),
        ("ounce", "kilogram"),
        ("fluid ounce", "cup"),
    ])
    def test_round_trip_within_five_percent(self, unit_a, unit_b):
        for quantity in (0.25, 1, 3.5, 40):
            there = convert_between_systems(quantity, unit_a, unit_b)
            back = convert_between_systems(there, unit_b, unit_a)
            assert back == pytest.approx(quantity, rel=0.05)


# =============================================================================
# Limits and rounding
# =============================================================================

class TestQuantityLimits:
    """Tests for apply_quantity_limits."""

    def test_promotes_teaspoons(self):
        assert apply_quantity_limits(12, "tsp") == (pytest.approx(4.0), "tablespoon")

    def test_promotion_chains(self):
        """36 tsp -> 12 tbsp -> 3/4 cup."""
        quantity, unit = apply_quantity_limits(36, "tsp")
        assert unit == "cup"
        assert quantity == pytest.approx(0.75)

    def test_floor_for_tiny_amounts(self):
        assert apply_quantity_limits(0.01, "teaspoon") == (pytest.approx(1 / 32), "teaspoon")

    def test_zero_is_left_alone(self):
        assert apply_quantity_limits(0, "tsp") == (0, "teaspoon")

    def test_grams_promote_to_kilograms(self):
        quantity, unit = apply_quantity_limits(1500, "g")
        assert unit == "kilogram"
        assert quantity == pytest.approx(1.5)


class TestPracticalRounding:
    """Tests for round_to_practical_measurement."""

    @pytest.mark.parametrize("quantity,expected", [
        (0.3, 0.3125),
        (3.3, 3.25),
        (33.3, 33.25),
        (333.3, 333.0),
    ])
    def test_precision_tiers(self, quantity, expected):
        assert round_to_reasonable_precision(quantity) == pytest.approx(expected)

    def test_whole_cups(self):
        """4 cups reads '4 cup'."""
        result = round_to_practical_measurement(4.0, "cups")
        assert result.display_quantity == "4"
        assert result.display_text == "4 cup"
        assert result.unit == "cup"

    def test_third_cup_uses_glyph(self):
        """1/3 cup reads '⅓ cup' with the fraction attached."""
        result = round_to_practical_measurement(1 / 3, "cup")
        assert result.display_text == "⅓ cup"
        assert result.fraction == Fraction(1, 3)

    def test_mixed_number(self):
        result = round_to_practical_measurement(1.5, "cup")
        assert result.display_text == "1 ½ cup"
        assert result.mixed_number == MixedNumber(1, Fraction(1, 2))

    def test_insignificant_remainder_is_dropped(self):
        result = round_to_practical_measurement(2.02, "cup")
        assert result.display_quantity == "2"

    def test_remainder_rounding_up_bumps_whole(self):
        """2.97 cups is 3 cups, not '2 1/1'."""
        result = round_to_practical_measurement(2.97, "cup")
        assert result.display_quantity == "3"
        assert result.quantity == 3.0

    def test_weight_uses_precision_tier(self):
        result = round_to_practical_measurement(500, "g")
        assert result.display_text == "500 gram"

    def test_promoted_weight(self):
        result = round_to_practical_measurement(1500, "grams")
        assert result.display_text == "1.5 kilogram"

    def test_unitless_count(self):
        result = round_to_practical_measurement(3, "")
        assert result.display_text == "3"
