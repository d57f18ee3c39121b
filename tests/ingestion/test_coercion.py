"""Tests for cell coercion: numbers, missing markers, fiscal years, units."""

from decimal import Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from esg_config.schema import SubcategoryRule, UnitRule
from esg_ingestion.normalization.coercion import (
    clean_numeric_text,
    coerce_cell,
    is_missing_value,
    parse_fiscal_year,
    parse_numeric,
    resolve_subcategory,
    resolve_unit,
    snake_case,
    split_bullet,
)

UNITS = (
    UnitRule("(tons)", "tons"),
    UnitRule("Employees", "employees"),
    UnitRule("%", "%"),
)


class TestParseNumeric:
    @pytest.mark.parametrize("raw,expected", [
        ("1200", Decimal("1200")),
        ("1,450", Decimal("1450")),
        (" 12 500 ", Decimal("12500")),
        ("45%", Decimal("45")),
        ("R 250,000", Decimal("250000")),
        ("$1,000.50", Decimal("1000.50")),
        ("(3,200)", Decimal("-3200")),
        ("-7.5", Decimal("-7.5")),
        (1450, Decimal("1450")),
        (12.5, Decimal("12.5")),
    ])
    def test_parses(self, raw, expected):
        assert parse_numeric(raw) == expected

    @pytest.mark.parametrize("raw", ["N/A", "", "  ", "-", None, "Yes", "Improving", True, "nan", "inf"])
    def test_not_numeric(self, raw):
        assert parse_numeric(raw) is None

    def test_decimal_passes_through(self):
        assert parse_numeric(Decimal("3.14")) == Decimal("3.14")

    def test_clean_numeric_text(self):
        assert clean_numeric_text("US$ 1,234.5%") == "1234.5"


class TestCoerceCell:
    def test_na_is_missing_not_unparseable(self):
        result = coerce_cell("N/A")
        assert result.is_missing
        assert not result.unparseable
        assert result.raw == "N/A"
        assert result.numeric_value is None

    def test_text_is_unparseable(self):
        result = coerce_cell("approx. ten")
        assert result.unparseable
        assert result.raw == "approx. ten"

    @pytest.mark.parametrize("value", [None, "", "n/a", "NA", "--", "null"])
    def test_missing_markers(self, value):
        assert is_missing_value(value)

    def test_zero_is_not_missing(self):
        assert not is_missing_value(0)


class TestNumericRoundTrip:
    @given(st.integers(min_value=0, max_value=10**12))
    @settings(max_examples=200)
    def test_thousands_separated_round_trip(self, n):
        formatted = f"{n:,}"
        value = parse_numeric(formatted)
        assert value == Decimal(n)
        assert parse_numeric(clean_numeric_text(formatted)) == value

    @given(st.decimals(min_value=-10**6, max_value=10**6, places=2, allow_nan=False, allow_infinity=False))
    @settings(max_examples=200)
    def test_percent_round_trip(self, d):
        assert parse_numeric(f"{d}%") == d


class TestFiscalYear:
    @pytest.mark.parametrize("label,expected", [
        ("2023", 2023),
        ("FY25", 2025),
        ("FY 24", 2024),
        ("FY2024", 2024),
        ("2023→2024", 2024),
        ("Financial year 2022/2023", 2023),
        ("Latest", None),
        (None, None),
        (2021, 2021),
    ])
    def test_parse(self, label, expected):
        assert parse_fiscal_year(label) == expected


class TestUnitsAndNames:
    def test_parenthetical_unit_stripped(self):
        assert resolve_unit("Total Waste (tons)", UNITS) == ("tons", "Total Waste")

    def test_substring_unit_keeps_name(self):
        assert resolve_unit("Female Employees", UNITS) == ("employees", "Female Employees")

    def test_first_rule_wins(self):
        assert resolve_unit("Employees trained %", UNITS)[0] == "employees"

    def test_fallback_is_empty(self):
        assert resolve_unit("Board Independence", UNITS) == ("", "Board Independence")

    def test_subcategory(self):
        rules = (SubcategoryRule("Coal", "coal_consumption"),)
        assert resolve_subcategory("Coal Consumption (tons)", rules) == "coal_consumption"
        assert resolve_subcategory("Solar", rules) is None

    def test_snake_case(self):
        assert snake_case("Key Skills") == "key_skills"
        assert snake_case("Amount (R)") == "amount_r"

    @pytest.mark.parametrize("text,expected", [
        ("• Code of Ethics", (True, "Code of Ethics")),
        ("✓ Audit committee", (True, "Audit committee")),
        ("- Recycling", (True, "Recycling")),
        ("Plain text", (False, "Plain text")),
    ])
    def test_split_bullet(self, text, expected):
        assert split_bullet(text) == expected
