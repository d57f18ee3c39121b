"""
Cell coercion: raw spreadsheet cells -> numbers, fiscal years, units.

Pure functions, ZERO I/O. Coercion is lenient: a value that cannot be
read as a number keeps its raw form and gets ``numeric_value=None``; the
validation pass reports it as a warning.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Sequence

from esg_config.schema import SubcategoryRule, UnitRule

MISSING_MARKERS = frozenset({"", "n/a", "na", "n.a.", "-", "--", "none", "null"})

_CURRENCY_PREFIX = re.compile(r"^(?:US\$|USD|ZAR|R(?=\s*[\d.(-])|\$|€|£)\s*", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")
_YEAR = re.compile(r"(?<!\d)((?:19|20)\d{2})(?!\d)")
_FY_SHORT = re.compile(r"FY\s*'?(\d{2})(?!\d)", re.IGNORECASE)
_TRAILING_PAREN = re.compile(r"\s*\([^()]*\)\s*$")
_BULLETS = ("•", "✓", "▪", "-", "*")


@dataclass(frozen=True)
class CoercionResult:
    """Outcome of coercing one cell."""

    raw: Any
    numeric_value: Decimal | None = None
    is_missing: bool = False  # Empty or an explicit N/A marker

    @property
    def unparseable(self) -> bool:
        return not self.is_missing and self.numeric_value is None


def is_missing_value(value: Any) -> bool:
    """True for None, blank strings and N/A-style markers."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip().lower() in MISSING_MARKERS
    return False


def clean_numeric_text(text: str) -> str:
    """Strip currency prefix, thousands separators, whitespace and a trailing %."""
    s = text.strip()
    negative = s.startswith("(") and s.endswith(")")
    if negative:
        s = s[1:-1].strip()
    s = _CURRENCY_PREFIX.sub("", s)
    s = _WHITESPACE.sub("", s).replace(",", "")
    if s.endswith("%"):
        s = s[:-1]
    return f"-{s}" if negative and s else s


def parse_numeric(value: Any) -> Decimal | None:
    """
    Parse a cell into a Decimal, or None when absent or unparseable.

    Numbers pass through (floats via their shortest repr). Strings are
    cleaned with ``clean_numeric_text`` first.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if isinstance(value, (int, float)):
        value = str(value)
    if not isinstance(value, str) or is_missing_value(value):
        return None
    cleaned = clean_numeric_text(value)
    if not cleaned:
        return None
    try:
        result = Decimal(cleaned)
    except InvalidOperation:
        return None
    return result if result.is_finite() else None


def coerce_cell(value: Any) -> CoercionResult:
    if is_missing_value(value):
        return CoercionResult(raw=value, is_missing=True)
    return CoercionResult(raw=value, numeric_value=parse_numeric(value))


def parse_fiscal_year(label: Any) -> int | None:
    """
    Fiscal year from a free-text period label.

    The last four-digit year wins ("2023→2024" -> 2024); otherwise FYnn
    maps to 2000+nn ("FY25" -> 2025).
    """
    if label is None:
        return None
    text = str(label)
    years = _YEAR.findall(text)
    if years:
        return int(years[-1])
    match = _FY_SHORT.search(text)
    if match:
        return 2000 + int(match.group(1))
    return None


def resolve_unit(name: str, rules: Sequence[UnitRule]) -> tuple[str, str]:
    """
    Unit for a metric name and the name with the unit's parenthetical removed.

    The first rule whose ``contains`` occurs in the name wins. When that
    text sits inside a trailing parenthetical, the parenthetical is dropped
    from the name: "Total Waste (tons)" -> ("tons", "Total Waste").
    """
    for rule in rules:
        if rule.contains in name:
            match = _TRAILING_PAREN.search(name)
            if match and rule.contains in match.group(0):
                stripped = name[: match.start()].strip()
                return rule.unit, stripped or name
            return rule.unit, name
    return "", name


def resolve_subcategory(name: str, rules: Sequence[SubcategoryRule]) -> str | None:
    for rule in rules:
        if rule.contains in name:
            return rule.subcategory
    return None


def snake_case(label: str) -> str:
    """Column label -> item key, e.g. "Key Skills" -> "key_skills"."""
    return re.sub(r"[^0-9a-z]+", "_", str(label).lower()).strip("_")


def split_bullet(text: str) -> tuple[bool, str]:
    """(is_bullet, text without the bullet marker)."""
    s = text.strip()
    for bullet in _BULLETS:
        if s.startswith(bullet):
            return True, s[len(bullet):].strip()
    return False, s
