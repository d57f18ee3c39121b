"""
Section Table Loader (``esg_config.loader``).

Responsibility
--------------
Loads report-type YAML files and parses them into the frozen
``esg_config.schema`` dataclasses. Runtime callers go through
``esg_config.get_section_table()``, which caches the parsed table.

Invariants enforced
-------------------
* Every section references a category from the table's closed category set.
* A marker string opens exactly one section.
* ``initial_section`` (when set) names a declared section.
* ``year_rows`` sections declare at least one column; ``list`` sections
  declare a metric name.
* Column category overrides belong to the category set; derive patterns
  compile.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys or broken invariants  -> ``ConfigError``.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any

import yaml

from esg_config.schema import (
    ColumnDef,
    DeriveRule,
    SectionDef,
    SectionKind,
    SectionTable,
    SubcategoryRule,
    UnitRule,
)


class ConfigError(ValueError):
    """A section table file is structurally invalid."""

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"Invalid section table {source}: {reason}")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _required(data: dict[str, Any], key: str, source: str) -> Any:
    if key not in data or data[key] in (None, ""):
        raise ConfigError(source, f"missing required key {key!r}")
    return data[key]


def parse_column(data: dict[str, Any], source: str) -> ColumnDef:
    """Parse a ``year_rows`` column definition."""
    label = _required(data, "label", source)
    return ColumnDef(
        label=label,
        metric_name=data.get("metric_name", label),
        subcategory=data.get("subcategory"),
        unit=data.get("unit", ""),
        category=data.get("category"),
    )


def parse_derive(data: dict[str, Any], source: str) -> DeriveRule:
    """Parse a list-to-single-value derive rule."""
    return DeriveRule(
        match=_required(data, "match", source),
        metric_name=_required(data, "metric_name", source),
        subcategory=data.get("subcategory"),
        pattern=data.get("pattern"),
        unit=data.get("unit", ""),
    )


def parse_section(data: dict[str, Any], source: str) -> SectionDef:
    """
    Parse a ``SectionDef`` from a dict.

    Raises:
        ConfigError: if ``tag``, ``kind`` or ``category`` is missing, or the
            kind is unknown.
    """
    tag = _required(data, "tag", source)
    kind_raw = _required(data, "kind", source)
    try:
        kind = SectionKind(kind_raw)
    except ValueError:
        raise ConfigError(
            source, f"section {tag!r} has unknown kind {kind_raw!r}",
        ) from None

    return SectionDef(
        tag=tag,
        kind=kind,
        category=_required(data, "category", source),
        markers=tuple(data.get("markers", ())),
        metric_name=data.get("metric_name"),
        subcategory=data.get("subcategory"),
        sub_headers=tuple(data.get("sub_headers", ())),
        year_columns=tuple(str(y) for y in data.get("year_columns", ())),
        value_column=data.get("value_column"),
        columns=tuple(parse_column(c, source) for c in data.get("columns", ())),
        primary_key=data.get("primary_key", "item"),
        bullets_only=bool(data.get("bullets_only", False)),
        derive=tuple(parse_derive(d, source) for d in data.get("derive", ())),
        latest_value_column=data.get("latest_value_column", "Latest Value"),
        trend_column=data.get("trend_column", "Trend"),
        notes_column=data.get("notes_column", "Notes"),
    )


def parse_section_table(data: dict[str, Any], source: str = "<memory>") -> SectionTable:
    """
    Parse and validate a ``SectionTable`` from a dict.

    Raises:
        ConfigError: on missing keys or broken table invariants.
    """
    report_type = _required(data, "report_type", source)
    categories = frozenset(_required(data, "categories", source))
    sections = tuple(
        parse_section(s, source) for s in _required(data, "sections", source)
    )

    table = SectionTable(
        report_type=report_type,
        version=int(data.get("version", 1)),
        categories=categories,
        sections=sections,
        initial_section=data.get("initial_section"),
        units=tuple(
            UnitRule(contains=u["contains"], unit=u["unit"])
            for u in data.get("units", ())
        ),
        subcategories=tuple(
            SubcategoryRule(contains=s["contains"], subcategory=s["subcategory"])
            for s in data.get("subcategories", ())
        ),
        description=data.get("description", ""),
    )
    validate_section_table(table, source)
    return table


def validate_section_table(table: SectionTable, source: str) -> None:
    """Check the structural invariants listed in the module docstring."""
    tags = [s.tag for s in table.sections]
    duplicates = {t for t in tags if tags.count(t) > 1}
    if duplicates:
        raise ConfigError(source, f"duplicate section tags {sorted(duplicates)}")

    seen_markers: dict[str, str] = {}
    for section in table.sections:
        if section.category not in table.categories:
            raise ConfigError(
                source,
                f"section {section.tag!r} uses category {section.category!r} "
                "outside the declared category set",
            )
        for marker in section.markers:
            if marker in seen_markers:
                raise ConfigError(
                    source,
                    f"marker {marker!r} opens both {seen_markers[marker]!r} "
                    f"and {section.tag!r}",
                )
            seen_markers[marker] = section.tag
        if section.kind == SectionKind.YEAR_ROWS and not section.columns:
            raise ConfigError(source, f"year_rows section {section.tag!r} has no columns")
        for column in section.columns:
            if column.category is not None and column.category not in table.categories:
                raise ConfigError(
                    source,
                    f"column {column.label!r} uses category {column.category!r} "
                    "outside the declared category set",
                )
        for rule in section.derive:
            if rule.pattern is None:
                continue
            try:
                re.compile(rule.pattern)
            except re.error as e:
                raise ConfigError(
                    source, f"derive rule {rule.metric_name!r} has an invalid pattern: {e}",
                ) from None
        if section.kind == SectionKind.LIST and not section.metric_name:
            raise ConfigError(source, f"list section {section.tag!r} has no metric_name")
        if section.kind == SectionKind.YEARLY_SERIES and not section.year_columns:
            raise ConfigError(
                source, f"yearly_series section {section.tag!r} has no year_columns",
            )

    if table.initial_section is not None and table.initial_section not in tags:
        raise ConfigError(
            source, f"initial_section {table.initial_section!r} is not a declared section",
        )
    if table.initial_section is None and not seen_markers:
        raise ConfigError(source, "table declares no markers and no initial_section")


def load_section_table(path: Path) -> SectionTable:
    """Load and parse one report-type YAML file."""
    return parse_section_table(load_yaml_file(path), source=path.name)
