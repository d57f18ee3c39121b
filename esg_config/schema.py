"""
Section table schema (``esg_config.schema``).

Frozen dataclasses describing how a report type's documents are laid out:
which first-cell strings open which section (the parser's transition
table), how each section's rows become metrics, and the closed set of
metric categories the report type may produce.

New report types are added by writing a YAML file under ``sets/``, never by
adding branches to the parser or normalizer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class SectionKind(str, Enum):
    """Extraction rule applied to a section's rows."""

    YEARLY_SERIES = "yearly_series"  # Row = metric, year columns = points
    YEAR_ROWS = "year_rows"  # Row = year, configured columns = metrics
    SINGLE_VALUE = "single_value"  # Row = metric with one value cell
    LIST = "list"  # Rows = items of one list metric
    SUMMARY = "summary"  # Row = KPI snapshot


@dataclass(frozen=True)
class UnitRule:
    """Metric names containing ``contains`` are measured in ``unit``."""

    contains: str
    unit: str


@dataclass(frozen=True)
class SubcategoryRule:
    """Metric names containing ``contains`` get ``subcategory``."""

    contains: str
    subcategory: str


@dataclass(frozen=True)
class ColumnDef:
    """One metric column of a ``year_rows`` section."""

    label: str
    metric_name: str
    subcategory: str | None = None
    unit: str = ""
    category: str | None = None  # Overrides the section category


@dataclass(frozen=True)
class DeriveRule:
    """
    Promote a list item containing ``match`` to its own single_value metric.

    Without ``pattern`` the value is the text after the first colon. With
    ``pattern`` (a regex) the value is its first group, or the whole match,
    and items the pattern does not match are not promoted.
    """

    match: str
    metric_name: str
    subcategory: str | None = None
    pattern: str | None = None
    unit: str = ""


@dataclass(frozen=True)
class SectionDef:
    """One logical sub-table of a report type."""

    tag: str
    kind: SectionKind
    category: str
    markers: tuple[str, ...] = ()
    metric_name: str | None = None  # List metric name (list kind)
    subcategory: str | None = None
    sub_headers: tuple[str, ...] = ()  # First-cell labels of header rows
    year_columns: tuple[str, ...] = ()  # yearly_series candidates
    value_column: str | None = None  # single_value (second cell if absent)
    columns: tuple[ColumnDef, ...] = ()  # year_rows
    primary_key: str = "item"  # list: key for the first cell
    bullets_only: bool = False  # list: keep only bullet lines
    derive: tuple[DeriveRule, ...] = ()
    latest_value_column: str = "Latest Value"  # summary
    trend_column: str = "Trend"
    notes_column: str = "Notes"


@dataclass(frozen=True)
class SectionTable:
    """Declared transition table and extraction rules for one report type."""

    report_type: str
    version: int
    categories: frozenset[str]
    sections: tuple[SectionDef, ...]
    initial_section: str | None = None
    units: tuple[UnitRule, ...] = ()
    subcategories: tuple[SubcategoryRule, ...] = ()
    description: str = ""
    _by_tag: dict[str, SectionDef] = field(
        default_factory=dict, init=False, repr=False, compare=False,
    )
    _transitions: dict[str, str] = field(
        default_factory=dict, init=False, repr=False, compare=False,
    )

    def __post_init__(self) -> None:
        # Frozen: populate the lookup caches through object.__setattr__.
        object.__setattr__(self, "_by_tag", {s.tag: s for s in self.sections})
        object.__setattr__(
            self,
            "_transitions",
            {marker: s.tag for s in self.sections for marker in s.markers},
        )

    @property
    def markers(self) -> frozenset[str]:
        """Every first-cell string that opens a section."""
        return frozenset(self._transitions)

    @property
    def transitions(self) -> dict[str, str]:
        """Marker string -> section tag."""
        return dict(self._transitions)

    def target_for(self, first_cell: str) -> str | None:
        """Section tag opened by ``first_cell``, or None if it is not a marker."""
        return self._transitions.get(first_cell)

    def section(self, tag: str) -> SectionDef:
        return self._by_tag[tag]
