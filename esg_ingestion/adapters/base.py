"""
Source adapter protocol, row/probe DTOs and shared header handling.

Contract:
    SourceAdapter.read() returns one SourceRow per non-empty source row,
    in document order, keyed by the detected header labels.
    SourceAdapter.probe() returns a quick snapshot: row count, columns, sample rows.

Architecture: esg_ingestion/adapters. Pure byte decoding, no DB or service imports.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import Any, Collection, Protocol, Sequence, runtime_checkable

DEFAULT_HEADER_SEARCH_ROWS = 15

# First-cell labels that mark a header row (normalized: strip, lower)
_HEADER_KEYWORDS = frozenset({
    "metric", "metrics", "key metric", "indicator", "kpi",
    "name", "year", "fiscal year", "period",
    "fee type", "component", "source", "category", "item", "parameter",
})

_YEAR_LIKE = re.compile(r"^(?:(?:19|20)\d{2}|FY\s?\d{2}(?:\d{2})?)$", re.IGNORECASE)


@dataclass(frozen=True)
class SourceRow:
    """One source row: 1-based position in the source plus ordered label -> value cells."""

    row_number: int
    cells: dict[str, Any] = field(default_factory=dict)

    @property
    def labels(self) -> tuple[str, ...]:
        return tuple(self.cells)

    @property
    def values(self) -> tuple[Any, ...]:
        return tuple(self.cells.values())

    @property
    def first_cell(self) -> str:
        """First cell as stripped text ("" when the row has no cells)."""
        for value in self.cells.values():
            return "" if value is None else str(value).strip()
        return ""

    @property
    def is_empty(self) -> bool:
        return all(is_blank(v) for v in self.cells.values())


@dataclass(frozen=True)
class SourceProbe:
    """Result of probing a source (row count, columns, first N rows)."""

    row_count: int
    columns: tuple[str, ...]
    sample_rows: tuple[dict[str, Any], ...]  # First 5 rows; do not mutate
    header_row: int | None = None  # 0-based index of the consumed header row
    encoding: str | None = None
    detected_delimiter: str | None = None


@runtime_checkable
class SourceAdapter(Protocol):
    """Protocol for decoding uploaded bytes into labelled rows."""

    def read(self, content: bytes, options: dict[str, Any]) -> list[SourceRow]:
        """Decode all rows. Raises EmptyInputError when nothing can be recovered."""
        ...

    def probe(self, content: bytes, options: dict[str, Any]) -> SourceProbe:
        """Quick probe: row count, detected columns, sample rows."""
        ...


def is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def clean_cell(value: Any) -> Any:
    """Normalize a raw cell: None -> "", strings stripped, integral floats -> int.

    NaN and infinities (accepted by ``json.loads``) become their text form
    ("nan", "inf") so rows stay JSON-safe.
    """
    if value is None:
        return ""
    if isinstance(value, float):
        if not math.isfinite(value):
            return str(value)
        if value == int(value):
            return int(value)
        return value
    if isinstance(value, str):
        return value.strip()
    return value


def normalize_label(value: Any) -> str:
    """Normalize a cell value for use as a column label."""
    if value is None:
        return ""
    return re.sub(r"\s+", " ", str(value)).strip()


def is_year_like(value: Any) -> bool:
    return bool(_YEAR_LIKE.match(normalize_label(value)))


def _looks_like_header(row: Sequence[Any], markers: Collection[str] = ()) -> bool:
    if not row:
        return False
    first = normalize_label(row[0])
    if first in markers:
        return False
    if first.lower() in _HEADER_KEYWORDS:
        return True
    return sum(1 for v in row if is_year_like(v)) >= 2


def detect_header_row(
    grid: Sequence[Sequence[Any]],
    max_search: int = DEFAULT_HEADER_SEARCH_ROWS,
    markers: Collection[str] = (),
) -> int | None:
    """
    Return the 0-based index of the first row that looks like a header.

    A header row starts with a header keyword (Metric, Name, Year, Fee Type, ...)
    or carries at least two year-like cells. A row whose first cell is one of
    ``markers`` is never a header. Returns None when no row qualifies.
    """
    for i, row in enumerate(grid[:max_search]):
        if _looks_like_header(row, markers):
            return i
    return None


def build_labels(header: Sequence[Any], width: int) -> list[str]:
    """Unique labels for ``width`` columns; blanks become Column_n, duplicates get _n."""
    labels: list[str] = []
    for c in range(width):
        raw = header[c] if c < len(header) else None
        key = normalize_label(raw) or f"Column_{c + 1}"
        base = key
        cnt = 0
        while key in labels:
            cnt += 1
            key = f"{base}_{cnt}"
        labels.append(key)
    return labels


def _row_width(row: Sequence[Any]) -> int:
    """Number of cells up to and including the last non-blank one."""
    n = 0
    for c, v in enumerate(row):
        if not is_blank(v):
            n = c + 1
    return n


def rows_from_grid(
    grid: Sequence[Sequence[Any]],
    options: dict[str, Any],
) -> tuple[list[str], list[SourceRow], int | None]:
    """
    Turn a rectangular-ish grid of cells into labelled SourceRows.

    The header row is taken from ``options["header_row"]`` when given,
    otherwise auto-detected within ``options["header_search_rows"]``,
    skipping rows whose first cell is in ``options["section_markers"]``.
    Rows above the header are kept (they often hold section markers); the
    header row itself is consumed. When no header is found no row is
    consumed and columns are labelled Column_1..n. Entirely blank rows are
    dropped.

    Returns:
        (labels, rows, header_index or None)
    """
    hi: int | None
    if options.get("header_row") is not None:
        hi = int(options["header_row"])
    elif options.get("auto_detect_header", True):
        hi = detect_header_row(
            grid,
            int(options.get("header_search_rows", DEFAULT_HEADER_SEARCH_ROWS)),
            frozenset(options.get("section_markers") or ()),
        )
    else:
        hi = 0

    width = max((_row_width(r) for r in grid), default=0)
    header = grid[hi] if hi is not None and hi < len(grid) else []
    labels = build_labels(header, max(width, 1))

    rows: list[SourceRow] = []
    for i, raw in enumerate(grid):
        if i == hi:
            continue
        values = [clean_cell(raw[c]) if c < len(raw) else "" for c in range(width)]
        if all(is_blank(v) for v in values):
            continue
        rows.append(SourceRow(row_number=i + 1, cells=dict(zip(labels, values))))
    return labels, rows, hi


def probe_rows(
    labels: Sequence[str],
    rows: Sequence[SourceRow],
    header_index: int | None = None,
    encoding: str | None = None,
    delimiter: str | None = None,
    sample_size: int = 5,
) -> SourceProbe:
    return SourceProbe(
        row_count=len(rows),
        columns=tuple(labels),
        sample_rows=tuple(dict(r.cells) for r in rows[:sample_size]),
        header_row=header_index,
        encoding=encoding,
        detected_delimiter=delimiter,
    )
