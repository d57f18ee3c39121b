"""
CSV source adapter.

Uses csv.reader over the decoded bytes. Configurable: delimiter, encoding,
quoting, skip_rows, header_row / header_search_rows. Handles BOM via
utf-8-sig when encoding is utf-8.
"""

from __future__ import annotations

import csv
import io
from typing import Any

from esg_ingestion.adapters.base import SourceProbe, SourceRow, probe_rows, rows_from_grid
from esg_kernel.exceptions import EmptyInputError


_QUOTING = {
    "minimal": csv.QUOTE_MINIMAL,
    "all": csv.QUOTE_ALL,
    "nonnumeric": csv.QUOTE_NONNUMERIC,
    "none": csv.QUOTE_NONE,
}


def _get_encoding(options: dict[str, Any]) -> str:
    enc = options.get("encoding", "utf-8")
    if enc.lower() == "utf-8":
        return "utf-8-sig"  # Strip BOM if present
    return enc


def _get_quoting(options: dict[str, Any]) -> int:
    q = options.get("quoting", "minimal")
    if isinstance(q, int):
        return q
    return _QUOTING.get(str(q).lower(), csv.QUOTE_MINIMAL)


class CsvSourceAdapter:
    """Read delimited text as labelled rows."""

    def _grid(self, content: bytes, options: dict[str, Any]) -> list[list[str]]:
        encoding = _get_encoding(options)
        try:
            text = content.decode(encoding)
        except UnicodeDecodeError as e:
            raise EmptyInputError("csv", f"cannot decode as {encoding}: {e.reason}") from e

        reader = csv.reader(
            io.StringIO(text, newline=""),
            delimiter=options.get("delimiter", ","),
            quoting=_get_quoting(options),
        )
        try:
            grid = list(reader)
        except csv.Error as e:
            raise EmptyInputError("csv", f"malformed CSV: {e}") from e
        return grid[int(options.get("skip_rows", 0)):]

    def read(self, content: bytes, options: dict[str, Any]) -> list[SourceRow]:
        grid = self._grid(content, options)
        _, rows, _ = rows_from_grid(grid, options)
        if not rows:
            raise EmptyInputError("csv")
        return rows

    def probe(self, content: bytes, options: dict[str, Any]) -> SourceProbe:
        grid = self._grid(content, options)
        if not grid:
            return SourceProbe(row_count=0, columns=(), sample_rows=())
        labels, rows, hi = rows_from_grid(grid, options)
        return probe_rows(
            labels,
            rows,
            header_index=hi,
            encoding=_get_encoding(options),
            delimiter=options.get("delimiter", ","),
        )
