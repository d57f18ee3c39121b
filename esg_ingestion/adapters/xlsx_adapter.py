"""
XLSX source adapter for ESG workbooks.

Supports flexible layout:
  - sheet by index (0-based) or name
  - header row by index or auto-detect (scans the first N rows for a
    Metric / Name / Year style first cell, or two year-like cells)
  - skip_rows before header
  - normalizes cell values (strip, blank->empty string, 1450.0 -> 1450)
"""

from __future__ import annotations

import io
import zipfile
from typing import Any

from esg_ingestion.adapters.base import SourceProbe, SourceRow, probe_rows, rows_from_grid
from esg_kernel.exceptions import EmptyInputError

_MAX_ROWS = 100_000


class XlsxSourceAdapter:
    """
    Read .xlsx workbooks as labelled rows.

    source_options:
      sheet: 0-based sheet index (int) or sheet name (str). Default: active sheet.
      skip_rows: number of rows to skip at top of sheet before header/data. Default: 0.
      header_row: 0-based row index (after skip_rows) to use as header.
      header_search_rows: how many rows auto-detect scans. Default: 15.
    """

    def _grid(self, content: bytes, options: dict[str, Any]) -> list[list[Any]]:
        try:
            import openpyxl
            from openpyxl.utils.exceptions import InvalidFileException
        except ImportError as e:
            raise ImportError("XLSX support requires openpyxl. Install with: pip install openpyxl") from e

        try:
            wb = openpyxl.load_workbook(io.BytesIO(content), read_only=True, data_only=True)
        except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as e:
            raise EmptyInputError("excel", f"unreadable workbook: {e}") from e

        try:
            sheet = self._get_sheet(wb, options)
            skip_rows = int(options.get("skip_rows", 0))
            return [
                list(row)
                for row in sheet.iter_rows(
                    min_row=1 + skip_rows, max_row=_MAX_ROWS, values_only=True,
                )
            ]
        finally:
            wb.close()

    def _get_sheet(self, wb: Any, options: dict[str, Any]) -> Any:
        sheet_ref = options.get("sheet")
        if sheet_ref is None:
            return wb.active
        try:
            if isinstance(sheet_ref, int):
                return wb.worksheets[sheet_ref]
            return wb[sheet_ref]
        except (IndexError, KeyError) as e:
            raise EmptyInputError("excel", f"sheet {sheet_ref!r} not found") from e

    def read(self, content: bytes, options: dict[str, Any]) -> list[SourceRow]:
        grid = self._grid(content, options)
        _, rows, _ = rows_from_grid(grid, options)
        if not rows:
            raise EmptyInputError("excel")
        return rows

    def probe(self, content: bytes, options: dict[str, Any]) -> SourceProbe:
        grid = self._grid(content, options)
        if not grid:
            return SourceProbe(row_count=0, columns=(), sample_rows=())
        labels, rows, hi = rows_from_grid(grid, options)
        return probe_rows(labels, rows, header_index=hi)
