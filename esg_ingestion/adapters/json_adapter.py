"""
JSON source adapter.

Handles a JSON array of objects, JSON Lines (one object per line), a nested
array reached through ``json_path`` (e.g. "data.rows"), and a single
top-level object (one row). An array of arrays is treated like a sheet and
goes through the same header detection as CSV/XLSX.

Labels are the first-level keys of each object, in document order.
"""

from __future__ import annotations

import json
from typing import Any

from esg_ingestion.adapters.base import (
    SourceProbe,
    SourceRow,
    clean_cell,
    is_blank,
    probe_rows,
    rows_from_grid,
)
from esg_kernel.exceptions import EmptyInputError


def _get_nested(data: Any, path: str) -> Any:
    """Follow dot-separated path into dict/list. Returns None if key missing."""
    if not path.strip():
        return data
    for key in path.split("."):
        key = key.strip()
        if not key:
            continue
        if isinstance(data, list):
            try:
                data = data[int(key)]
            except (ValueError, IndexError):
                return None
        elif isinstance(data, dict) and key in data:
            data = data[key]
        else:
            return None
    return data


def _all_keys(rows: list[SourceRow]) -> tuple[str, ...]:
    """Union of labels across rows, first-seen order."""
    seen: dict[str, None] = {}
    for row in rows:
        for label in row.cells:
            seen.setdefault(label, None)
    return tuple(seen)


def _object_rows(items: list[Any]) -> list[SourceRow]:
    rows: list[SourceRow] = []
    for i, item in enumerate(items):
        if not isinstance(item, dict):
            continue
        cells = {
            str(k).strip(): clean_cell(v) if isinstance(v, float) else v
            for k, v in item.items()
        }
        if all(is_blank(v) for v in cells.values()):
            continue
        rows.append(SourceRow(row_number=i + 1, cells=cells))
    return rows


class JsonSourceAdapter:
    """Read JSON documents as labelled rows."""

    def _decode(self, content: bytes, options: dict[str, Any]) -> tuple[list[str], list[SourceRow], int | None]:
        encoding = options.get("encoding", "utf-8")
        try:
            text = content.decode(encoding)
        except UnicodeDecodeError as e:
            raise EmptyInputError("json", f"cannot decode as {encoding}: {e.reason}") from e
        text = text.lstrip("\ufeff")

        if options.get("format", "array") == "jsonl":
            items: list[Any] = []
            for lineno, line in enumerate(text.splitlines(), start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    items.append(json.loads(line))
                except json.JSONDecodeError as e:
                    raise EmptyInputError("json", f"malformed JSON on line {lineno}: {e.msg}") from e
            rows = _object_rows(items)
            return list(_all_keys(rows)), rows, None

        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise EmptyInputError("json", f"malformed JSON: {e.msg}") from e

        json_path = options.get("json_path")
        root = _get_nested(data, json_path) if json_path else data
        if isinstance(root, dict):
            root = [root]
        if not isinstance(root, list):
            return [], [], None

        if root and all(isinstance(item, list) for item in root):
            labels, rows, hi = rows_from_grid(root, options)
            return labels, rows, hi

        rows = _object_rows(root)
        return list(_all_keys(rows)), rows, None

    def read(self, content: bytes, options: dict[str, Any]) -> list[SourceRow]:
        _, rows, _ = self._decode(content, options)
        if not rows:
            raise EmptyInputError("json")
        return rows

    def probe(self, content: bytes, options: dict[str, Any]) -> SourceProbe:
        labels, rows, hi = self._decode(content, options)
        return probe_rows(labels, rows, header_index=hi, encoding=options.get("encoding", "utf-8"))
