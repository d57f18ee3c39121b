"""Source adapters: uploaded bytes -> labelled rows (pure, no DB)."""

from __future__ import annotations

from typing import Any

from esg_ingestion.adapters.base import SourceAdapter, SourceProbe, SourceRow
from esg_ingestion.adapters.csv_adapter import CsvSourceAdapter
from esg_ingestion.adapters.json_adapter import JsonSourceAdapter
from esg_ingestion.adapters.xlsx_adapter import XlsxSourceAdapter
from esg_kernel.exceptions import UnsupportedFormatError

# Alias -> (canonical format, implied options)
_FORMAT_ALIASES: dict[str, tuple[str, dict[str, Any]]] = {
    "csv": ("csv", {}),
    "excel": ("excel", {}),
    "xlsx": ("excel", {}),
    "json": ("json", {}),
    "jsonl": ("json", {"format": "jsonl"}),
}


def default_adapters() -> dict[str, SourceAdapter]:
    return {
        "csv": CsvSourceAdapter(),
        "excel": XlsxSourceAdapter(),
        "json": JsonSourceAdapter(),
    }


def resolve_format(source_format: str) -> tuple[str, dict[str, Any]]:
    """
    Canonical format name and implied options for ``source_format``.

    Raises:
        UnsupportedFormatError: for anything but csv / excel / xlsx / json / jsonl.
    """
    key = (source_format or "").strip().lower()
    if key not in _FORMAT_ALIASES:
        raise UnsupportedFormatError(source_format)
    canonical, implied = _FORMAT_ALIASES[key]
    return canonical, dict(implied)


def read_rows(
    content: bytes,
    source_format: str,
    options: dict[str, Any] | None = None,
    adapters: dict[str, SourceAdapter] | None = None,
) -> list[SourceRow]:
    """Decode ``content`` with the adapter registered for ``source_format``."""
    canonical, implied = resolve_format(source_format)
    adapter = (adapters or default_adapters())[canonical]
    return adapter.read(content, {**implied, **(options or {})})


def probe(
    content: bytes,
    source_format: str,
    options: dict[str, Any] | None = None,
    adapters: dict[str, SourceAdapter] | None = None,
) -> SourceProbe:
    """Preview ``content``: row count, columns and up to five sample rows."""
    canonical, implied = resolve_format(source_format)
    adapter = (adapters or default_adapters())[canonical]
    return adapter.probe(content, {**implied, **(options or {})})


__all__ = [
    "SourceAdapter",
    "SourceProbe",
    "SourceRow",
    "CsvSourceAdapter",
    "JsonSourceAdapter",
    "XlsxSourceAdapter",
    "default_adapters",
    "probe",
    "read_rows",
    "resolve_format",
]
