"""
esg_config -- section tables and ingestion settings.

Responsibility:
    Provides the declared section table for each report type
    (``get_section_table()``) and the ingestion tunables
    (``load_settings()``). The parser and normalizer never branch on a
    report type themselves; everything layout-specific lives in the YAML
    files under ``sets/``.

Failure modes:
    - ``UnknownReportTypeError`` -- no YAML file for the report type.
    - ``ConfigError`` -- a YAML file is structurally invalid.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from esg_config.loader import ConfigError, load_section_table, parse_section_table
from esg_config.schema import (
    ColumnDef,
    DeriveRule,
    SectionDef,
    SectionKind,
    SectionTable,
    SubcategoryRule,
    UnitRule,
)
from esg_config.settings import IngestionSettings, load_settings
from esg_kernel.exceptions import UnknownReportTypeError
from esg_kernel.logging_config import get_logger

logger = get_logger("config")

_DEFAULT_SETS_DIR = Path(__file__).parent / "sets"


def available_report_types(sets_dir: Path | None = None) -> tuple[str, ...]:
    """Report types with a section table file, sorted."""
    directory = sets_dir or _DEFAULT_SETS_DIR
    return tuple(sorted(p.stem for p in directory.glob("*.yaml")))


@lru_cache(maxsize=None)
def _load_cached(path: Path) -> SectionTable:
    table = load_section_table(path)
    logger.info(
        "section_table_loaded",
        extra={
            "report_type": table.report_type,
            "table_version": table.version,
            "section_count": len(table.sections),
        },
    )
    return table


def get_section_table(report_type: str, sets_dir: Path | None = None) -> SectionTable:
    """
    Section table for ``report_type``.

    Raises:
        UnknownReportTypeError: if no table file exists for the report type.
        ConfigError: if the table file is invalid.
    """
    directory = sets_dir or _DEFAULT_SETS_DIR
    path = directory / f"{report_type}.yaml"
    if not path.is_file():
        raise UnknownReportTypeError(report_type, available_report_types(directory))
    table = _load_cached(path)
    if table.report_type != report_type:
        raise ConfigError(
            path.name,
            f"declares report_type {table.report_type!r}, expected {report_type!r}",
        )
    return table


__all__ = [
    "ColumnDef",
    "ConfigError",
    "DeriveRule",
    "IngestionSettings",
    "SectionDef",
    "SectionKind",
    "SectionTable",
    "SubcategoryRule",
    "UnitRule",
    "available_report_types",
    "get_section_table",
    "load_settings",
    "parse_section_table",
]
