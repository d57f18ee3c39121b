"""
Section parser: labelled source rows -> ordered section buffers.

Table-driven finite-state machine. The only state is the current section
tag; transitions come from the report type's SectionTable (marker string ->
section tag). ZERO I/O.

Per row, on its stripped first cell:
    1. exact marker match     -> switch section, consume row
    2. row entirely empty     -> skip
    3. no open section        -> drop (counted)
    4. section sub-header     -> remember its cells as positional labels
    5. otherwise              -> re-key positionally, append to section
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Sequence

from esg_config.schema import SectionTable
from esg_ingestion.adapters.base import SourceRow, normalize_label
from esg_kernel.logging_config import get_logger

logger = get_logger("ingestion.section_parser")


@dataclass(frozen=True)
class RawSection:
    """One contiguous run of rows belonging to a section."""

    tag: str
    labels: tuple[str, ...]
    rows: tuple[SourceRow, ...]


@dataclass(frozen=True)
class ParsedDocument:
    """Parser output: sections in document order plus the count of unattributable rows."""

    sections: tuple[RawSection, ...]
    dropped_rows: int = 0

    @property
    def data_row_count(self) -> int:
        """Rows that reached a section."""
        return sum(len(s.rows) for s in self.sections)

    def sections_with_tag(self, tag: str) -> tuple[RawSection, ...]:
        return tuple(s for s in self.sections if s.tag == tag)


@dataclass
class _OpenSection:
    tag: str
    labels: tuple[str, ...]
    rows: list[SourceRow] = field(default_factory=list)

    def close(self) -> RawSection:
        return RawSection(tag=self.tag, labels=self.labels, rows=tuple(self.rows))


def _rekey(row: SourceRow, labels: Sequence[str]) -> SourceRow:
    """Re-key a row's cells positionally; cells past the labels keep their own label."""
    cells: dict[str, Any] = {}
    for i, (own_label, value) in enumerate(row.cells.items()):
        label = labels[i] if i < len(labels) and labels[i] else own_label
        if label in cells:
            label = own_label
        cells[label] = value
    return SourceRow(row_number=row.row_number, cells=cells)


def _sub_header_labels(row: SourceRow) -> tuple[str, ...]:
    labels: list[str] = []
    for i, value in enumerate(row.values):
        label = normalize_label(value) or f"Column_{i + 1}"
        base, cnt = label, 0
        while label in labels:
            cnt += 1
            label = f"{base}_{cnt}"
        labels.append(label)
    return tuple(labels)


class SectionParser:
    """
    Split a row stream into sections using a declared transition table.

    The parser is stateless between calls; one instance can serve any
    number of documents of the same report type.
    """

    def __init__(self, table: SectionTable):
        self._table = table

    def parse(self, rows: Sequence[SourceRow]) -> ParsedDocument:
        table = self._table
        document_labels = rows[0].labels if rows else ()

        closed: list[RawSection] = []
        current: _OpenSection | None = None
        if table.initial_section is not None:
            current = _OpenSection(tag=table.initial_section, labels=document_labels)
        dropped = 0

        for row in rows:
            first = row.first_cell
            target = table.target_for(first)
            if target is not None:
                if current is not None and current.rows:
                    closed.append(current.close())
                current = _OpenSection(tag=target, labels=document_labels)
                continue

            if row.is_empty:
                continue

            if current is None:
                dropped += 1
                continue

            section = table.section(current.tag)
            if first in section.sub_headers:
                if current.rows:
                    # A header after data rows starts a new group.
                    closed.append(current.close())
                    current = _OpenSection(tag=current.tag, labels=document_labels)
                current.labels = _sub_header_labels(row)
                continue

            current.rows.append(_rekey(row, current.labels))

        if current is not None and current.rows:
            closed.append(current.close())

        document = ParsedDocument(sections=tuple(closed), dropped_rows=dropped)
        logger.info(
            "sections_parsed",
            extra={
                "report_type": table.report_type,
                "section_count": len(document.sections),
                "section_tags": [s.tag for s in document.sections],
                "data_rows": document.data_row_count,
                "dropped_rows": dropped,
            },
        )
        return document


def parse_sections(rows: Sequence[SourceRow], table: SectionTable) -> ParsedDocument:
    """Convenience wrapper around ``SectionParser(table).parse(rows)``."""
    return SectionParser(table).parse(rows)
