"""Section parsing (pure, no I/O)."""

from esg_ingestion.parsing.section_parser import (
    ParsedDocument,
    RawSection,
    SectionParser,
    parse_sections,
)

__all__ = [
    "ParsedDocument",
    "RawSection",
    "SectionParser",
    "parse_sections",
]
