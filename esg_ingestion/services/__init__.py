"""
ESG ingestion services.

ImportService runs the upload pipeline; VersionManager owns every write to
``metric_records``; ValidationService scores the active record.
"""

from esg_ingestion.services.import_service import (
    ImportResult,
    ImportService,
    format_for_filename,
    generate_batch_id,
)
from esg_ingestion.services.validation_service import ValidationService
from esg_ingestion.services.version_manager import VersionManager

__all__ = [
    "ImportResult",
    "ImportService",
    "ValidationService",
    "VersionManager",
    "format_for_filename",
    "generate_batch_id",
]
