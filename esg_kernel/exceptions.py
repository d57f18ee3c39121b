"""
Typed exception hierarchy for ESG metric ingestion.

Every error has a typed class (catch by type, not message), a ``code``
class attribute (machine-readable, API-safe) and structured attributes
instead of data buried in the message string.

    EsgKernelError (base)
    |
    +-- IngestionError
    |   +-- UnsupportedFormatError
    |   +-- EmptyInputError
    |   +-- NoMetricsExtractedError
    |   +-- UnknownReportTypeError
    |   +-- InvalidMetricPayloadError
    |
    +-- VersioningError
        +-- TransactionConflictError
        +-- RecordNotFoundError
        +-- VersionNotFoundError
        +-- MetricNotFoundError

Category    | Code                   | When Raised
------------|------------------------|-------------------------------------------
Ingestion   | UNSUPPORTED_FORMAT     | Declared format is not csv / excel / json
            | EMPTY_INPUT            | No rows could be recovered from the bytes
            | NO_METRICS_EXTRACTED   | Layout unrecognized end-to-end
            | UNKNOWN_REPORT_TYPE    | No section table for the report type
            | INVALID_METRIC_PAYLOAD | API payload does not match the metric model
------------|------------------------|-------------------------------------------
Versioning  | TRANSACTION_CONFLICT   | Concurrent commit for the same entity won
            | RECORD_NOT_FOUND       | Entity has no active record
            | VERSION_NOT_FOUND      | Version id unknown or owned by another entity
            | METRIC_NOT_FOUND       | Metric id not present on the active record

Handling:

    try:
        result = import_service.import_document(...)
    except TransactionConflictError:
        # Retry the whole pipeline; previous_version must be recomputed.
        ...
    except IngestionError as e:
        return 400, e.to_dict()

Validation findings are NOT exceptions; they are data returned by the
validation pass and stored on the record.
"""

from typing import Any


class EsgKernelError(Exception):
    """
    Base exception for all ingestion and versioning errors.

    All subclasses must define a ``code`` class attribute.
    """

    code: str = "ESG_KERNEL_ERROR"

    def to_dict(self) -> dict[str, Any]:
        """Structured failure payload for the upload caller."""
        return {"kind": self.code, "message": str(self)}


# Ingestion-stage exceptions (fatal to the import, nothing persisted)


class IngestionError(EsgKernelError):
    """Base exception for errors raised before anything is persisted."""

    code: str = "INGESTION_ERROR"


class UnsupportedFormatError(IngestionError):
    """Declared source format is not recognized."""

    code: str = "UNSUPPORTED_FORMAT"

    def __init__(self, source_format: str):
        self.source_format = source_format
        super().__init__(
            f"Unsupported source format: {source_format!r} "
            "(expected 'csv', 'excel' or 'json')"
        )


class EmptyInputError(IngestionError):
    """No rows could be recovered from the uploaded bytes."""

    code: str = "EMPTY_INPUT"

    def __init__(self, source_format: str, reason: str = "no rows found"):
        self.source_format = source_format
        self.reason = reason
        super().__init__(f"Empty {source_format} input: {reason}")


class NoMetricsExtractedError(IngestionError):
    """Document was readable but yielded zero metrics."""

    code: str = "NO_METRICS_EXTRACTED"

    def __init__(self, report_type: str, sections_found: int, rows_read: int):
        self.report_type = report_type
        self.sections_found = sections_found
        self.rows_read = rows_read
        super().__init__(
            f"No metrics extracted for report type {report_type!r}: "
            f"{sections_found} section(s) recognized in {rows_read} row(s)"
        )


class UnknownReportTypeError(IngestionError):
    """No section table is configured for the report type."""

    code: str = "UNKNOWN_REPORT_TYPE"

    def __init__(self, report_type: str, available: tuple[str, ...] = ()):
        self.report_type = report_type
        self.available = available
        super().__init__(
            f"Unknown report type {report_type!r}; "
            f"available: {', '.join(available) or 'none'}"
        )


class InvalidMetricPayloadError(IngestionError):
    """Manual/API metric payload does not match the typed metric model."""

    code: str = "INVALID_METRIC_PAYLOAD"

    def __init__(self, reason: str, metric_name: str | None = None):
        self.reason = reason
        self.metric_name = metric_name
        label = f" ({metric_name})" if metric_name else ""
        super().__init__(f"Invalid metric payload{label}: {reason}")


# Versioning exceptions


class VersioningError(EsgKernelError):
    """Base exception for version/lineage errors."""

    code: str = "VERSIONING_ERROR"


class TransactionConflictError(VersioningError):
    """
    A concurrent commit for the same entity won the race.

    The caller should retry the whole pipeline, not just the commit step.
    """

    code: str = "TRANSACTION_CONFLICT"

    def __init__(self, entity_id: str, attempted_version: int):
        self.entity_id = entity_id
        self.attempted_version = attempted_version
        super().__init__(
            f"Concurrent commit for entity {entity_id} while creating "
            f"version {attempted_version}"
        )


class RecordNotFoundError(VersioningError):
    """Entity has no active metric record."""

    code: str = "RECORD_NOT_FOUND"

    def __init__(self, entity_id: str):
        self.entity_id = entity_id
        super().__init__(f"No active metric record for entity {entity_id}")


class VersionNotFoundError(VersioningError):
    """Version id is unknown or belongs to a different entity."""

    code: str = "VERSION_NOT_FOUND"

    def __init__(self, entity_id: str, version_id: str):
        self.entity_id = entity_id
        self.version_id = version_id
        super().__init__(
            f"Version {version_id} not found for entity {entity_id}"
        )


class MetricNotFoundError(VersioningError):
    """Metric id is not present on the active record."""

    code: str = "METRIC_NOT_FOUND"

    def __init__(self, entity_id: str, metric_id: str):
        self.entity_id = entity_id
        self.metric_id = metric_id
        super().__init__(f"Metric {metric_id} not found for entity {entity_id}")
