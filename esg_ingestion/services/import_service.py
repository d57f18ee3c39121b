"""
Import service: read -> parse -> normalize -> attribute -> commit -> validate.

Orchestrates source adapters, the section parser, the metric normalizer and
the version manager for one upload. Uses structured logging (LogContext,
get_logger("ingestion.*")); the batch id is the log correlation id.

A TransactionConflictError from the commit step reruns the whole pipeline
(up to ``max_commit_attempts``), since the predecessor the first attempt saw
is stale.
"""

from __future__ import annotations

import secrets
import string
from dataclasses import dataclass
from pathlib import PurePath
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from esg_config import IngestionSettings, SectionTable, get_section_table, load_settings
from esg_ingestion.adapters import read_rows, resolve_format
from esg_ingestion.adapters import probe as probe_content
from esg_ingestion.adapters.base import SourceAdapter, SourceProbe
from esg_ingestion.domain.attribution import inject_attribution
from esg_ingestion.domain.types import (
    ImportSource,
    Metric,
    RecordPayload,
    metric_from_dict,
)
from esg_ingestion.normalization.engine import MetricNormalizer, NormalizationContext, data_period
from esg_ingestion.parsing.section_parser import SectionParser
from esg_ingestion.services.validation_service import ValidationService
from esg_ingestion.services.version_manager import VersionManager
from esg_kernel.domain.clock import Clock, SystemClock
from esg_kernel.exceptions import (
    InvalidMetricPayloadError,
    TransactionConflictError,
    UnsupportedFormatError,
)
from esg_kernel.logging_config import LogContext, get_logger

logger = get_logger("ingestion.import_service")

_BASE36 = string.digits + string.ascii_lowercase

# File extension -> adapter format
_EXTENSION_FORMATS = {
    ".csv": "csv",
    ".xlsx": "excel",
    ".xlsm": "excel",
    ".json": "json",
    ".jsonl": "jsonl",
}

_FORMAT_SOURCES = {
    "csv": ImportSource.CSV,
    "excel": ImportSource.EXCEL,
    "json": ImportSource.JSON,
}


@dataclass(frozen=True)
class ImportResult:
    """Outcome of one successful import."""

    batch_id: str
    records_processed: int  # Data rows that reached a section (metrics for payloads)
    record_id: UUID
    version: int = 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "batchId": self.batch_id,
            "recordsProcessed": self.records_processed,
            "recordId": str(self.record_id),
        }


def generate_batch_id(source: str, clock: Clock) -> str:
    """``{source}_import_{unix_ms}_{9 base36 chars}``."""
    suffix = "".join(secrets.choice(_BASE36) for _ in range(9))
    return f"{source}_import_{clock.now_ms()}_{suffix}"


def format_for_filename(file_name: str) -> str:
    """
    Adapter format for an uploaded file name (".xlsx" -> "excel").

    Raises:
        UnsupportedFormatError: unknown extension.
    """
    suffix = PurePath(file_name).suffix.lower()
    if suffix not in _EXTENSION_FORMATS:
        raise UnsupportedFormatError(suffix or file_name)
    return _EXTENSION_FORMATS[suffix]


class ImportService:
    """
    Entry point for uploads and manual/API payloads.

    Does NOT commit the session; wrap calls in ``session_scope()``.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        adapters: dict[str, SourceAdapter] | None = None,
        settings: IngestionSettings | None = None,
        auto_validate: bool = True,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._adapters = adapters
        self._settings = settings or load_settings()
        self._auto_validate = auto_validate
        self._versions = VersionManager(session, self._clock)
        self._validation = ValidationService(session)

    # -------------------------------------------------------------------------
    # Preview
    # -------------------------------------------------------------------------

    def probe_source(
        self,
        content: bytes,
        source_format: str,
        options: dict[str, Any] | None = None,
    ) -> SourceProbe:
        return probe_content(content, source_format, self._read_options(options), self._adapters)

    # -------------------------------------------------------------------------
    # Document import
    # -------------------------------------------------------------------------

    def import_document(
        self,
        content: bytes,
        source_format: str,
        entity_id: UUID,
        actor_id: UUID,
        report_type: str,
        file_name: str | None = None,
        original_source: str | None = None,
        options: dict[str, Any] | None = None,
    ) -> ImportResult:
        """
        Run the full pipeline for one uploaded document.

        Raises:
            UnsupportedFormatError, EmptyInputError, UnknownReportTypeError,
            NoMetricsExtractedError: nothing persisted.
            TransactionConflictError: every commit attempt lost a race.
        """
        table = get_section_table(report_type)
        canonical, _ = resolve_format(source_format)
        batch_id = generate_batch_id(canonical, self._clock)

        with LogContext.bind(
            correlation_id=batch_id,
            producer="ingestion",
            actor_id=str(actor_id),
            entity_id=str(entity_id),
        ):
            logger.info(
                "batch_created",
                extra={
                    "report_type": report_type,
                    "source_format": canonical,
                    "source_file_name": file_name,
                    "content_bytes": len(content),
                },
            )
            return self._with_retries(
                entity_id,
                lambda: self._run_pipeline(
                    content, source_format, canonical, entity_id, actor_id, table,
                    batch_id, file_name, original_source, options,
                ),
            )

    def _read_options(
        self,
        options: dict[str, Any] | None,
        table: SectionTable | None = None,
    ) -> dict[str, Any]:
        defaults: dict[str, Any] = {"header_search_rows": self._settings.header_search_rows}
        if table is not None:
            defaults["section_markers"] = table.markers
        return {**defaults, **(options or {})}

    def _with_retries(self, entity_id: UUID, attempt_fn) -> ImportResult:
        attempts = self._settings.max_commit_attempts
        for attempt in range(1, attempts + 1):
            try:
                return attempt_fn()
            except TransactionConflictError:
                if attempt >= attempts:
                    logger.error(
                        "commit_retries_exhausted",
                        extra={"entity_id": str(entity_id), "attempts": attempts},
                    )
                    raise
                logger.warning(
                    "import_retry",
                    extra={"entity_id": str(entity_id), "attempt": attempt},
                )
        raise AssertionError("unreachable")

    def _run_pipeline(
        self,
        content: bytes,
        source_format: str,
        canonical: str,
        entity_id: UUID,
        actor_id: UUID,
        table: SectionTable,
        batch_id: str,
        file_name: str | None,
        original_source: str | None,
        options: dict[str, Any] | None,
    ) -> ImportResult:
        rows = read_rows(content, source_format, self._read_options(options, table), self._adapters)
        document = SectionParser(table).parse(rows)

        now = self._clock.now()
        context = NormalizationContext(
            source=original_source or file_name or self._settings.default_source_label,
            actor_id=actor_id,
            at=now,
        )
        metrics = MetricNormalizer(table).normalize(document, context)
        metrics = inject_attribution(metrics, actor_id, now)
        period_start, period_end = data_period(metrics)

        record = self._versions.commit(
            entity_id,
            RecordPayload(
                report_type=table.report_type,
                metrics=tuple(metrics),
                import_source=_FORMAT_SOURCES[canonical],
                source_file_name=file_name,
                original_source=original_source or file_name,
                import_batch_id=batch_id,
                import_date=now,
                import_notes=f"Imported {len(metrics)} metrics from {document.data_row_count} rows",
                data_period_start=period_start,
                data_period_end=period_end,
            ),
            actor_id,
        )
        with LogContext.bind(record_id=str(record.record_id)):
            if self._auto_validate:
                self._validation.validate_active(entity_id)
            logger.info(
                "import_completed",
                extra={
                    "version": record.version,
                    "records_processed": document.data_row_count,
                    "dropped_rows": document.dropped_rows,
                    "metric_count": len(metrics),
                },
            )
        return ImportResult(
            batch_id=batch_id,
            records_processed=document.data_row_count,
            record_id=record.record_id,
            version=record.version,
        )

    # -------------------------------------------------------------------------
    # Manual / API payloads
    # -------------------------------------------------------------------------

    def import_payload(
        self,
        entity_id: UUID,
        payload: dict[str, Any],
        actor_id: UUID,
        report_type: str,
        import_source: ImportSource = ImportSource.MANUAL,
    ) -> ImportResult:
        """
        Commit a manual/API JSON payload ``{"metrics": [...], ...}``.

        Metrics go through the typed model (``metric_from_dict``) and the
        attribution pass; list items given as plain strings become
        ``{"item": ..., "source": ...}``.

        Raises:
            InvalidMetricPayloadError: missing metrics array, a malformed
                metric, or a category outside the report type's set.
        """
        table = get_section_table(report_type)
        batch_id = generate_batch_id(import_source.value, self._clock)

        with LogContext.bind(
            correlation_id=batch_id,
            producer="ingestion",
            actor_id=str(actor_id),
            entity_id=str(entity_id),
        ):
            raw_metrics = payload.get("metrics") if isinstance(payload, dict) else None
            if not isinstance(raw_metrics, list) or not raw_metrics:
                raise InvalidMetricPayloadError("missing metrics array")

            source_file_name = payload.get("source_file_name") or "manual_import.json"
            source_label = (
                payload.get("original_source") or source_file_name or self._settings.default_source_label
            )
            metrics = [
                self._metric_from_payload(m, table, source_label) for m in raw_metrics
            ]
            logger.info(
                "batch_created",
                extra={"report_type": report_type, "source_format": import_source.value, "metric_count": len(metrics)},
            )

            def attempt() -> ImportResult:
                now = self._clock.now()
                attributed = inject_attribution(metrics, actor_id, now)
                period_start, period_end = data_period(attributed)
                record = self._versions.commit(
                    entity_id,
                    RecordPayload(
                        report_type=table.report_type,
                        metrics=tuple(attributed),
                        import_source=import_source,
                        source_file_name=source_file_name,
                        original_source=payload.get("original_source") or source_file_name,
                        import_batch_id=batch_id,
                        import_date=now,
                        import_notes=payload.get("import_notes") or "",
                        data_period_start=payload.get("data_period_start") or period_start,
                        data_period_end=payload.get("data_period_end") or period_end,
                    ),
                    actor_id,
                )
                if self._auto_validate:
                    self._validation.validate_active(entity_id)
                return ImportResult(
                    batch_id=batch_id,
                    records_processed=len(attributed),
                    record_id=record.record_id,
                    version=record.version,
                )

            return self._with_retries(entity_id, attempt)

    def _metric_from_payload(
        self,
        data: Any,
        table: SectionTable,
        source_label: str,
    ) -> Metric:
        if not isinstance(data, dict):
            raise InvalidMetricPayloadError("metric must be an object")
        data = dict(data)
        name = data.get("metric_name")

        if "list_data" in data:
            data["list_data"] = _normalize_list_data(data["list_data"], self._settings.default_source_label)
        if isinstance(data.get("yearly_data"), list):
            data["yearly_data"] = [
                {**p, "source": p.get("source") or source_label} if isinstance(p, dict) else p
                for p in data["yearly_data"]
            ]
        if data.get("data_type") == "single_value" and data.get("single_value") is None:
            # A declared single value with no value still records its source.
            data["single_value"] = {}
        if isinstance(data.get("single_value"), dict):
            sv = data["single_value"]
            data["single_value"] = {**sv, "source": sv.get("source") or source_label}

        metric = metric_from_dict(data)
        if metric.category not in table.categories:
            raise InvalidMetricPayloadError(
                f"category {metric.category!r} is not valid for {table.report_type!r}", name,
            )
        return metric


def _normalize_list_data(list_data: Any, default_source: str) -> list[dict[str, Any]]:
    """Coerce list_data entries into objects that carry a ``source``."""
    if list_data is None:
        return []
    if isinstance(list_data, (str, dict)):
        list_data = [list_data]
    if not isinstance(list_data, list):
        return [{"item": str(list_data), "source": default_source}]
    items: list[dict[str, Any]] = []
    for entry in list_data:
        if isinstance(entry, str):
            items.append({"item": entry, "source": default_source})
        elif isinstance(entry, dict):
            items.append({**entry, "source": entry.get("source") or default_source})
        else:
            items.append({"item": str(entry), "source": default_source})
    return items
