"""
esg_ingestion.domain.types -- Pure frozen dataclasses for the metric model.

ZERO I/O. A Metric carries exactly one data variant (YearlySeries,
SingleValue, ListData or Summary); its ``data_type`` tag is derived from the
variant, so a tag that disagrees with the populated data cannot be built.

Dict (JSON) conversion lives here too: ``metric_to_dict`` produces the
document shape stored in ``metric_records.metrics`` and ``metric_from_dict``
rejects payloads whose declared ``data_type`` does not match the populated
field.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, ClassVar, Union
from uuid import UUID, uuid4

from esg_kernel.exceptions import InvalidMetricPayloadError


# =============================================================================
# Enums
# =============================================================================


class DataType(str, Enum):
    """Metric variant tag."""

    YEARLY_SERIES = "yearly_series"
    SINGLE_VALUE = "single_value"
    LIST = "list"
    SUMMARY = "summary"


class ImportSource(str, Enum):
    CSV = "csv"
    EXCEL = "excel"
    JSON = "json"
    MANUAL = "manual"
    API = "api"


class ValidationStatus(str, Enum):
    """Record-level validation lifecycle."""

    NOT_VALIDATED = "not_validated"
    VALIDATING = "validating"
    VALIDATED = "validated"
    FAILED_VALIDATION = "failed_validation"


class VerificationStatus(str, Enum):
    """Human review state of a record (independent of validation)."""

    UNVERIFIED = "unverified"
    PENDING_REVIEW = "pending_review"
    VERIFIED = "verified"
    AUDITED = "audited"
    DISPUTED = "disputed"


# =============================================================================
# Data variants
# =============================================================================


@dataclass(frozen=True)
class YearlyDataPoint:
    """One period of a yearly series. ``source`` is mandatory."""

    year: str
    value: Any
    source: str
    numeric_value: Decimal | None = None
    fiscal_year: int | None = None
    unit: str = ""
    notes: str = ""
    added_by: UUID | None = None
    added_at: datetime | None = None

    def __post_init__(self) -> None:
        if not self.source or not str(self.source).strip():
            raise InvalidMetricPayloadError(f"yearly data point {self.year!r} has no source")


@dataclass(frozen=True)
class YearlySeries:
    data_type: ClassVar[DataType] = DataType.YEARLY_SERIES

    points: tuple[YearlyDataPoint, ...] = ()


@dataclass(frozen=True)
class SingleValue:
    """A point-in-time value. ``value`` None means the cell was empty."""

    data_type: ClassVar[DataType] = DataType.SINGLE_VALUE

    source: str
    value: Any = None
    numeric_value: Decimal | None = None
    unit: str = ""
    notes: str = ""
    as_of_date: date | None = None
    added_by: UUID | None = None
    added_at: datetime | None = None

    def __post_init__(self) -> None:
        if not self.source or not str(self.source).strip():
            raise InvalidMetricPayloadError("single value has no source")

    @property
    def has_value(self) -> bool:
        return self.value is not None and not (
            isinstance(self.value, str) and not self.value.strip()
        )


@dataclass(frozen=True)
class ListData:
    """Free-form list items; every item carries a ``source`` key."""

    data_type: ClassVar[DataType] = DataType.LIST

    items: tuple[dict[str, Any], ...] = ()


@dataclass(frozen=True)
class Summary:
    """KPI snapshot row."""

    data_type: ClassVar[DataType] = DataType.SUMMARY

    key_metric: str = ""
    latest_value: Any = None
    trend: str = ""
    notes: str = ""
    as_of_date: date | None = None


MetricData = Union[YearlySeries, SingleValue, ListData, Summary]


@dataclass(frozen=True)
class Metric:
    """
    One metric of a record.

    ``category`` is a member of the report type's closed category set.
    """

    category: str
    metric_name: str
    data: MetricData
    subcategory: str | None = None
    description: str = ""
    metric_id: UUID = field(default_factory=uuid4)
    is_active: bool = True
    created_by: UUID | None = None
    created_at: datetime | None = None
    last_updated_by: UUID | None = None
    updated_at: datetime | None = None

    @property
    def data_type(self) -> DataType:
        return self.data.data_type

    @property
    def key(self) -> tuple[str, str]:
        """Identity used to merge metrics within one document."""
        return (self.category, self.metric_name)


# =============================================================================
# Dict conversion
# =============================================================================

# data_type -> key holding the variant payload in the document shape
_VARIANT_KEYS: dict[DataType, str] = {
    DataType.YEARLY_SERIES: "yearly_data",
    DataType.SINGLE_VALUE: "single_value",
    DataType.LIST: "list_data",
    DataType.SUMMARY: "summary_data",
}


def to_json_safe(value: Any) -> Any:
    """Convert UUID, Decimal, datetime and date (recursively) to JSON-friendly values."""
    if value is None:
        return None
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: to_json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json_safe(v) for v in value]
    return value


def _point_to_dict(p: YearlyDataPoint) -> dict[str, Any]:
    return {
        "year": p.year,
        "fiscal_year": p.fiscal_year,
        "value": to_json_safe(p.value),
        "numeric_value": to_json_safe(p.numeric_value),
        "unit": p.unit,
        "source": p.source,
        "notes": p.notes,
        "added_by": to_json_safe(p.added_by),
        "added_at": to_json_safe(p.added_at),
    }


def _variant_to_payload(data: MetricData) -> Any:
    if isinstance(data, YearlySeries):
        return [_point_to_dict(p) for p in data.points]
    if isinstance(data, SingleValue):
        return {
            "value": to_json_safe(data.value),
            "numeric_value": to_json_safe(data.numeric_value),
            "unit": data.unit,
            "source": data.source,
            "notes": data.notes,
            "as_of_date": to_json_safe(data.as_of_date),
            "added_by": to_json_safe(data.added_by),
            "added_at": to_json_safe(data.added_at),
        }
    if isinstance(data, ListData):
        return [to_json_safe(item) for item in data.items]
    return {
        "key_metric": data.key_metric,
        "latest_value": to_json_safe(data.latest_value),
        "trend": data.trend,
        "notes": data.notes,
        "as_of_date": to_json_safe(data.as_of_date),
    }


def metric_to_dict(metric: Metric) -> dict[str, Any]:
    """Document shape of a metric (JSON-safe)."""
    return {
        "metric_id": str(metric.metric_id),
        "category": metric.category,
        "subcategory": metric.subcategory,
        "metric_name": metric.metric_name,
        "description": metric.description,
        "data_type": metric.data_type.value,
        "is_active": metric.is_active,
        "created_by": to_json_safe(metric.created_by),
        "created_at": to_json_safe(metric.created_at),
        "last_updated_by": to_json_safe(metric.last_updated_by),
        "updated_at": to_json_safe(metric.updated_at),
        _VARIANT_KEYS[metric.data_type]: _variant_to_payload(metric.data),
    }


def _is_populated(value: Any) -> bool:
    return value not in (None, [], {}, ())


def _parse_uuid(value: Any, name: str, metric_name: str | None) -> UUID | None:
    if value in (None, ""):
        return None
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        raise InvalidMetricPayloadError(f"{name} is not a UUID: {value!r}", metric_name) from None


def _parse_datetime(value: Any, name: str, metric_name: str | None) -> datetime | None:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        raise InvalidMetricPayloadError(f"{name} is not an ISO datetime: {value!r}", metric_name) from None


def _parse_date(value: Any, name: str, metric_name: str | None) -> date | None:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise InvalidMetricPayloadError(f"{name} is not an ISO date: {value!r}", metric_name) from None


def _parse_decimal(value: Any, name: str, metric_name: str | None) -> Decimal | None:
    if value in (None, ""):
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise InvalidMetricPayloadError(f"{name} is not numeric: {value!r}", metric_name)
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise InvalidMetricPayloadError(f"{name} is not numeric: {value!r}", metric_name) from None


def _parse_fiscal_year(value: Any, metric_name: str | None) -> int | None:
    if value in (None, ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidMetricPayloadError(f"fiscal_year is not an integer: {value!r}", metric_name) from None


def _point_from_dict(data: dict[str, Any], metric_name: str | None) -> YearlyDataPoint:
    if not isinstance(data, dict):
        raise InvalidMetricPayloadError("yearly_data entries must be objects", metric_name)
    if "year" not in data:
        raise InvalidMetricPayloadError("yearly data point has no year", metric_name)
    return YearlyDataPoint(
        year=str(data["year"]),
        fiscal_year=_parse_fiscal_year(data.get("fiscal_year"), metric_name),
        value=data.get("value"),
        numeric_value=_parse_decimal(data.get("numeric_value"), "numeric_value", metric_name),
        unit=data.get("unit") or "",
        source=data.get("source") or "",
        notes=data.get("notes") or "",
        added_by=_parse_uuid(data.get("added_by"), "added_by", metric_name),
        added_at=_parse_datetime(data.get("added_at"), "added_at", metric_name),
    )


def _variant_from_payload(data_type: DataType, payload: Any, metric_name: str | None) -> MetricData:
    if data_type == DataType.YEARLY_SERIES:
        if not isinstance(payload, list):
            raise InvalidMetricPayloadError("yearly_data must be a list", metric_name)
        return YearlySeries(points=tuple(_point_from_dict(p, metric_name) for p in payload))

    if data_type == DataType.SINGLE_VALUE:
        if not isinstance(payload, dict):
            raise InvalidMetricPayloadError("single_value must be an object", metric_name)
        return SingleValue(
            value=payload.get("value"),
            numeric_value=_parse_decimal(payload.get("numeric_value"), "numeric_value", metric_name),
            unit=payload.get("unit") or "",
            source=payload.get("source") or "",
            notes=payload.get("notes") or "",
            as_of_date=_parse_date(payload.get("as_of_date"), "as_of_date", metric_name),
            added_by=_parse_uuid(payload.get("added_by"), "added_by", metric_name),
            added_at=_parse_datetime(payload.get("added_at"), "added_at", metric_name),
        )

    if data_type == DataType.LIST:
        if not isinstance(payload, list) or not all(isinstance(i, dict) for i in payload):
            raise InvalidMetricPayloadError("list_data must be a list of objects", metric_name)
        return ListData(items=tuple(dict(i) for i in payload))

    if not isinstance(payload, dict):
        raise InvalidMetricPayloadError("summary_data must be an object", metric_name)
    return Summary(
        key_metric=payload.get("key_metric") or "",
        latest_value=payload.get("latest_value"),
        trend=payload.get("trend") or "",
        notes=payload.get("notes") or "",
        as_of_date=_parse_date(payload.get("as_of_date"), "as_of_date", metric_name),
    )


def metric_from_dict(data: dict[str, Any]) -> Metric:
    """
    Build a Metric from its document shape.

    ``data_type`` may be omitted when exactly one variant field is populated.

    Raises:
        InvalidMetricPayloadError: unknown data_type, declared type not
            matching the populated field, or a malformed variant payload.
    """
    if not isinstance(data, dict):
        raise InvalidMetricPayloadError("metric must be an object")
    metric_name = data.get("metric_name")

    populated = [dt for dt, key in _VARIANT_KEYS.items() if _is_populated(data.get(key))]
    declared = data.get("data_type")
    if declared is None:
        if len(populated) != 1:
            raise InvalidMetricPayloadError(
                "data_type missing and variant field ambiguous", metric_name,
            )
        data_type = populated[0]
    else:
        try:
            data_type = DataType(declared)
        except ValueError:
            raise InvalidMetricPayloadError(f"unknown data_type {declared!r}", metric_name) from None
        others = [dt for dt in populated if dt != data_type]
        if others:
            raise InvalidMetricPayloadError(
                f"data_type {data_type.value!r} but {_VARIANT_KEYS[others[0]]!r} is populated",
                metric_name,
            )

    payload = data.get(_VARIANT_KEYS[data_type])
    if payload is None:
        payload = {} if data_type in (DataType.SINGLE_VALUE, DataType.SUMMARY) else []

    category = data.get("category")
    if not category:
        raise InvalidMetricPayloadError("category is required", metric_name)

    kwargs: dict[str, Any] = {}
    metric_id = _parse_uuid(data.get("metric_id"), "metric_id", metric_name)
    if metric_id is not None:
        kwargs["metric_id"] = metric_id

    return Metric(
        category=category,
        subcategory=data.get("subcategory") or None,
        metric_name=metric_name or "",
        description=data.get("description") or "",
        data=_variant_from_payload(data_type, payload, metric_name),
        is_active=bool(data.get("is_active", True)),
        created_by=_parse_uuid(data.get("created_by"), "created_by", metric_name),
        created_at=_parse_datetime(data.get("created_at"), "created_at", metric_name),
        last_updated_by=_parse_uuid(data.get("last_updated_by"), "last_updated_by", metric_name),
        updated_at=_parse_datetime(data.get("updated_at"), "updated_at", metric_name),
        **kwargs,
    )


def metrics_to_dicts(metrics: list[Metric] | tuple[Metric, ...]) -> list[dict[str, Any]]:
    return [metric_to_dict(m) for m in metrics]


def metrics_from_dicts(data: list[dict[str, Any]]) -> list[Metric]:
    return [metric_from_dict(d) for d in data]


# =============================================================================
# Record payload / snapshot DTOs
# =============================================================================


@dataclass(frozen=True)
class RecordPayload:
    """Content of a record-to-be, handed to VersionManager.commit()."""

    report_type: str
    metrics: tuple[Metric, ...]
    import_source: ImportSource
    source_file_name: str | None = None
    original_source: str | None = None
    import_batch_id: str | None = None
    import_date: datetime | None = None
    import_notes: str = ""
    data_period_start: str | None = None
    data_period_end: str | None = None


@dataclass(frozen=True)
class MetricRecord:
    """Immutable snapshot of one persisted record version."""

    record_id: UUID
    entity_id: UUID
    report_type: str
    version: int
    is_active: bool
    metrics: tuple[Metric, ...]
    previous_version: UUID | None = None
    restored_from: UUID | None = None
    restore_notes: str | None = None
    import_source: ImportSource | None = None
    source_file_name: str | None = None
    original_source: str | None = None
    import_batch_id: str | None = None
    import_date: datetime | None = None
    import_notes: str = ""
    data_period_start: str | None = None
    data_period_end: str | None = None
    validation_status: ValidationStatus = ValidationStatus.NOT_VALIDATED
    validation_errors: tuple[dict[str, Any], ...] = ()
    validation_notes: str | None = None
    data_quality_score: int | None = None
    verification_status: VerificationStatus = VerificationStatus.UNVERIFIED
    verified_by: UUID | None = None
    verified_at: datetime | None = None
    verification_notes: str | None = None
    deleted_at: datetime | None = None
    deleted_by: UUID | None = None
    created_by: UUID | None = None
    created_at: datetime | None = None
    last_updated_by: UUID | None = None
    last_updated_at: datetime | None = None

    @property
    def active_metrics(self) -> tuple[Metric, ...]:
        return tuple(m for m in self.metrics if m.is_active)
