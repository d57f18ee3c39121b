"""Pure domain types and passes for ESG ingestion (ZERO I/O)."""

from esg_ingestion.domain.attribution import attribute_metric, inject_attribution
from esg_ingestion.domain.types import (
    DataType,
    ImportSource,
    ListData,
    Metric,
    MetricData,
    MetricRecord,
    RecordPayload,
    SingleValue,
    Summary,
    ValidationStatus,
    VerificationStatus,
    YearlyDataPoint,
    YearlySeries,
    metric_from_dict,
    metric_to_dict,
    metrics_from_dicts,
    metrics_to_dicts,
)
from esg_ingestion.domain.validation import (
    FindingSeverity,
    ValidationFinding,
    ValidationReport,
    score_record,
)

__all__ = [
    "DataType",
    "FindingSeverity",
    "ImportSource",
    "ListData",
    "Metric",
    "MetricData",
    "MetricRecord",
    "RecordPayload",
    "SingleValue",
    "Summary",
    "ValidationFinding",
    "ValidationReport",
    "ValidationStatus",
    "VerificationStatus",
    "YearlyDataPoint",
    "YearlySeries",
    "attribute_metric",
    "inject_attribution",
    "metric_from_dict",
    "metric_to_dict",
    "metrics_from_dicts",
    "metrics_to_dicts",
    "score_record",
]
