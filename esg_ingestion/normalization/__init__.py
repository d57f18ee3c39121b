"""Metric normalization (pure, no I/O)."""

from esg_ingestion.normalization.coercion import (
    CoercionResult,
    coerce_cell,
    is_missing_value,
    parse_fiscal_year,
    parse_numeric,
)
from esg_ingestion.normalization.engine import (
    MetricNormalizer,
    NormalizationContext,
    data_period,
    normalize,
)

__all__ = [
    "CoercionResult",
    "MetricNormalizer",
    "NormalizationContext",
    "coerce_cell",
    "data_period",
    "is_missing_value",
    "normalize",
    "parse_fiscal_year",
    "parse_numeric",
]
