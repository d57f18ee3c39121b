"""
Attribution pass over typed metrics.

Stamps the acting user and a timestamp on every metric, yearly point,
single value and list item that has no attribution yet. Existing
attribution is never overwritten, so the pass is idempotent:
``inject_attribution(inject_attribution(m, a, t), a, t) == inject_attribution(m, a, t)``.

Dispatch is on the variant type. Pipeline-built metrics are already
attributed at construction; this pass exists for manual and API payloads.
ZERO I/O.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Any, Iterable
from uuid import UUID

from esg_ingestion.domain.types import (
    ListData,
    Metric,
    MetricData,
    SingleValue,
    Summary,
    YearlyDataPoint,
    YearlySeries,
)


def _attribute_point(point: YearlyDataPoint, actor_id: UUID, at: datetime) -> YearlyDataPoint:
    if point.added_by is not None:
        return point
    return replace(point, added_by=actor_id, added_at=point.added_at or at)


def _attribute_item(item: dict[str, Any], actor_id: UUID, at: datetime) -> dict[str, Any]:
    if item.get("added_by"):
        return item
    updated = dict(item)
    updated["added_by"] = actor_id
    if not updated.get("added_at"):
        updated["added_at"] = at
    return updated


def _attribute_data(data: MetricData, actor_id: UUID, at: datetime) -> MetricData:
    if isinstance(data, YearlySeries):
        return YearlySeries(points=tuple(_attribute_point(p, actor_id, at) for p in data.points))
    if isinstance(data, SingleValue):
        if data.added_by is not None:
            return data
        return replace(data, added_by=actor_id, added_at=data.added_at or at)
    if isinstance(data, ListData):
        return ListData(items=tuple(_attribute_item(i, actor_id, at) for i in data.items))
    if isinstance(data, Summary):
        return data
    raise TypeError(f"Unknown metric data variant: {type(data).__name__}")


def attribute_metric(metric: Metric, actor_id: UUID, at: datetime) -> Metric:
    """Attribute one metric and its data; unchanged parts are returned as-is."""
    data = _attribute_data(metric.data, actor_id, at)
    changes: dict[str, Any] = {}
    if data != metric.data:
        changes["data"] = data
    if metric.created_by is None:
        changes["created_by"] = actor_id
        changes["created_at"] = metric.created_at or at
    if metric.last_updated_by is None:
        changes["last_updated_by"] = actor_id
        changes["updated_at"] = metric.updated_at or at
    if not changes:
        return metric
    return replace(metric, **changes)


def inject_attribution(metrics: Iterable[Metric], actor_id: UUID, at: datetime) -> list[Metric]:
    """Attribute every metric in ``metrics`` (see module docstring)."""
    return [attribute_metric(m, actor_id, at) for m in metrics]
