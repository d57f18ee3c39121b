"""
Metric normalizer: parsed sections -> typed, attributed Metric list.

One extraction rule per section kind (yearly_series, year_rows,
single_value, list, summary), all driven by the SectionTable. Metrics with
the same (category, metric_name) within one document are merged. Typed
constructors attribute every metric, point and item as they are built.
ZERO I/O.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable
from uuid import UUID

from esg_config.schema import DeriveRule, SectionDef, SectionKind, SectionTable
from esg_ingestion.adapters.base import SourceRow, is_blank, is_year_like
from esg_ingestion.domain.types import (
    ListData,
    Metric,
    MetricData,
    SingleValue,
    Summary,
    YearlyDataPoint,
    YearlySeries,
)
from esg_ingestion.normalization.coercion import (
    coerce_cell,
    parse_fiscal_year,
    resolve_subcategory,
    resolve_unit,
    snake_case,
    split_bullet,
)
from esg_ingestion.parsing.section_parser import ParsedDocument, RawSection
from esg_kernel.exceptions import NoMetricsExtractedError
from esg_kernel.logging_config import get_logger

logger = get_logger("ingestion.normalizer")


@dataclass(frozen=True)
class NormalizationContext:
    """Provenance and attribution stamped on everything the normalizer builds."""

    source: str
    actor_id: UUID
    at: datetime


@dataclass
class _MetricBuilder:
    """Mutable accumulator for one (category, metric_name)."""

    category: str
    metric_name: str
    subcategory: str | None
    kind: str
    points: list[YearlyDataPoint] = field(default_factory=list)
    items: list[dict[str, Any]] = field(default_factory=list)
    data: MetricData | None = None

    def build(self, ctx: NormalizationContext) -> Metric:
        if self.kind == "yearly_series":
            data: MetricData = YearlySeries(points=tuple(self.points))
        elif self.kind == "list":
            data = ListData(items=tuple(self.items))
        else:
            data = self.data
        return Metric(
            category=self.category,
            subcategory=self.subcategory,
            metric_name=self.metric_name,
            data=data,
            created_by=ctx.actor_id,
            created_at=ctx.at,
            last_updated_by=ctx.actor_id,
            updated_at=ctx.at,
        )


class MetricNormalizer:
    """Turn a ParsedDocument into metrics using one report type's SectionTable."""

    def __init__(self, table: SectionTable):
        self._table = table
        self._rules: dict[SectionKind, Callable[[RawSection, SectionDef, NormalizationContext], None]] = {
            SectionKind.YEARLY_SERIES: self._yearly_series,
            SectionKind.YEAR_ROWS: self._year_rows,
            SectionKind.SINGLE_VALUE: self._single_value,
            SectionKind.LIST: self._list,
            SectionKind.SUMMARY: self._summary,
        }
        self._builders: dict[tuple[str, str], _MetricBuilder] = {}

    # -------------------------------------------------------------------------
    # Entry point
    # -------------------------------------------------------------------------

    def normalize(self, document: ParsedDocument, context: NormalizationContext) -> list[Metric]:
        """
        Extract metrics from every section of ``document``.

        Raises:
            NoMetricsExtractedError: if no section yields a metric.
        """
        self._builders = {}
        for raw in document.sections:
            section = self._table.section(raw.tag)
            self._rules[section.kind](raw, section, context)

        metrics = [b.build(context) for b in self._builders.values()]
        if not metrics:
            raise NoMetricsExtractedError(
                self._table.report_type,
                sections_found=len(document.sections),
                rows_read=document.data_row_count + document.dropped_rows,
            )

        logger.info(
            "metrics_normalized",
            extra={
                "report_type": self._table.report_type,
                "metric_count": len(metrics),
                "categories": sorted({m.category for m in metrics}),
            },
        )
        return metrics

    def _builder(
        self,
        category: str,
        metric_name: str,
        subcategory: str | None,
        kind: str,
    ) -> _MetricBuilder:
        key = (category, metric_name)
        builder = self._builders.get(key)
        if builder is None:
            builder = _MetricBuilder(category, metric_name, subcategory, kind)
            self._builders[key] = builder
        return builder

    def _point(self, year_label: str, raw: Any, unit: str, ctx: NormalizationContext) -> YearlyDataPoint:
        coerced = coerce_cell(raw)
        return YearlyDataPoint(
            year=year_label,
            fiscal_year=parse_fiscal_year(year_label),
            value=raw,
            numeric_value=coerced.numeric_value,
            unit=unit,
            source=ctx.source,
            added_by=ctx.actor_id,
            added_at=ctx.at,
        )

    # -------------------------------------------------------------------------
    # Rules
    # -------------------------------------------------------------------------

    def _yearly_series(self, raw: RawSection, section: SectionDef, ctx: NormalizationContext) -> None:
        """Row = metric; each year column with a non-empty cell = one point."""
        for row in raw.rows:
            name_raw = row.first_cell
            if not name_raw:
                continue
            unit, name = resolve_unit(name_raw, self._table.units)
            year_labels = [y for y in section.year_columns if y in row.cells]
            if not year_labels:
                year_labels = [label for label in row.labels[1:] if is_year_like(label)]

            points = [
                self._point(label, row.cells[label], unit, ctx)
                for label in year_labels
                if not is_blank(row.cells[label])
            ]
            if not points:
                continue
            subcategory = section.subcategory or resolve_subcategory(name_raw, self._table.subcategories)
            builder = self._builder(section.category, name, subcategory, "yearly_series")
            builder.points.extend(points)

    def _year_rows(self, raw: RawSection, section: SectionDef, ctx: NormalizationContext) -> None:
        """Row = year; each configured column = one metric's point for that year."""
        for row in raw.rows:
            year_label = row.first_cell
            if not year_label:
                continue
            for column in section.columns:
                value = row.cells.get(column.label)
                if is_blank(value):
                    continue
                builder = self._builder(
                    column.category or section.category,
                    column.metric_name,
                    column.subcategory,
                    "yearly_series",
                )
                builder.points.append(self._point(year_label, value, column.unit, ctx))

    def _single_value(self, raw: RawSection, section: SectionDef, ctx: NormalizationContext) -> None:
        """Row = metric with one value cell (configured column, else the second cell)."""
        for row in raw.rows:
            name_raw = row.first_cell
            if not name_raw:
                continue
            if section.value_column and section.value_column in row.cells:
                value = row.cells[section.value_column]
            else:
                value = row.values[1] if len(row.values) > 1 else None
            if is_blank(value):
                value = None
            unit, name = resolve_unit(name_raw, self._table.units)
            subcategory = section.subcategory or resolve_subcategory(name_raw, self._table.subcategories)
            builder = self._builder(section.category, name, subcategory, "single_value")
            builder.data = SingleValue(
                value=value,
                numeric_value=coerce_cell(value).numeric_value,
                unit=unit,
                source=ctx.source,
                added_by=ctx.actor_id,
                added_at=ctx.at,
            )

    def _list(self, raw: RawSection, section: SectionDef, ctx: NormalizationContext) -> None:
        """Rows = items of the section's list metric; optional derived single values."""
        items: list[dict[str, Any]] = []
        derived: list[tuple[DeriveRule, Any, str]] = []
        for row in raw.rows:
            is_bullet, text = split_bullet(row.first_cell)
            if section.bullets_only and not is_bullet:
                continue
            if not text:
                continue
            item: dict[str, Any] = {section.primary_key: text}
            for label, value in list(row.cells.items())[1:]:
                if not is_blank(value):
                    item[snake_case(label)] = value
            item.setdefault("source", ctx.source)
            item["added_by"] = ctx.actor_id
            item["added_at"] = ctx.at
            items.append(item)

            for rule in section.derive:
                if rule.match not in text:
                    continue
                value = _derived_value(rule, text)
                if value is not None:
                    derived.append((rule, value, text))

        if not items:
            return
        self._builder(section.category, section.metric_name, section.subcategory, "list").items.extend(items)
        for rule, value, text in derived:
            builder = self._builder(section.category, rule.metric_name, rule.subcategory, "single_value")
            builder.data = SingleValue(
                value=value,
                numeric_value=coerce_cell(value).numeric_value if rule.pattern else None,
                unit=rule.unit,
                notes=text if rule.pattern else "",
                source=ctx.source,
                added_by=ctx.actor_id,
                added_at=ctx.at,
            )

    def _summary(self, raw: RawSection, section: SectionDef, ctx: NormalizationContext) -> None:
        """Row = KPI snapshot (key metric, latest value, trend, notes)."""
        for row in raw.rows:
            key_metric = row.first_cell
            if not key_metric:
                continue
            builder = self._builder(section.category, key_metric, section.subcategory, "summary")
            builder.data = Summary(
                key_metric=key_metric,
                latest_value=_cell(row, section.latest_value_column, 1),
                trend=str(_cell(row, section.trend_column, 2) or ""),
                notes=str(_cell(row, section.notes_column, 3) or ""),
            )


def _derived_value(rule: DeriveRule, text: str) -> Any:
    """Value promoted from a list item, or None when ``rule.pattern`` does not match."""
    if rule.pattern is None:
        return text.split(":", 1)[1].strip() if ":" in text else text
    match = re.search(rule.pattern, text)
    if match is None:
        return None
    return match.group(1) if match.groups() else match.group(0)


def _cell(row: SourceRow, label: str, position: int) -> Any:
    """Cell by label, falling back to position; blank -> None."""
    if label in row.cells:
        value = row.cells[label]
    else:
        value = row.values[position] if len(row.values) > position else None
    return None if is_blank(value) else value


def data_period(metrics: list[Metric]) -> tuple[str | None, str | None]:
    """(first, last) fiscal year across all yearly points, as strings."""
    years = sorted({
        p.fiscal_year
        for m in metrics
        if isinstance(m.data, YearlySeries)
        for p in m.data.points
        if p.fiscal_year is not None
    })
    if not years:
        return None, None
    return str(years[0]), str(years[-1])


def normalize(document: ParsedDocument, table: SectionTable, context: NormalizationContext) -> list[Metric]:
    """Convenience wrapper around ``MetricNormalizer(table).normalize(...)``."""
    return MetricNormalizer(table).normalize(document, context)
