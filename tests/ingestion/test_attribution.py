"""Tests for the attribution pass."""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

from hypothesis import given
from hypothesis import strategies as st

from esg_ingestion.domain.attribution import attribute_metric, inject_attribution
from esg_ingestion.domain.types import (
    ListData,
    Metric,
    SingleValue,
    Summary,
    YearlyDataPoint,
    YearlySeries,
)

ACTOR = uuid4()
OTHER = uuid4()
AT = datetime(2025, 1, 15, tzinfo=timezone.utc)


def _bare_metrics():
    return [
        Metric(
            category="environmental",
            metric_name="Coal",
            data=YearlySeries(points=(
                YearlyDataPoint(year="2023", value="5", source="api"),
                YearlyDataPoint(year="2024", value="6", source="api", added_by=OTHER, added_at=AT - timedelta(days=1)),
            )),
        ),
        Metric(category="governance", metric_name="Board", data=SingleValue(source="api", value="Yes")),
        Metric(category="highlights", metric_name="Highlights", data=ListData(items=({"item": "x", "source": "api"},))),
        Metric(category="performance_summary", metric_name="KPI", data=Summary(key_metric="KPI")),
    ]


class TestInjectAttribution:
    def test_fills_missing_attribution(self):
        coal, board, highlights, kpi = inject_attribution(_bare_metrics(), ACTOR, AT)
        assert coal.created_by == ACTOR
        assert coal.created_at == AT
        assert coal.last_updated_by == ACTOR
        assert coal.data.points[0].added_by == ACTOR
        assert coal.data.points[0].added_at == AT
        assert board.data.added_by == ACTOR
        assert highlights.data.items[0]["added_by"] == ACTOR
        assert highlights.data.items[0]["added_at"] == AT
        assert kpi.created_by == ACTOR

    def test_existing_attribution_untouched(self):
        coal = inject_attribution(_bare_metrics(), ACTOR, AT)[0]
        assert coal.data.points[1].added_by == OTHER
        assert coal.data.points[1].added_at == AT - timedelta(days=1)

    def test_idempotent(self):
        once = inject_attribution(_bare_metrics(), ACTOR, AT)
        twice = inject_attribution(once, OTHER, AT + timedelta(hours=1))
        assert twice == once

    def test_fully_attributed_metric_returned_as_is(self):
        metric = inject_attribution(_bare_metrics(), ACTOR, AT)[1]
        assert attribute_metric(metric, OTHER, AT) is metric

    def test_input_not_mutated(self):
        metrics = _bare_metrics()
        inject_attribution(metrics, ACTOR, AT)
        assert metrics[0].created_by is None
        assert "added_by" not in metrics[2].data.items[0]


_items = st.lists(
    st.fixed_dictionaries(
        {"item": st.text(min_size=1, max_size=10), "source": st.just("api")},
        optional={"added_by": st.uuids()},
    ),
    max_size=4,
)


class TestAttributionProperties:
    @given(_items, st.uuids(), st.uuids())
    def test_reapplying_with_any_actor_changes_nothing(self, items, first, second):
        metric = Metric(category="c", metric_name="m", data=ListData(items=tuple(items)))
        once = attribute_metric(metric, first, AT)
        assert attribute_metric(once, second, AT + timedelta(days=1)) == once
        assert all(i.get("added_by") for i in once.data.items)
