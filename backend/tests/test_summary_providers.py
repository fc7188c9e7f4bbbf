from __future__ import annotations

from datetime import UTC, datetime, timedelta

from route_quality.models import ConditionLevel, ConditionReport, MergedConditionSummary, RoadSegment
from route_quality.summary_providers import (
    CachedSummaryProvider,
    LiveMergeProvider,
    make_summary_provider,
)

NOW = datetime(2026, 5, 1, tzinfo=UTC)
GEOM = {"type": "LineString", "coordinates": [[9.0, 45.0], [9.001, 45.0]]}


class _FakeReports:
    def __init__(self, rows: dict[str, list[ConditionReport]]) -> None:
        self.rows = rows
        self.calls: list[tuple[str, int]] = []

    def publishable_reports(self, segment_id: str, limit: int = 200) -> list[ConditionReport]:
        self.calls.append((segment_id, limit))
        return self.rows.get(segment_id, [])[:limit]


def _reports(seg_id: str, *conds: ConditionLevel) -> list[ConditionReport]:
    return [
        ConditionReport(segment_id=seg_id, condition=c, created_at=NOW - timedelta(hours=i))
        for i, c in enumerate(conds)
    ]


def test_cached_provider_returns_persisted_summary_only() -> None:
    cached = MergedConditionSummary(condition=ConditionLevel.MEDIUM, confidence=0.8, report_count=4)
    provider = CachedSummaryProvider()
    assert provider.summary_for(RoadSegment(id="a", geometry=GEOM, cached_summary=cached)) is cached
    assert provider.summary_for(RoadSegment(id="b", geometry=GEOM)) is None


def test_live_provider_merges_reports_and_ignores_cache() -> None:
    source = _FakeReports({"a": _reports("a", ConditionLevel.MAINTENANCE, ConditionLevel.MAINTENANCE)})
    stale = MergedConditionSummary(condition=ConditionLevel.OPTIMAL, confidence=1.0, report_count=9)
    provider = LiveMergeProvider(source, max_reports=50, now=NOW)

    summary = provider.summary_for(RoadSegment(id="a", geometry=GEOM, cached_summary=stale))
    assert summary is not None
    assert summary.condition == ConditionLevel.MAINTENANCE
    assert summary.report_count == 2
    assert source.calls == [("a", 50)]

    assert provider.summary_for(RoadSegment(id="none", geometry=GEOM)) is None


def test_make_summary_provider_selects_by_mode() -> None:
    source = _FakeReports({})
    assert isinstance(make_summary_provider("cached", reports=source), CachedSummaryProvider)
    assert isinstance(make_summary_provider(" CACHED ", reports=source), CachedSummaryProvider)
    assert isinstance(make_summary_provider("live", reports=source), LiveMergeProvider)
    assert isinstance(make_summary_provider("anything-else", reports=source), LiveMergeProvider)


def test_make_summary_provider_pins_live_merge_clock() -> None:
    long_ago = datetime(2020, 1, 1, tzinfo=UTC)
    source = _FakeReports(
        {
            "a": [
                ConditionReport(segment_id="a", condition=ConditionLevel.MAINTENANCE, created_at=long_ago),
                ConditionReport(segment_id="a", condition=ConditionLevel.OPTIMAL, created_at=None),
            ]
        }
    )
    pinned = make_summary_provider("live", reports=source, now=long_ago)
    summary = pinned.summary_for(RoadSegment(id="a", geometry=GEOM))
    # At its own time the dated report (weight 1.0) beats the undated one (0.4).
    assert summary is not None
    assert summary.condition == ConditionLevel.MAINTENANCE
    assert abs(summary.confidence - 1.0 / 1.4) < 1e-9

    assert isinstance(make_summary_provider("cached", reports=source, now=long_ago), CachedSummaryProvider)
