from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import Protocol

from .condition_merge import DEFAULT_HALF_LIFE_DAYS, MAX_MERGED_REPORTS, merge_reports
from .models import ConditionReport, MergedConditionSummary, RoadSegment


class ReportSource(Protocol):
    def publishable_reports(self, segment_id: str, limit: int = ...) -> Sequence[ConditionReport]: ...


class SummaryProvider(Protocol):
    """Where a matched segment's consensus comes from."""

    def summary_for(self, segment: RoadSegment) -> MergedConditionSummary | None: ...


class CachedSummaryProvider:
    """Trusts whatever consensus was persisted alongside the segment."""

    def summary_for(self, segment: RoadSegment) -> MergedConditionSummary | None:
        return segment.cached_summary


class LiveMergeProvider:
    """Merges the segment's publishable reports at request time."""

    def __init__(
        self,
        reports: ReportSource,
        *,
        max_reports: int = MAX_MERGED_REPORTS,
        half_life_days: float = DEFAULT_HALF_LIFE_DAYS,
        now: datetime | None = None,
    ) -> None:
        self._reports = reports
        self._max_reports = max(1, int(max_reports))
        self._half_life_days = half_life_days
        self._now = now

    def summary_for(self, segment: RoadSegment) -> MergedConditionSummary | None:
        reports = self._reports.publishable_reports(segment.id, limit=self._max_reports)
        return merge_reports(
            reports,
            half_life_days=self._half_life_days,
            max_reports=self._max_reports,
            now=self._now,
        )


def make_summary_provider(
    mode: str,
    *,
    reports: ReportSource,
    max_reports: int = MAX_MERGED_REPORTS,
    half_life_days: float = DEFAULT_HALF_LIFE_DAYS,
    now: datetime | None = None,
) -> SummaryProvider:
    """``now`` pins the live merge clock; pass the reference time the route
    aggregation uses so both decay reports against the same instant.
    """
    if str(mode).strip().lower() == "cached":
        return CachedSummaryProvider()
    return LiveMergeProvider(reports, max_reports=max_reports, half_life_days=half_life_days, now=now)
