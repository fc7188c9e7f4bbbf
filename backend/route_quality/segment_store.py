from __future__ import annotations

import uuid
from collections import OrderedDict
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from threading import Lock
from typing import Any

from .condition_merge import MAX_MERGED_REPORTS, merge_reports
from .errors import RouteQualityError
from .geometry import BBox, bounding_box, boxes_intersect, extract_line_coordinates
from .models import (
    ConditionLevel,
    ConditionReport,
    MergedConditionSummary,
    ReportStatus,
    RoadSegment,
    parse_condition,
)
from .settings import settings

# Allowed lifecycle moves: a report must be confirmed before it can be published.
_TRANSITIONS: dict[ReportStatus, ReportStatus] = {
    ReportStatus.DRAFT: ReportStatus.CONFIRMED,
    ReportStatus.CONFIRMED: ReportStatus.PUBLISHABLE,
}


@dataclass(frozen=True)
class StoredReport:
    id: str
    segment_id: str
    condition: ConditionLevel
    status: ReportStatus
    created_at: datetime
    notes: str | None = None

    def as_condition_report(self) -> ConditionReport:
        return ConditionReport(segment_id=self.segment_id, condition=self.condition, created_at=self.created_at)


@dataclass
class _SegmentEntry:
    segment: RoadSegment
    box: BBox


class InMemorySegmentStore:
    """Road segments and their condition reports, held in process memory.

    Stands in for the spatial database: ``segments_near`` and
    ``publishable_reports`` are the only reads the scoring path needs.
    """

    def __init__(self, *, max_candidate_segments: int = 2000) -> None:
        self._max_candidates = max(1, int(max_candidate_segments))
        self._lock = Lock()
        self._segments: OrderedDict[str, _SegmentEntry] = OrderedDict()
        self._reports: dict[str, StoredReport] = {}

    # segments

    def add_segment(
        self,
        segment_id: str,
        geometry: Any,
        *,
        cached_summary: MergedConditionSummary | None = None,
    ) -> RoadSegment:
        coords = extract_line_coordinates(geometry)
        box = bounding_box(coords)
        if len(coords) < 2 or box is None:
            raise RouteQualityError(
                reason_code="segment_geometry_invalid",
                message="Segment geometry must be a line with at least 2 points",
                details={"segment_id": segment_id},
            )
        segment = RoadSegment(id=segment_id, geometry=geometry, cached_summary=cached_summary)
        with self._lock:
            self._segments[segment_id] = _SegmentEntry(segment=segment, box=box)
        return segment

    def get_segment(self, segment_id: str) -> RoadSegment:
        with self._lock:
            entry = self._segments.get(segment_id)
        if entry is None:
            raise RouteQualityError(
                reason_code="segment_not_found",
                message="Segment not found",
                details={"segment_id": segment_id},
            )
        return entry.segment

    def segments_near(self, box: BBox, limit: int | None = None) -> list[RoadSegment]:
        cap = self._max_candidates if limit is None else max(0, min(int(limit), self._max_candidates))
        out: list[RoadSegment] = []
        with self._lock:
            for entry in self._segments.values():
                if len(out) >= cap:
                    break
                if boxes_intersect(box, entry.box):
                    out.append(entry.segment)
        return out

    # reports

    def submit_report(
        self,
        segment_id: str,
        condition: object,
        *,
        notes: str | None = None,
        created_at: datetime | None = None,
    ) -> StoredReport:
        self.get_segment(segment_id)
        ts = created_at or datetime.now(UTC)
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=UTC)
        report = StoredReport(
            id=str(uuid.uuid4()),
            segment_id=segment_id,
            condition=parse_condition(condition),
            status=ReportStatus.DRAFT,
            created_at=ts,
            notes=notes,
        )
        with self._lock:
            self._reports[report.id] = report
        return report

    def get_report(self, report_id: str) -> StoredReport:
        with self._lock:
            report = self._reports.get(report_id)
        if report is None:
            raise RouteQualityError(
                reason_code="report_not_found",
                message="Report not found",
                details={"report_id": report_id},
            )
        return report

    def _advance(self, report_id: str, target: ReportStatus) -> StoredReport:
        with self._lock:
            report = self._reports.get(report_id)
            if report is None:
                raise RouteQualityError(
                    reason_code="report_not_found",
                    message="Report not found",
                    details={"report_id": report_id},
                )
            if _TRANSITIONS.get(report.status) != target:
                raise RouteQualityError(
                    reason_code="report_transition_invalid",
                    message=f"Cannot move report from {report.status.value} to {target.value}",
                    details={"report_id": report_id, "status": report.status.value},
                )
            updated = replace(report, status=target)
            self._reports[report_id] = updated
            return updated

    def confirm_report(self, report_id: str) -> StoredReport:
        return self._advance(report_id, ReportStatus.CONFIRMED)

    def publish_report(self, report_id: str) -> StoredReport:
        return self._advance(report_id, ReportStatus.PUBLISHABLE)

    def publishable_reports(self, segment_id: str, limit: int = MAX_MERGED_REPORTS) -> list[ConditionReport]:
        with self._lock:
            rows = [
                r
                for r in self._reports.values()
                if r.segment_id == segment_id and r.status == ReportStatus.PUBLISHABLE
            ]
        rows.sort(key=lambda r: r.created_at, reverse=True)
        return [r.as_condition_report() for r in rows[: max(0, int(limit))]]

    # cached consensus

    def refresh_cached_summary(self, segment_id: str, *, now: datetime | None = None) -> MergedConditionSummary | None:
        """Persist the live merge as the segment's cached summary."""
        self.get_segment(segment_id)
        summary = merge_reports(
            self.publishable_reports(segment_id, limit=settings.max_reports_per_segment),
            half_life_days=settings.freshness_half_life_days,
            max_reports=settings.max_reports_per_segment,
            now=now,
        )
        with self._lock:
            entry = self._segments.get(segment_id)
            if entry is not None:
                entry.segment = replace(entry.segment, cached_summary=summary)
        return summary

    def clear(self) -> int:
        with self._lock:
            cleared = len(self._segments)
            self._segments.clear()
            self._reports.clear()
            return cleared

    def snapshot(self) -> dict[str, int]:
        with self._lock:
            by_status = {s.value: 0 for s in ReportStatus}
            for r in self._reports.values():
                by_status[r.status.value] += 1
            return {
                "segments": len(self._segments),
                "reports": len(self._reports),
                **{f"reports_{k.lower()}": v for k, v in by_status.items()},
            }


SEGMENT_STORE = InMemorySegmentStore(max_candidate_segments=settings.max_candidate_segments)
