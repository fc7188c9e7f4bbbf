from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from .errors import RouteQualityError


class ConditionLevel(str, Enum):
    """Ordinal road condition, best first."""

    OPTIMAL = "OPTIMAL"
    MEDIUM = "MEDIUM"
    SUFFICIENT = "SUFFICIENT"
    MAINTENANCE = "MAINTENANCE"


class ReportStatus(str, Enum):
    DRAFT = "DRAFT"
    CONFIRMED = "CONFIRMED"
    PUBLISHABLE = "PUBLISHABLE"


# Wording used by rider-facing clients.
CONDITION_ALIASES: dict[str, ConditionLevel] = {
    "optimal": ConditionLevel.OPTIMAL,
    "excellent": ConditionLevel.OPTIMAL,
    "medium": ConditionLevel.MEDIUM,
    "good": ConditionLevel.MEDIUM,
    "sufficient": ConditionLevel.SUFFICIENT,
    "fair": ConditionLevel.SUFFICIENT,
    "maintenance": ConditionLevel.MAINTENANCE,
    "poor": ConditionLevel.MAINTENANCE,
    "need_repair": ConditionLevel.MAINTENANCE,
    "need repair": ConditionLevel.MAINTENANCE,
    "needrepair": ConditionLevel.MAINTENANCE,
}


def parse_condition(value: object) -> ConditionLevel:
    if isinstance(value, ConditionLevel):
        return value
    key = str(value or "").strip().lower()
    level = CONDITION_ALIASES.get(key)
    if level is None:
        raise RouteQualityError(
            reason_code="invalid_condition",
            message=f"Invalid road condition: {value!r}",
        )
    return level


@dataclass(frozen=True)
class MergedConditionSummary:
    condition: ConditionLevel | str
    confidence: float
    report_count: int
    latest_report_at: datetime | None = None


@dataclass(frozen=True)
class RoadSegment:
    id: str
    geometry: Any
    cached_summary: MergedConditionSummary | None = None


@dataclass(frozen=True)
class ConditionReport:
    segment_id: str
    condition: ConditionLevel | str
    created_at: datetime | None = None


@dataclass(frozen=True)
class SegmentMatch:
    segment: RoadSegment
    distance_m: float
    summary: MergedConditionSummary | None = None


@dataclass(frozen=True)
class RouteQuality:
    quality_score: float
    evidence_score: float
    matched_count: int


NEUTRAL_ROUTE_QUALITY = RouteQuality(quality_score=0.5, evidence_score=0.0, matched_count=0)


class LatLng(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)


def parse_lat_lng(text: str | None) -> LatLng:
    """Parse the ``"lat,lng"`` form used by the search endpoint."""
    parts = [p.strip() for p in str(text or "").split(",")]
    if len(parts) != 2:
        raise RouteQualityError(reason_code="invalid_coordinate", message="Invalid lat,lng")
    try:
        lat = float(parts[0])
        lon = float(parts[1])
    except ValueError as e:
        raise RouteQualityError(reason_code="invalid_coordinate", message="Invalid lat,lng") from e
    if not (math.isfinite(lat) and math.isfinite(lon)):
        raise RouteQualityError(reason_code="invalid_coordinate", message="Invalid lat,lng")
    if lat < -90 or lat > 90 or lon < -180 or lon > 180:
        raise RouteQualityError(reason_code="invalid_coordinate", message="lat/lng out of range")
    return LatLng(lat=lat, lon=lon)


class ScoreBreakdown(BaseModel):
    model_config = ConfigDict(frozen=True)

    effectiveness: float = Field(..., ge=0.0, le=1.0)
    quality: float = Field(..., ge=0.0, le=1.0)
    evidence: float = Field(..., ge=0.0, le=1.0)


ConfidenceLabel = Literal["high", "low"]


class RouteCandidate(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    provider: str = "unknown"
    distance_m: float
    duration_s: float
    geometry: Any = None  # GeoJSON, [lon, lat] order

    score: float | None = None
    rank: int | None = Field(default=None, ge=1)
    confidence: ConfidenceLabel | None = None
    breakdown: ScoreBreakdown | None = None
    matched_segments: int | None = Field(default=None, ge=0)

    @field_validator("distance_m", "duration_s", mode="before")
    @classmethod
    def coerce_number(cls, v: object) -> float:
        # Non-numeric values become NaN; the scorer treats them as neutral.
        try:
            return float(v)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return float("nan")

    @field_serializer("distance_m", "duration_s", when_used="json")
    def finite_or_null(self, v: float) -> float | None:
        # JSON has no NaN/inf.
        return v if math.isfinite(v) else None


class RankRequest(BaseModel):
    candidates: list[RouteCandidate] = Field(default_factory=list, max_length=50)
    summary_mode: Literal["cached", "live"] | None = None


class SearchResponse(BaseModel):
    origin: LatLng
    destination: LatLng
    routes: list[RouteCandidate]


class RankResponse(BaseModel):
    routes: list[RouteCandidate]


class SegmentCreate(BaseModel):
    id: str = Field(..., min_length=1)
    geometry: dict[str, Any]


class ReportCreate(BaseModel):
    segment_id: str = Field(..., min_length=1)
    condition: str
    notes: str | None = None
    created_at: datetime | None = None


class ReportView(BaseModel):
    id: str
    segment_id: str
    condition: ConditionLevel
    status: ReportStatus
    created_at: datetime
    notes: str | None = None


class SummaryView(BaseModel):
    segment_id: str
    condition: str | None = None
    confidence: float | None = None
    report_count: int = 0
    latest_report_at: datetime | None = None

    @classmethod
    def from_summary(cls, segment_id: str, summary: MergedConditionSummary | None) -> "SummaryView":
        if summary is None:
            return cls(segment_id=segment_id)
        cond = summary.condition.value if isinstance(summary.condition, ConditionLevel) else str(summary.condition)
        return cls(
            segment_id=segment_id,
            condition=cond,
            confidence=summary.confidence,
            report_count=summary.report_count,
            latest_report_at=summary.latest_report_at,
        )
