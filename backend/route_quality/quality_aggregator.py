from __future__ import annotations

import math
from collections.abc import Sequence
from datetime import UTC, datetime

from .condition_merge import DEFAULT_HALF_LIFE_DAYS, clamp01, evidence_weight, freshness_weight
from .models import NEUTRAL_ROUTE_QUALITY, ConditionLevel, RouteQuality, SegmentMatch

CONDITION_SCORES: dict[ConditionLevel, float] = {
    ConditionLevel.OPTIMAL: 1.0,
    ConditionLevel.MEDIUM: 0.7,
    ConditionLevel.SUFFICIENT: 0.45,
    ConditionLevel.MAINTENANCE: 0.1,
}
UNKNOWN_CONDITION_SCORE: float = 0.5
EVIDENCE_SATURATION_RATE: float = 1.5


def condition_to_score(condition: object) -> float:
    try:
        return CONDITION_SCORES.get(condition, UNKNOWN_CONDITION_SCORE)  # type: ignore[call-overload]
    except TypeError:
        # unhashable input
        return UNKNOWN_CONDITION_SCORE


def aggregate_route_quality(
    matches: Sequence[SegmentMatch],
    *,
    half_life_days: float = DEFAULT_HALF_LIFE_DAYS,
    now: datetime | None = None,
) -> RouteQuality:
    """Blend matched segments' consensus into one route-level quality score.

    Each segment is weighted by freshness * evidence. The evidence score is a
    separate saturating curve over the mean (unweighted) evidence, so a route
    with a few well-reported segments is "high" confidence regardless of their
    condition. Matches without a summary carry no evidence and are skipped.
    """
    usable = [m.summary for m in matches if m.summary is not None]
    if not usable:
        return NEUTRAL_ROUTE_QUALITY

    ref = now if now is not None else datetime.now(UTC)
    w_sum = 0.0
    s_sum = 0.0
    e_sum = 0.0
    for summary in usable:
        ew = evidence_weight(summary.report_count, summary.confidence)
        w = freshness_weight(summary.latest_report_at, half_life_days=half_life_days, now=ref) * ew
        w_sum += w
        s_sum += w * condition_to_score(summary.condition)
        e_sum += min(1.0, ew)

    quality = s_sum / w_sum if w_sum > 0 else 0.5
    avg_evidence = e_sum / len(usable)
    evidence = 1.0 - math.exp(-EVIDENCE_SATURATION_RATE * avg_evidence)

    return RouteQuality(
        quality_score=clamp01(quality),
        evidence_score=clamp01(evidence, default=0.0),
        matched_count=len(usable),
    )
