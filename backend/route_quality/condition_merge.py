from __future__ import annotations

import math
from collections.abc import Sequence
from datetime import UTC, datetime

from .models import ConditionLevel, ConditionReport, MergedConditionSummary

DEFAULT_HALF_LIFE_DAYS: float = 30.0
MISSING_TIMESTAMP_WEIGHT: float = 0.4
MAX_MERGED_REPORTS: int = 200
EVIDENCE_COUNT_RATE: float = 0.35

_SECONDS_PER_DAY = 86_400.0


def clamp01(x: float | None, *, default: float = 0.5) -> float:
    """Clamp to [0, 1]; missing or non-finite input becomes ``default``."""
    if x is None:
        return default
    try:
        v = float(x)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(v):
        return default
    return max(0.0, min(1.0, v))


def _as_utc(ts: datetime) -> datetime:
    # Naive timestamps are taken to be UTC.
    return ts.replace(tzinfo=UTC) if ts.tzinfo is None else ts


def freshness_weight(
    timestamp: datetime | None,
    *,
    half_life_days: float = DEFAULT_HALF_LIFE_DAYS,
    now: datetime | None = None,
) -> float:
    """Exponential decay: 1.0 for a report made now, 0.5 after one half-life."""
    if timestamp is None:
        return MISSING_TIMESTAMP_WEIGHT
    ref = _as_utc(now) if now is not None else datetime.now(UTC)
    age_days = max(0.0, (ref - _as_utc(timestamp)).total_seconds() / _SECONDS_PER_DAY)
    half_life = half_life_days if half_life_days > 0 else DEFAULT_HALF_LIFE_DAYS
    return 0.5 ** (age_days / half_life)


def evidence_weight(report_count: int | None, prior_confidence: float | None) -> float:
    """Blend of a saturating report-count curve and the consensus confidence.

    The first few reports carry most of the gain: 1 report gives ~0.30 of the
    count term, 5 reports ~0.83.
    """
    try:
        raw = float(report_count or 0)
    except (TypeError, ValueError):
        raw = 0.0
    # Counts from persisted summaries are untrusted; NaN or inf counts as nothing.
    count = max(0, int(raw)) if math.isfinite(raw) else 0
    count_score = 1.0 - math.exp(-EVIDENCE_COUNT_RATE * count)
    return 0.5 * count_score + 0.5 * clamp01(prior_confidence)


def merge_reports(
    reports: Sequence[ConditionReport],
    *,
    half_life_days: float = DEFAULT_HALF_LIFE_DAYS,
    max_reports: int = MAX_MERGED_REPORTS,
    now: datetime | None = None,
) -> MergedConditionSummary | None:
    """Freshness-weighted vote over a segment's publishable reports.

    ``reports`` must already be filtered to publishable ones and ordered newest
    first; only the first ``max_reports`` are used. On equal tallies the
    condition seen first in that order wins, i.e. the one carried by the most
    recent report among the tied conditions.
    """
    capped = list(reports[: max(1, int(max_reports))])
    if not capped:
        return None

    ref = now if now is not None else datetime.now(UTC)
    tallies: dict[ConditionLevel | str, float] = {}
    total = 0.0
    latest: datetime | None = None

    for r in capped:
        w = freshness_weight(r.created_at, half_life_days=half_life_days, now=ref)
        total += w
        tallies[r.condition] = tallies.get(r.condition, 0.0) + w
        if r.created_at is not None and (latest is None or _as_utc(r.created_at) > _as_utc(latest)):
            latest = r.created_at

    # dicts keep first-insertion order, so strict ">" keeps the earliest tied entry.
    winner = capped[0].condition
    best = -1.0
    for cond, w in tallies.items():
        if w > best:
            best = w
            winner = cond

    confidence = best / total if total > 0 else 0.5
    return MergedConditionSummary(
        condition=winner,
        confidence=clamp01(confidence),
        report_count=len(capped),
        latest_report_at=latest,
    )
