from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any, Protocol

from .geometry import BBox
from .logging_utils import log_event, timed_event
from .models import NEUTRAL_ROUTE_QUALITY, RoadSegment, RouteCandidate, RouteQuality, SegmentMatch
from .quality_aggregator import aggregate_route_quality
from .ranking import RankingWeights, rank_routes
from .segment_matcher import match_segments, route_search_box
from .settings import settings
from .summary_providers import SummaryProvider


class SegmentSource(Protocol):
    def segments_near(self, box: BBox, limit: int | None = ...) -> Sequence[RoadSegment]: ...


def build_candidates(raw_routes: Sequence[dict[str, Any]]) -> list[RouteCandidate]:
    return [
        RouteCandidate(
            id=str(r.get("id") or f"route_{i}"),
            provider=str(r.get("provider") or "unknown"),
            distance_m=r.get("distance_m"),
            duration_s=r.get("duration_s"),
            geometry=r.get("geometry"),
        )
        for i, r in enumerate(raw_routes)
    ]


def default_weights() -> RankingWeights:
    return RankingWeights(effectiveness=settings.weight_effectiveness, quality=settings.weight_quality)


def route_quality_for(
    candidate: RouteCandidate,
    *,
    segments: Sequence[RoadSegment],
    provider: SummaryProvider,
    hit_threshold_m: float | None = None,
    bbox_expansion_deg: float | None = None,
    half_life_days: float | None = None,
    now: datetime | None = None,
) -> RouteQuality:
    """Quality of one route against an already-fetched set of nearby segments."""
    matches = match_segments(
        candidate.geometry,
        segments,
        hit_threshold_m=settings.hit_threshold_m if hit_threshold_m is None else hit_threshold_m,
        bbox_expansion_deg=settings.bbox_expansion_deg if bbox_expansion_deg is None else bbox_expansion_deg,
    )
    if not matches:
        return NEUTRAL_ROUTE_QUALITY

    with_summaries = [
        SegmentMatch(segment=m.segment, distance_m=m.distance_m, summary=provider.summary_for(m.segment))
        for m in matches
    ]
    return aggregate_route_quality(
        with_summaries,
        half_life_days=settings.freshness_half_life_days if half_life_days is None else half_life_days,
        now=now,
    )


def _quality_from_store(
    candidate: RouteCandidate,
    *,
    store: SegmentSource,
    provider: SummaryProvider,
    now: datetime,
) -> RouteQuality:
    box = route_search_box(candidate.geometry, bbox_expansion_deg=settings.bbox_expansion_deg)
    if box is None:
        # Unparseable or degenerate geometry: no evidence, but still ranked.
        return NEUTRAL_ROUTE_QUALITY
    segments = store.segments_near(box, limit=settings.max_candidate_segments)
    return route_quality_for(candidate, segments=segments, provider=provider, now=now)


async def score_routes(
    candidates: Sequence[RouteCandidate],
    *,
    store: SegmentSource,
    provider: SummaryProvider,
    weights: RankingWeights | None = None,
    now: datetime | None = None,
) -> list[RouteCandidate]:
    """Compute each route's quality concurrently, then rank the whole set.

    Routes share nothing while being scored. A collaborator failure for one
    route degrades that route to "no evidence" instead of failing the request.
    """
    if not candidates:
        return []

    ref = now if now is not None else datetime.now(UTC)
    sem = asyncio.Semaphore(settings.scoring_concurrency)
    failures = 0

    async def one(cand: RouteCandidate) -> RouteQuality:
        nonlocal failures
        async with sem:
            try:
                return await asyncio.to_thread(_quality_from_store, cand, store=store, provider=provider, now=ref)
            except Exception as e:
                failures += 1
                log_event(
                    "route_quality_degraded",
                    level=logging.WARNING,
                    route_id=cand.id,
                    error_type=type(e).__name__,
                    error=str(e),
                )
                return NEUTRAL_ROUTE_QUALITY

    with timed_event("routes_ranked", candidate_count=len(candidates)) as ev:
        qualities = await asyncio.gather(*[one(c) for c in candidates])
        ranked = rank_routes(
            candidates,
            qualities,
            weights=weights or default_weights(),
            low_evidence_threshold=settings.low_confidence_evidence_threshold,
        )
        ev.update(
            matched_segments=[q.matched_count for q in qualities],
            degraded_count=failures,
            top_route_id=ranked[0].id,
        )
    return ranked
