from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from .condition_merge import clamp01
from .effectiveness import effectiveness_scores
from .models import NEUTRAL_ROUTE_QUALITY, RouteCandidate, RouteQuality, ScoreBreakdown

LOW_EVIDENCE_THRESHOLD: float = 0.35
SCORE_DECIMALS: int = 4


@dataclass(frozen=True)
class RankingWeights:
    effectiveness: float = 0.5
    quality: float = 0.5

    def normalised(self) -> tuple[float, float]:
        we = max(0.0, float(self.effectiveness))
        wq = max(0.0, float(self.quality))
        s = we + wq
        if s <= 0:
            return (0.5, 0.5)
        return (we / s, wq / s)


def confidence_label(evidence_score: float, *, threshold: float = LOW_EVIDENCE_THRESHOLD) -> str:
    return "low" if evidence_score < threshold else "high"


def rank_routes(
    candidates: Sequence[RouteCandidate],
    qualities: Sequence[RouteQuality | None] | None = None,
    *,
    weights: RankingWeights | None = None,
    low_evidence_threshold: float = LOW_EVIDENCE_THRESHOLD,
) -> list[RouteCandidate]:
    """Score, sort and rank route candidates (best first).

    ``qualities`` is aligned with ``candidates`` by index. A missing entry
    (or no list at all) means no condition evidence for that route: it is
    scored with neutral quality rather than dropped.
    """
    if not candidates:
        return []

    w_eff, w_qual = (weights or RankingWeights()).normalised()
    effs = effectiveness_scores(candidates)

    scored: list[RouteCandidate] = []
    for i, cand in enumerate(candidates):
        q = qualities[i] if qualities is not None and i < len(qualities) else None
        if q is None:
            q = NEUTRAL_ROUTE_QUALITY

        eff = clamp01(effs[i])
        quality = clamp01(q.quality_score)
        evidence = clamp01(q.evidence_score, default=0.0)
        raw = w_eff * eff + w_qual * quality

        scored.append(
            cand.model_copy(
                update={
                    "score": round(raw, SCORE_DECIMALS),
                    "confidence": confidence_label(evidence, threshold=low_evidence_threshold),
                    "breakdown": ScoreBreakdown(
                        effectiveness=round(eff, SCORE_DECIMALS),
                        quality=round(quality, SCORE_DECIMALS),
                        evidence=round(evidence, SCORE_DECIMALS),
                    ),
                    "matched_segments": q.matched_count,
                }
            )
        )

    # sorted() is stable: equal scores keep input order.
    ordered = sorted(scored, key=lambda c: -(c.score or 0.0))
    return [c.model_copy(update={"rank": idx + 1}) for idx, c in enumerate(ordered)]
