from __future__ import annotations

import math
from collections.abc import Sequence

from .models import RouteCandidate

# Soft thresholds for a lone route: 3 km / 20 min score 0.5 on their axis.
SINGLE_ROUTE_DISTANCE_M: float = 3000.0
SINGLE_ROUTE_DURATION_S: float = 1200.0

NEUTRAL_NORM: float = 0.5


def normalise(v: float, mn: float, mx: float, *, tied: float = NEUTRAL_NORM) -> float:
    """Min-max position of ``v`` in [mn, mx]; ``tied`` when the range is empty."""
    if not math.isfinite(v):
        return NEUTRAL_NORM
    if mx <= mn:
        return tied
    return max(0.0, min(1.0, (v - mn) / (mx - mn)))


def _axis_norms(values: Sequence[float]) -> list[float]:
    # One non-finite value makes the whole axis incomparable.
    if not values or not all(math.isfinite(v) for v in values):
        return [NEUTRAL_NORM] * len(values)
    mn, mx = min(values), max(values)
    return [normalise(v, mn, mx) for v in values]


def route_set_effectiveness(distances_m: Sequence[float], durations_s: Sequence[float]) -> list[float]:
    if len(distances_m) != len(durations_s):
        raise ValueError("distance/duration length mismatch")
    dist_norms = _axis_norms([float(d) for d in distances_m])
    dur_norms = _axis_norms([float(t) for t in durations_s])
    return [0.5 * (1.0 - dn) + 0.5 * (1.0 - tn) for dn, tn in zip(dist_norms, dur_norms, strict=True)]


def _soft_axis_score(v: float, reference: float) -> float:
    # NaN is unknown; +inf is the far end of the axis and scores nothing.
    if math.isnan(v):
        return NEUTRAL_NORM
    if v == math.inf:
        return 0.0
    return 1.0 / (1.0 + max(0.0, v) / reference)


def single_route_effectiveness(distance_m: float, duration_s: float) -> float:
    d_score = _soft_axis_score(float(distance_m), SINGLE_ROUTE_DISTANCE_M)
    t_score = _soft_axis_score(float(duration_s), SINGLE_ROUTE_DURATION_S)
    return 0.5 * d_score + 0.5 * t_score


def effectiveness_scores(candidates: Sequence[RouteCandidate]) -> list[float]:
    """Efficiency in [0, 1] per candidate, shorter and faster scoring higher.

    Cross-candidate normalisation needs at least two routes; a lone route is
    scored against fixed soft thresholds instead.
    """
    if not candidates:
        return []
    if len(candidates) == 1:
        c = candidates[0]
        return [single_route_effectiveness(c.distance_m, c.duration_s)]
    return route_set_effectiveness(
        [c.distance_m for c in candidates],
        [c.duration_s for c in candidates],
    )
