from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from .geometry import (
    BBox,
    bounding_box,
    boxes_intersect,
    expand_box,
    extract_line_coordinates,
    min_distance_between_lines,
)
from .models import RoadSegment, SegmentMatch

DEFAULT_HIT_THRESHOLD_M: float = 30.0
# Roughly 200-300 m at mid latitudes.
DEFAULT_BBOX_EXPANSION_DEG: float = 0.0025


def route_search_box(
    route_geometry: Any, *, bbox_expansion_deg: float = DEFAULT_BBOX_EXPANSION_DEG
) -> BBox | None:
    """Expanded route box used both to query the store and to prefilter segments."""
    coords = extract_line_coordinates(route_geometry)
    if len(coords) < 2:
        return None
    box = bounding_box(coords)
    if box is None:
        return None
    return expand_box(box, bbox_expansion_deg)


def match_segments(
    route_geometry: Any,
    segments: Iterable[RoadSegment],
    *,
    hit_threshold_m: float = DEFAULT_HIT_THRESHOLD_M,
    bbox_expansion_deg: float = DEFAULT_BBOX_EXPANSION_DEG,
) -> list[SegmentMatch]:
    """Return the segments the route passes within ``hit_threshold_m`` of.

    ``segments`` is expected to be pre-bounded by the caller (spatial query);
    nothing here paginates or performs I/O. Matches keep the input order.
    """
    route_coords = extract_line_coordinates(route_geometry)
    if len(route_coords) < 2:
        return []
    route_box = bounding_box(route_coords)
    if route_box is None:
        return []
    search_box = expand_box(route_box, bbox_expansion_deg)

    matches: list[SegmentMatch] = []
    for seg in segments:
        seg_coords = extract_line_coordinates(seg.geometry)
        if len(seg_coords) < 2:
            continue

        seg_box = bounding_box(seg_coords)
        if seg_box is None or not boxes_intersect(search_box, seg_box):
            continue

        dist = min_distance_between_lines(route_coords, seg_coords)
        if dist > hit_threshold_m:
            continue

        matches.append(SegmentMatch(segment=seg, distance_m=dist))
    return matches
