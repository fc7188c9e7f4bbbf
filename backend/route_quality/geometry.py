from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from typing import Any

EARTH_RADIUS_M: float = 6_371_000.0
MAX_SAMPLE_POINTS: int = 60

Coord = tuple[float, float]  # (lon, lat)
BBox = tuple[float, float, float, float]  # (min_lon, min_lat, max_lon, max_lat)


def _coerce_point(pt: Any) -> Coord | None:
    if not isinstance(pt, (list, tuple)) or len(pt) < 2:
        return None
    try:
        lon = float(pt[0])
        lat = float(pt[1])
    except (TypeError, ValueError):
        return None
    if not (math.isfinite(lon) and math.isfinite(lat)):
        return None
    return (lon, lat)


def _coerce_line(points: Any) -> list[Coord]:
    if not isinstance(points, (list, tuple)):
        return []
    out: list[Coord] = []
    for pt in points:
        c = _coerce_point(pt)
        if c is not None:
            out.append(c)
    return out


def extract_line_coordinates(geometry: Any, *, _unwrap: bool = True) -> list[Coord]:
    """Return the (lon, lat) sequence of a GeoJSON line-like object.

    Supports LineString, MultiLineString (parts concatenated in order) and a
    Feature wrapping either. Anything else yields an empty list.
    """
    if not isinstance(geometry, Mapping):
        return []
    kind = geometry.get("type")
    coords = geometry.get("coordinates")

    if kind == "LineString":
        return _coerce_line(coords)

    if kind == "MultiLineString" and isinstance(coords, (list, tuple)):
        out: list[Coord] = []
        for line in coords:
            out.extend(_coerce_line(line))
        return out

    if kind == "Feature" and _unwrap:
        # One level only: a Feature nested in a Feature is not a line.
        return extract_line_coordinates(geometry.get("geometry"), _unwrap=False)

    return []


def bounding_box(coords: Sequence[Coord]) -> BBox | None:
    if not coords:
        return None
    lons = [c[0] for c in coords]
    lats = [c[1] for c in coords]
    return (min(lons), min(lats), max(lons), max(lats))


def expand_box(box: BBox, degrees: float) -> BBox:
    d = max(0.0, float(degrees))
    return (box[0] - d, box[1] - d, box[2] + d, box[3] + d)


def boxes_intersect(a: BBox, b: BBox) -> bool:
    a_min_x, a_min_y, a_max_x, a_max_y = a
    b_min_x, b_min_y, b_max_x, b_max_y = b
    return not (a_max_x < b_min_x or b_max_x < a_min_x or a_max_y < b_min_y or b_max_y < a_min_y)


def project_planar(lon: float, lat: float) -> tuple[float, float]:
    """Equirectangular projection to metres.

    Only meaningful at the scale of a single metropolitan route; distorts
    badly over long distances and near the poles.
    """
    lat_rad = math.radians(lat)
    x = math.radians(lon) * EARTH_RADIUS_M * math.cos(lat_rad)
    y = lat_rad * EARTH_RADIUS_M
    return x, y


def point_to_segment_distance(p: Coord, a: Coord, b: Coord) -> float:
    px, py = project_planar(*p)
    ax, ay = project_planar(*a)
    bx, by = project_planar(*b)

    abx = bx - ax
    aby = by - ay
    ab2 = abx * abx + aby * aby
    if ab2 == 0:
        return math.hypot(px - ax, py - ay)

    t = ((px - ax) * abx + (py - ay) * aby) / ab2
    t = max(0.0, min(1.0, t))
    return math.hypot(px - (ax + t * abx), py - (ay + t * aby))


def point_to_polyline_distance(p: Coord, line: Sequence[Coord]) -> float:
    if len(line) == 1:
        return point_to_segment_distance(p, line[0], line[0])
    best = math.inf
    for a, b in zip(line, line[1:]):
        d = point_to_segment_distance(p, a, b)
        if d < best:
            best = d
    return best


def downsample_line(coords: Sequence[Coord], max_points: int = MAX_SAMPLE_POINTS) -> list[Coord]:
    """Keep at most ``max_points`` evenly strided points, first and last always included."""
    n = len(coords)
    limit = max(2, int(max_points))
    if n <= limit:
        return list(coords)
    # Reserve one slot for the last point.
    step = math.ceil((n - 1) / (limit - 1))
    sampled = [coords[i] for i in range(0, n - 1, step)]
    sampled.append(coords[-1])
    return sampled


def min_distance_between_lines(line_a: Sequence[Coord], line_b: Sequence[Coord]) -> float:
    """Approximate minimum planar distance between two polylines, in metres.

    Vertices of each (downsampled) line are measured against the other line's
    segments, in both directions. Crossing segments whose vertices are all far
    apart are not detected, so the result can overestimate the true minimum.
    Returns ``inf`` if either line is empty.
    """
    if not line_a or not line_b:
        return math.inf
    a = downsample_line(line_a)
    b = downsample_line(line_b)

    best = math.inf
    for p in a:
        best = min(best, point_to_polyline_distance(p, b))
    for p in b:
        best = min(best, point_to_polyline_distance(p, a))
    return best
