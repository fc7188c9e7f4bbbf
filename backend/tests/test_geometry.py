from __future__ import annotations

import math

from route_quality.geometry import (
    EARTH_RADIUS_M,
    bounding_box,
    boxes_intersect,
    downsample_line,
    expand_box,
    extract_line_coordinates,
    min_distance_between_lines,
    point_to_segment_distance,
    project_planar,
)


def _line(n: int, *, lat: float = 0.0, lon0: float = 0.0, step: float = 0.0001) -> list[tuple[float, float]]:
    return [(lon0 + i * step, lat) for i in range(n)]


def test_extract_line_string_and_multi_line_string() -> None:
    assert extract_line_coordinates({"type": "LineString", "coordinates": [[1, 2], [3, 4]]}) == [
        (1.0, 2.0),
        (3.0, 4.0),
    ]
    multi = {
        "type": "MultiLineString",
        "coordinates": [[[0, 0], [1, 1]], "junk", [[2, 2], [3, 3]]],
    }
    assert extract_line_coordinates(multi) == [(0.0, 0.0), (1.0, 1.0), (2.0, 2.0), (3.0, 3.0)]


def test_extract_unwraps_one_feature_level_only() -> None:
    line = {"type": "LineString", "coordinates": [[9.0, 45.0], [9.1, 45.1]]}
    feature = {"type": "Feature", "geometry": line, "properties": {}}
    assert extract_line_coordinates(feature) == [(9.0, 45.0), (9.1, 45.1)]
    assert extract_line_coordinates({"type": "Feature", "geometry": feature}) == []


def test_extract_malformed_input_is_empty_not_an_error() -> None:
    for geo in (
        None,
        "LINESTRING(0 0, 1 1)",
        42,
        {"type": "Point", "coordinates": [0, 0]},
        {"type": "LineString", "coordinates": "bad"},
        {"type": "Feature"},
        {"coordinates": [[0, 0], [1, 1]]},
    ):
        assert extract_line_coordinates(geo) == []


def test_extract_drops_unusable_points() -> None:
    geo = {
        "type": "LineString",
        "coordinates": [[0, 0], ["a", 1], [float("nan"), 1], [1], None, ["2.5", "3.5"], [float("inf"), 0]],
    }
    assert extract_line_coordinates(geo) == [(0.0, 0.0), (2.5, 3.5)]


def test_bounding_box_and_intersection() -> None:
    assert bounding_box([]) is None
    box = bounding_box([(1.0, 5.0), (-2.0, 3.0), (0.5, 7.0)])
    assert box == (-2.0, 3.0, 1.0, 7.0)
    assert expand_box(box, 0.5) == (-2.5, 2.5, 1.5, 7.5)

    assert boxes_intersect((0, 0, 1, 1), (0.5, 0.5, 2, 2))
    # Touching edges count as intersecting.
    assert boxes_intersect((0, 0, 1, 1), (1, 0, 2, 1))
    assert not boxes_intersect((0, 0, 1, 1), (1.01, 0, 2, 1))
    assert not boxes_intersect((0, 0, 1, 1), (0, 1.5, 1, 2))


def test_project_planar_equator() -> None:
    assert project_planar(0.0, 0.0) == (0.0, 0.0)
    x, y = project_planar(1.0, 0.0)
    assert math.isclose(x, EARTH_RADIUS_M * math.pi / 180.0, rel_tol=1e-12)
    assert y == 0.0
    # Longitude shrinks with latitude.
    x60, _ = project_planar(1.0, 60.0)
    assert math.isclose(x60, x * 0.5, rel_tol=1e-9)


def test_point_to_segment_distance_cases() -> None:
    metres_per_deg = EARTH_RADIUS_M * math.pi / 180.0

    # Perpendicular foot inside the segment.
    d = point_to_segment_distance((0.0, 0.001), (-0.001, 0.0), (0.001, 0.0))
    assert math.isclose(d, 0.001 * metres_per_deg, abs_tol=0.01)

    # Beyond the end: clamps to the endpoint.
    d_end = point_to_segment_distance((0.002, 0.0), (-0.001, 0.0), (0.001, 0.0))
    assert math.isclose(d_end, 0.001 * metres_per_deg, abs_tol=0.01)

    # Degenerate segment: direct point distance.
    d_pt = point_to_segment_distance((0.0, 0.001), (0.0, 0.0), (0.0, 0.0))
    assert math.isclose(d_pt, 0.001 * metres_per_deg, abs_tol=0.01)


def test_downsample_bounds_points_and_keeps_endpoints() -> None:
    short = _line(10)
    assert downsample_line(short) == short

    for n in (61, 100, 119, 200, 1000):
        line = _line(n)
        sampled = downsample_line(line)
        assert len(sampled) <= 60
        assert sampled[0] == line[0]
        assert sampled[-1] == line[-1]


def test_min_distance_self_is_zero_and_parallel_offset() -> None:
    line = _line(150, lat=45.0, lon0=9.0)
    assert min_distance_between_lines(line, line) == 0.0

    a = [(0.0, 0.0), (0.005, 0.0), (0.01, 0.0)]
    b = [(0.002, 0.0002), (0.008, 0.0002)]
    expected = 0.0002 * EARTH_RADIUS_M * math.pi / 180.0
    assert math.isclose(min_distance_between_lines(a, b), expected, abs_tol=0.05)
    assert math.isclose(min_distance_between_lines(b, a), expected, abs_tol=0.05)


def test_min_distance_empty_line_is_infinite() -> None:
    assert min_distance_between_lines([], [(0.0, 0.0), (1.0, 1.0)]) == math.inf
