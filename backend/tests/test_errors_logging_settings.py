from __future__ import annotations

import logging
from pathlib import Path

import pytest

from route_quality.errors import FROZEN_REASON_CODES, REASON_CODE_STATUS, RouteQualityError, normalize_reason_code
from route_quality.logging_utils import _parse_level, get_logger, log_event, timed_event
from route_quality.metrics_store import MetricsStore
from route_quality.models import ConditionLevel, parse_condition, parse_lat_lng
from route_quality.settings import Settings, settings


def test_route_quality_error_string_details_and_status() -> None:
    err = RouteQualityError(
        reason_code="segment_not_found",
        message="Segment not found",
        details={"segment_id": "abc"},
    )
    assert str(err) == "Segment not found"
    assert err.details == {"segment_id": "abc"}
    assert err.status_code == 404
    assert isinstance(err, ValueError)

    assert RouteQualityError(reason_code="made_up", message="x").status_code == 500


def test_reason_code_normalization() -> None:
    assert set(REASON_CODE_STATUS) == FROZEN_REASON_CODES
    assert normalize_reason_code("report_transition_invalid") == "report_transition_invalid"
    assert normalize_reason_code(" invalid_coordinate ") == "invalid_coordinate"
    assert normalize_reason_code("unknown_reason") == "internal_error"
    assert normalize_reason_code("", default="segment_store_unavailable") == "segment_store_unavailable"


def test_parse_lat_lng() -> None:
    p = parse_lat_lng(" 45.07 , 7.68 ")
    assert (p.lat, p.lon) == (45.07, 7.68)
    for bad in ("", "45.0", "45,7,1", "north,east", "nan,7", "91,0", "0,181", None):
        with pytest.raises(RouteQualityError) as exc:
            parse_lat_lng(bad)
        assert exc.value.reason_code == "invalid_coordinate"


def test_parse_condition_aliases() -> None:
    assert parse_condition("OPTIMAL") == ConditionLevel.OPTIMAL
    assert parse_condition("Excellent") == ConditionLevel.OPTIMAL
    assert parse_condition("good") == ConditionLevel.MEDIUM
    assert parse_condition("fair") == ConditionLevel.SUFFICIENT
    assert parse_condition("need_repair") == ConditionLevel.MAINTENANCE
    assert parse_condition(ConditionLevel.MEDIUM) == ConditionLevel.MEDIUM
    with pytest.raises(RouteQualityError):
        parse_condition("")


def test_settings_summary_mode_is_normalised() -> None:
    assert Settings(_env_file=None, SUMMARY_MODE=" Cached ").summary_mode == "cached"
    assert Settings(_env_file=None, SUMMARY_MODE="sometimes").summary_mode == "live"
    defaults = Settings(_env_file=None)
    assert defaults.hit_threshold_m == 30.0
    assert defaults.max_candidate_segments == 2000
    assert defaults.max_reports_per_segment == 200


def test_logging_helpers_parse_levels_and_emit_event(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setattr(settings, "out_dir", str(tmp_path))

    assert _parse_level("debug") == logging.DEBUG
    assert _parse_level("not_a_level") == logging.INFO

    logger1 = get_logger()
    handlers_before = len(logger1.handlers)
    logger2 = get_logger()
    assert logger1 is logger2
    assert len(logger2.handlers) == handlers_before

    records: list[logging.LogRecord] = []

    class _Capture(logging.Handler):
        def emit(self, record: logging.LogRecord) -> None:
            records.append(record)

    capture = _Capture()
    logger1.addHandler(capture)
    try:
        log_event("unit_test_event", route_id="route_0", matched=3)
        log_event("unit_test_warning", level=logging.WARNING, error="boom")
    finally:
        logger1.removeHandler(capture)

    assert [r.getMessage() for r in records] == ["unit_test_event", "unit_test_warning"]
    assert records[0].event == "unit_test_event"  # type: ignore[attr-defined]
    assert records[0].matched == 3  # type: ignore[attr-defined]
    assert records[1].levelno == logging.WARNING


def test_timed_event_logs_duration_and_late_fields() -> None:
    logger = get_logger()
    records: list[logging.LogRecord] = []

    class _Capture(logging.Handler):
        def emit(self, record: logging.LogRecord) -> None:
            records.append(record)

    capture = _Capture()
    logger.addHandler(capture)
    try:
        with timed_event("unit_timed", route_count=2) as ev:
            ev["top_route_id"] = "route_1"
        with pytest.raises(RuntimeError):
            with timed_event("unit_timed_failed"):
                raise RuntimeError("boom")
    finally:
        logger.removeHandler(capture)

    assert [r.getMessage() for r in records] == ["unit_timed"]
    assert records[0].route_count == 2  # type: ignore[attr-defined]
    assert records[0].top_route_id == "route_1"  # type: ignore[attr-defined]
    assert records[0].duration_ms >= 0.0  # type: ignore[attr-defined]


def test_metrics_store_snapshot() -> None:
    store = MetricsStore()
    store.record("GET /health", duration_ms=4.0)
    store.record("GET /health", duration_ms=6.0)
    store.record("GET /routes/search", duration_ms=20.0, status_code=502)
    store.record("GET /routes/search", duration_ms=10.0, status_code=400)
    store.record("  ", duration_ms=-3.0)
    store.record_ranking(["high", "low", "low"])

    snap = store.snapshot()
    assert snap["total_requests"] == 5
    assert snap["total_errors"] == 2
    endpoints = snap["endpoints"]
    assert endpoints["GET /health"] == {
        "request_count": 2,
        "error_count": 0,
        "status_classes": {"2xx": 2},
        "avg_duration_ms": 5.0,
        "max_duration_ms": 6.0,
    }
    assert endpoints["GET /routes/search"]["status_classes"] == {"4xx": 1, "5xx": 1}
    assert endpoints["unknown"]["max_duration_ms"] == 0.0
    assert snap["ranking"] == {
        "ranked_requests": 1,
        "ranked_routes": 3,
        "confidence_counts": {"high": 1, "low": 2},
    }

    store.reset()
    assert store.snapshot()["total_requests"] == 0
