from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import UTC, datetime
from threading import Lock
from typing import Any


@dataclass
class EndpointStats:
    request_count: int = 0
    error_count: int = 0
    status_classes: Counter[str] = field(default_factory=Counter)
    total_duration_ms: float = 0.0
    max_duration_ms: float = 0.0

    def as_dict(self) -> dict[str, Any]:
        avg = self.total_duration_ms / self.request_count if self.request_count else 0.0
        return {
            "request_count": self.request_count,
            "error_count": self.error_count,
            "status_classes": dict(sorted(self.status_classes.items())),
            "avg_duration_ms": round(avg, 3),
            "max_duration_ms": round(self.max_duration_ms, 3),
        }


@dataclass
class RankingStats:
    ranked_requests: int = 0
    ranked_routes: int = 0
    confidence_counts: Counter[str] = field(default_factory=lambda: Counter({"high": 0, "low": 0}))


class MetricsStore:
    """Process-local request and ranking counters behind ``GET /metrics``."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._started_at = datetime.now(UTC).isoformat()
        self._endpoints: dict[str, EndpointStats] = {}
        self._ranking = RankingStats()

    def record(self, endpoint: str, *, duration_ms: float, status_code: int = 200) -> None:
        name = endpoint.strip() or "unknown"
        d_ms = max(float(duration_ms), 0.0)
        status_class = f"{int(status_code) // 100}xx"

        with self._lock:
            stats = self._endpoints.setdefault(name, EndpointStats())
            stats.request_count += 1
            stats.status_classes[status_class] += 1
            if status_code >= 400:
                stats.error_count += 1
            stats.total_duration_ms += d_ms
            stats.max_duration_ms = max(stats.max_duration_ms, d_ms)

    def record_ranking(self, confidences: list[str]) -> None:
        with self._lock:
            self._ranking.ranked_requests += 1
            self._ranking.ranked_routes += len(confidences)
            self._ranking.confidence_counts.update(confidences)

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return {
                "started_at": self._started_at,
                "total_requests": sum(s.request_count for s in self._endpoints.values()),
                "total_errors": sum(s.error_count for s in self._endpoints.values()),
                "endpoints": {name: self._endpoints[name].as_dict() for name in sorted(self._endpoints)},
                "ranking": {
                    "ranked_requests": self._ranking.ranked_requests,
                    "ranked_routes": self._ranking.ranked_routes,
                    "confidence_counts": dict(self._ranking.confidence_counts),
                },
            }

    def reset(self) -> None:
        with self._lock:
            self._started_at = datetime.now(UTC).isoformat()
            self._endpoints.clear()
            self._ranking = RankingStats()


METRICS = MetricsStore()


def record_request(endpoint: str, *, duration_ms: float, status_code: int = 200) -> None:
    METRICS.record(endpoint, duration_ms=duration_ms, status_code=status_code)


def record_ranking(routes: list) -> None:
    METRICS.record_ranking([str(r.confidence) for r in routes if r.confidence])


def metrics_snapshot() -> dict[str, Any]:
    return METRICS.snapshot()


def reset_metrics() -> None:
    METRICS.reset()
