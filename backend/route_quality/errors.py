from __future__ import annotations

from dataclasses import dataclass
from typing import Any

FROZEN_REASON_CODES: frozenset[str] = frozenset(
    {
        "invalid_coordinate",
        "invalid_condition",
        "segment_not_found",
        "segment_geometry_invalid",
        "report_not_found",
        "report_transition_invalid",
        "segment_store_unavailable",
        "routing_provider_unavailable",
        "routing_provider_unconfigured",
        "no_route_candidates",
        "internal_error",
    }
)

# HTTP status for each code when surfaced by the API layer.
REASON_CODE_STATUS: dict[str, int] = {
    "invalid_coordinate": 400,
    "invalid_condition": 400,
    "segment_geometry_invalid": 400,
    "segment_not_found": 404,
    "report_not_found": 404,
    "report_transition_invalid": 409,
    "segment_store_unavailable": 503,
    "routing_provider_unavailable": 502,
    "routing_provider_unconfigured": 503,
    "no_route_candidates": 404,
    "internal_error": 500,
}


@dataclass
class RouteQualityError(ValueError):
    reason_code: str
    message: str
    details: dict[str, Any] | None = None

    def __str__(self) -> str:
        return self.message

    @property
    def status_code(self) -> int:
        return REASON_CODE_STATUS.get(normalize_reason_code(self.reason_code), 500)


def normalize_reason_code(reason_code: str, *, default: str = "internal_error") -> str:
    code = str(reason_code or "").strip()
    if code in FROZEN_REASON_CODES:
        return code
    return default
