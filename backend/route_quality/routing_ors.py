from __future__ import annotations

import asyncio
from typing import Any, Final

import httpx

from .models import LatLng


class RoutingProviderError(RuntimeError):
    pass


class RoutingProviderRetryableError(RoutingProviderError):
    """A provider error that is likely transient and safe to retry."""

    pass


_RETRYABLE_STATUS: Final[set[int]] = {408, 425, 429, 500, 502, 503, 504}
PROVIDER_NAME: Final[str] = "openrouteservice"


def _format_ors_error(resp: httpx.Response) -> str:
    """Best-effort decode of ORS JSON error payloads."""
    try:
        data = resp.json()
        if isinstance(data, dict):
            err = data.get("error")
            if isinstance(err, dict):
                code = err.get("code")
                message = err.get("message")
                if code and message:
                    return f"ORS {resp.status_code} {code}: {message}"
                if message:
                    return f"ORS {resp.status_code}: {message}"
            elif isinstance(err, str) and err:
                return f"ORS {resp.status_code}: {err}"
    except ValueError:
        # not JSON; fall through to text
        pass

    body = (resp.text or "").strip().replace("\n", " ")
    if len(body) > 240:
        body = body[:240] + "..."
    if body:
        return f"ORS {resp.status_code}: {body}"
    return f"ORS HTTP {resp.status_code}"


def _as_number(v: Any) -> float:
    try:
        return float(v)
    except (TypeError, ValueError):
        return 0.0


def parse_directions_payload(data: Any) -> list[dict[str, Any]]:
    """Turn an ORS GeoJSON directions response into provider-neutral route dicts."""
    if not isinstance(data, dict):
        raise RoutingProviderError("ORS returned a non-object payload")
    features = data.get("features")
    if not isinstance(features, list):
        return []

    routes: list[dict[str, Any]] = []
    for feature in features:
        if not isinstance(feature, dict):
            continue
        props = feature.get("properties")
        summary = props.get("summary") if isinstance(props, dict) else None
        if not isinstance(summary, dict):
            summary = {}
        routes.append(
            {
                "provider": PROVIDER_NAME,
                "distance_m": _as_number(summary.get("distance")),
                "duration_s": _as_number(summary.get("duration")),
                "geometry": feature.get("geometry"),
            }
        )
    return routes


class ORSClient:
    def __init__(
        self,
        *,
        base_url: str,
        api_key: str,
        profile: str = "cycling-regular",
        timeout_s: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.profile = profile
        self._api_key = api_key

        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_s, connect=5.0),
            headers={"accept": "application/geo+json, application/json"},
            transport=transport,
        )

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def fetch_routes(
        self,
        *,
        origin: LatLng,
        destination: LatLng,
        alternatives: int = 1,
        max_retries: int = 3,
    ) -> list[dict[str, Any]]:
        """Fetch candidate routes between two points.

        Returns a list of ``{"provider", "distance_m", "duration_s", "geometry"}``
        dicts, geometry as a GeoJSON LineString in [lon, lat] order. An empty
        feature collection yields an empty list rather than an error.

        alternatives:
          Number of routes to ask for (ORS caps alternatives at 3). Values <= 1
          request only the recommended route.
        """
        if not self.configured:
            raise RoutingProviderError("ORS API key is not configured")

        url = f"{self.base_url}/v2/directions/{self.profile}/geojson"
        body: dict[str, Any] = {
            "coordinates": [[origin.lon, origin.lat], [destination.lon, destination.lat]],
        }
        alt_i = max(1, min(int(alternatives), 3))
        if alt_i > 1:
            body["alternative_routes"] = {"target_count": alt_i, "share_factor": 0.6, "weight_factor": 1.4}

        headers = {"Authorization": self._api_key, "Content-Type": "application/json"}
        max_retries_i = max(1, int(max_retries))
        last_err: Exception | None = None

        for attempt in range(max_retries_i):
            try:
                resp = await self._client.post(url, json=body, headers=headers)

                # Fast-fail on most 4xx: bad coordinates, unroutable points, auth.
                if 400 <= resp.status_code < 500 and resp.status_code not in _RETRYABLE_STATUS:
                    raise RoutingProviderError(_format_ors_error(resp))

                if resp.status_code in _RETRYABLE_STATUS:
                    raise RoutingProviderRetryableError(_format_ors_error(resp))

                resp.raise_for_status()
                try:
                    data = resp.json()
                except ValueError as e:
                    raise RoutingProviderError("ORS returned invalid JSON") from e
                return parse_directions_payload(data)

            except RoutingProviderRetryableError as e:
                last_err = e
            except (httpx.TimeoutException, httpx.NetworkError, httpx.TransportError) as e:
                last_err = e
            except httpx.HTTPStatusError as e:
                raise RoutingProviderError(str(e)) from e

            if attempt < max_retries_i - 1:
                await asyncio.sleep(min(0.25 * (2**attempt), 2.0))

        # httpx exceptions can stringify to "" (e.g. some timeouts), so include the type.
        if last_err is None:
            detail = "unknown error"
        else:
            msg = str(last_err).strip()
            detail = f"{type(last_err).__name__}: {msg}" if msg else f"{type(last_err).__name__}: {last_err!r}"

        raise RoutingProviderError(
            f"ORS request failed after {max_retries_i} attempts (base={self.base_url}): {detail}"
        )
