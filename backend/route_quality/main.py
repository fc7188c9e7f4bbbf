from __future__ import annotations

import logging
import time
import uuid
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Annotated, Any

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .errors import RouteQualityError, normalize_reason_code
from .logging_utils import log_event, timed_event
from .metrics_store import metrics_snapshot, record_ranking, record_request
from .models import (
    RankRequest,
    RankResponse,
    ReportCreate,
    ReportView,
    SearchResponse,
    SegmentCreate,
    SummaryView,
    parse_lat_lng,
)
from .routing_ors import ORSClient, RoutingProviderError
from .scoring_service import build_candidates, score_routes
from .segment_store import SEGMENT_STORE, InMemorySegmentStore, StoredReport
from .settings import settings
from .summary_providers import make_summary_provider


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.ors = ORSClient(
        base_url=settings.ors_base_url,
        api_key=settings.ors_api_key,
        profile=settings.ors_profile,
        timeout_s=settings.ors_timeout_s,
    )
    yield
    await app.state.ors.aclose()


app = FastAPI(title="Route Quality Router", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def _record_metrics(request: Request, call_next):
    t0 = time.perf_counter()
    response = await call_next(request)
    route = request.scope.get("route")
    name = f"{request.method} {getattr(route, 'path', request.url.path)}"
    record_request(
        name,
        duration_ms=(time.perf_counter() - t0) * 1000,
        status_code=response.status_code,
    )
    return response


@app.exception_handler(RouteQualityError)
async def _route_quality_error(_request: Request, exc: RouteQualityError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "reason_code": normalize_reason_code(exc.reason_code)},
    )


def ors_client(request: Request) -> ORSClient:
    ors: ORSClient | None = getattr(request.app.state, "ors", None)  # type: ignore[attr-defined]
    if ors is None:
        raise HTTPException(status_code=503, detail="routing client not initialised")
    return ors


def segment_store() -> InMemorySegmentStore:
    return SEGMENT_STORE


ORSDep = Annotated[ORSClient, Depends(ors_client)]
StoreDep = Annotated[InMemorySegmentStore, Depends(segment_store)]


def _reference_time() -> datetime:
    return datetime.now(UTC)


def _summary_provider(store: InMemorySegmentStore, mode: str | None, *, now: datetime | None = None):
    return make_summary_provider(
        mode or settings.summary_mode,
        reports=store,
        max_reports=settings.max_reports_per_segment,
        half_life_days=settings.freshness_half_life_days,
        now=now,
    )


def _report_view(report: StoredReport) -> ReportView:
    return ReportView(
        id=report.id,
        segment_id=report.segment_id,
        condition=report.condition,
        status=report.status,
        created_at=report.created_at,
        notes=report.notes,
    )


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/metrics")
async def metrics() -> dict[str, Any]:
    return metrics_snapshot()


@app.get("/routes/search", response_model=SearchResponse)
async def search_routes(
    ors: ORSDep,
    store: StoreDep,
    origin: Annotated[str, Query(description="lat,lng")],
    destination: Annotated[str, Query(description="lat,lng")],
    summary_mode: Annotated[str | None, Query(pattern="^(cached|live)$")] = None,
) -> SearchResponse:
    request_id = str(uuid.uuid4())
    o = parse_lat_lng(origin)
    d = parse_lat_lng(destination)
    if not ors.configured:
        raise RouteQualityError(
            reason_code="routing_provider_unconfigured",
            message="ORS_API_KEY missing",
        )

    mode = summary_mode or settings.summary_mode
    with timed_event(
        "route_search",
        request_id=request_id,
        origin=o.model_dump(),
        destination=d.model_dump(),
        summary_mode=mode,
    ) as ev:
        try:
            raw = await ors.fetch_routes(
                origin=o,
                destination=d,
                alternatives=settings.ors_max_alternatives,
                max_retries=settings.ors_max_retries,
            )
        except RoutingProviderError as e:
            log_event("route_search_provider_failed", level=logging.WARNING, request_id=request_id, error=str(e))
            raise HTTPException(status_code=502, detail=str(e)) from e

        now = _reference_time()
        ranked = await score_routes(
            build_candidates(raw),
            store=store,
            provider=_summary_provider(store, mode, now=now),
            now=now,
        )
        record_ranking(ranked)
        ev["candidate_count"] = len(raw)

    return SearchResponse(origin=o, destination=d, routes=ranked)


@app.post("/routes/rank", response_model=RankResponse)
async def rank(req: RankRequest, store: StoreDep) -> RankResponse:
    now = _reference_time()
    ranked = await score_routes(
        req.candidates,
        store=store,
        provider=_summary_provider(store, req.summary_mode, now=now),
        now=now,
    )
    record_ranking(ranked)
    return RankResponse(routes=ranked)


@app.post("/segments", status_code=201)
async def create_segment(req: SegmentCreate, store: StoreDep) -> dict[str, str]:
    segment = store.add_segment(req.id, req.geometry)
    return {"id": segment.id}


@app.get("/segments/{segment_id}/summary", response_model=SummaryView)
async def live_summary(segment_id: str, store: StoreDep) -> SummaryView:
    segment = store.get_segment(segment_id)
    provider = _summary_provider(store, "live")
    return SummaryView.from_summary(segment_id, provider.summary_for(segment))


@app.post("/segments/{segment_id}/summary", response_model=SummaryView)
async def refresh_summary(segment_id: str, store: StoreDep) -> SummaryView:
    summary = store.refresh_cached_summary(segment_id)
    log_event("segment_summary_refreshed", segment_id=segment_id, has_summary=summary is not None)
    return SummaryView.from_summary(segment_id, summary)


@app.post("/reports", response_model=ReportView, status_code=201)
async def submit_report(req: ReportCreate, store: StoreDep) -> ReportView:
    report = store.submit_report(req.segment_id, req.condition, notes=req.notes, created_at=req.created_at)
    return _report_view(report)


@app.post("/reports/{report_id}/confirm", response_model=ReportView)
async def confirm_report(report_id: str, store: StoreDep) -> ReportView:
    return _report_view(store.confirm_report(report_id))


@app.post("/reports/{report_id}/publish", response_model=ReportView)
async def publish_report(report_id: str, store: StoreDep) -> ReportView:
    return _report_view(store.publish_report(report_id))
