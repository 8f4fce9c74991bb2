from __future__ import annotations
import logging
import os
import time
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

import redis.asyncio as aioredis
from fastapi import FastAPI, HTTPException, Response
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from pydantic import BaseModel, Field, ValidationError

from apiexplorer.classifier.response_classifier import Discovery, classify, row_sequence
from apiexplorer.columns.model import ColumnModel
from apiexplorer.connections.models import NewConnection
from apiexplorer.connections.store import ConnectionStore
from apiexplorer.errors import (
    ConnectionNotFoundError,
    ExportError,
    ExportNotImplementedError,
    ReportFetchError,
    ReportUnavailableError,
)
from apiexplorer.export.projector import export
from apiexplorer.http.fetcher import AiohttpFetcher
from apiexplorer.naming.cache import FriendlyNameCache, RedisFriendlyNameCache
from apiexplorer.naming.resolver import FriendlyNameResolver
from apiexplorer.naming.suggester import HeuristicNameSuggester, HttpNameSuggester, NameSuggester
from apiexplorer.query.models import ApiResponseEnvelope, KeyValue
from apiexplorer.query.orchestrator import QueryOrchestrator
from apiexplorer.reports.financial import FinancialReportInput, FinancialReportService

logger = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")

# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------
QUERY_COUNT = Counter(
    "apiexplorer_queries_total",
    "Total explorer queries processed",
    ["outcome"],
)
QUERY_LATENCY = Histogram(
    "apiexplorer_query_latency_seconds",
    "Query execution latency, including name suggestion",
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)
EXPORT_COUNT = Counter(
    "apiexplorer_exports_total",
    "Export requests by format and outcome",
    ["format", "outcome"],
)

# ---------------------------------------------------------------------------
# Shared process-level resources (populated in lifespan)
# ---------------------------------------------------------------------------
_store: Optional[ConnectionStore] = None
_orchestrator: Optional[QueryOrchestrator] = None
_reports: Optional[FinancialReportService] = None
_fetcher: Optional[AiohttpFetcher] = None
_suggester: Optional[NameSuggester] = None
_redis: Optional[aioredis.Redis] = None


def _init_tracing() -> None:
    """
    Initialize OpenTelemetry tracing.

    - OTEL_EXPORTER_OTLP_ENDPOINT set -> OTLP HTTP exporter
    - Otherwise tracing stays on the no-op provider
    """
    otlp_endpoint = os.environ.get("OTEL_EXPORTER_OTLP_ENDPOINT", "")
    if not otlp_endpoint:
        return
    try:
        from opentelemetry import trace
        from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor

        provider = TracerProvider(resource=Resource.create({
            "service.name": "apiexplorer-gateway",
            "service.version": "1.0.0",
        }))
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint)))
        trace.set_tracer_provider(provider)
        logger.info("OpenTelemetry: OTLP exporter -> %s", otlp_endpoint)
    except Exception as exc:
        logger.warning("OpenTelemetry init failed (non-fatal): %s", exc)


async def _build_name_cache():
    """Redis-backed name cache when REDIS_URL is reachable, in-memory otherwise."""
    global _redis
    redis_url = os.environ.get("REDIS_URL", "")
    if not redis_url:
        return FriendlyNameCache()
    try:
        _redis = aioredis.from_url(redis_url, decode_responses=False)
        await _redis.ping()
        logger.info("Redis connected: %s", redis_url)
        return RedisFriendlyNameCache(_redis)
    except Exception as exc:
        logger.warning("Redis unavailable (%s) - using in-memory name cache", exc)
        _redis = None
        return FriendlyNameCache()


def _build_suggester() -> NameSuggester:
    endpoint = os.environ.get("NAME_SUGGESTER_URL", "")
    if endpoint:
        logger.info("Name suggestions: %s", endpoint)
        return HttpNameSuggester(endpoint, token=os.environ.get("NAME_SUGGESTER_TOKEN", ""))
    logger.info("Name suggestions: heuristic (set NAME_SUGGESTER_URL for a remote service)")
    return HeuristicNameSuggester()


# ---------------------------------------------------------------------------
# App lifespan
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    global _store, _orchestrator, _reports, _fetcher, _suggester

    _init_tracing()

    # 1. Connections
    _store = ConnectionStore()
    connections_file = os.environ.get("CONNECTIONS_FILE", "")
    if connections_file:
        try:
            _store.load_yaml(connections_file)
        except FileNotFoundError:
            logger.warning("Connections file not found: %s - starting empty", connections_file)

    # 2. Collaborators
    timeout = os.environ.get("HTTP_TIMEOUT_S", "")
    _fetcher = AiohttpFetcher(timeout_s=float(timeout) if timeout else None)
    _suggester = _build_suggester()
    cache = await _build_name_cache()

    # 3. Orchestrator + reports
    _orchestrator = QueryOrchestrator(_fetcher, FriendlyNameResolver(_suggester, cache))
    _reports = FinancialReportService(_orchestrator)

    logger.info("API explorer gateway started. Connections: %d", _store.count())

    yield

    await _fetcher.close()
    await _suggester.close()
    if _redis:
        await _redis.aclose()
    logger.info("API explorer gateway shut down.")


app = FastAPI(title="API Explorer Gateway", version="1.0.0", lifespan=lifespan)


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------

class QueryBody(BaseModel):
    connection_id: Optional[str] = None
    method: str = "GET"
    path: str = ""
    params: List[KeyValue] = Field(default_factory=list)
    headers: List[KeyValue] = Field(default_factory=list)
    body: Optional[str] = None


class ExportColumn(BaseModel):
    key: str
    name: str


class ExportBody(BaseModel):
    data: List[Dict[str, Any]]
    columns: List[ExportColumn]
    format: str


class ActiveBody(BaseModel):
    connection_id: Optional[str] = None


# ---------------------------------------------------------------------------
# Connections
# ---------------------------------------------------------------------------

@app.get("/v1/connections")
async def list_connections():
    return [c.model_dump(mode="json") for c in _store.list()]


@app.post("/v1/connections", status_code=201)
async def add_connection(new: NewConnection):
    return _store.add(new).model_dump(mode="json")


@app.get("/v1/connections/active")
async def get_active_connection():
    active = _store.active
    return {"connection_id": active.id if active else None}


@app.put("/v1/connections/active")
async def set_active_connection(body: ActiveBody):
    try:
        _store.set_active(body.connection_id)
    except ConnectionNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return {"connection_id": body.connection_id}


@app.put("/v1/connections/{connection_id}")
async def replace_connection(connection_id: str, new: NewConnection):
    try:
        return _store.replace(connection_id, new).model_dump(mode="json")
    except ConnectionNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))


@app.delete("/v1/connections/{connection_id}", status_code=204)
async def delete_connection(connection_id: str):
    try:
        _store.delete(connection_id)
    except ConnectionNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Query + export
# ---------------------------------------------------------------------------

@app.post("/v1/query")
async def execute_query(body: QueryBody):
    """
    Run one explorer query. Always 200: failures are reported in `error`,
    in which case no data or columns are returned.
    """
    connection = None
    if body.connection_id:
        connection = _store.get(body.connection_id)
        if connection is None:
            QUERY_COUNT.labels(outcome="unknown_connection").inc()
            return ApiResponseEnvelope.failure("Data source not found.").model_dump()

    start_time = time.time()
    envelope = await _orchestrator.execute(
        connection, body.model_dump(exclude={"connection_id"})
    )
    QUERY_LATENCY.observe(time.time() - start_time)

    result = envelope.model_dump()
    if envelope.error is not None:
        QUERY_COUNT.labels(outcome="error").inc()
        return result

    classification = classify(envelope.data)
    if isinstance(classification, Discovery):
        result["routes"] = [
            {"path": r.path, "methods": r.methods} for r in classification.routes
        ]
    else:
        result["columns"] = ColumnModel.derive_from_rows(
            row_sequence(classification), envelope.suggested_names
        ).to_list()
    result["kind"] = classification.kind
    QUERY_COUNT.labels(outcome="ok").inc()
    return result


@app.post("/v1/export")
async def export_data(body: ExportBody):
    columns = [(c.key, c.name) for c in body.columns]
    fmt = body.format.lower()
    try:
        result = export(body.data, columns, fmt)
    except ExportNotImplementedError as exc:
        EXPORT_COUNT.labels(format=fmt, outcome="not_implemented").inc()
        raise HTTPException(status_code=501, detail=str(exc))
    except ExportError as exc:
        EXPORT_COUNT.labels(format=fmt, outcome="error").inc()
        raise HTTPException(status_code=400, detail=str(exc))

    EXPORT_COUNT.labels(format=fmt, outcome="ok").inc()
    return {"content": result.content, "mime_type": result.mime_type, "file_name": result.file_name}


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------

@app.get("/v1/reports/financial")
async def financial_report(
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    status: Optional[str] = None,
    connection_id: Optional[str] = None,
):
    if not (start_date and end_date and status and connection_id):
        return JSONResponse(
            status_code=400,
            content={"error": "Missing parameters: start_date, end_date, status and connection_id are required."},
        )

    connection = _store.get(connection_id)
    if connection is None:
        return JSONResponse(status_code=404, content={"error": "Data source not found."})

    try:
        params = FinancialReportInput(start_date=start_date, end_date=end_date, status=status)
        report = await _reports.generate(connection, params)
    except ValidationError as exc:
        return JSONResponse(status_code=400, content={"error": str(exc)})
    except ReportUnavailableError as exc:
        return JSONResponse(status_code=400, content={"error": str(exc)})
    except ReportFetchError as exc:
        return JSONResponse(status_code=502, content={"error": str(exc)})

    return {
        "gross_revenue": report.gross_revenue,
        "total_orders": report.total_orders,
        "average_ticket": report.average_ticket,
        "top_selling_products": [
            {
                "product_id": p.product_id,
                "name": p.name,
                "quantity": p.quantity,
                "total_revenue": p.total_revenue,
            }
            for p in report.top_selling_products
        ],
    }


# ---------------------------------------------------------------------------
# Health + metrics
# ---------------------------------------------------------------------------

@app.get("/health")
async def health():
    """Liveness/readiness probe."""
    checks: Dict[str, str] = {}

    if _redis:
        try:
            await _redis.ping()
            checks["redis"] = "ok"
        except Exception as exc:
            checks["redis"] = f"error: {exc}"
    else:
        checks["redis"] = "disabled"

    checks["connections"] = str(_store.count()) if _store else "0"

    all_ok = all(v in ("ok", "disabled") or v.isdigit() for v in checks.values())
    return JSONResponse(
        status_code=200 if all_ok else 503,
        content={"status": "ok" if all_ok else "degraded", "checks": checks},
    )


@app.get("/metrics")
async def metrics():
    """Prometheus scrape endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8002)
