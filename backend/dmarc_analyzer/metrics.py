"""
Prometheus metrics

HTTP metrics are collected by metrics_middleware for the API. Ingestion
metrics are incremented by the consumer and Celery workers through the
record_* helpers; each process exposes its own registry.
"""
import logging
import time

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest

logger = logging.getLogger(__name__)

metrics_router = APIRouter(tags=["metrics"])

# HTTP

HTTP_REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "API request duration in seconds",
    ["method", "endpoint", "status_code"],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

HTTP_REQUESTS_TOTAL = Counter(
    "http_requests_total",
    "API requests served",
    ["method", "endpoint", "status_code"]
)

HTTP_REQUESTS_IN_PROGRESS = Gauge(
    "http_requests_in_progress",
    "API requests currently being served",
    ["method", "endpoint"]
)

# Ingestion

DMARC_REPORTS_INGESTED = Counter(
    "dmarc_reports_ingested_total",
    "Report emails by terminal ingestion state",
    ["status"]  # done, skipped, failed
)

DMARC_ENTRIES_INGESTED = Counter(
    "dmarc_entries_ingested_total",
    "Report entries written to the database"
)

QUEUE_MESSAGES_PROCESSED = Counter(
    "queue_messages_processed_total",
    "SQS notification messages handled",
    ["outcome"]  # deleted, retained
)

ENRICHMENT_FAILURES = Counter(
    "enrichment_failures_total",
    "SenderBase and reverse DNS lookups that failed for reasons other than not-found",
    ["source"]  # senderbase, reverse_dns
)


@metrics_router.get("/metrics", include_in_schema=False)
async def metrics():
    """Prometheus text exposition of this process's registry"""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


def _route_template(request) -> str:
    """Matched route path (e.g. /api/domains/{domain}/report), else the raw path"""
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


async def metrics_middleware(request, call_next):
    method = request.method
    raw_path = request.url.path

    HTTP_REQUESTS_IN_PROGRESS.labels(method=method, endpoint=raw_path).inc()
    started = time.time()
    status_code = "500"
    try:
        response = await call_next(request)
        status_code = str(response.status_code)
        return response
    finally:
        labels = {"method": method, "endpoint": _route_template(request), "status_code": status_code}
        HTTP_REQUEST_DURATION.labels(**labels).observe(time.time() - started)
        HTTP_REQUESTS_TOTAL.labels(**labels).inc()
        HTTP_REQUESTS_IN_PROGRESS.labels(method=method, endpoint=raw_path).dec()


def record_report_ingested(status: str):
    DMARC_REPORTS_INGESTED.labels(status=status).inc()


def record_entries_ingested(count: int):
    DMARC_ENTRIES_INGESTED.inc(count)


def record_queue_message(outcome: str):
    QUEUE_MESSAGES_PROCESSED.labels(outcome=outcome).inc()


def record_enrichment_failure(source: str):
    ENRICHMENT_FAILURES.labels(source=source).inc()
