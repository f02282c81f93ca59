"""
Query API

Run with: uvicorn dmarc_analyzer.main:app
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from dmarc_analyzer.api.routes import router as api_router
from dmarc_analyzer.config import get_settings
from dmarc_analyzer.database import check_db_connection, init_db
from dmarc_analyzer.error_handlers import register_error_handlers
from dmarc_analyzer.logging_config import log_requests_middleware, setup_logging
from dmarc_analyzer.metrics import metrics_middleware, metrics_router
from dmarc_analyzer.schemas import HealthCheckResponse

settings = get_settings()

setup_logging(
    log_level=settings.log_level,
    log_dir=settings.log_dir or None,
    app_name="dmarc-api",
    enable_json=settings.log_json
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    logger.info(f"{settings.app_name} API ready")
    yield
    logger.info(f"{settings.app_name} API stopped")


app = FastAPI(
    title=settings.app_name,
    description="Per-domain summaries and charts over ingested DMARC aggregate reports",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url=None,
)

# Read-only API: only GET is allowed cross-origin
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list or (["*"] if settings.debug else []),
    allow_methods=["GET"],
    allow_headers=["*"],
)

register_error_handlers(app)

if settings.enable_request_logging:
    app.middleware("http")(log_requests_middleware)
app.middleware("http")(metrics_middleware)

app.include_router(api_router)
app.include_router(metrics_router)


@app.get("/health", response_model=HealthCheckResponse)
async def health_check():
    """Liveness plus a SELECT 1 against the database"""
    db_connected = check_db_connection()
    if not db_connected:
        logger.warning("Health check: database unreachable")

    return HealthCheckResponse(
        status="healthy" if db_connected else "unhealthy",
        service=settings.app_name,
        database="connected" if db_connected else "disconnected"
    )
