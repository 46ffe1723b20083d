import logging
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.adapters.sqlite.migrator import SQLiteMigrator
from src.api.deps import close_geo, get_settings
from src.components.analytics import (
    AggregationFailedError,
    AnalyticsInputError,
    IngestRejectedError,
)
from src.rules.loader import load_rules

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    settings = get_settings()

    # Load rules and validate on startup (fail-fast)
    try:
        load_rules(settings.rules_path)
        logger.info("Rules loaded from %s", settings.rules_path)
    except (FileNotFoundError, ValueError) as e:
        logger.critical("Rules load failed: %s", e)
        sys.exit(1)

    settings.data_dir.mkdir(parents=True, exist_ok=True)
    applied = SQLiteMigrator(settings.db_path, str(settings.migrations_dir)).run_migrations()
    if applied:
        logger.info("Applied migrations: %s", ", ".join(applied))

    yield

    close_geo()


app = FastAPI(
    title="View Analytics API",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)


# --- Error handlers ---


def _validation_body(errors: list[dict[str, Any]]) -> dict[str, Any]:
    return {"success": False, "message": "Validation error", "errors": errors}


@app.exception_handler(AnalyticsInputError)
async def analytics_input_error_handler(request: Request, exc: AnalyticsInputError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=_validation_body([e.to_dict() for e in exc.errors]),
    )


@app.exception_handler(IngestRejectedError)
async def ingest_rejected_handler(request: Request, exc: IngestRejectedError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": exc.message},
    )


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = [
        {
            "code": "invalid_request",
            "message": err.get("msg", "Invalid value"),
            "field": ".".join(str(p) for p in err.get("loc", ())[1:]) or None,
        }
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=jsonable_encoder(_validation_body(errors)),
    )


@app.exception_handler(AggregationFailedError)
async def aggregation_failed_handler(
    request: Request, exc: AggregationFailedError
) -> JSONResponse:
    logger.error("Analytics query failed for every section: %s", ", ".join(exc.sections))
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "success": False,
            "message": "Analytics temporarily unavailable",
            "failedSections": exc.sections,
        },
    )


# --- Routers ---
from src.api.routes import analytics, analytics_ingest  # noqa: E402

app.include_router(analytics_ingest.router, prefix="/api/analytics", tags=["Analytics Ingest"])
app.include_router(analytics.router, prefix="/api/analytics", tags=["Analytics"])


# CORS (tracking is called from browsers on other origins)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)


@app.get("/health")
def health_check() -> dict[str, Any]:
    """Health check endpoint."""
    return {"status": "ok", "service": "analytics"}
