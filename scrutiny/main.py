"""FastAPI application entrypoint."""

from __future__ import annotations

import logging
import time

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from scrutiny.config import settings
from scrutiny.routers import candidates, catalog, elections, positions, results, votes
from scrutiny.utils.errors import AppError, InvalidInputError

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


app = FastAPI(
    title=settings.app_name,
    description="Multi-round position elections - Backend API",
    version=settings.app_version,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_timing_middleware(request: Request, call_next):
    """Add per-request processing time and optionally log slow requests."""
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    response.headers["X-Process-Time-Ms"] = f"{elapsed_ms:.1f}"

    threshold_ms = settings.slow_request_log_threshold_ms
    if threshold_ms > 0 and elapsed_ms >= threshold_ms:
        logger.warning(
            "Slow request %s %s %.1fms",
            request.method,
            request.url.path,
            elapsed_ms,
        )

    return response


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Convert domain exceptions into structured API responses.

    Rejected lifecycle transitions and duplicate ballots (409) are logged so
    races between administrators show up in the service log.
    """
    if exc.status_code == 409:
        logger.info(
            "Rejected %s %s: %s (%s)",
            request.method,
            request.url.path,
            exc.code,
            exc.message,
        )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(
    _: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """Normalize FastAPI validation responses."""
    detail = exc.errors()
    message = detail[0].get("msg", "Invalid request") if detail else "Invalid request"
    api_error = InvalidInputError(message)
    return JSONResponse(status_code=api_error.status_code, content=api_error.to_dict())


@app.exception_handler(Exception)
async def unhandled_error_handler(_: Request, exc: Exception) -> JSONResponse:
    """Catch unexpected errors without leaking internals."""
    logger.exception("Unhandled exception", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "code": "INTERNAL_ERROR"},
    )


app.include_router(catalog.router, prefix="/catalog", tags=["catalog"])
app.include_router(elections.router, prefix="/elections", tags=["elections"])
app.include_router(positions.router, prefix="/positions", tags=["positions"])
app.include_router(candidates.router, prefix="/candidates", tags=["candidates"])
app.include_router(votes.router, prefix="/votes", tags=["votes"])
app.include_router(results.router, prefix="/results", tags=["results"])


@app.get("/health")
async def health() -> dict[str, str]:
    """Health check endpoint for deploys and uptime probes."""
    return {"status": "ok", "version": settings.app_version}
