import time
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from hvac_quote.api.routes import admin, health, leads
from hvac_quote.config import Settings, settings
from hvac_quote.errors import (
    LookupUnavailable,
    NotFound,
    PersistenceDegraded,
    PredictionFailed,
    PreconditionFailed,
    QuoteError,
    Unauthorized,
    ValidationFailed,
)
from hvac_quote.logging import configure_logging
from hvac_quote.services.auth import AdminSessions
from hvac_quote.services.lead_store import InMemoryLeadStore, LeadStore, SqlLeadStore
from hvac_quote.services.mock_stubs import MockPredictor, MockPropertyLookup
from hvac_quote.services.orchestrator import LeadOrchestrator
from hvac_quote.services.predictor import ClaudePredictor, Predictor
from hvac_quote.services.property_lookup import PropertyLookup, RentCastLookup

configure_logging()

logger = structlog.get_logger()

_STATUS_BY_ERROR: dict[type[QuoteError], int] = {
    ValidationFailed: 422,
    Unauthorized: 401,
    NotFound: 404,
    PreconditionFailed: 409,
    LookupUnavailable: 502,
    PredictionFailed: 502,
    PersistenceDegraded: 503,
}


def build_orchestrator(cfg: Settings) -> LeadOrchestrator:
    """Wire the store and external clients from settings.

    Mock lookup/predictor are used when mock services are enabled or the
    matching API key is missing, so local runs never need credentials.
    """
    store: LeadStore = (
        SqlLeadStore.from_url(cfg.database_url) if cfg.use_database else InMemoryLeadStore()
    )

    lookup: PropertyLookup
    if cfg.use_mock_services or not cfg.rentcast_api_key:
        lookup = MockPropertyLookup()
    else:
        lookup = RentCastLookup(
            cfg.rentcast_api_key, cfg.rentcast_base_url, cfg.lookup_timeout_seconds
        )

    predictor: Predictor
    if cfg.use_mock_services or not cfg.anthropic_api_key:
        predictor = MockPredictor()
    else:
        predictor = ClaudePredictor(
            cfg.anthropic_api_key, cfg.predictor_model, cfg.predictor_max_tokens
        )

    logger.info(
        "collaborators_configured",
        store=type(store).__name__,
        lookup=type(lookup).__name__,
        predictor=type(predictor).__name__,
    )
    return LeadOrchestrator(store, lookup, predictor, cfg.max_concurrent_predictions)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    app.state.orchestrator = build_orchestrator(settings)
    app.state.sessions = AdminSessions(settings.admin_password, settings.admin_session_ttl_seconds)
    yield
    store = app.state.orchestrator.store
    if isinstance(store, SqlLeadStore):
        await store.aclose()


app = FastAPI(
    title="HVAC Quote API",
    version=health.VERSION,
    docs_url="/docs",
    redoc_url=None,
    lifespan=lifespan,
)


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", request.headers.get("X-Request-ID", ""))


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """Attach a unique request ID to every request for log correlation.

    Sets the ID in structlog context vars (appears in all log entries for the
    request) and returns it in the X-Request-ID response header so the wizard
    can report it when a quote fails. Also emits one http_request access log
    line per request.
    """
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id)
    start = time.perf_counter()
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    logger.info(
        "http_request",
        method=request.method,
        path=request.url.path,
        status=response.status_code,
        duration_ms=round((time.perf_counter() - start) * 1000, 1),
    )
    return response


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """Return ErrorResponse JSON for Pydantic validation errors.

    FastAPI's default 422 returns {"detail": [...]}, which doesn't match
    the single error shape every client parses.
    """
    messages = []
    for err in exc.errors():
        loc = " → ".join(str(part) for part in err["loc"])
        messages.append(f"{loc}: {err['msg']}")
    response = JSONResponse(
        status_code=422,
        content={
            "error": "validation_error",
            "message": "; ".join(messages),
            "retryable": False,
        },
    )
    response.headers["X-Request-ID"] = _request_id(request)
    return response


@app.exception_handler(QuoteError)
async def quote_error_handler(request: Request, exc: QuoteError) -> JSONResponse:
    """Map domain error kinds onto status codes.

    Only the kind's public message goes out; the underlying cause was
    already logged where it was caught.
    """
    status = _STATUS_BY_ERROR.get(type(exc), 500)
    logger.info("request_failed", path=request.url.path, error=exc.code, status=status)
    content = {
        "error": exc.code,
        "message": exc.public_message,
        "retryable": exc.retryable,
    }
    if isinstance(exc, ValidationFailed):
        content["detail"] = str(exc)
    response = JSONResponse(status_code=status, content=content)
    response.headers["X-Request-ID"] = _request_id(request)
    return response


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Return consistent ErrorResponse JSON for unhandled exceptions."""
    logger.error(
        "unhandled_exception",
        path=request.url.path,
        method=request.method,
        error_type=type(exc).__name__,
        exc_info=exc,
    )
    response = JSONResponse(
        status_code=500,
        content={
            "error": "internal_error",
            "message": "An unexpected error occurred",
            "retryable": True,
        },
    )
    response.headers["X-Request-ID"] = _request_id(request)
    return response


app.include_router(health.router)
app.include_router(leads.router, prefix="/api/v1")
app.include_router(admin.router, prefix="/api/v1")
