import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from exoquote.api.routes import health, products, quotes, sync
from exoquote.config import Settings, settings
from exoquote.errors import DomainError
from exoquote.logging import configure_logging
from exoquote.models.contracts import ErrorResponse
from exoquote.quotes.delivery import build_mailer
from exoquote.quotes.engine import QuoteService
from exoquote.store.base import Store
from exoquote.store.factory import build_store
from exoquote.sync.fetcher import UpstreamError
from exoquote.sync.orchestrator import CatalogSync
from exoquote.sync.scheduler import SyncScheduler

configure_logging()

logger = structlog.get_logger()


def init_state(app: FastAPI, config: Settings, store: Store | None = None) -> None:
    """Wire the store, sync pipeline and quote service onto ``app.state``.

    The scheduler and the manual /sync route share the same CatalogSync, so
    its in-flight guard covers both triggers.
    """
    store = store if store is not None else build_store(config)
    app.state.settings = config
    app.state.store = store
    app.state.catalog_sync = CatalogSync(store, config)
    app.state.scheduler = SyncScheduler(app.state.catalog_sync)
    app.state.quotes = QuoteService(
        store,
        store,
        tax_rate=config.quote_tax_rate,
        default_currency=config.default_currency,
        mailer=build_mailer(config),
        base_url=config.app_base_url,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    if settings.sync_schedule_enabled:
        app.state.scheduler.start()
    logger.info(
        "api_started",
        environment=settings.environment,
        use_database=settings.use_database,
        sync_schedule_enabled=settings.sync_schedule_enabled,
    )
    yield
    await app.state.scheduler.stop()
    await app.state.store.close()
    logger.info("api_stopped")


app = FastAPI(
    title="Exoquote API",
    version="0.1.0",
    docs_url="/docs",
    redoc_url=None,
    lifespan=lifespan,
)
init_state(app, settings)


def _error_response(
    request: Request,
    status: int,
    code: str,
    message: str,
    *,
    retryable: bool = False,
) -> JSONResponse:
    response = JSONResponse(
        status_code=status,
        content=ErrorResponse(error=code, message=message, retryable=retryable).model_dump(),
    )
    response.headers["X-Request-ID"] = getattr(
        request.state, "request_id", request.headers.get("X-Request-ID", "")
    )
    return response


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """Attach a unique request ID to every request for log correlation.

    Sets the ID in structlog context vars (appears in all log entries for the
    request) and returns it in the X-Request-ID response header.
    """
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id)
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    """Not found / forbidden / invalid input / unavailable, each with its own code."""
    logger.info(
        "domain_error",
        path=request.url.path,
        method=request.method,
        error=exc.code,
        status=exc.status_code,
    )
    return _error_response(
        request, exc.status_code, exc.code, exc.message, retryable=exc.retryable
    )


@app.exception_handler(UpstreamError)
async def upstream_error_handler(request: Request, exc: UpstreamError) -> JSONResponse:
    logger.error(
        "upstream_error",
        path=request.url.path,
        method=request.method,
        upstream_status=exc.status,
        attempts=exc.attempts,
    )
    return _error_response(request, 502, "upstream_error", str(exc), retryable=True)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """Return ErrorResponse JSON for pydantic validation errors.

    FastAPI's default 422 returns {"detail": [...]}; every error here shares
    one shape instead.
    """
    messages = []
    for err in exc.errors():
        loc = " → ".join(str(part) for part in err["loc"])
        messages.append(f"{loc}: {err['msg']}")
    return _error_response(request, 422, "validation_error", "; ".join(messages))


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Consistent ErrorResponse JSON for anything unhandled."""
    logger.error(
        "unhandled_exception",
        path=request.url.path,
        method=request.method,
        error_type=type(exc).__name__,
        exc_info=exc,
    )
    return _error_response(
        request, 500, "internal_error", "An unexpected error occurred", retryable=True
    )


app.include_router(health.router)
app.include_router(products.router, prefix="/api/v1")
app.include_router(quotes.router, prefix="/api/v1")
app.include_router(sync.router, prefix="/api/v1")
