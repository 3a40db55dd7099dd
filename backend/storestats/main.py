import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from starlette.middleware.gzip import GZipMiddleware

from storestats.api.routes import access_stats, health
from storestats.core.cache import StatsCache
from storestats.core.config import get_settings
from storestats.core.database import Base, engine
from storestats.core.errors import default_code_for_status
from storestats.core.limiter import limiter
from storestats.core.logging_config import setup_logging
from storestats.middleware.access_logger import access_logger_middleware
from storestats.services.access_stats_service import stats_executor
from storestats.models import AccessLog, AccessStat  # noqa: F401 registra los modelos en Base.metadata


def _setup_observability(app: FastAPI, settings) -> None:
    if settings.sentry_dsn:
        try:
            import sentry_sdk
            from sentry_sdk.integrations.fastapi import FastApiIntegration

            sentry_sdk.init(
                dsn=settings.sentry_dsn,
                traces_sample_rate=settings.sentry_traces_sample_rate,
                environment=settings.environment,
                integrations=[FastApiIntegration()],
            )
        except Exception as e:
            logger.warning(f"Sentry initialization failed: {e}")

    if settings.enable_prometheus_metrics:
        try:
            from prometheus_fastapi_instrumentator import Instrumentator

            Instrumentator().instrument(app).expose(app, include_in_schema=False, endpoint="/metrics")
        except Exception as e:
            logger.warning(f"Prometheus instrumentation failed: {e}")


def _run_startup_checks(settings) -> None:
    if settings.is_production and settings.is_default_access_log_salt:
        raise RuntimeError("ACCESS_LOG_SALT inseguro en producción. Configure un valor fuerte en entorno.")


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    setup_logging(settings.environment)
    _run_startup_checks(settings)

    # Crear tablas automáticamente solo en entornos no productivos
    if not settings.is_production:
        Base.metadata.create_all(bind=engine)

    yield
    app.state.stats_cache.clear()
    stats_executor.shutdown(wait=False, cancel_futures=True)


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(
        title="Store Access Stats - API",
        description="Estadísticas de acceso a las páginas de stores con cache TTL y cálculo con timeout",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.limiter = limiter
    app.state.stats_cache = StatsCache()
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    @app.exception_handler(HTTPException)
    async def handle_http_exception(request: Request, exc: HTTPException):
        request_id = getattr(request.state, "request_id", "unknown")
        if isinstance(exc.detail, dict) and "code" in exc.detail and "message" in exc.detail:
            payload = exc.detail
            code = payload.get("code")
            message = payload.get("message")
            details = payload.get("details")
        else:
            code = default_code_for_status(exc.status_code)
            message = str(exc.detail) if exc.detail else "Error"
            details = None
        return JSONResponse(
            status_code=exc.status_code,
            content={"code": code, "message": message, "details": details, "request_id": request_id},
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        request_id = getattr(request.state, "request_id", "unknown")
        return JSONResponse(
            status_code=422,
            content={
                "code": "validation_error",
                "message": "Solicitud inválida",
                "details": {"errors": jsonable_errors(exc)},
                "request_id": request_id,
            },
        )

    @app.exception_handler(Exception)
    async def handle_500(request: Request, exc: Exception):
        logger.exception("Error interno del servidor")
        request_id = getattr(request.state, "request_id", "unknown")
        return JSONResponse(
            status_code=500,
            content={
                "code": "internal_error",
                "message": "Error interno del servidor",
                "details": None,
                "request_id": request_id,
            },
        )

    app.middleware("http")(access_logger_middleware)

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        request_id = str(uuid.uuid4())[:8]
        request.state.request_id = request_id
        start = time.time()
        response = await call_next(request)
        elapsed = time.time() - start
        if elapsed > 0.5 and request.url.path.startswith("/api/"):
            logger.info(f"[{request_id}] {request.method} {request.url.path} {elapsed:.2f}s")
        response.headers["X-Request-ID"] = request_id
        if settings.is_production:
            response.headers["X-Content-Type-Options"] = "nosniff"
            response.headers["X-Frame-Options"] = "DENY"
            response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        return response

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.get_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    _setup_observability(app, settings)

    app.include_router(health.router)
    app.include_router(access_stats.router)

    return app


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    # ctx puede contener excepciones no serializables
    return [{k: v for k, v in err.items() if k != "ctx"} for err in exc.errors()]


app = create_app()
