from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from adapters.base import AdapterError
from api.routes import router
from tenancy.registry import ConnectionRegistry
from tenancy.resolver import TenantResolver
from utils.logging import configure_logging, get_logger
from utils.settings import GatewaySettings, load_settings

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "gateway_started",
        policy=app.state.settings.tenant_policy,
        default_engine=app.state.settings.default_engine,
    )
    yield
    app.state.registry.drain_all()


async def adapter_error_handler(request: Request, exc: AdapterError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("request_failed", path=request.url.path, error=exc.kind, message=str(exc))
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.kind, "message": str(exc)},
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()))
        problems.append(f"{location}: {error.get('msg', 'invalid')}")
    return JSONResponse(
        status_code=400,
        content={"success": False, "error": "ValidationError", "message": "; ".join(problems)},
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("request_crashed", path=request.url.path)
    return JSONResponse(status_code=500, content={"success": False, "error": "InternalError", "message": str(exc)})


def create_app(
    settings: Optional[GatewaySettings] = None,
    resolver: Optional[TenantResolver] = None,
    registry: Optional[ConnectionRegistry] = None,
) -> FastAPI:
    configure_logging()
    if settings is None:
        settings = load_settings()
    if resolver is None:
        resolver = TenantResolver(settings=settings)
    resolver.validate()

    app = FastAPI(
        title="Tenant Data Gateway",
        version="0.1.0",
        description="Generic per-tenant CRUD over pluggable storage engines",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.resolver = resolver
    if registry is None:
        registry = ConnectionRegistry(
            connect_retries=settings.connect_retries,
            connect_backoff_ms=settings.connect_backoff_ms,
            connect_wait_s=(settings.adapter_timeout_ms * settings.connect_retries) / 1000.0 + 1.0,
        )
    app.state.registry = registry
    app.add_exception_handler(AdapterError, adapter_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
    app.include_router(router)
    return app


app = create_app()
