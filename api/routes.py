import time
from typing import Any, Callable, Dict, Optional

from fastapi import APIRouter, Body, Depends, Request

from adapters.base import AdapterConnectionError, AdapterError, DatabaseAdapter
from adapters.factory import registered_engines
from adapters.normalizer import coerce_query_value
from api.schemas import DispatchResponse, ErrorResponse, HealthResponse
from tenancy.registry import ConnectionRegistry
from tenancy.resolver import TenantResolver, extract_tenant_id
from utils.logging import get_logger

RESERVED_QUERY_PARAMS = {"limit"}

router = APIRouter()
logger = get_logger(__name__)

_ERROR_RESPONSES: Dict[int, Dict[str, Any]] = {
    code: {"model": ErrorResponse} for code in (400, 404, 500, 501, 503)
}


def get_resolver(request: Request) -> TenantResolver:
    return request.app.state.resolver


def get_registry(request: Request) -> ConnectionRegistry:
    return request.app.state.registry


def get_tenant_id(request: Request, tenant: str) -> str:
    """Tenant identity for the request; auth layers override this dependency."""
    return extract_tenant_id(
        request.headers,
        path_tenant=tenant,
        allow_default=request.app.state.settings.allow_default_tenant,
    )


def _query_filter(request: Request) -> Dict[str, Any]:
    return {
        key: coerce_query_value(value)
        for key, value in request.query_params.items()
        if key not in RESERVED_QUERY_PARAMS
    }


def _dispatch(
    resolver: TenantResolver,
    registry: ConnectionRegistry,
    tenant_id: str,
    entity: Optional[str],
    record_id: Optional[str],
    operation: str,
    call: Callable[[DatabaseAdapter], Any],
) -> DispatchResponse:
    started_at = time.perf_counter()
    outcome = "ok"
    try:
        decision = resolver.resolve(tenant_id)
        with registry.lease(tenant_id, decision) as adapter:
            try:
                data = call(adapter)
            except AdapterConnectionError:
                registry.invalidate(tenant_id, adapter)
                raise
        if data is None or data is False:
            outcome = "not_found"
        return DispatchResponse(success=True, data=data)
    except AdapterError as exc:
        outcome = exc.kind
        raise
    except Exception:
        outcome = "error"
        raise
    finally:
        logger.info(
            "dispatch",
            tenant=tenant_id,
            entity=entity,
            id=record_id,
            operation=operation,
            outcome=outcome,
            latency_ms=round((time.perf_counter() - started_at) * 1000.0, 3),
        )


@router.get("/health", response_model=HealthResponse)
def health(request: Request, registry: ConnectionRegistry = Depends(get_registry)) -> HealthResponse:
    return HealthResponse(
        status="ok",
        live_connections=len(registry),
        engines=registered_engines(),
        tenants=registry.snapshot(),
        version=request.app.version,
    )


@router.get("/api/{tenant}/_schema", response_model=DispatchResponse, responses=_ERROR_RESPONSES)
def introspect_tenant(
    tenant_id: str = Depends(get_tenant_id),
    resolver: TenantResolver = Depends(get_resolver),
    registry: ConnectionRegistry = Depends(get_registry),
) -> DispatchResponse:
    return _dispatch(resolver, registry, tenant_id, None, None, "introspect", lambda db: db.introspect())


@router.get("/api/{tenant}/{entity}", response_model=DispatchResponse, responses=_ERROR_RESPONSES)
def find_many(
    entity: str,
    request: Request,
    limit: Optional[int] = None,
    tenant_id: str = Depends(get_tenant_id),
    resolver: TenantResolver = Depends(get_resolver),
    registry: ConnectionRegistry = Depends(get_registry),
) -> DispatchResponse:
    max_page = request.app.state.settings.max_page_size
    page = max_page if not limit or limit <= 0 else min(limit, max_page)
    filter = _query_filter(request)
    return _dispatch(
        resolver, registry, tenant_id, entity, None, "find_many",
        lambda db: db.find_many(entity, filter, limit=page),
    )


@router.get("/api/{tenant}/{entity}/{id}", response_model=DispatchResponse, responses=_ERROR_RESPONSES)
def find_one(
    entity: str,
    id: str,
    request: Request,
    tenant_id: str = Depends(get_tenant_id),
    resolver: TenantResolver = Depends(get_resolver),
    registry: ConnectionRegistry = Depends(get_registry),
) -> DispatchResponse:
    filter = {**_query_filter(request), "id": id}
    return _dispatch(resolver, registry, tenant_id, entity, id, "find_one", lambda db: db.find_one(entity, filter))


@router.post("/api/{tenant}/{entity}", response_model=DispatchResponse, responses=_ERROR_RESPONSES)
def create(
    entity: str,
    record: Dict[str, Any] = Body(...),
    tenant_id: str = Depends(get_tenant_id),
    resolver: TenantResolver = Depends(get_resolver),
    registry: ConnectionRegistry = Depends(get_registry),
) -> DispatchResponse:
    return _dispatch(resolver, registry, tenant_id, entity, None, "create", lambda db: db.create(entity, record))


@router.patch("/api/{tenant}/{entity}/{id}", response_model=DispatchResponse, responses=_ERROR_RESPONSES)
def update(
    entity: str,
    id: str,
    partial: Dict[str, Any] = Body(...),
    tenant_id: str = Depends(get_tenant_id),
    resolver: TenantResolver = Depends(get_resolver),
    registry: ConnectionRegistry = Depends(get_registry),
) -> DispatchResponse:
    return _dispatch(
        resolver, registry, tenant_id, entity, id, "update", lambda db: db.update(entity, id, partial)
    )


@router.delete("/api/{tenant}/{entity}/{id}", response_model=DispatchResponse, responses=_ERROR_RESPONSES)
def delete(
    entity: str,
    id: str,
    tenant_id: str = Depends(get_tenant_id),
    resolver: TenantResolver = Depends(get_resolver),
    registry: ConnectionRegistry = Depends(get_registry),
) -> DispatchResponse:
    return _dispatch(resolver, registry, tenant_id, entity, id, "delete", lambda db: db.delete(entity, id))
