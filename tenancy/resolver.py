from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from adapters.base import (
    InvalidTenantError,
    MissingTenantError,
    UnknownTenantError,
    UnsupportedEngineError,
)
from adapters.factory import normalize_engine, validate_registered_engines
from tenancy.store import get_tenant_mapping, list_tenant_mappings
from utils.logging import get_logger
from utils.settings import DEFAULT_TENANT, GatewaySettings, load_settings

TENANT_HEADER = "x-tenant-id"

_TENANT_RE = re.compile(r"^[A-Za-z0-9_-]{1,64}$")

logger = get_logger(__name__)


@dataclass(frozen=True)
class RoutingDecision:
    tenant_id: str
    engine_type: str
    connection_string: str
    source_config: Optional[Dict[str, Any]] = None


def validate_tenant_id(tenant_id: str) -> str:
    if not _TENANT_RE.match(tenant_id or ""):
        raise InvalidTenantError(f"Invalid tenant id: {tenant_id!r}")
    return tenant_id


def extract_tenant_id(
    headers: Mapping[str, str],
    path_tenant: Optional[str] = None,
    allow_default: bool = True,
) -> str:
    """Pick the calling tenant: header first, then the path segment.

    Falls back to ``default_tenant`` only when ``allow_default`` is set.
    """
    candidate = (headers.get(TENANT_HEADER) or "").strip() or (path_tenant or "").strip()
    if candidate:
        if path_tenant and candidate != path_tenant:
            logger.warning("tenant_header_overrides_path", tenant=candidate, path_tenant=path_tenant)
        return validate_tenant_id(candidate)
    if not allow_default:
        raise MissingTenantError(f"Request carries no tenant id ({TENANT_HEADER} header or path)")
    return DEFAULT_TENANT


class TenantResolver:
    """Maps a tenant id to the engine and connection string serving it.

    ``static`` sends every tenant to ``DEFAULT_ENGINE``. ``mapped`` consults the
    tenant store and rejects unmapped tenants unless an explicit
    ``UNMAPPED_TENANT_ENGINE`` is configured.
    """

    def __init__(self, settings: Optional[GatewaySettings] = None, registry_path: Optional[Path] = None):
        self.settings = settings or load_settings()
        self.registry_path = registry_path if registry_path is not None else Path(self.settings.tenant_registry_file)

    def validate(self) -> None:
        engines = [self.settings.default_engine, self.settings.unmapped_tenant_engine]
        if self.settings.tenant_policy == "mapped":
            engines.extend(item.get("db_engine") for item in list_tenant_mappings(self.registry_path))
        elif self.settings.tenant_policy != "static":
            raise ValueError(f"Unknown TENANT_POLICY: {self.settings.tenant_policy}")
        validate_registered_engines(engines)

    def resolve(self, tenant_id: str) -> RoutingDecision:
        validate_tenant_id(tenant_id)
        if self.settings.tenant_policy == "mapped":
            decision = self._resolve_mapped(tenant_id)
        else:
            decision = self._decision(tenant_id, self.settings.default_engine)
        logger.debug("tenant_resolved", tenant=tenant_id, engine=decision.engine_type)
        return decision

    def _resolve_mapped(self, tenant_id: str) -> RoutingDecision:
        mapping = get_tenant_mapping(tenant_id, self.registry_path)
        if mapping is None:
            if not self.settings.unmapped_tenant_engine:
                raise UnknownTenantError(f"No storage engine mapped for tenant: {tenant_id}")
            return self._decision(tenant_id, self.settings.unmapped_tenant_engine)
        return self._decision(
            tenant_id,
            mapping["db_engine"],
            connection_string=mapping.get("connection_string"),
            source_config=mapping.get("source_config"),
        )

    def _decision(
        self,
        tenant_id: str,
        db_engine: str,
        connection_string: Optional[str] = None,
        source_config: Optional[Dict[str, Any]] = None,
    ) -> RoutingDecision:
        engine = normalize_engine(db_engine)
        validate_registered_engines([engine])
        config = {"timeout_ms": self.settings.adapter_timeout_ms, **(source_config or {})}
        return RoutingDecision(
            tenant_id=tenant_id,
            engine_type=engine,
            connection_string=connection_string or self.connection_string_for(engine, tenant_id),
            source_config=config,
        )

    def connection_string_for(self, engine: str, tenant_id: str) -> str:
        if engine == "sqlite":
            return str(Path(self.settings.sqlite_data_dir) / f"{tenant_id}.db")
        base_uri = self.settings.base_uri(engine)
        if base_uri is None:
            raise UnsupportedEngineError(f"No connection string configured for engine {engine} (tenant {tenant_id})")
        if engine == "mongodb":
            return f"{base_uri}/{tenant_id}?authSource=admin"
        return f"{base_uri}/{tenant_id}"
