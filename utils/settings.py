from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Dict, Optional

from utils.env_loader import load_environments

DEFAULT_TENANT = "default_tenant"

_ENGINE_DEFAULTS: Dict[str, Dict[str, str]] = {
    "mongodb": {"scheme": "mongodb", "user": "admin", "password": "rootpassword", "host": "localhost", "port": "27018"},
    "postgres": {"scheme": "postgresql", "user": "postgres", "password": "postgres", "host": "localhost", "port": "5432"},
    "mysql": {"scheme": "mysql", "user": "root", "password": "root", "host": "localhost", "port": "3306"},
}

_ENV_PREFIX = {"mongodb": "MONGO", "postgres": "POSTGRES", "mysql": "MYSQL"}


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes"}


def _optional(name: str) -> Optional[str]:
    value = (os.getenv(name) or "").strip()
    return value or None


@dataclass(frozen=True)
class GatewaySettings:
    tenant_policy: str
    default_engine: str
    unmapped_tenant_engine: Optional[str]
    allow_default_tenant: bool
    tenant_registry_file: str
    sqlite_data_dir: str
    adapter_timeout_ms: int
    connect_retries: int
    connect_backoff_ms: int
    max_page_size: int

    def base_uri(self, engine: str) -> Optional[str]:
        """Server URI for a network engine, without a trailing database name.

        ``{PREFIX}_URI`` wins; otherwise the URI is composed from
        ``{PREFIX}_USER/_PASSWORD/_HOST/_PORT`` and the engine defaults.
        """
        prefix = _ENV_PREFIX.get(engine)
        if prefix is None:
            return None
        explicit = _optional(f"{prefix}_URI")
        if explicit:
            return explicit.rstrip("/")
        defaults = _ENGINE_DEFAULTS[engine]
        user = os.getenv(f"{prefix}_USER", defaults["user"])
        password = os.getenv(f"{prefix}_PASSWORD", defaults["password"])
        host = os.getenv(f"{prefix}_HOST", defaults["host"])
        port = os.getenv(f"{prefix}_PORT", defaults["port"])
        return f"{defaults['scheme']}://{user}:{password}@{host}:{port}"


def load_settings() -> GatewaySettings:
    load_environments()
    return GatewaySettings(
        tenant_policy=os.getenv("TENANT_POLICY", "static").strip().lower(),
        default_engine=os.getenv("DEFAULT_ENGINE", "mongodb").strip().lower(),
        unmapped_tenant_engine=(_optional("UNMAPPED_TENANT_ENGINE") or "").lower() or None,
        allow_default_tenant=_flag("ALLOW_DEFAULT_TENANT", "1"),
        tenant_registry_file=os.getenv("TENANT_REGISTRY_FILE", "metadata/tenant_registry.json"),
        sqlite_data_dir=os.getenv("SQLITE_DATA_DIR", "data/tenants"),
        adapter_timeout_ms=int(os.getenv("ADAPTER_TIMEOUT_MS", "5000")),
        connect_retries=max(1, int(os.getenv("CONNECT_RETRIES", "2"))),
        connect_backoff_ms=int(os.getenv("CONNECT_BACKOFF_MS", "100")),
        max_page_size=int(os.getenv("MAX_PAGE_SIZE", "500")),
    )
