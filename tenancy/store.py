"""File-backed system of record mapping tenants to storage engines.

Each entry: ``{"tenant_id", "db_engine", "connection_string"?, "source_config"?,
"created_at", "updated_at"}``. The registry file is a JSON list.
"""

import json
import os
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from utils.env_loader import load_environments

_lock = threading.Lock()


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _registry_file() -> Path:
    load_environments()
    return Path(os.getenv("TENANT_REGISTRY_FILE", "metadata/tenant_registry.json"))


def _read_registry(path: Optional[Path] = None) -> List[Dict[str, Any]]:
    registry_file = path or _registry_file()
    if not registry_file.exists():
        return []
    return json.loads(registry_file.read_text(encoding="utf-8") or "[]")


def _write_registry(items: List[Dict[str, Any]], path: Optional[Path] = None) -> None:
    registry_file = path or _registry_file()
    registry_file.parent.mkdir(parents=True, exist_ok=True)
    tmp_file = registry_file.with_suffix(registry_file.suffix + ".tmp")
    tmp_file.write_text(json.dumps(items, indent=2), encoding="utf-8")
    os.replace(tmp_file, registry_file)


def list_tenant_mappings(path: Optional[Path] = None) -> List[Dict[str, Any]]:
    return _read_registry(path)


def get_tenant_mapping(tenant_id: str, path: Optional[Path] = None) -> Optional[Dict[str, Any]]:
    for item in _read_registry(path):
        if item.get("tenant_id") == tenant_id:
            return item
    return None


def upsert_tenant_mapping(
    tenant_id: str,
    db_engine: str,
    connection_string: Optional[str] = None,
    source_config: Optional[Dict[str, Any]] = None,
    path: Optional[Path] = None,
) -> Dict[str, Any]:
    with _lock:
        items = _read_registry(path)
        existing = next((item for item in items if item.get("tenant_id") == tenant_id), None)
        record = {
            "tenant_id": tenant_id,
            "db_engine": db_engine,
            "connection_string": connection_string,
            "source_config": source_config or {},
            "created_at": existing["created_at"] if existing else _now_iso(),
            "updated_at": _now_iso(),
        }
        items = [item for item in items if item.get("tenant_id") != tenant_id]
        items.append(record)
        _write_registry(items, path)
        return record


def remove_tenant_mapping(tenant_id: str, path: Optional[Path] = None) -> bool:
    with _lock:
        items = _read_registry(path)
        kept = [item for item in items if item.get("tenant_id") != tenant_id]
        if len(kept) == len(items):
            return False
        _write_registry(kept, path)
        return True
