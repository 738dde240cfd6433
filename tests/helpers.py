"""Shared test doubles: a dict-backed adapter and settings factory."""

import threading
import time
from typing import Any, Dict, List, Optional

from adapters.base import AdapterConnectionError, DatabaseAdapter
from adapters.normalizer import normalize_filter, parse_relational_id, to_generic_record
from utils.settings import GatewaySettings


class InMemoryAdapter(DatabaseAdapter):
    """Dict-backed adapter that counts connects across all instances."""

    engine = "memory"
    connect_calls = 0
    connect_delay_s = 0.0
    fail_connects = 0
    _counter_lock = threading.Lock()

    def __init__(self, source_config: Optional[Dict[str, Any]] = None):
        super().__init__(source_config=source_config)
        self.tables: Optional[Dict[str, Dict[int, Dict[str, Any]]]] = None
        self._next_id = 0
        self.closed = False

    @property
    def is_connected(self) -> bool:
        return self.tables is not None

    def connect(self, connection_string: str) -> None:
        with InMemoryAdapter._counter_lock:
            InMemoryAdapter.connect_calls += 1
            should_fail = InMemoryAdapter.fail_connects > 0
            if should_fail:
                InMemoryAdapter.fail_connects -= 1
        time.sleep(InMemoryAdapter.connect_delay_s)
        if should_fail:
            raise AdapterConnectionError("memory store unavailable")
        self.tables = {}
        self.connection_string = connection_string

    def close(self) -> None:
        self.tables = None
        self.closed = True

    def _table(self, entity: str) -> Dict[int, Dict[str, Any]]:
        self.ensure_connected()
        return self.tables.setdefault(entity, {})

    def _matches(self, row: Dict[str, Any], query: Dict[str, Any]) -> bool:
        return all(row.get(k) == v for k, v in query.items())

    def find_one(self, entity: str, filter: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        rows = self.find_many(entity, filter, limit=1)
        return rows[0] if rows else None

    def find_many(self, entity: str, filter: Dict[str, Any], limit: Optional[int] = None) -> List[Dict[str, Any]]:
        query = normalize_filter(filter, "pk", parse_relational_id)
        rows = [dict(row) for row in self._table(entity).values() if self._matches(row, query)]
        return [to_generic_record(row, "pk") for row in rows[: limit or None]]

    def create(self, entity: str, record: Dict[str, Any]) -> Dict[str, Any]:
        table = self._table(entity)
        self._next_id += 1
        row = {"pk": self._next_id, **{k: v for k, v in record.items() if k != "id"}}
        table[self._next_id] = row
        return to_generic_record(dict(row), "pk")

    def update(self, entity: str, id: str, partial: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        row = self._table(entity).get(parse_relational_id(id))
        if row is None:
            return None
        row.update({k: v for k, v in partial.items() if k != "id"})
        return self.find_one(entity, {"id": id})

    def delete(self, entity: str, id: str) -> bool:
        return self._table(entity).pop(parse_relational_id(id), None) is not None

    def introspect(self) -> Dict[str, Any]:
        self.ensure_connected()
        return {"source": {"db_engine": "memory"}, "tables": sorted(self.tables)}


def make_settings(**overrides: Any) -> GatewaySettings:
    values = dict(
        tenant_policy="static",
        default_engine="sqlite",
        unmapped_tenant_engine=None,
        allow_default_tenant=True,
        tenant_registry_file="metadata/tenant_registry.json",
        sqlite_data_dir="data/tenants",
        adapter_timeout_ms=1000,
        connect_retries=1,
        connect_backoff_ms=0,
        max_page_size=50,
    )
    values.update(overrides)
    return GatewaySettings(**values)
