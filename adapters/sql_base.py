"""Relational adapter built on a single DB-API connection per tenant.

Subclasses open the driver connection, classify driver errors and describe the
schema; everything else (filter translation, CRUD statements, read-after-write)
lives here.
"""

from __future__ import annotations

import threading
from abc import abstractmethod
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Set, Tuple, Type

from adapters.base import AdapterConnectionError, AdapterError, DatabaseAdapter
from adapters.normalizer import (
    decode_json_fields,
    encode_json_text,
    normalize_filter,
    parse_relational_id,
    to_generic_record,
    to_native_row,
    validate_identifier,
)
from adapters.sql_renderer import SQLDialect, get_sql_dialect

PK_FIELD = "id"


def _has_nested(record: Dict[str, Any]) -> bool:
    return any(isinstance(value, (dict, list)) for value in record.values())


class SQLAdapter(DatabaseAdapter):
    connection_errors: Tuple[Type[BaseException], ...] = ()
    driver_errors: Tuple[Type[BaseException], ...] = ()

    def __init__(self, source_config: Optional[Dict[str, Any]] = None):
        super().__init__(source_config=source_config)
        self.dialect: SQLDialect = get_sql_dialect(self.engine)
        self.timeout_ms = int(self.source_config.get("timeout_ms", 5000))
        self._conn = None
        self._lock = threading.RLock()
        self._json_columns: Dict[str, FrozenSet[str]] = {}

    @abstractmethod
    def _open(self, connection_string: str):
        raise NotImplementedError

    @abstractmethod
    def _describe_schema(self, cur) -> Dict[str, Any]:
        raise NotImplementedError

    @abstractmethod
    def _describe_columns(self, cur, entity: str) -> Dict[str, str]:
        """Column name -> declared type for one table; empty when it does not exist."""
        raise NotImplementedError

    def _error_class(self, exc: BaseException) -> Type[AdapterError]:
        if isinstance(exc, self.connection_errors):
            return AdapterConnectionError
        return AdapterError

    def _encode_json(self, value: Any) -> Any:
        return encode_json_text(value)

    def _text_json_columns(self, entity: str, description) -> Set[str]:
        """Result columns that come back as JSON text and need decoding."""
        return set()

    def _translate(self, exc: BaseException, action: str) -> AdapterError:
        error_cls = self._error_class(exc)
        if issubclass(error_cls, AdapterConnectionError):
            return error_cls(f"{self.engine} connection lost: {exc}")
        return error_cls(f"{self.engine} {action} failed: {exc}")

    @property
    def is_connected(self) -> bool:
        return self._conn is not None

    def connect(self, connection_string: str) -> None:
        try:
            conn = self._open(connection_string)
        except (ValueError,) + self.driver_errors as exc:
            raise AdapterConnectionError(f"{self.engine} connection failed: {exc}") from exc
        self._conn = conn
        self.connection_string = connection_string

    def close(self) -> None:
        with self._lock:
            conn, self._conn = self._conn, None
            self._json_columns.clear()
        if conn is not None:
            conn.close()

    def ping(self) -> bool:
        if not self.is_connected:
            return False
        try:
            self._execute("SELECT 1", [], fetch="one")
            return True
        except AdapterError:
            return False

    def _with_cursor(self, action: str, work: Callable[[Any], Any]):
        with self._lock:
            self.ensure_connected()
            cur = self._conn.cursor()
            try:
                return work(cur)
            except self.connection_errors + self.driver_errors as exc:
                raise self._translate(exc, action) from exc
            finally:
                cur.close()

    def _execute(self, sql: str, params: List[Any], fetch: Optional[str] = None, entity: Optional[str] = None):
        """Run one statement; returns (rows, rowcount, lastrowid)."""

        def _run(cur):
            cur.execute(sql, params)
            rows: List[Dict[str, Any]] = []
            if fetch is not None and cur.description:
                columns = [desc[0] for desc in cur.description]
                raw = cur.fetchall() if fetch == "all" else [r for r in [cur.fetchone()] if r is not None]
                rows = [{columns[i]: row[i] for i in range(len(columns))} for row in raw]
                if rows and entity is not None:
                    json_fields = self._text_json_columns(entity, cur.description)
                    if json_fields:
                        rows = [decode_json_fields(row, json_fields) for row in rows]
            return rows, cur.rowcount, getattr(cur, "lastrowid", None)

        return self._with_cursor("query", _run)

    def json_columns(self, entity: str) -> FrozenSet[str]:
        validate_identifier(entity)
        with self._lock:
            cached = self._json_columns.get(entity)
            if cached is not None:
                return cached
            columns = self._with_cursor("introspection", lambda cur: self._describe_columns(cur, entity))
            found = frozenset(name for name, data_type in columns.items() if "json" in (data_type or "").lower())
            if columns:
                self._json_columns[entity] = found
            return found

    def _row(self, entity: str, record: Dict[str, Any]) -> Dict[str, Any]:
        json_fields = self.json_columns(entity) if _has_nested(record) else frozenset()
        return to_native_row(record, json_fields=json_fields, encode_json=self._encode_json)

    def find_one(self, entity: str, filter: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        query = normalize_filter(filter, PK_FIELD, parse_relational_id)
        sql, params = self.dialect.render_select(entity, query, limit=1)
        rows, _count, _last = self._execute(sql, params, fetch="one", entity=entity)
        return to_generic_record(rows[0], PK_FIELD) if rows else None

    def find_many(
        self, entity: str, filter: Dict[str, Any], limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        query = normalize_filter(filter, PK_FIELD, parse_relational_id)
        sql, params = self.dialect.render_select(entity, query, limit=limit)
        rows, _count, _last = self._execute(sql, params, fetch="all", entity=entity)
        return [to_generic_record(row, PK_FIELD) for row in rows]

    def create(self, entity: str, record: Dict[str, Any]) -> Dict[str, Any]:
        fields = dict(record)
        supplied_id = fields.pop(PK_FIELD, None)
        row = self._row(entity, fields)
        if supplied_id is not None:
            row = {PK_FIELD: parse_relational_id(supplied_id), **row}
        sql, params = self.dialect.render_insert(entity, row)
        rows, _count, lastrowid = self._execute(
            sql, params, fetch="one" if self.dialect.supports_returning else None, entity=entity
        )
        if rows:
            return to_generic_record(rows[0], PK_FIELD)
        # drivers report 0 or None when the table has no generated key
        new_id = row[PK_FIELD] if PK_FIELD in row else (lastrowid or None)
        if new_id is None:
            raise AdapterError(f"{self.engine} did not report an id for the new {entity} record")
        stored = self.find_one(entity, {PK_FIELD: new_id})
        if stored is None:
            raise AdapterError(f"{self.engine} could not read back the new {entity} record {new_id}")
        return stored

    def update(self, entity: str, id: str, partial: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        pk_value = parse_relational_id(id)
        changes = self._row(entity, {k: v for k, v in partial.items() if k != PK_FIELD})
        if changes:
            sql, params = self.dialect.render_update(entity, PK_FIELD, pk_value, changes)
            _rows, rowcount, _last = self._execute(sql, params)
            if rowcount == 0:
                return None
        return self.find_one(entity, {PK_FIELD: id})

    def delete(self, entity: str, id: str) -> bool:
        pk_value = parse_relational_id(id)
        sql, params = self.dialect.render_delete(entity, PK_FIELD, pk_value)
        _rows, rowcount, _last = self._execute(sql, params)
        return rowcount == 1

    def introspect(self) -> Dict[str, Any]:
        with self._lock:
            self._json_columns.clear()
            return self._with_cursor("introspection", self._describe_schema)


def build_schema_payload(
    engine: str,
    schema_name: str,
    table_names: List[str],
    columns_by_table: Dict[str, List[Dict[str, Any]]],
    relationships: List[Dict[str, Any]],
    row_counts: Dict[str, int],
) -> Dict[str, Any]:
    tables = [
        {
            "table_name": t,
            "row_count": row_counts.get(t, 0),
            "columns": columns_by_table.get(t, []),
        }
        for t in table_names
    ]
    return {
        "source": {"db_engine": engine, "schema_name": schema_name},
        "profile": {"table_count": len(tables), "relationship_count": len(relationships)},
        "tables": tables,
        "relationships": relationships,
    }
