from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Any, Dict, List, Set, Type

from adapters.base import AdapterError, InvalidEntityError, InvalidRecordError
from adapters.sql_base import SQLAdapter, build_schema_payload


def _sqlite_type_to_generic(data_type: str) -> str:
    lowered = (data_type or "").lower()
    if "json" in lowered:
        return "json"
    if "int" in lowered:
        return "integer"
    if any(tok in lowered for tok in ("real", "floa", "doub", "dec", "num")):
        return "numeric"
    if any(tok in lowered for tok in ("date", "time")):
        return "timestamp without time zone"
    return "text"


def _db_path(connection_string: str) -> str:
    raw = connection_string
    if raw.startswith("sqlite:///"):
        raw = raw[len("sqlite:///"):]
    if not raw:
        raise ValueError("SQLite connection string must name a database file")
    return raw


class SQLiteAdapter(SQLAdapter):
    engine = "sqlite"
    connection_errors = (sqlite3.ProgrammingError,)
    driver_errors = (sqlite3.Error,)

    def _open(self, connection_string: str) -> sqlite3.Connection:
        db_path = _db_path(connection_string)
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        return sqlite3.connect(
            db_path,
            timeout=self.timeout_ms / 1000.0,
            isolation_level=None,
            check_same_thread=False,
        )

    def _error_class(self, exc: BaseException) -> Type[AdapterError]:
        message = str(exc).lower()
        if isinstance(exc, sqlite3.OperationalError):
            if message.startswith("no such table"):
                return InvalidEntityError
            if message.startswith("no such column") or "has no column named" in message:
                return InvalidRecordError
        if isinstance(exc, sqlite3.IntegrityError):
            return InvalidRecordError
        return super()._error_class(exc)

    def _text_json_columns(self, entity: str, description) -> Set[str]:
        # sqlite3 reports no column types on results; use the declared ones
        return set(self.json_columns(entity))

    def _describe_columns(self, cur, entity: str) -> Dict[str, str]:
        cur.execute(f"PRAGMA table_info({self.dialect.quote(entity, what='entity')})")
        return {col[1]: str(col[2] or "") for col in cur.fetchall()}

    def _describe_schema(self, cur) -> Dict[str, Any]:
        cur.execute(
            """
            SELECT name
            FROM sqlite_master
            WHERE type = 'table'
              AND name NOT LIKE 'sqlite_%'
            ORDER BY name
            """
        )
        table_names = [row[0] for row in cur.fetchall()]

        columns_by_table: Dict[str, List[Dict[str, Any]]] = {}
        relationships: List[Dict[str, Any]] = []
        row_counts: Dict[str, int] = {}
        for table_name in table_names:
            cur.execute(f'PRAGMA table_info("{table_name}")')
            columns_by_table[table_name] = [
                {
                    "column_name": col[1],
                    "data_type": _sqlite_type_to_generic(str(col[2] or "")),
                    "udt_name": str(col[2] or ""),
                    "is_nullable": col[3] == 0,
                    "is_primary_key": col[5] == 1,
                    "ordinal_position": int(col[0]) + 1,
                }
                for col in cur.fetchall()
            ]

            cur.execute(f'SELECT COUNT(*) FROM "{table_name}"')
            row_counts[table_name] = int(cur.fetchone()[0])

            cur.execute(f'PRAGMA foreign_key_list("{table_name}")')
            for fk in cur.fetchall():
                relationships.append(
                    {
                        "from_table": table_name,
                        "from_column": fk[3],
                        "to_table": fk[2],
                        "to_column": fk[4],
                    }
                )

        return build_schema_payload("sqlite", "main", table_names, columns_by_table, relationships, row_counts)
