from __future__ import annotations

from typing import Any, Dict, List, Set, Type
from urllib.parse import unquote, urlsplit

import pymysql
import pymysql.constants.CLIENT
from pymysql.constants import FIELD_TYPE

from adapters.base import AdapterConnectionError, AdapterError, InvalidEntityError, InvalidRecordError
from adapters.sql_base import SQLAdapter, build_schema_payload


def _db_params(connection_string: str) -> Dict[str, Any]:
    parts = urlsplit(connection_string)
    if parts.scheme not in {"mysql", "mysql+pymysql"}:
        raise ValueError(f"Not a MySQL URI: {connection_string!r}")
    database = parts.path.lstrip("/")
    if not parts.hostname:
        raise ValueError("MySQL URI must include a host")
    if not database:
        raise ValueError("MySQL URI must include a database name")
    return {
        "host": parts.hostname,
        "port": parts.port or 3306,
        "user": unquote(parts.username or ""),
        "password": unquote(parts.password or ""),
        "database": database,
    }


# Client (2xxx) errors plus server shutdown and killed-connection codes.
_CONNECTION_ERRNOS = {1053, 1927}
_NO_SUCH_TABLE = 1146
# bad field, null/default/value violations, duplicate key, foreign keys
_RECORD_ERRNOS = {1048, 1054, 1062, 1264, 1364, 1366, 1406, 1451, 1452}


def _errno(exc: BaseException) -> int:
    args = getattr(exc, "args", ())
    return args[0] if args and isinstance(args[0], int) else 0


class MySQLAdapter(SQLAdapter):
    engine = "mysql"
    connection_errors = (pymysql.err.InterfaceError,)
    driver_errors = (pymysql.err.MySQLError,)

    def _open(self, connection_string: str):
        timeout_s = max(1, self.timeout_ms // 1000)
        return pymysql.connect(
            **_db_params(connection_string),
            autocommit=True,
            connect_timeout=timeout_s,
            read_timeout=timeout_s,
            write_timeout=timeout_s,
            # rowcount reports matched rows, so an unchanged update is not a miss
            client_flag=pymysql.constants.CLIENT.FOUND_ROWS,
        )

    def _error_class(self, exc: BaseException) -> Type[AdapterError]:
        errno = _errno(exc)
        if isinstance(exc, pymysql.err.OperationalError) and (2000 <= errno < 3000 or errno in _CONNECTION_ERRNOS):
            return AdapterConnectionError
        if errno == _NO_SUCH_TABLE:
            return InvalidEntityError
        if errno in _RECORD_ERRNOS or isinstance(exc, (pymysql.err.IntegrityError, pymysql.err.DataError)):
            return InvalidRecordError
        return super()._error_class(exc)

    def _text_json_columns(self, entity: str, description) -> Set[str]:
        return {desc[0] for desc in description if len(desc) > 1 and desc[1] == FIELD_TYPE.JSON}

    def _describe_columns(self, cur, entity: str) -> Dict[str, str]:
        cur.execute(
            """
            SELECT column_name, data_type
            FROM information_schema.columns
            WHERE table_schema = DATABASE()
              AND table_name = %s
            """,
            (entity,),
        )
        return {row[0]: row[1] for row in cur.fetchall()}

    def _describe_schema(self, cur) -> Dict[str, Any]:
        cur.execute("SELECT DATABASE()")
        target_schema = cur.fetchone()[0]
        cur.execute(
            """
            SELECT table_name, table_rows
            FROM information_schema.tables
            WHERE table_schema = %s
              AND table_type = 'BASE TABLE'
            ORDER BY table_name
            """,
            (target_schema,),
        )
        table_rows = cur.fetchall()
        table_names = [row[0] for row in table_rows]
        row_counts = {row[0]: int(row[1] or 0) for row in table_rows}

        cur.execute(
            """
            SELECT
                table_name,
                column_name,
                data_type,
                is_nullable,
                ordinal_position,
                column_key
            FROM information_schema.columns
            WHERE table_schema = %s
            ORDER BY table_name, ordinal_position
            """,
            (target_schema,),
        )
        columns_by_table: Dict[str, List[Dict[str, Any]]] = {}
        for table_name, column_name, data_type, is_nullable, ordinal, column_key in cur.fetchall():
            columns_by_table.setdefault(table_name, []).append(
                {
                    "column_name": column_name,
                    "data_type": data_type,
                    "udt_name": data_type,
                    "is_nullable": str(is_nullable).upper() == "YES",
                    "is_primary_key": column_key == "PRI",
                    "ordinal_position": int(ordinal),
                }
            )

        cur.execute(
            """
            SELECT
                table_name AS from_table,
                column_name AS from_column,
                referenced_table_name AS to_table,
                referenced_column_name AS to_column
            FROM information_schema.key_column_usage
            WHERE table_schema = %s
              AND referenced_table_name IS NOT NULL
            """,
            (target_schema,),
        )
        relationships = [
            {"from_table": row[0], "from_column": row[1], "to_table": row[2], "to_column": row[3]}
            for row in cur.fetchall()
        ]

        return build_schema_payload("mysql", target_schema, table_names, columns_by_table, relationships, row_counts)
