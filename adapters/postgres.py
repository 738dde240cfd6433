from __future__ import annotations

from collections import defaultdict
from typing import Any, Dict, List, Type

import psycopg
from psycopg.types.json import Jsonb

from adapters.base import AdapterConnectionError, AdapterError, InvalidEntityError, InvalidRecordError
from adapters.sql_base import SQLAdapter, build_schema_payload

_CONNECTION_SQLSTATES = ("08", "57P")


class PostgresAdapter(SQLAdapter):
    engine = "postgres"
    connection_errors = (psycopg.OperationalError, psycopg.InterfaceError)
    driver_errors = (psycopg.Error,)

    def _open(self, connection_string: str):
        return psycopg.connect(
            connection_string,
            autocommit=True,
            connect_timeout=max(1, self.timeout_ms // 1000),
            options=f"-c statement_timeout={int(self.timeout_ms)}",
        )

    def _error_class(self, exc: BaseException) -> Type[AdapterError]:
        sqlstate = getattr(exc, "sqlstate", None)
        if isinstance(exc, psycopg.InterfaceError):
            return AdapterConnectionError
        if isinstance(exc, psycopg.OperationalError):
            # client-side failures carry no SQLSTATE; classes 08 and 57P mean the session is gone
            if sqlstate is None or sqlstate.startswith(_CONNECTION_SQLSTATES):
                return AdapterConnectionError
            return AdapterError
        if isinstance(exc, psycopg.errors.UndefinedTable):
            return InvalidEntityError
        if isinstance(exc, (psycopg.errors.UndefinedColumn, psycopg.IntegrityError, psycopg.DataError)):
            return InvalidRecordError
        return super()._error_class(exc)

    def _encode_json(self, value: Any) -> Any:
        return Jsonb(value)

    def _describe_columns(self, cur, entity: str) -> Dict[str, str]:
        cur.execute(
            """
            SELECT column_name, data_type
            FROM information_schema.columns
            WHERE table_schema = %s
              AND table_name = %s
            """,
            (self.source_config.get("schema_name") or "public", entity),
        )
        return {row[0]: row[1] for row in cur.fetchall()}

    def _describe_schema(self, cur) -> Dict[str, Any]:
        target_schema = self.source_config.get("schema_name") or "public"
        cur.execute(
            """
            SELECT table_name
            FROM information_schema.tables
            WHERE table_schema = %s
              AND table_type = 'BASE TABLE'
            ORDER BY table_name
            """,
            (target_schema,),
        )
        table_names = [row[0] for row in cur.fetchall()]

        cur.execute(
            """
            SELECT
                table_name,
                column_name,
                data_type,
                udt_name,
                is_nullable,
                ordinal_position
            FROM information_schema.columns
            WHERE table_schema = %s
            ORDER BY table_name, ordinal_position
            """,
            (target_schema,),
        )
        column_rows = cur.fetchall()

        cur.execute(
            """
            SELECT
                tc.table_name,
                kcu.column_name
            FROM information_schema.table_constraints tc
            JOIN information_schema.key_column_usage kcu
              ON tc.constraint_name = kcu.constraint_name
             AND tc.table_schema = kcu.table_schema
            WHERE tc.table_schema = %s
              AND tc.constraint_type = 'PRIMARY KEY'
            """,
            (target_schema,),
        )
        pk_lookup = defaultdict(set)
        for table_name, column_name in cur.fetchall():
            pk_lookup[table_name].add(column_name)

        cur.execute(
            """
            SELECT
                tc.table_name AS source_table,
                kcu.column_name AS source_column,
                ccu.table_name AS target_table,
                ccu.column_name AS target_column
            FROM information_schema.table_constraints tc
            JOIN information_schema.key_column_usage kcu
              ON tc.constraint_name = kcu.constraint_name
             AND tc.table_schema = kcu.table_schema
            JOIN information_schema.constraint_column_usage ccu
              ON ccu.constraint_name = tc.constraint_name
             AND ccu.table_schema = tc.table_schema
            WHERE tc.table_schema = %s
              AND tc.constraint_type = 'FOREIGN KEY'
            """,
            (target_schema,),
        )
        relationships = [
            {"from_table": src_table, "from_column": src_col, "to_table": tgt_table, "to_column": tgt_col}
            for src_table, src_col, tgt_table, tgt_col in cur.fetchall()
        ]

        cur.execute(
            """
            SELECT relname AS table_name, COALESCE(n_live_tup::bigint, 0) AS row_count
            FROM pg_stat_user_tables
            WHERE schemaname = %s
            """,
            (target_schema,),
        )
        row_counts = {table_name: int(row_count) for table_name, row_count in cur.fetchall()}

        columns_by_table: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        for table_name, column_name, data_type, udt_name, is_nullable, ordinal in column_rows:
            columns_by_table[table_name].append(
                {
                    "column_name": column_name,
                    "data_type": data_type,
                    "udt_name": udt_name,
                    "is_nullable": is_nullable == "YES",
                    "is_primary_key": column_name in pk_lookup[table_name],
                    "ordinal_position": int(ordinal),
                }
            )

        return build_schema_payload(
            "postgres", target_schema, table_names, columns_by_table, relationships, row_counts
        )
