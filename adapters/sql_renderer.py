from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from adapters.normalizer import validate_identifier

Statement = Tuple[str, List[Any]]


@dataclass(frozen=True)
class SQLDialect:
    engine: str
    placeholder: str
    quote_char: str
    supports_returning: bool

    def quote(self, name: str, what: str = "field") -> str:
        validate_identifier(name, what=what)
        return f"{self.quote_char}{name}{self.quote_char}"

    def render_where(self, filter: Dict[str, Any]) -> Statement:
        if not filter:
            return "", []
        clauses = []
        params: List[Any] = []
        for key, value in filter.items():
            column = self.quote(key)
            if value is None:
                clauses.append(f"{column} IS NULL")
            else:
                clauses.append(f"{column} = {self.placeholder}")
                params.append(value)
        return " WHERE " + " AND ".join(clauses), params

    def render_select(self, table: str, filter: Dict[str, Any], limit: Optional[int] = None) -> Statement:
        where, params = self.render_where(filter)
        sql = f"SELECT * FROM {self.quote(table, what='entity')}{where}"
        if limit:
            sql += f" LIMIT {self.placeholder}"
            params.append(int(limit))
        return sql, params

    def render_insert(self, table: str, row: Dict[str, Any]) -> Statement:
        target = self.quote(table, what="entity")
        if row:
            columns = ", ".join(self.quote(k) for k in row)
            values = ", ".join(self.placeholder for _ in row)
            sql = f"INSERT INTO {target} ({columns}) VALUES ({values})"
        elif self.engine == "mysql":
            sql = f"INSERT INTO {target} () VALUES ()"
        else:
            sql = f"INSERT INTO {target} DEFAULT VALUES"
        if self.supports_returning:
            sql += " RETURNING *"
        return sql, list(row.values())

    def render_update(self, table: str, pk_field: str, pk_value: Any, changes: Dict[str, Any]) -> Statement:
        assignments = ", ".join(f"{self.quote(k)} = {self.placeholder}" for k in changes)
        sql = (
            f"UPDATE {self.quote(table, what='entity')} SET {assignments} "
            f"WHERE {self.quote(pk_field)} = {self.placeholder}"
        )
        return sql, [*changes.values(), pk_value]

    def render_delete(self, table: str, pk_field: str, pk_value: Any) -> Statement:
        sql = f"DELETE FROM {self.quote(table, what='entity')} WHERE {self.quote(pk_field)} = {self.placeholder}"
        return sql, [pk_value]


def get_sql_dialect(db_engine: str) -> SQLDialect:
    engine = (db_engine or "postgres").strip().lower()
    if engine in {"postgres", "postgresql"}:
        return SQLDialect(engine="postgres", placeholder="%s", quote_char='"', supports_returning=True)
    if engine == "sqlite":
        return SQLDialect(engine="sqlite", placeholder="?", quote_char='"', supports_returning=False)
    if engine == "mysql":
        return SQLDialect(engine="mysql", placeholder="%s", quote_char="`", supports_returning=False)
    raise ValueError(f"No SQL dialect for engine: {engine}")
