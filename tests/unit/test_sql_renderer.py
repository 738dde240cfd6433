import pytest

from adapters.base import InvalidEntityError
from adapters.sql_renderer import get_sql_dialect


def test_postgres_select_uses_percent_placeholders():
    dialect = get_sql_dialect("postgresql")
    sql, params = dialect.render_select("users", {"id": 3, "name": "Ada"}, limit=1)
    assert sql == 'SELECT * FROM "users" WHERE "id" = %s AND "name" = %s LIMIT %s'
    assert params == [3, "Ada", 1]
    assert dialect.supports_returning


def test_sqlite_insert_and_null_filter():
    dialect = get_sql_dialect("sqlite")
    sql, params = dialect.render_insert("users", {"name": "Ada"})
    assert sql == 'INSERT INTO "users" ("name") VALUES (?)'
    assert params == ["Ada"]
    where, where_params = dialect.render_where({"deleted_at": None})
    assert where == ' WHERE "deleted_at" IS NULL'
    assert where_params == []


def test_mysql_update_quotes_with_backticks():
    dialect = get_sql_dialect("mysql")
    sql, params = dialect.render_update("users", "id", 9, {"name": "Grace"})
    assert sql == "UPDATE `users` SET `name` = %s WHERE `id` = %s"
    assert params == ["Grace", 9]
    assert dialect.render_insert("users", {})[0] == "INSERT INTO `users` () VALUES ()"


def test_identifiers_are_validated():
    dialect = get_sql_dialect("postgres")
    with pytest.raises(InvalidEntityError):
        dialect.render_delete('users"; DROP TABLE x; --', "id", 1)
