import json

from tenancy.store import (
    get_tenant_mapping,
    list_tenant_mappings,
    remove_tenant_mapping,
    upsert_tenant_mapping,
)


def test_missing_registry_file_is_empty(tmp_path):
    assert list_tenant_mappings(tmp_path / "none.json") == []
    assert get_tenant_mapping("acme", tmp_path / "none.json") is None


def test_upsert_replaces_existing_entry_and_keeps_created_at(tmp_path):
    path = tmp_path / "nested" / "tenants.json"
    first = upsert_tenant_mapping("acme", "mongodb", path=path)
    second = upsert_tenant_mapping("acme", "postgres", source_config={"schema_name": "acme"}, path=path)

    assert second["created_at"] == first["created_at"]
    items = json.loads(path.read_text(encoding="utf-8"))
    assert len(items) == 1
    assert items[0]["db_engine"] == "postgres"
    assert get_tenant_mapping("acme", path)["source_config"] == {"schema_name": "acme"}


def test_remove_tenant_mapping(tmp_path):
    path = tmp_path / "tenants.json"
    upsert_tenant_mapping("acme", "sqlite", path=path)
    upsert_tenant_mapping("globex", "sqlite", path=path)
    assert remove_tenant_mapping("acme", path) is True
    assert remove_tenant_mapping("acme", path) is False
    assert [item["tenant_id"] for item in list_tenant_mappings(path)] == ["globex"]


def test_registry_file_defaults_to_environment(tmp_path, monkeypatch):
    path = tmp_path / "env_tenants.json"
    monkeypatch.setenv("TENANT_REGISTRY_FILE", str(path))
    upsert_tenant_mapping("acme", "mysql")
    assert get_tenant_mapping("acme")["db_engine"] == "mysql"
