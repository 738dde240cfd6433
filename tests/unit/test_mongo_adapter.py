from types import SimpleNamespace

import pytest
from bson import ObjectId
from bson.errors import InvalidDocument
from pymongo.errors import AutoReconnect, DuplicateKeyError, OperationFailure, ServerSelectionTimeoutError

from adapters.base import (
    AdapterConnectionError,
    AdapterError,
    InvalidEntityError,
    InvalidIdentifierError,
    InvalidRecordError,
)
from adapters.mongo import MongoAdapter


def _matches(doc, query):
    return all(doc.get(k) == v for k, v in query.items())


class FakeCursor:
    def __init__(self, docs):
        self.docs = docs

    def limit(self, n):
        return FakeCursor(self.docs[:n])

    def __iter__(self):
        return iter(self.docs)


class FakeCollection:
    def __init__(self):
        self.docs = []
        self.fail_with = None

    def _check(self):
        if self.fail_with is not None:
            raise self.fail_with

    def find_one(self, query):
        self._check()
        return next((dict(d) for d in self.docs if _matches(d, query)), None)

    def find(self, query, limit=0):
        self._check()
        docs = [dict(d) for d in self.docs if _matches(d, query)]
        return FakeCursor(docs[:limit] if limit else docs)

    def insert_one(self, doc):
        self._check()
        doc.setdefault("_id", ObjectId())
        self.docs.append(dict(doc))
        return SimpleNamespace(inserted_id=doc["_id"])

    def update_one(self, query, update):
        for doc in self.docs:
            if _matches(doc, query):
                doc.update(update["$set"])
                return SimpleNamespace(matched_count=1)
        return SimpleNamespace(matched_count=0)

    def delete_one(self, query):
        for doc in list(self.docs):
            if _matches(doc, query):
                self.docs.remove(doc)
                return SimpleNamespace(deleted_count=1)
        return SimpleNamespace(deleted_count=0)

    def estimated_document_count(self):
        return len(self.docs)


class FakeDatabase:
    def __init__(self, name):
        self.name = name
        self.collections = {}

    def __getitem__(self, name):
        return self.collections.setdefault(name, FakeCollection())

    def list_collection_names(self):
        return list(self.collections)


class FakeClient:
    instances = []
    reachable = True

    def __init__(self, uri, **kwargs):
        self.uri = uri
        self.kwargs = kwargs
        self.closed = False
        self.db = FakeDatabase(uri.rsplit("/", 1)[-1].split("?", 1)[0])
        self.admin = SimpleNamespace(command=self._command)
        FakeClient.instances.append(self)

    def _command(self, name):
        if not FakeClient.reachable:
            raise ServerSelectionTimeoutError("no servers")
        return {"ok": 1}

    def get_default_database(self):
        return self.db

    def close(self):
        self.closed = True


@pytest.fixture
def fake_client(monkeypatch):
    FakeClient.instances = []
    FakeClient.reachable = True
    monkeypatch.setattr("adapters.mongo.MongoClient", FakeClient)
    return FakeClient


@pytest.fixture
def adapter(fake_client):
    mongo = MongoAdapter(source_config={"timeout_ms": 1500})
    mongo.connect("mongodb://admin:pw@localhost:27018/t1?authSource=admin")
    return mongo


def test_connect_uses_tenant_database_and_bounded_timeouts(adapter, fake_client):
    client = fake_client.instances[0]
    assert client.db.name == "t1"
    assert client.kwargs["serverSelectionTimeoutMS"] == 1500
    assert adapter.is_connected


def test_connect_failure_raises_connection_error_and_closes_client(fake_client):
    fake_client.reachable = False
    mongo = MongoAdapter()
    with pytest.raises(AdapterConnectionError):
        mongo.connect("mongodb://localhost:27018/t1")
    assert not mongo.is_connected
    assert fake_client.instances[0].closed


def test_create_find_update_delete_cycle(adapter):
    created = adapter.create("users", {"name": "Ada", "role": "admin"})
    assert set(created) == {"id", "name", "role"}
    assert ObjectId.is_valid(created["id"])

    assert adapter.find_one("users", {"id": created["id"]}) == created

    updated = adapter.update("users", created["id"], {"role": "owner"})
    assert updated == {"id": created["id"], "name": "Ada", "role": "owner"}

    assert adapter.delete("users", created["id"]) is True
    assert adapter.delete("users", created["id"]) is False
    assert adapter.find_one("users", {"id": created["id"]}) is None


def test_update_missing_document_returns_none(adapter):
    assert adapter.update("users", str(ObjectId()), {"role": "owner"}) is None


def test_find_many_returns_generic_records(adapter):
    adapter.create("users", {"name": "Ada", "team": "core"})
    adapter.create("users", {"name": "Grace", "team": "core"})
    adapter.create("users", {"name": "Linus", "team": "kernel"})
    rows = adapter.find_many("users", {"team": "core"})
    assert [r["name"] for r in rows] == ["Ada", "Grace"]
    assert all("_id" not in r for r in rows)
    assert len(adapter.find_many("users", {}, limit=1)) == 1


def test_malformed_id_and_system_collections_are_rejected(adapter):
    with pytest.raises(InvalidIdentifierError):
        adapter.find_one("users", {"id": "123"})
    with pytest.raises(InvalidIdentifierError):
        adapter.delete("users", "zzz")
    with pytest.raises(InvalidEntityError):
        adapter.find_one("system.users", {})


def test_lost_connection_surfaces_as_connection_error(adapter):
    adapter._db["users"].fail_with = AutoReconnect("socket closed")
    with pytest.raises(AdapterConnectionError):
        adapter.find_one("users", {})


@pytest.mark.parametrize(
    "error",
    [DuplicateKeyError("E11000 duplicate key error"), InvalidDocument("key '$bad' must not start with '$'")],
)
def test_rejected_documents_are_record_errors(adapter, error):
    adapter._db["users"].fail_with = error
    with pytest.raises(InvalidRecordError):
        adapter.create("users", {"name": "Ada"})


def test_server_side_failures_are_translated(adapter):
    adapter._db["users"].fail_with = OperationFailure("not authorized on t1 to execute command")
    with pytest.raises(AdapterError) as excinfo:
        adapter.find_many("users", {})
    assert type(excinfo.value) is AdapterError


def test_introspect_samples_collection_fields(adapter):
    adapter.create("users", {"name": "Ada", "age": 36})
    adapter.create("users", {"name": "Grace", "age": None})
    meta = adapter.introspect()
    assert meta["source"] == {"db_engine": "mongodb", "database": "t1"}
    users = meta["collections"][0]
    assert users["collection_name"] == "users"
    assert users["document_count"] == 2
    fields = {f["field_name"]: f["observed_types"] for f in users["fields"]}
    assert fields["age"] == ["int", "null"]
    assert fields["id"] == ["ObjectId"]


def test_close_is_safe_to_repeat(adapter):
    adapter.close()
    adapter.close()
    assert not adapter.is_connected
