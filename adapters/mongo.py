from __future__ import annotations

from typing import Any, Dict, List, Optional

from bson import ObjectId
from bson.errors import InvalidDocument
from pymongo import MongoClient
from pymongo.errors import ConnectionFailure, PyMongoError, WriteError

from adapters.base import (
    AdapterConnectionError,
    AdapterError,
    DatabaseAdapter,
    InvalidEntityError,
    InvalidRecordError,
)
from adapters.normalizer import (
    normalize_filter,
    parse_object_id,
    to_generic_record,
    to_native_document,
)

PK_FIELD = "_id"
SAMPLE_SIZE = 20


def _validate_collection(entity: str) -> str:
    if not entity or entity.startswith("system.") or "$" in entity or "\x00" in entity:
        raise InvalidEntityError(f"Invalid collection name: {entity!r}")
    return entity


def _plain(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_plain(v) for v in value]
    return value


def _type_name(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, dict):
        return "object"
    if isinstance(value, list):
        return "array"
    return type(value).__name__


class MongoAdapter(DatabaseAdapter):
    engine = "mongodb"

    def __init__(self, source_config: Optional[Dict[str, Any]] = None):
        super().__init__(source_config=source_config)
        self._client = None
        self._db = None

    @property
    def is_connected(self) -> bool:
        return self._db is not None

    def connect(self, connection_string: str) -> None:
        timeout_ms = int(self.source_config.get("timeout_ms", 5000))
        client = MongoClient(
            connection_string,
            serverSelectionTimeoutMS=timeout_ms,
            connectTimeoutMS=timeout_ms,
            socketTimeoutMS=timeout_ms,
        )
        try:
            client.admin.command("ping")
            db = client.get_default_database()
        except PyMongoError as exc:
            client.close()
            raise AdapterConnectionError(f"MongoDB connection failed: {exc}") from exc
        self._client = client
        self._db = db
        self.connection_string = connection_string

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
        self._client = None
        self._db = None

    def ping(self) -> bool:
        if not self.is_connected:
            return False
        try:
            self._client.admin.command("ping")
            return True
        except PyMongoError:
            return False

    def _collection(self, entity: str):
        self.ensure_connected()
        return self._db[_validate_collection(entity)]

    def _run(self, op):
        try:
            return op()
        except ConnectionFailure as exc:
            raise AdapterConnectionError(f"MongoDB connection lost: {exc}") from exc
        except (WriteError, InvalidDocument) as exc:
            raise InvalidRecordError(f"MongoDB rejected the document: {exc}") from exc
        except PyMongoError as exc:
            raise AdapterError(f"MongoDB operation failed: {exc}") from exc

    def find_one(self, entity: str, filter: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        collection = self._collection(entity)
        query = normalize_filter(filter, PK_FIELD, parse_object_id)
        return to_generic_record(_plain(self._run(lambda: collection.find_one(query))), PK_FIELD)

    def find_many(
        self, entity: str, filter: Dict[str, Any], limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        collection = self._collection(entity)
        query = normalize_filter(filter, PK_FIELD, parse_object_id)

        def _fetch():
            cursor = collection.find(query)
            if limit:
                cursor = cursor.limit(int(limit))
            return list(cursor)

        return [to_generic_record(_plain(doc), PK_FIELD) for doc in self._run(_fetch)]

    def create(self, entity: str, record: Dict[str, Any]) -> Dict[str, Any]:
        collection = self._collection(entity)
        document = to_native_document(record)
        result = self._run(lambda: collection.insert_one(dict(document)))
        return {"id": str(result.inserted_id), **document}

    def update(self, entity: str, id: str, partial: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        collection = self._collection(entity)
        object_id = parse_object_id(id)
        changes = to_native_document(partial)
        if changes:
            result = self._run(lambda: collection.update_one({PK_FIELD: object_id}, {"$set": changes}))
            if result.matched_count == 0:
                return None
        return self.find_one(entity, {"id": id})

    def delete(self, entity: str, id: str) -> bool:
        collection = self._collection(entity)
        object_id = parse_object_id(id)
        result = self._run(lambda: collection.delete_one({PK_FIELD: object_id}))
        return result.deleted_count == 1

    def introspect(self) -> Dict[str, Any]:
        self.ensure_connected()

        def _collect():
            names = sorted(n for n in self._db.list_collection_names() if not n.startswith("system."))
            collections = []
            for name in names:
                collection = self._db[name]
                fields: Dict[str, set] = {}
                for doc in collection.find({}, limit=SAMPLE_SIZE):
                    for key, value in doc.items():
                        fields.setdefault("id" if key == PK_FIELD else key, set()).add(_type_name(value))
                collections.append(
                    {
                        "collection_name": name,
                        "document_count": int(collection.estimated_document_count()),
                        "fields": [
                            {"field_name": key, "observed_types": sorted(types)}
                            for key, types in sorted(fields.items())
                        ],
                    }
                )
            return collections

        collections = self._run(_collect)
        return {
            "source": {"db_engine": "mongodb", "database": self._db.name},
            "profile": {"collection_count": len(collections), "sample_size": SAMPLE_SIZE},
            "collections": collections,
        }
