"""Translation between generic filters/records and engine-native shapes."""

from __future__ import annotations

import json
import re
from typing import AbstractSet, Any, Callable, Dict, Optional
from uuid import UUID

from bson import ObjectId
from bson.errors import InvalidId

from adapters.base import (
    InvalidEntityError,
    InvalidFilterError,
    InvalidIdentifierError,
    InvalidRecordError,
)

GENERIC_ID = "id"

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,62}$")
_OBJECT_ID_RE = re.compile(r"^[0-9a-fA-F]{24}$")
_INT_RE = re.compile(r"^-?(0|[1-9][0-9]*)$")
_FLOAT_RE = re.compile(r"^-?(0|[1-9][0-9]*)\.[0-9]+$")


def validate_identifier(name: str, what: str = "entity") -> str:
    if not isinstance(name, str) or not _IDENTIFIER_RE.match(name):
        raise InvalidEntityError(f"Invalid {what} name: {name!r}")
    return name


def parse_object_id(value: Any) -> ObjectId:
    raw = str(value)
    if not _OBJECT_ID_RE.match(raw):
        raise InvalidIdentifierError(f"Malformed ObjectId: {raw!r}")
    try:
        return ObjectId(raw)
    except InvalidId as exc:
        raise InvalidIdentifierError(f"Malformed ObjectId: {raw!r}") from exc


def parse_relational_id(value: Any):
    if isinstance(value, bool):
        raise InvalidIdentifierError(f"Malformed record id: {value!r}")
    if isinstance(value, int):
        return value
    raw = str(value).strip()
    if _INT_RE.match(raw):
        return int(raw)
    try:
        return str(UUID(raw))
    except ValueError as exc:
        raise InvalidIdentifierError(f"Malformed record id: {raw!r} (expected integer or UUID)") from exc


def normalize_filter(
    filter: Optional[Dict[str, Any]],
    pk_field: str,
    parse_id: Callable[[Any], Any],
) -> Dict[str, Any]:
    normalized: Dict[str, Any] = {}
    for key, value in (filter or {}).items():
        if not isinstance(key, str) or not key or key.startswith("$"):
            raise InvalidFilterError(f"Unsupported filter key: {key!r}")
        if isinstance(value, dict):
            raise InvalidFilterError(f"Only equality filters are supported (key {key!r})")
        if key == GENERIC_ID:
            normalized[pk_field] = parse_id(value)
        else:
            normalized[key] = value
    return normalized


def to_generic_record(native: Optional[Dict[str, Any]], pk_field: str) -> Optional[Dict[str, Any]]:
    if native is None:
        return None
    record = dict(native)
    if pk_field in record:
        pk_value = record.pop(pk_field)
        record = {GENERIC_ID: str(pk_value), **record}
    return record


def to_native_document(record: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in record.items() if k not in {GENERIC_ID, "_id"}}


def encode_json_text(value: Any) -> str:
    return json.dumps(value, sort_keys=True)


def to_native_row(
    record: Dict[str, Any],
    json_fields: AbstractSet[str] = frozenset(),
    encode_json: Callable[[Any], Any] = encode_json_text,
) -> Dict[str, Any]:
    """Validate field names; nested values are only accepted for JSON columns."""
    row: Dict[str, Any] = {}
    for key, value in record.items():
        validate_identifier(key, what="field")
        if isinstance(value, (dict, list)):
            if key not in json_fields:
                raise InvalidRecordError(f"Field {key!r} holds a nested value but is not a JSON column")
            row[key] = encode_json(value)
        else:
            row[key] = value
    return row


def decode_json_fields(row: Dict[str, Any], json_fields: AbstractSet[str]) -> Dict[str, Any]:
    for key in json_fields:
        value = row.get(key)
        if isinstance(value, (bytes, str)):
            try:
                row[key] = json.loads(value)
            except ValueError:
                # declared JSON but holding plain text; returned as stored
                continue
    return row


def coerce_query_value(raw: str) -> Any:
    lowered = raw.strip().lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    if lowered == "null":
        return None
    if _INT_RE.match(raw):
        return int(raw)
    if _FLOAT_RE.match(raw):
        return float(raw)
    return raw
