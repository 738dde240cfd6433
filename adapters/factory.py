from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, List, Optional

from adapters.base import DatabaseAdapter, UnsupportedEngineError
from adapters.mongo import MongoAdapter
from adapters.mysql import MySQLAdapter
from adapters.postgres import PostgresAdapter
from adapters.sqlite import SQLiteAdapter

AdapterConstructor = Callable[..., DatabaseAdapter]

_ALIASES = {"postgresql": "postgres", "mongo": "mongodb"}

_REGISTRY: Dict[str, AdapterConstructor] = {
    "mongodb": MongoAdapter,
    "postgres": PostgresAdapter,
    "mysql": MySQLAdapter,
    "sqlite": SQLiteAdapter,
}


def normalize_engine(db_engine: Optional[str]) -> str:
    engine = (db_engine or "").strip().lower()
    return _ALIASES.get(engine, engine)


def register_adapter(db_engine: str, constructor: AdapterConstructor) -> None:
    _REGISTRY[normalize_engine(db_engine)] = constructor


def registered_engines() -> List[str]:
    return sorted(_REGISTRY)


def validate_registered_engines(engines: Iterable[Optional[str]]) -> None:
    missing = sorted({normalize_engine(e) for e in engines if e} - set(_REGISTRY))
    if missing:
        raise UnsupportedEngineError(f"No adapter registered for engine(s): {', '.join(missing)}")


def get_adapter(db_engine: str, source_config: Optional[Dict[str, Any]] = None) -> DatabaseAdapter:
    engine = normalize_engine(db_engine)
    constructor = _REGISTRY.get(engine)
    if constructor is None:
        raise UnsupportedEngineError(f"Unsupported db_engine: {engine}")
    return constructor(source_config=source_config)
