from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional


class AdapterError(RuntimeError):
    kind = "AdapterError"
    status_code = 500


class UnknownTenantError(AdapterError):
    kind = "UnknownTenantError"
    status_code = 404


class MissingTenantError(AdapterError):
    kind = "MissingTenantError"
    status_code = 400


class InvalidTenantError(AdapterError):
    kind = "InvalidTenantError"
    status_code = 400


class UnsupportedEngineError(AdapterError):
    kind = "UnsupportedEngineError"
    status_code = 501


class AdapterConnectionError(AdapterError):
    kind = "ConnectionError"
    status_code = 503


class NotConnectedError(AdapterError):
    kind = "NotConnectedError"
    status_code = 500


class InvalidIdentifierError(AdapterError):
    kind = "InvalidIdentifierError"
    status_code = 400


class InvalidEntityError(AdapterError):
    kind = "InvalidEntityError"
    status_code = 400


class InvalidFilterError(AdapterError):
    kind = "InvalidFilterError"
    status_code = 400


class InvalidRecordError(AdapterError):
    kind = "InvalidRecordError"
    status_code = 400


class DatabaseAdapter(ABC):
    """CRUD and introspection contract every storage engine implements.

    Records cross this boundary as plain dicts with the primary key exposed
    under ``id`` as a string. A missing record is ``None`` (``False`` for
    ``delete``), never an exception.
    """

    engine: str = "unknown"

    def __init__(self, source_config: Optional[Dict[str, Any]] = None):
        self.source_config = source_config or {}
        self.connection_string: Optional[str] = None

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        raise NotImplementedError

    @abstractmethod
    def connect(self, connection_string: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def close(self) -> None:
        raise NotImplementedError

    def ping(self) -> bool:
        return self.is_connected

    @abstractmethod
    def find_one(self, entity: str, filter: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    @abstractmethod
    def find_many(
        self, entity: str, filter: Dict[str, Any], limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        raise NotImplementedError

    @abstractmethod
    def create(self, entity: str, record: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError

    @abstractmethod
    def update(self, entity: str, id: str, partial: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    @abstractmethod
    def delete(self, entity: str, id: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def introspect(self) -> Dict[str, Any]:
        raise NotImplementedError

    def ensure_connected(self) -> None:
        if not self.is_connected:
            raise NotConnectedError(f"{type(self).__name__} is not connected. Call connect() first.")
