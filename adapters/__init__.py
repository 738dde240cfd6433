"""Storage adapters: one CRUD/introspection contract, many engines."""

from adapters.base import DatabaseAdapter
from adapters.factory import get_adapter, register_adapter

__all__ = ["DatabaseAdapter", "get_adapter", "register_adapter"]
