"""Per-tenant adapter handles with single-flight connection setup.

At most one live adapter exists per tenant. Concurrent ``acquire`` calls for a
tenant with no handle share one in-flight connect; calls for different tenants
never wait on each other's connects. The lock guards only the bookkeeping dicts.

Requests hold a handle through ``lease``. A handle that is replaced or
invalidated while leased is retired: it leaves the registry at once but is only
closed when its last lease is released.
"""

from __future__ import annotations

import threading
import time
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, Optional

from adapters.base import AdapterConnectionError, DatabaseAdapter
from adapters.factory import get_adapter
from tenancy.resolver import RoutingDecision
from utils.logging import get_logger

logger = get_logger(__name__)

AdapterFactory = Callable[..., DatabaseAdapter]


class ConnectionRegistry:
    def __init__(
        self,
        adapter_factory: AdapterFactory = get_adapter,
        connect_retries: int = 2,
        connect_backoff_ms: int = 100,
        connect_wait_s: Optional[float] = None,
    ):
        self._adapter_factory = adapter_factory
        self._connect_retries = max(1, int(connect_retries))
        self._connect_backoff_ms = max(0, int(connect_backoff_ms))
        self._connect_wait_s = connect_wait_s
        self._lock = threading.Lock()
        self._handles: Dict[str, DatabaseAdapter] = {}
        self._pending: Dict[str, Future] = {}
        self._leases: Dict[DatabaseAdapter, int] = {}
        self._retired: Dict[DatabaseAdapter, str] = {}

    def acquire(self, tenant_id: str, decision: RoutingDecision) -> DatabaseAdapter:
        return self._checkout(tenant_id, decision, hold=False)

    @contextmanager
    def lease(self, tenant_id: str, decision: RoutingDecision) -> Iterator[DatabaseAdapter]:
        handle = self._checkout(tenant_id, decision, hold=True)
        try:
            yield handle
        finally:
            self._release(tenant_id, handle)

    def _checkout(self, tenant_id: str, decision: RoutingDecision, hold: bool) -> DatabaseAdapter:
        stale: Optional[DatabaseAdapter] = None
        with self._lock:
            handle = self._handles.get(tenant_id)
            if handle is not None:
                if handle.is_connected and self._matches(handle, decision):
                    if hold:
                        self._leases[handle] = self._leases.get(handle, 0) + 1
                    return handle
                stale = self._retire(tenant_id)
            pending = self._pending.get(tenant_id)
            owner = pending is None
            if owner:
                pending = Future()
                self._pending[tenant_id] = pending

        if stale is not None:
            logger.info("adapter_replaced", tenant=tenant_id, engine=stale.engine)
            self._close(tenant_id, stale)

        if not owner:
            try:
                pending.result(timeout=self._connect_wait_s)
            except FutureTimeoutError as exc:
                raise AdapterConnectionError(f"Timed out waiting for tenant {tenant_id} to connect") from exc
            return self._checkout(tenant_id, decision, hold)

        try:
            handle = self._connect(decision)
        except BaseException as exc:
            with self._lock:
                self._pending.pop(tenant_id, None)
            pending.set_exception(exc)
            raise
        with self._lock:
            self._handles[tenant_id] = handle
            self._pending.pop(tenant_id, None)
            if hold:
                self._leases[handle] = self._leases.get(handle, 0) + 1
        pending.set_result(handle)
        return handle

    def _release(self, tenant_id: str, handle: DatabaseAdapter) -> None:
        with self._lock:
            remaining = self._leases.get(handle, 0) - 1
            if remaining > 0:
                self._leases[handle] = remaining
                return
            self._leases.pop(handle, None)
            if self._retired.pop(handle, None) is None:
                return
        logger.info("retired_adapter_closed", tenant=tenant_id, engine=handle.engine)
        self._close(tenant_id, handle)

    def _retire(self, tenant_id: str) -> Optional[DatabaseAdapter]:
        """Drop the tenant's handle; return it when nobody holds it and it can be closed now."""
        handle = self._handles.pop(tenant_id)
        if self._leases.get(handle, 0) > 0:
            self._retired[handle] = tenant_id
            return None
        return handle

    def invalidate(self, tenant_id: str, handle: Optional[DatabaseAdapter] = None) -> bool:
        """Forget the tenant's handle, or only ``handle`` when it is still the current one."""
        with self._lock:
            current = self._handles.get(tenant_id)
            if current is None or (handle is not None and current is not handle):
                return False
            closable = self._retire(tenant_id)
        logger.info("adapter_invalidated", tenant=tenant_id, engine=current.engine, deferred=closable is None)
        if closable is not None:
            self._close(tenant_id, closable)
        return True

    def drain_all(self) -> int:
        with self._lock:
            handles = list(self._handles.items())
            handles.extend((tenant_id, handle) for handle, tenant_id in self._retired.items())
            self._handles.clear()
            self._retired.clear()
            self._leases.clear()
        for tenant_id, handle in handles:
            self._close(tenant_id, handle)
        logger.info("registry_drained", closed=len(handles))
        return len(handles)

    def snapshot(self) -> Dict[str, str]:
        with self._lock:
            return {tenant_id: handle.engine for tenant_id, handle in self._handles.items()}

    def __len__(self) -> int:
        with self._lock:
            return len(self._handles)

    @staticmethod
    def _matches(handle: DatabaseAdapter, decision: RoutingDecision) -> bool:
        return handle.engine == decision.engine_type and handle.connection_string == decision.connection_string

    def _connect(self, decision: RoutingDecision) -> DatabaseAdapter:
        delay_s = self._connect_backoff_ms / 1000.0
        for attempt in range(1, self._connect_retries + 1):
            adapter = self._adapter_factory(decision.engine_type, source_config=decision.source_config)
            started = time.perf_counter()
            try:
                adapter.connect(decision.connection_string)
            except AdapterConnectionError as exc:
                logger.warning(
                    "adapter_connect_failed",
                    tenant=decision.tenant_id,
                    engine=decision.engine_type,
                    attempt=attempt,
                    error=str(exc),
                )
                if attempt == self._connect_retries:
                    raise
                time.sleep(delay_s)
                delay_s *= 2
                continue
            logger.info(
                "adapter_connected",
                tenant=decision.tenant_id,
                engine=decision.engine_type,
                attempt=attempt,
                latency_ms=round((time.perf_counter() - started) * 1000.0, 3),
            )
            return adapter
        raise AdapterConnectionError(f"Could not connect tenant {decision.tenant_id}")

    @staticmethod
    def _close(tenant_id: str, handle: DatabaseAdapter) -> None:
        try:
            handle.close()
        except Exception as exc:
            logger.warning("adapter_close_failed", tenant=tenant_id, engine=handle.engine, error=str(exc))
