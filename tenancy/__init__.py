"""Tenant resolution and per-tenant connection lifecycle."""

from tenancy.registry import ConnectionRegistry
from tenancy.resolver import RoutingDecision, TenantResolver, extract_tenant_id

__all__ = ["ConnectionRegistry", "RoutingDecision", "TenantResolver", "extract_tenant_id"]
