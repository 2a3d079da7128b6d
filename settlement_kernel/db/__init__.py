"""Database layer - engine, base classes and ORM guards."""

from settlement_kernel.db.base import UUID, Base, TenantScopedMixin, TrackedBase, UUIDString
from settlement_kernel.db.engine import create_tables, get_engine, get_session, session_scope
from settlement_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)

__all__ = [
    "get_engine",
    "get_session",
    "session_scope",
    "create_tables",
    "register_immutability_listeners",
    "unregister_immutability_listeners",
    "Base",
    "TrackedBase",
    "TenantScopedMixin",
    "UUIDString",
    "UUID",
]
