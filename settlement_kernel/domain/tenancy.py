"""
Tenant Scope Guard (``settlement_kernel.domain.tenancy``).

Responsibility
--------------
Carries the active tenant through every service and selector call and
rejects any read or write that crosses a tenant boundary.

Architecture position
---------------------
**Kernel domain layer**.  Stateless per request: a ``TenantScope`` is a
frozen value created by the request edge and passed down explicitly.  There
is no ambient "current tenant" global to forget or to bypass.

Invariants enforced
-------------------
* Every tenant-scoped service/selector method takes a ``TenantScope`` as its
  first positional argument and calls ``require_scope`` on it.
* A row loaded by id that belongs to another tenant raises
  ``TenantViolationError``; it is never reported as "not found".
* ``tenant_id`` is stamped once at creation (``stamp_tenant``); the ORM flush
  guard in ``db/immutability.py`` rejects reassignment.

Failure modes
-------------
* ``TenantViolationError`` -- always fatal, logged on the ``security``
  logger at WARNING.  The log and the message carry the entity type and
  the id the caller asked for, never the owning tenant.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, TypeVar
from uuid import UUID

from settlement_kernel.exceptions import TenantViolationError
from settlement_kernel.logging_config import get_logger

security_logger = get_logger("security")

T = TypeVar("T")


@dataclass(frozen=True)
class TenantScope:
    """The tenant (and optionally the acting user) of the current request."""

    tenant_id: UUID
    actor_id: UUID | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.tenant_id, UUID):
            raise TenantViolationError(
                "TenantScope", None, "tenant_id must be a UUID"
            )


def _report(entity_type: str, entity_id: Any, reason: str, scope: TenantScope | None) -> None:
    security_logger.warning(
        "tenant_violation",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id) if entity_id is not None else None,
            "active_tenant_id": str(scope.tenant_id) if scope else None,
            "reason": reason,
        },
    )


def require_scope(scope: Any) -> TenantScope:
    """Return ``scope`` if it is a TenantScope, otherwise raise."""
    if not isinstance(scope, TenantScope):
        _report("TenantScope", None, "missing tenant scope", None)
        raise TenantViolationError("TenantScope", None, "missing tenant scope")
    return scope


def ensure_tenant(scope: TenantScope, entity: T, entity_type: str) -> T:
    """Return ``entity`` if it belongs to the scope's tenant, otherwise raise."""
    require_scope(scope)
    owner = getattr(entity, "tenant_id", None)
    if owner != scope.tenant_id:
        entity_id = getattr(entity, "id", None)
        _report(entity_type, entity_id, "cross-tenant access", scope)
        raise TenantViolationError(
            entity_type,
            str(entity_id) if entity_id is not None else None,
            "entity does not belong to the active tenant",
        )
    return entity


def stamp_tenant(scope: TenantScope, entity: T) -> T:
    """Assign the scope's tenant to a new row."""
    require_scope(scope)
    current = getattr(entity, "tenant_id", None)
    if current is not None and current != scope.tenant_id:
        _report(type(entity).__name__, getattr(entity, "id", None), "tenant preassigned", scope)
        raise TenantViolationError(
            type(entity).__name__, None, "row already carries a different tenant"
        )
    entity.tenant_id = scope.tenant_id
    return entity


def report_violation(scope: TenantScope | None, entity_type: str, entity_id: Any, reason: str) -> None:
    """Log a violation detected outside this module (e.g. the flush guard)."""
    _report(entity_type, entity_id, reason, scope)
