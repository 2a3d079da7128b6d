"""
ORM-Level Immutability and Tenant Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

Settled payroll and commission figures are evidence.  Once a result is
written its amounts must not drift: a correction is a new calculation run
(which replaces the whole result set) or, after approval, nothing at all.
Tax bracket rows are versioned by their effective window; a live table is
closed, never rewritten.

Services already refuse these operations.  The listeners here catch the
code paths that bypass services (scripts, ad-hoc sessions, future bugs)
before any SQL reaches the database:

    session.flush()
         |
         v
    [before_flush]    --> tenant stamping / component deletes
         |
         v
    [before_update]   --> _check_*_immutability() --> ImmutabilityViolationError
         |
         v
    [before_delete]   --> _check_*_delete() -------> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity               | Rule
---------------------|--------------------------------------------------------
TenantScoped rows    | tenant_id required on insert, never reassigned
PayrollResult        | only payment_date (+ audit fields) may change;
                     | deleted only while its period is ``calculating``
PayrollComponent     | never updated; deleted only together with its result
TaxBracket           | only effective_to / is_active may change; never deleted
Commission (both)    | source, line, user and amount fields frozen

===============================================================================
USAGE
===============================================================================

    from settlement_kernel.db.engine import init_engine_from_url
    init_engine_from_url(url)  # imports every model, then registers the listeners

Tests that need to seed forbidden states call
``unregister_immutability_listeners()`` and re-register afterwards.
"""

from sqlalchemy import event, inspect, select
from sqlalchemy.orm import Session

from settlement_kernel.db.base import AUDIT_FIELDS, TenantScopedMixin
from settlement_kernel.domain.tenancy import report_violation
from settlement_kernel.exceptions import ImmutabilityViolationError, TenantViolationError
from settlement_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _blocked(entity_type: str, target, operation: str, reason: str, field: str | None = None):
    extra = {
        "entity_type": entity_type,
        "entity_id": str(target.id),
        "operation": operation,
    }
    if field is not None:
        extra["field"] = field
    logger.error("immutability_violation_blocked", extra=extra)
    return ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _changed_columns(target) -> list[str]:
    state = inspect(target)
    return [
        attr.key
        for attr in state.mapper.column_attrs
        if state.attrs[attr.key].history.has_changes()
    ]


# ---------------------------------------------------------------------------
# Session-level checks
# ---------------------------------------------------------------------------


def _check_tenant_stamping_before_flush(session, flush_context, instances):
    """
    Reject tenant-scoped rows without a tenant, and tenant reassignment.

    Services stamp ``tenant_id`` through ``stamp_tenant``; a row reaching
    the flush without one was created outside a tenant scope.
    """
    for obj in session.new:
        if isinstance(obj, TenantScopedMixin) and obj.tenant_id is None:
            entity_type = type(obj).__name__
            report_violation(None, entity_type, obj.id, "row flushed without tenant_id")
            raise TenantViolationError(entity_type, None, "row flushed without tenant_id")

    for obj in session.dirty:
        if not isinstance(obj, TenantScopedMixin):
            continue
        history = inspect(obj).attrs.tenant_id.history
        if history.deleted and history.deleted[0] is not None:
            entity_type = type(obj).__name__
            report_violation(None, entity_type, obj.id, "tenant_id reassigned")
            raise TenantViolationError(entity_type, str(obj.id), "tenant_id cannot be reassigned")


def _check_component_deletion_before_flush(session, flush_context, instances):
    """
    Components disappear only with their result.

    Runs in before_flush because the cascade has already placed both the
    result and its components in ``session.deleted`` at this point.
    """
    from settlement_modules.payroll.orm import PayrollComponentModel, PayrollResultModel

    deleted = list(session.deleted)
    deleted_results = {obj.id for obj in deleted if isinstance(obj, PayrollResultModel)}
    for obj in deleted:
        if isinstance(obj, PayrollComponentModel) and obj.payroll_result_id not in deleted_results:
            raise _blocked(
                "PayrollComponent", obj, "DELETE",
                "Payroll components are deleted only together with their result",
            )


# ---------------------------------------------------------------------------
# Payroll results and components
# ---------------------------------------------------------------------------


def _check_payroll_result_immutability(mapper, connection, target):
    """Only ``payment_date`` and audit metadata may change on a result."""
    from settlement_modules.payroll.orm import PAYROLL_RESULT_MUTABLE_FIELDS

    allowed = PAYROLL_RESULT_MUTABLE_FIELDS | AUDIT_FIELDS
    for key in _changed_columns(target):
        if key not in allowed:
            raise _blocked(
                "PayrollResult", target, "UPDATE",
                f"Cannot modify field '{key}' on a payroll result",
                field=key,
            )


def _check_payroll_result_delete(mapper, connection, target):
    """Results are replaced only by a calculation run holding the period claim."""
    from settlement_modules.payroll.orm import PayrollPeriodModel

    status = connection.execute(
        select(PayrollPeriodModel.status).where(PayrollPeriodModel.id == target.period_id)
    ).scalar()
    if status != "calculating":
        raise _blocked(
            "PayrollResult", target, "DELETE",
            f"Payroll results can only be replaced by a calculation run (period is {status})",
        )


def _check_payroll_component_immutability(mapper, connection, target):
    changed = [key for key in _changed_columns(target) if key not in AUDIT_FIELDS]
    if changed:
        raise _blocked(
            "PayrollComponent", target, "UPDATE",
            "Payroll components are immutable",
            field=changed[0],
        )


# ---------------------------------------------------------------------------
# Tax brackets
# ---------------------------------------------------------------------------


def _check_tax_bracket_immutability(mapper, connection, target):
    """Brackets are closed or deactivated, never rewritten."""
    from settlement_modules.tax.orm import TAX_BRACKET_MUTABLE_FIELDS

    allowed = TAX_BRACKET_MUTABLE_FIELDS | AUDIT_FIELDS
    for key in _changed_columns(target):
        if key not in allowed:
            raise _blocked(
                "TaxBracket", target, "UPDATE",
                f"Cannot modify field '{key}' on a tax bracket; install a new window instead",
                field=key,
            )


def _check_tax_bracket_delete(mapper, connection, target):
    raise _blocked(
        "TaxBracket", target, "DELETE",
        "Tax brackets cannot be deleted; deactivate the window instead",
    )


# ---------------------------------------------------------------------------
# Commissions
# ---------------------------------------------------------------------------


def _check_commission_immutability(mapper, connection, target):
    """Status, settlement and review fields move; the computed figures do not."""
    from settlement_modules.commissions.orm import COMMISSION_FROZEN_FIELDS

    for key in _changed_columns(target):
        if key in COMMISSION_FROZEN_FIELDS:
            raise _blocked(
                "Commission", target, "UPDATE",
                f"Cannot modify field '{key}' on a recorded commission",
                field=key,
            )


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


def _listeners():
    from settlement_modules.commissions.orm import COMMISSION_MODELS
    from settlement_modules.payroll.orm import PayrollComponentModel, PayrollResultModel
    from settlement_modules.tax.orm import TaxBracketModel

    pairs = [
        (Session, "before_flush", _check_tenant_stamping_before_flush),
        (Session, "before_flush", _check_component_deletion_before_flush),
        (PayrollResultModel, "before_update", _check_payroll_result_immutability),
        (PayrollResultModel, "before_delete", _check_payroll_result_delete),
        (PayrollComponentModel, "before_update", _check_payroll_component_immutability),
        (TaxBracketModel, "before_update", _check_tax_bracket_immutability),
        (TaxBracketModel, "before_delete", _check_tax_bracket_delete),
    ]
    for model in COMMISSION_MODELS:
        pairs.append((model, "before_update", _check_commission_immutability))
    return pairs


def register_immutability_listeners():
    """
    Register all immutability and tenant enforcement listeners.

    Call after every ORM module is imported.  Registering twice is a no-op.
    """
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if it is not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove the listeners.

    WARNING: tests only.  Production code must never run without them.
    """
    for target, event_name, listener_fn in _listeners():
        _safe_remove_listener(target, event_name, listener_fn)
