"""
Typed Exception Hierarchy for the Settlement Engine.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Payroll and commission settlement must tell the operator exactly what went
wrong and what to fix.  Callers catch by type, never by message text, and
read structured attributes (period, employee, bracket date) from the
exception instead of parsing strings.

Every exception:
  1. Has a TYPED class (catch by type, not message)
  2. Has a CODE class attribute (machine-readable, API-safe)
  3. Carries structured DATA as instance attributes

Example:
    try:
        payroll.calculate(scope, period_id, actor_id)
    except MissingTaxBracketsError as e:
        notify_operator(e.tax_type, e.as_of_date)   # structured data
    except ConflictError as e:
        retry_later(e.code)                          # machine-readable

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    SettlementError (base)
    |
    +-- ConfigurationError
    |   +-- MissingTaxBracketsError
    |   +-- AmbiguousTaxBracketsError
    |
    +-- InvalidStateTransitionError
    |
    +-- ConflictError
    |   +-- CalculationInProgressError
    |   +-- ConcurrentModificationError
    |   +-- DownstreamLinkError
    |   +-- DuplicateSalesGoalError
    |
    +-- TenantViolationError
    |
    +-- ValidationError
    |   +-- InvalidPayrollEntryError
    |   +-- InvalidBracketTableError
    |   +-- NoEligibleEmployeesError
    |
    +-- NotFoundError
    |   +-- PayrollPeriodNotFoundError
    |   +-- PayrollResultNotFoundError
    |   +-- EmployeeNotFoundError
    |   +-- CommissionNotFoundError
    |   +-- SaleNotFoundError
    |   +-- ServiceOrderNotFoundError
    |   +-- ProductNotFoundError
    |   +-- SalesGoalNotFoundError
    |
    +-- ImmutabilityViolationError
    |
    +-- CalculationCancelledError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Configuration   | MISSING_TAX_BRACKETS        | No active bracket set for type/date
                | AMBIGUOUS_TAX_BRACKETS      | Two windows cover the same date
----------------|-----------------------------|-----------------------------------------
State           | INVALID_STATE_TRANSITION    | Action not allowed from current status
----------------|-----------------------------|-----------------------------------------
Conflict        | CALCULATION_IN_PROGRESS     | Period already claimed by a calculation
                | CONCURRENT_MODIFICATION     | Version check failed
                | DOWNSTREAM_LINK_EXISTS      | Results referenced by commissions/slips
                | DUPLICATE_SALES_GOAL        | Goal exists for user/year/month
----------------|-----------------------------|-----------------------------------------
Tenant          | TENANT_VIOLATION            | Cross-tenant read or write
----------------|-----------------------------|-----------------------------------------
Validation      | INVALID_PAYROLL_ENTRY       | Negative hours, bad absence counts
                | INVALID_BRACKET_TABLE       | Gaps/overlaps in a bracket window
                | NO_ELIGIBLE_EMPLOYEES       | Nothing to calculate
----------------|-----------------------------|-----------------------------------------
Not found       | *_NOT_FOUND                 | Unknown id within the active tenant
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | Modifying a frozen snapshot row
----------------|-----------------------------|-----------------------------------------
Cancellation    | CALCULATION_CANCELLED       | Caller cancelled a running calculation

===============================================================================
DESIGN DECISIONS
===============================================================================

1. TenantViolationError never carries the other tenant's identifier or data,
   only the entity type and id the caller asked for.

2. ConflictError subclasses are the only retryable category.

3. Validation errors are raised before any computation starts, so the
   period is always left in its prior state.

===============================================================================
"""


class SettlementError(Exception):
    """
    Base exception for all settlement engine errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "SETTLEMENT_ERROR"


# Configuration exceptions


class ConfigurationError(SettlementError):
    """Base exception for operator-facing configuration problems."""

    code: str = "CONFIGURATION_ERROR"


class MissingTaxBracketsError(ConfigurationError):
    """No active bracket set covers the requested date."""

    code: str = "MISSING_TAX_BRACKETS"

    def __init__(self, tax_type: str, as_of_date: str):
        self.tax_type = tax_type
        self.as_of_date = as_of_date
        super().__init__(
            f"No active {tax_type} brackets effective on {as_of_date}"
        )


class AmbiguousTaxBracketsError(ConfigurationError):
    """More than one bracket window covers the requested date."""

    code: str = "AMBIGUOUS_TAX_BRACKETS"

    def __init__(self, tax_type: str, as_of_date: str, windows: list[str]):
        self.tax_type = tax_type
        self.as_of_date = as_of_date
        self.windows = windows
        super().__init__(
            f"{len(windows)} {tax_type} bracket windows are effective on "
            f"{as_of_date}: {', '.join(windows)}"
        )


# State machine exceptions


class InvalidStateTransitionError(SettlementError):
    """Action is not allowed from the entity's current status."""

    code: str = "INVALID_STATE_TRANSITION"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        current_state: str,
        action: str,
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.current_state = current_state
        self.action = action
        super().__init__(
            f"Cannot {action} {entity_type} {entity_id} "
            f"in status '{current_state}'"
        )


# Conflict exceptions


class ConflictError(SettlementError):
    """Base exception for retryable conflicts."""

    code: str = "CONFLICT"


class CalculationInProgressError(ConflictError):
    """Another calculation has claimed the period."""

    code: str = "CALCULATION_IN_PROGRESS"

    def __init__(self, period_id: str, run_id: str | None = None):
        self.period_id = period_id
        self.run_id = run_id
        super().__init__(
            f"Payroll period {period_id} is being calculated"
            + (f" (run {run_id})" if run_id else "")
        )


class ConcurrentModificationError(ConflictError):
    """Optimistic version check failed."""

    code: str = "CONCURRENT_MODIFICATION"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        expected_version: int | None = None,
        actual_version: int | None = None,
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        detail = ""
        if expected_version is not None:
            detail = f" (expected version {expected_version}, found {actual_version})"
        super().__init__(
            f"{entity_type} {entity_id} was modified by another transaction{detail}"
        )


class DownstreamLinkError(ConflictError):
    """Payroll results are referenced and cannot be replaced."""

    code: str = "DOWNSTREAM_LINK_EXISTS"

    def __init__(self, period_id: str, commission_links: int, slip_links: int):
        self.period_id = period_id
        self.commission_links = commission_links
        self.slip_links = slip_links
        super().__init__(
            f"Payroll period {period_id} has results referenced by "
            f"{commission_links} commission(s) and {slip_links} payslip(s); "
            "release them before recalculating"
        )


class DuplicateSalesGoalError(ConflictError):
    """A goal already exists for the salesperson and month."""

    code: str = "DUPLICATE_SALES_GOAL"

    def __init__(self, user_id: str, year: int, month: int):
        self.user_id = user_id
        self.year = year
        self.month = month
        super().__init__(
            f"Sales goal already exists for user {user_id} in {year}-{month:02d}"
        )


# Tenant exceptions


class TenantViolationError(SettlementError):
    """
    Cross-tenant access attempt.

    Always fatal.  The message names only what the caller asked for.
    """

    code: str = "TENANT_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str | None, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        target = f"{entity_type} {entity_id}" if entity_id else entity_type
        super().__init__(f"Tenant violation on {target}: {reason}")


# Validation exceptions


class ValidationError(SettlementError):
    """Base exception for malformed input."""

    code: str = "VALIDATION_ERROR"


class InvalidPayrollEntryError(ValidationError):
    """Payroll entry input failed validation."""

    code: str = "INVALID_PAYROLL_ENTRY"

    def __init__(self, employee_id: str, errors: list[str]):
        self.employee_id = employee_id
        self.errors = errors
        super().__init__(
            f"Invalid payroll entry for employee {employee_id}: "
            + "; ".join(errors)
        )


class InvalidBracketTableError(ValidationError):
    """Bracket window has gaps, overlaps or bad rates."""

    code: str = "INVALID_BRACKET_TABLE"

    def __init__(self, tax_type: str, effective_from: str, errors: list[str]):
        self.tax_type = tax_type
        self.effective_from = effective_from
        self.errors = errors
        super().__init__(
            f"Invalid {tax_type} bracket table effective {effective_from}: "
            + "; ".join(errors)
        )


class NoEligibleEmployeesError(ValidationError):
    """The period has no employees to calculate."""

    code: str = "NO_ELIGIBLE_EMPLOYEES"

    def __init__(self, period_id: str):
        self.period_id = period_id
        super().__init__(f"Payroll period {period_id} has no eligible employees")


# Not-found exceptions


class NotFoundError(SettlementError):
    """Base exception for unknown identifiers within the active tenant."""

    code: str = "NOT_FOUND"
    entity_type: str = "entity"

    def __init__(self, entity_id: str):
        self.entity_id = entity_id
        super().__init__(f"{self.entity_type} not found: {entity_id}")


class PayrollPeriodNotFoundError(NotFoundError):
    code: str = "PAYROLL_PERIOD_NOT_FOUND"
    entity_type = "PayrollPeriod"


class PayrollResultNotFoundError(NotFoundError):
    code: str = "PAYROLL_RESULT_NOT_FOUND"
    entity_type = "PayrollResult"


class EmployeeNotFoundError(NotFoundError):
    code: str = "EMPLOYEE_NOT_FOUND"
    entity_type = "Employee"


class CommissionNotFoundError(NotFoundError):
    code: str = "COMMISSION_NOT_FOUND"
    entity_type = "Commission"


class SaleNotFoundError(NotFoundError):
    code: str = "SALE_NOT_FOUND"
    entity_type = "Sale"


class ServiceOrderNotFoundError(NotFoundError):
    code: str = "SERVICE_ORDER_NOT_FOUND"
    entity_type = "ServiceOrder"


class ProductNotFoundError(NotFoundError):
    code: str = "PRODUCT_NOT_FOUND"
    entity_type = "Product"


class SalesGoalNotFoundError(NotFoundError):
    code: str = "SALES_GOAL_NOT_FOUND"
    entity_type = "SalesGoal"


# Immutability exceptions


class ImmutabilityViolationError(SettlementError):
    """
    Attempted to modify or delete an immutable record.

    Payroll results, components, commission amounts and tax brackets are
    frozen once written.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Cancellation


class CalculationCancelledError(SettlementError):
    """A running calculation was cancelled before commit."""

    code: str = "CALCULATION_CANCELLED"

    def __init__(self, period_id: str, processed: int, total: int):
        self.period_id = period_id
        self.processed = processed
        self.total = total
        super().__init__(
            f"Calculation of payroll period {period_id} cancelled after "
            f"{processed} of {total} employees; prior results kept"
        )
