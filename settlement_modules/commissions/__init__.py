"""
Commissions Module.

Sales and service-order commissions: pure per-line math, approval
workflow, cancellation and settlement through payroll results.
"""

from settlement_modules.commissions.calculator import calculate_line_commission, line_profit
from settlement_modules.commissions.models import (
    NON_POSITIVE_PROFIT,
    Commission,
    CommissionableLine,
    CommissionCalculation,
    CommissionKind,
    CommissionStatus,
    CommissionSummary,
)
from settlement_modules.commissions.service import CommissionService
from settlement_modules.commissions.workflows import COMMISSION_WORKFLOW

__all__ = [
    "COMMISSION_WORKFLOW",
    "NON_POSITIVE_PROFIT",
    "Commission",
    "CommissionableLine",
    "CommissionCalculation",
    "CommissionKind",
    "CommissionService",
    "CommissionStatus",
    "CommissionSummary",
    "calculate_line_commission",
    "line_profit",
]
