"""
Payroll Module.

Monthly payroll periods: attendance entries, the pure gross-to-net
calculator, the period lifecycle (draft, calculating, calculated,
approved, paid), result queries and payslip documents.
"""

from settlement_modules.payroll.calculator import PayrollCalculator
from settlement_modules.payroll.directory import EmployeeDirectory, SqlEmployeeDirectory
from settlement_modules.payroll.models import (
    ComponentLine,
    ComponentType,
    EmployeeCompensation,
    EmployeePayroll,
    EmployeeSnapshot,
    PayrollEntry,
    PayrollEntryInput,
    PayrollPeriodInfo,
    PayrollPeriodStatus,
    PayrollResultInfo,
    PayslipInfo,
)
from settlement_modules.payroll.selectors import PayrollSelector
from settlement_modules.payroll.service import PayrollService
from settlement_modules.payroll.slips import PayslipService, SlipStorage
from settlement_modules.payroll.workflows import PAYROLL_PERIOD_WORKFLOW

__all__ = [
    "PAYROLL_PERIOD_WORKFLOW",
    "ComponentLine",
    "ComponentType",
    "EmployeeCompensation",
    "EmployeeDirectory",
    "EmployeePayroll",
    "EmployeeSnapshot",
    "PayrollCalculator",
    "PayrollEntry",
    "PayrollEntryInput",
    "PayrollPeriodInfo",
    "PayrollPeriodStatus",
    "PayrollResultInfo",
    "PayrollSelector",
    "PayrollService",
    "PayslipInfo",
    "PayslipService",
    "SlipStorage",
    "SqlEmployeeDirectory",
]
