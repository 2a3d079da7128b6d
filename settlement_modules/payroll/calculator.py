"""
Payroll Calculator (``settlement_modules.payroll.calculator``).

Responsibility
--------------
Turns one employee's standing compensation and attendance entry into an
``EmployeePayroll``: gross pay, social contribution, income withholding,
net pay, employer cost and the ordered component lines.

Architecture position
---------------------
**Modules layer, pure core** -- no session, no clock, no I/O.  Bracket
sets are resolved by the caller and passed in, so one calculation run
uses exactly one bracket window per tax type.

Invariants enforced
-------------------
* Intermediate rates are rounded to four places, money to cents, both
  ROUND_HALF_UP.
* Gross and net pay are never negative.
* Component sequences start at 10 and step by 10: earnings, then
  deductions, then contributions.  Zero-valued lines are omitted except
  the base salary.
"""

from __future__ import annotations

from decimal import Decimal

from settlement_config.schema import PayrollSettings
from settlement_kernel.domain.money import ZERO, non_negative, round2, round4
from settlement_modules.payroll.models import (
    ComponentLine,
    ComponentType,
    EmployeeCompensation,
    EmployeePayroll,
    PayrollEntryInput,
)
from settlement_modules.tax.models import BracketSet, TaxType
from settlement_modules.tax.resolver import resolve_withholding

SEQUENCE_START = 10
SEQUENCE_STEP = 10


class PayrollCalculator:
    """
    Pure monthly payroll calculation.

    Contract:
        ``calculate`` is deterministic: identical compensation, entry and
        bracket sets always give an identical ``EmployeePayroll``.

    Non-goals:
        Does not decide which employees are eligible and does not persist
        anything.
    """

    def __init__(self, settings: PayrollSettings | None = None):
        self.settings = settings or PayrollSettings()

    def calculate(
        self,
        compensation: EmployeeCompensation,
        entry: PayrollEntryInput,
        social_set: BracketSet,
        withholding_set: BracketSet,
    ) -> EmployeePayroll:
        if social_set.tax_type != TaxType.SOCIAL_CONTRIBUTION:
            raise ValueError("social_set must hold social contribution brackets")
        if withholding_set.tax_type != TaxType.INCOME_WITHHOLDING:
            raise ValueError("withholding_set must hold income withholding brackets")

        s = self.settings
        base = round2(compensation.base_salary)
        hourly_rate = round4(base / s.monthly_workload_hours)
        daily_rate = round4(base / s.days_per_month)

        unjustified_days = non_negative(entry.absence_days - entry.justified_absence_days)
        overtime = round2(hourly_rate * entry.overtime_hours * s.overtime_multiplier)
        absence = round2(daily_rate * unjustified_days)
        lateness = round2(hourly_rate * entry.lateness_hours)
        bonus = round2(entry.bonus_amount)

        total_earnings = round2(base + overtime + bonus)
        gross = non_negative(round2(total_earnings - absence - lateness))
        taxable_base = non_negative(round2(gross - compensation.non_taxable_earnings))

        social = resolve_withholding(social_set, taxable_base)
        withholding_base = non_negative(
            round2(taxable_base - social - compensation.dependents * s.dependent_deduction)
        )
        income_withholding = resolve_withholding(withholding_set, withholding_base)

        total_deductions = round2(absence + lateness + income_withholding)
        net = non_negative(round2(gross - social - income_withholding))
        additional_cost = round2(gross * (s.employer_social_rate + s.fgts_rate))

        components = self._components(
            base=base,
            hourly_rate=hourly_rate,
            overtime_hours=entry.overtime_hours,
            overtime=overtime,
            bonus=bonus,
            unjustified_days=unjustified_days,
            absence=absence,
            lateness_hours=entry.lateness_hours,
            lateness=lateness,
            withholding_base=withholding_base,
            income_withholding=income_withholding,
            taxable_base=taxable_base,
            social=social,
        )

        return EmployeePayroll(
            snapshot=compensation.snapshot(),
            base_salary=base,
            hourly_rate=hourly_rate,
            daily_rate=daily_rate,
            overtime_hours=entry.overtime_hours,
            overtime_amount=overtime,
            bonus_amount=bonus,
            unjustified_absence_days=unjustified_days,
            absence_amount=absence,
            lateness_hours=entry.lateness_hours,
            lateness_amount=lateness,
            gross_salary=gross,
            taxable_base=taxable_base,
            social_contribution=social,
            withholding_base=withholding_base,
            income_withholding=income_withholding,
            total_earnings=total_earnings,
            total_deductions=total_deductions,
            total_contributions=social,
            net_salary=net,
            additional_employer_cost=additional_cost,
            employer_cost=round2(gross + additional_cost),
            components=components,
        )

    def _components(
        self,
        *,
        base: Decimal,
        hourly_rate: Decimal,
        overtime_hours: Decimal,
        overtime: Decimal,
        bonus: Decimal,
        unjustified_days: Decimal,
        absence: Decimal,
        lateness_hours: Decimal,
        lateness: Decimal,
        withholding_base: Decimal,
        income_withholding: Decimal,
        taxable_base: Decimal,
        social: Decimal,
    ) -> tuple[ComponentLine, ...]:
        # (code, description, type, amount, quantity, base_amount, rate, fgts, taxable)
        candidates = [
            ("BASE", "Base salary", ComponentType.EARNING, base,
             None, base, None, True, True),
            ("OVERTIME", "Overtime", ComponentType.EARNING, overtime,
             overtime_hours, base, hourly_rate, True, True),
            ("BONUS", "Bonus", ComponentType.EARNING, bonus,
             None, None, None, True, True),
            ("ABSENCE", "Unjustified absence", ComponentType.DEDUCTION, absence,
             unjustified_days, None, None, False, False),
            ("LATENESS", "Lateness", ComponentType.DEDUCTION, lateness,
             lateness_hours, None, hourly_rate, False, False),
            ("INCOME_WITHHOLDING", "Income tax withholding", ComponentType.DEDUCTION,
             income_withholding, None, withholding_base, None, False, True),
            ("SOCIAL_CONTRIBUTION", "Social security contribution",
             ComponentType.CONTRIBUTION, social, None, taxable_base, None, True, True),
        ]

        lines = []
        sequence = SEQUENCE_START
        for code, description, kind, amount, qty, base_amount, rate, fgts, taxable in candidates:
            if amount == ZERO and code != "BASE":
                continue
            lines.append(ComponentLine(
                sequence=sequence,
                code=code,
                description=description,
                component_type=kind,
                amount=amount,
                quantity=qty,
                base_amount=base_amount,
                rate=rate,
                impacts_fgts=fgts,
                is_taxable=taxable,
            ))
            sequence += SEQUENCE_STEP
        return tuple(lines)
