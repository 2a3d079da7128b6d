"""
Tax Resolver (``settlement_modules.tax.resolver``).

Responsibility
--------------
Pure functions that turn ``(tax type, taxable income, as-of date)`` into a
withheld amount using the closed-form progressive formula::

    withheld = max(0, income * rate - deduction)

where ``rate`` and ``deduction`` come from the single matching bracket.
The deduction constant pre-compensates for the lower brackets, so the
amounts of lower brackets are never summed.

Architecture position
---------------------
**Modules layer, pure core** -- no I/O, no clock, no session.  Brackets
are read-only inputs; ``TaxBracketService`` loads them from the database
and ``PayrollCalculator`` receives resolved ``BracketSet`` values.

Invariants enforced
-------------------
* Deterministic: identical inputs always yield identical outputs.
* Income below the lowest ``range_start`` yields zero.
* Income above the highest bounded ``range_end`` is capped at that bound
  (statutory contribution ceiling).
* No bracket set for the date is a ``MissingTaxBracketsError``; two
  windows covering the date is an ``AmbiguousTaxBracketsError``.

Failure modes
-------------
* ``ConfigurationError`` subclasses from ``select_bracket_set``.
* ``InvalidBracketTableError`` from ``validate_bracket_window``.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import date
from decimal import Decimal

from settlement_kernel.domain.money import CENT, ZERO, non_negative, round2
from settlement_kernel.exceptions import (
    AmbiguousTaxBracketsError,
    InvalidBracketTableError,
    MissingTaxBracketsError,
)
from settlement_kernel.logging_config import get_logger
from settlement_modules.tax.models import BracketSet, TaxBracket, TaxType

logger = get_logger("modules.tax.resolver")


def _ordered(brackets: Iterable[TaxBracket]) -> tuple[TaxBracket, ...]:
    return tuple(sorted(brackets, key=lambda b: (b.range_start, b.sort_order)))


def validate_bracket_window(
    tax_type: TaxType,
    effective_from: date,
    brackets: Sequence[TaxBracket],
) -> None:
    """Check one window for gaps, overlaps and out-of-range values.

    Consecutive ranges must be contiguous to the cent: the next
    ``range_start`` lies strictly above the previous ``range_end`` and no
    more than one cent past it.  Only the last bracket may be unbounded.
    """
    errors: list[str] = []
    if not brackets:
        errors.append("window has no brackets")

    ordered = _ordered(brackets)
    sort_orders = [b.sort_order for b in brackets]
    if len(set(sort_orders)) != len(sort_orders):
        errors.append("sort_order values must be unique")
    if [b.sort_order for b in ordered] != sorted(sort_orders):
        errors.append("sort_order must ascend with range_start")

    for index, bracket in enumerate(ordered):
        label = f"bracket {bracket.sort_order}"
        if bracket.tax_type != tax_type:
            errors.append(f"{label} has tax type {bracket.tax_type.value}")
        if bracket.range_start < ZERO:
            errors.append(f"{label} starts below zero")
        if not (ZERO <= bracket.rate <= Decimal("1")):
            errors.append(f"{label} rate {bracket.rate} outside [0, 1]")
        if bracket.deduction < ZERO:
            errors.append(f"{label} has a negative deduction")
        if bracket.range_end is not None and bracket.range_end < bracket.range_start:
            errors.append(f"{label} ends before it starts")
        is_last = index == len(ordered) - 1
        if bracket.range_end is None and not is_last:
            errors.append(f"{label} is unbounded but not the top bracket")
        if index > 0:
            previous = ordered[index - 1]
            if previous.range_end is None:
                continue
            step = bracket.range_start - previous.range_end
            if step <= ZERO:
                errors.append(f"{label} overlaps bracket {previous.sort_order}")
            elif step > CENT:
                errors.append(
                    f"gap between {previous.range_end} and {bracket.range_start}"
                )

    if errors:
        raise InvalidBracketTableError(
            tax_type.value, effective_from.isoformat(), errors
        )


def select_bracket_set(
    brackets: Iterable[TaxBracket],
    tax_type: TaxType,
    as_of: date,
) -> BracketSet:
    """Pick the single active window of ``tax_type`` in force on ``as_of``."""
    matching = [
        b for b in brackets if b.tax_type == tax_type and b.is_effective_on(as_of)
    ]
    if not matching:
        raise MissingTaxBracketsError(tax_type.value, as_of.isoformat())

    windows = sorted({(b.effective_from, b.effective_to) for b in matching}, key=str)
    if len(windows) > 1:
        raise AmbiguousTaxBracketsError(
            tax_type.value,
            as_of.isoformat(),
            [f"{start}..{end or 'open'}" for start, end in windows],
        )

    effective_from, effective_to = windows[0]
    return BracketSet(
        tax_type=tax_type,
        effective_from=effective_from,
        effective_to=effective_to,
        brackets=_ordered(matching),
    )


def find_bracket(bracket_set: BracketSet, income: Decimal) -> TaxBracket | None:
    """The bracket with the greatest ``range_start`` not above ``income``.

    Ties on ``range_start`` go to the lowest ``sort_order``.  Returns None
    when income is below the lowest bracket.
    """
    chosen: TaxBracket | None = None
    for bracket in bracket_set.brackets:
        if bracket.range_start > income:
            break
        if chosen is None or bracket.range_start > chosen.range_start:
            chosen = bracket
    return chosen


def resolve_withholding(bracket_set: BracketSet, taxable_income: Decimal) -> Decimal:
    """Withheld amount for ``taxable_income`` under ``bracket_set``."""
    bracket = find_bracket(bracket_set, taxable_income)
    if bracket is None:
        return ZERO.quantize(CENT)

    base = taxable_income
    if (
        bracket is bracket_set.top
        and bracket.range_end is not None
        and taxable_income > bracket.range_end
    ):
        base = bracket.range_end

    return round2(non_negative(base * bracket.rate - bracket.deduction))


class TaxResolver:
    """
    Resolver bound to a fixed collection of brackets.

    Contract:
        ``resolve(tax_type, taxable_income, as_of)`` selects the window and
        applies ``resolve_withholding``.  Bracket sets are cached per
        ``(tax_type, as_of)``; the instance holds no other state.
    """

    def __init__(self, brackets: Iterable[TaxBracket]):
        self._brackets = tuple(brackets)
        self._cache: dict[tuple[TaxType, date], BracketSet] = {}

    def bracket_set(self, tax_type: TaxType, as_of: date) -> BracketSet:
        key = (tax_type, as_of)
        if key not in self._cache:
            self._cache[key] = select_bracket_set(self._brackets, tax_type, as_of)
        return self._cache[key]

    def resolve(self, tax_type: TaxType, taxable_income: Decimal, as_of: date) -> Decimal:
        withheld = resolve_withholding(self.bracket_set(tax_type, as_of), taxable_income)
        logger.debug(
            "tax_resolved",
            extra={
                "tax_type": tax_type.value,
                "taxable_income": str(taxable_income),
                "as_of": as_of.isoformat(),
                "withheld": str(withheld),
            },
        )
        return withheld
