"""
Tax Module.

Statutory progressive bracket tables (social contribution and income
withholding) and the pure resolver that applies them.
"""

from settlement_modules.tax.models import BracketSet, TaxBracket, TaxType
from settlement_modules.tax.resolver import (
    TaxResolver,
    find_bracket,
    resolve_withholding,
    select_bracket_set,
    validate_bracket_window,
)
from settlement_modules.tax.service import TaxBracketService

__all__ = [
    "BracketSet",
    "TaxBracket",
    "TaxType",
    "TaxResolver",
    "TaxBracketService",
    "find_bracket",
    "resolve_withholding",
    "select_bracket_set",
    "validate_bracket_window",
]
