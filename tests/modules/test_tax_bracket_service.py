"""
Tests for TaxBracketService: seeding, window installation and retirement.
"""

from datetime import date
from decimal import Decimal

import pytest

from settlement_config.schema import TaxBracketDef
from settlement_kernel.exceptions import InvalidBracketTableError, MissingTaxBracketsError
from settlement_modules.tax.models import TaxType


def _flat(rate: str, start="0") -> tuple[TaxBracketDef, ...]:
    return (TaxBracketDef(
        range_start=Decimal(start), range_end=None, rate=Decimal(rate),
        deduction=Decimal("0"), sort_order=1,
    ),)


class TestSeeding:

    def test_seed_installs_both_tables(self, tax_service, settings, test_actor_id):
        assert tax_service.seed_from_config(settings, test_actor_id) == 2
        assert len(tax_service.all_brackets(TaxType.SOCIAL_CONTRIBUTION)) == 4
        assert len(tax_service.all_brackets(TaxType.INCOME_WITHHOLDING)) == 5

    def test_seed_is_idempotent(self, seeded_brackets, settings, test_actor_id):
        assert seeded_brackets.seed_from_config(settings, test_actor_id) == 0
        assert len(seeded_brackets.all_brackets()) == 9

    def test_resolver_over_stored_rows(self, seeded_brackets):
        resolver = seeded_brackets.resolver()
        assert resolver.resolve(
            TaxType.INCOME_WITHHOLDING, Decimal("3000.00"), date(2025, 3, 1),
        ) == Decimal("68.56")


class TestWindows:

    def test_new_window_closes_previous(self, seeded_brackets, test_actor_id):
        seeded_brackets.install_table(
            TaxType.SOCIAL_CONTRIBUTION, date(2026, 1, 1), _flat("0.10"), test_actor_id,
        )
        old = seeded_brackets.load_bracket_set(TaxType.SOCIAL_CONTRIBUTION, date(2025, 12, 31))
        new = seeded_brackets.load_bracket_set(TaxType.SOCIAL_CONTRIBUTION, date(2026, 1, 1))
        assert old.effective_to == date(2026, 1, 1)
        assert len(old.brackets) == 4
        assert new.brackets[0].rate == Decimal("0.10")

    def test_backdated_window_ends_at_next_one(self, seeded_brackets, test_actor_id):
        installed = seeded_brackets.install_table(
            TaxType.SOCIAL_CONTRIBUTION, date(2024, 1, 1), _flat("0.05"), test_actor_id,
        )
        assert installed.effective_to == date(2025, 1, 1)

    def test_duplicate_window_rejected(self, seeded_brackets, test_actor_id):
        with pytest.raises(InvalidBracketTableError):
            seeded_brackets.install_table(
                TaxType.SOCIAL_CONTRIBUTION, date(2025, 1, 1), _flat("0.10"), test_actor_id,
            )

    def test_window_inside_closed_window_rejected(self, seeded_brackets, test_actor_id):
        seeded_brackets.close_window(
            TaxType.INCOME_WITHHOLDING, date(2025, 1, 1), date(2025, 7, 1), test_actor_id,
        )
        with pytest.raises(InvalidBracketTableError) as exc_info:
            seeded_brackets.install_table(
                TaxType.INCOME_WITHHOLDING, date(2025, 3, 1), _flat("0.10"), test_actor_id,
            )
        assert "2025-07-01" in exc_info.value.errors[0]
        assert len(seeded_brackets.all_brackets(TaxType.INCOME_WITHHOLDING)) == 5

    def test_window_after_closed_window_allowed(self, seeded_brackets, test_actor_id):
        seeded_brackets.close_window(
            TaxType.INCOME_WITHHOLDING, date(2025, 1, 1), date(2025, 7, 1), test_actor_id,
        )
        installed = seeded_brackets.install_table(
            TaxType.INCOME_WITHHOLDING, date(2025, 7, 1), _flat("0.10"), test_actor_id,
        )
        assert installed.effective_from == date(2025, 7, 1)
        assert installed.effective_to is None

    def test_explicit_end_past_next_window_rejected(self, seeded_brackets, test_actor_id):
        with pytest.raises(InvalidBracketTableError):
            seeded_brackets.install_table(
                TaxType.SOCIAL_CONTRIBUTION, date(2024, 1, 1), _flat("0.05"), test_actor_id,
                effective_to=date(2025, 3, 1),
            )

    def test_invalid_window_leaves_table_unchanged(self, seeded_brackets, test_actor_id):
        bad = (
            TaxBracketDef(Decimal("0"), Decimal("100"), Decimal("0.1"), Decimal("0"), 1),
            TaxBracketDef(Decimal("500"), None, Decimal("0.2"), Decimal("0"), 2),
        )
        with pytest.raises(InvalidBracketTableError):
            seeded_brackets.install_table(
                TaxType.SOCIAL_CONTRIBUTION, date(2026, 1, 1), bad, test_actor_id,
            )
        current = seeded_brackets.load_bracket_set(TaxType.SOCIAL_CONTRIBUTION, date(2026, 6, 1))
        assert current.effective_to is None

    def test_close_window(self, seeded_brackets, test_actor_id):
        seeded_brackets.close_window(
            TaxType.INCOME_WITHHOLDING, date(2025, 1, 1), date(2025, 7, 1), test_actor_id,
        )
        with pytest.raises(MissingTaxBracketsError):
            seeded_brackets.load_bracket_set(TaxType.INCOME_WITHHOLDING, date(2025, 7, 1))

    def test_close_before_start_rejected(self, seeded_brackets, test_actor_id):
        with pytest.raises(InvalidBracketTableError):
            seeded_brackets.close_window(
                TaxType.INCOME_WITHHOLDING, date(2025, 1, 1), date(2025, 1, 1), test_actor_id,
            )

    def test_deactivate_window(self, seeded_brackets, test_actor_id, captured_logs):
        seeded_brackets.deactivate_window(
            TaxType.INCOME_WITHHOLDING, date(2025, 1, 1), test_actor_id,
        )
        with pytest.raises(MissingTaxBracketsError):
            seeded_brackets.load_bracket_set(TaxType.INCOME_WITHHOLDING, date(2025, 3, 1))
        assert any(r["message"] == "tax_window_deactivated" for r in captured_logs())
