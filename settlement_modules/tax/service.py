"""
Tax Bracket Service (``settlement_modules.tax.service``).

Responsibility
--------------
Administrative maintenance of the statutory bracket table and the read
path that hands resolved ``BracketSet`` values to the payroll calculator.

Architecture position
---------------------
**Modules layer**.  Loads ``TaxBracketModel`` rows, converts them to DTOs
and delegates all selection/arithmetic to the pure functions in
``settlement_modules.tax.resolver``.

Invariants enforced
-------------------
* Every installed window passes ``validate_bracket_window``.
* A new window closes the still-open window that precedes it, so two
  windows never cover the same date.
* Bracket rows are never edited in place (rates, ranges, deductions).

Failure modes
-------------
* ``InvalidBracketTableError`` -- malformed window or window already installed.
* ``MissingTaxBracketsError`` / ``AmbiguousTaxBracketsError`` from
  ``load_bracket_set``.

Audit relevance
---------------
``tax_window_installed`` / ``tax_window_closed`` log events record who
changed the statutory tables and when.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from settlement_config.schema import EngineSettings, TaxBracketDef
from settlement_kernel.domain.clock import Clock
from settlement_kernel.exceptions import InvalidBracketTableError
from settlement_kernel.logging_config import get_logger
from settlement_kernel.services.base import BaseService
from settlement_modules._transaction import transaction_boundary
from settlement_modules.tax.models import BracketSet, TaxBracket, TaxType
from settlement_modules.tax.orm import TaxBracketModel
from settlement_modules.tax.resolver import (
    TaxResolver,
    select_bracket_set,
    validate_bracket_window,
)

logger = get_logger("modules.tax.service")


class TaxBracketService(BaseService):
    """
    Maintains bracket windows and serves resolved bracket sets.

    Contract
    --------
    * ``install_table`` / ``close_window`` / ``deactivate_window`` /
      ``seed_from_config`` commit on success and roll back on failure.
    * ``load_bracket_set`` and ``resolver`` are read-only.

    Guarantees
    ----------
    * Resolved bracket sets are cached per ``(tax_type, as_of)`` for the
      lifetime of the instance; any write clears the cache.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session, clock)
        self._cache: dict[tuple[TaxType, date], BracketSet] = {}

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def all_brackets(self, tax_type: TaxType | None = None) -> list[TaxBracket]:
        stmt = select(TaxBracketModel).order_by(
            TaxBracketModel.tax_type,
            TaxBracketModel.effective_from,
            TaxBracketModel.sort_order,
        )
        if tax_type is not None:
            stmt = stmt.where(TaxBracketModel.tax_type == tax_type.value)
        return [row.to_dto() for row in self.session.scalars(stmt)]

    def load_bracket_set(self, tax_type: TaxType, as_of: date) -> BracketSet:
        """Resolve the single window of ``tax_type`` in force on ``as_of``."""
        key = (tax_type, as_of)
        if key not in self._cache:
            self._cache[key] = select_bracket_set(
                self.all_brackets(tax_type), tax_type, as_of
            )
        return self._cache[key]

    def resolver(self) -> TaxResolver:
        """A pure resolver over every stored bracket."""
        return TaxResolver(self.all_brackets())

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def install_table(
        self,
        tax_type: TaxType,
        effective_from: date,
        brackets: Sequence[TaxBracketDef],
        actor_id: UUID,
        effective_to: date | None = None,
    ) -> BracketSet:
        """Validate and insert a new bracket window.

        The open window that starts before ``effective_from`` is closed on
        ``effective_from``; when a later window already exists the new one
        ends where that one starts.
        A window that would overlap an earlier closed window, or run past
        the start of a later one, is rejected.
        """
        with transaction_boundary(
            self.session, logger, "tax_window_install",
            tax_type=tax_type.value, effective_from=effective_from,
        ):
            installed = self._install(tax_type, effective_from, brackets, actor_id, effective_to)
        return installed

    def _install(
        self,
        tax_type: TaxType,
        effective_from: date,
        brackets: Sequence[TaxBracketDef],
        actor_id: UUID,
        effective_to: date | None,
    ) -> BracketSet:
        existing = self._window_rows(tax_type, effective_from)
        if existing:
            raise InvalidBracketTableError(
                tax_type.value, effective_from.isoformat(), ["window already installed"]
            )

        # Window ends are exclusive; a closed earlier window must end by our start.
        overlapping_end = self.session.scalar(
            select(TaxBracketModel.effective_to)
            .where(
                TaxBracketModel.tax_type == tax_type.value,
                TaxBracketModel.effective_from < effective_from,
                TaxBracketModel.effective_to > effective_from,
            )
            .limit(1)
        )
        if overlapping_end is not None:
            raise InvalidBracketTableError(
                tax_type.value,
                effective_from.isoformat(),
                [f"overlaps an earlier window closed at {overlapping_end.isoformat()}"],
            )

        later_start = self.session.scalar(
            select(TaxBracketModel.effective_from)
            .where(
                TaxBracketModel.tax_type == tax_type.value,
                TaxBracketModel.effective_from > effective_from,
            )
            .order_by(TaxBracketModel.effective_from)
            .limit(1)
        )
        if effective_to is None and later_start is not None:
            effective_to = later_start
        elif later_start is not None and effective_to > later_start:
            raise InvalidBracketTableError(
                tax_type.value,
                effective_from.isoformat(),
                [f"runs past the next window starting {later_start.isoformat()}"],
            )

        dtos = [
            TaxBracket(
                tax_type=tax_type,
                range_start=b.range_start,
                range_end=b.range_end,
                rate=b.rate,
                deduction=b.deduction,
                effective_from=effective_from,
                effective_to=effective_to,
                sort_order=b.sort_order,
            )
            for b in brackets
        ]
        validate_bracket_window(tax_type, effective_from, dtos)

        # Close the preceding open window
        open_rows = self.session.scalars(
            select(TaxBracketModel).where(
                TaxBracketModel.tax_type == tax_type.value,
                TaxBracketModel.effective_from < effective_from,
                TaxBracketModel.effective_to.is_(None),
            )
        ).all()
        for row in open_rows:
            row.effective_to = effective_from
            row.updated_by_id = actor_id

        for dto in dtos:
            self.session.add(TaxBracketModel.from_dto(dto, created_by_id=actor_id))
        self.session.flush()
        self._cache.clear()

        logger.info(
            "tax_window_installed",
            extra={
                "tax_type": tax_type.value,
                "effective_from": effective_from.isoformat(),
                "effective_to": effective_to.isoformat() if effective_to else None,
                "bracket_count": len(dtos),
                "closed_rows": len(open_rows),
            },
        )
        return select_bracket_set(dtos, tax_type, effective_from)

    def close_window(
        self,
        tax_type: TaxType,
        effective_from: date,
        effective_to: date,
        actor_id: UUID,
    ) -> None:
        """Set ``effective_to`` on every row of a window."""
        if effective_to <= effective_from:
            raise InvalidBracketTableError(
                tax_type.value, effective_from.isoformat(),
                [f"effective_to {effective_to} must be after effective_from"],
            )
        with transaction_boundary(
            self.session, logger, "tax_window_close",
            tax_type=tax_type.value, effective_from=effective_from,
        ):
            rows = self._require_window(tax_type, effective_from)
            for row in rows:
                row.effective_to = effective_to
                row.updated_by_id = actor_id
            self.session.flush()
            self._cache.clear()
            logger.info(
                "tax_window_closed",
                extra={
                    "tax_type": tax_type.value,
                    "effective_from": effective_from.isoformat(),
                    "effective_to": effective_to.isoformat(),
                },
            )

    def deactivate_window(
        self,
        tax_type: TaxType,
        effective_from: date,
        actor_id: UUID,
    ) -> None:
        """Withdraw a window without deleting it."""
        with transaction_boundary(
            self.session, logger, "tax_window_deactivate",
            tax_type=tax_type.value, effective_from=effective_from,
        ):
            for row in self._require_window(tax_type, effective_from):
                row.is_active = False
                row.updated_by_id = actor_id
            self.session.flush()
            self._cache.clear()
            logger.info(
                "tax_window_deactivated",
                extra={
                    "tax_type": tax_type.value,
                    "effective_from": effective_from.isoformat(),
                },
            )

    def seed_from_config(self, settings: EngineSettings, actor_id: UUID) -> int:
        """Install the configured tables that are not present yet.

        Returns:
            Number of windows installed.
        """
        installed = 0
        with transaction_boundary(self.session, logger, "tax_seed"):
            for table in settings.tax_tables:
                tax_type = TaxType(table.tax_type)
                if self._window_rows(tax_type, table.effective_from):
                    continue
                self._install(
                    tax_type, table.effective_from, table.brackets,
                    actor_id, table.effective_to,
                )
                installed += 1
        logger.info(
            "tax_tables_seeded",
            extra={"config_id": settings.config_id, "installed": installed},
        )
        return installed

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _window_rows(self, tax_type: TaxType, effective_from: date) -> list[TaxBracketModel]:
        return list(
            self.session.scalars(
                select(TaxBracketModel).where(
                    TaxBracketModel.tax_type == tax_type.value,
                    TaxBracketModel.effective_from == effective_from,
                )
            )
        )

    def _require_window(self, tax_type: TaxType, effective_from: date) -> list[TaxBracketModel]:
        rows = self._window_rows(tax_type, effective_from)
        if not rows:
            raise InvalidBracketTableError(
                tax_type.value, effective_from.isoformat(), ["window not found"]
            )
        return rows
