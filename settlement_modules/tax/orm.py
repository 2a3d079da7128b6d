"""
Tax Bracket ORM Persistence Model (``settlement_modules.tax.orm``).

Responsibility:
    Persists ``TaxBracket`` rows.  The bracket table is shared reference
    data and is the only table in the engine that is not tenant-scoped.

Invariants enforced:
    - One row per (tax_type, effective_from, sort_order)
      (``uq_tax_bracket_window_order``).
    - Rows are never updated in place except for ``effective_to``,
      ``is_active`` and audit metadata, and are never deleted
      (ORM listener in ``settlement_kernel.db.immutability``).
"""

from datetime import date
from decimal import Decimal

from sqlalchemy import Boolean, Date, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from settlement_kernel.db.base import TrackedBase

TAX_BRACKET_MUTABLE_FIELDS = frozenset({"effective_to", "is_active"})


class TaxBracketModel(TrackedBase):
    """
    ORM model for ``TaxBracket``.

    Contract:
        A rate change is modelled by closing the old window
        (``effective_to``) and inserting a new window, never by editing a
        rate, range or deduction.
    """

    __tablename__ = "payroll_tax_brackets"

    tax_type: Mapped[str] = mapped_column(String(50), nullable=False)
    range_start: Mapped[Decimal] = mapped_column(nullable=False)
    range_end: Mapped[Decimal | None] = mapped_column(nullable=True)
    rate: Mapped[Decimal] = mapped_column(nullable=False)
    deduction: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    effective_from: Mapped[date] = mapped_column(Date, nullable=False)
    effective_to: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    sort_order: Mapped[int] = mapped_column(nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "tax_type", "effective_from", "sort_order",
            name="uq_tax_bracket_window_order",
        ),
        Index("idx_tax_bracket_type_window", "tax_type", "effective_from", "effective_to"),
    )

    def to_dto(self):
        from settlement_modules.tax.models import TaxBracket, TaxType
        return TaxBracket(
            id=self.id,
            tax_type=TaxType(self.tax_type),
            range_start=self.range_start,
            range_end=self.range_end,
            rate=self.rate,
            deduction=self.deduction,
            effective_from=self.effective_from,
            effective_to=self.effective_to,
            is_active=self.is_active,
            sort_order=self.sort_order,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id) -> "TaxBracketModel":
        return cls(
            tax_type=dto.tax_type.value,
            range_start=dto.range_start,
            range_end=dto.range_end,
            rate=dto.rate,
            deduction=dto.deduction,
            effective_from=dto.effective_from,
            effective_to=dto.effective_to,
            is_active=dto.is_active,
            sort_order=dto.sort_order,
            created_by_id=created_by_id,
        )

    def __repr__(self) -> str:
        return (
            f"<TaxBracketModel {self.tax_type} {self.range_start}-"
            f"{self.range_end or 'open'} @ {self.rate} from {self.effective_from}>"
        )
