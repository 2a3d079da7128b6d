"""
Module ORM Registry (``settlement_modules._orm_registry``).

Responsibility
--------------
Ensure every module-level SQLAlchemy ORM model is imported so that
``Base.metadata`` contains its table definition before tables are created.

Usage
-----
``settlement_kernel.db.engine.init_engine_from_url()`` and ``create_tables()``
call ``import_all_orm_models()``.
"""


def import_all_orm_models() -> None:
    """Import every ``settlement_modules.*.orm`` module (idempotent)."""
    # fmt: off
    import settlement_modules.tax.orm  # noqa: F401
    import settlement_modules.payroll.orm  # noqa: F401
    import settlement_modules.sales.orm  # noqa: F401
    import settlement_modules.commissions.orm  # noqa: F401
    import settlement_modules.performance.orm  # noqa: F401
    # fmt: on
