"""
BaseService -- abstract base for all settlement services.

Responsibility:
    Provides the common constructor for every write-side service: the
    caller's SQLAlchemy ``Session`` and an injectable ``Clock``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.  Module services
    (payroll, commissions, performance, sales, tax) extend this class.

Invariants enforced:
    Module services own the transaction boundary of each public method
    (commit on success, rollback on failure) through
    ``settlement_modules._transaction.transaction_boundary``.  Private
    helpers only flush.
"""

from abc import ABC

from sqlalchemy.orm import Session

from settlement_kernel.domain.clock import Clock, SystemClock


class BaseService(ABC):
    """
    Abstract base class for settlement services.

    Contract:
        Accepts a SQLAlchemy ``Session`` and an optional ``Clock``.  No
        method reads the system time except through ``self._clock``.

    Non-goals:
        - Does NOT provide read-only query methods -- those belong in
          selectors.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self._clock = clock or SystemClock()
