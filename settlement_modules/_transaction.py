"""
Shared transaction helper for module services.

Every public write method of a module service owns its transaction
boundary: commit on success, rollback and re-raise on any exception.

Architecture: Modules layer.  Imports only from settlement_kernel.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from logging import Logger
from typing import Any

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from settlement_kernel.exceptions import ConcurrentModificationError, SettlementError


@contextmanager
def transaction_boundary(
    session: Session,
    logger: Logger,
    operation: str,
    **fields: Any,
) -> Iterator[None]:
    """Commit the session on success, otherwise roll back and re-raise.

    Typed ``SettlementError`` failures are logged at WARNING; anything else
    is logged with the traceback at ERROR.  ``StaleDataError`` raised by a
    version-checked flush is translated to ``ConcurrentModificationError``.
    """
    extra = {k: (str(v) if v is not None else None) for k, v in fields.items()}
    try:
        yield
        session.commit()
    except StaleDataError as exc:
        session.rollback()
        logger.warning(f"{operation}_conflict", extra=extra)
        raise ConcurrentModificationError(
            entity_type=operation,
            entity_id=extra.get("period_id") or extra.get("entity_id") or "unknown",
        ) from exc
    except SettlementError as exc:
        session.rollback()
        logger.warning(
            f"{operation}_rejected",
            extra={**extra, "error_code": exc.code, "error": str(exc)},
        )
        raise
    except Exception:
        session.rollback()
        logger.exception(f"{operation}_failed", extra=extra)
        raise
