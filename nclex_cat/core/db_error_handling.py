"""
Database error handling utilities.

Centralizes the pattern used by the item bank and session store:
1. Roll back the database session on error
2. Log the error with context
3. Raise ItemBankUnavailable so the caller can retry the turn

Engine errors raised inside the block (for example ConcurrentModification
from the session store) still trigger the rollback but propagate unchanged.

Usage:
    from nclex_cat.core.db_error_handling import handle_db_error

    with handle_db_error(db, "record item administration"):
        db.execute(stmt)
"""

import logging
from contextlib import contextmanager
from typing import Generator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from nclex_cat.core.cat.errors import CATError, ItemBankUnavailable

logger = logging.getLogger(__name__)


@contextmanager
def handle_db_error(
    db: Session,
    operation_name: str,
    *,
    log_level: int = logging.ERROR,
) -> Generator[None, None, None]:
    """Context manager for handling database errors consistently.

    Args:
        db: The SQLAlchemy session to roll back on error.
        operation_name: Human-readable name of the operation for error
            messages and logging (e.g., "load exam session").
        log_level: Logging level for storage failures. Defaults to ERROR.

    Raises:
        ItemBankUnavailable: On any SQLAlchemyError, with the session
            rolled back.
    """
    try:
        yield
    except CATError:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        logger.log(
            log_level,
            f"Database error during {operation_name}: {e}",
            exc_info=True,
        )
        raise ItemBankUnavailable(f"Failed to {operation_name}", original_error=e)
