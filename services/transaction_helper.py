"""
Transaction Helper Service

Database safety features shared by the services:
- Commit/rollback around service calls
- Retry logic for dropped connections
- Recognition of legacy-schema errors (missing optional columns)
"""

from functools import wraps
from typing import Callable, Optional
import logging
import re
from sqlalchemy.exc import OperationalError, DisconnectionError
from app import db
import time

logger = logging.getLogger(__name__)

# Postgres SQLSTATE codes
UNDEFINED_COLUMN = '42703'
NOT_NULL_VIOLATION = '23502'

_MISSING_COLUMN_PATTERNS = (
    re.compile(r'column .* does not exist', re.IGNORECASE),
    re.compile(r'no such column', re.IGNORECASE),
    re.compile(r'has no column named', re.IGNORECASE),
    re.compile(r'could not find the .* column', re.IGNORECASE),
)


class TransactionHelper:
    """Helper class for managing database transactions safely"""

    @staticmethod
    def with_transaction(func: Callable) -> Callable:
        """
        Decorator that wraps a function in a database transaction.
        Commits on success, rolls back and re-raises on any exception.
        Dropped connections are retried; everything else propagates at once.

        Usage:
            @TransactionHelper.with_transaction
            def assign_vehicle(self, vehicle_id, driver_id):
                # Your database operations here
                pass
        """
        @wraps(func)
        def wrapper(*args, **kwargs):
            max_retries = 3
            for attempt in range(max_retries):
                try:
                    result = func(*args, **kwargs)
                    db.session.commit()
                    return result
                except (DisconnectionError, OperationalError) as e:
                    db.session.rollback()
                    if TransactionHelper.is_missing_column_error(e) or attempt == max_retries - 1:
                        logger.error(f"Transaction failed after {attempt + 1} attempt(s): {str(e)}")
                        raise
                    logger.warning(f"Database connection error (attempt {attempt + 1}/{max_retries}): "
                                   f"{str(e)}. Retrying...")
                    time.sleep(0.5 * (2 ** attempt))
                except Exception:
                    db.session.rollback()
                    raise
            return None
        return wrapper

    @staticmethod
    def sqlstate(exc: BaseException) -> Optional[str]:
        """Return the Postgres SQLSTATE carried by a DBAPI error, if any."""
        orig = getattr(exc, 'orig', exc)
        return getattr(orig, 'pgcode', None) or getattr(orig, 'sqlstate', None)

    @staticmethod
    def is_missing_column_error(exc: BaseException) -> bool:
        """
        Check whether an error means the deployed schema lacks a column.

        Args:
            exc: Exception raised by a query or insert

        Returns:
            bool: True for undefined-column errors
        """
        if TransactionHelper.sqlstate(exc) == UNDEFINED_COLUMN:
            return True
        message = str(getattr(exc, 'orig', exc))
        return any(pattern.search(message) for pattern in _MISSING_COLUMN_PATTERNS)

    @staticmethod
    def is_not_null_violation(exc: BaseException, column: str) -> bool:
        """Check whether an error is a NOT NULL violation on the given column."""
        message = str(getattr(exc, 'orig', exc))
        if TransactionHelper.sqlstate(exc) == NOT_NULL_VIOLATION:
            return column in message
        return 'NOT NULL constraint failed' in message and column in message
