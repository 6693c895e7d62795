"""
Transactional execution with retry on transient database failures.
"""
import logging
import time
from django.conf import settings
from django.db import connection, transaction, InterfaceError, OperationalError

from apps.core.exceptions import TransientPersistenceError

logger = logging.getLogger(__name__)

TRANSIENT_DB_ERRORS = (OperationalError, InterfaceError)

BACKOFF_MULTIPLIER = 2


def _calculate_retry_delay(attempt: int) -> float:
    """
    Calculate exponential backoff delay.

    Args:
        attempt: Number of the attempt that just failed (1-based)

    Returns:
        Delay in seconds
    """
    initial = getattr(settings, 'DB_RETRY_INITIAL_DELAY', 0.1)
    maximum = getattr(settings, 'DB_RETRY_MAX_DELAY', 2.0)
    delay = initial * (BACKOFF_MULTIPLIER ** (attempt - 1))
    return min(delay, maximum)


def run_in_transaction(func, *args, label=None, attempts=None, **kwargs):
    """
    Run ``func`` inside ``transaction.atomic()``, retrying transient failures.

    Each attempt is a fresh transaction, so a failed attempt leaves nothing
    behind. When already inside an atomic block the call is not retried:
    the outer transaction is broken and only its owner may retry it.

    Args:
        func: Callable performing the database work
        label: Name used in log messages
        attempts: Maximum attempts (defaults to settings.DB_RETRY_ATTEMPTS)

    Returns:
        Whatever ``func`` returns

    Raises:
        TransientPersistenceError: When every attempt failed transiently
    """
    label = label or getattr(func, '__name__', 'transaction')
    max_attempts = attempts or getattr(settings, 'DB_RETRY_ATTEMPTS', 3)

    if connection.in_atomic_block:
        with transaction.atomic():
            return func(*args, **kwargs)

    attempt = 0
    while True:
        attempt += 1
        try:
            with transaction.atomic():
                return func(*args, **kwargs)
        except TRANSIENT_DB_ERRORS as e:
            if attempt >= max_attempts:
                logger.error(
                    f"{label} failed after {attempt} attempts: {e}",
                    exc_info=True
                )
                raise TransientPersistenceError(
                    'The service is temporarily unavailable. Please try again.',
                    details={'operation': label},
                ) from e

            delay = _calculate_retry_delay(attempt)
            logger.warning(
                f"Transient database error in {label}, retrying in {delay}s "
                f"(attempt {attempt}/{max_attempts}): {e}"
            )
            connection.close_if_unusable_or_obsolete()
            time.sleep(delay)
