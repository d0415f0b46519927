"""
Whole-transaction retry for transient storage conflicts.

Deadlocks, serialization failures and lock/statement timeouts all surface
from the database driver as ``OperationalError``. The enclosing
``transaction.atomic()`` has already rolled back by the time we see it, so
the unit of work can simply be run again.
"""

import logging
import time

from django.conf import settings
from django.db import IntegrityError, OperationalError, transaction

from enrollments.exceptions import TransactionFailed

logger = logging.getLogger(__name__)


def run_atomic(fn, *args, attempts=None, backoff=None, **kwargs):
    """
    Run ``fn`` inside ``transaction.atomic()``, retrying on OperationalError.

    Inside an outer atomic block each attempt is a savepoint, and a lock
    held by the outer transaction is not released between attempts.

    Raises:
        TransactionFailed: when every attempt hit a transient conflict, or
            when a deferred constraint rejected the commit.
    """
    if attempts is None:
        attempts = getattr(settings, 'ENROLLMENT_TRANSACTION_ATTEMPTS', 3)
    if backoff is None:
        backoff = getattr(settings, 'ENROLLMENT_RETRY_BACKOFF', 0.05)
    attempts = max(1, attempts)

    for attempt in range(1, attempts + 1):
        try:
            with transaction.atomic():
                return fn(*args, **kwargs)
        except IntegrityError as e:
            logger.error('Transaction rejected by a constraint: %s', e)
            raise TransactionFailed() from e
        except OperationalError as e:
            if attempt == attempts:
                logger.error(
                    'Transaction failed after %s attempts: %s', attempts, e,
                )
                raise TransactionFailed() from e
            logger.warning(
                'Transient database error (attempt %s/%s), retrying: %s',
                attempt, attempts, e,
            )
            time.sleep(backoff * attempt)
