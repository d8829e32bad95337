"""Transaction boundary for scheduling writes.

Writers for a doctor are serialised by bumping ``doctors.booking_version`` as the
first statement of the transaction. The row lock taken by that UPDATE is held
until commit, so the availability and overlap checks that follow see every
booking committed before them and no overlapping booking can commit after.
"""

import logging
from collections.abc import Callable
from typing import TypeVar

from sqlalchemy import update
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.orm import Session
from tenacity import Retrying, before_sleep_log, retry_if_exception, stop_after_attempt, wait_exponential
from tenacity.wait import wait_base

from clinic.core import config
from clinic.core.errors import InternalError, NotFoundError
from clinic.models.doctor import Doctor

logger = logging.getLogger(__name__)

T = TypeVar('T')


def is_transient_error(exc: BaseException) -> bool:
    # Deadlocks and serialization aborts surface as OperationalError subclasses.
    if isinstance(exc, OperationalError):
        return True
    return isinstance(exc, DBAPIError) and exc.connection_invalidated


def lock_doctor(db: Session, doctor_id: int) -> None:
    result = db.execute(
        update(Doctor)
        .where(Doctor.id == doctor_id)
        .values(booking_version=Doctor.booking_version + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise NotFoundError('Doctor not found.')


def run_in_transaction(
    db: Session,
    operation: Callable[[], T],
    *,
    attempts: int | None = None,
    wait: wait_base | None = None,
) -> T:
    """Run ``operation`` and commit, retrying only transient store failures.

    Each attempt starts from a rolled back session. Scheduling errors raised by
    ``operation`` are deterministic and propagate on the first attempt.
    """
    retrying = Retrying(
        stop=stop_after_attempt(attempts or config.BOOKING_RETRY_ATTEMPTS),
        wait=wait or wait_exponential(multiplier=0.1, max=config.BOOKING_RETRY_MAX_WAIT_SECONDS),
        retry=retry_if_exception(is_transient_error),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )

    try:
        for attempt in retrying:
            with attempt:
                try:
                    result = operation()
                    db.commit()
                except Exception:
                    db.rollback()
                    raise
    except (OperationalError, DBAPIError) as exc:
        if not is_transient_error(exc):
            raise
        logger.error('Giving up after repeated transient database failures: %s', exc)
        raise InternalError() from exc

    return result
