import logging
from collections.abc import Callable
from typing import TypeVar

from fastapi import HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinic.core import errors
from clinic.database import ensure_scheduling_schema

logger = logging.getLogger(__name__)

T = TypeVar('T')

DATABASE_UNAVAILABLE_DETAIL = 'Database unavailable. Verify DATABASE_URL and database credentials.'

# First match wins.
ERROR_STATUS_CODES: list[tuple[type[errors.SchedulingError], int]] = [
    (errors.ValidationError, status.HTTP_400_BAD_REQUEST),
    (errors.NotFoundError, status.HTTP_404_NOT_FOUND),
    (errors.OverlapError, status.HTTP_409_CONFLICT),
    (errors.ConflictError, status.HTTP_409_CONFLICT),
    (errors.InvalidTransitionError, status.HTTP_409_CONFLICT),
    (errors.UnavailableError, status.HTTP_422_UNPROCESSABLE_CONTENT),
    (errors.InternalError, status.HTTP_503_SERVICE_UNAVAILABLE),
]


def to_http_exception(exc: errors.SchedulingError) -> HTTPException:
    status_code = next(
        (code for error_type, code in ERROR_STATUS_CODES if isinstance(exc, error_type)),
        status.HTTP_400_BAD_REQUEST,
    )
    return HTTPException(
        status_code=status_code,
        detail=exc.message,
        headers={'X-Error-Code': exc.code},
    )


def database_unavailable() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=DATABASE_UNAVAILABLE_DETAIL,
        headers={'X-Error-Code': errors.InternalError.code},
    )


def ensure_database_ready() -> None:
    try:
        ensure_scheduling_schema()
    except SQLAlchemyError as exc:
        logger.exception('Scheduling schema check failed.')
        raise database_unavailable() from exc


def call_service(db: Session, call: Callable[[], T]) -> T:
    ensure_database_ready()

    try:
        return call()
    except errors.SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Database error while handling scheduling request.')
        raise database_unavailable() from exc
