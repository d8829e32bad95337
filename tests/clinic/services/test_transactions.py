import pytest
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from tenacity import wait_none

from clinic.core.errors import ConflictError, InternalError, NotFoundError
from clinic.models.doctor import Doctor
from clinic.services.transactions import is_transient_error, lock_doctor, run_in_transaction


def _locked() -> OperationalError:
    return OperationalError('SELECT 1', {}, Exception('database is locked'))


def test_transient_failure_is_retried_until_success(db_session) -> None:
    calls = {'count': 0}

    def operation() -> str:
        calls['count'] += 1
        if calls['count'] < 3:
            raise _locked()
        return 'done'

    assert run_in_transaction(db_session, operation, attempts=3, wait=wait_none()) == 'done'
    assert calls['count'] == 3


def test_repeated_transient_failure_becomes_internal_error(db_session) -> None:
    calls = {'count': 0}

    def operation() -> None:
        calls['count'] += 1
        raise _locked()

    with pytest.raises(InternalError):
        run_in_transaction(db_session, operation, attempts=2, wait=wait_none())

    assert calls['count'] == 2


def test_scheduling_errors_are_not_retried(db_session) -> None:
    calls = {'count': 0}

    def operation() -> None:
        calls['count'] += 1
        raise ConflictError()

    with pytest.raises(ConflictError):
        run_in_transaction(db_session, operation, attempts=3, wait=wait_none())

    assert calls['count'] == 1


def test_failed_attempt_rolls_back_pending_changes(db_session) -> None:
    def operation() -> None:
        db_session.add(Doctor(name='Doctor Rollback', crm='CRM-9999', specialty='neurology'))
        db_session.flush()
        raise ConflictError()

    with pytest.raises(ConflictError):
        run_in_transaction(db_session, operation, attempts=1, wait=wait_none())

    assert db_session.query(Doctor).count() == 0


def test_lock_doctor_bumps_version(db_session, doctor) -> None:
    before = doctor.booking_version

    run_in_transaction(db_session, lambda: lock_doctor(db_session, doctor.id))

    db_session.refresh(doctor)
    assert doctor.booking_version == before + 1


def test_lock_doctor_rejects_unknown_doctor(db_session) -> None:
    with pytest.raises(NotFoundError):
        lock_doctor(db_session, 404)


def test_is_transient_error_classification() -> None:
    invalidated = DBAPIError('SELECT 1', {}, Exception('gone'), connection_invalidated=True)

    assert is_transient_error(_locked())
    assert is_transient_error(invalidated)
    assert not is_transient_error(IntegrityError('INSERT', {}, Exception('unique')))
    assert not is_transient_error(ConflictError())
