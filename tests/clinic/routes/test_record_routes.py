import pytest
from fastapi import HTTPException
from pydantic import ValidationError

from clinic.routes.record_routes import (
    CreateDoctorRequest,
    CreatePatientRequest,
    DoctorResponse,
    create_doctor,
    create_patient,
    get_doctor,
    get_patient,
)


def test_create_doctor_request_normalizes_fields() -> None:
    request = CreateDoctorRequest(name=' Ana Costa ', crm=' crm-1234 ', specialty=' Cardiology ', email=' ANA@CLINIC.COM ')

    assert request.name == 'Ana Costa'
    assert request.crm == 'CRM-1234'
    assert request.specialty == 'Cardiology'
    assert request.email == 'ana@clinic.com'


@pytest.mark.parametrize(
    'payload',
    [
        {'name': ' ', 'crm': 'CRM-1', 'specialty': 'Cardiology'},
        {'name': 'Ana', 'crm': '', 'specialty': 'Cardiology'},
        {'name': 'Ana', 'crm': 'CRM-1', 'specialty': 'Cardiology', 'email': 'not-an-email'},
    ],
)
def test_create_doctor_request_rejects_invalid_fields(payload: dict) -> None:
    with pytest.raises(ValidationError):
        CreateDoctorRequest(**payload)


def test_create_patient_request_requires_email() -> None:
    with pytest.raises(ValidationError):
        CreatePatientRequest(name='Joao', email='  ')


def test_create_and_get_doctor(db_session) -> None:
    created = create_doctor(CreateDoctorRequest(name='Ana Costa', crm='CRM-1234', specialty='Cardiology'), db=db_session)

    fetched = DoctorResponse.model_validate(get_doctor(created.id, db=db_session))

    assert fetched.crm == 'CRM-1234'
    assert fetched.email is None


def test_duplicate_doctor_crm_is_conflict(db_session) -> None:
    create_doctor(CreateDoctorRequest(name='Ana Costa', crm='CRM-1234', specialty='Cardiology'), db=db_session)

    with pytest.raises(HTTPException) as exception_info:
        create_doctor(CreateDoctorRequest(name='Other', crm='crm-1234', specialty='Neurology'), db=db_session)

    assert exception_info.value.status_code == 409
    assert exception_info.value.detail == 'A doctor with this CRM already exists.'


def test_duplicate_patient_email_is_conflict(db_session) -> None:
    create_patient(CreatePatientRequest(name='Joao', email='joao@example.com'), db=db_session)

    with pytest.raises(HTTPException) as exception_info:
        create_patient(CreatePatientRequest(name='Joao Jr', email='JOAO@example.com'), db=db_session)

    assert exception_info.value.status_code == 409
    assert exception_info.value.detail == 'A patient with this email already exists.'


def test_missing_records_are_not_found(db_session) -> None:
    with pytest.raises(HTTPException) as doctor_info:
        get_doctor(404, db=db_session)

    with pytest.raises(HTTPException) as patient_info:
        get_patient(404, db=db_session)

    assert doctor_info.value.status_code == 404
    assert patient_info.value.detail == 'Patient not found.'
