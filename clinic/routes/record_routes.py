from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from clinic.database import get_db
from clinic.models.doctor import Doctor
from clinic.models.patient import Patient
from clinic.routes.errors import database_unavailable

router = APIRouter(tags=['records'])


def _required(value: str, label: str) -> str:
    normalized = value.strip()
    if not normalized:
        raise ValueError(f'{label} is required.')
    return normalized


def _optional_email(value: str | None) -> str | None:
    if value is None:
        return None
    normalized = value.strip().lower()
    if not normalized:
        return None
    if '@' not in normalized:
        raise ValueError('Invalid email address.')
    return normalized


class CreateDoctorRequest(BaseModel):
    name: str
    crm: str
    specialty: str
    email: str | None = None

    @field_validator('name', 'specialty')
    @classmethod
    def validate_required_text(cls, value: str, info) -> str:
        return _required(value, info.field_name.capitalize())

    @field_validator('crm')
    @classmethod
    def validate_crm(cls, value: str) -> str:
        return _required(value, 'CRM').upper()

    @field_validator('email')
    @classmethod
    def validate_email(cls, value: str | None) -> str | None:
        return _optional_email(value)


class DoctorResponse(BaseModel):
    id: int
    name: str
    crm: str
    specialty: str
    email: str | None = None

    class Config:
        from_attributes = True


class CreatePatientRequest(BaseModel):
    name: str
    email: str
    cpf: str | None = None

    @field_validator('name')
    @classmethod
    def validate_name(cls, value: str) -> str:
        return _required(value, 'Name')

    @field_validator('email')
    @classmethod
    def validate_email(cls, value: str) -> str:
        normalized = _optional_email(value)
        if normalized is None:
            raise ValueError('Email is required.')
        return normalized

    @field_validator('cpf')
    @classmethod
    def validate_cpf(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip() or None


class PatientResponse(BaseModel):
    id: int
    name: str
    email: str
    cpf: str | None = None

    class Config:
        from_attributes = True


def _save(db: Session, record, duplicate_detail: str):
    try:
        db.add(record)
        db.commit()
        db.refresh(record)
        return record
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=duplicate_detail) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.post('/doctors', response_model=DoctorResponse, status_code=status.HTTP_201_CREATED)
def create_doctor(data: CreateDoctorRequest, db: Session = Depends(get_db)):
    try:
        if db.query(Doctor).filter(Doctor.crm == data.crm).first():
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail='A doctor with this CRM already exists.')
        if data.email and db.query(Doctor).filter(Doctor.email == data.email).first():
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail='A doctor with this email already exists.')
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    doctor = Doctor(name=data.name, crm=data.crm, specialty=data.specialty, email=data.email)
    return _save(db, doctor, 'A doctor with this CRM or email already exists.')


@router.get('/doctors/{doctor_id}', response_model=DoctorResponse)
def get_doctor(doctor_id: int, db: Session = Depends(get_db)):
    try:
        doctor = db.get(Doctor, doctor_id)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    if doctor is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Doctor not found.')
    return doctor


@router.post('/patients', response_model=PatientResponse, status_code=status.HTTP_201_CREATED)
def create_patient(data: CreatePatientRequest, db: Session = Depends(get_db)):
    try:
        if db.query(Patient).filter(Patient.email == data.email).first():
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail='A patient with this email already exists.')
        if data.cpf and db.query(Patient).filter(Patient.cpf == data.cpf).first():
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail='A patient with this CPF already exists.')
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    patient = Patient(name=data.name, email=data.email, cpf=data.cpf)
    return _save(db, patient, 'A patient with this email or CPF already exists.')


@router.get('/patients/{patient_id}', response_model=PatientResponse)
def get_patient(patient_id: int, db: Session = Depends(get_db)):
    try:
        patient = db.get(Patient, patient_id)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    if patient is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Patient not found.')
    return patient
