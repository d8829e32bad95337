from datetime import date, datetime

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, field_validator, model_validator

from clinic.core import config
from clinic.models.appointment import Appointment, AppointmentStatus
from clinic.routes.dependencies import get_booking_engine
from clinic.routes.errors import call_service
from clinic.scheduling.intervals import TimeInterval, duration_minutes
from clinic.services.booking_engine import BookingEngine, BookingTarget

router = APIRouter(tags=['appointments'])


def _normalize_observations(value: str | None) -> str | None:
    if value is None:
        return None

    normalized = value.strip()
    if not normalized:
        return None

    if len(normalized) > config.MAX_OBSERVATIONS_LENGTH:
        raise ValueError(f'Observations must be {config.MAX_OBSERVATIONS_LENGTH} characters or fewer.')

    return normalized


class AppointmentTimeRequest(BaseModel):
    """Accepts a slot id, an explicit start/end pair, or a single date_time."""

    slot_id: int | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    date_time: datetime | None = None

    @model_validator(mode='after')
    def validate_single_time_shape(self):
        has_range = self.start_time is not None or self.end_time is not None
        if has_range and (self.start_time is None or self.end_time is None):
            raise ValueError('start_time and end_time must be provided together.')

        shapes = sum([self.slot_id is not None, has_range, self.date_time is not None])
        if shapes != 1:
            raise ValueError('Provide exactly one of slot_id, start_time/end_time, or date_time.')

        return self

    def to_target(self) -> BookingTarget:
        if self.slot_id is not None:
            return BookingTarget.for_slot(self.slot_id)
        if self.date_time is not None:
            return BookingTarget.for_date_time(self.date_time)
        return BookingTarget.for_interval(self.start_time, self.end_time)


class CreateAppointmentRequest(AppointmentTimeRequest):
    patient_id: int
    doctor_id: int
    observations: str | None = None

    @field_validator('observations')
    @classmethod
    def validate_observations(cls, value: str | None) -> str | None:
        return _normalize_observations(value)


class RescheduleAppointmentRequest(AppointmentTimeRequest):
    pass


class ChangeStatusRequest(BaseModel):
    status: AppointmentStatus

    @field_validator('status', mode='before')
    @classmethod
    def normalize_status(cls, value):
        if isinstance(value, str):
            return value.strip().upper()
        return value


class UpdateObservationsRequest(BaseModel):
    observations: str | None = None

    @field_validator('observations')
    @classmethod
    def validate_observations(cls, value: str | None) -> str | None:
        return _normalize_observations(value)


class AppointmentResponse(BaseModel):
    id: int
    patient_id: int
    doctor_id: int
    availability_id: int | None = None
    slot_id: int | None = None
    start_time: datetime
    end_time: datetime
    duration_minutes: int
    status: AppointmentStatus
    observations: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


def to_appointment_response(appointment: Appointment) -> AppointmentResponse:
    return AppointmentResponse(
        id=appointment.id,
        patient_id=appointment.patient_id,
        doctor_id=appointment.doctor_id,
        availability_id=appointment.availability_id,
        slot_id=appointment.slot_id,
        start_time=appointment.start_time,
        end_time=appointment.end_time,
        duration_minutes=duration_minutes(TimeInterval(appointment.start_time, appointment.end_time)),
        status=AppointmentStatus(appointment.status),
        observations=appointment.observations,
        created_at=appointment.created_at,
        updated_at=appointment.updated_at,
    )


@router.post('/', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(data: CreateAppointmentRequest, engine: BookingEngine = Depends(get_booking_engine)):
    appointment = call_service(
        engine.db,
        lambda: engine.book(data.patient_id, data.doctor_id, data.to_target(), observations=data.observations),
    )
    return to_appointment_response(appointment)


@router.get('/doctors/{doctor_id}', response_model=list[AppointmentResponse])
def list_doctor_appointments(
    doctor_id: int,
    on_date: date | None = Query(default=None, alias='date'),
    engine: BookingEngine = Depends(get_booking_engine),
):
    appointments = call_service(engine.db, lambda: engine.list_for_doctor(doctor_id, on_date=on_date))
    return [to_appointment_response(appointment) for appointment in appointments]


@router.get('/patients/{patient_id}', response_model=list[AppointmentResponse])
def list_patient_appointments(
    patient_id: int,
    appointment_status: str | None = Query(default=None, alias='status'),
    engine: BookingEngine = Depends(get_booking_engine),
):
    appointments = call_service(engine.db, lambda: engine.list_for_patient(patient_id, status=appointment_status))
    return [to_appointment_response(appointment) for appointment in appointments]


@router.get('/{appointment_id}', response_model=AppointmentResponse)
def get_appointment(appointment_id: int, engine: BookingEngine = Depends(get_booking_engine)):
    return to_appointment_response(call_service(engine.db, lambda: engine.get(appointment_id)))


@router.put('/{appointment_id}/schedule', response_model=AppointmentResponse)
def reschedule_appointment(
    appointment_id: int,
    data: RescheduleAppointmentRequest,
    engine: BookingEngine = Depends(get_booking_engine),
):
    appointment = call_service(engine.db, lambda: engine.reschedule(appointment_id, data.to_target()))
    return to_appointment_response(appointment)


@router.patch('/{appointment_id}/status', response_model=AppointmentResponse)
def change_appointment_status(
    appointment_id: int,
    data: ChangeStatusRequest,
    engine: BookingEngine = Depends(get_booking_engine),
):
    appointment = call_service(engine.db, lambda: engine.change_status(appointment_id, data.status))
    return to_appointment_response(appointment)


@router.post('/{appointment_id}/cancel', response_model=AppointmentResponse)
def cancel_appointment(appointment_id: int, engine: BookingEngine = Depends(get_booking_engine)):
    return to_appointment_response(call_service(engine.db, lambda: engine.cancel(appointment_id)))


@router.patch('/{appointment_id}/observations', response_model=AppointmentResponse)
def update_appointment_observations(
    appointment_id: int,
    data: UpdateObservationsRequest,
    engine: BookingEngine = Depends(get_booking_engine),
):
    appointment = call_service(engine.db, lambda: engine.update_observations(appointment_id, data.observations))
    return to_appointment_response(appointment)


@router.delete('/{appointment_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_appointment(appointment_id: int, engine: BookingEngine = Depends(get_booking_engine)):
    call_service(engine.db, lambda: engine.delete(appointment_id))
