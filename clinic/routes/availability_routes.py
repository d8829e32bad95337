from datetime import date, datetime, time

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator

from clinic.core.errors import TimeFormatError
from clinic.routes.dependencies import get_availability_store, get_booking_engine
from clinic.routes.errors import call_service
from clinic.scheduling.intervals import format_clock_time, parse_clock_time
from clinic.services.availability_store import AvailabilityStore, BulkItemResult, BulkItemStatus
from clinic.services.booking_engine import BookingEngine, DaySlot

router = APIRouter(tags=['availability'])


def _normalize_clock_time(value: str | None) -> str | None:
    if value is None:
        return None
    try:
        return format_clock_time(parse_clock_time(value))
    except TimeFormatError as exc:
        raise ValueError(str(exc)) from exc


class CreateAvailabilityRequest(BaseModel):
    doctor_id: int
    date: date
    start_time: str
    end_time: str
    active: bool = True

    @field_validator('start_time', 'end_time')
    @classmethod
    def validate_clock_time(cls, value: str) -> str:
        return _normalize_clock_time(value)


class CreateRecurringAvailabilityRequest(BaseModel):
    doctor_id: int
    date_start: date
    date_end: date
    weekdays: list[int]
    start_time: str
    end_time: str

    @field_validator('start_time', 'end_time')
    @classmethod
    def validate_clock_time(cls, value: str) -> str:
        return _normalize_clock_time(value)

    @field_validator('weekdays')
    @classmethod
    def validate_weekdays(cls, value: list[int]) -> list[int]:
        if not value:
            raise ValueError('Select at least one weekday.')
        if any(weekday < 0 or weekday > 6 for weekday in value):
            raise ValueError('Weekdays must be between 0 (Sunday) and 6 (Saturday).')
        return sorted(set(value))


class UpdateAvailabilityRequest(BaseModel):
    start_time: str | None = None
    end_time: str | None = None
    active: bool | None = None

    @field_validator('start_time', 'end_time')
    @classmethod
    def validate_clock_time(cls, value: str | None) -> str | None:
        return _normalize_clock_time(value)


class SlotResponse(BaseModel):
    id: int
    availability_id: int
    date: date
    start_time: time
    end_time: time
    active: bool

    class Config:
        from_attributes = True


class AvailabilityResponse(BaseModel):
    id: int
    doctor_id: int
    date: date
    start_time: time
    end_time: time
    active: bool
    slots: list[SlotResponse] = []

    class Config:
        from_attributes = True


class BulkItemResponse(BaseModel):
    date: date
    status: BulkItemStatus
    reason: str | None = None
    availability: AvailabilityResponse | None = None


class RecurringAvailabilityResponse(BaseModel):
    created: int
    skipped_duplicates: int
    failed: int
    results: list[BulkItemResponse]


class DeleteAvailabilityResponse(BaseModel):
    id: int
    outcome: str


class DaySlotResponse(BaseModel):
    start_time: datetime
    end_time: datetime
    status: str
    is_available: bool
    availability_id: int
    slot_id: int | None = None


def _bulk_item_response(result: BulkItemResult) -> BulkItemResponse:
    return BulkItemResponse(
        date=result.request.date,
        status=result.status,
        reason=result.reason,
        availability=AvailabilityResponse.model_validate(result.entry) if result.entry is not None else None,
    )


def _day_slot_response(day_slot: DaySlot) -> DaySlotResponse:
    return DaySlotResponse(
        start_time=day_slot.start,
        end_time=day_slot.end,
        status=day_slot.status,
        is_available=day_slot.is_available,
        availability_id=day_slot.availability_id,
        slot_id=day_slot.slot_id,
    )


@router.post('/', response_model=AvailabilityResponse, status_code=status.HTTP_201_CREATED)
def create_availability(data: CreateAvailabilityRequest, store: AvailabilityStore = Depends(get_availability_store)):
    return call_service(
        store.db,
        lambda: store.create(data.doctor_id, data.date, data.start_time, data.end_time, active=data.active),
    )


@router.post('/recurring', response_model=RecurringAvailabilityResponse, status_code=status.HTTP_201_CREATED)
def create_recurring_availability(
    data: CreateRecurringAvailabilityRequest,
    store: AvailabilityStore = Depends(get_availability_store),
):
    results = call_service(
        store.db,
        lambda: store.create_recurring(
            data.doctor_id,
            data.date_start,
            data.date_end,
            data.weekdays,
            data.start_time,
            data.end_time,
        ),
    )

    return RecurringAvailabilityResponse(
        created=sum(1 for result in results if result.status is BulkItemStatus.CREATED),
        skipped_duplicates=sum(1 for result in results if result.status is BulkItemStatus.SKIPPED_DUPLICATE),
        failed=sum(1 for result in results if result.status is BulkItemStatus.FAILED),
        results=[_bulk_item_response(result) for result in results],
    )


@router.get('/doctors/{doctor_id}', response_model=list[AvailabilityResponse])
def list_doctor_availability(
    doctor_id: int,
    date_start: date | None = Query(default=None),
    date_end: date | None = Query(default=None),
    active: bool | None = Query(default=None),
    store: AvailabilityStore = Depends(get_availability_store),
):
    if date_start and date_end and date_end < date_start:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='date_end must not be before date_start.',
        )

    return call_service(
        store.db,
        lambda: store.list_entries(doctor_id, date_start=date_start, date_end=date_end, active=active),
    )


@router.get('/doctors/{doctor_id}/bookable', response_model=list[SlotResponse])
def list_bookable_slots(
    doctor_id: int,
    on_date: date = Query(..., alias='date'),
    store: AvailabilityStore = Depends(get_availability_store),
):
    return call_service(store.db, lambda: store.find_bookable(doctor_id, on_date))


@router.get('/doctors/{doctor_id}/calendar', response_model=list[DaySlotResponse])
def list_day_calendar(
    doctor_id: int,
    on_date: date = Query(..., alias='date'),
    engine: BookingEngine = Depends(get_booking_engine),
):
    day_slots = call_service(engine.db, lambda: engine.compute_availability(doctor_id, on_date))
    return [_day_slot_response(day_slot) for day_slot in day_slots]


@router.get('/{availability_id}', response_model=AvailabilityResponse)
def get_availability(availability_id: int, store: AvailabilityStore = Depends(get_availability_store)):
    return call_service(store.db, lambda: store.get(availability_id))


@router.patch('/{availability_id}', response_model=AvailabilityResponse)
def update_availability(
    availability_id: int,
    data: UpdateAvailabilityRequest,
    store: AvailabilityStore = Depends(get_availability_store),
):
    return call_service(
        store.db,
        lambda: store.update(availability_id, start_time=data.start_time, end_time=data.end_time, active=data.active),
    )


@router.delete('/{availability_id}', response_model=DeleteAvailabilityResponse)
def delete_availability(availability_id: int, store: AvailabilityStore = Depends(get_availability_store)):
    outcome = call_service(store.db, lambda: store.delete(availability_id))
    return DeleteAvailabilityResponse(id=availability_id, outcome=outcome)


@router.delete('/slots/{slot_id}', response_model=DeleteAvailabilityResponse)
def delete_slot(slot_id: int, store: AvailabilityStore = Depends(get_availability_store)):
    outcome = call_service(store.db, lambda: store.delete_slot(slot_id))
    return DeleteAvailabilityResponse(id=slot_id, outcome=outcome)
