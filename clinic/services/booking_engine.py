"""Appointment booking and lifecycle.

An appointment is an explicit half-open ``[start_time, end_time)`` interval.
Slot bookings and single ``date_time`` bookings are converted to that shape
by :class:`BookingTarget` before any rule is checked.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime, timedelta, time

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from clinic.core import config
from clinic.core.errors import (
    ConflictError,
    DurationError,
    InvalidTransitionError,
    NotFoundError,
    OrderError,
    PastDateError,
    SchedulingError,
    UnavailableError,
    ValidationError,
)
from clinic.models.appointment import ACTIVE_SLOT_INDEX, ACTIVE_STATUSES, Appointment, AppointmentStatus
from clinic.models.availability import Availability, AvailabilitySlot
from clinic.models.patient import Patient
from clinic.scheduling.intervals import TimeInterval, contains, duration_minutes, interval_for, overlaps
from clinic.services.availability_store import AvailabilityStore, entry_interval
from clinic.services.transactions import lock_doctor, run_in_transaction

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.SCHEDULED: frozenset({AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED}),
    AppointmentStatus.CONFIRMED: frozenset({AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED}),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.CANCELLED: frozenset(),
}

DAY_SLOT_AVAILABLE = 'available'
DAY_SLOT_BOOKED = 'booked'
DAY_SLOT_INACTIVE = 'inactive'


@dataclass(frozen=True)
class BookingTarget:
    """Either a slot id or an explicit interval, never both."""

    slot_id: int | None = None
    interval: TimeInterval | None = None

    def __post_init__(self):
        if (self.slot_id is None) == (self.interval is None):
            raise ValidationError('Provide either a slot or a start and end time.')

    @classmethod
    def for_slot(cls, slot_id: int) -> 'BookingTarget':
        return cls(slot_id=slot_id)

    @classmethod
    def for_interval(cls, start: datetime, end: datetime) -> 'BookingTarget':
        return cls(interval=TimeInterval(_truncate(start), _truncate(end)))

    @classmethod
    def for_date_time(cls, date_time: datetime, minutes: int | None = None) -> 'BookingTarget':
        start = _truncate(date_time)
        length = timedelta(minutes=minutes or config.LEGACY_APPOINTMENT_MINUTES)
        return cls(interval=TimeInterval(start, start + length))


@dataclass
class DaySlot:
    start: datetime
    end: datetime
    status: str
    availability_id: int
    slot_id: int | None = None

    @property
    def is_available(self) -> bool:
        return self.status == DAY_SLOT_AVAILABLE


def _truncate(value: datetime) -> datetime:
    return value.replace(second=0, microsecond=0)


class BookingEngine:
    def __init__(
        self,
        db: Session,
        clock: Callable[[], datetime] = datetime.now,
        availability: AvailabilityStore | None = None,
    ):
        self.db = db
        self.clock = clock
        self.availability = availability or AvailabilityStore(db, clock=clock)
        self.min_minutes = config.MIN_APPOINTMENT_MINUTES
        self.max_minutes = config.MAX_APPOINTMENT_MINUTES

    def get(self, appointment_id: int) -> Appointment:
        appointment = self.db.get(Appointment, appointment_id)
        if appointment is None:
            raise NotFoundError('Appointment not found.')
        return appointment

    def list_for_doctor(self, doctor_id: int, on_date: date | None = None) -> list[Appointment]:
        query = self.db.query(Appointment).filter(Appointment.doctor_id == doctor_id)
        if on_date is not None:
            day = interval_for(on_date, time.min, time.max)
            query = query.filter(Appointment.start_time < day.end, Appointment.end_time > day.start)
        return query.order_by(Appointment.start_time.asc()).all()

    def list_for_patient(self, patient_id: int, status: AppointmentStatus | str | None = None) -> list[Appointment]:
        query = self.db.query(Appointment).filter(Appointment.patient_id == patient_id)
        if status is not None:
            query = query.filter(Appointment.status == _parse_status(status).value)
        return query.order_by(Appointment.start_time.desc()).all()

    def book(
        self,
        patient_id: int,
        doctor_id: int,
        target: BookingTarget,
        observations: str | None = None,
    ) -> Appointment:
        def operation() -> Appointment:
            lock_doctor(self.db, doctor_id)
            if self.db.get(Patient, patient_id) is None:
                raise NotFoundError('Patient not found.')

            interval, slot = self._resolve(doctor_id, target)
            self._validate_interval(interval)
            availability_id, slot_id = self._ensure_available(doctor_id, interval, slot)
            self._ensure_no_conflict(doctor_id, interval)

            now = self.clock()
            appointment = Appointment(
                patient_id=patient_id,
                doctor_id=doctor_id,
                availability_id=availability_id,
                slot_id=slot_id,
                start_time=interval.start,
                end_time=interval.end,
                status=AppointmentStatus.SCHEDULED.value,
                observations=observations,
                created_at=now,
                updated_at=now,
            )
            self.db.add(appointment)
            self.db.flush()
            return appointment

        try:
            appointment = self._write(operation)
        except SchedulingError as exc:
            logger.info('Rejected booking for doctor %s, patient %s: %s', doctor_id, patient_id, exc.code)
            raise

        logger.info(
            'Booked appointment %s for doctor %s from %s to %s',
            appointment.id,
            doctor_id,
            appointment.start_time.isoformat(),
            appointment.end_time.isoformat(),
        )
        return appointment

    def reschedule(self, appointment_id: int, target: BookingTarget) -> Appointment:
        def operation() -> Appointment:
            appointment = self._get_locked(appointment_id)
            if appointment.status not in ACTIVE_STATUSES:
                raise InvalidTransitionError(
                    f'Cannot reschedule an appointment with status {appointment.status}.'
                )

            interval, slot = self._resolve(appointment.doctor_id, target)
            self._validate_interval(interval)
            availability_id, slot_id = self._ensure_available(
                appointment.doctor_id,
                interval,
                slot,
                exclude_appointment_id=appointment.id,
            )
            self._ensure_no_conflict(appointment.doctor_id, interval, exclude_appointment_id=appointment.id)

            appointment.start_time = interval.start
            appointment.end_time = interval.end
            appointment.availability_id = availability_id
            appointment.slot_id = slot_id
            appointment.updated_at = self.clock()
            self.db.flush()
            return appointment

        appointment = self._write(operation)
        logger.info('Rescheduled appointment %s to %s', appointment.id, appointment.start_time.isoformat())
        return appointment

    def change_status(self, appointment_id: int, new_status: AppointmentStatus | str) -> Appointment:
        target_status = _parse_status(new_status)

        def operation() -> Appointment:
            appointment = self._get_locked(appointment_id)
            current = AppointmentStatus(appointment.status)
            if target_status not in ALLOWED_TRANSITIONS[current]:
                raise InvalidTransitionError(
                    f'Cannot change appointment status from {current.value} to {target_status.value}.'
                )

            appointment.status = target_status.value
            appointment.updated_at = self.clock()
            self.db.flush()
            return appointment

        appointment = run_in_transaction(self.db, operation)
        logger.info('Appointment %s is now %s', appointment.id, appointment.status)
        return appointment

    def cancel(self, appointment_id: int) -> Appointment:
        return self.change_status(appointment_id, AppointmentStatus.CANCELLED)

    def update_observations(self, appointment_id: int, observations: str | None) -> Appointment:
        def operation() -> Appointment:
            appointment = self.get(appointment_id)
            appointment.observations = observations
            appointment.updated_at = self.clock()
            self.db.flush()
            return appointment

        return run_in_transaction(self.db, operation)

    def delete(self, appointment_id: int) -> None:
        def operation() -> None:
            self.db.delete(self.get(appointment_id))

        run_in_transaction(self.db, operation)
        logger.info('Deleted appointment %s', appointment_id)

    def compute_availability(self, doctor_id: int, on_date: date) -> list[DaySlot]:
        entries = (
            self.db.query(Availability)
            .filter(Availability.doctor_id == doctor_id, Availability.date == on_date)
            .order_by(Availability.start_time.asc())
            .all()
        )
        booked = self.availability.booked_intervals(doctor_id, on_date)

        day_slots: list[DaySlot] = []
        for entry in entries:
            for slot in entry.slots:
                interval = entry_interval(slot)
                if not (entry.active and slot.active):
                    status = DAY_SLOT_INACTIVE
                elif any(overlaps(interval, other) for other in booked):
                    status = DAY_SLOT_BOOKED
                else:
                    status = DAY_SLOT_AVAILABLE
                day_slots.append(
                    DaySlot(
                        start=interval.start,
                        end=interval.end,
                        status=status,
                        availability_id=entry.id,
                        slot_id=slot.id,
                    )
                )

        day_slots.sort(key=lambda day_slot: day_slot.start)
        return day_slots

    def _get_locked(self, appointment_id: int) -> Appointment:
        appointment = self.get(appointment_id)
        lock_doctor(self.db, appointment.doctor_id)
        # Another writer may have changed the row before the lock was granted.
        self.db.refresh(appointment)
        return appointment

    def _write(self, operation: Callable[[], Appointment]) -> Appointment:
        try:
            return run_in_transaction(self.db, operation)
        except IntegrityError as exc:
            if _is_active_slot_violation(exc):
                raise ConflictError('This slot is already booked.') from exc
            raise ConflictError('The booking collided with a concurrent change. Please try again.') from exc

    def _resolve(self, doctor_id: int, target: BookingTarget) -> tuple[TimeInterval, AvailabilitySlot | None]:
        if target.slot_id is None:
            return target.interval, None

        slot = self.availability.get_slot(target.slot_id)
        if slot.doctor_id != doctor_id:
            raise UnavailableError('This slot belongs to another doctor.')
        return entry_interval(slot), slot

    def _validate_interval(self, interval: TimeInterval) -> None:
        if interval.end <= interval.start:
            raise OrderError('Appointment end time must be after its start time.')

        minutes = duration_minutes(interval)
        if not self.min_minutes <= minutes <= self.max_minutes:
            raise DurationError(
                f'Appointments must last between {self.min_minutes} and {self.max_minutes} minutes.'
            )

        if interval.start < self.clock():
            raise PastDateError('Appointments must be scheduled in the future.')

    def _ensure_available(
        self,
        doctor_id: int,
        interval: TimeInterval,
        slot: AvailabilitySlot | None,
        exclude_appointment_id: int | None = None,
    ) -> tuple[int, int | None]:
        if slot is not None:
            if not (slot.active and slot.availability.active):
                raise UnavailableError('This slot is no longer available.')
            if self._slot_taken(slot.id, exclude_appointment_id):
                raise UnavailableError('This slot is already booked.')
            return slot.availability_id, slot.id

        entries = self.db.query(Availability).filter(
            Availability.doctor_id == doctor_id,
            Availability.date == interval.start.date(),
            Availability.active.is_(True),
        ).all()
        covering = next((entry for entry in entries if contains(entry_interval(entry), interval)), None)
        if covering is None:
            raise UnavailableError('The doctor has no availability covering this time.')

        matching_slot_id = None
        for candidate in covering.slots:
            candidate_interval = entry_interval(candidate)
            if not candidate.active and overlaps(candidate_interval, interval):
                raise UnavailableError('Part of this time has been withdrawn from availability.')
            if candidate_interval == interval and not self._slot_taken(candidate.id, exclude_appointment_id):
                matching_slot_id = candidate.id

        return covering.id, matching_slot_id

    def _slot_taken(self, slot_id: int, exclude_appointment_id: int | None) -> bool:
        query = self.db.query(Appointment.id).filter(
            Appointment.slot_id == slot_id,
            Appointment.status.in_(ACTIVE_STATUSES),
        )
        if exclude_appointment_id is not None:
            query = query.filter(Appointment.id != exclude_appointment_id)
        return query.first() is not None

    def _ensure_no_conflict(
        self,
        doctor_id: int,
        interval: TimeInterval,
        exclude_appointment_id: int | None = None,
    ) -> None:
        query = self.db.query(Appointment).filter(
            Appointment.doctor_id == doctor_id,
            Appointment.status.in_(ACTIVE_STATUSES),
            Appointment.start_time < interval.end,
            Appointment.end_time > interval.start,
        )
        if exclude_appointment_id is not None:
            query = query.filter(Appointment.id != exclude_appointment_id)

        for existing in query.all():
            if overlaps(TimeInterval(existing.start_time, existing.end_time), interval):
                raise ConflictError(
                    f'The doctor already has an appointment from {existing.start_time:%H:%M} '
                    f'to {existing.end_time:%H:%M}.'
                )


def _is_active_slot_violation(exc: IntegrityError) -> bool:
    # PostgreSQL names the index; SQLite names the indexed column.
    detail = str(exc.orig)
    return ACTIVE_SLOT_INDEX in detail or 'appointments.slot_id' in detail


def _parse_status(value: AppointmentStatus | str) -> AppointmentStatus:
    try:
        return AppointmentStatus(value.strip().upper() if isinstance(value, str) else value)
    except ValueError as exc:
        raise ValidationError(f'Unknown appointment status "{value}".') from exc
