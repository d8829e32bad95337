import enum
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import date, datetime, time

from sqlalchemy import and_, exists, or_
from sqlalchemy.orm import Session

from clinic.core import config
from clinic.core.errors import (
    ConflictError,
    DuplicateAvailabilityError,
    InternalError,
    NotFoundError,
    OrderError,
    OverlapError,
    PastDateError,
    SchedulingError,
)
from clinic.models.appointment import ACTIVE_STATUSES, Appointment, AppointmentStatus
from clinic.models.availability import Availability, AvailabilitySlot
from clinic.scheduling.intervals import (
    TimeInterval,
    format_clock_time,
    interval_for,
    overlaps,
    parse_clock_time,
)
from clinic.scheduling.slot_generator import generate_fixed_slots, generate_recurring_dates
from clinic.services.transactions import lock_doctor, run_in_transaction

logger = logging.getLogger(__name__)


class BulkItemStatus(str, enum.Enum):
    CREATED = 'created'
    SKIPPED_DUPLICATE = 'skipped_duplicate'
    FAILED = 'failed'


@dataclass
class AvailabilityRequest:
    doctor_id: int
    date: date
    start_time: str | time
    end_time: str | time
    active: bool = True


@dataclass
class BulkItemResult:
    request: AvailabilityRequest
    status: BulkItemStatus
    entry: Availability | None = None
    reason: str | None = None


def entry_interval(entry: Availability | AvailabilitySlot) -> TimeInterval:
    return interval_for(entry.date, entry.start_time, entry.end_time)


class AvailabilityStore:
    """Published availability windows and the slots materialised from them."""

    def __init__(
        self,
        db: Session,
        clock: Callable[[], datetime] = datetime.now,
        slot_minutes: int | None = None,
    ):
        self.db = db
        self.clock = clock
        self.slot_minutes = slot_minutes or config.SLOT_DURATION_MINUTES

    def get(self, entry_id: int) -> Availability:
        entry = self.db.get(Availability, entry_id)
        if entry is None:
            raise NotFoundError('Availability not found.')
        return entry

    def get_slot(self, slot_id: int) -> AvailabilitySlot:
        slot = self.db.get(AvailabilitySlot, slot_id)
        if slot is None:
            raise NotFoundError('Slot not found.')
        return slot

    def create(
        self,
        doctor_id: int,
        entry_date: date,
        start_time: str | time,
        end_time: str | time,
        active: bool = True,
    ) -> Availability:
        start, end = self._validate_window(entry_date, start_time, end_time)

        def operation() -> Availability:
            lock_doctor(self.db, doctor_id)
            if active:
                self._ensure_no_overlap(doctor_id, entry_date, start, end)

            entry = Availability(
                doctor_id=doctor_id,
                date=entry_date,
                start_time=start,
                end_time=end,
                active=active,
            )
            entry.slots = self._build_slots(doctor_id, entry_date, start, end)
            self.db.add(entry)
            self.db.flush()
            return entry

        entry = run_in_transaction(self.db, operation)
        logger.info(
            'Created availability %s for doctor %s on %s %s-%s',
            entry.id,
            doctor_id,
            entry_date.isoformat(),
            format_clock_time(start),
            format_clock_time(end),
        )
        return entry

    def create_bulk(self, requests: Iterable[AvailabilityRequest]) -> list[BulkItemResult]:
        results: list[BulkItemResult] = []

        for request in requests:
            try:
                entry = self.create(
                    request.doctor_id,
                    request.date,
                    request.start_time,
                    request.end_time,
                    active=request.active,
                )
            except InternalError:
                raise
            except DuplicateAvailabilityError as exc:
                results.append(BulkItemResult(request, BulkItemStatus.SKIPPED_DUPLICATE, reason=str(exc)))
            except SchedulingError as exc:
                results.append(BulkItemResult(request, BulkItemStatus.FAILED, reason=str(exc)))
            else:
                results.append(BulkItemResult(request, BulkItemStatus.CREATED, entry=entry))

        created = sum(1 for result in results if result.status is BulkItemStatus.CREATED)
        logger.info('Bulk availability: %s of %s entries created', created, len(results))
        return results

    def create_recurring(
        self,
        doctor_id: int,
        date_start: date,
        date_end: date,
        weekdays: Iterable[int],
        start_time: str | time,
        end_time: str | time,
    ) -> list[BulkItemResult]:
        start = parse_clock_time(start_time)
        end = parse_clock_time(end_time)
        if start >= end:
            raise OrderError()

        dates = list(generate_recurring_dates(date_start, date_end, weekdays))
        return self.create_bulk(
            AvailabilityRequest(doctor_id=doctor_id, date=entry_date, start_time=start, end_time=end)
            for entry_date in dates
        )

    def list_entries(
        self,
        doctor_id: int,
        date_start: date | None = None,
        date_end: date | None = None,
        active: bool | None = None,
    ) -> list[Availability]:
        query = self.db.query(Availability).filter(Availability.doctor_id == doctor_id)

        if date_start is not None:
            query = query.filter(Availability.date >= date_start)
        if date_end is not None:
            query = query.filter(Availability.date <= date_end)
        if active is not None:
            query = query.filter(Availability.active.is_(active))

        return query.order_by(Availability.date.asc(), Availability.start_time.asc()).all()

    def find_bookable(self, doctor_id: int, on_date: date) -> list[AvailabilitySlot]:
        occupied = exists().where(
            Appointment.slot_id == AvailabilitySlot.id,
            Appointment.status.in_(ACTIVE_STATUSES),
        )
        slots = (
            self.db.query(AvailabilitySlot)
            .join(Availability, AvailabilitySlot.availability_id == Availability.id)
            .filter(
                AvailabilitySlot.doctor_id == doctor_id,
                AvailabilitySlot.date == on_date,
                AvailabilitySlot.active.is_(True),
                Availability.active.is_(True),
                ~occupied,
            )
            .order_by(AvailabilitySlot.start_time.asc())
            .all()
        )

        # Explicit-interval bookings hold time without pointing at a slot.
        booked = self.booked_intervals(doctor_id, on_date)
        return [slot for slot in slots if not any(overlaps(entry_interval(slot), other) for other in booked)]

    def is_occupied(self, slot_id: int) -> bool:
        return self.db.query(
            exists().where(
                Appointment.slot_id == slot_id,
                Appointment.status.in_(ACTIVE_STATUSES),
            )
        ).scalar()

    def update(
        self,
        entry_id: int,
        start_time: str | time | None = None,
        end_time: str | time | None = None,
        active: bool | None = None,
    ) -> Availability:
        def operation() -> Availability:
            entry = self.get(entry_id)
            lock_doctor(self.db, entry.doctor_id)

            start = parse_clock_time(start_time) if start_time is not None else entry.start_time
            end = parse_clock_time(end_time) if end_time is not None else entry.end_time
            times_changed = (start, end) != (entry.start_time, entry.end_time)
            now_active = entry.active if active is None else active

            if times_changed:
                self._validate_window(entry.date, start, end)
                if self._has_appointments(Appointment.availability_id == entry.id, exclude_cancelled=True):
                    raise ConflictError('Cannot change the hours of availability that has a scheduled appointment.')
            if now_active and (times_changed or not entry.active):
                self._ensure_no_overlap(entry.doctor_id, entry.date, start, end, exclude_id=entry.id)

            if times_changed:
                withdrawn = [entry_interval(slot) for slot in entry.slots if not slot.active]
                self._detach_slots(entry)
                entry.start_time = start
                entry.end_time = end
                entry.slots = self._build_slots(entry.doctor_id, entry.date, start, end, withdrawn=withdrawn)
            entry.active = now_active
            self.db.flush()
            return entry

        entry = run_in_transaction(self.db, operation)
        logger.info('Updated availability %s', entry.id)
        return entry

    def delete(self, entry_id: int) -> str:
        def operation() -> str:
            entry = self.get(entry_id)
            lock_doctor(self.db, entry.doctor_id)
            referenced_by = Appointment.availability_id == entry.id

            if self._has_appointments(referenced_by, exclude_cancelled=True):
                raise ConflictError('Cannot delete availability that has a scheduled appointment.')

            # Slot flags are kept; an inactive entry already hides its slots.
            if self._has_appointments(referenced_by, exclude_cancelled=False):
                entry.active = False
                return 'deactivated'

            self.db.delete(entry)
            return 'deleted'

        outcome = run_in_transaction(self.db, operation)
        logger.info('Availability %s %s', entry_id, outcome)
        return outcome

    def delete_slot(self, slot_id: int) -> str:
        """Withdraw a slot. The row is kept inactive so its time stays unbookable."""

        def operation() -> str:
            slot = self.get_slot(slot_id)
            lock_doctor(self.db, slot.doctor_id)
            window = entry_interval(slot)
            attached = or_(
                Appointment.slot_id == slot.id,
                and_(
                    Appointment.doctor_id == slot.doctor_id,
                    Appointment.start_time < window.end,
                    Appointment.end_time > window.start,
                ),
            )

            if self._has_appointments(attached, exclude_cancelled=True):
                raise ConflictError('Cannot delete a slot that has a scheduled appointment.')

            slot.active = False
            return 'deactivated'

        outcome = run_in_transaction(self.db, operation)
        logger.info('Slot %s %s', slot_id, outcome)
        return outcome

    def _validate_window(self, entry_date: date, start_time: str | time, end_time: str | time) -> tuple[time, time]:
        start = parse_clock_time(start_time)
        end = parse_clock_time(end_time)

        if start >= end:
            raise OrderError(
                f'Start time {format_clock_time(start)} must be before end time {format_clock_time(end)}.'
            )

        if entry_date < self.clock().date():
            raise PastDateError('Cannot publish availability for past dates.')

        return start, end

    def _ensure_no_overlap(
        self,
        doctor_id: int,
        entry_date: date,
        start: time,
        end: time,
        exclude_id: int | None = None,
    ) -> None:
        query = self.db.query(Availability).filter(
            Availability.doctor_id == doctor_id,
            Availability.date == entry_date,
            Availability.active.is_(True),
        )
        if exclude_id is not None:
            query = query.filter(Availability.id != exclude_id)

        candidate = interval_for(entry_date, start, end)
        for existing in query.all():
            if (existing.start_time, existing.end_time) == (start, end):
                raise DuplicateAvailabilityError(
                    f'Availability {format_clock_time(start)}-{format_clock_time(end)} '
                    f'on {entry_date.isoformat()} already exists.'
                )
            if overlaps(entry_interval(existing), candidate):
                raise OverlapError(
                    f'Availability overlaps the existing window '
                    f'{format_clock_time(existing.start_time)}-{format_clock_time(existing.end_time)} '
                    f'on {entry_date.isoformat()}.'
                )

    def _build_slots(
        self,
        doctor_id: int,
        entry_date: date,
        start: time,
        end: time,
        withdrawn: Iterable[TimeInterval] = (),
    ) -> list[AvailabilitySlot]:
        window = interval_for(entry_date, start, end)
        withdrawn = list(withdrawn)
        return [
            AvailabilitySlot(
                doctor_id=doctor_id,
                date=entry_date,
                start_time=piece.start.time(),
                end_time=piece.end.time(),
                active=not any(overlaps(piece, other) for other in withdrawn),
            )
            for piece in generate_fixed_slots(window.start, window.end, self.slot_minutes)
        ]

    def _detach_slots(self, entry: Availability) -> None:
        slot_ids = [slot.id for slot in entry.slots]
        if slot_ids:
            self.db.query(Appointment).filter(Appointment.slot_id.in_(slot_ids)).update(
                {Appointment.slot_id: None},
                synchronize_session=False,
            )
        entry.slots.clear()
        self.db.flush()

    def _has_appointments(self, criterion, exclude_cancelled: bool) -> bool:
        query = self.db.query(Appointment.id).filter(criterion)
        if exclude_cancelled:
            query = query.filter(Appointment.status != AppointmentStatus.CANCELLED.value)
        return query.first() is not None

    def booked_intervals(self, doctor_id: int, on_date: date) -> list[TimeInterval]:
        day = interval_for(on_date, time.min, time.max)
        rows = self.db.query(Appointment.start_time, Appointment.end_time).filter(
            Appointment.doctor_id == doctor_id,
            Appointment.status.in_(ACTIVE_STATUSES),
            Appointment.start_time < day.end,
            Appointment.end_time > day.start,
        ).all()
        return [TimeInterval(start, end) for start, end in rows]
