from collections.abc import Iterable, Iterator
from datetime import date, datetime, timedelta

from clinic.core import config
from clinic.core.errors import InvalidRangeError, ValidationError
from clinic.scheduling.intervals import TimeInterval


def weekday_number(value: date) -> int:
    """Weekday with Sunday as 0 and Saturday as 6."""
    return value.isoweekday() % 7


def generate_fixed_slots(
    window_start: datetime,
    window_end: datetime,
    step_minutes: int = config.SLOT_DURATION_MINUTES,
) -> Iterator[TimeInterval]:
    if step_minutes <= 0:
        raise ValueError('step_minutes must be positive.')

    step = timedelta(minutes=step_minutes)
    current = window_start

    while current + step <= window_end:
        yield TimeInterval(current, current + step)
        current += step


def generate_recurring_dates(date_start: date, date_end: date, weekdays: Iterable[int]) -> Iterator[date]:
    # Validate eagerly so callers see errors before iterating.
    if date_end < date_start:
        raise InvalidRangeError(
            f'End date {date_end.isoformat()} is before start date {date_start.isoformat()}.'
        )

    weekday_set = set(weekdays)
    invalid = sorted(weekday for weekday in weekday_set if not 0 <= weekday <= 6)
    if invalid:
        raise ValidationError(f'Weekdays must be between 0 (Sunday) and 6 (Saturday), got {invalid}.')

    return _iterate_dates(date_start, date_end, weekday_set)


def _iterate_dates(date_start: date, date_end: date, weekday_set: set[int]) -> Iterator[date]:
    current = date_start
    while current <= date_end:
        if weekday_number(current) in weekday_set:
            yield current
        current += timedelta(days=1)
