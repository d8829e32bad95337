"""Half-open time interval helpers shared by availability and booking."""

import re
from datetime import date, datetime, time
from typing import NamedTuple

from clinic.core.errors import TimeFormatError

CLOCK_TIME_PATTERN = re.compile(r'^([01]?[0-9]|2[0-3]):([0-5][0-9])$')


class TimeInterval(NamedTuple):
    start: datetime
    end: datetime


def overlaps(a: TimeInterval, b: TimeInterval) -> bool:
    # Back-to-back intervals (a.end == b.start) share no instant.
    return a.start < b.end and b.start < a.end


def contains(outer: TimeInterval, inner: TimeInterval) -> bool:
    return outer.start <= inner.start and inner.end <= outer.end


def duration_minutes(interval: TimeInterval) -> int:
    return int((interval.end - interval.start).total_seconds() // 60)


def parse_clock_time(value: str | time) -> time:
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0)

    match = CLOCK_TIME_PATTERN.match((value or '').strip())
    if not match:
        raise TimeFormatError(f'Invalid time format "{value}". Use HH:MM (24h).')

    return time(int(match.group(1)), int(match.group(2)))


def format_clock_time(value: time) -> str:
    return value.strftime('%H:%M')


def combine(on_date: date, clock_time: time) -> datetime:
    return datetime.combine(on_date, clock_time)


def interval_for(on_date: date, start_time: time, end_time: time) -> TimeInterval:
    return TimeInterval(combine(on_date, start_time), combine(on_date, end_time))
