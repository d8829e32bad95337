from datetime import date, datetime

import pytest

from clinic.core.errors import InvalidRangeError, ValidationError
from clinic.scheduling.intervals import TimeInterval
from clinic.scheduling.slot_generator import generate_fixed_slots, generate_recurring_dates, weekday_number


def _at(hour: int, minute: int = 0) -> datetime:
    return datetime(2024, 12, 2, hour, minute)


def test_generate_fixed_slots_splits_whole_window() -> None:
    assert list(generate_fixed_slots(_at(9), _at(10), 30)) == [
        TimeInterval(_at(9), _at(9, 30)),
        TimeInterval(_at(9, 30), _at(10)),
    ]


def test_generate_fixed_slots_drops_partial_trailing_slot() -> None:
    assert list(generate_fixed_slots(_at(9), _at(10, 15), 30)) == [
        TimeInterval(_at(9), _at(9, 30)),
        TimeInterval(_at(9, 30), _at(10)),
    ]


@pytest.mark.parametrize(('start', 'end'), [(_at(10), _at(10)), (_at(10), _at(9))])
def test_generate_fixed_slots_is_empty_for_empty_window(start: datetime, end: datetime) -> None:
    assert list(generate_fixed_slots(start, end, 30)) == []


def test_generate_fixed_slots_supports_custom_step() -> None:
    slots = list(generate_fixed_slots(_at(9), _at(10), 15))

    assert len(slots) == 4
    assert slots[-1] == TimeInterval(_at(9, 45), _at(10))


def test_generate_fixed_slots_is_restartable() -> None:
    assert list(generate_fixed_slots(_at(9), _at(11))) == list(generate_fixed_slots(_at(9), _at(11)))


def test_generate_fixed_slots_rejects_non_positive_step() -> None:
    with pytest.raises(ValueError):
        list(generate_fixed_slots(_at(9), _at(10), 0))


def test_generate_recurring_dates_picks_matching_weekdays() -> None:
    dates = list(generate_recurring_dates(date(2024, 12, 2), date(2024, 12, 8), {1, 3, 5}))

    assert dates == [date(2024, 12, 2), date(2024, 12, 4), date(2024, 12, 6)]


def test_generate_recurring_dates_includes_both_ends() -> None:
    dates = list(generate_recurring_dates(date(2024, 12, 1), date(2024, 12, 8), {0}))

    assert dates == [date(2024, 12, 1), date(2024, 12, 8)]


def test_generate_recurring_dates_single_day_range() -> None:
    assert list(generate_recurring_dates(date(2024, 12, 2), date(2024, 12, 2), {1})) == [date(2024, 12, 2)]
    assert list(generate_recurring_dates(date(2024, 12, 2), date(2024, 12, 2), {2})) == []


def test_generate_recurring_dates_rejects_reversed_range() -> None:
    with pytest.raises(InvalidRangeError):
        generate_recurring_dates(date(2024, 12, 8), date(2024, 12, 2), {1})


def test_generate_recurring_dates_rejects_unknown_weekday() -> None:
    with pytest.raises(ValidationError):
        generate_recurring_dates(date(2024, 12, 2), date(2024, 12, 8), {7})


def test_weekday_number_starts_on_sunday() -> None:
    assert weekday_number(date(2024, 12, 1)) == 0
    assert weekday_number(date(2024, 12, 2)) == 1
    assert weekday_number(date(2024, 12, 7)) == 6
