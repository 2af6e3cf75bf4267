from datetime import date, time

import pytest

from medibook.scheduling.availability import (
    AlreadyBookedError,
    BookedSlotIndex,
    TimeInterval,
    WorkingHours,
    is_slot_free,
    is_within_working_hours,
    is_working_day,
    open_slots,
    parse_clock_time,
    release,
    reserve,
)

MONDAY = date(2026, 1, 5)
TUESDAY = date(2026, 1, 6)

HOURS = WorkingHours.from_json(
    {
        'monday': [{'start': '14:00', 'end': '17:00'}, {'start': '09:00', 'end': '12:00'}],
        'wednesday': [{'start': '10:00', 'end': '13:00'}],
    }
)


def test_parse_clock_time_accepts_hh_mm() -> None:
    assert parse_clock_time('09:30') == time(9, 30)
    assert parse_clock_time(' 7:05 ') == time(7, 5)


def test_parse_clock_time_truncates_seconds_from_time_values() -> None:
    assert parse_clock_time(time(9, 30, 45, 10)) == time(9, 30)


@pytest.mark.parametrize('value', ['25:00', '9', '09:60', 'noon', '', None])
def test_parse_clock_time_rejects_malformed_values(value) -> None:
    with pytest.raises(ValueError):
        parse_clock_time(value)


def test_working_hours_orders_intervals_by_start() -> None:
    monday = HOURS.intervals_for(MONDAY)

    assert [interval.start for interval in monday] == [9 * 60, 14 * 60]


def test_working_hours_rejects_unknown_weekday_keys() -> None:
    with pytest.raises(ValueError, match='Unknown weekday'):
        WorkingHours.from_json({'mondey': [{'start': '09:00', 'end': '12:00'}]})


def test_working_hours_rejects_misspelled_interval_keys() -> None:
    with pytest.raises(ValueError):
        WorkingHours.from_json({'monday': [{'startTime': '09:00', 'end': '12:00'}]})


@pytest.mark.parametrize(
    'payload',
    [
        {'monday': 5},
        {'monday': [5]},
        {'monday': ['09:00-12:00']},
        ['monday'],
        'monday',
    ],
)
def test_working_hours_rejects_wrongly_shaped_json(payload) -> None:
    with pytest.raises(ValueError):
        WorkingHours.from_json(payload)


def test_working_hours_rejects_overlapping_intervals() -> None:
    with pytest.raises(ValueError, match='overlap'):
        WorkingHours.from_json(
            {'monday': [{'start': '09:00', 'end': '12:00'}, {'start': '11:30', 'end': '13:00'}]}
        )


def test_working_hours_allows_adjacent_intervals() -> None:
    hours = WorkingHours.from_json(
        {'friday': [{'start': '09:00', 'end': '12:00'}, {'start': '12:00', 'end': '13:00'}]}
    )

    assert len(hours.intervals_for(date(2026, 1, 9))) == 2


def test_time_interval_rejects_empty_range() -> None:
    with pytest.raises(ValueError):
        TimeInterval.from_clock('12:00', '12:00')


def test_time_interval_treats_midnight_end_as_end_of_day() -> None:
    interval = TimeInterval.from_clock('20:00', '00:00')

    assert interval.contains(time(23, 59))
    assert interval.to_json() == {'start': '20:00', 'end': '00:00'}


def test_working_hours_json_keeps_only_working_days() -> None:
    assert HOURS.to_json() == {
        'monday': [{'start': '09:00', 'end': '12:00'}, {'start': '14:00', 'end': '17:00'}],
        'wednesday': [{'start': '10:00', 'end': '13:00'}],
    }


def test_is_working_day() -> None:
    assert is_working_day(HOURS, MONDAY)
    assert not is_working_day(HOURS, TUESDAY)
    assert not is_working_day(WorkingHours.from_json(None), MONDAY)


@pytest.mark.parametrize(
    ('at', 'expected'),
    [
        (time(9, 0), True),
        (time(11, 59), True),
        (time(12, 0), False),
        (time(13, 0), False),
        (time(14, 0), True),
        (time(17, 0), False),
        (time(8, 59), False),
    ],
)
def test_is_within_working_hours_uses_half_open_intervals(at: time, expected: bool) -> None:
    assert is_within_working_hours(HOURS, MONDAY, at) is expected


def test_is_slot_free_matches_exact_time_only() -> None:
    index = BookedSlotIndex.from_pairs([(MONDAY, time(9, 0))])

    assert not is_slot_free(index, MONDAY, time(9, 0))
    assert is_slot_free(index, MONDAY, time(9, 15))
    assert is_slot_free(index, TUESDAY, time(9, 0))


def test_reserve_returns_new_index_and_leaves_original_untouched() -> None:
    index = BookedSlotIndex()

    updated = reserve(index, MONDAY, time(9, 0))

    assert updated.booked_on(MONDAY) == {time(9, 0)}
    assert index.booked_on(MONDAY) == frozenset()


def test_reserve_rejects_already_booked_slot() -> None:
    index = reserve(BookedSlotIndex(), MONDAY, '09:00')

    with pytest.raises(AlreadyBookedError):
        reserve(index, MONDAY, '09:00')


def test_release_removes_slot_and_drops_empty_dates() -> None:
    index = reserve(BookedSlotIndex(), MONDAY, time(9, 0))

    released = release(index, MONDAY, time(9, 0))

    assert is_slot_free(released, MONDAY, time(9, 0))
    assert released.to_json() == {}


def test_release_of_free_slot_is_a_no_op() -> None:
    index = BookedSlotIndex.from_pairs([(MONDAY, time(10, 0))])

    assert release(index, MONDAY, time(9, 0)) is index
    assert release(BookedSlotIndex(), TUESDAY, time(9, 0)).to_json() == {}


def test_booked_slot_index_serializes_to_iso_keys() -> None:
    index = BookedSlotIndex.from_pairs([(MONDAY, '10:00'), (MONDAY, '09:00'), (TUESDAY, '15:30')])

    assert index.to_json() == {
        '2026-01-05': ['09:00', '10:00'],
        '2026-01-06': ['15:30'],
    }


def test_open_slots_skips_booked_times_and_interval_ends() -> None:
    index = BookedSlotIndex.from_pairs([(MONDAY, '09:00'), (MONDAY, '15:00')])

    slots = open_slots(HOURS, index, MONDAY, 60)

    assert slots == [time(10, 0), time(11, 0), time(14, 0), time(16, 0)]


def test_open_slots_is_empty_on_day_off() -> None:
    assert open_slots(HOURS, BookedSlotIndex(), TUESDAY, 30) == []


def test_open_slots_rejects_non_positive_step() -> None:
    with pytest.raises(ValueError):
        open_slots(HOURS, BookedSlotIndex(), MONDAY, 0)
