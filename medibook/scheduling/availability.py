"""Doctor availability: weekly working hours and the per-date index of booked slots.

Everything here is a value-in/value-out function over frozen values. Persisting
the result is the reservation service's job.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from types import MappingProxyType
from typing import Any, Mapping

WEEKDAYS = ('monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday', 'sunday')
MINUTES_PER_DAY = 24 * 60


class AlreadyBookedError(ValueError):
    """Raised by ``reserve`` when the slot is already in the index."""


def parse_clock_time(value: str | time) -> time:
    """Parse ``HH:MM`` (or accept a ``time``) and drop anything below minutes."""
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0, tzinfo=None)

    if not isinstance(value, str):
        raise ValueError('Times must use the HH:MM format.')

    try:
        parsed = datetime.strptime(value.strip(), '%H:%M')
    except ValueError as exc:
        raise ValueError('Times must use the HH:MM format.') from exc
    return parsed.time()


def format_clock_time(value: time) -> str:
    return value.strftime('%H:%M')


def minute_of_day(value: time) -> int:
    return value.hour * 60 + value.minute


@dataclass(frozen=True)
class TimeInterval:
    """Half-open ``[start, end)`` stretch of one day, both in minutes since midnight."""

    start: int
    end: int

    def __post_init__(self) -> None:
        if not 0 <= self.start < self.end <= MINUTES_PER_DAY:
            raise ValueError(f'Invalid working interval {self.start}-{self.end}.')

    @classmethod
    def from_clock(cls, start: str | time, end: str | time) -> 'TimeInterval':
        end_time = parse_clock_time(end)
        end_minute = minute_of_day(end_time)
        if end_minute == 0:
            end_minute = MINUTES_PER_DAY
        return cls(minute_of_day(parse_clock_time(start)), end_minute)

    def contains(self, value: time) -> bool:
        return self.start <= minute_of_day(value) < self.end

    def to_json(self) -> dict[str, str]:
        return {'start': _format_minute(self.start), 'end': _format_minute(self.end)}


def _format_minute(minute: int) -> str:
    if minute == MINUTES_PER_DAY:
        return '00:00'
    return f'{minute // 60:02d}:{minute % 60:02d}'


@dataclass(frozen=True)
class WorkingHours:
    """Recurring weekly hours, ``days[0]`` being Monday."""

    days: tuple[tuple[TimeInterval, ...], ...] = ((),) * 7

    def __post_init__(self) -> None:
        if len(self.days) != 7:
            raise ValueError('Working hours need exactly seven days.')

        normalized = []
        for weekday, intervals in zip(WEEKDAYS, self.days):
            ordered = tuple(sorted(intervals, key=lambda interval: interval.start))
            for previous, current in zip(ordered, ordered[1:]):
                if current.start < previous.end:
                    raise ValueError(f'Working intervals overlap on {weekday}.')
            normalized.append(ordered)
        object.__setattr__(self, 'days', tuple(normalized))

    @classmethod
    def from_json(cls, payload: Mapping[str, Any] | None) -> 'WorkingHours':
        payload = payload or {}
        if not isinstance(payload, Mapping):
            raise ValueError('Working hours must map weekday names to interval lists.')

        unknown_days = set(payload) - set(WEEKDAYS)
        if unknown_days:
            raise ValueError(f'Unknown weekday keys: {", ".join(sorted(map(str, unknown_days)))}.')

        days = []
        for weekday in WEEKDAYS:
            entries = payload.get(weekday) or []
            if not isinstance(entries, (list, tuple)):
                raise ValueError(f'Working hours for {weekday} must be a list of intervals.')

            intervals = []
            for entry in entries:
                if not isinstance(entry, Mapping) or set(entry) != {'start', 'end'}:
                    raise ValueError(f'Working intervals on {weekday} need exactly "start" and "end".')
                intervals.append(TimeInterval.from_clock(entry['start'], entry['end']))
            days.append(tuple(intervals))
        return cls(tuple(days))

    def to_json(self) -> dict[str, list[dict[str, str]]]:
        return {
            weekday: [interval.to_json() for interval in intervals]
            for weekday, intervals in zip(WEEKDAYS, self.days)
            if intervals
        }

    def intervals_for(self, day: date) -> tuple[TimeInterval, ...]:
        return self.days[day.weekday()]


@dataclass(frozen=True)
class BookedSlotIndex:
    """Booked slot times per calendar date for a single doctor."""

    slots: Mapping[date, frozenset[time]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        cleaned = {day: frozenset(times) for day, times in self.slots.items() if times}
        object.__setattr__(self, 'slots', MappingProxyType(cleaned))

    @classmethod
    def from_pairs(cls, pairs) -> 'BookedSlotIndex':
        slots: dict[date, set[time]] = {}
        for day, at in pairs:
            slots.setdefault(day, set()).add(parse_clock_time(at))
        return cls({day: frozenset(times) for day, times in slots.items()})

    def booked_on(self, day: date) -> frozenset[time]:
        return self.slots.get(day, frozenset())

    def pairs(self) -> set[tuple[date, time]]:
        return {(day, at) for day, times in self.slots.items() for at in times}

    def to_json(self) -> dict[str, list[str]]:
        return {
            day.isoformat(): sorted(format_clock_time(at) for at in times)
            for day, times in sorted(self.slots.items())
        }


def is_working_day(working_hours: WorkingHours, day: date) -> bool:
    return bool(working_hours.intervals_for(day))


def is_within_working_hours(working_hours: WorkingHours, day: date, at: time) -> bool:
    at = parse_clock_time(at)
    return any(interval.contains(at) for interval in working_hours.intervals_for(day))


def is_slot_free(index: BookedSlotIndex, day: date, at: time) -> bool:
    return parse_clock_time(at) not in index.booked_on(day)


def reserve(index: BookedSlotIndex, day: date, at: time) -> BookedSlotIndex:
    at = parse_clock_time(at)
    booked = index.booked_on(day)
    if at in booked:
        raise AlreadyBookedError(f'{day.isoformat()} {format_clock_time(at)} is already booked.')

    slots = dict(index.slots)
    slots[day] = booked | {at}
    return BookedSlotIndex(slots)


def release(index: BookedSlotIndex, day: date, at: time) -> BookedSlotIndex:
    at = parse_clock_time(at)
    booked = index.booked_on(day)
    if at not in booked:
        return index

    slots = dict(index.slots)
    slots[day] = booked - {at}
    return BookedSlotIndex(slots)


def open_slots(
    working_hours: WorkingHours,
    index: BookedSlotIndex,
    day: date,
    step_minutes: int,
) -> list[time]:
    """Slot starts on ``day`` that fall in working hours and are not booked."""
    if step_minutes <= 0:
        raise ValueError('Slot step must be a positive number of minutes.')

    booked = index.booked_on(day)
    starts: list[time] = []
    for interval in working_hours.intervals_for(day):
        current = datetime.combine(day, time()) + timedelta(minutes=interval.start)
        interval_end = datetime.combine(day, time()) + timedelta(minutes=interval.end)
        while current < interval_end:
            if current.time() not in booked:
                starts.append(current.time())
            current += timedelta(minutes=step_minutes)
    return starts
