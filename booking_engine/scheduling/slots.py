"""Slot generation and conflict resolution.

Everything here is pure: it works on the plain records below, never on ORM
rows, so it can run on any thread without touching the session.
"""

from dataclasses import dataclass, replace
from typing import Iterable, Sequence

from booking_engine.scheduling.time_utils import overlaps, to_time_string

APPOINTMENT_SOURCE = 'appointment'
BLOCKED_SOURCE = 'blocked'


@dataclass(frozen=True)
class WindowSpec:
    """One weekly availability window, in minutes since midnight."""

    start_minute: int
    end_minute: int
    buffer_minutes: int = 0


@dataclass(frozen=True)
class BusyInterval:
    """An interval that makes overlapping slots unavailable."""

    start_minute: int
    end_minute: int
    source: str
    reference_id: int | None = None


@dataclass(frozen=True)
class TimeSlot:
    start_minute: int
    end_minute: int
    available: bool = True
    buffer_before: int = 0
    buffer_after: int = 0
    booking_id: int | None = None

    @property
    def start_time(self) -> str:
        return to_time_string(self.start_minute)

    @property
    def end_time(self) -> str:
        return to_time_string(self.end_minute)

    def to_dict(self) -> dict:
        return {
            'start_time': self.start_time,
            'end_time': self.end_time,
            'available': self.available,
            'buffer_before': self.buffer_before,
            'buffer_after': self.buffer_after,
            'booking_id': self.booking_id,
        }


def generate_window_slots(window: WindowSpec, duration_minutes: int) -> list[TimeSlot]:
    if duration_minutes <= 0:
        raise ValueError('duration_minutes must be positive')

    slots: list[TimeSlot] = []
    cursor = window.start_minute
    step = duration_minutes + max(window.buffer_minutes, 0)

    while cursor + duration_minutes <= window.end_minute:
        slots.append(
            TimeSlot(
                start_minute=cursor,
                end_minute=cursor + duration_minutes,
                buffer_before=window.buffer_minutes,
                buffer_after=window.buffer_minutes,
            )
        )
        cursor += step

    return slots


def generate_slots(windows: Iterable[WindowSpec], duration_minutes: int) -> list[TimeSlot]:
    """Greedy tiling of each window; candidates are concatenated in window order."""
    slots: list[TimeSlot] = []
    for window in windows:
        slots.extend(generate_window_slots(window, duration_minutes))
    return slots


def find_conflict(slot: TimeSlot, busy: Iterable[BusyInterval]) -> BusyInterval | None:
    for interval in busy:
        if overlaps(slot.start_minute, slot.end_minute, interval.start_minute, interval.end_minute):
            return interval
    return None


def resolve_conflicts(
    slots: Sequence[TimeSlot],
    appointments: Sequence[BusyInterval],
    blocked_periods: Sequence[BusyInterval],
) -> list[TimeSlot]:
    resolved: list[TimeSlot] = []

    for slot in slots:
        appointment = find_conflict(slot, appointments)
        blocked = find_conflict(slot, blocked_periods) if appointment is None else None
        resolved.append(
            replace(
                slot,
                available=appointment is None and blocked is None,
                booking_id=appointment.reference_id if appointment is not None else None,
            )
        )

    return resolved


def dedupe_slots(slots: Iterable[TimeSlot]) -> list[TimeSlot]:
    # sorted() is stable, so the first candidate for a (start, end) pair wins.
    unique: list[TimeSlot] = []
    seen: set[tuple[int, int]] = set()

    for slot in sorted(slots, key=lambda candidate: candidate.start_minute):
        key = (slot.start_minute, slot.end_minute)
        if key in seen:
            continue
        seen.add(key)
        unique.append(slot)

    return unique


def is_within_windows(start_minute: int, end_minute: int, windows: Iterable[WindowSpec]) -> bool:
    return any(
        window.start_minute <= start_minute and end_minute <= window.end_minute
        for window in windows
    )
