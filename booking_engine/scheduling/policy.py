"""Booking-window rules applied before any appointment is written."""

from dataclasses import dataclass
from datetime import date, datetime, timedelta

from booking_engine.auth.permissions import InstructorDirectory
from booking_engine.core import config
from booking_engine.core.exceptions import (
    BookingWindowExceededError,
    InstructorUnavailableError,
    InsufficientLeadTimeError,
    InvalidDurationError,
    PastDateError,
)
from booking_engine.database import Deadline
from booking_engine.scheduling.time_utils import time_of


def check_duration(duration_minutes: int, minimum: int, maximum: int) -> None:
    if duration_minutes < minimum or duration_minutes > maximum:
        raise InvalidDurationError(
            f'Duration must be between {minimum} and {maximum} minutes.',
            details={'duration_minutes': duration_minutes, 'minimum': minimum, 'maximum': maximum},
        )


def check_not_past(requested_date: date, today: date) -> None:
    if requested_date < today:
        raise PastDateError(
            'Choose today or a later date.',
            details={'date': requested_date.isoformat(), 'today': today.isoformat()},
        )


@dataclass(frozen=True)
class BookingPolicy:
    min_lead_minutes: int = 60
    min_duration_minutes: int = 15
    max_duration_minutes: int = 480

    @classmethod
    def from_config(cls) -> 'BookingPolicy':
        return cls(
            min_lead_minutes=config.MIN_LEAD_TIME_MINUTES,
            min_duration_minutes=config.MIN_DURATION_MINUTES,
            max_duration_minutes=config.MAX_DURATION_MINUTES,
        )

    def check_duration(self, duration_minutes: int) -> None:
        check_duration(duration_minutes, self.min_duration_minutes, self.max_duration_minutes)

    def validate(
        self,
        *,
        requested_date: date,
        start_minute: int,
        duration_minutes: int,
        booking_advance_days: int,
        instructor_id: int,
        directory: InstructorDirectory,
        now: datetime,
        deadline: Deadline | None = None,
    ) -> None:
        today = now.date()
        check_not_past(requested_date, today)

        requested_start = datetime.combine(requested_date, time_of(start_minute))
        if requested_start - now < timedelta(minutes=self.min_lead_minutes):
            raise InsufficientLeadTimeError(
                f'Choose a start time at least {self.min_lead_minutes} minutes from now.',
                details={'requested_start': requested_start.isoformat(timespec='minutes')},
            )

        days_ahead = (requested_date - today).days
        if days_ahead > booking_advance_days:
            raise BookingWindowExceededError(
                f'This appointment type can be booked at most {booking_advance_days} days ahead.',
                details={'days_ahead': days_ahead, 'booking_advance_days': booking_advance_days},
            )

        self.check_duration(duration_minutes)

        if not directory.is_bookable_instructor(instructor_id, deadline=deadline):
            raise InstructorUnavailableError(
                'This instructor is not currently accepting bookings.',
                details={'instructor_id': instructor_id},
            )
