import logging
from datetime import datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from booking_engine.core.exceptions import ConflictError, DependencyError, FormatError, NotFoundError
from booking_engine.database import WINDOW_OVERLAP_GUARD, Deadline, apply_deadline, atomic, storage_call
from booking_engine.models.availability import AvailabilityWindow
from booking_engine.repositories.appointment_repository import AppointmentRepository
from booking_engine.scheduling.time_utils import (
    format_time,
    minutes_of,
    overlaps,
    time_of,
    to_minutes,
    weekday_of,
)

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = frozenset(
    {'weekday', 'start_time', 'end_time', 'buffer_minutes', 'max_bookings_per_day', 'is_available'}
)


def _validate_window(
    weekday: int,
    start_minute: int,
    end_minute: int,
    buffer_minutes: int,
    max_bookings_per_day: int,
) -> None:
    if not isinstance(weekday, int) or weekday < 0 or weekday > 6:
        raise FormatError('weekday must be between 0 (Sunday) and 6 (Saturday).', details={'weekday': weekday})
    if start_minute >= end_minute:
        raise FormatError(
            'start_time must be before end_time.',
            details={'start_minute': start_minute, 'end_minute': end_minute},
        )
    if buffer_minutes < 0:
        raise FormatError('buffer_minutes cannot be negative.', details={'buffer_minutes': buffer_minutes})
    if max_bookings_per_day <= 0:
        raise FormatError(
            'max_bookings_per_day must be positive.',
            details={'max_bookings_per_day': max_bookings_per_day},
        )


def _is_overlap_violation(exc: IntegrityError) -> bool:
    orig = getattr(exc, 'orig', None)
    diag = getattr(orig, 'diag', None)
    if getattr(diag, 'constraint_name', None) == WINDOW_OVERLAP_GUARD:
        return True
    return WINDOW_OVERLAP_GUARD in str(orig if orig is not None else exc)


class AvailabilityRepository:
    """Recurring weekly windows; active windows of one instructor and weekday never overlap."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def get(self, window_id: int, deadline: Deadline | None = None) -> AvailabilityWindow:
        with storage_call('load availability window'):
            apply_deadline(self.db, deadline, 'load availability window')
            window = self.db.get(AvailabilityWindow, window_id)

        if window is None:
            raise NotFoundError('Availability window not found.', details={'window_id': window_id})
        return window

    def list_for_instructor(self, instructor_id: int, deadline: Deadline | None = None) -> list[AvailabilityWindow]:
        with storage_call('load availability windows'):
            apply_deadline(self.db, deadline, 'load availability windows')
            return self.db.query(AvailabilityWindow).filter(
                AvailabilityWindow.instructor_id == instructor_id,
            ).order_by(AvailabilityWindow.weekday.asc(), AvailabilityWindow.start_time.asc()).all()

    def list_active(
        self,
        instructor_id: int,
        weekday: int,
        exclude_id: int | None = None,
        deadline: Deadline | None = None,
    ) -> list[AvailabilityWindow]:
        with storage_call('load availability windows'):
            apply_deadline(self.db, deadline, 'load availability windows')
            query = self.db.query(AvailabilityWindow).filter(
                AvailabilityWindow.instructor_id == instructor_id,
                AvailabilityWindow.weekday == weekday,
                AvailabilityWindow.is_available.is_(True),
            )
            if exclude_id is not None:
                query = query.filter(AvailabilityWindow.id != exclude_id)
            return query.order_by(AvailabilityWindow.start_time.asc(), AvailabilityWindow.id.asc()).all()

    def _ensure_no_overlap(
        self,
        instructor_id: int,
        weekday: int,
        start_minute: int,
        end_minute: int,
        exclude_id: int | None = None,
    ) -> None:
        for existing in self.list_active(instructor_id, weekday, exclude_id=exclude_id):
            spec = existing.as_spec()
            if overlaps(start_minute, end_minute, spec.start_minute, spec.end_minute):
                logger.info(
                    'Rejected availability window for instructor %s: overlaps window %s',
                    instructor_id,
                    existing.id,
                )
                raise ConflictError(
                    'Availability window overlaps an existing window.',
                    details={
                        'conflicting_window_id': existing.id,
                        'start_time': format_time(existing.start_time),
                        'end_time': format_time(existing.end_time),
                    },
                )

    def create(
        self,
        *,
        instructor_id: int,
        weekday: int,
        start_time: str,
        end_time: str,
        buffer_minutes: int = 0,
        max_bookings_per_day: int = 8,
        is_available: bool = True,
        deadline: Deadline | None = None,
    ) -> AvailabilityWindow:
        start_minute = to_minutes(start_time)
        end_minute = to_minutes(end_time)
        _validate_window(weekday, start_minute, end_minute, buffer_minutes, max_bookings_per_day)

        window = AvailabilityWindow(
            instructor_id=instructor_id,
            weekday=weekday,
            start_time=time_of(start_minute),
            end_time=time_of(end_minute),
            buffer_minutes=buffer_minutes,
            max_bookings_per_day=max_bookings_per_day,
            is_available=is_available,
        )

        try:
            with atomic(self.db, deadline, 'create availability window'):
                if is_available:
                    self._ensure_no_overlap(instructor_id, weekday, start_minute, end_minute)
                self.db.add(window)
                self.db.flush()
        except IntegrityError as exc:
            if _is_overlap_violation(exc):
                logger.warning('Concurrent availability write lost for instructor %s', instructor_id)
                raise ConflictError('Availability window overlaps an existing window.') from exc
            raise

        self.db.refresh(window)
        return window

    def update(self, window_id: int, changes: dict, deadline: Deadline | None = None) -> AvailabilityWindow:
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise FormatError('These fields cannot be updated.', details={'fields': sorted(unknown)})

        try:
            with atomic(self.db, deadline, 'update availability window'):
                window = self.db.get(AvailabilityWindow, window_id)
                if window is None:
                    raise NotFoundError('Availability window not found.', details={'window_id': window_id})

                start_minute = to_minutes(changes['start_time']) if 'start_time' in changes else minutes_of(window.start_time)
                end_minute = to_minutes(changes['end_time']) if 'end_time' in changes else minutes_of(window.end_time)
                weekday = changes.get('weekday', window.weekday)
                buffer_minutes = changes.get('buffer_minutes', window.buffer_minutes)
                max_bookings_per_day = changes.get('max_bookings_per_day', window.max_bookings_per_day)
                is_available = changes.get('is_available', window.is_available)
                _validate_window(weekday, start_minute, end_minute, buffer_minutes, max_bookings_per_day)

                if is_available:
                    self._ensure_no_overlap(
                        window.instructor_id,
                        weekday,
                        start_minute,
                        end_minute,
                        exclude_id=window.id,
                    )

                window.weekday = weekday
                window.start_time = time_of(start_minute)
                window.end_time = time_of(end_minute)
                window.buffer_minutes = buffer_minutes
                window.max_bookings_per_day = max_bookings_per_day
                window.is_available = is_available
                self.db.flush()
        except IntegrityError as exc:
            if _is_overlap_violation(exc):
                logger.warning('Concurrent availability write lost for window %s', window_id)
                raise ConflictError('Updated availability window would overlap an existing window.') from exc
            raise

        self.db.refresh(window)
        return window

    def delete(self, window_id: int, now: datetime | None = None, deadline: Deadline | None = None) -> None:
        """Delete a window unless an upcoming active appointment falls inside it.

        Appointments dated today count as upcoming until their end time passes.
        """
        now = now or datetime.now()

        with atomic(self.db, deadline, 'delete availability window'):
            window = self.db.get(AvailabilityWindow, window_id)
            if window is None:
                raise NotFoundError('Availability window not found.', details={'window_id': window_id})

            spec = window.as_spec()
            upcoming = AppointmentRepository(self.db).list_future_active(window.instructor_id, now.date())
            dependent_ids = [
                appointment.id
                for appointment in upcoming
                if weekday_of(appointment.appointment_date) == window.weekday
                and appointment.ends_at > now
                and spec.start_minute <= minutes_of(appointment.start_time)
                and minutes_of(appointment.end_time) <= spec.end_minute
            ]
            if dependent_ids:
                raise DependencyError(
                    f'{len(dependent_ids)} upcoming appointment(s) depend on this availability window.',
                    details={'appointment_ids': dependent_ids},
                )

            self.db.delete(window)
