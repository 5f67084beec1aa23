"""Write path: validate a booking request and commit it race-safely.

A request moves ``requested -> validated -> committed`` or ends ``rejected``.
The final conflict re-check and the insert share one transaction, and the
overlap guard installed by ``ensure_scheduling_schema`` rejects whichever
concurrent writer commits second.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from booking_engine.auth.permissions import (
    InstructorDirectory,
    Principal,
    UserInstructorDirectory,
    can_cancel,
    require_booking_permission,
)
from booking_engine.core.exceptions import (
    ConflictError,
    FormatError,
    InvalidDurationError,
    PermissionDeniedError,
    SchedulingError,
    SlotNoLongerAvailableError,
)
from booking_engine.database import APPOINTMENT_OVERLAP_GUARD, Deadline, atomic
from booking_engine.models.appointment import PENDING, Appointment
from booking_engine.repositories.appointment_repository import AppointmentRepository
from booking_engine.repositories.availability_repository import AvailabilityRepository
from booking_engine.repositories.blocked_period_repository import BlockedPeriodRepository
from booking_engine.scheduling.policy import BookingPolicy
from booking_engine.scheduling.slots import TimeSlot, find_conflict, is_within_windows
from booking_engine.scheduling.time_utils import MINUTES_PER_DAY, time_of, to_minutes, to_time_string, weekday_of
from booking_engine.services.availability_service import load_appointment_type

logger = logging.getLogger(__name__)


class BookingState(str, Enum):
    REQUESTED = 'requested'
    VALIDATED = 'validated'
    COMMITTED = 'committed'
    REJECTED = 'rejected'


@dataclass(frozen=True)
class BookingRequest:
    instructor_id: int
    appointment_date: date
    start_time: str
    duration_minutes: int
    appointment_type_id: int
    notes: str | None = None


def _is_overlap_violation(exc: IntegrityError) -> bool:
    orig = getattr(exc, 'orig', None)
    diag = getattr(orig, 'diag', None)
    if getattr(diag, 'constraint_name', None) == APPOINTMENT_OVERLAP_GUARD:
        return True
    return APPOINTMENT_OVERLAP_GUARD in str(orig if orig is not None else exc)


class BookingService:
    def __init__(
        self,
        db: Session,
        directory: InstructorDirectory | None = None,
        policy: BookingPolicy | None = None,
    ) -> None:
        self.db = db
        self.directory = directory or UserInstructorDirectory(db)
        self.policy = policy or BookingPolicy.from_config()
        self.windows = AvailabilityRepository(db)
        self.appointments = AppointmentRepository(db)
        self.blocked_periods = BlockedPeriodRepository(db)

    def _transition(self, state: BookingState, request: BookingRequest, principal: Principal, **extra) -> None:
        logger.info(
            'Booking %s: instructor=%s date=%s start=%s duration=%s requester=%s %s',
            state.value,
            request.instructor_id,
            request.appointment_date.isoformat(),
            request.start_time,
            request.duration_minutes,
            principal.user_id,
            ' '.join(f'{key}={value}' for key, value in extra.items()),
        )

    def _validate(
        self,
        request: BookingRequest,
        principal: Principal,
        now: datetime,
        deadline: Deadline | None = None,
    ) -> int:
        require_booking_permission(principal)
        start_minute = to_minutes(request.start_time)

        appointment_type = load_appointment_type(
            self.db,
            request.appointment_type_id,
            request.instructor_id,
            deadline=deadline,
        )
        self.policy.validate(
            requested_date=request.appointment_date,
            start_minute=start_minute,
            duration_minutes=request.duration_minutes,
            booking_advance_days=appointment_type.booking_advance_days,
            instructor_id=request.instructor_id,
            directory=self.directory,
            now=now,
            deadline=deadline,
        )

        if request.duration_minutes != appointment_type.duration_minutes:
            raise InvalidDurationError(
                f'{appointment_type.name} appointments last {appointment_type.duration_minutes} minutes.',
                details={
                    'duration_minutes': request.duration_minutes,
                    'appointment_type_duration_minutes': appointment_type.duration_minutes,
                },
            )

        if start_minute + request.duration_minutes >= MINUTES_PER_DAY:
            raise FormatError(
                'Appointments must end before midnight.',
                details={'start_time': request.start_time, 'duration_minutes': request.duration_minutes},
            )
        return start_minute

    def _recheck(self, request: BookingRequest, start_minute: int, end_minute: int, deadline: Deadline | None) -> None:
        windows = self.windows.list_active(
            request.instructor_id,
            weekday_of(request.appointment_date),
            deadline=deadline,
        )
        if not is_within_windows(start_minute, end_minute, [window.as_spec() for window in windows]):
            raise SlotNoLongerAvailableError(
                'This time is no longer offered by the instructor. Refresh availability and pick another slot.',
                details={'reason': 'outside_availability'},
            )

        candidate = TimeSlot(start_minute=start_minute, end_minute=end_minute)
        busy = [
            appointment.as_busy_interval()
            for appointment in self.appointments.list_active(
                request.instructor_id,
                request.appointment_date,
                deadline=deadline,
            )
        ] + [
            block.as_busy_interval()
            for block in self.blocked_periods.list(request.instructor_id, request.appointment_date, deadline=deadline)
        ]
        conflict = find_conflict(candidate, busy)
        if conflict is not None:
            raise SlotNoLongerAvailableError(
                'This slot was just taken. Refresh availability and pick another slot.',
                details={
                    'reason': conflict.source,
                    'start_time': to_time_string(conflict.start_minute),
                    'end_time': to_time_string(conflict.end_minute),
                },
            )

    def create_appointment(
        self,
        request: BookingRequest,
        principal: Principal,
        now: datetime | None = None,
        deadline: Deadline | None = None,
    ) -> Appointment:
        now = now or datetime.now()
        self._transition(BookingState.REQUESTED, request, principal)

        try:
            start_minute = self._validate(request, principal, now, deadline)
        except SchedulingError as exc:
            self._transition(BookingState.REJECTED, request, principal, error=exc.code)
            raise

        end_minute = start_minute + request.duration_minutes
        self._transition(BookingState.VALIDATED, request, principal)

        appointment = Appointment(
            instructor_id=request.instructor_id,
            user_id=principal.user_id,
            appointment_type_id=request.appointment_type_id,
            appointment_date=request.appointment_date,
            start_time=time_of(start_minute),
            end_time=time_of(end_minute),
            duration_minutes=request.duration_minutes,
            status=PENDING,
            notes=(request.notes or '').strip() or None,
        )

        try:
            with atomic(self.db, deadline, 'commit appointment'):
                self._recheck(request, start_minute, end_minute, deadline)
                self.appointments.insert(appointment)
        except IntegrityError as exc:
            if not _is_overlap_violation(exc):
                raise
            self._transition(BookingState.REJECTED, request, principal, error='overlap_guard')
            raise SlotNoLongerAvailableError(
                'This slot was just taken. Refresh availability and pick another slot.',
                details={'reason': 'concurrent_booking'},
            ) from exc
        except SchedulingError as exc:
            self._transition(BookingState.REJECTED, request, principal, error=exc.code)
            raise

        self.db.refresh(appointment)
        self._transition(BookingState.COMMITTED, request, principal, appointment_id=appointment.id)
        return appointment

    def cancel_appointment(
        self,
        appointment_id: int,
        principal: Principal,
        reason: str | None = None,
        now: datetime | None = None,
        deadline: Deadline | None = None,
    ) -> Appointment:
        now = now or datetime.now()

        with atomic(self.db, deadline, 'cancel appointment'):
            appointment = self.appointments.get(appointment_id)
            if not can_cancel(principal, appointment.instructor_id, appointment.user_id):
                raise PermissionDeniedError('Only the booker, the instructor or an admin can cancel this appointment.')
            if not appointment.is_active:
                raise ConflictError(
                    'Only pending or confirmed appointments can be cancelled.',
                    details={'status': appointment.status},
                )
            self.appointments.mark_cancelled(appointment, (reason or '').strip() or None, now)

        self.db.refresh(appointment)
        logger.info('Appointment %s cancelled by %s', appointment.id, principal.user_id)
        return appointment
