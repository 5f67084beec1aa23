"""Read path: which slots are free for an instructor on a date."""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime

from sqlalchemy.orm import Session

from booking_engine.core import config
from booking_engine.core.exceptions import NotFoundError
from booking_engine.database import Deadline, apply_deadline, storage_call
from booking_engine.models.appointment_type import AppointmentType
from booking_engine.repositories.appointment_repository import AppointmentRepository
from booking_engine.repositories.availability_repository import AvailabilityRepository
from booking_engine.repositories.blocked_period_repository import BlockedPeriodRepository
from booking_engine.scheduling.policy import BookingPolicy, check_not_past
from booking_engine.scheduling.slots import TimeSlot, dedupe_slots, generate_slots, resolve_conflicts
from booking_engine.scheduling.time_utils import format_time, weekday_of

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AvailabilityResult:
    date: date
    instructor_id: int
    duration_minutes: int
    slots: list[TimeSlot]
    working_hours: dict[str, str]
    blocked_periods: list[dict] = field(default_factory=list)

    @property
    def total_available(self) -> int:
        return sum(1 for slot in self.slots if slot.available)

    def to_dict(self) -> dict:
        return {
            'date': self.date.isoformat(),
            'instructor_id': self.instructor_id,
            'duration_minutes': self.duration_minutes,
            'slots': [slot.to_dict() for slot in self.slots],
            'total_available': self.total_available,
            'working_hours': dict(self.working_hours),
            'blocked_periods': list(self.blocked_periods),
        }


def load_appointment_type(
    db: Session,
    appointment_type_id: int,
    instructor_id: int,
    deadline: Deadline | None = None,
) -> AppointmentType:
    with storage_call('load appointment type'):
        apply_deadline(db, deadline, 'load appointment type')
        appointment_type = db.get(AppointmentType, appointment_type_id)

    if appointment_type is None or not appointment_type.is_active or appointment_type.instructor_id != instructor_id:
        raise NotFoundError(
            'Appointment type not found for this instructor.',
            details={'appointment_type_id': appointment_type_id, 'instructor_id': instructor_id},
        )
    return appointment_type


class AvailabilityService:
    def __init__(self, db: Session, policy: BookingPolicy | None = None) -> None:
        self.db = db
        self.policy = policy or BookingPolicy.from_config()
        self.windows = AvailabilityRepository(db)
        self.appointments = AppointmentRepository(db)
        self.blocked_periods = BlockedPeriodRepository(db)

    def get_availability(
        self,
        instructor_id: int,
        requested_date: date,
        duration_minutes: int,
        appointment_type_id: int | None = None,
        now: datetime | None = None,
        deadline: Deadline | None = None,
    ) -> AvailabilityResult:
        now = now or datetime.now()
        check_not_past(requested_date, now.date())

        if appointment_type_id is not None:
            appointment_type = load_appointment_type(self.db, appointment_type_id, instructor_id, deadline=deadline)
            duration_minutes = appointment_type.duration_minutes
        self.policy.check_duration(duration_minutes)

        windows = self.windows.list_active(instructor_id, weekday_of(requested_date), deadline=deadline)
        appointments = self.appointments.list_active(instructor_id, requested_date, deadline=deadline)
        blocks = self.blocked_periods.list(instructor_id, requested_date, deadline=deadline)

        if not windows:
            working_hours = {
                'start': config.DEFAULT_WORKING_HOURS_START,
                'end': config.DEFAULT_WORKING_HOURS_END,
            }
        else:
            working_hours = {
                'start': format_time(min(window.start_time for window in windows)),
                'end': format_time(max(window.end_time for window in windows)),
            }

        candidates = generate_slots([window.as_spec() for window in windows], duration_minutes)
        resolved = resolve_conflicts(
            candidates,
            [appointment.as_busy_interval() for appointment in appointments],
            [block.as_busy_interval() for block in blocks],
        )
        slots = dedupe_slots(resolved)

        logger.debug(
            'Instructor %s on %s: %d candidate slots, %d after dedupe',
            instructor_id,
            requested_date.isoformat(),
            len(candidates),
            len(slots),
        )

        return AvailabilityResult(
            date=requested_date,
            instructor_id=instructor_id,
            duration_minutes=duration_minutes,
            slots=slots,
            working_hours=working_hours,
            blocked_periods=[
                {
                    'start_time': format_time(block.start_time),
                    'end_time': format_time(block.end_time),
                    'reason': block.reason,
                }
                for block in blocks
            ],
        )
