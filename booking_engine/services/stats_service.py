"""Historical appointment statistics. Read-only."""

from collections import Counter
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Iterable, Mapping

from sqlalchemy.orm import Session

from booking_engine.core.exceptions import FormatError
from booking_engine.database import Deadline, apply_deadline, storage_call
from booking_engine.models.appointment import (
    APPOINTMENT_STATUSES,
    CANCELLED,
    COMPLETED,
    CONFIRMED,
    NO_SHOW,
    PENDING,
    Appointment,
)
from booking_engine.models.appointment_type import AppointmentType
from booking_engine.models.user import User
from booking_engine.repositories.appointment_repository import AppointmentRepository
from booking_engine.scheduling.time_utils import format_time

POPULAR_SLOT_LIMIT = 10
PERIODS = ('week', 'month', 'quarter', 'year')


@dataclass(frozen=True)
class StatsPeriod:
    name: str
    start_date: date
    end_date: date


def resolve_period(
    period: str,
    today: date,
    start_date: date | None = None,
    end_date: date | None = None,
) -> StatsPeriod:
    if start_date is not None and end_date is not None:
        if start_date > end_date:
            raise FormatError('start_date must not be after end_date.')
        return StatsPeriod('custom', start_date, end_date)

    if period == 'week':
        return StatsPeriod(period, today - timedelta(days=7), today)
    if period == 'quarter':
        quarter_start_month = (today.month - 1) // 3 * 3 + 1
        return StatsPeriod(period, today.replace(month=quarter_start_month, day=1), today)
    if period == 'year':
        return StatsPeriod(period, today.replace(month=1, day=1), today)
    if period != 'month':
        raise FormatError(f'period must be one of {", ".join(PERIODS)}.', details={'period': period})
    return StatsPeriod(period, today.replace(day=1), today)


def _revenue(appointments: Iterable[Appointment], prices: Mapping[int, Decimal]) -> Decimal:
    return sum(
        (prices.get(appointment.appointment_type_id, Decimal('0')) for appointment in appointments
         if appointment.status == COMPLETED),
        Decimal('0'),
    )


def aggregate_appointment_stats(
    appointments: list[Appointment],
    prices: Mapping[int, Decimal],
    instructor_names: Mapping[int, str],
    month_appointments: Iterable[Appointment] = (),
) -> dict:
    status_counts = Counter(appointment.status for appointment in appointments)

    slot_counts = Counter(format_time(appointment.start_time) for appointment in appointments)
    popular_time_slots = [
        {'time_slot': time_slot, 'booking_count': count}
        for time_slot, count in sorted(slot_counts.items(), key=lambda item: (-item[1], item[0]))[:POPULAR_SLOT_LIMIT]
    ]

    by_instructor: dict[int, list[Appointment]] = {}
    for appointment in appointments:
        by_instructor.setdefault(appointment.instructor_id, []).append(appointment)

    performance = []
    for instructor_id, booked in by_instructor.items():
        completed = sum(1 for appointment in booked if appointment.status == COMPLETED)
        performance.append(
            {
                'instructor_id': instructor_id,
                'instructor_name': instructor_names.get(instructor_id, 'Unknown'),
                'total_bookings': len(booked),
                'completion_rate': round(completed / len(booked), 2),
                'revenue': float(_revenue(booked, prices)),
            }
        )
    performance.sort(key=lambda row: (-row['total_bookings'], row['instructor_id']))

    return {
        'total_appointments': len(appointments),
        'pending_appointments': status_counts.get(PENDING, 0),
        'confirmed_appointments': status_counts.get(CONFIRMED, 0),
        'completed_appointments': status_counts.get(COMPLETED, 0),
        'cancelled_appointments': status_counts.get(CANCELLED, 0),
        'no_show_appointments': status_counts.get(NO_SHOW, 0),
        'status_counts': {status: status_counts.get(status, 0) for status in APPOINTMENT_STATUSES},
        'revenue_total': float(_revenue(appointments, prices)),
        'revenue_this_month': float(_revenue(month_appointments, prices)),
        'popular_time_slots': popular_time_slots,
        'instructor_performance': performance,
    }


class StatsService:
    def __init__(self, db: Session) -> None:
        self.db = db
        self.appointments = AppointmentRepository(db)

    def summarize(
        self,
        period: str = 'month',
        instructor_id: int | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
        now: datetime | None = None,
        deadline: Deadline | None = None,
    ) -> dict:
        today = (now or datetime.now()).date()
        window = resolve_period(period, today, start_date, end_date)
        appointments = self.appointments.list_between(
            window.start_date,
            window.end_date,
            instructor_id=instructor_id,
            deadline=deadline,
        )

        month_appointments = self.appointments.list_between(
            today.replace(day=1),
            today,
            instructor_id=instructor_id,
            deadline=deadline,
        )

        type_ids = {
            appointment.appointment_type_id
            for appointment in [*appointments, *month_appointments]
            if appointment.appointment_type_id
        }
        instructor_ids = {appointment.instructor_id for appointment in appointments}
        with storage_call('load stats lookups'):
            apply_deadline(self.db, deadline, 'load stats lookups')
            prices = {
                type_id: Decimal(price or 0)
                for type_id, price in self.db.query(AppointmentType.id, AppointmentType.price).filter(
                    AppointmentType.id.in_(type_ids)
                )
            } if type_ids else {}
            names = {
                user_id: full_name or email
                for user_id, full_name, email in self.db.query(User.id, User.full_name, User.email).filter(
                    User.id.in_(instructor_ids)
                )
            } if instructor_ids else {}

        stats = aggregate_appointment_stats(appointments, prices, names, month_appointments=month_appointments)
        stats['period'] = {
            'name': window.name,
            'start_date': window.start_date.isoformat(),
            'end_date': window.end_date.isoformat(),
            'instructor_id': instructor_id,
        }
        return stats
