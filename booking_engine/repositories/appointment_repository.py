from datetime import date, datetime

from sqlalchemy.orm import Session

from booking_engine.core.exceptions import NotFoundError
from booking_engine.database import ACTIVE_APPOINTMENT_STATUSES, Deadline, apply_deadline, storage_call
from booking_engine.models.appointment import CANCELLED, Appointment


class AppointmentRepository:
    """Storage access for appointments. Writes happen inside the caller's transaction."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def get(self, appointment_id: int, deadline: Deadline | None = None) -> Appointment:
        with storage_call('load appointment'):
            apply_deadline(self.db, deadline, 'load appointment')
            appointment = self.db.get(Appointment, appointment_id)

        if appointment is None:
            raise NotFoundError('Appointment not found.', details={'appointment_id': appointment_id})
        return appointment

    def list_active(
        self,
        instructor_id: int,
        appointment_date: date,
        deadline: Deadline | None = None,
    ) -> list[Appointment]:
        with storage_call('load appointments'):
            apply_deadline(self.db, deadline, 'load appointments')
            return self.db.query(Appointment).filter(
                Appointment.instructor_id == instructor_id,
                Appointment.appointment_date == appointment_date,
                Appointment.status.in_(ACTIVE_APPOINTMENT_STATUSES),
            ).order_by(Appointment.start_time.asc(), Appointment.id.asc()).all()

    def list_future_active(
        self,
        instructor_id: int,
        from_date: date,
        deadline: Deadline | None = None,
    ) -> list[Appointment]:
        with storage_call('load upcoming appointments'):
            apply_deadline(self.db, deadline, 'load upcoming appointments')
            return self.db.query(Appointment).filter(
                Appointment.instructor_id == instructor_id,
                Appointment.appointment_date >= from_date,
                Appointment.status.in_(ACTIVE_APPOINTMENT_STATUSES),
            ).order_by(Appointment.appointment_date.asc(), Appointment.start_time.asc()).all()

    def list_between(
        self,
        start_date: date,
        end_date: date,
        instructor_id: int | None = None,
        deadline: Deadline | None = None,
    ) -> list[Appointment]:
        with storage_call('load appointment history'):
            apply_deadline(self.db, deadline, 'load appointment history')
            query = self.db.query(Appointment).filter(
                Appointment.appointment_date >= start_date,
                Appointment.appointment_date <= end_date,
            )
            if instructor_id is not None:
                query = query.filter(Appointment.instructor_id == instructor_id)
            return query.order_by(Appointment.appointment_date.asc(), Appointment.start_time.asc()).all()

    def insert(self, appointment: Appointment) -> Appointment:
        self.db.add(appointment)
        self.db.flush()
        return appointment

    def mark_cancelled(self, appointment: Appointment, reason: str | None, now: datetime) -> Appointment:
        appointment.status = CANCELLED
        appointment.cancellation_reason = reason
        appointment.cancelled_at = now
        self.db.flush()
        return appointment
