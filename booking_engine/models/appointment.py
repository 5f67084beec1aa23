"""Appointment model definitions."""

from datetime import datetime

from sqlalchemy import CheckConstraint, Column, Date, DateTime, ForeignKey, Integer, String, Time, func

from booking_engine.database import ACTIVE_APPOINTMENT_STATUSES, Base
from booking_engine.scheduling.slots import APPOINTMENT_SOURCE, BusyInterval
from booking_engine.scheduling.time_utils import format_time, minutes_of

PENDING = "pending"
CONFIRMED = "confirmed"
COMPLETED = "completed"
CANCELLED = "cancelled"
NO_SHOW = "no_show"

APPOINTMENT_STATUSES = (PENDING, CONFIRMED, COMPLETED, CANCELLED, NO_SHOW)


class Appointment(Base):
    """Represents a booked or pending appointment with an instructor."""
    __tablename__ = "appointments"
    __table_args__ = (
        CheckConstraint("start_time < end_time", name="appointments_time_order"),
        CheckConstraint(
            "status IN ('pending', 'confirmed', 'completed', 'cancelled', 'no_show')",
            name="appointments_status_values",
        ),
    )

    id = Column(Integer, primary_key=True)
    instructor_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"))
    appointment_type_id = Column(Integer, ForeignKey("appointment_types.id"))
    appointment_date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    status = Column(String, nullable=False, default=PENDING)
    notes = Column(String)
    cancellation_reason = Column(String)
    created_at = Column(DateTime, server_default=func.now())
    cancelled_at = Column(DateTime)

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_APPOINTMENT_STATUSES

    @property
    def ends_at(self) -> datetime:
        return datetime.combine(self.appointment_date, self.end_time)

    def as_busy_interval(self) -> BusyInterval:
        return BusyInterval(
            start_minute=minutes_of(self.start_time),
            end_minute=minutes_of(self.end_time),
            source=APPOINTMENT_SOURCE,
            reference_id=self.id,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "instructor_id": self.instructor_id,
            "user_id": self.user_id,
            "appointment_type_id": self.appointment_type_id,
            "date": self.appointment_date.isoformat(),
            "start_time": format_time(self.start_time),
            "end_time": format_time(self.end_time),
            "duration_minutes": self.duration_minutes,
            "status": self.status,
            "notes": self.notes,
            "cancellation_reason": self.cancellation_reason,
        }
