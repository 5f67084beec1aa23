"""Appointment type model definitions."""

from sqlalchemy import Boolean, CheckConstraint, Column, ForeignKey, Integer, Numeric, String

from booking_engine.database import Base


class AppointmentType(Base):
    """Bookable service offered by an instructor. Read-only to the booking engine."""
    __tablename__ = "appointment_types"
    __table_args__ = (
        CheckConstraint("duration_minutes > 0", name="appointment_types_duration_positive"),
        CheckConstraint("booking_advance_days >= 0", name="appointment_types_advance_non_negative"),
    )

    id = Column(Integer, primary_key=True)
    instructor_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    name = Column(String, nullable=False)
    duration_minutes = Column(Integer, nullable=False, default=60)
    booking_advance_days = Column(Integer, nullable=False, default=30)
    price = Column(Numeric(10, 2), nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
