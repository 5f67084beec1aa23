"""Availability window model definitions."""

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, ForeignKey, Integer, Time, func

from booking_engine.database import Base
from booking_engine.scheduling.slots import WindowSpec
from booking_engine.scheduling.time_utils import format_time, minutes_of


class AvailabilityWindow(Base):
    """Recurring weekly interval in which an instructor accepts bookings."""
    __tablename__ = "availability_windows"
    __table_args__ = (
        CheckConstraint("weekday BETWEEN 0 AND 6", name="availability_windows_weekday_range"),
        CheckConstraint("start_time < end_time", name="availability_windows_time_order"),
        CheckConstraint("buffer_minutes >= 0", name="availability_windows_buffer_non_negative"),
        CheckConstraint("max_bookings_per_day > 0", name="availability_windows_max_bookings_positive"),
    )

    id = Column(Integer, primary_key=True)
    instructor_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    weekday = Column(Integer, nullable=False)  # 0 = Sunday
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    buffer_minutes = Column(Integer, nullable=False, default=0)
    max_bookings_per_day = Column(Integer, nullable=False, default=8)
    is_available = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    def as_spec(self) -> WindowSpec:
        return WindowSpec(
            start_minute=minutes_of(self.start_time),
            end_minute=minutes_of(self.end_time),
            buffer_minutes=self.buffer_minutes or 0,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "instructor_id": self.instructor_id,
            "weekday": self.weekday,
            "start_time": format_time(self.start_time),
            "end_time": format_time(self.end_time),
            "buffer_minutes": self.buffer_minutes,
            "max_bookings_per_day": self.max_bookings_per_day,
            "is_available": self.is_available,
        }
