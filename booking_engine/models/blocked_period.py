"""Blocked period model definitions."""

from sqlalchemy import CheckConstraint, Column, Date, DateTime, ForeignKey, Integer, String, Time, func

from booking_engine.database import Base
from booking_engine.scheduling.slots import BLOCKED_SOURCE, BusyInterval
from booking_engine.scheduling.time_utils import format_time, minutes_of


class BlockedPeriod(Base):
    """One-off, date-specific interval in which an instructor takes no bookings."""
    __tablename__ = "blocked_periods"
    __table_args__ = (
        CheckConstraint("start_time < end_time", name="blocked_periods_time_order"),
    )

    id = Column(Integer, primary_key=True)
    instructor_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    block_date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    reason = Column(String)
    created_at = Column(DateTime, server_default=func.now())

    def as_busy_interval(self) -> BusyInterval:
        return BusyInterval(
            start_minute=minutes_of(self.start_time),
            end_minute=minutes_of(self.end_time),
            source=BLOCKED_SOURCE,
            reference_id=self.id,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "instructor_id": self.instructor_id,
            "date": self.block_date.isoformat(),
            "start_time": format_time(self.start_time),
            "end_time": format_time(self.end_time),
            "reason": self.reason,
        }
