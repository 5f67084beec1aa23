import os
from datetime import date, time

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from booking_engine.auth.permissions import Principal  # noqa: E402
from booking_engine.database import Base, ensure_scheduling_schema  # noqa: E402
from booking_engine.models.appointment import PENDING, Appointment  # noqa: E402
from booking_engine.models.appointment_type import AppointmentType  # noqa: E402
from booking_engine.models.availability import AvailabilityWindow  # noqa: E402
from booking_engine.models.blocked_period import BlockedPeriod  # noqa: E402, F401
from booking_engine.models.user import User  # noqa: E402


def build_engine(url: str = 'sqlite:///:memory:', **kwargs):
    engine = create_engine(url, **kwargs)
    Base.metadata.create_all(bind=engine)
    ensure_scheduling_schema(engine)
    return engine


@pytest.fixture
def db_engine():
    engine = build_engine()
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def db(db_engine):
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = testing_session_local()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_user(db):
    def _make_user(email: str, role: str = 'student', full_name: str | None = None, is_active: bool = True) -> User:
        user = User(email=email, role=role, full_name=full_name, is_active=is_active)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make_user


@pytest.fixture
def instructor(make_user) -> User:
    return make_user('instructor@example.edu', role='instructor', full_name='Ada Instructor')


@pytest.fixture
def student(make_user) -> User:
    return make_user('student@example.edu', role='student', full_name='Sam Student')


@pytest.fixture
def admin(make_user) -> User:
    return make_user('admin@example.edu', role='admin', full_name='Alex Admin')


@pytest.fixture
def instructor_principal(instructor) -> Principal:
    return Principal.from_user(instructor)


@pytest.fixture
def student_principal(student) -> Principal:
    return Principal.from_user(student)


@pytest.fixture
def admin_principal(admin) -> Principal:
    return Principal.from_user(admin)


@pytest.fixture
def appointment_type(db, instructor) -> AppointmentType:
    appointment_type = AppointmentType(
        instructor_id=instructor.id,
        name='Lesson',
        duration_minutes=60,
        booking_advance_days=30,
        price=50,
        is_active=True,
    )
    db.add(appointment_type)
    db.commit()
    db.refresh(appointment_type)
    return appointment_type


@pytest.fixture
def add_window(db):
    def _add_window(
        instructor_id: int,
        weekday: int,
        start: time,
        end: time,
        buffer_minutes: int = 0,
        is_available: bool = True,
    ) -> AvailabilityWindow:
        window = AvailabilityWindow(
            instructor_id=instructor_id,
            weekday=weekday,
            start_time=start,
            end_time=end,
            buffer_minutes=buffer_minutes,
            is_available=is_available,
        )
        db.add(window)
        db.commit()
        db.refresh(window)
        return window

    return _add_window


@pytest.fixture
def add_appointment(db):
    def _add_appointment(
        instructor_id: int,
        appointment_date: date,
        start: time,
        end: time,
        user_id: int | None = None,
        appointment_type_id: int | None = None,
        status: str = PENDING,
    ) -> Appointment:
        appointment = Appointment(
            instructor_id=instructor_id,
            user_id=user_id,
            appointment_type_id=appointment_type_id,
            appointment_date=appointment_date,
            start_time=start,
            end_time=end,
            duration_minutes=(end.hour * 60 + end.minute) - (start.hour * 60 + start.minute),
            status=status,
        )
        db.add(appointment)
        db.commit()
        db.refresh(appointment)
        return appointment

    return _add_appointment


@pytest.fixture
def file_session_factory(tmp_path):
    """Sessions on a file-backed database so each thread gets its own connection."""
    engine = build_engine(
        f"sqlite:///{tmp_path / 'booking.db'}",
        connect_args={'check_same_thread': False, 'timeout': 30},
    )
    try:
        yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    finally:
        engine.dispose()
