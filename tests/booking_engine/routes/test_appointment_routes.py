from datetime import date, time, timedelta

import pytest
from fastapi import HTTPException
from pydantic import ValidationError

from booking_engine.models.appointment import COMPLETED
from booking_engine.routes.appointment_routes import (
    CancelAppointmentRequest,
    CreateAppointmentRequest,
    cancel_appointment,
    create_appointment,
    get_appointment_stats,
)
from booking_engine.scheduling.time_utils import weekday_of


def upcoming_date() -> date:
    return date.today() + timedelta(days=7)


def appointment_request(instructor_id: int, appointment_type_id: int, slot_date: date, start_time: str = '10:00'):
    return CreateAppointmentRequest(
        instructor_id=instructor_id,
        appointment_date=slot_date,
        start_time=start_time,
        duration_minutes=60,
        appointment_type_id=appointment_type_id,
        notes=' Bring sheet music ',
    )


def test_create_appointment_request_normalizes_fields() -> None:
    request = appointment_request(1, 1, date(2026, 1, 12), start_time=' 10:00 ')

    assert request.start_time == '10:00'
    assert request.notes == 'Bring sheet music'


def test_create_appointment_request_rejects_malformed_start_time() -> None:
    with pytest.raises(ValidationError):
        appointment_request(1, 1, date(2026, 1, 12), start_time='25:00')


def test_cancel_request_limits_reason_length() -> None:
    with pytest.raises(ValidationError):
        CancelAppointmentRequest(reason='x' * 201)


def test_student_books_open_slot(db, instructor, student_principal, appointment_type, add_window) -> None:
    slot_date = upcoming_date()
    add_window(instructor.id, weekday_of(slot_date), time(9, 0), time(12, 0))

    response = create_appointment(
        data=appointment_request(instructor.id, appointment_type.id, slot_date),
        principal=student_principal,
        db=db,
    )

    assert response.status == 'pending'
    assert response.date == slot_date.isoformat()
    assert (response.start_time, response.end_time) == ('10:00', '11:00')
    assert response.notes == 'Bring sheet music'


def test_booking_taken_slot_returns_conflict(
    db, instructor, student_principal, appointment_type, add_window, add_appointment,
) -> None:
    slot_date = upcoming_date()
    add_window(instructor.id, weekday_of(slot_date), time(9, 0), time(12, 0))
    add_appointment(instructor.id, slot_date, time(10, 0), time(11, 0))

    with pytest.raises(HTTPException) as exception_info:
        create_appointment(
            data=appointment_request(instructor.id, appointment_type.id, slot_date),
            principal=student_principal,
            db=db,
        )

    assert exception_info.value.status_code == 409
    assert exception_info.value.detail['code'] == 'SlotNoLongerAvailableError'


def test_booking_too_far_ahead_returns_bad_request(db, instructor, student_principal, appointment_type) -> None:
    with pytest.raises(HTTPException) as exception_info:
        create_appointment(
            data=appointment_request(instructor.id, appointment_type.id, date.today() + timedelta(days=45)),
            principal=student_principal,
            db=db,
        )

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail['code'] == 'BookingWindowExceededError'


def test_booker_cancels_appointment(db, instructor, student_principal, appointment_type, add_window) -> None:
    slot_date = upcoming_date()
    add_window(instructor.id, weekday_of(slot_date), time(9, 0), time(12, 0))
    booked = create_appointment(
        data=appointment_request(instructor.id, appointment_type.id, slot_date),
        principal=student_principal,
        db=db,
    )

    cancelled = cancel_appointment(
        appointment_id=booked.id,
        data=CancelAppointmentRequest(reason='Schedule change'),
        principal=student_principal,
        db=db,
    )

    assert cancelled.status == 'cancelled'
    assert cancelled.cancellation_reason == 'Schedule change'


def test_cancel_without_body(db, instructor, admin_principal, add_appointment) -> None:
    appointment = add_appointment(instructor.id, upcoming_date(), time(9, 0), time(10, 0))

    cancelled = cancel_appointment(appointment_id=appointment.id, data=None, principal=admin_principal, db=db)

    assert cancelled.status == 'cancelled'
    assert cancelled.cancellation_reason is None


def test_cancel_missing_appointment_returns_not_found(db, admin_principal) -> None:
    with pytest.raises(HTTPException) as exception_info:
        cancel_appointment(appointment_id=404, data=None, principal=admin_principal, db=db)

    assert exception_info.value.status_code == 404


def test_stats_require_admin(db, student_principal) -> None:
    with pytest.raises(HTTPException) as exception_info:
        get_appointment_stats(
            period='month',
            instructor_id=None,
            start_date=None,
            end_date=None,
            principal=student_principal,
            db=db,
        )

    assert exception_info.value.status_code == 403


def test_admin_reads_stats_for_custom_range(db, instructor, admin_principal, appointment_type, add_appointment) -> None:
    add_appointment(
        instructor.id,
        date(2026, 3, 2),
        time(9, 0),
        time(10, 0),
        appointment_type_id=appointment_type.id,
        status=COMPLETED,
    )

    stats = get_appointment_stats(
        period='month',
        instructor_id=instructor.id,
        start_date=date(2026, 3, 1),
        end_date=date(2026, 3, 31),
        principal=admin_principal,
        db=db,
    )

    assert stats['total_appointments'] == 1
    assert stats['revenue_total'] == 50.0
    assert stats['period']['name'] == 'custom'


def test_stats_reject_unknown_period(db, admin_principal) -> None:
    with pytest.raises(HTTPException) as exception_info:
        get_appointment_stats(
            period='century',
            instructor_id=None,
            start_date=None,
            end_date=None,
            principal=admin_principal,
            db=db,
        )

    assert exception_info.value.status_code == 400
