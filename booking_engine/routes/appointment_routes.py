from datetime import date, datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from booking_engine.auth.dependencies import get_current_principal
from booking_engine.auth.permissions import Principal, require_admin
from booking_engine.core.exceptions import SchedulingError
from booking_engine.database import Deadline, get_db
from booking_engine.scheduling.time_utils import to_minutes
from booking_engine.services.booking_service import BookingRequest, BookingService
from booking_engine.services.stats_service import StatsService

router = APIRouter(tags=['appointments'])

DATABASE_UNAVAILABLE_DETAIL = 'Database unavailable. Verify DATABASE_URL and Postgres credentials.'
MAX_NOTES_LENGTH = 500
MAX_CANCELLATION_REASON_LENGTH = 200


class CreateAppointmentRequest(BaseModel):
    instructor_id: int
    appointment_date: date
    start_time: str
    duration_minutes: int
    appointment_type_id: int
    notes: str | None = None

    @field_validator('start_time')
    @classmethod
    def validate_start_time(cls, value: str) -> str:
        normalized = value.strip()
        try:
            to_minutes(normalized)
        except SchedulingError as exc:
            raise ValueError(exc.message) from exc
        return normalized

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > MAX_NOTES_LENGTH:
            raise ValueError(f'Notes must be {MAX_NOTES_LENGTH} characters or fewer.')

        return normalized


class CancelAppointmentRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=MAX_CANCELLATION_REASON_LENGTH)


class AppointmentResponse(BaseModel):
    id: int
    instructor_id: int
    user_id: int | None = None
    appointment_type_id: int | None = None
    date: str
    start_time: str
    end_time: str
    duration_minutes: int
    status: str
    notes: str | None = None
    cancellation_reason: str | None = None
    created_at: datetime | None = None
    cancelled_at: datetime | None = None


def database_unavailable(db: Session) -> HTTPException:
    db.rollback()
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=DATABASE_UNAVAILABLE_DETAIL,
    )


@router.post('', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    data: CreateAppointmentRequest,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    request = BookingRequest(
        instructor_id=data.instructor_id,
        appointment_date=data.appointment_date,
        start_time=data.start_time,
        duration_minutes=data.duration_minutes,
        appointment_type_id=data.appointment_type_id,
        notes=data.notes,
    )

    try:
        appointment = BookingService(db).create_appointment(request, principal, deadline=Deadline.default())
        return AppointmentResponse(**appointment.to_dict())
    except SchedulingError as exc:
        raise exc.to_http_exception() from exc
    except SQLAlchemyError as exc:
        raise database_unavailable(db) from exc


@router.post('/{appointment_id}/cancel', response_model=AppointmentResponse)
def cancel_appointment(
    appointment_id: int,
    data: CancelAppointmentRequest | None = None,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    reason = data.reason if data else None

    try:
        appointment = BookingService(db).cancel_appointment(
            appointment_id,
            principal,
            reason=reason,
            deadline=Deadline.default(),
        )
        return AppointmentResponse(**appointment.to_dict())
    except SchedulingError as exc:
        raise exc.to_http_exception() from exc
    except SQLAlchemyError as exc:
        raise database_unavailable(db) from exc


@router.get('/stats')
def get_appointment_stats(
    period: str = Query(default='month'),
    instructor_id: int | None = Query(default=None),
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    try:
        require_admin(principal)
        return StatsService(db).summarize(
            period=period,
            instructor_id=instructor_id,
            start_date=start_date,
            end_date=end_date,
            deadline=Deadline.default(),
        )
    except SchedulingError as exc:
        raise exc.to_http_exception() from exc
    except SQLAlchemyError as exc:
        raise database_unavailable(db) from exc
