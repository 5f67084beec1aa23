import hashlib
import json
from datetime import date

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Response, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from booking_engine.auth.dependencies import get_current_principal
from booking_engine.auth.permissions import Principal, require_availability_manager
from booking_engine.core import config
from booking_engine.core.exceptions import SchedulingError
from booking_engine.database import Deadline, get_db
from booking_engine.repositories.availability_repository import AvailabilityRepository
from booking_engine.repositories.blocked_period_repository import BlockedPeriodRepository
from booking_engine.scheduling.time_utils import to_minutes
from booking_engine.services.availability_service import AvailabilityService

router = APIRouter(tags=['availability'])

DATABASE_UNAVAILABLE_DETAIL = 'Database unavailable. Verify DATABASE_URL and Postgres credentials.'
MAX_BLOCK_REASON_LENGTH = 200


def _validate_time_string(value: str | None) -> str | None:
    if value is None:
        return None
    normalized = value.strip()
    to_minutes(normalized)
    return normalized


class CreateWindowRequest(BaseModel):
    instructor_id: int
    weekday: int = Field(ge=0, le=6)
    start_time: str
    end_time: str
    buffer_minutes: int = Field(default=0, ge=0)
    max_bookings_per_day: int = Field(default=8, gt=0)
    is_available: bool = True

    @field_validator('start_time', 'end_time')
    @classmethod
    def validate_time(cls, value: str) -> str:
        try:
            return _validate_time_string(value)
        except SchedulingError as exc:
            raise ValueError(exc.message) from exc


class UpdateWindowRequest(BaseModel):
    weekday: int | None = Field(default=None, ge=0, le=6)
    start_time: str | None = None
    end_time: str | None = None
    buffer_minutes: int | None = Field(default=None, ge=0)
    max_bookings_per_day: int | None = Field(default=None, gt=0)
    is_available: bool | None = None

    @field_validator('start_time', 'end_time')
    @classmethod
    def validate_time(cls, value: str | None) -> str | None:
        try:
            return _validate_time_string(value)
        except SchedulingError as exc:
            raise ValueError(exc.message) from exc


class AvailabilityWindowResponse(BaseModel):
    id: int
    instructor_id: int
    weekday: int
    start_time: str
    end_time: str
    buffer_minutes: int
    max_bookings_per_day: int
    is_available: bool


class CreateBlockedPeriodRequest(BaseModel):
    instructor_id: int
    block_date: date
    start_time: str
    end_time: str
    reason: str | None = None

    @field_validator('start_time', 'end_time')
    @classmethod
    def validate_time(cls, value: str) -> str:
        try:
            return _validate_time_string(value)
        except SchedulingError as exc:
            raise ValueError(exc.message) from exc

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > MAX_BLOCK_REASON_LENGTH:
            raise ValueError(f'Reason must be {MAX_BLOCK_REASON_LENGTH} characters or fewer.')

        return normalized


class BlockedPeriodResponse(BaseModel):
    id: int
    instructor_id: int
    date: str
    start_time: str
    end_time: str
    reason: str | None = None


def database_unavailable(db: Session) -> HTTPException:
    db.rollback()
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=DATABASE_UNAVAILABLE_DETAIL,
    )


def build_etag(payload: dict) -> str:
    body = json.dumps(payload, sort_keys=True, separators=(',', ':'))
    return 'W/"' + hashlib.sha256(body.encode('utf-8')).hexdigest()[:32] + '"'


def etag_matches(if_none_match: str | None, etag: str) -> bool:
    if not if_none_match:
        return False
    candidates = {candidate.strip() for candidate in if_none_match.split(',')}
    # Weak comparison: W/"x" and "x" name the same representation.
    bare = etag.removeprefix('W/')
    return '*' in candidates or etag in candidates or bare in candidates


@router.get('')
def get_availability(
    instructor_id: int = Query(...),
    slot_date: date = Query(..., alias='date'),
    duration_minutes: int = Query(default=60),
    appointment_type_id: int | None = Query(default=None),
    if_none_match: str | None = Header(default=None),
    db: Session = Depends(get_db),
) -> Response:
    try:
        result = AvailabilityService(db).get_availability(
            instructor_id,
            slot_date,
            duration_minutes,
            appointment_type_id=appointment_type_id,
            deadline=Deadline.default(),
        )
    except SchedulingError as exc:
        raise exc.to_http_exception() from exc
    except SQLAlchemyError as exc:
        raise database_unavailable(db) from exc

    payload = result.to_dict()
    etag = build_etag(payload)
    headers = {
        'ETag': etag,
        'Cache-Control': f'private, max-age={config.AVAILABILITY_CACHE_SECONDS}',
    }

    if etag_matches(if_none_match, etag):
        return Response(status_code=status.HTTP_304_NOT_MODIFIED, headers=headers)

    return JSONResponse(content=payload, headers=headers)


@router.get('/windows', response_model=list[AvailabilityWindowResponse])
def list_windows(
    instructor_id: int = Query(...),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    try:
        require_availability_manager(principal, instructor_id)
        windows = AvailabilityRepository(db).list_for_instructor(instructor_id, deadline=Deadline.default())
        return [AvailabilityWindowResponse(**window.to_dict()) for window in windows]
    except SchedulingError as exc:
        raise exc.to_http_exception() from exc
    except SQLAlchemyError as exc:
        raise database_unavailable(db) from exc


@router.post('/windows', response_model=AvailabilityWindowResponse, status_code=status.HTTP_201_CREATED)
def create_window(
    data: CreateWindowRequest,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    try:
        require_availability_manager(principal, data.instructor_id)
        window = AvailabilityRepository(db).create(
            instructor_id=data.instructor_id,
            weekday=data.weekday,
            start_time=data.start_time,
            end_time=data.end_time,
            buffer_minutes=data.buffer_minutes,
            max_bookings_per_day=data.max_bookings_per_day,
            is_available=data.is_available,
            deadline=Deadline.default(),
        )
        return AvailabilityWindowResponse(**window.to_dict())
    except SchedulingError as exc:
        raise exc.to_http_exception() from exc
    except SQLAlchemyError as exc:
        raise database_unavailable(db) from exc


@router.put('/windows/{window_id}', response_model=AvailabilityWindowResponse)
def update_window(
    window_id: int,
    data: UpdateWindowRequest,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    try:
        repository = AvailabilityRepository(db)
        require_availability_manager(principal, repository.get(window_id).instructor_id)
        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        window = repository.update(window_id, changes, deadline=Deadline.default())
        return AvailabilityWindowResponse(**window.to_dict())
    except SchedulingError as exc:
        raise exc.to_http_exception() from exc
    except SQLAlchemyError as exc:
        raise database_unavailable(db) from exc


@router.delete('/windows/{window_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_window(
    window_id: int,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    try:
        repository = AvailabilityRepository(db)
        require_availability_manager(principal, repository.get(window_id).instructor_id)
        repository.delete(window_id, deadline=Deadline.default())
    except SchedulingError as exc:
        raise exc.to_http_exception() from exc
    except SQLAlchemyError as exc:
        raise database_unavailable(db) from exc


@router.get('/blocked-periods', response_model=list[BlockedPeriodResponse])
def list_blocked_periods(
    instructor_id: int = Query(...),
    block_date: date = Query(..., alias='date'),
    db: Session = Depends(get_db),
):
    try:
        blocked_periods = BlockedPeriodRepository(db).list(instructor_id, block_date, deadline=Deadline.default())
        return [BlockedPeriodResponse(**blocked_period.to_dict()) for blocked_period in blocked_periods]
    except SchedulingError as exc:
        raise exc.to_http_exception() from exc
    except SQLAlchemyError as exc:
        raise database_unavailable(db) from exc


@router.post('/blocked-periods', response_model=BlockedPeriodResponse, status_code=status.HTTP_201_CREATED)
def create_blocked_period(
    data: CreateBlockedPeriodRequest,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    try:
        require_availability_manager(principal, data.instructor_id)
        blocked_period = BlockedPeriodRepository(db).create(
            instructor_id=data.instructor_id,
            block_date=data.block_date,
            start_time=data.start_time,
            end_time=data.end_time,
            reason=data.reason,
            deadline=Deadline.default(),
        )
        return BlockedPeriodResponse(**blocked_period.to_dict())
    except SchedulingError as exc:
        raise exc.to_http_exception() from exc
    except SQLAlchemyError as exc:
        raise database_unavailable(db) from exc


@router.delete('/blocked-periods/{block_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_blocked_period(
    block_id: int,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    try:
        repository = BlockedPeriodRepository(db)
        require_availability_manager(principal, repository.get(block_id).instructor_id)
        repository.delete(block_id, deadline=Deadline.default())
    except SchedulingError as exc:
        raise exc.to_http_exception() from exc
    except SQLAlchemyError as exc:
        raise database_unavailable(db) from exc
