"""Capability checks for scheduling operations.

All role decisions live here so call sites ask "may this principal do X"
instead of comparing role strings themselves.
"""

from dataclasses import dataclass
from typing import Protocol

from sqlalchemy.orm import Session

from booking_engine.core.exceptions import PermissionDeniedError
from booking_engine.database import Deadline, apply_deadline, storage_call
from booking_engine.models.user import User

STUDENT = 'student'
INSTRUCTOR = 'instructor'
ADMIN = 'admin'
SUPER_ADMIN = 'super_admin'

ADMIN_ROLES = frozenset({ADMIN, SUPER_ADMIN})
INSTRUCTOR_ELIGIBLE_ROLES = frozenset({INSTRUCTOR, ADMIN, SUPER_ADMIN})
BOOKING_ROLES = frozenset({STUDENT, INSTRUCTOR, ADMIN, SUPER_ADMIN})


@dataclass(frozen=True)
class Principal:
    """An authenticated, already-resolved caller."""

    user_id: int
    email: str
    role: str
    is_active: bool = True

    @classmethod
    def from_user(cls, user: User) -> 'Principal':
        return cls(
            user_id=user.id,
            email=user.email or '',
            role=(user.role or '').strip().lower(),
            is_active=bool(user.is_active),
        )

    @property
    def is_admin(self) -> bool:
        return self.is_active and self.role in ADMIN_ROLES


def can_manage_availability(principal: Principal, instructor_id: int) -> bool:
    if not principal.is_active:
        return False
    if principal.is_admin:
        return True
    return principal.role == INSTRUCTOR and principal.user_id == instructor_id


def can_book(principal: Principal) -> bool:
    return principal.is_active and principal.role in BOOKING_ROLES


def can_cancel(principal: Principal, instructor_id: int, booked_by: int | None) -> bool:
    if not principal.is_active:
        return False
    if principal.is_admin:
        return True
    return principal.user_id in (instructor_id, booked_by)


def require_availability_manager(principal: Principal, instructor_id: int) -> None:
    if not can_manage_availability(principal, instructor_id):
        raise PermissionDeniedError(
            'Only the instructor or an admin can manage this availability.',
            details={'instructor_id': instructor_id},
        )


def require_booking_permission(principal: Principal) -> None:
    if not can_book(principal):
        raise PermissionDeniedError('This account cannot book appointments.')


def require_admin(principal: Principal) -> None:
    if not principal.is_admin:
        raise PermissionDeniedError('Admin privileges required.')


class InstructorDirectory(Protocol):
    """Identity collaborator answering whether an account can take bookings."""

    def is_bookable_instructor(self, instructor_id: int, deadline: Deadline | None = None) -> bool: ...


class UserInstructorDirectory:
    """Looks instructors up in the users table."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def is_bookable_instructor(self, instructor_id: int, deadline: Deadline | None = None) -> bool:
        with storage_call('load instructor'):
            apply_deadline(self.db, deadline, 'load instructor')
            user = self.db.get(User, instructor_id)

        if user is None or not user.is_active:
            return False
        return (user.role or '').strip().lower() in INSTRUCTOR_ELIGIBLE_ROLES
