import jwt
import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials

from booking_engine.auth import jwt_handler
from booking_engine.auth.dependencies import get_current_principal
from booking_engine.core import config


def bearer(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme='Bearer', credentials=token)


def test_access_token_round_trips_subject_and_user_id() -> None:
    token = jwt_handler.create_access_token('student@example.edu', user_id=7)

    assert jwt_handler.read_claims(token) == ('student@example.edu', 7)


def test_read_claims_without_user_id() -> None:
    token = jwt_handler.create_access_token('student@example.edu')

    assert jwt_handler.read_claims(token) == ('student@example.edu', None)


def test_read_claims_rejects_tampered_token() -> None:
    token = jwt.encode({'sub': 'student@example.edu'}, 'not-the-secret', algorithm=config.JWT_ALGORITHM)

    with pytest.raises(jwt_handler.InvalidTokenError):
        jwt_handler.read_claims(token)


def test_read_claims_rejects_missing_subject() -> None:
    token = jwt.encode({'uid': 1}, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)

    with pytest.raises(jwt_handler.InvalidTokenError):
        jwt_handler.read_claims(token)


def test_get_current_principal_resolves_user(db, student) -> None:
    token = jwt_handler.create_access_token(student.email, user_id=student.id)

    principal = get_current_principal(credentials=bearer(token), db=db)

    assert principal.user_id == student.id
    assert principal.role == 'student'


def test_get_current_principal_rejects_invalid_token(db) -> None:
    with pytest.raises(HTTPException) as exception_info:
        get_current_principal(credentials=bearer('garbage'), db=db)

    assert exception_info.value.status_code == 401


def test_get_current_principal_rejects_unknown_user_and_id_mismatch(db, student) -> None:
    with pytest.raises(HTTPException) as exception_info:
        get_current_principal(credentials=bearer(jwt_handler.create_access_token('ghost@example.edu')), db=db)
    assert exception_info.value.status_code == 401

    mismatched = jwt_handler.create_access_token(student.email, user_id=student.id + 100)
    with pytest.raises(HTTPException) as exception_info:
        get_current_principal(credentials=bearer(mismatched), db=db)
    assert exception_info.value.status_code == 401


def test_get_current_principal_rejects_inactive_user(db, make_user) -> None:
    user = make_user('inactive@example.edu', is_active=False)

    with pytest.raises(HTTPException) as exception_info:
        get_current_principal(credentials=bearer(jwt_handler.create_access_token(user.email)), db=db)

    assert exception_info.value.status_code == 403
