import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials

from therapy_backend.auth.dependencies import get_current_user, require_therapist_access
from therapy_backend.auth.jwt_handler import create_access_token, decode_access_token
from therapy_backend.models.user import User


def bearer(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme='Bearer', credentials=token)


@pytest.fixture
def therapist(db) -> User:
    user = User(email='therapist@example.com', role='therapist')
    db.add(user)
    db.commit()
    return user


def test_token_round_trip_keeps_subject_and_role() -> None:
    payload = decode_access_token(create_access_token('42', role='therapist'))

    assert payload['sub'] == '42'
    assert payload['role'] == 'therapist'


def test_get_current_user_resolves_token_subject(db, therapist: User) -> None:
    user = get_current_user(credentials=bearer(create_access_token(str(therapist.id))), db=db)

    assert user.id == therapist.id


def test_get_current_user_rejects_garbage_token(db) -> None:
    with pytest.raises(HTTPException) as exception_info:
        get_current_user(credentials=bearer('not-a-token'), db=db)

    assert exception_info.value.status_code == 401
    assert exception_info.value.detail == 'Invalid token'


def test_get_current_user_rejects_non_numeric_subject(db) -> None:
    with pytest.raises(HTTPException) as exception_info:
        get_current_user(credentials=bearer(create_access_token('someone@example.com')), db=db)

    assert exception_info.value.status_code == 401


def test_get_current_user_rejects_inactive_user(db, therapist: User) -> None:
    therapist.is_active = False
    db.commit()

    with pytest.raises(HTTPException) as exception_info:
        get_current_user(credentials=bearer(create_access_token(str(therapist.id))), db=db)

    assert exception_info.value.status_code == 401
    assert exception_info.value.detail == 'User not found'


def test_therapist_manages_own_availability(therapist: User) -> None:
    require_therapist_access(therapist, therapist.id)


def test_therapist_cannot_manage_someone_else(therapist: User) -> None:
    with pytest.raises(HTTPException) as exception_info:
        require_therapist_access(therapist, therapist.id + 1)

    assert exception_info.value.status_code == 403


def test_admin_manages_any_therapist() -> None:
    require_therapist_access(User(id=7, role='admin'), 99)
