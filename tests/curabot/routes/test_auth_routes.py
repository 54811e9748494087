from datetime import datetime, timedelta, timezone

import jwt
import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials
from pydantic import ValidationError

from conftest import as_actor, make_user
from curabot.auth import jwt_handler
from curabot.auth.dependencies import get_current_user, require_role
from curabot.core import config
from curabot.models.user import User
from curabot.routes.auth_routes import (
    LoginRequest,
    RegisterRequest,
    UpdateProfileRequest,
    login,
    me,
    register,
    update_me,
)


def bearer(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme='Bearer', credentials=token)


def register_alice(db, role: str = 'patient'):
    return register(
        RegisterRequest(name=' Alice ', email='ALICE@Example.com', password='secret1', role=role),
        db=db,
    )


def test_register_request_rejects_short_password() -> None:
    with pytest.raises(ValidationError):
        RegisterRequest(name='Alice', email='alice@example.com', password='123')


def test_register_request_rejects_admin_role() -> None:
    with pytest.raises(ValidationError):
        RegisterRequest(name='Alice', email='alice@example.com', password='secret1', role='admin')


def test_register_creates_user_with_hashed_password(db) -> None:
    response = register_alice(db)

    assert response.message == 'User registered successfully'
    assert response.user.email == 'alice@example.com'
    assert response.user.name == 'Alice'
    assert response.user.role == 'patient'
    stored = db.query(User).filter(User.email == 'alice@example.com').one()
    assert stored.hashed_password != 'secret1'
    assert jwt_handler.decode_access_token(response.token)['sub'] == str(stored.id)


def test_register_duplicate_email_is_conflict(db) -> None:
    register_alice(db)

    with pytest.raises(HTTPException) as exception_info:
        register_alice(db)

    assert exception_info.value.status_code == 409
    assert exception_info.value.detail == 'User already exists'


def test_login_with_correct_password_issues_token(db) -> None:
    register_alice(db, role='doctor')

    response = login(LoginRequest(email='alice@example.com', password='secret1'), db=db)

    assert response.message == 'Login successful'
    assert jwt_handler.decode_access_token(response.token)['role'] == 'doctor'


@pytest.mark.parametrize(('email', 'password'), [
    ('alice@example.com', 'wrong-password'),
    ('nobody@example.com', 'secret1'),
])
def test_login_rejects_bad_credentials(db, email: str, password: str) -> None:
    register_alice(db)

    with pytest.raises(HTTPException) as exception_info:
        login(LoginRequest(email=email, password=password), db=db)

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == 'Invalid email or password'


def test_me_and_update_me(db) -> None:
    user = make_user(db, email='carol@example.com', name='Carol')

    updated = update_me(UpdateProfileRequest(name='Carol Smith', phone='555-0100'), current_user=as_actor(user), db=db)

    assert updated.name == 'Carol Smith'
    assert updated.phone == '555-0100'
    assert me(current_user=as_actor(user), db=db).name == 'Carol Smith'


def test_get_current_user_resolves_token_subject(db) -> None:
    user = make_user(db, role='admin', email='root@example.com')
    token = jwt_handler.create_access_token(subject=str(user.id), role=user.role)

    current_user = get_current_user(credentials=bearer(token), db=db)

    assert current_user.id == user.id
    assert current_user.role == 'admin'


def test_get_current_user_requires_token(db) -> None:
    with pytest.raises(HTTPException) as exception_info:
        get_current_user(credentials=None, db=db)

    assert exception_info.value.status_code == 401
    assert exception_info.value.detail == 'Unauthorized - No Token Provided'


def test_get_current_user_rejects_expired_or_forged_tokens(db) -> None:
    user = make_user(db)
    expired = jwt.encode(
        {'sub': str(user.id), 'role': 'patient', 'exp': datetime.now(timezone.utc) - timedelta(minutes=1)},
        config.JWT_SECRET_KEY,
        algorithm=config.JWT_ALGORITHM,
    )
    forged = jwt.encode({'sub': str(user.id), 'role': 'admin'}, 'not-the-secret', algorithm=config.JWT_ALGORITHM)

    for token in (expired, forged, 'garbage'):
        with pytest.raises(HTTPException) as exception_info:
            get_current_user(credentials=bearer(token), db=db)

        assert exception_info.value.detail == 'Unauthorized - Invalid Token'


def test_get_current_user_rejects_deleted_user(db) -> None:
    token = jwt_handler.create_access_token(subject='999', role='patient')

    with pytest.raises(HTTPException) as exception_info:
        get_current_user(credentials=bearer(token), db=db)

    assert exception_info.value.detail == 'User not found'


def test_require_role_blocks_other_roles(db) -> None:
    checker = require_role('admin')
    patient = as_actor(make_user(db))

    with pytest.raises(HTTPException) as exception_info:
        checker(current_user=patient)

    assert exception_info.value.status_code == 403
    assert exception_info.value.detail == 'Access forbidden: insufficient role'
