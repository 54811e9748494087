import logging

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, EmailStr, field_validator
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from curabot.auth import jwt_handler
from curabot.auth.dependencies import CurrentUser, get_current_user
from curabot.auth.passwords import hash_password, verify_password
from curabot.core.context import get_db
from curabot.models.user import User
from curabot.routes.common import database_unavailable

router = APIRouter(tags=['auth'])

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
SELF_REGISTER_ROLES = ('patient', 'doctor')


class RegisterRequest(BaseModel):
    name: str
    email: EmailStr
    phone: str | None = None
    password: str
    role: str = 'patient'

    @field_validator('name')
    @classmethod
    def validate_name(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Name is required.')
        return normalized

    @field_validator('email')
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator('password')
    @classmethod
    def validate_password(cls, value: str) -> str:
        if len(value) < MIN_PASSWORD_LENGTH:
            raise ValueError(f'Password must be at least {MIN_PASSWORD_LENGTH} characters.')
        return value

    @field_validator('role')
    @classmethod
    def validate_role(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in SELF_REGISTER_ROLES:
            raise ValueError('Role must be patient or doctor.')
        return normalized


class LoginRequest(BaseModel):
    email: EmailStr
    password: str

    @field_validator('email')
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.strip().lower()


class UpdateProfileRequest(BaseModel):
    name: str | None = None
    phone: str | None = None
    password: str | None = None

    @field_validator('password')
    @classmethod
    def validate_password(cls, value: str | None) -> str | None:
        if value is not None and len(value) < MIN_PASSWORD_LENGTH:
            raise ValueError(f'Password must be at least {MIN_PASSWORD_LENGTH} characters.')
        return value


class UserResponse(BaseModel):
    id: int
    name: str
    email: str
    phone: str | None = None
    role: str

    class Config:
        from_attributes = True


class TokenResponse(BaseModel):
    message: str
    token: str
    token_type: str = 'bearer'
    user: UserResponse


def issue_token(user: User) -> str:
    return jwt_handler.create_access_token(subject=str(user.id), role=user.role)


@router.post('/register', response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
def register(data: RegisterRequest, db: Session = Depends(get_db)):
    try:
        if db.query(User).filter(User.email == data.email).first():
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail='User already exists')

        user = User(
            name=data.name,
            email=data.email,
            phone=data.phone,
            hashed_password=hash_password(data.password),
            role=data.role,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail='User already exists') from exc
    except SQLAlchemyError as exc:
        raise database_unavailable(db) from exc

    logger.info('Registered %s user %s', user.role, user.id)
    return TokenResponse(
        message='User registered successfully',
        token=issue_token(user),
        user=UserResponse.model_validate(user),
    )


@router.post('/login', response_model=TokenResponse)
def login(data: LoginRequest, db: Session = Depends(get_db)):
    try:
        user = db.query(User).filter(User.email == data.email).first()
    except SQLAlchemyError as exc:
        raise database_unavailable(db) from exc

    if user is None or not verify_password(data.password, user.hashed_password):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Invalid email or password')

    return TokenResponse(
        message='Login successful',
        token=issue_token(user),
        user=UserResponse.model_validate(user),
    )


@router.get('/me', response_model=UserResponse)
def me(current_user: CurrentUser = Depends(get_current_user), db: Session = Depends(get_db)):
    user = db.get(User, current_user.id)
    return UserResponse.model_validate(user)


@router.patch('/me', response_model=UserResponse)
def update_me(
    data: UpdateProfileRequest,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        user = db.get(User, current_user.id)
        if data.name and data.name.strip():
            user.name = data.name.strip()
        if data.phone is not None:
            user.phone = data.phone.strip() or None
        if data.password:
            user.hashed_password = hash_password(data.password)
        db.commit()
        db.refresh(user)
        return UserResponse.model_validate(user)
    except SQLAlchemyError as exc:
        raise database_unavailable(db) from exc
