import logging
from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from admissions_backend.core.errors import ConflictError, NotFoundError, ValidationError
from admissions_backend.database import get_db
from admissions_backend.models.user import USER_STATUSES, USER_TYPES, User
from admissions_backend.routes.common import ApiResponse, database_unavailable

router = APIRouter(tags=['users'])

logger = logging.getLogger(__name__)


class CreateUserRequest(BaseModel):
    email: str
    full_name: str
    user_type: str = 'counselor'
    is_main_consultant: bool = False
    status: str = 'active'
    program_type: str | None = None

    @field_validator('email')
    @classmethod
    def validate_email(cls, value: str) -> str:
        normalized = value.strip().lower()
        if '@' not in normalized or normalized.startswith('@') or normalized.endswith('@'):
            raise ValueError('A valid email is required.')
        return normalized

    @field_validator('full_name')
    @classmethod
    def validate_full_name(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Full name is required.')
        if len(normalized) > 100:
            raise ValueError('Full name must be 100 characters or fewer.')
        return normalized

    @field_validator('user_type')
    @classmethod
    def validate_user_type(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in USER_TYPES:
            raise ValueError('Invalid user type.')
        return normalized

    @field_validator('status')
    @classmethod
    def validate_status(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in USER_STATUSES:
            raise ValueError('Invalid user status.')
        return normalized


class UserResponse(BaseModel):
    id: int
    email: str
    full_name: str
    user_type: str
    is_main_consultant: bool
    status: str
    program_type: str | None = None
    created_at: datetime | None = None

    class Config:
        from_attributes = True


@router.post('', response_model=ApiResponse[UserResponse], status_code=status.HTTP_201_CREATED)
def create_user(data: CreateUserRequest, db: Session = Depends(get_db)):
    try:
        if db.query(User).filter(User.email == data.email).first():
            raise ConflictError('user already exists with this email')

        user = User(**data.model_dump())
        db.add(user)
        db.commit()
        db.refresh(user)
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError('user already exists with this email') from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    logger.info('Created %s account %s', user.user_type, user.id)
    return ApiResponse(message='User created successfully', data=UserResponse.model_validate(user))


@router.get('', response_model=ApiResponse[list[UserResponse]])
def list_users(
    user_type: str | None = Query(default=None),
    db: Session = Depends(get_db),
):
    if user_type is not None and user_type not in USER_TYPES:
        raise ValidationError('invalid user type')

    try:
        query = db.query(User)
        if user_type is not None:
            query = query.filter(User.user_type == user_type)
        users = query.order_by(User.full_name.asc()).all()
        return ApiResponse(data=[UserResponse.model_validate(user) for user in users])
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/{user_id}', response_model=ApiResponse[UserResponse])
def get_user(user_id: int, db: Session = Depends(get_db)):
    try:
        user = db.get(User, user_id)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    if user is None:
        raise NotFoundError('user')
    return ApiResponse(data=UserResponse.model_validate(user))
