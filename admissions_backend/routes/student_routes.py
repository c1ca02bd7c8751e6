import logging
import re
from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from admissions_backend.core.errors import NotFoundError, ValidationError
from admissions_backend.database import get_db
from admissions_backend.models.student import STUDENT_SOURCES, STUDENT_STATUSES, Student
from admissions_backend.models.user import User
from admissions_backend.routes.common import ApiResponse, database_unavailable

router = APIRouter(tags=['students'])

logger = logging.getLogger(__name__)

PHONE_PATTERN = re.compile(r'^[0-9]{10,11}$')


class CreateStudentRequest(BaseModel):
    student_name: str
    email: str
    phone_number: str
    city: str | None = None
    source: str | None = None
    current_status: str = 'Lead'
    assigned_counselor_id: int | None = None

    @field_validator('student_name')
    @classmethod
    def validate_student_name(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Student name is required.')
        if len(normalized) > 100:
            raise ValueError('Student name must be 100 characters or fewer.')
        return normalized

    @field_validator('email')
    @classmethod
    def validate_email(cls, value: str) -> str:
        normalized = value.strip().lower()
        if '@' not in normalized or normalized.startswith('@') or normalized.endswith('@'):
            raise ValueError('A valid email is required.')
        return normalized

    @field_validator('phone_number')
    @classmethod
    def validate_phone_number(cls, value: str) -> str:
        normalized = value.strip()
        if not PHONE_PATTERN.match(normalized):
            raise ValueError('Phone number must be 10 or 11 digits.')
        return normalized

    @field_validator('source')
    @classmethod
    def validate_source(cls, value: str | None) -> str | None:
        if value is not None and value not in STUDENT_SOURCES:
            raise ValueError('Invalid lead source.')
        return value

    @field_validator('current_status')
    @classmethod
    def validate_current_status(cls, value: str) -> str:
        if value not in STUDENT_STATUSES:
            raise ValueError('Invalid student status.')
        return value


class StudentResponse(BaseModel):
    id: int
    student_name: str
    email: str
    phone_number: str
    city: str | None = None
    source: str | None = None
    current_status: str
    assigned_counselor_id: int | None = None
    created_at: datetime | None = None

    class Config:
        from_attributes = True


@router.post('', response_model=ApiResponse[StudentResponse], status_code=status.HTTP_201_CREATED)
def create_student(data: CreateStudentRequest, db: Session = Depends(get_db)):
    try:
        if data.assigned_counselor_id is not None:
            counselor = db.get(User, data.assigned_counselor_id)
            if counselor is None or not counselor.is_counselor:
                raise ValidationError('invalid counselor')

        student = Student(**data.model_dump())
        db.add(student)
        db.commit()
        db.refresh(student)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    logger.info('Registered student %s', student.id)
    return ApiResponse(message='Student created successfully', data=StudentResponse.model_validate(student))


@router.get('', response_model=ApiResponse[list[StudentResponse]])
def list_students(
    current_status: str | None = Query(default=None),
    assigned_counselor_id: int | None = Query(default=None),
    db: Session = Depends(get_db),
):
    if current_status is not None and current_status not in STUDENT_STATUSES:
        raise ValidationError('invalid student status')

    try:
        query = db.query(Student)
        if current_status is not None:
            query = query.filter(Student.current_status == current_status)
        if assigned_counselor_id is not None:
            query = query.filter(Student.assigned_counselor_id == assigned_counselor_id)
        students = query.order_by(Student.created_at.desc(), Student.id.desc()).all()
        return ApiResponse(data=[StudentResponse.model_validate(student) for student in students])
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/{student_id}', response_model=ApiResponse[StudentResponse])
def get_student(student_id: int, db: Session = Depends(get_db)):
    try:
        student = db.get(Student, student_id)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    if student is None:
        raise NotFoundError('student')
    return ApiResponse(data=StudentResponse.model_validate(student))
