from datetime import date, datetime

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, field_validator, model_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from admissions_backend.auth.dependencies import get_current_user
from admissions_backend.core import config
from admissions_backend.core.errors import NotFoundError, ValidationError
from admissions_backend.database import get_db
from admissions_backend.models.appointment import APPOINTMENT_STATUSES, APPOINTMENT_TYPES
from admissions_backend.models.user import User
from admissions_backend.routes.common import (
    ApiResponse,
    StudentSummary,
    UserSummary,
    database_unavailable,
    ensure_database_ready,
)
from admissions_backend.services import booking_service
from admissions_backend.services.booking_service import AppointmentFilters

router = APIRouter(tags=['appointments'])


def _normalize_notes(value: str | None) -> str | None:
    if value is None:
        return None

    normalized = value.strip()
    if not normalized:
        return None

    if len(normalized) > config.MAX_APPOINTMENT_NOTES_LENGTH:
        raise ValueError(f'Notes must be {config.MAX_APPOINTMENT_NOTES_LENGTH} characters or fewer.')

    return normalized


class CreateAppointmentRequest(BaseModel):
    student_id: int
    counselor_id: int
    schedule_id: int
    appointment_date: date
    start_time: str
    end_time: str
    appointment_type: str
    notes: str | None = None

    @field_validator('start_time', 'end_time')
    @classmethod
    def validate_time(cls, value: str) -> str:
        return booking_service.normalize_time(value)

    @field_validator('appointment_type')
    @classmethod
    def validate_appointment_type(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in APPOINTMENT_TYPES:
            raise ValueError('Invalid appointment type.')
        return normalized

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return _normalize_notes(value)

    @model_validator(mode='after')
    def validate_time_range(self) -> 'CreateAppointmentRequest':
        if self.start_time >= self.end_time:
            raise ValueError('End time must be after start time.')
        return self


class UpdateAppointmentRequest(BaseModel):
    status: str | None = None
    notes: str | None = None

    @field_validator('status')
    @classmethod
    def validate_status(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip().lower()
        if normalized not in APPOINTMENT_STATUSES:
            raise ValueError('Invalid appointment status.')
        return normalized

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        # An explicit blank clears the stored notes; omitting the field keeps them.
        if value is not None and not value.strip():
            return ''
        return _normalize_notes(value)


class AppointmentResponse(BaseModel):
    id: int
    student_id: int
    counselor_id: int
    schedule_id: int
    appointment_date: date
    start_time: str
    end_time: str
    status: str
    appointment_type: str
    notes: str | None = None
    reminder_sent: bool
    confirmation_sent: bool
    created_by: int
    student: StudentSummary | None = None
    counselor: UserSummary | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    class Config:
        from_attributes = True


@router.post('', response_model=ApiResponse[AppointmentResponse], status_code=status.HTTP_201_CREATED)
def create_appointment(
    data: CreateAppointmentRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        appointment = booking_service.create_appointment(
            db,
            student_id=data.student_id,
            counselor_id=data.counselor_id,
            schedule_id=data.schedule_id,
            appointment_date=data.appointment_date,
            start_time=data.start_time,
            end_time=data.end_time,
            appointment_type=data.appointment_type,
            notes=data.notes,
            actor_id=current_user.id,
        )
        return ApiResponse(
            message='Appointment created successfully',
            data=AppointmentResponse.model_validate(appointment),
        )
    except NotFoundError as exc:
        # Every failed booking precondition is a bad request for this endpoint.
        raise NotFoundError(exc.entity, status_code=status.HTTP_400_BAD_REQUEST) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('', response_model=ApiResponse[list[AppointmentResponse]])
def list_appointments(
    counselor_id: int | None = Query(default=None),
    student_id: int | None = Query(default=None),
    status_filter: str | None = Query(default=None, alias='status'),
    date: date | None = Query(default=None),
    db: Session = Depends(get_db),
):
    if status_filter is not None and status_filter not in APPOINTMENT_STATUSES:
        raise ValidationError('invalid appointment status')

    ensure_database_ready()

    filters = AppointmentFilters(
        counselor_id=counselor_id,
        student_id=student_id,
        status=status_filter,
        on_date=date,
    )
    try:
        appointments = booking_service.list_appointments(db, filters)
        return ApiResponse(data=[AppointmentResponse.model_validate(appointment) for appointment in appointments])
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/{appointment_id}', response_model=ApiResponse[AppointmentResponse])
def get_appointment(appointment_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        appointment = booking_service.get_appointment(db, appointment_id)
        return ApiResponse(data=AppointmentResponse.model_validate(appointment))
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.put('/{appointment_id}', response_model=ApiResponse[AppointmentResponse])
def update_appointment(appointment_id: int, data: UpdateAppointmentRequest, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        appointment = booking_service.update_appointment(
            db,
            appointment_id,
            status=data.status,
            notes=data.notes,
        )
        return ApiResponse(
            message='Appointment updated successfully',
            data=AppointmentResponse.model_validate(appointment),
        )
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc
