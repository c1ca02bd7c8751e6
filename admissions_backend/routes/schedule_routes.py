from datetime import date, datetime

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field, field_validator, model_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from admissions_backend.core import config
from admissions_backend.database import get_db
from admissions_backend.routes.common import ApiResponse, UserSummary, database_unavailable, ensure_database_ready
from admissions_backend.services import booking_service
from admissions_backend.services.booking_service import ScheduleFilters

router = APIRouter(tags=['schedules'])


class CreateScheduleRequest(BaseModel):
    counselor_id: int
    date: date
    start_time: str
    end_time: str
    max_appointments: int = Field(
        default=config.DEFAULT_MAX_APPOINTMENTS,
        ge=booking_service.MIN_MAX_APPOINTMENTS,
        le=booking_service.MAX_MAX_APPOINTMENTS,
    )
    break_duration_minutes: int = Field(default=0, ge=0, le=booking_service.MAX_BREAK_DURATION_MINUTES)
    notes: str | None = None

    @field_validator('start_time', 'end_time')
    @classmethod
    def validate_time(cls, value: str) -> str:
        return booking_service.normalize_time(value)

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > config.MAX_SCHEDULE_NOTES_LENGTH:
            raise ValueError(f'Notes must be {config.MAX_SCHEDULE_NOTES_LENGTH} characters or fewer.')

        return normalized

    @model_validator(mode='after')
    def validate_time_range(self) -> 'CreateScheduleRequest':
        if self.start_time >= self.end_time:
            raise ValueError('End time must be after start time.')
        return self


class ScheduleResponse(BaseModel):
    id: int
    counselor_id: int
    date: date
    start_time: str
    end_time: str
    is_available: bool
    max_appointments: int
    current_appointments: int
    break_duration_minutes: int
    notes: str | None = None
    counselor: UserSummary | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    class Config:
        from_attributes = True


@router.post('', response_model=ApiResponse[ScheduleResponse], status_code=status.HTTP_201_CREATED)
def create_schedule(data: CreateScheduleRequest, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        schedule = booking_service.create_schedule(
            db,
            counselor_id=data.counselor_id,
            schedule_date=data.date,
            start_time=data.start_time,
            end_time=data.end_time,
            max_appointments=data.max_appointments,
            break_duration_minutes=data.break_duration_minutes,
            notes=data.notes,
        )
        return ApiResponse(
            message='Schedule created successfully',
            data=ScheduleResponse.model_validate(schedule),
        )
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('', response_model=ApiResponse[list[ScheduleResponse]])
def list_schedules(
    counselor_id: int | None = Query(default=None),
    date: date | None = Query(default=None),
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    filters = ScheduleFilters(
        counselor_id=counselor_id,
        on_date=date,
        start_date=start_date,
        end_date=end_date,
    )
    try:
        schedules = booking_service.list_schedules(db, filters)
        return ApiResponse(data=[ScheduleResponse.model_validate(schedule) for schedule in schedules])
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/{schedule_id}', response_model=ApiResponse[ScheduleResponse])
def get_schedule(schedule_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        schedule = booking_service.get_schedule(db, schedule_id)
        return ApiResponse(data=ScheduleResponse.model_validate(schedule))
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc
