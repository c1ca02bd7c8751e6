from typing import Generic, TypeVar

from fastapi import HTTPException, status
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError

from admissions_backend.database import ensure_booking_schema

DATABASE_UNAVAILABLE_DETAIL = 'Database unavailable. Verify DATABASE_URL and database credentials.'

DataT = TypeVar('DataT')


class ApiResponse(BaseModel, Generic[DataT]):
    success: bool = True
    message: str | None = None
    data: DataT | None = None


class UserSummary(BaseModel):
    id: int
    full_name: str
    email: str

    class Config:
        from_attributes = True


class StudentSummary(BaseModel):
    id: int
    student_name: str
    email: str
    phone_number: str

    class Config:
        from_attributes = True


def ensure_database_ready() -> None:
    try:
        ensure_booking_schema()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


def database_unavailable() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=DATABASE_UNAVAILABLE_DETAIL,
    )
