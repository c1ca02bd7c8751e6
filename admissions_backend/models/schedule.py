"""Schedule model definitions."""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import relationship
from admissions_backend.database import Base


class Schedule(Base):
    """A counselor's working window on a single date.

    ``current_appointments`` is only ever changed through the booking
    service's guarded update, never recomputed from the appointments table.
    """
    __tablename__ = "schedules"
    __table_args__ = (
        UniqueConstraint('counselor_id', 'date', name='uq_schedules_counselor_date'),
        CheckConstraint('current_appointments >= 0', name='ck_schedules_current_non_negative'),
        CheckConstraint('current_appointments <= max_appointments', name='ck_schedules_within_capacity'),
    )

    id = Column(Integer, primary_key=True)
    counselor_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    date = Column(Date, nullable=False)
    start_time = Column(String(5), nullable=False)  # HH:MM
    end_time = Column(String(5), nullable=False)  # HH:MM
    is_available = Column(Boolean, nullable=False, default=True)
    max_appointments = Column(Integer, nullable=False, default=10)
    current_appointments = Column(Integer, nullable=False, default=0)
    break_duration_minutes = Column(Integer, nullable=False, default=0)
    notes = Column(String(500))
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    counselor = relationship("User")
