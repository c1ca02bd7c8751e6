"""Appointment model definitions."""

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Integer, String, func
from sqlalchemy.orm import relationship
from admissions_backend.database import Base

APPOINTMENT_STATUSES = ('scheduled', 'confirmed', 'completed', 'cancelled', 'no_show')
ACTIVE_APPOINTMENT_STATUSES = ('scheduled', 'confirmed')
APPOINTMENT_TYPES = ('phone', 'online', 'in_person')


class Appointment(Base):
    """Represents a booked consultation slot within a schedule."""
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True)
    student_id = Column(Integer, ForeignKey("students.id"), nullable=False)
    counselor_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    schedule_id = Column(Integer, ForeignKey("schedules.id"), nullable=False)
    appointment_date = Column(Date, nullable=False)
    start_time = Column(String(5), nullable=False)  # HH:MM
    end_time = Column(String(5), nullable=False)  # HH:MM
    status = Column(String, nullable=False, default='scheduled')
    appointment_type = Column(String, nullable=False)
    notes = Column(String(1000))
    reminder_sent = Column(Boolean, nullable=False, default=False)
    confirmation_sent = Column(Boolean, nullable=False, default=False)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    student = relationship("Student")
    counselor = relationship("User", foreign_keys=[counselor_id])

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_APPOINTMENT_STATUSES
