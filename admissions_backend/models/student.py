"""Student (lead) model definitions."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, func
from admissions_backend.database import Base

STUDENT_STATUSES = ('Lead', 'Engaging', 'Registered', 'Dropped Out', 'Archived')
STUDENT_SOURCES = (
    'Mail', 'Fanpage', 'Zalo', 'Website', 'Friend', 'SMS',
    'Banderole', 'Poster', 'Brochure', 'Google', 'Brand', 'Event',
)


class Student(Base):
    """Represents a prospective student tracked by the admissions team."""
    __tablename__ = "students"

    id = Column(Integer, primary_key=True)
    student_name = Column(String(100), nullable=False)
    email = Column(String, nullable=False, index=True)
    phone_number = Column(String(11), nullable=False, index=True)
    city = Column(String(100))
    source = Column(String)
    current_status = Column(String, nullable=False, default='Lead', index=True)
    assigned_counselor_id = Column(Integer, ForeignKey("users.id"), index=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
