"""User model definitions."""

from sqlalchemy import Boolean, Column, DateTime, Integer, String, func
from admissions_backend.database import Base

USER_TYPES = ('admin', 'counselor', 'manager')
USER_STATUSES = ('active', 'inactive', 'on_leave')
COUNSELOR_ROLE = 'counselor'


class User(Base):
    """Represents a staff account (admin, counselor or manager)."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    full_name = Column(String(100), nullable=False)
    user_type = Column(String, nullable=False, default=COUNSELOR_ROLE, index=True)  # admin/counselor/manager
    is_main_consultant = Column(Boolean, nullable=False, default=False)
    status = Column(String, nullable=False, default='active')
    program_type = Column(String)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    @property
    def is_counselor(self) -> bool:
        return self.user_type == COUNSELOR_ROLE
