import os
from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from admissions_backend.database import Base  # noqa: E402
from admissions_backend.models.appointment import Appointment  # noqa: E402
from admissions_backend.models.schedule import Schedule  # noqa: E402
from admissions_backend.models.student import Student  # noqa: E402
from admissions_backend.models.user import User  # noqa: E402

BOOKING_TABLES = [User.__table__, Student.__table__, Schedule.__table__, Appointment.__table__]
BOOKING_DATE = date(2024, 6, 1)


@pytest.fixture
def db_engine():
    engine = create_engine(
        'sqlite:///:memory:',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine, tables=BOOKING_TABLES)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine, tables=list(reversed(BOOKING_TABLES)))
        engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture
def booking_db(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


def add_user(db, email: str, user_type: str = 'counselor', status: str = 'active') -> User:
    user = User(email=email, full_name=email.split('@')[0].title(), user_type=user_type, status=status)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def add_student(db, name: str = 'Nguyen Van A', email: str = 'lead@example.com') -> Student:
    student = Student(student_name=name, email=email, phone_number='0912345678', city='Hanoi')
    db.add(student)
    db.commit()
    db.refresh(student)
    return student


@pytest.fixture
def counselor(booking_db) -> User:
    return add_user(booking_db, 'counselor@example.com')


@pytest.fixture
def admin(booking_db) -> User:
    return add_user(booking_db, 'admin@example.com', user_type='admin')


@pytest.fixture
def student(booking_db) -> Student:
    return add_student(booking_db)


@pytest.fixture
def make_user(booking_db):
    def _make_user(email: str, user_type: str = 'counselor', status: str = 'active') -> User:
        return add_user(booking_db, email, user_type=user_type, status=status)

    return _make_user


@pytest.fixture
def make_student(booking_db):
    def _make_student(name: str = 'Tran Thi B', email: str = 'lead2@example.com') -> Student:
        return add_student(booking_db, name=name, email=email)

    return _make_student
