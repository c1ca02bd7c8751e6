import os
from dotenv import load_dotenv
from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker


load_dotenv()
DATABASE_URL = os.getenv("DATABASE_URL")

engine = create_engine(DATABASE_URL)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_booking_schema_checked = False


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def ensure_booking_schema(bind=None) -> None:
    """Create the lookup indexes the booking queries rely on.

    Tables are created by ``create_all``; this only adds the indexes that
    older databases may be missing. Safe to call on every request.
    """
    global _booking_schema_checked

    if _booking_schema_checked:
        return

    with _schema_lock:
        if _booking_schema_checked:
            return

        target = bind if bind is not None else engine
        inspector = inspect(target)
        table_names = set(inspector.get_table_names())

        statements = []
        if 'schedules' in table_names:
            statements.extend([
                'CREATE INDEX IF NOT EXISTS idx_schedules_date ON schedules(date)',
                'CREATE INDEX IF NOT EXISTS idx_schedules_is_available ON schedules(is_available)',
            ])
        if 'appointments' in table_names:
            statements.extend([
                'CREATE INDEX IF NOT EXISTS idx_appointments_counselor_date '
                'ON appointments(counselor_id, appointment_date)',
                'CREATE INDEX IF NOT EXISTS idx_appointments_student ON appointments(student_id)',
                'CREATE INDEX IF NOT EXISTS idx_appointments_status ON appointments(status)',
            ])

        if statements:
            with target.begin() as connection:
                for statement in statements:
                    connection.execute(text(statement))

        _booking_schema_checked = True
