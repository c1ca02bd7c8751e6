import threading
from datetime import date

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

from admissions_backend.core.errors import ConflictError
from admissions_backend.database import Base
from admissions_backend.models.appointment import ACTIVE_APPOINTMENT_STATUSES, Appointment
from admissions_backend.models.schedule import Schedule
from admissions_backend.models.student import Student
from admissions_backend.models.user import User
from admissions_backend.services import booking_service

BOOKING_DATE = date(2024, 6, 1)
TABLES = [User.__table__, Student.__table__, Schedule.__table__, Appointment.__table__]


@pytest.fixture
def file_engine(tmp_path):
    engine = create_engine(
        f'sqlite:///{tmp_path / "booking.db"}',
        connect_args={'check_same_thread': False, 'timeout': 30},
    )

    # Let SQLAlchemy own BEGIN so writers queue on the lock instead of
    # failing fast when a reader tries to upgrade.
    @event.listens_for(engine, 'connect')
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, 'begin')
    def _begin_immediate(connection):
        connection.exec_driver_sql('BEGIN IMMEDIATE')

    Base.metadata.create_all(bind=engine, tables=TABLES)
    try:
        yield engine
    finally:
        engine.dispose()


def _seed(session_local, max_appointments):
    db = session_local()
    try:
        counselor = User(email='counselor@example.com', full_name='Counselor', user_type='counselor')
        actor = User(email='admin@example.com', full_name='Admin', user_type='admin')
        student = Student(student_name='Lead', email='lead@example.com', phone_number='0912345678')
        db.add_all([counselor, actor, student])
        db.commit()

        schedule = booking_service.create_schedule(
            db,
            counselor_id=counselor.id,
            schedule_date=BOOKING_DATE,
            start_time='09:00',
            end_time='17:00',
            max_appointments=max_appointments,
        )
        return {
            'counselor_id': counselor.id,
            'actor_id': actor.id,
            'student_id': student.id,
            'schedule_id': schedule.id,
        }
    finally:
        db.close()


@pytest.fixture
def seeded(file_engine):
    session_local = sessionmaker(autocommit=False, autoflush=False, bind=file_engine)
    return session_local, _seed(session_local, max_appointments=1)


@pytest.fixture
def seeded_with_room(file_engine):
    session_local = sessionmaker(autocommit=False, autoflush=False, bind=file_engine)
    return session_local, _seed(session_local, max_appointments=5)


def _book(session_local, ids, start_time, end_time):
    db = session_local()
    try:
        return booking_service.create_appointment(
            db,
            student_id=ids['student_id'],
            counselor_id=ids['counselor_id'],
            schedule_id=ids['schedule_id'],
            appointment_date=BOOKING_DATE,
            start_time=start_time,
            end_time=end_time,
            appointment_type='in_person',
            actor_id=ids['actor_id'],
        ).id
    finally:
        db.close()


def test_stale_capacity_read_cannot_overbook(seeded) -> None:
    session_local, ids = seeded

    stale_db = session_local(expire_on_commit=False)
    try:
        # Load the schedule while it still shows a free slot and keep the
        # loaded copy around after the read transaction ends.
        stale_schedule = stale_db.get(Schedule, ids['schedule_id'])
        assert stale_schedule.current_appointments == 0
        stale_db.commit()

        _book(session_local, ids, '09:00', '09:30')

        assert stale_schedule.current_appointments == 0
        with pytest.raises(ConflictError) as exception_info:
            booking_service.create_appointment(
                stale_db,
                student_id=ids['student_id'],
                counselor_id=ids['counselor_id'],
                schedule_id=ids['schedule_id'],
                appointment_date=BOOKING_DATE,
                start_time='11:00',
                end_time='11:30',
                appointment_type='phone',
                actor_id=ids['actor_id'],
            )
        assert exception_info.value.message == 'schedule fully booked'
    finally:
        stale_db.close()

    check_db = session_local()
    try:
        schedule = check_db.get(Schedule, ids['schedule_id'])
        assert schedule.current_appointments == 1
        assert check_db.query(Appointment).count() == 1
    finally:
        check_db.close()


def test_concurrent_bookings_for_last_slot_admit_exactly_one(seeded) -> None:
    session_local, ids = seeded
    barrier = threading.Barrier(2)
    successes: list[int] = []
    conflicts: list[ConflictError] = []
    unexpected: list[BaseException] = []

    def worker(start_time: str, end_time: str) -> None:
        barrier.wait()
        try:
            successes.append(_book(session_local, ids, start_time, end_time))
        except ConflictError as exc:
            conflicts.append(exc)
        except BaseException as exc:  # surfaced by the assertions below
            unexpected.append(exc)

    threads = [
        threading.Thread(target=worker, args=('09:00', '09:30')),
        threading.Thread(target=worker, args=('13:00', '13:30')),
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)

    assert unexpected == []
    assert len(successes) == 1
    assert len(conflicts) == 1
    assert conflicts[0].message == 'schedule fully booked'

    check_db = session_local()
    try:
        schedule = check_db.get(Schedule, ids['schedule_id'])
        assert schedule.current_appointments == 1
        assert check_db.query(Appointment).count() == 1
    finally:
        check_db.close()


def test_concurrent_overlapping_bookings_admit_exactly_one(seeded_with_room) -> None:
    session_local, ids = seeded_with_room
    barrier = threading.Barrier(2)
    successes: list[int] = []
    conflicts: list[ConflictError] = []
    unexpected: list[BaseException] = []

    def worker() -> None:
        barrier.wait()
        try:
            successes.append(_book(session_local, ids, '09:00', '09:30'))
        except ConflictError as exc:
            conflicts.append(exc)
        except BaseException as exc:  # surfaced by the assertions below
            unexpected.append(exc)

    threads = [threading.Thread(target=worker) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)

    assert unexpected == []
    assert len(successes) == 1
    assert len(conflicts) == 1
    assert conflicts[0].message == 'time slot already booked'

    check_db = session_local()
    try:
        # The losing booking's increment was rolled back with it.
        assert check_db.get(Schedule, ids['schedule_id']).current_appointments == 1
        assert check_db.query(Appointment).count() == 1
    finally:
        check_db.close()


@pytest.fixture
def deferred_session_local(file_engine):
    # Plain pysqlite transactions on the same file: reads take no lock, so
    # only an explicit write serialises this session against other writers.
    engine = create_engine(file_engine.url, connect_args={'check_same_thread': False, 'timeout': 30})
    try:
        yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    finally:
        engine.dispose()


def test_booking_during_reactivation_cannot_take_the_same_slot(seeded_with_room, deferred_session_local) -> None:
    session_local, ids = seeded_with_room
    appointment_id = _book(session_local, ids, '09:00', '09:30')

    cancel_db = session_local()
    try:
        booking_service.update_appointment(cancel_db, appointment_id, status='cancelled', free_capacity_on_cancel=False)
    finally:
        cancel_db.close()

    successes: list[int] = []
    conflicts: list[ConflictError] = []
    unexpected: list[BaseException] = []

    def competing_booking() -> None:
        try:
            successes.append(_book(session_local, ids, '09:00', '09:30'))
        except ConflictError as exc:
            conflicts.append(exc)
        except BaseException as exc:  # surfaced by the assertions below
            unexpected.append(exc)

    competitor = threading.Thread(target=competing_booking)

    def book_between_check_and_commit(session, flush_context, instances) -> None:
        # The overlap check has passed; give the competing booking a chance
        # to commit before the reactivated status is written.
        competitor.start()
        competitor.join(timeout=1)

    reactivate_db = deferred_session_local()
    try:
        event.listen(reactivate_db, 'before_flush', book_between_check_and_commit, once=True)
        reactivated = booking_service.update_appointment(
            reactivate_db, appointment_id, status='scheduled', free_capacity_on_cancel=False
        )
        assert reactivated.status == 'scheduled'
    finally:
        reactivate_db.close()

    competitor.join(timeout=60)

    assert unexpected == []
    assert successes == []
    assert len(conflicts) == 1
    assert conflicts[0].message == 'time slot already booked'

    check_db = session_local()
    try:
        active = check_db.query(Appointment).filter(Appointment.status.in_(ACTIVE_APPOINTMENT_STATUSES)).all()
        assert [appointment.id for appointment in active] == [appointment_id]
    finally:
        check_db.close()
