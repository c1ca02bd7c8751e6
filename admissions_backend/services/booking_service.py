"""Counselor schedules and appointment booking.

All writes to ``Schedule.current_appointments`` go through
``reserve_capacity`` / ``release_capacity``, which issue a single guarded
UPDATE so the counter can never pass ``max_appointments`` or drop below
zero, even when two requests race for the last slot. The guarded UPDATE
also takes the schedule's row lock, so the overlap query and the INSERT
that follow it in ``create_appointment`` run serialised per
(counselor, date). ``update_appointment`` takes the same lock, through
``lock_schedule`` when no slot moves, before it re-checks a slot on
reactivation.
"""

import logging
import re
from dataclasses import dataclass
from datetime import date

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from admissions_backend.core import config
from admissions_backend.core.errors import ConflictError, DomainError, NotFoundError, ValidationError
from admissions_backend.models.appointment import (
    ACTIVE_APPOINTMENT_STATUSES,
    APPOINTMENT_STATUSES,
    APPOINTMENT_TYPES,
    Appointment,
)
from admissions_backend.models.schedule import Schedule
from admissions_backend.models.student import Student
from admissions_backend.models.user import User

logger = logging.getLogger(__name__)

TIME_PATTERN = re.compile(r'^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$')
MIN_MAX_APPOINTMENTS = 0
MAX_MAX_APPOINTMENTS = 50
MAX_BREAK_DURATION_MINUTES = 120


@dataclass(frozen=True)
class ScheduleFilters:
    counselor_id: int | None = None
    start_date: date | None = None
    end_date: date | None = None
    on_date: date | None = None


@dataclass(frozen=True)
class AppointmentFilters:
    counselor_id: int | None = None
    student_id: int | None = None
    status: str | None = None
    on_date: date | None = None


def normalize_time(value: str) -> str:
    """Return ``value`` as zero-padded ``HH:MM``.

    Stored times are compared as strings, which only orders correctly
    when every value has two hour digits ("09:00" < "10:00" but
    "9:00" > "10:00").
    """
    candidate = (value or '').strip()
    if not TIME_PATTERN.match(candidate):
        raise ValueError('Time must use the HH:MM 24-hour format.')
    hours, minutes = candidate.split(':')
    return f'{int(hours):02d}:{minutes}'


def _validated_time_range(start_time: str, end_time: str) -> tuple[str, str]:
    try:
        start = normalize_time(start_time)
        end = normalize_time(end_time)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc
    if start >= end:
        raise ValidationError('end time must be after start time')
    return start, end


def get_counselor(db: Session, counselor_id: int) -> User:
    counselor = db.get(User, counselor_id)
    if counselor is None or not counselor.is_counselor:
        raise ValidationError('invalid counselor')
    return counselor


def get_schedule(db: Session, schedule_id: int) -> Schedule:
    schedule = db.get(Schedule, schedule_id)
    if schedule is None:
        raise NotFoundError('schedule')
    return schedule


def get_appointment(db: Session, appointment_id: int) -> Appointment:
    appointment = db.get(Appointment, appointment_id)
    if appointment is None:
        raise NotFoundError('appointment')
    return appointment


def create_schedule(
    db: Session,
    *,
    counselor_id: int,
    schedule_date: date,
    start_time: str,
    end_time: str,
    max_appointments: int | None = None,
    break_duration_minutes: int = 0,
    notes: str | None = None,
) -> Schedule:
    start, end = _validated_time_range(start_time, end_time)
    if max_appointments is None:
        max_appointments = config.DEFAULT_MAX_APPOINTMENTS
    if not MIN_MAX_APPOINTMENTS <= max_appointments <= MAX_MAX_APPOINTMENTS:
        raise ValidationError(
            f'max appointments must be between {MIN_MAX_APPOINTMENTS} and {MAX_MAX_APPOINTMENTS}'
        )
    if not 0 <= break_duration_minutes <= MAX_BREAK_DURATION_MINUTES:
        raise ValidationError(f'break duration must be between 0 and {MAX_BREAK_DURATION_MINUTES} minutes')

    get_counselor(db, counselor_id)

    existing = db.query(Schedule).filter(
        Schedule.counselor_id == counselor_id,
        Schedule.date == schedule_date,
    ).first()
    if existing:
        raise ConflictError('schedule already exists for this date')

    schedule = Schedule(
        counselor_id=counselor_id,
        date=schedule_date,
        start_time=start,
        end_time=end,
        is_available=True,
        max_appointments=max_appointments,
        current_appointments=0,
        break_duration_minutes=break_duration_minutes,
        notes=notes,
    )
    db.add(schedule)
    try:
        db.commit()
    except IntegrityError as exc:
        # Lost a race with another insert for the same (counselor, date).
        db.rollback()
        raise ConflictError('schedule already exists for this date') from exc
    db.refresh(schedule)

    logger.info(
        'Created schedule %s for counselor %s on %s (%s-%s, capacity %s)',
        schedule.id, counselor_id, schedule_date, start, end, max_appointments,
    )
    return schedule


def list_schedules(db: Session, filters: ScheduleFilters) -> list[Schedule]:
    query = db.query(Schedule)
    if filters.counselor_id is not None:
        query = query.filter(Schedule.counselor_id == filters.counselor_id)

    if filters.start_date is not None and filters.end_date is not None:
        query = query.filter(Schedule.date >= filters.start_date, Schedule.date <= filters.end_date)
    elif filters.on_date is not None:
        query = query.filter(Schedule.date == filters.on_date)

    return query.order_by(Schedule.date.asc(), Schedule.start_time.asc()).all()


def _capacity_error(db: Session, schedule_id: int) -> ConflictError:
    schedule = db.get(Schedule, schedule_id)
    if schedule is not None and not schedule.is_available:
        return ConflictError('schedule unavailable')
    return ConflictError('schedule fully booked')


def reserve_capacity(db: Session, schedule_id: int) -> None:
    """Take one slot on the schedule or raise ``ConflictError``.

    Does not commit; the caller owns the transaction.
    """
    result = db.execute(
        update(Schedule)
        .where(
            Schedule.id == schedule_id,
            Schedule.is_available.is_(True),
            Schedule.current_appointments < Schedule.max_appointments,
        )
        .values(current_appointments=Schedule.current_appointments + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.expire_all()
        raise _capacity_error(db, schedule_id)


def lock_schedule(db: Session, schedule_id: int) -> None:
    """Take the schedule's row lock without moving the counter.

    Used where an overlap check must run under the same lock as
    ``reserve_capacity`` but no slot is taken.
    """
    db.execute(
        update(Schedule)
        .where(Schedule.id == schedule_id)
        .values(current_appointments=Schedule.current_appointments)
        .execution_options(synchronize_session=False)
    )


def release_capacity(db: Session, schedule_id: int) -> None:
    """Give one slot back. A counter already at zero is left alone."""
    db.execute(
        update(Schedule)
        .where(Schedule.id == schedule_id, Schedule.current_appointments > 0)
        .values(current_appointments=Schedule.current_appointments - 1)
        .execution_options(synchronize_session=False)
    )


def find_conflicting_appointment(
    db: Session,
    counselor_id: int,
    appointment_date: date,
    start_time: str,
    end_time: str,
    exclude_appointment_id: int | None = None,
) -> Appointment | None:
    query = db.query(Appointment).filter(
        Appointment.counselor_id == counselor_id,
        Appointment.appointment_date == appointment_date,
        Appointment.status.in_(ACTIVE_APPOINTMENT_STATUSES),
        Appointment.start_time < end_time,
        Appointment.end_time > start_time,
    )
    if exclude_appointment_id is not None:
        query = query.filter(Appointment.id != exclude_appointment_id)
    return query.first()


def create_appointment(
    db: Session,
    *,
    student_id: int,
    counselor_id: int,
    schedule_id: int,
    appointment_date: date,
    start_time: str,
    end_time: str,
    appointment_type: str,
    actor_id: int,
    notes: str | None = None,
) -> Appointment:
    """Book a slot on a counselor's schedule.

    Checks run in a fixed order and the first failure wins: student,
    counselor, schedule, schedule ownership, availability, capacity,
    overlap. The capacity increment and the new row are committed
    together or not at all.
    """
    start, end = _validated_time_range(start_time, end_time)
    if appointment_type not in APPOINTMENT_TYPES:
        raise ValidationError('invalid appointment type')

    if db.get(Student, student_id) is None:
        raise NotFoundError('student')

    get_counselor(db, counselor_id)

    schedule = db.get(Schedule, schedule_id)
    if schedule is None:
        raise ValidationError('schedule not found')
    if schedule.counselor_id != counselor_id or schedule.date != appointment_date:
        raise ValidationError('schedule does not match counselor and date')
    if not schedule.is_available:
        raise ConflictError('schedule unavailable')
    if schedule.current_appointments >= schedule.max_appointments:
        raise ConflictError('schedule fully booked')

    try:
        reserve_capacity(db, schedule_id)

        conflicting = find_conflicting_appointment(db, counselor_id, appointment_date, start, end)
        if conflicting is not None:
            raise ConflictError('time slot already booked')

        appointment = Appointment(
            student_id=student_id,
            counselor_id=counselor_id,
            schedule_id=schedule_id,
            appointment_date=appointment_date,
            start_time=start,
            end_time=end,
            status='scheduled',
            appointment_type=appointment_type,
            notes=notes,
            reminder_sent=False,
            confirmation_sent=False,
            created_by=actor_id,
        )
        db.add(appointment)
        db.commit()
    except (DomainError, SQLAlchemyError) as exc:
        db.rollback()
        logger.warning(
            'Rejected booking for counselor %s on %s %s-%s: %s',
            counselor_id, appointment_date, start, end, exc,
        )
        raise

    db.refresh(appointment)
    logger.info(
        'Booked appointment %s (student %s, counselor %s, %s %s-%s)',
        appointment.id, student_id, counselor_id, appointment_date, start, end,
    )
    return appointment


def list_appointments(db: Session, filters: AppointmentFilters) -> list[Appointment]:
    query = db.query(Appointment)
    if filters.counselor_id is not None:
        query = query.filter(Appointment.counselor_id == filters.counselor_id)
    if filters.student_id is not None:
        query = query.filter(Appointment.student_id == filters.student_id)
    if filters.status is not None:
        query = query.filter(Appointment.status == filters.status)
    if filters.on_date is not None:
        query = query.filter(Appointment.appointment_date == filters.on_date)

    return query.order_by(Appointment.appointment_date.asc(), Appointment.start_time.asc()).all()


def update_appointment(
    db: Session,
    appointment_id: int,
    *,
    status: str | None = None,
    notes: str | None = None,
    free_capacity_on_cancel: bool | None = None,
) -> Appointment:
    """Overwrite status and/or notes.

    Any status may follow any other. Re-activating an appointment
    re-checks the time slot under the schedule's row lock, and when
    ``free_capacity_on_cancel`` is on, leaving or re-entering the active
    set moves the schedule counter. ``notes=''`` clears the notes and
    ``notes=None`` leaves them as they are.
    """
    if status is not None and status not in APPOINTMENT_STATUSES:
        raise ValidationError('invalid appointment status')
    if free_capacity_on_cancel is None:
        free_capacity_on_cancel = config.FREE_CAPACITY_ON_CANCEL

    appointment = get_appointment(db, appointment_id)
    previous_status = appointment.status

    try:
        if status is not None and status != previous_status:
            was_active = appointment.is_active
            becomes_active = status in ACTIVE_APPOINTMENT_STATUSES

            if becomes_active and not was_active:
                if free_capacity_on_cancel:
                    reserve_capacity(db, appointment.schedule_id)
                else:
                    lock_schedule(db, appointment.schedule_id)
                conflicting = find_conflicting_appointment(
                    db,
                    appointment.counselor_id,
                    appointment.appointment_date,
                    appointment.start_time,
                    appointment.end_time,
                    exclude_appointment_id=appointment.id,
                )
                if conflicting is not None:
                    raise ConflictError('time slot already booked')
            elif was_active and not becomes_active and free_capacity_on_cancel:
                release_capacity(db, appointment.schedule_id)

            appointment.status = status

        if notes is not None:
            appointment.notes = notes or None

        db.commit()
    except (DomainError, SQLAlchemyError):
        db.rollback()
        raise

    db.refresh(appointment)
    if status is not None and status != previous_status:
        logger.info('Appointment %s moved from %s to %s', appointment.id, previous_status, status)
    return appointment
