import logging
from datetime import date, datetime, timedelta

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from curabot.core.errors import ConflictError, NotFoundError, ValidationError
from curabot.models.doctor import Doctor
from curabot.models.schedule import Schedule, ScheduleDate, TimeSlot
from curabot.services.slot_locator import (
    TIME_LABEL_FORMAT,
    find_date_entry,
    find_schedule,
    normalize_day,
    normalize_time_label,
)

logger = logging.getLogger(__name__)

MIN_INTERVAL_MINUTES = 5
MAX_INTERVAL_MINUTES = 240


def build_time_labels(start_time: str, end_time: str, interval: int) -> list[str]:
    """Labels from ``start_time`` up to, not including, ``end_time``."""
    if interval < MIN_INTERVAL_MINUTES or interval > MAX_INTERVAL_MINUTES:
        raise ValidationError(
            f'Interval must be between {MIN_INTERVAL_MINUTES} and {MAX_INTERVAL_MINUTES} minutes.'
        )

    start = datetime.strptime(normalize_time_label(start_time), TIME_LABEL_FORMAT)
    end = datetime.strptime(normalize_time_label(end_time), TIME_LABEL_FORMAT)
    if start >= end:
        raise ValidationError('Start time must be before end time.')

    labels: list[str] = []
    current = start
    while current < end:
        labels.append(current.strftime(TIME_LABEL_FORMAT))
        current += timedelta(minutes=interval)
    return labels


def doctor_for_user(db: Session, user_id: int) -> Doctor:
    doctor = db.query(Doctor).filter(Doctor.user_id == user_id).first()
    if doctor is None:
        raise NotFoundError('Doctor profile not found')
    return doctor


def _get_or_create_date_entry(db: Session, doctor_id: int, day: date) -> ScheduleDate:
    schedule = find_schedule(db, doctor_id)
    if schedule is None:
        schedule = Schedule(doctor_id=doctor_id)
        db.add(schedule)
        db.flush()
        logger.info('Created schedule %s for doctor %s', schedule.id, doctor_id)

    date_entry = find_date_entry(db, schedule.id, day)
    if date_entry is None:
        date_entry = ScheduleDate(schedule_id=schedule.id, date=day)
        db.add(date_entry)
        db.flush()
    return date_entry


def _add_missing_labels(db: Session, date_entry: ScheduleDate, labels: list[str]) -> int:
    existing = {
        label for (label,) in db.query(TimeSlot.label).filter(TimeSlot.schedule_date_id == date_entry.id)
    }
    added = 0
    for label in labels:
        if label in existing:
            continue
        db.add(TimeSlot(schedule_date_id=date_entry.id, label=label, is_booked=False))
        existing.add(label)
        added += 1
    return added


def _mark_withdrawn(db: Session, date_entry: ScheduleDate, labels: list[str], *, others: bool) -> None:
    """Clear the withdrawn flag on ``labels``; with ``others`` set, flag every other slot of the day."""
    db.execute(
        update(TimeSlot)
        .where(TimeSlot.schedule_date_id == date_entry.id, TimeSlot.label.in_(labels))
        .values(is_withdrawn=False)
        .execution_options(synchronize_session='fetch')
    )
    if others:
        db.execute(
            update(TimeSlot)
            .where(TimeSlot.schedule_date_id == date_entry.id, TimeSlot.label.not_in(labels))
            .values(is_withdrawn=True)
            .execution_options(synchronize_session='fetch')
        )


def set_availability(
    db: Session,
    doctor_id: int,
    slot_date: date | datetime,
    start_time: str,
    end_time: str,
    interval: int,
) -> Schedule:
    """Open the generated slots on a day, keeping any that already exist."""
    labels = build_time_labels(start_time, end_time, interval)
    day = normalize_day(slot_date)

    try:
        date_entry = _get_or_create_date_entry(db, doctor_id, day)
        _mark_withdrawn(db, date_entry, labels, others=False)
        added = _add_missing_labels(db, date_entry, labels)
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError('Schedule was changed by another request, please retry') from exc
    except Exception:
        db.rollback()
        raise

    logger.info('Doctor %s opened %s new slots on %s', doctor_id, added, day)
    return find_schedule(db, doctor_id)


def replace_availability(
    db: Session,
    doctor_id: int,
    slot_date: date | datetime,
    start_time: str,
    end_time: str,
    interval: int,
) -> Schedule:
    """Replace the free slots of a day.

    Booked slots outside the new range stay until their appointment lets
    go of them, flagged as withdrawn so a cancellation removes them
    instead of reopening them.
    """
    labels = build_time_labels(start_time, end_time, interval)
    day = normalize_day(slot_date)

    try:
        date_entry = _get_or_create_date_entry(db, doctor_id, day)
        db.query(TimeSlot).filter(
            TimeSlot.schedule_date_id == date_entry.id,
            TimeSlot.is_booked.is_(False),
        ).delete(synchronize_session='fetch')
        db.expire(date_entry)
        _mark_withdrawn(db, date_entry, labels, others=True)
        added = _add_missing_labels(db, date_entry, labels)
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError('Schedule was changed by another request, please retry') from exc
    except Exception:
        db.rollback()
        raise

    logger.info('Doctor %s reset availability on %s with %s slots', doctor_id, day, added)
    return find_schedule(db, doctor_id)


def serialize_schedule(schedule: Schedule | None, doctor_id: int) -> dict:
    if schedule is None:
        return {'doctor_id': doctor_id, 'schedule_id': None, 'available_slots': []}

    return {
        'doctor_id': schedule.doctor_id,
        'schedule_id': schedule.id,
        'available_slots': [
            {
                'date': date_entry.date.isoformat(),
                'times': [{'time': slot.label, 'is_booked': slot.is_booked} for slot in date_entry.slots],
            }
            for date_entry in schedule.dates
        ],
    }


def get_schedule(db: Session, doctor_id: int) -> dict:
    return serialize_schedule(find_schedule(db, doctor_id), doctor_id)
