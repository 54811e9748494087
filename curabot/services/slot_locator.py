from dataclasses import dataclass
from datetime import date, datetime

from sqlalchemy.orm import Session

from curabot.core.errors import SlotNotFound, ValidationError
from curabot.models.schedule import Schedule, ScheduleDate, TimeSlot

TIME_LABEL_FORMAT = '%H:%M'


@dataclass
class LocatedSlot:
    schedule: Schedule
    date_entry: ScheduleDate
    slot: TimeSlot


def normalize_day(value: date | datetime) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def normalize_time_label(value: str) -> str:
    try:
        return datetime.strptime(value.strip(), TIME_LABEL_FORMAT).strftime(TIME_LABEL_FORMAT)
    except (AttributeError, ValueError) as exc:
        raise ValidationError('Time must be in HH:MM format.') from exc


def find_schedule(db: Session, doctor_id: int) -> Schedule | None:
    return db.query(Schedule).filter(Schedule.doctor_id == doctor_id).first()


def find_date_entry(db: Session, schedule_id: int, day: date) -> ScheduleDate | None:
    return db.query(ScheduleDate).filter(
        ScheduleDate.schedule_id == schedule_id,
        ScheduleDate.date == day,
    ).first()


def locate_slot(db: Session, doctor_id: int, slot_date: date | datetime, slot_time: str) -> LocatedSlot:
    """Find the slot for ``slot_time`` on the doctor's ``slot_date``.

    Only the calendar day of ``slot_date`` is compared. Raises
    :class:`SlotNotFound` with ``reason='date'`` or ``reason='time'``.
    """
    day = normalize_day(slot_date)
    label = normalize_time_label(slot_time)

    schedule = find_schedule(db, doctor_id)
    if schedule is None:
        raise SlotNotFound('date')

    date_entry = find_date_entry(db, schedule.id, day)
    if date_entry is None:
        raise SlotNotFound('date')

    slot = db.query(TimeSlot).filter(
        TimeSlot.schedule_date_id == date_entry.id,
        TimeSlot.label == label,
    ).first()
    if slot is None:
        raise SlotNotFound('time')

    return LocatedSlot(schedule=schedule, date_entry=date_entry, slot=slot)
