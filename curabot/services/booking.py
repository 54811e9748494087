"""Booking, cancellation, rescheduling and completion of appointments.

A slot is claimed with a single conditional UPDATE (``is_booked`` flips to
true only while it is still false), so two requests racing for the same
slot cannot both win. The claim and the appointment write share one
transaction; if either fails the session is rolled back and the slot stays
free.
"""
import logging
from datetime import date, datetime

from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from curabot.core.errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    SlotAlreadyBooked,
    SlotNotFound,
    ValidationError,
)
from curabot.models.appointment import Appointment
from curabot.models.chat import Chat
from curabot.models.doctor import Doctor
from curabot.models.schedule import TimeSlot
from curabot.services.slot_locator import locate_slot

logger = logging.getLogger(__name__)

BOOKABLE_STATUSES = ('confirmed', 'pending')


def claim_slot(db: Session, slot_id: int) -> bool:
    result = db.execute(
        update(TimeSlot)
        .where(TimeSlot.id == slot_id, TimeSlot.is_booked.is_(False))
        .values(is_booked=True)
    )
    return result.rowcount == 1


def release_slot(db: Session, doctor_id: int, slot_date: date, slot_time: str) -> bool:
    try:
        located = locate_slot(db, doctor_id, slot_date, slot_time)
    except SlotNotFound:
        logger.warning('No slot to release for doctor %s on %s at %s', doctor_id, slot_date, slot_time)
        return False

    if located.slot.is_withdrawn:
        result = db.execute(
            delete(TimeSlot).where(TimeSlot.id == located.slot.id, TimeSlot.is_booked.is_(True))
        )
        logger.info('Withdrawn slot %s on %s at %s removed on release', located.slot.id, slot_date, slot_time)
        return result.rowcount == 1

    result = db.execute(
        update(TimeSlot)
        .where(TimeSlot.id == located.slot.id, TimeSlot.is_booked.is_(True))
        .values(is_booked=False)
    )
    return result.rowcount == 1


def latest_chat_id(db: Session, patient_id: int) -> int | None:
    chat = db.query(Chat).filter(Chat.user_id == patient_id).order_by(
        Chat.created_at.desc(),
        Chat.id.desc(),
    ).first()
    return chat.id if chat else None


def get_appointment(db: Session, appointment_id: int) -> Appointment:
    appointment = db.get(Appointment, appointment_id)
    if appointment is None:
        raise NotFoundError('Appointment not found')
    return appointment


def book_appointment(
    db: Session,
    patient_id: int,
    doctor_id: int,
    slot_date: date | datetime,
    slot_time: str,
    status: str = 'confirmed',
) -> Appointment:
    if status not in BOOKABLE_STATUSES:
        raise ValidationError('Invalid appointment status.')

    if db.get(Doctor, doctor_id) is None:
        raise NotFoundError('Doctor not found')

    located = locate_slot(db, doctor_id, slot_date, slot_time)
    if located.slot.is_booked:
        raise SlotAlreadyBooked()

    try:
        if not claim_slot(db, located.slot.id):
            raise SlotAlreadyBooked()

        appointment = Appointment(
            patient_id=patient_id,
            doctor_id=doctor_id,
            schedule_id=located.schedule.id,
            date=located.date_entry.date,
            time=located.slot.label,
            status=status,
            chat_session_id=latest_chat_id(db, patient_id),
        )
        db.add(appointment)
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise SlotAlreadyBooked() from exc
    except Exception:
        db.rollback()
        raise

    db.refresh(appointment)
    logger.info(
        'Appointment %s booked for patient %s with doctor %s on %s at %s',
        appointment.id, patient_id, doctor_id, appointment.date, appointment.time,
    )
    return appointment


def cancel_appointment(db: Session, appointment_id: int, actor_id: int, actor_role: str) -> Appointment:
    """Cancel an appointment and free its slot.

    Only the patient who booked it or an admin may cancel. Cancelling an
    appointment that is already cancelled changes nothing and succeeds.
    """
    appointment = get_appointment(db, appointment_id)

    if appointment.patient_id != actor_id and actor_role != 'admin':
        raise ForbiddenError('Unauthorized')

    if appointment.status == 'cancelled':
        return appointment

    if appointment.status == 'completed':
        raise ConflictError('Completed appointments cannot be cancelled')

    try:
        appointment.status = 'cancelled'
        release_slot(db, appointment.doctor_id, appointment.date, appointment.time)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(appointment)
    logger.info('Appointment %s cancelled by %s %s', appointment.id, actor_role, actor_id)
    return appointment


def reschedule_appointment(
    db: Session,
    appointment_id: int,
    new_date: date | datetime,
    new_time: str,
) -> Appointment:
    appointment = get_appointment(db, appointment_id)

    if appointment.status in ('cancelled', 'completed'):
        raise ConflictError(f'{appointment.status.capitalize()} appointments cannot be rescheduled')

    located = locate_slot(db, appointment.doctor_id, new_date, new_time)
    same_slot = located.date_entry.date == appointment.date and located.slot.label == appointment.time

    if not same_slot and located.slot.is_booked:
        raise SlotAlreadyBooked()

    try:
        if not same_slot:
            if not claim_slot(db, located.slot.id):
                raise SlotAlreadyBooked()
            release_slot(db, appointment.doctor_id, appointment.date, appointment.time)

        appointment.schedule_id = located.schedule.id
        appointment.date = located.date_entry.date
        appointment.time = located.slot.label
        appointment.status = 'confirmed'
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise SlotAlreadyBooked() from exc
    except Exception:
        db.rollback()
        raise

    db.refresh(appointment)
    logger.info('Appointment %s moved to %s at %s', appointment.id, appointment.date, appointment.time)
    return appointment


def complete_appointment(db: Session, appointment_id: int, actor_id: int, actor_role: str) -> Appointment:
    appointment = get_appointment(db, appointment_id)

    if actor_role != 'admin':
        doctor = db.query(Doctor).filter(Doctor.user_id == actor_id).first()
        if doctor is None or doctor.id != appointment.doctor_id:
            raise ForbiddenError('Unauthorized')

    if appointment.status == 'completed':
        return appointment

    if appointment.status == 'cancelled':
        raise ConflictError('Cancelled appointments cannot be completed')

    try:
        appointment.status = 'completed'
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(appointment)
    return appointment
