from datetime import date, datetime

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from curabot.auth.dependencies import CurrentUser, get_current_user, require_role
from curabot.core import errors
from curabot.core.context import get_db
from curabot.models.appointment import Appointment
from curabot.models.doctor import Doctor
from curabot.models.user import User
from curabot.routes.common import database_unavailable
from curabot.services import booking
from curabot.services.slot_locator import normalize_time_label

router = APIRouter(tags=['appointments'])


def validate_time_label(value: str) -> str:
    try:
        return normalize_time_label(value)
    except errors.ValidationError as exc:
        raise ValueError(exc.message) from exc


class BookAppointmentRequest(BaseModel):
    doctor_id: int
    date: date
    time: str

    @field_validator('time')
    @classmethod
    def validate_time(cls, value: str) -> str:
        return validate_time_label(value)


class AppointmentResponse(BaseModel):
    id: int
    patient_id: int
    doctor_id: int
    schedule_id: int
    date: date
    time: str
    status: str
    chat_session_id: int | None = None
    created_at: datetime
    doctor_name: str | None = None
    doctor_speciality: str | None = None
    patient_name: str | None = None
    patient_email: str | None = None

    class Config:
        from_attributes = True


class AppointmentActionResponse(BaseModel):
    message: str
    appointment: AppointmentResponse


def describe_appointments(db: Session, appointments: list[Appointment]) -> list[AppointmentResponse]:
    doctor_ids = {appointment.doctor_id for appointment in appointments}
    patient_ids = {appointment.patient_id for appointment in appointments}
    doctors: dict[int, Doctor] = {}
    patients: dict[int, User] = {}
    if doctor_ids:
        doctors = {doctor.id: doctor for doctor in db.query(Doctor).filter(Doctor.id.in_(doctor_ids))}
    if patient_ids:
        patients = {user.id: user for user in db.query(User).filter(User.id.in_(patient_ids))}

    described: list[AppointmentResponse] = []
    for appointment in appointments:
        response = AppointmentResponse.model_validate(appointment)
        doctor = doctors.get(appointment.doctor_id)
        patient = patients.get(appointment.patient_id)
        if doctor is not None:
            response.doctor_name = doctor.name
            response.doctor_speciality = doctor.speciality
        if patient is not None:
            response.patient_name = patient.name
            response.patient_email = patient.email
        described.append(response)
    return described


def action_response(db: Session, message: str, appointment: Appointment) -> AppointmentActionResponse:
    return AppointmentActionResponse(message=message, appointment=describe_appointments(db, [appointment])[0])


@router.post('/book', response_model=AppointmentActionResponse, status_code=status.HTTP_201_CREATED)
def book_appointment(
    data: BookAppointmentRequest,
    current_user: CurrentUser = Depends(require_role('patient')),
    db: Session = Depends(get_db),
):
    try:
        appointment = booking.book_appointment(db, current_user.id, data.doctor_id, data.date, data.time)
        return action_response(db, 'Appointment booked successfully', appointment)
    except errors.CuraBotError as exc:
        raise exc.to_http() from exc
    except SQLAlchemyError as exc:
        raise database_unavailable(db) from exc


@router.get('/my', response_model=list[AppointmentResponse])
def list_my_appointments(
    current_user: CurrentUser = Depends(require_role('patient')),
    db: Session = Depends(get_db),
):
    try:
        appointments = db.query(Appointment).filter(
            Appointment.patient_id == current_user.id,
        ).order_by(Appointment.date.asc(), Appointment.time.asc()).all()
        return describe_appointments(db, appointments)
    except SQLAlchemyError as exc:
        raise database_unavailable(db) from exc


@router.get('/all', response_model=list[AppointmentResponse])
def list_all_appointments(
    current_user: CurrentUser = Depends(require_role('admin', 'doctor')),
    db: Session = Depends(get_db),
):
    del current_user
    try:
        appointments = db.query(Appointment).order_by(Appointment.date.asc(), Appointment.time.asc()).all()
        return describe_appointments(db, appointments)
    except SQLAlchemyError as exc:
        raise database_unavailable(db) from exc


@router.patch('/cancel/{appointment_id}', response_model=AppointmentActionResponse)
def cancel_appointment(
    appointment_id: int,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        appointment = booking.cancel_appointment(db, appointment_id, current_user.id, current_user.role)
        return action_response(db, 'Appointment cancelled successfully', appointment)
    except errors.CuraBotError as exc:
        raise exc.to_http() from exc
    except SQLAlchemyError as exc:
        raise database_unavailable(db) from exc


@router.patch('/{appointment_id}/complete', response_model=AppointmentActionResponse)
def complete_appointment(
    appointment_id: int,
    current_user: CurrentUser = Depends(require_role('doctor', 'admin')),
    db: Session = Depends(get_db),
):
    try:
        appointment = booking.complete_appointment(db, appointment_id, current_user.id, current_user.role)
        return action_response(db, 'Appointment completed successfully', appointment)
    except errors.CuraBotError as exc:
        raise exc.to_http() from exc
    except SQLAlchemyError as exc:
        raise database_unavailable(db) from exc
