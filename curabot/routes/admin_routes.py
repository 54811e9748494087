from datetime import date
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator, model_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from curabot.auth.dependencies import CurrentUser, require_role
from curabot.core import errors
from curabot.core.context import get_db, get_llm
from curabot.models.appointment import Appointment
from curabot.models.doctor import Doctor
from curabot.models.user import User
from curabot.routes.appointment_routes import (
    AppointmentActionResponse,
    AppointmentResponse,
    action_response,
    describe_appointments,
    validate_time_label,
)
from curabot.routes.auth_routes import UserResponse
from curabot.routes.common import database_unavailable
from curabot.routes.doctor_routes import DoctorResponse
from curabot.services import analytics, booking
from curabot.services.llm_client import LLMClient
from curabot.services.schedule import get_schedule

router = APIRouter(tags=['admin'])

require_admin = require_role('admin')


class ManageAppointmentRequest(BaseModel):
    action: Literal['reschedule', 'cancel', 'complete']
    new_date: date | None = None
    new_time: str | None = None

    @field_validator('new_time')
    @classmethod
    def validate_new_time(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return validate_time_label(value)

    @model_validator(mode='after')
    def require_reschedule_target(self):
        if self.action == 'reschedule' and (self.new_date is None or self.new_time is None):
            raise ValueError('new_date and new_time are required to reschedule.')
        return self


class ManualBookingRequest(BaseModel):
    patient_id: int
    doctor_id: int
    date: date
    time: str
    status: Literal['confirmed', 'pending'] = 'confirmed'

    @field_validator('time')
    @classmethod
    def validate_time(cls, value: str) -> str:
        return validate_time_label(value)


class DoctorScheduleResponse(BaseModel):
    doctor: DoctorResponse
    schedule: dict
    appointments: list[AppointmentResponse]


@router.get('/dashboard')
def get_dashboard(current_user: CurrentUser = Depends(require_admin), db: Session = Depends(get_db)):
    del current_user
    try:
        return analytics.dashboard_counts(db)
    except SQLAlchemyError as exc:
        raise database_unavailable(db) from exc


@router.get('/patients', response_model=list[UserResponse])
def list_patients(current_user: CurrentUser = Depends(require_admin), db: Session = Depends(get_db)):
    del current_user
    try:
        return db.query(User).filter(User.role == 'patient').order_by(User.name.asc()).all()
    except SQLAlchemyError as exc:
        raise database_unavailable(db) from exc


@router.get('/doctors/{doctor_id}/schedule', response_model=DoctorScheduleResponse)
def get_doctor_schedule(
    doctor_id: int,
    current_user: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    del current_user
    try:
        doctor = db.get(Doctor, doctor_id)
        if doctor is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Doctor not found')

        appointments = db.query(Appointment).filter(Appointment.doctor_id == doctor_id).order_by(
            Appointment.date.asc(),
            Appointment.time.asc(),
        ).all()
        return DoctorScheduleResponse(
            doctor=DoctorResponse.model_validate(doctor),
            schedule=get_schedule(db, doctor_id),
            appointments=describe_appointments(db, appointments),
        )
    except SQLAlchemyError as exc:
        raise database_unavailable(db) from exc


@router.get('/appointments', response_model=list[AppointmentResponse])
def list_appointments(current_user: CurrentUser = Depends(require_admin), db: Session = Depends(get_db)):
    del current_user
    try:
        appointments = db.query(Appointment).order_by(Appointment.date.asc(), Appointment.time.asc()).all()
        return describe_appointments(db, appointments)
    except SQLAlchemyError as exc:
        raise database_unavailable(db) from exc


@router.patch('/appointments/{appointment_id}', response_model=AppointmentActionResponse)
def manage_appointment(
    appointment_id: int,
    data: ManageAppointmentRequest,
    current_user: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    try:
        if data.action == 'reschedule':
            appointment = booking.reschedule_appointment(db, appointment_id, data.new_date, data.new_time)
        elif data.action == 'cancel':
            appointment = booking.cancel_appointment(db, appointment_id, current_user.id, current_user.role)
        else:
            appointment = booking.complete_appointment(db, appointment_id, current_user.id, current_user.role)
        past_tense = {'reschedule': 'rescheduled', 'cancel': 'cancelled', 'complete': 'completed'}[data.action]
        return action_response(db, f'Appointment {past_tense} successfully', appointment)
    except errors.CuraBotError as exc:
        raise exc.to_http() from exc
    except SQLAlchemyError as exc:
        raise database_unavailable(db) from exc


@router.post('/appointments', response_model=AppointmentActionResponse, status_code=status.HTTP_201_CREATED)
def manually_schedule_appointment(
    data: ManualBookingRequest,
    current_user: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    del current_user
    try:
        patient = db.get(User, data.patient_id)
        if patient is None or patient.role != 'patient':
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Invalid patient ID')

        appointment = booking.book_appointment(
            db, data.patient_id, data.doctor_id, data.date, data.time, status=data.status,
        )
        return action_response(db, 'Appointment booked successfully', appointment)
    except errors.CuraBotError as exc:
        raise exc.to_http() from exc
    except SQLAlchemyError as exc:
        raise database_unavailable(db) from exc


@router.get('/analytics')
def get_analytics(
    period: str = Query(default='day'),
    current_user: CurrentUser = Depends(require_admin),
    db: Session = Depends(get_db),
    llm: LLMClient = Depends(get_llm),
):
    del current_user
    try:
        start = analytics.period_start(period)
        stats = analytics.collect_period_stats(db, start)
    except errors.CuraBotError as exc:
        raise exc.to_http() from exc
    except SQLAlchemyError as exc:
        raise database_unavailable(db) from exc

    insights = analytics.generate_insights(llm, period, stats)
    return {
        'period': period,
        'start': start.isoformat(),
        'total_appointments': stats.total_appointments,
        'completed_appointments': stats.completed_appointments,
        'cancelled_appointments': stats.cancelled_appointments,
        'stats': stats.model_dump(),
        'ai_insights': insights.model_dump(),
    }
