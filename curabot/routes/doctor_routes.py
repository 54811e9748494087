import logging
from datetime import date, datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from curabot.auth.dependencies import CurrentUser, require_role
from curabot.core import errors
from curabot.core.context import get_db, get_llm
from curabot.models.appointment import Appointment
from curabot.models.doctor import Doctor
from curabot.models.schedule import Schedule
from curabot.models.user import User
from curabot.routes.appointment_routes import AppointmentResponse, describe_appointments
from curabot.routes.common import database_unavailable
from curabot.services.llm_client import LLMClient
from curabot.services.patient_summary import appointment_patient_summary
from curabot.services.schedule import doctor_for_user

router = APIRouter(tags=['doctors'])

logger = logging.getLogger(__name__)


class CreateDoctorRequest(BaseModel):
    user_id: int
    name: str
    speciality: str
    profile_pic: str | None = None
    qualification: str | None = None
    overview: str = ''
    expertise: list[str] = []

    @field_validator('name', 'speciality')
    @classmethod
    def validate_required(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Field is required.')
        return normalized


class UpdateDoctorRequest(BaseModel):
    name: str | None = None
    speciality: str | None = None
    profile_pic: str | None = None
    qualification: str | None = None
    overview: str | None = None
    expertise: list[str] | None = None


class DoctorResponse(BaseModel):
    id: int
    user_id: int
    name: str
    speciality: str
    profile_pic: str | None = None
    qualification: str | None = None
    overview: str | None = None
    expertise: list[str] = []
    created_at: datetime

    class Config:
        from_attributes = True


class DoctorActionResponse(BaseModel):
    message: str
    doctor: DoctorResponse


def today() -> date:
    return date.today()


def list_doctor_appointments_on(db: Session, user_id: int, day: date) -> list[AppointmentResponse]:
    doctor = doctor_for_user(db, user_id)
    appointments = db.query(Appointment).filter(
        Appointment.doctor_id == doctor.id,
        Appointment.date == day,
        Appointment.status != 'cancelled',
    ).order_by(Appointment.time.asc()).all()
    return describe_appointments(db, appointments)


@router.get('', response_model=list[DoctorResponse])
def list_doctors(db: Session = Depends(get_db)):
    try:
        return db.query(Doctor).order_by(Doctor.name.asc()).all()
    except SQLAlchemyError as exc:
        raise database_unavailable(db) from exc


@router.get('/appointments/today', response_model=list[AppointmentResponse])
def list_today_appointments(
    current_user: CurrentUser = Depends(require_role('doctor')),
    db: Session = Depends(get_db),
):
    try:
        return list_doctor_appointments_on(db, current_user.id, today())
    except errors.CuraBotError as exc:
        raise exc.to_http() from exc
    except SQLAlchemyError as exc:
        raise database_unavailable(db) from exc


@router.get('/appointments', response_model=list[AppointmentResponse])
def list_appointments_by_date(
    date: date = Query(...),
    current_user: CurrentUser = Depends(require_role('doctor')),
    db: Session = Depends(get_db),
):
    try:
        return list_doctor_appointments_on(db, current_user.id, date)
    except errors.CuraBotError as exc:
        raise exc.to_http() from exc
    except SQLAlchemyError as exc:
        raise database_unavailable(db) from exc


@router.get('/appointment/{appointment_id}/patient-summary')
def get_patient_summary(
    appointment_id: int,
    current_user: CurrentUser = Depends(require_role('doctor', 'admin')),
    db: Session = Depends(get_db),
    llm: LLMClient = Depends(get_llm),
):
    try:
        result = appointment_patient_summary(db, llm, appointment_id, current_user.id, current_user.role)
        result['appointment'] = describe_appointments(db, [result['appointment']])[0]
        return result
    except errors.CuraBotError as exc:
        raise exc.to_http() from exc
    except SQLAlchemyError as exc:
        raise database_unavailable(db) from exc


@router.get('/me', response_model=DoctorResponse)
def get_my_doctor_profile(
    current_user: CurrentUser = Depends(require_role('doctor')),
    db: Session = Depends(get_db),
):
    try:
        return doctor_for_user(db, current_user.id)
    except errors.CuraBotError as exc:
        raise exc.to_http() from exc
    except SQLAlchemyError as exc:
        raise database_unavailable(db) from exc


@router.get('/{doctor_id}', response_model=DoctorResponse)
def get_doctor(doctor_id: int, db: Session = Depends(get_db)):
    try:
        doctor = db.get(Doctor, doctor_id)
    except SQLAlchemyError as exc:
        raise database_unavailable(db) from exc

    if doctor is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Doctor not found')
    return doctor


@router.post('', response_model=DoctorActionResponse, status_code=status.HTTP_201_CREATED)
def add_doctor(
    data: CreateDoctorRequest,
    current_user: CurrentUser = Depends(require_role('admin')),
    db: Session = Depends(get_db),
):
    del current_user
    try:
        user = db.get(User, data.user_id)
        if user is None or user.role != 'doctor':
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Invalid doctor user ID')

        if db.query(Doctor).filter(Doctor.user_id == data.user_id).first():
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail='Doctor profile already exists')

        doctor = Doctor(**data.model_dump())
        db.add(doctor)
        db.commit()
        db.refresh(doctor)
    except SQLAlchemyError as exc:
        raise database_unavailable(db) from exc

    logger.info('Added doctor %s for user %s', doctor.id, doctor.user_id)
    return DoctorActionResponse(message='Doctor added successfully', doctor=DoctorResponse.model_validate(doctor))


@router.patch('/{doctor_id}', response_model=DoctorActionResponse)
def update_doctor(
    doctor_id: int,
    data: UpdateDoctorRequest,
    current_user: CurrentUser = Depends(require_role('admin')),
    db: Session = Depends(get_db),
):
    del current_user
    try:
        doctor = db.get(Doctor, doctor_id)
        if doctor is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Doctor not found')

        for field, value in data.model_dump(exclude_unset=True).items():
            # Empty values keep the current field, matching partial-update semantics.
            if value:
                setattr(doctor, field, value)

        db.commit()
        db.refresh(doctor)
    except SQLAlchemyError as exc:
        raise database_unavailable(db) from exc

    return DoctorActionResponse(message='Doctor updated successfully', doctor=DoctorResponse.model_validate(doctor))


@router.delete('/{doctor_id}')
def delete_doctor(
    doctor_id: int,
    current_user: CurrentUser = Depends(require_role('admin')),
    db: Session = Depends(get_db),
):
    del current_user
    try:
        doctor = db.get(Doctor, doctor_id)
        if doctor is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Doctor not found')

        active_appointments = db.query(Appointment).filter(
            Appointment.doctor_id == doctor_id,
            Appointment.status.in_(('pending', 'confirmed')),
        ).count()
        if active_appointments:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail='Doctor has upcoming appointments and cannot be deleted',
            )

        schedule = db.query(Schedule).filter(Schedule.doctor_id == doctor_id).first()
        if schedule is not None:
            db.delete(schedule)
            db.flush()
        db.delete(doctor)
        db.commit()
    except SQLAlchemyError as exc:
        raise database_unavailable(db) from exc

    logger.info('Deleted doctor %s', doctor_id)
    return {'message': 'Doctor deleted successfully'}
