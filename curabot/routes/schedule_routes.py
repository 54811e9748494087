from datetime import date

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from curabot.auth.dependencies import CurrentUser, require_role
from curabot.core import errors
from curabot.core.context import get_db
from curabot.routes.appointment_routes import validate_time_label
from curabot.routes.common import database_unavailable
from curabot.services import schedule as schedule_service

router = APIRouter(tags=['schedule'])


class AvailabilityRequest(BaseModel):
    date: date
    start_time: str
    end_time: str
    interval: int = 30

    @field_validator('start_time', 'end_time')
    @classmethod
    def validate_times(cls, value: str) -> str:
        return validate_time_label(value)


class TimeSlotResponse(BaseModel):
    time: str
    is_booked: bool


class DateEntryResponse(BaseModel):
    date: date
    times: list[TimeSlotResponse]


class ScheduleResponse(BaseModel):
    doctor_id: int
    schedule_id: int | None = None
    available_slots: list[DateEntryResponse]


class ScheduleActionResponse(BaseModel):
    message: str
    schedule: ScheduleResponse


@router.get('/{doctor_id}', response_model=ScheduleResponse)
def get_doctor_availability(doctor_id: int, db: Session = Depends(get_db)):
    try:
        return schedule_service.get_schedule(db, doctor_id)
    except SQLAlchemyError as exc:
        raise database_unavailable(db) from exc


@router.post('', response_model=ScheduleActionResponse, status_code=status.HTTP_201_CREATED)
def set_doctor_availability(
    data: AvailabilityRequest,
    current_user: CurrentUser = Depends(require_role('doctor')),
    db: Session = Depends(get_db),
):
    try:
        doctor = schedule_service.doctor_for_user(db, current_user.id)
        schedule = schedule_service.set_availability(
            db, doctor.id, data.date, data.start_time, data.end_time, data.interval,
        )
        return ScheduleActionResponse(
            message='Availability updated successfully',
            schedule=schedule_service.serialize_schedule(schedule, doctor.id),
        )
    except errors.CuraBotError as exc:
        raise exc.to_http() from exc
    except SQLAlchemyError as exc:
        raise database_unavailable(db) from exc


@router.patch('', response_model=ScheduleActionResponse)
def update_doctor_availability(
    data: AvailabilityRequest,
    current_user: CurrentUser = Depends(require_role('doctor')),
    db: Session = Depends(get_db),
):
    try:
        doctor = schedule_service.doctor_for_user(db, current_user.id)
        schedule = schedule_service.replace_availability(
            db, doctor.id, data.date, data.start_time, data.end_time, data.interval,
        )
        return ScheduleActionResponse(
            message='Availability replaced successfully',
            schedule=schedule_service.serialize_schedule(schedule, doctor.id),
        )
    except errors.CuraBotError as exc:
        raise exc.to_http() from exc
    except SQLAlchemyError as exc:
        raise database_unavailable(db) from exc
