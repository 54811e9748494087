import json
import logging
from datetime import datetime, timedelta

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from sqlalchemy import case, func
from sqlalchemy.orm import Session

from curabot.core import config
from curabot.core.errors import UpstreamError, ValidationError
from curabot.models.appointment import Appointment
from curabot.models.doctor import Doctor
from curabot.models.schedule import Schedule, ScheduleDate, TimeSlot
from curabot.models.user import User
from curabot.services.llm_client import LLMClient, parse_reply

logger = logging.getLogger(__name__)

PERIODS = ('day', 'week', 'month')
PEAK_TIMES_LIMIT = 5
FALLBACK_OVERLOADED_LIMIT = 3


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DoctorWorkload(_CamelModel):
    doctor_id: int | str
    total_appointments: int = 0


class DoctorAvailability(_CamelModel):
    doctor_id: int | str
    available_slots: int = 0
    booked_slots: int = 0


class PeakTime(_CamelModel):
    time: str
    total_appointments: int


class PeriodStats(_CamelModel):
    total_appointments: int
    completed_appointments: int
    cancelled_appointments: int
    doctor_workload: list[DoctorWorkload]
    peak_hours: list[PeakTime]
    doctor_schedules: list[DoctorAvailability]


class AnalyticsInsights(_CamelModel):
    peak_hours: list[str] = Field(default_factory=list)
    overloaded_doctors: list[DoctorWorkload] = Field(default_factory=list)
    doctor_availability: list[DoctorAvailability] = Field(default_factory=list)
    cancellation_trends: str = ''
    recommendations: list[str] = Field(default_factory=list)
    generated_by_ai: bool = True


def dashboard_counts(db: Session) -> dict:
    status_counts = dict(
        db.query(Appointment.status, func.count(Appointment.id)).group_by(Appointment.status).all()
    )
    return {
        'total_patients': db.query(func.count(User.id)).filter(User.role == 'patient').scalar() or 0,
        'total_doctors': db.query(func.count(Doctor.id)).scalar() or 0,
        'total_appointments': sum(status_counts.values()),
        'pending_appointments': status_counts.get('pending', 0),
        'confirmed_appointments': status_counts.get('confirmed', 0),
        'cancelled_appointments': status_counts.get('cancelled', 0),
        'completed_appointments': status_counts.get('completed', 0),
    }


def period_start(period: str, now: datetime | None = None) -> datetime:
    now = now or datetime.now()
    if period == 'day':
        return now.replace(hour=0, minute=0, second=0, microsecond=0)
    if period == 'week':
        return now - timedelta(days=7)
    if period == 'month':
        return now - timedelta(days=30)
    raise ValidationError(f'Period must be one of: {", ".join(PERIODS)}.')


def collect_period_stats(db: Session, start: datetime) -> PeriodStats:
    start_day = start.date()
    in_period = Appointment.date >= start_day

    def count_with(*criteria) -> int:
        return db.query(func.count(Appointment.id)).filter(in_period, *criteria).scalar() or 0

    appointment_count = func.count(Appointment.id)
    workload_rows = db.query(Appointment.doctor_id, appointment_count).filter(in_period).group_by(
        Appointment.doctor_id,
    ).order_by(appointment_count.desc(), Appointment.doctor_id.asc()).all()

    peak_rows = db.query(Appointment.time, appointment_count).filter(in_period).group_by(
        Appointment.time,
    ).order_by(appointment_count.desc(), Appointment.time.asc()).limit(PEAK_TIMES_LIMIT).all()

    booked_sum = func.sum(case((TimeSlot.is_booked.is_(True), 1), else_=0))
    availability_rows = db.query(Schedule.doctor_id, func.count(TimeSlot.id), booked_sum).join(
        ScheduleDate, ScheduleDate.schedule_id == Schedule.id,
    ).join(
        TimeSlot, TimeSlot.schedule_date_id == ScheduleDate.id,
    ).filter(ScheduleDate.date >= start_day).group_by(Schedule.doctor_id).order_by(Schedule.doctor_id).all()

    return PeriodStats(
        total_appointments=count_with(),
        completed_appointments=count_with(Appointment.status == 'completed'),
        cancelled_appointments=count_with(Appointment.status == 'cancelled'),
        doctor_workload=[
            DoctorWorkload(doctor_id=doctor_id, total_appointments=total) for doctor_id, total in workload_rows
        ],
        peak_hours=[PeakTime(time=time_label, total_appointments=total) for time_label, total in peak_rows],
        doctor_schedules=[
            DoctorAvailability(
                doctor_id=doctor_id,
                available_slots=(total or 0) - (booked or 0),
                booked_slots=booked or 0,
            )
            for doctor_id, total, booked in availability_rows
        ],
    )


def build_analytics_prompt(period: str, stats: PeriodStats) -> str:
    def dump(items) -> str:
        return json.dumps([item.model_dump(by_alias=True) for item in items])

    return f"""
You are an AI specializing in real-time hospital analytics. Given the following filtered hospital data
for the period ({period}), generate key insights:

- Total Appointments: {stats.total_appointments}
- Completed Appointments: {stats.completed_appointments}
- Cancelled Appointments: {stats.cancelled_appointments}
- Doctor Workload (appointments per doctor): {dump(stats.doctor_workload)}
- Peak Appointment Hours (most booked times): {dump(stats.peak_hours)}
- Doctor Availability (available and booked slots per doctor): {dump(stats.doctor_schedules)}

Provide structured insights only for the selected period ({period}), as a JSON object:
{{
    "peakHours": ["9AM-11AM", "4PM-6PM"],
    "overloadedDoctors": [{{"doctorId": 1, "totalAppointments": 12}}],
    "doctorAvailability": [{{"doctorId": 1, "availableSlots": 2, "bookedSlots": 8}}],
    "cancellationTrends": "Most cancellations happen between 8AM-10AM",
    "recommendations": ["Consider extending evening consultation hours for overloaded doctors"]
}}
"""


def fallback_insights(stats: PeriodStats) -> AnalyticsInsights:
    if stats.total_appointments:
        trend = f'{stats.cancelled_appointments} of {stats.total_appointments} appointments were cancelled.'
    else:
        trend = 'No appointments in this period.'

    return AnalyticsInsights(
        peak_hours=[peak.time for peak in stats.peak_hours],
        overloaded_doctors=stats.doctor_workload[:FALLBACK_OVERLOADED_LIMIT],
        doctor_availability=stats.doctor_schedules,
        cancellation_trends=trend,
        recommendations=[],
        generated_by_ai=False,
    )


def generate_insights(llm: LLMClient, period: str, stats: PeriodStats) -> AnalyticsInsights:
    try:
        raw = llm.complete_json(
            build_analytics_prompt(period, stats),
            model=config.ANALYTICS_MODEL,
            temperature=0.3,
        )
    except UpstreamError as exc:
        logger.warning('Analytics insights unavailable, using computed summary: %s', exc.message)
        return fallback_insights(stats)

    insights = parse_reply(raw, AnalyticsInsights)
    if insights is None:
        return fallback_insights(stats)
    insights.generated_by_ai = True
    return insights
