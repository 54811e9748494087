import json

import pytest
from fastapi import HTTPException
from pydantic import ValidationError

from conftest import SCENARIO_DAY, FakeLLM, as_actor
from curabot.core.errors import UpstreamError
from curabot.routes.admin_routes import (
    ManageAppointmentRequest,
    ManualBookingRequest,
    get_analytics,
    get_dashboard,
    get_doctor_schedule,
    list_patients,
    manage_appointment,
    manually_schedule_appointment,
)
from curabot.services import booking
from curabot.services.slot_locator import locate_slot


def test_manage_request_requires_target_for_reschedule() -> None:
    with pytest.raises(ValidationError):
        ManageAppointmentRequest(action='reschedule', new_date=SCENARIO_DAY)


def test_manage_request_rejects_unknown_action() -> None:
    with pytest.raises(ValidationError):
        ManageAppointmentRequest(action='archive')


def test_dashboard_reports_counts(db, scenario) -> None:
    booking.book_appointment(db, scenario['patient'].id, scenario['doctor'].id, SCENARIO_DAY, '09:00')

    counts = get_dashboard(current_user=as_actor(scenario['admin']), db=db)

    assert counts['total_patients'] == 2
    assert counts['total_doctors'] == 1
    assert counts['confirmed_appointments'] == 1


def test_list_patients_excludes_staff(db, scenario) -> None:
    patients = list_patients(current_user=as_actor(scenario['admin']), db=db)

    assert [patient.name for patient in patients] == ['Alice', 'Bob']


def test_manual_booking_for_patient(db, scenario) -> None:
    response = manually_schedule_appointment(
        ManualBookingRequest(
            patient_id=scenario['patient'].id,
            doctor_id=scenario['doctor'].id,
            date=SCENARIO_DAY,
            time='9:30',
            status='pending',
        ),
        current_user=as_actor(scenario['admin']),
        db=db,
    )

    assert response.appointment.status == 'pending'
    assert response.appointment.time == '09:30'
    assert locate_slot(db, scenario['doctor'].id, SCENARIO_DAY, '09:30').slot.is_booked is True


def test_manual_booking_rejects_non_patient(db, scenario) -> None:
    with pytest.raises(HTTPException) as exception_info:
        manually_schedule_appointment(
            ManualBookingRequest(
                patient_id=scenario['admin'].id,
                doctor_id=scenario['doctor'].id,
                date=SCENARIO_DAY,
                time='09:30',
            ),
            current_user=as_actor(scenario['admin']),
            db=db,
        )

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == 'Invalid patient ID'


def test_manage_appointment_reschedule_then_cancel(db, scenario) -> None:
    admin = as_actor(scenario['admin'])
    appointment = booking.book_appointment(db, scenario['patient'].id, scenario['doctor'].id, SCENARIO_DAY, '09:00')

    moved = manage_appointment(
        appointment.id,
        ManageAppointmentRequest(action='reschedule', new_date=SCENARIO_DAY, new_time='09:30'),
        current_user=admin,
        db=db,
    )
    cancelled = manage_appointment(appointment.id, ManageAppointmentRequest(action='cancel'), current_user=admin, db=db)

    assert moved.message == 'Appointment rescheduled successfully'
    assert moved.appointment.time == '09:30'
    assert cancelled.message == 'Appointment cancelled successfully'
    assert locate_slot(db, scenario['doctor'].id, SCENARIO_DAY, '09:30').slot.is_booked is False


def test_manage_appointment_reschedule_onto_taken_slot_is_conflict(db, scenario) -> None:
    doctor_id = scenario['doctor'].id
    first = booking.book_appointment(db, scenario['patient'].id, doctor_id, SCENARIO_DAY, '09:00')
    booking.book_appointment(db, scenario['other_patient'].id, doctor_id, SCENARIO_DAY, '09:30')

    with pytest.raises(HTTPException) as exception_info:
        manage_appointment(
            first.id,
            ManageAppointmentRequest(action='reschedule', new_date=SCENARIO_DAY, new_time='09:30'),
            current_user=as_actor(scenario['admin']),
            db=db,
        )

    assert exception_info.value.status_code == 409


def test_doctor_schedule_view(db, scenario) -> None:
    doctor = scenario['doctor']
    booking.book_appointment(db, scenario['patient'].id, doctor.id, SCENARIO_DAY, '09:00')

    response = get_doctor_schedule(doctor.id, current_user=as_actor(scenario['admin']), db=db)

    assert response.doctor.name == 'Dr. Rao'
    assert len(response.schedule['available_slots'][0]['times']) == 2
    assert [item.patient_name for item in response.appointments] == ['Alice']


def test_analytics_rejects_unknown_period(db, scenario) -> None:
    with pytest.raises(HTTPException) as exception_info:
        get_analytics(period='decade', current_user=as_actor(scenario['admin']), db=db, llm=FakeLLM())

    assert exception_info.value.status_code == 400


def test_analytics_falls_back_when_model_is_down(db, scenario) -> None:
    llm = FakeLLM(error=UpstreamError('down'))

    result = get_analytics(period='month', current_user=as_actor(scenario['admin']), db=db, llm=llm)

    assert result['period'] == 'month'
    assert result['ai_insights']['generated_by_ai'] is False
    assert result['stats']['total_appointments'] == result['total_appointments']


def test_analytics_returns_model_insights(db, scenario) -> None:
    llm = FakeLLM(json.dumps({'peakHours': ['10AM'], 'recommendations': ['Hire a locum']}))

    result = get_analytics(period='week', current_user=as_actor(scenario['admin']), db=db, llm=llm)

    assert result['ai_insights']['peak_hours'] == ['10AM']
    assert result['ai_insights']['recommendations'] == ['Hire a locum']
    assert result['ai_insights']['generated_by_ai'] is True
