from datetime import date

import pytest
from fastapi import HTTPException
from pydantic import ValidationError

from conftest import SCENARIO_DAY, as_actor, make_doctor, make_user
from curabot.models.user import User
from curabot.routes.schedule_routes import (
    AvailabilityRequest,
    get_doctor_availability,
    set_doctor_availability,
    update_doctor_availability,
)
from curabot.services import booking


def test_availability_request_normalizes_times() -> None:
    request = AvailabilityRequest(date=SCENARIO_DAY, start_time='9:00', end_time='12:00')

    assert request.start_time == '09:00'
    assert request.interval == 30


def test_availability_request_rejects_malformed_time() -> None:
    with pytest.raises(ValidationError):
        AvailabilityRequest(date=SCENARIO_DAY, start_time='9', end_time='12:00')


def test_doctor_sets_availability_for_own_profile(db) -> None:
    doctor = make_doctor(db)
    actor = as_actor(db.get(User, doctor.user_id))

    response = set_doctor_availability(
        AvailabilityRequest(date=date(2025, 3, 3), start_time='10:00', end_time='11:00', interval=20),
        current_user=actor,
        db=db,
    )

    assert response.message == 'Availability updated successfully'
    assert response.schedule.doctor_id == doctor.id
    assert [slot.time for slot in response.schedule.available_slots[0].times] == ['10:00', '10:20', '10:40']


def test_set_availability_rejects_inverted_range(db) -> None:
    doctor = make_doctor(db)

    with pytest.raises(HTTPException) as exception_info:
        set_doctor_availability(
            AvailabilityRequest(date=SCENARIO_DAY, start_time='12:00', end_time='09:00'),
            current_user=as_actor(db.get(User, doctor.user_id)),
            db=db,
        )

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == 'Start time must be before end time.'


def test_set_availability_without_doctor_profile_is_not_found(db) -> None:
    doctor_user = make_user(db, role='doctor')

    with pytest.raises(HTTPException) as exception_info:
        set_doctor_availability(
            AvailabilityRequest(date=SCENARIO_DAY, start_time='09:00', end_time='10:00'),
            current_user=as_actor(doctor_user),
            db=db,
        )

    assert exception_info.value.status_code == 404


def test_replace_availability_keeps_booked_slot_visible(db, scenario) -> None:
    doctor = scenario['doctor']
    booking.book_appointment(db, scenario['patient'].id, doctor.id, SCENARIO_DAY, '09:00')

    response = update_doctor_availability(
        AvailabilityRequest(date=SCENARIO_DAY, start_time='15:00', end_time='16:00', interval=60),
        current_user=as_actor(db.get(User, doctor.user_id)),
        db=db,
    )

    times = response.schedule.available_slots[0].times
    assert [(slot.time, slot.is_booked) for slot in times] == [('09:00', True), ('15:00', False)]


def test_public_schedule_lists_booked_flags(db, scenario) -> None:
    doctor = scenario['doctor']
    booking.book_appointment(db, scenario['patient'].id, doctor.id, SCENARIO_DAY, '09:30')

    schedule = get_doctor_availability(doctor.id, db=db)

    assert schedule['available_slots'] == [{
        'date': '2025-01-10',
        'times': [{'time': '09:00', 'is_booked': False}, {'time': '09:30', 'is_booked': True}],
    }]
