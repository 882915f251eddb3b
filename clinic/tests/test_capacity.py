"""
Session capacity, token numbering and appointment state changes.
"""
import threading
import time

import pytest
from django.db import OperationalError, connection
from django.utils import timezone

from clinic.exceptions import (
    CapacityExceededError,
    ConflictError,
    NotFoundError,
    SessionInactiveError,
    SessionNotFoundError,
    ValidationError,
)
from clinic.models import Appointment, AppointmentSession, AppointmentTransition
from clinic.services.appointments import (
    assign_token,
    can_transition,
    change_status,
    check_in,
    format_token,
    queue_order,
    set_priority,
)
from clinic.services.hospital_settings import update_hospital_settings
from clinic.services.sessions import available_slots, delete_session, ensure_sessions_for_date

pytestmark = pytest.mark.django_db


def test_available_slots_is_clamped_at_zero():
    assert available_slots(AppointmentSession(max_tokens=2, current_tokens=0)) == 2
    assert available_slots(AppointmentSession(max_tokens=2, current_tokens=2)) == 0
    assert available_slots(AppointmentSession(max_tokens=2, current_tokens=5)) == 0


def test_tokens_until_full_then_capacity_error(make_session, patient):
    session = make_session(max_tokens=2)

    first = assign_token(session.id, patient.id)
    session.refresh_from_db()
    assert first.token_number == "T1"
    assert first.status == Appointment.STATUS_SCHEDULED
    assert session.current_tokens == 1

    second = assign_token(session.id, patient.id)
    session.refresh_from_db()
    assert second.token_number == "T2"
    assert session.current_tokens == 2
    assert available_slots(session) == 0

    with pytest.raises(CapacityExceededError):
        assign_token(session.id, patient.id)
    session.refresh_from_db()
    assert session.current_tokens == 2
    assert Appointment.objects.filter(session=session).count() == 2


def test_token_uses_prefix_short_code_and_padding(settings, make_session, patient):
    settings.TOKEN_NUMBER_PADDING = 3
    update_hospital_settings({"tokenPrefix": "A"})
    session = make_session(short_code="M")
    assert assign_token(session.id, patient.id).token_number == "AM001"
    assert format_token("T", 7, padding=0) == "T7"


def test_booking_writes_initial_transition(make_session, patient):
    session = make_session()
    appointment = assign_token(session.id, patient.id, notes="fever")
    history = list(AppointmentTransition.objects.filter(appointment=appointment))
    assert len(history) == 1
    assert history[0].from_status is None
    assert history[0].to_status == Appointment.STATUS_SCHEDULED


def test_missing_inactive_and_unknown_sessions(make_session, patient):
    with pytest.raises(ValidationError):
        assign_token(None, patient.id)
    with pytest.raises(SessionNotFoundError):
        assign_token(999999, patient.id)
    inactive = make_session(short_code="X", is_active=False)
    with pytest.raises(SessionInactiveError):
        assign_token(inactive.id, patient.id)
    inactive.refresh_from_db()
    assert inactive.current_tokens == 0


def test_doctor_defaults_to_session_doctor(make_session, patient, doctor):
    session = make_session(doctor=doctor)
    assert assign_token(session.id, patient.id).doctor_id == doctor.id
    with pytest.raises(ValidationError):
        assign_token(session.id, patient.id, doctor_id=patient.id + 1000)


def test_cancellation_keeps_slot_by_default(make_session, patient):
    session = make_session(max_tokens=1)
    appointment = assign_token(session.id, patient.id)
    change_status(appointment.id, Appointment.STATUS_CANCELLED, reason="patient called")
    session.refresh_from_db()
    assert session.current_tokens == 1
    with pytest.raises(CapacityExceededError):
        assign_token(session.id, patient.id)


def test_cancellation_releases_slot_when_enabled(settings, make_session, patient):
    settings.CANCELLATION_RELEASES_TOKEN = True
    session = make_session(max_tokens=1)
    appointment = assign_token(session.id, patient.id)
    change_status(appointment.id, Appointment.STATUS_NO_SHOW)
    session.refresh_from_db()
    assert session.current_tokens == 0

    again = assign_token(session.id, patient.id)
    # the freed slot gets a new number, never the released one
    assert again.token_number == "T2"


def test_status_transitions(make_session, patient):
    appointment = assign_token(make_session().id, patient.id)
    with pytest.raises(ValidationError):
        change_status(appointment.id, Appointment.STATUS_COMPLETED)

    change_status(appointment.id, Appointment.STATUS_ARRIVED)
    change_status(appointment.id, Appointment.STATUS_IN_CONSULTATION)
    change_status(appointment.id, Appointment.STATUS_COMPLETED)
    appointment.refresh_from_db()
    assert appointment.status == Appointment.STATUS_COMPLETED
    assert appointment.transitions.count() == 4
    assert not can_transition(Appointment.STATUS_COMPLETED, Appointment.STATUS_WAITING)
    with pytest.raises(ConflictError):
        set_priority(appointment.id, Appointment.PRIORITY_HIGH)


def test_queue_order_by_priority_then_token():
    items = [
        Appointment(token_number="T3", priority=Appointment.PRIORITY_NORMAL),
        Appointment(token_number="T1", priority=Appointment.PRIORITY_LOW),
        Appointment(token_number="T2", priority=Appointment.PRIORITY_NORMAL),
        Appointment(token_number="T4", priority=Appointment.PRIORITY_EMERGENCY),
    ]
    assert [a.token_number for a in queue_order(items)] == ["T4", "T2", "T3", "T1"]


def test_padded_tokens_queue_in_issue_order(settings, make_session, patient):
    settings.TOKEN_NUMBER_PADDING = 3
    session = make_session()
    issued = [assign_token(session.id, patient.id) for _ in range(10)]
    assert issued[1].token_number == "T002"
    assert issued[9].token_number == "T010"
    ordered = queue_order(reversed(issued))
    assert [a.token_number for a in ordered] == [a.token_number for a in issued]


def test_check_in_puts_patient_at_the_door_first(make_session, patient, doctor):
    session = make_session(doctor=doctor)
    first = assign_token(session.id, patient.id)
    second = assign_token(session.id, patient.id)

    appointment, position = check_in(second.token_number, doctor.id)
    assert appointment.id == second.id
    assert appointment.at_door is True
    assert position == 1

    _, position = check_in(first.token_number, doctor.id)
    assert position == 1

    with pytest.raises(NotFoundError):
        check_in("T99", doctor.id)


def test_delete_session_rules(make_session, patient):
    empty = make_session(short_code="E")
    assert delete_session(empty.id) is True
    assert not AppointmentSession.objects.filter(id=empty.id).exists()

    busy = make_session(short_code="B")
    appointment = assign_token(busy.id, patient.id)
    with pytest.raises(ConflictError):
        delete_session(busy.id)

    change_status(appointment.id, Appointment.STATUS_CANCELLED)
    assert delete_session(busy.id) is False
    busy.refresh_from_db()
    assert busy.is_active is False


def test_ensure_sessions_is_idempotent():
    today = timezone.localdate()
    created = ensure_sessions_for_date(today)
    assert sorted(s.short_code for s in created) == ["S1", "S2"]
    again = ensure_sessions_for_date(today)
    assert sorted(s.id for s in again) == sorted(s.id for s in created)
    assert AppointmentSession.objects.filter(date=today).count() == 2


@pytest.mark.django_db(transaction=True)
def test_concurrent_bookings_never_exceed_capacity(make_session, patient):
    capacity = 5
    session = make_session(max_tokens=capacity)
    barrier = threading.Barrier(capacity * 2)
    booked, rejected = [], []

    def book():
        barrier.wait()
        try:
            for _ in range(100):
                try:
                    booked.append(assign_token(session.id, patient.id).token_number)
                    return
                except CapacityExceededError:
                    rejected.append(session.id)
                    return
                except OperationalError:
                    # sqlite reports a locked table instead of waiting for it
                    time.sleep(0.01)
        finally:
            connection.close()

    threads = [threading.Thread(target=book) for _ in range(capacity * 2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    session.refresh_from_db()
    assert len(booked) == capacity
    assert len(rejected) == capacity
    assert sorted(booked) == sorted(f"T{n}" for n in range(1, capacity + 1))
    assert session.current_tokens == capacity
    assert session.last_token_number == capacity
    assert Appointment.objects.filter(session=session).count() == capacity
