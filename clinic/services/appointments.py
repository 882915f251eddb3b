"""
Token assignment and the appointment queue.

Booking issues the next token of a session.  The capacity check and
the counter increment are a single conditional UPDATE, so two
concurrent bookings can never both take the last slot.  Token numbers
come from a monotonic per-session sequence and are never reused.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Iterable, Optional

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone

from clinic.exceptions import (
    CapacityExceededError,
    ConflictError,
    NotFoundError,
    SessionInactiveError,
    SessionNotFoundError,
    ValidationError,
)
from clinic.models import Appointment, AppointmentSession, AppointmentTransition, Patient, User
from clinic.services.audit import log_action
from clinic.services.hospital_settings import token_prefix

logger = logging.getLogger(__name__)

QUEUE_GROUP = 'queue'

PRIORITY_RANK = {
    Appointment.PRIORITY_EMERGENCY: 0,
    Appointment.PRIORITY_HIGH: 1,
    Appointment.PRIORITY_NORMAL: 2,
    Appointment.PRIORITY_LOW: 3,
}

ALLOWED_TRANSITIONS = {
    Appointment.STATUS_SCHEDULED: {
        Appointment.STATUS_ARRIVED, Appointment.STATUS_WAITING, Appointment.STATUS_IN_CONSULTATION,
        Appointment.STATUS_CANCELLED, Appointment.STATUS_NO_SHOW,
    },
    Appointment.STATUS_ARRIVED: {
        Appointment.STATUS_WAITING, Appointment.STATUS_IN_CONSULTATION,
        Appointment.STATUS_CANCELLED, Appointment.STATUS_NO_SHOW,
    },
    Appointment.STATUS_WAITING: {
        Appointment.STATUS_IN_CONSULTATION, Appointment.STATUS_CANCELLED, Appointment.STATUS_NO_SHOW,
    },
    Appointment.STATUS_IN_CONSULTATION: {Appointment.STATUS_COMPLETED, Appointment.STATUS_CANCELLED},
    Appointment.STATUS_COMPLETED: set(),
    Appointment.STATUS_CANCELLED: set(),
    Appointment.STATUS_NO_SHOW: set(),
}

RELEASING_STATUSES = (Appointment.STATUS_CANCELLED, Appointment.STATUS_NO_SHOW)


def can_transition(current: str, new: str) -> bool:
    """Return True if an appointment may move from ``current`` to ``new``."""
    return new in ALLOWED_TRANSITIONS.get(current, set())


def format_token(prefix: str, number: int, padding: Optional[int] = None) -> str:
    padding = settings.TOKEN_NUMBER_PADDING if padding is None else padding
    return f"{prefix}{number:0{padding}d}" if padding else f"{prefix}{number}"


def queue_order(appointments: Iterable[Appointment]) -> list[Appointment]:
    """Staff queue order: priority rank, then token number as text.

    Text order matches issue order only while every token in the
    session has the same width, see ``TOKEN_NUMBER_PADDING``.
    """
    return sorted(
        appointments,
        key=lambda a: (PRIORITY_RANK.get(a.priority, len(PRIORITY_RANK)), a.token_number),
    )


def broadcast_queue_update(appointment: Appointment, event: str) -> None:
    channel_layer = get_channel_layer()
    if channel_layer is None:
        return
    async_to_sync(channel_layer.group_send)(QUEUE_GROUP, {
        'type': 'queue.update',
        'event': event,
        'appointmentId': appointment.id,
        'sessionId': appointment.session_id,
        'tokenNumber': appointment.token_number,
        'status': appointment.status,
        'atDoor': appointment.at_door,
        'ts': timezone.now().isoformat(),
    })


def _session_id(value) -> int:
    if value in (None, ''):
        raise ValidationError({'sessionId': 'session id is required'})
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError({'sessionId': 'session id must be an integer'})


def assign_token(session_id, patient_id, *, user: Optional[User] = None,
                 appointment_type: str = Appointment.TYPE_CONSULTATION,
                 priority: str = Appointment.PRIORITY_NORMAL, doctor_id: Optional[int] = None,
                 notes: str = '', date_time: Optional[datetime] = None) -> Appointment:
    """Book the next token of a session for a patient.

    Raises ``SessionNotFoundError`` or ``SessionInactiveError`` for a bad
    session and ``CapacityExceededError`` once every token is issued.
    The appointment starts in SCHEDULED.
    """
    session_id = _session_id(session_id)
    if priority not in PRIORITY_RANK:
        raise ValidationError({'priority': f'unknown priority {priority}'})
    if appointment_type not in dict(Appointment.TYPE_CHOICES):
        raise ValidationError({'type': f'unknown appointment type {appointment_type}'})
    patient = Patient.objects.filter(id=patient_id).first()
    if not patient:
        raise NotFoundError('patient not found')
    doctor = None
    if doctor_id is not None:
        doctor = User.objects.filter(id=doctor_id, role=User.ROLE_DOCTOR, is_active=True).first()
        if not doctor:
            raise ValidationError({'doctorId': 'doctor must be an active doctor'})
    prefix = token_prefix()

    try:
        with transaction.atomic():
            session = AppointmentSession.objects.select_for_update().filter(id=session_id).first()
            if session is None:
                raise SessionNotFoundError()
            if not session.is_active:
                raise SessionInactiveError()
            taken = (
                AppointmentSession.objects
                .filter(id=session.id, is_active=True, current_tokens__lt=F('max_tokens'))
                .update(current_tokens=F('current_tokens') + 1, last_token_number=F('last_token_number') + 1)
            )
            if not taken:
                logger.warning('session %s is full (%s tokens)', session.id, session.max_tokens)
                raise CapacityExceededError()
            session.refresh_from_db(fields=['current_tokens', 'last_token_number'])
            token = format_token(f'{prefix}{session.short_code}', session.last_token_number)
            if date_time is None:
                date_time = timezone.make_aware(datetime.combine(session.date, session.start_time))
            appointment = Appointment.objects.create(
                patient=patient,
                doctor=doctor or session.doctor,
                session=session,
                date_time=date_time,
                token_number=token,
                priority=priority,
                appointment_type=appointment_type,
                notes=notes,
                created_by=user,
            )
            AppointmentTransition.objects.create(
                appointment=appointment,
                from_status=None,
                to_status=Appointment.STATUS_SCHEDULED,
                operator=user,
                reason='booked',
            )
            transaction.on_commit(lambda: broadcast_queue_update(appointment, 'booked'))
    except IntegrityError as exc:
        raise ConflictError('token was issued twice for this session, please retry') from exc

    logger.info('token %s issued in session %s to patient %s (%d/%d)', token, session.id, patient.id,
                session.current_tokens, session.max_tokens)
    log_action(user=user, action='appointment_book', object_type='appointment', object_id=appointment.id,
               detail={'token': token, 'sessionId': session.id})
    return appointment


def change_status(appointment_id, new_status: str, *, user: Optional[User] = None,
                  reason: str = '') -> Appointment:
    """Move an appointment to ``new_status`` and record the transition."""
    if new_status not in ALLOWED_TRANSITIONS:
        raise ValidationError({'status': f'unknown status {new_status}'})
    with transaction.atomic():
        appointment = Appointment.objects.select_for_update().filter(id=appointment_id).first()
        if not appointment:
            raise NotFoundError('appointment not found')
        old_status = appointment.status
        if not can_transition(old_status, new_status):
            raise ValidationError({'status': f'cannot move from {old_status} to {new_status}'})
        appointment.status = new_status
        appointment.save(update_fields=['status', 'updated_at'])
        AppointmentTransition.objects.create(
            appointment=appointment,
            from_status=old_status,
            to_status=new_status,
            operator=user,
            reason=reason or 'status update',
        )
        if new_status in RELEASING_STATUSES and settings.CANCELLATION_RELEASES_TOKEN:
            AppointmentSession.objects.filter(id=appointment.session_id, current_tokens__gt=0).update(
                current_tokens=F('current_tokens') - 1
            )
        transaction.on_commit(lambda: broadcast_queue_update(appointment, 'status'))
    log_action(user=user, action='appointment_status', object_type='appointment', object_id=appointment.id,
               detail={'from': old_status, 'to': new_status, 'reason': reason})
    return appointment


def set_priority(appointment_id, priority: str, *, user: Optional[User] = None) -> Appointment:
    if priority not in PRIORITY_RANK:
        raise ValidationError({'priority': f'unknown priority {priority}'})
    appointment = Appointment.objects.filter(id=appointment_id).first()
    if not appointment:
        raise NotFoundError('appointment not found')
    if appointment.status not in Appointment.ACTIVE_STATUSES:
        raise ConflictError('priority can only change while the appointment is active')
    appointment.priority = priority
    appointment.save(update_fields=['priority', 'updated_at'])
    log_action(user=user, action='appointment_priority', object_type='appointment', object_id=appointment.id,
               detail={'priority': priority})
    transaction.on_commit(lambda: broadcast_queue_update(appointment, 'priority'))
    return appointment


def session_queue(session_id) -> list[Appointment]:
    """Active appointments of a session in staff queue order."""
    items = (
        Appointment.objects.select_related('patient', 'doctor')
        .filter(session_id=session_id, status__in=Appointment.ACTIVE_STATUSES)
    )
    return queue_order(items)


def check_in(token_number: str, doctor_id: int, *, user: Optional[User] = None) -> tuple[Appointment, int]:
    """Mark the patient holding ``token_number`` as waiting at the doctor's door.

    Looks for an active appointment from today up to two days ahead and
    returns it with its 1-based place in the doctor's line, where
    patients already at the door come first.
    """
    today = timezone.localdate()
    appointment = (
        Appointment.objects.select_related('session')
        .filter(
            token_number=token_number,
            doctor_id=doctor_id,
            session__date__range=(today, today + timedelta(days=2)),
            status__in=Appointment.ACTIVE_STATUSES,
        )
        .order_by('session__date')
        .first()
    )
    if not appointment:
        raise NotFoundError('no active appointment with this token for the doctor')

    with transaction.atomic():
        appointment = Appointment.objects.select_for_update().get(id=appointment.id)
        if not appointment.at_door:
            appointment.at_door = True
            appointment.at_door_at = timezone.now()
            appointment.save(update_fields=['at_door', 'at_door_at', 'updated_at'])
        transaction.on_commit(lambda: broadcast_queue_update(appointment, 'at_door'))

    line = Appointment.objects.filter(
        session_id=appointment.session_id,
        doctor_id=doctor_id,
        status__in=Appointment.ACTIVE_STATUSES,
    )
    ordered = sorted(queue_order(line), key=lambda a: not a.at_door)
    position = next(i for i, a in enumerate(ordered, start=1) if a.id == appointment.id)
    log_action(user=user, action='appointment_check_in', object_type='appointment',
               object_id=appointment.id, detail={'token': token_number, 'position': position})
    return appointment, position
