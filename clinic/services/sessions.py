"""
Appointment session management.

A session is a capacity-bounded block of time on a date.  Sessions are
either created by hand or generated for a date from the session
templates held in the hospital settings.
"""
from __future__ import annotations

import logging
from datetime import date, datetime, time
from typing import Optional, Union

from django.db import IntegrityError, transaction

from clinic.exceptions import ConflictError, SessionNotFoundError, ValidationError
from clinic.models import Appointment, AppointmentSession, User
from clinic.services.audit import log_action
from clinic.services.hospital_settings import session_templates

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ('name', 'short_code', 'start_time', 'end_time', 'max_tokens', 'is_active', 'doctor')


def available_slots(session: AppointmentSession) -> int:
    """Number of tokens the session can still issue, never negative."""
    return max(0, session.max_tokens - session.current_tokens)


def parse_time(value: Union[str, time]) -> time:
    if isinstance(value, time):
        return value
    try:
        return datetime.strptime(str(value).strip(), '%H:%M').time()
    except ValueError:
        raise ValidationError({'time': f'invalid time {value!r}, expected HH:MM'})


def _validate_window(start: time, end: time, max_tokens: int) -> None:
    if end <= start:
        raise ValidationError({'endTime': 'end time must be after start time'})
    if max_tokens < 1:
        raise ValidationError({'maxTokens': 'a session needs at least one token'})


def _resolve_doctor(doctor_id: Optional[int]) -> Optional[User]:
    if doctor_id is None:
        return None
    doctor = User.objects.filter(id=doctor_id, role=User.ROLE_DOCTOR, is_active=True).first()
    if not doctor:
        raise ValidationError({'doctorId': 'doctor must be an active doctor'})
    return doctor


def get_session(session_id) -> AppointmentSession:
    session = AppointmentSession.objects.select_related('doctor').filter(id=session_id).first()
    if not session:
        raise SessionNotFoundError()
    return session


def create_session(*, user: Optional[User] = None, date: date, name: str, short_code: str,
                   start_time, end_time, max_tokens: int, is_active: bool = True,
                   doctor_id: Optional[int] = None) -> AppointmentSession:
    start, end = parse_time(start_time), parse_time(end_time)
    _validate_window(start, end, max_tokens)
    doctor = _resolve_doctor(doctor_id)
    if AppointmentSession.objects.filter(date=date, short_code=short_code).exists():
        raise ConflictError(f'a session with short code {short_code} already exists on {date}')
    try:
        with transaction.atomic():
            session = AppointmentSession.objects.create(
                date=date, name=name, short_code=short_code, start_time=start, end_time=end,
                max_tokens=max_tokens, is_active=is_active, doctor=doctor,
            )
    except IntegrityError as exc:
        raise ConflictError(f'a session with short code {short_code} already exists on {date}') from exc
    log_action(user=user, action='session_create', object_type='session', object_id=session.id,
               detail={'date': str(date), 'shortCode': short_code})
    return session


def update_session(session_id, changes: dict, *, user: Optional[User] = None) -> AppointmentSession:
    with transaction.atomic():
        session = AppointmentSession.objects.select_for_update().filter(id=session_id).first()
        if not session:
            raise SessionNotFoundError()
        changes = dict(changes)
        if 'doctor_id' in changes:
            changes['doctor'] = _resolve_doctor(changes.pop('doctor_id'))
        for key in ('start_time', 'end_time'):
            if key in changes:
                changes[key] = parse_time(changes[key])
        fields = [f for f in UPDATABLE_FIELDS if f in changes]
        for name in fields:
            setattr(session, name, changes[name])
        _validate_window(session.start_time, session.end_time, session.max_tokens)
        if 'short_code' in fields:
            clash = AppointmentSession.objects.filter(date=session.date, short_code=session.short_code)
            if clash.exclude(id=session.id).exists():
                raise ConflictError(f'a session with short code {session.short_code} already exists on {session.date}')
        if fields:
            session.save(update_fields=fields + ['updated_at'])
    if fields:
        log_action(user=user, action='session_update', object_type='session', object_id=session.id,
                   detail={'fields': fields})
    return session


def delete_session(session_id, *, user: Optional[User] = None) -> bool:
    """Delete a session that holds no live appointments.

    Returns ``True`` when the row was removed.  A session that only has
    cancelled or completed appointments keeps its history and is
    deactivated instead, returning ``False``.
    """
    with transaction.atomic():
        session = AppointmentSession.objects.select_for_update().filter(id=session_id).first()
        if not session:
            raise SessionNotFoundError()
        appointments = Appointment.objects.filter(session=session)
        live = appointments.exclude(status__in=[Appointment.STATUS_CANCELLED, Appointment.STATUS_COMPLETED])
        if live.exists():
            raise ConflictError('session has active appointments and cannot be deleted')
        if appointments.exists():
            session.is_active = False
            session.save(update_fields=['is_active', 'updated_at'])
            deleted = False
        else:
            session.delete()
            deleted = True
    log_action(user=user, action='session_delete' if deleted else 'session_deactivate',
               object_type='session', object_id=int(session_id))
    return deleted


def ensure_sessions_for_date(target_date: date, *, user: Optional[User] = None) -> list[AppointmentSession]:
    """Create the day's sessions from the active templates.

    Existing sessions with a template's short code get the template's
    name, times and capacity.  Sessions are never removed here.
    """
    sessions = []
    with transaction.atomic():
        for tpl in session_templates(active_only=True):
            short_code = str(tpl.get('shortCode') or '').strip()
            if not short_code:
                logger.warning('skipping session template without short code: %s', tpl)
                continue
            values = {
                'name': tpl.get('name') or short_code,
                'start_time': parse_time(tpl.get('startTime', '09:00')),
                'end_time': parse_time(tpl.get('endTime', '13:00')),
                'max_tokens': int(tpl.get('maxTokens') or 50),
                'is_active': True,
            }
            session, created = AppointmentSession.objects.update_or_create(
                date=target_date, short_code=short_code, defaults=values,
            )
            if created:
                logger.info('created session %s for %s', short_code, target_date)
            sessions.append(session)
    if sessions:
        log_action(user=user, action='sessions_ensure', object_type='session', object_id=None,
                   detail={'date': str(target_date), 'count': len(sessions)})
    return sessions


def sessions_for_date(target_date: date, *, include_inactive: bool = False):
    qs = AppointmentSession.objects.select_related('doctor').filter(date=target_date)
    if not include_inactive:
        qs = qs.filter(is_active=True)
    return qs.order_by('start_time', 'short_code')

