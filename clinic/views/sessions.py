"""
Appointment session endpoints.

Any staff member can read sessions and their live availability;
administrators create, change and remove them, or generate a day's
sessions from the hospital's session templates.
"""
from __future__ import annotations

from django.utils import timezone
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from clinic.models import AppointmentSession
from clinic.permissions import IsAdminOrReadOnly, IsAdminRole
from clinic.serializers.sessions import (
    EnsureSessionsSerializer,
    SessionCreateSerializer,
    SessionListQuerySerializer,
    SessionUpdateSerializer,
)
from clinic.services import sessions as svc
from clinic.services.appointments import session_queue


def session_payload(s: AppointmentSession) -> dict:
    return {
        'id': s.id,
        'date': s.date.isoformat(),
        'name': s.name,
        'shortCode': s.short_code,
        'startTime': s.start_time.strftime('%H:%M'),
        'endTime': s.end_time.strftime('%H:%M'),
        'maxTokens': s.max_tokens,
        'currentTokens': s.current_tokens,
        'availableSlots': svc.available_slots(s),
        'isActive': s.is_active,
        'doctor': {'id': s.doctor.id, 'name': s.doctor.get_full_name() or s.doctor.username} if s.doctor else None,
    }


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsAdminOrReadOnly])
def sessions(request):
    if request.method == 'POST':
        s = SessionCreateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        v = s.validated_data
        session = svc.create_session(
            user=request.user,
            date=v['date'],
            name=v['name'],
            short_code=v['shortCode'],
            start_time=v['startTime'],
            end_time=v['endTime'],
            max_tokens=v['maxTokens'],
            is_active=v['isActive'],
            doctor_id=v.get('doctorId'),
        )
        return Response({'ok': True, 'data': session_payload(session)}, status=201)

    q = SessionListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    day = q.validated_data.get('date') or timezone.localdate()
    rows = svc.sessions_for_date(day, include_inactive=q.validated_data['includeInactive'])
    return Response({'ok': True, 'date': day.isoformat(), 'data': [session_payload(s) for s in rows]})


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsAdminOrReadOnly])
def session_detail(request, pk: int):
    if request.method == 'GET':
        return Response({'ok': True, 'data': session_payload(svc.get_session(pk))})
    if request.method == 'DELETE':
        deleted = svc.delete_session(pk, user=request.user)
        return Response({'ok': True, 'deleted': deleted, 'deactivated': not deleted})
    s = SessionUpdateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    session = svc.update_session(pk, s.changes(), user=request.user)
    return Response({'ok': True, 'data': session_payload(session)})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def session_queue_view(request, pk: int):
    """Active appointments of the session, emergency first, then by token."""
    session = svc.get_session(pk)
    return Response({
        'ok': True,
        'session': session_payload(session),
        'data': [
            {
                'id': a.id,
                'tokenNumber': a.token_number,
                'patientId': a.patient_id,
                'patientName': a.patient.full_name,
                'priority': a.priority,
                'status': a.status,
                'atDoor': a.at_door,
                'doctorId': a.doctor_id,
            }
            for a in session_queue(session.id)
        ],
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def ensure_sessions(request):
    s = EnsureSessionsSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    day = s.validated_data.get('date') or timezone.localdate()
    rows = svc.ensure_sessions_for_date(day, user=request.user)
    return Response({'ok': True, 'date': day.isoformat(), 'data': [session_payload(r) for r in rows]})
