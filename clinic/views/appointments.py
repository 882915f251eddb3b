"""
Appointment booking, queue status and door check-in endpoints.

Booking hands out the next token of a session.  Status changes follow
the appointment state machine and every change is kept in the
appointment's transition history.
"""
from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes, throttle_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from clinic.models import Appointment
from clinic.permissions import IsFrontDesk
from clinic.serializers.appointments import (
    AppointmentCreateSerializer,
    AppointmentListQuerySerializer,
    AppointmentPrioritySerializer,
    AppointmentStatusSerializer,
    CheckInSerializer,
)
from clinic.serializers.common import paginate
from clinic.services import appointments as svc
from clinic.exceptions import NotFoundError
from clinic.throttling import BookingRateThrottle


def appointment_payload(a: Appointment, *, history: bool = False) -> dict:
    data = {
        'id': a.id,
        'tokenNumber': a.token_number,
        'status': a.status,
        'priority': a.priority,
        'type': a.appointment_type,
        'notes': a.notes,
        'patientId': a.patient_id,
        'patientName': a.patient.full_name,
        'doctorId': a.doctor_id,
        'sessionId': a.session_id,
        'dateTime': a.date_time.strftime('%Y-%m-%d %H:%M'),
        'atDoor': a.at_door,
        'atDoorAt': a.at_door_at.strftime('%Y-%m-%d %H:%M') if a.at_door_at else None,
    }
    if history:
        data['transitionHistory'] = [
            {
                'from': t.from_status,
                'to': t.to_status,
                'operator': t.operator.username if t.operator else '',
                'timestamp': t.timestamp.strftime('%Y-%m-%d %H:%M'),
                'reason': t.reason,
            }
            for t in a.transitions.select_related('operator').order_by('timestamp', 'id')
        ]
    return data


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsFrontDesk])
def list_appointments(request):
    q = AppointmentListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    v = q.validated_data
    qs = Appointment.objects.select_related('patient', 'session')
    if v.get('date'):
        qs = qs.filter(session__date=v['date'])
    if v.get('sessionId'):
        qs = qs.filter(session_id=v['sessionId'])
    if v.get('doctorId'):
        qs = qs.filter(doctor_id=v['doctorId'])
    if v.get('patientId'):
        qs = qs.filter(patient_id=v['patientId'])
    if v.get('status'):
        qs = qs.filter(status=v['status'])
    rows, pagination = paginate(qs.order_by('-date_time', 'token_number'), v.get('page'), v.get('pageSize'))
    return Response({'ok': True, 'data': [appointment_payload(a) for a in rows], 'pagination': pagination})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsFrontDesk])
@throttle_classes([BookingRateThrottle])
def book_appointment(request):
    """Issue the next token of a session to a patient."""
    s = AppointmentCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    v = s.validated_data
    appointment = svc.assign_token(
        v['sessionId'],
        v['patientId'],
        user=request.user,
        appointment_type=v['type'],
        priority=v['priority'],
        doctor_id=v.get('doctorId'),
        notes=v['notes'],
    )
    return Response({'ok': True, 'data': appointment_payload(appointment)}, status=201)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsFrontDesk])
def appointment_detail(request, pk: int):
    appointment = Appointment.objects.select_related('patient').filter(id=pk).first()
    if not appointment:
        raise NotFoundError('appointment not found')
    return Response({'ok': True, 'data': appointment_payload(appointment, history=True)})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsFrontDesk])
def appointment_update_status(request, pk: int):
    s = AppointmentStatusSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    appointment = svc.change_status(pk, s.validated_data['status'], user=request.user,
                                    reason=s.validated_data['reason'])
    return Response({'ok': True, 'newStatus': appointment.status})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsFrontDesk])
def appointment_set_priority(request, pk: int):
    s = AppointmentPrioritySerializer(data=request.data)
    s.is_valid(raise_exception=True)
    appointment = svc.set_priority(pk, s.validated_data['priority'], user=request.user)
    return Response({'ok': True, 'newPriority': appointment.priority})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsFrontDesk])
def appointment_check_in(request):
    """Mark a token holder as waiting at the doctor's door and return their place."""
    s = CheckInSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    appointment, position = svc.check_in(s.validated_data['tokenNumber'], s.validated_data['doctorId'],
                                         user=request.user)
    return Response({
        'ok': True,
        'data': {
            'appointmentId': appointment.id,
            'tokenNumber': appointment.token_number,
            'status': appointment.status,
            'position': position,
        },
    })
