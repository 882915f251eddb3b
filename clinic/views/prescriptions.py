from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from clinic.models import Prescription
from clinic.permissions import IsDoctor, IsFrontDesk
from clinic.serializers.common import paginate
from clinic.serializers.prescriptions import (
    PrescriptionCreateSerializer,
    PrescriptionListQuerySerializer,
    PrescriptionUpdateSerializer,
)
from clinic.services import prescriptions as svc


def prescription_payload(p: Prescription) -> dict:
    return {
        'id': p.id,
        'patientId': p.patient_id,
        'patientName': p.patient.full_name,
        'doctorId': p.doctor_id,
        'doctorName': (p.doctor.get_full_name() or p.doctor.username) if p.doctor else '',
        'appointmentId': p.appointment_id,
        'symptoms': p.symptoms,
        'diagnosis': p.diagnosis,
        'notes': p.notes,
        'medicines': p.medicines,
        'labTests': p.lab_tests,
        'therapies': p.therapies,
        'status': p.status,
        'billed': hasattr(p, 'bill'),
        'createdAt': p.created_at.strftime('%Y-%m-%d %H:%M'),
    }


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsFrontDesk])
def list_prescriptions(request):
    q = PrescriptionListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    v = q.validated_data
    qs = Prescription.objects.select_related('patient', 'doctor', 'bill')
    if v.get('patientId'):
        qs = qs.filter(patient_id=v['patientId'])
    if v.get('doctorId'):
        qs = qs.filter(doctor_id=v['doctorId'])
    if v.get('status'):
        qs = qs.filter(status=v['status'])
    rows, pagination = paginate(qs.order_by('-created_at'), v.get('page'), v.get('pageSize'))
    return Response({'ok': True, 'data': [prescription_payload(p) for p in rows], 'pagination': pagination})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsDoctor])
def create_prescription(request):
    s = PrescriptionCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    v = s.validated_data
    prescription = svc.create_prescription(
        request.user,
        patient_id=v['patientId'],
        doctor_id=v.get('doctorId'),
        appointment_id=v.get('appointmentId'),
        **s.model_fields(),
    )
    return Response({'ok': True, 'data': prescription_payload(prescription)}, status=201)


@api_view(['GET', 'PUT', 'PATCH'])
@permission_classes([IsAuthenticated, IsFrontDesk])
def prescription_detail(request, pk: int):
    if request.method == 'GET':
        return Response({'ok': True, 'data': prescription_payload(svc.get_prescription(pk))})
    if not IsDoctor().has_permission(request, None):
        return Response({'ok': False, 'error': {'code': 'permission_denied',
                                                'message': 'only doctors can change prescriptions'}}, status=403)
    s = PrescriptionUpdateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    svc.update_prescription(request.user, pk, s.model_fields())
    return Response({'ok': True, 'data': prescription_payload(svc.get_prescription(pk))})
