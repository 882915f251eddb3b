"""
Patient registration and lookup.

Front desk staff register and search patients; doctors read them when
writing prescriptions.
"""
from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from clinic.models import Patient
from clinic.permissions import IsFrontDesk
from clinic.serializers.common import paginate
from clinic.serializers.patients import PatientCreateSerializer, PatientListQuerySerializer, PatientUpdateSerializer
from clinic.services.patients import get_patient, register_patient, search_patients, update_patient


def patient_payload(p: Patient) -> dict:
    return {
        'id': p.id,
        'firstName': p.first_name,
        'lastName': p.last_name,
        'name': p.full_name,
        'phone': p.phone,
        'email': p.email,
        'gender': p.gender,
        'dateOfBirth': p.date_of_birth.isoformat() if p.date_of_birth else None,
        'address': p.address,
        'createdAt': p.created_at.strftime('%Y-%m-%d %H:%M'),
    }


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsFrontDesk])
def patients(request):
    """GET lists patients (``q`` searches name, phone and email); POST registers one."""
    if request.method == 'POST':
        s = PatientCreateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        patient = register_patient(request.user, **s.model_fields())
        return Response({'ok': True, 'data': patient_payload(patient)}, status=201)

    q = PatientListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    rows, pagination = paginate(
        search_patients((q.validated_data.get('q') or '').strip() or None),
        q.validated_data.get('page'), q.validated_data.get('pageSize'),
    )
    return Response({'ok': True, 'data': [patient_payload(p) for p in rows], 'pagination': pagination})


@api_view(['GET', 'PUT', 'PATCH'])
@permission_classes([IsAuthenticated, IsFrontDesk])
def patient_detail(request, pk: int):
    if request.method == 'GET':
        return Response({'ok': True, 'data': patient_payload(get_patient(pk))})
    s = PatientUpdateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    patient = update_patient(request.user, pk, s.model_fields())
    return Response({'ok': True, 'data': patient_payload(patient)})
