"""
Billing endpoints.

``preview`` runs the bill computation without saving anything, so the
front desk can show totals while prices are being entered.  ``create``
persists the bill with its priced items.
"""
from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from clinic.exceptions import NotFoundError
from clinic.models import Bill
from clinic.permissions import IsFrontDesk
from clinic.serializers.billing import (
    BillCreateSerializer,
    BillListQuerySerializer,
    BillPreviewSerializer,
    PendingBillingQuerySerializer,
)
from clinic.serializers.common import paginate
from clinic.services import billing as svc
from clinic.services.prescriptions import get_prescription
from clinic.views.prescriptions import prescription_payload


def bill_payload(b: Bill, *, items: bool = True) -> dict:
    data = {
        'id': b.id,
        'billNumber': b.bill_number,
        'patientId': b.patient_id,
        'patientName': b.patient.full_name,
        'prescriptionId': b.prescription_id,
        'appointmentId': b.appointment_id,
        'doctorId': b.doctor_id,
        'consultationFee': b.consultation_fee,
        'totalAmount': b.total_amount,
        'cgstAmount': b.cgst_amount,
        'sgstAmount': b.sgst_amount,
        'discountAmount': b.discount_amount,
        'finalAmount': b.final_amount,
        'paymentMethod': b.payment_method,
        'paymentStatus': b.payment_status,
        'notes': b.notes,
        'createdAt': b.created_at.strftime('%Y-%m-%d %H:%M'),
    }
    if items:
        data['items'] = [
            {
                'itemType': i.item_type,
                'itemName': i.item_name,
                'quantity': i.quantity,
                'unitPrice': i.unit_price,
                'gstRate': i.gst_rate,
                'totalAmount': i.total_amount,
                'gstAmount': i.gst_amount,
            }
            for i in b.items.order_by('id')
        ]
    return data


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsFrontDesk])
def list_bills(request):
    q = BillListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    v = q.validated_data
    qs = Bill.objects.select_related('patient')
    if v.get('patientId'):
        qs = qs.filter(patient_id=v['patientId'])
    if v.get('dateFrom'):
        qs = qs.filter(created_at__date__gte=v['dateFrom'])
    if v.get('dateTo'):
        qs = qs.filter(created_at__date__lte=v['dateTo'])
    if v.get('paymentStatus'):
        qs = qs.filter(payment_status=v['paymentStatus'])
    rows, pagination = paginate(qs.order_by('-created_at', '-id'), v.get('page'), v.get('pageSize'))
    return Response({'ok': True, 'data': [bill_payload(b, items=False) for b in rows], 'pagination': pagination})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsFrontDesk])
def preview_bill(request):
    s = BillPreviewSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    v = s.validated_data
    prescription = get_prescription(v['prescriptionId']) if v.get('prescriptionId') else None
    fee = v.get('consultationFee')
    if fee is None:
        fee = prescription.doctor.consultation_fee if prescription and prescription.doctor else 0
    totals = svc.compute_bill(fee, v.get('items'), v['discountAmount'], prescription=prescription)
    return Response({'ok': True, 'data': totals.as_dict()})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsFrontDesk])
def create_bill(request):
    s = BillCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    v = s.validated_data
    bill = svc.create_bill(
        user=request.user,
        patient_id=v.get('patientId'),
        prescription_id=v.get('prescriptionId'),
        appointment_id=v.get('appointmentId'),
        doctor_id=v.get('doctorId'),
        consultation_fee=v.get('consultationFee'),
        items=v.get('items'),
        discount_amount=v['discountAmount'],
        payment_method=v['paymentMethod'],
        payment_status=v['paymentStatus'],
        notes=v['notes'],
    )
    return Response({'ok': True, 'data': bill_payload(bill)}, status=201)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsFrontDesk])
def bill_detail(request, pk: int):
    bill = Bill.objects.select_related('patient').filter(id=pk).first()
    if not bill:
        raise NotFoundError('bill not found')
    return Response({'ok': True, 'data': bill_payload(bill)})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsFrontDesk])
def pending_billing(request):
    """Prescriptions still waiting for a bill."""
    q = PendingBillingQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    rows = svc.pending_prescriptions(date=q.validated_data.get('date'), doctor_id=q.validated_data.get('doctorId'))
    data = []
    for p in rows:
        row = prescription_payload(p)
        row['consultationFee'] = p.doctor.consultation_fee if p.doctor else 0
        row['pendingItems'] = [
            {'itemType': line.item_type, 'itemName': line.item_name,
             'quantity': line.quantity, 'gstRate': line.gst_rate}
            for line in svc.prescription_bill_items(p)
        ]
        data.append(row)
    return Response({'ok': True, 'data': data})
