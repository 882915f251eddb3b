"""
Pharmacy catalog and stock endpoints.

Every stock row is returned with its computed classification (status,
alerts and days until expiry) so the client never derives it itself.
"""
from __future__ import annotations

from django.db.models import Q
from django.utils import timezone
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from clinic.models import Medicine, MedicineStock, Supplier
from clinic.permissions import IsPharmacyStaff
from clinic.serializers.common import paginate
from clinic.serializers.pharmacy import (
    CatalogQuerySerializer,
    MedicineCreateSerializer,
    StockAdjustSerializer,
    StockCreateSerializer,
    StockListQuerySerializer,
    StockUpdateSerializer,
    SupplierCreateSerializer,
)
from clinic.services import stock as svc
from clinic.services.audit import log_action


def medicine_payload(m: Medicine) -> dict:
    return {
        'id': m.id,
        'genericName': m.generic_name,
        'brand': m.brand,
        'manufacturer': m.manufacturer,
        'dosageForm': m.dosage_form,
        'strength': m.strength,
        'category': m.category,
        'gstRate': m.gst_rate,
        'isActive': m.is_active,
    }


def supplier_payload(s: Supplier) -> dict:
    return {'id': s.id, 'name': s.name, 'phone': s.phone, 'email': s.email,
            'address': s.address, 'isActive': s.is_active}


def stock_payload(st: MedicineStock, now=None) -> dict:
    data = {
        'id': st.id,
        'medicineId': st.medicine_id,
        'medicineName': st.medicine.generic_name,
        'brand': st.medicine.brand,
        'supplierId': st.supplier_id,
        'supplierName': st.supplier.name,
        'batchNumber': st.batch_number,
        'quantity': st.quantity,
        'availableQuantity': st.available_quantity,
        'purchasePrice': st.purchase_price,
        'mrp': st.mrp,
        'manufacturingDate': st.manufacturing_date.isoformat() if st.manufacturing_date else None,
        'expiryDate': st.expiry_date.isoformat(),
        'location': st.location,
        'isActive': st.is_active,
    }
    data.update(svc.classify(st, now).as_dict())
    return data


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsPharmacyStaff])
def medicines(request):
    if request.method == 'POST':
        s = MedicineCreateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        v = s.validated_data
        medicine = Medicine.objects.create(
            generic_name=v['genericName'], brand=v['brand'], manufacturer=v['manufacturer'],
            dosage_form=v['dosageForm'], strength=v['strength'], category=v['category'], gst_rate=v['gstRate'],
        )
        log_action(user=request.user, action='medicine_create', object_type='medicine', object_id=medicine.id)
        return Response({'ok': True, 'data': medicine_payload(medicine)}, status=201)

    q = CatalogQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    qs = Medicine.objects.filter(is_active=True)
    term = (q.validated_data.get('search') or '').strip()
    if term:
        qs = qs.filter(Q(generic_name__icontains=term) | Q(brand__icontains=term) | Q(category__icontains=term))
    rows, pagination = paginate(qs.order_by('generic_name'), q.validated_data.get('page'),
                                q.validated_data.get('pageSize'))
    return Response({'ok': True, 'data': [medicine_payload(m) for m in rows], 'pagination': pagination})


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsPharmacyStaff])
def suppliers(request):
    if request.method == 'POST':
        s = SupplierCreateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        supplier = Supplier.objects.create(**s.validated_data)
        log_action(user=request.user, action='supplier_create', object_type='supplier', object_id=supplier.id)
        return Response({'ok': True, 'data': supplier_payload(supplier)}, status=201)

    q = CatalogQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    qs = Supplier.objects.filter(is_active=True)
    term = (q.validated_data.get('search') or '').strip()
    if term:
        qs = qs.filter(name__icontains=term)
    rows, pagination = paginate(qs.order_by('name'), q.validated_data.get('page'), q.validated_data.get('pageSize'))
    return Response({'ok': True, 'data': [supplier_payload(x) for x in rows], 'pagination': pagination})


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsPharmacyStaff])
def stock(request):
    if request.method == 'POST':
        s = StockCreateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        v = s.validated_data
        st = svc.add_stock(
            user=request.user,
            medicine_id=v['medicineId'],
            supplier_id=v['supplierId'],
            batch_number=v['batchNumber'],
            quantity=v['quantity'],
            purchase_price=v['purchasePrice'],
            mrp=v['mrp'],
            expiry_date=v['expiryDate'],
            manufacturing_date=v.get('manufacturingDate'),
            location=v['location'],
        )
        return Response({'ok': True, 'data': stock_payload(st)}, status=201)

    q = StockListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    v = q.validated_data
    now = timezone.now()
    qs = svc.stock_queryset(
        medicine_id=v.get('medicineId'),
        supplier_id=v.get('supplierId'),
        low_stock=v['lowStock'],
        near_expiry=v['nearExpiry'],
        expired=v['expired'],
        search=v['search'].strip(),
        now=now,
    )
    rows, pagination = paginate(qs, v.get('page'), v.get('pageSize'))
    return Response({'ok': True, 'data': [stock_payload(st, now) for st in rows], 'pagination': pagination})


@api_view(['GET', 'PUT', 'PATCH'])
@permission_classes([IsAuthenticated, IsPharmacyStaff])
def stock_detail(request, pk: int):
    if request.method != 'GET':
        s = StockUpdateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        svc.update_stock(pk, s.changes(), user=request.user)
    st = MedicineStock.objects.select_related('medicine', 'supplier').filter(id=pk).first()
    if not st:
        return Response({'ok': False, 'error': {'code': 'not_found', 'message': 'stock not found'}}, status=404)
    return Response({'ok': True, 'data': stock_payload(st)})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsPharmacyStaff])
def stock_adjust(request, pk: int):
    s = StockAdjustSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    v = s.validated_data
    svc.adjust_stock(pk, v['adjustmentType'], v['quantity'], reason=v['reason'], user=request.user)
    st = MedicineStock.objects.select_related('medicine', 'supplier').get(id=pk)
    return Response({'ok': True, 'data': stock_payload(st)})
