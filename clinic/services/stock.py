"""
Pharmacy stock: batch status classification and stock movements.

The status of a batch is derived from its expiry date and available
quantity each time it is read.  Several conditions may hold at once,
so ``classify`` reports every alert plus one primary status chosen by
precedence.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional

from django.conf import settings
from django.db import IntegrityError, models, transaction
from django.db.models import Q
from django.utils import timezone

from clinic.exceptions import ConflictError, NotFoundError, ValidationError
from clinic.models import Medicine, MedicineStock, Supplier, User
from clinic.services.audit import log_action

logger = logging.getLogger(__name__)


class StockStatus(models.TextChoices):
    NORMAL = 'NORMAL', 'Normal'
    LOW_STOCK = 'LOW_STOCK', 'Low stock'
    NEAR_EXPIRY = 'NEAR_EXPIRY', 'Near expiry'
    OUT_OF_STOCK = 'OUT_OF_STOCK', 'Out of stock'
    EXPIRED = 'EXPIRED', 'Expired'


class StockAlert(models.TextChoices):
    EXPIRED = 'EXPIRED', 'Expired'
    EXPIRING_SOON = 'EXPIRING_SOON', 'Expiring soon'
    OUT_OF_STOCK = 'OUT_OF_STOCK', 'Out of stock'
    LOW_STOCK = 'LOW_STOCK', 'Low stock'


ADJUST_INCREASE = 'INCREASE'
ADJUST_DECREASE = 'DECREASE'
ADJUST_SET = 'SET'
ADJUSTMENT_TYPES = (ADJUST_INCREASE, ADJUST_DECREASE, ADJUST_SET)


@dataclass(frozen=True)
class StockClassification:
    status: StockStatus
    alerts: tuple
    days_until_expiry: int

    def as_dict(self) -> dict:
        return {
            'status': self.status.value,
            'alerts': [a.value for a in self.alerts],
            'daysUntilExpiry': self.days_until_expiry,
        }


def classify(stock: Any, now: Optional[datetime] = None, *, low_threshold: Optional[int] = None,
             near_expiry_days: Optional[int] = None) -> StockClassification:
    """Classify a batch from its ``expiry_date`` and ``available_quantity``.

    Precedence of the primary status: EXPIRED, OUT_OF_STOCK,
    NEAR_EXPIRY, LOW_STOCK, NORMAL.  Alerts list the expiry alert
    first, then the quantity alert.
    """
    now = now or timezone.now()
    low_threshold = settings.STOCK_LOW_THRESHOLD if low_threshold is None else low_threshold
    near_expiry_days = settings.STOCK_NEAR_EXPIRY_DAYS if near_expiry_days is None else near_expiry_days

    expiry = stock.expiry_date
    available = stock.available_quantity
    days_until_expiry = math.ceil((expiry - now).total_seconds() / 86400)

    expired = expiry <= now
    expiring_soon = not expired and expiry <= now + timedelta(days=near_expiry_days)
    out_of_stock = available == 0
    low_stock = not out_of_stock and available <= low_threshold

    alerts = []
    if expired:
        alerts.append(StockAlert.EXPIRED)
    elif expiring_soon:
        alerts.append(StockAlert.EXPIRING_SOON)
    if out_of_stock:
        alerts.append(StockAlert.OUT_OF_STOCK)
    elif low_stock:
        alerts.append(StockAlert.LOW_STOCK)

    if expired:
        status = StockStatus.EXPIRED
    elif out_of_stock:
        status = StockStatus.OUT_OF_STOCK
    elif expiring_soon:
        status = StockStatus.NEAR_EXPIRY
    elif low_stock:
        status = StockStatus.LOW_STOCK
    else:
        status = StockStatus.NORMAL
    return StockClassification(status=status, alerts=tuple(alerts), days_until_expiry=days_until_expiry)


def stock_queryset(*, medicine_id=None, supplier_id=None, low_stock=False, near_expiry=False,
                   expired=False, search: str = '', include_inactive=False, now=None):
    now = now or timezone.now()
    qs = MedicineStock.objects.select_related('medicine', 'supplier')
    if not include_inactive:
        qs = qs.filter(is_active=True)
    if medicine_id:
        qs = qs.filter(medicine_id=medicine_id)
    if supplier_id:
        qs = qs.filter(supplier_id=supplier_id)
    if low_stock:
        qs = qs.filter(available_quantity__lte=settings.STOCK_LOW_THRESHOLD)
    if near_expiry:
        qs = qs.filter(expiry_date__gt=now, expiry_date__lte=now + timedelta(days=settings.STOCK_NEAR_EXPIRY_DAYS))
    if expired:
        qs = qs.filter(expiry_date__lte=now)
    if search:
        qs = qs.filter(
            Q(batch_number__icontains=search)
            | Q(medicine__generic_name__icontains=search)
            | Q(medicine__brand__icontains=search)
        )
    return qs.order_by('expiry_date', 'id')


def add_stock(*, user: Optional[User] = None, medicine_id: int, supplier_id: int, batch_number: str,
              quantity: int, purchase_price, mrp, expiry_date: datetime, manufacturing_date=None,
              location: str = '') -> MedicineStock:
    now = timezone.now()
    if expiry_date <= now:
        raise ValidationError({'expiryDate': 'cannot add expired stock'})
    if manufacturing_date and manufacturing_date >= timezone.localtime(expiry_date).date():
        raise ValidationError({'manufacturingDate': 'manufacturing date must be before expiry date'})
    medicine = Medicine.objects.filter(id=medicine_id).first()
    if not medicine:
        raise NotFoundError('medicine not found')
    supplier = Supplier.objects.filter(id=supplier_id).first()
    if not supplier:
        raise NotFoundError('supplier not found')
    if MedicineStock.objects.filter(medicine=medicine, batch_number=batch_number, is_active=True).exists():
        raise ConflictError('batch number already exists for this medicine')

    try:
        with transaction.atomic():
            stock = MedicineStock.objects.create(
                medicine=medicine,
                supplier=supplier,
                batch_number=batch_number,
                quantity=quantity,
                available_quantity=quantity,
                purchase_price=purchase_price,
                mrp=mrp,
                manufacturing_date=manufacturing_date,
                expiry_date=expiry_date,
                location=location,
            )
    except IntegrityError as exc:
        raise ConflictError('batch number already exists for this medicine') from exc

    log_action(user=user, action='stock_add', object_type='medicine_stock', object_id=stock.id,
               detail={'medicineId': medicine.id, 'batch': batch_number, 'quantity': quantity})
    logger.info('stock batch %s added for medicine %s (%d units)', batch_number, medicine.id, quantity)
    return stock


def adjust_stock(stock_id: int, adjustment_type: str, quantity: int, *, reason: str = '',
                 user: Optional[User] = None) -> MedicineStock:
    """Change a batch's available quantity.  DECREASE and SET never go below zero."""
    if adjustment_type not in ADJUSTMENT_TYPES:
        raise ValidationError({'adjustmentType': f'must be one of {", ".join(ADJUSTMENT_TYPES)}'})
    if quantity < 0:
        raise ValidationError({'quantity': 'quantity cannot be negative'})

    with transaction.atomic():
        stock = MedicineStock.objects.select_for_update().filter(id=stock_id).first()
        if not stock:
            raise NotFoundError('stock not found')
        before = stock.available_quantity
        if adjustment_type == ADJUST_INCREASE:
            after = before + quantity
        elif adjustment_type == ADJUST_DECREASE:
            after = max(0, before - quantity)
        else:
            after = max(0, quantity)
        stock.available_quantity = after
        stock.save(update_fields=['available_quantity', 'updated_at'])

    log_action(user=user, action='stock_adjust', object_type='medicine_stock', object_id=stock.id,
               detail={'type': adjustment_type, 'quantity': quantity, 'before': before,
                       'after': after, 'reason': reason})
    logger.info('stock %s adjusted %s %d: %d -> %d', stock.id, adjustment_type, quantity, before, after)
    return stock


UPDATABLE_STOCK_FIELDS = ('purchase_price', 'mrp', 'location', 'is_active')


def update_stock(stock_id: int, changes: dict, *, user: Optional[User] = None) -> MedicineStock:
    fields = [f for f in UPDATABLE_STOCK_FIELDS if f in changes]
    try:
        with transaction.atomic():
            stock = MedicineStock.objects.select_for_update().filter(id=stock_id).first()
            if not stock:
                raise NotFoundError('stock not found')
            if changes.get('is_active') and not stock.is_active:
                clash = MedicineStock.objects.filter(
                    medicine_id=stock.medicine_id, batch_number=stock.batch_number, is_active=True
                ).exclude(id=stock.id)
                if clash.exists():
                    raise ConflictError('another active batch with this number exists for the medicine')
            for name in fields:
                setattr(stock, name, changes[name])
            if fields:
                stock.save(update_fields=fields + ['updated_at'])
    except IntegrityError as exc:
        raise ConflictError('another active batch with this number exists for the medicine') from exc

    if fields:
        log_action(user=user, action='stock_update', object_type='medicine_stock', object_id=stock.id,
                   detail={'fields': fields})
    return stock
