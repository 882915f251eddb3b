"""
Bill computation and persistence.

``compute_bill`` is the pure part: it turns a consultation fee, a list
of bill lines and a discount into a subtotal, an even CGST/SGST split
of each priced line's GST and a final payable amount.  Lines without a
unit price are pending pricing; they are reported back but never
billed.  ``create_bill`` persists the result for a patient, usually
against a prescription.
"""
from __future__ import annotations

import json
import logging
import re
import secrets
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable, Optional, Union

from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone

from clinic.exceptions import ConflictError, NotFoundError, ValidationError
from clinic.models import Appointment, Bill, BillItem, Patient, Prescription, User
from clinic.services.audit import log_action

logger = logging.getLogger(__name__)

ZERO = Decimal('0')
HUNDRED = Decimal('100')
CENT = Decimal('0.01')

DEFAULT_GST_RATES = {
    BillItem.TYPE_MEDICINE: Decimal('12'),
    BillItem.TYPE_LAB_TEST: Decimal('5'),
    BillItem.TYPE_THERAPY: Decimal('18'),
    BillItem.TYPE_OTHER: Decimal('18'),
}

NEGATIVE_TOTAL_REJECT = 'reject'
NEGATIVE_TOTAL_CLAMP = 'clamp'


def money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def _decimal(value: Any, name: str) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValidationError({name: 'must be a number'})
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError({name: 'must be a number'})


@dataclass(frozen=True)
class BillLine:
    """One requested bill line.  ``unit_price`` of ``None`` means pending pricing."""
    item_type: str
    item_name: str
    quantity: int = 1
    unit_price: Optional[Decimal] = None
    gst_rate: Optional[Decimal] = None

    @property
    def is_priced(self) -> bool:
        return self.unit_price is not None


@dataclass(frozen=True)
class PricedLine:
    item_type: str
    item_name: str
    quantity: int
    unit_price: Decimal
    gst_rate: Decimal
    total_amount: Decimal
    gst_amount: Decimal


@dataclass(frozen=True)
class BillTotals:
    consultation_fee: Decimal
    subtotal: Decimal
    cgst_amount: Decimal
    sgst_amount: Decimal
    discount_amount: Decimal
    final_amount: Decimal
    items: tuple = field(default_factory=tuple)
    pending: tuple = field(default_factory=tuple)

    def as_dict(self) -> dict:
        return {
            'consultationFee': self.consultation_fee,
            'subtotal': self.subtotal,
            'cgstAmount': self.cgst_amount,
            'sgstAmount': self.sgst_amount,
            'discountAmount': self.discount_amount,
            'finalAmount': self.final_amount,
            'items': [_line_payload(p) for p in self.items],
            'pendingItems': [
                {'itemType': p.item_type, 'itemName': p.item_name, 'quantity': p.quantity, 'gstRate': p.gst_rate}
                for p in self.pending
            ],
        }


def _line_payload(line: PricedLine) -> dict:
    return {
        'itemType': line.item_type,
        'itemName': line.item_name,
        'quantity': line.quantity,
        'unitPrice': line.unit_price,
        'gstRate': line.gst_rate,
        'totalAmount': line.total_amount,
        'gstAmount': line.gst_amount,
    }


LineInput = Union[BillLine, dict]


def _coerce_line(raw: LineInput) -> BillLine:
    if isinstance(raw, BillLine):
        return raw
    get = raw.get
    unit_price = get('unit_price', get('unitPrice'))
    gst_rate = get('gst_rate', get('gstRate'))
    quantity = get('quantity', 1)
    return BillLine(
        item_type=get('item_type') or get('itemType') or BillItem.TYPE_OTHER,
        item_name=str(get('item_name') or get('itemName') or '').strip(),
        quantity=1 if quantity is None else quantity,
        unit_price=None if unit_price is None else _decimal(unit_price, 'unitPrice'),
        gst_rate=None if gst_rate is None else _decimal(gst_rate, 'gstRate'),
    )


def _price_line(line: BillLine) -> PricedLine:
    if line.unit_price < 0:
        raise ValidationError({'unitPrice': f'{line.item_name or "item"}: unit price cannot be negative'})
    if isinstance(line.quantity, bool) or not isinstance(line.quantity, int) or line.quantity < 1:
        raise ValidationError({'quantity': f'{line.item_name or "item"}: quantity must be a whole number of at least 1'})
    rate = line.gst_rate if line.gst_rate is not None else ZERO
    if rate < 0 or rate > HUNDRED:
        raise ValidationError({'gstRate': f'{line.item_name or "item"}: GST rate must be between 0 and 100'})
    line_total = line.unit_price * line.quantity
    return PricedLine(
        item_type=line.item_type,
        item_name=line.item_name,
        quantity=line.quantity,
        unit_price=line.unit_price,
        gst_rate=rate,
        total_amount=line_total,
        gst_amount=line_total * rate / HUNDRED,
    )


def compute_bill(consultation_fee: Any = ZERO, items: Optional[Iterable[LineInput]] = None,
                 discount_amount: Any = ZERO, prescription: Optional[Prescription] = None,
                 negative_policy: Optional[str] = None) -> BillTotals:
    """Compute the totals of a bill.

    Each priced line is taxed at its own GST rate, rounded to cents.
    The bill tax is the sum of the line tax split in two halves (CGST
    and SGST), CGST taking the odd cent.  The consultation fee enters
    the subtotal untaxed.  When ``items`` is omitted and a prescription
    is given, the lines are derived from it, all of them pending.

    ``negative_policy`` decides what happens when the discount exceeds
    subtotal plus tax: ``reject`` raises ``ValidationError`` and
    ``clamp`` returns a final amount of zero.  It defaults to
    ``settings.BILL_NEGATIVE_TOTAL_POLICY``.
    """
    fee = _decimal(consultation_fee if consultation_fee is not None else ZERO, 'consultationFee')
    discount = _decimal(discount_amount if discount_amount is not None else ZERO, 'discountAmount')
    if fee < 0:
        raise ValidationError({'consultationFee': 'consultation fee cannot be negative'})
    if discount < 0:
        raise ValidationError({'discountAmount': 'discount cannot be negative'})

    if items is None and prescription is not None:
        items = prescription_bill_items(prescription)

    subtotal = fee
    gst_total = ZERO
    priced: list[PricedLine] = []
    pending: list[BillLine] = []
    for raw in items or ():
        line = _coerce_line(raw)
        if not line.is_priced:
            pending.append(line)
            continue
        priced_line = _price_line(line)
        priced.append(priced_line)
        subtotal += priced_line.total_amount
        gst_total += money(priced_line.gst_amount)

    # bill GST is the sum of the stored line GST; the halves add back up to it
    cgst = money(gst_total / 2)
    sgst = gst_total - cgst
    subtotal = money(subtotal)
    final = subtotal + cgst + sgst - discount
    if final < 0:
        policy = negative_policy or settings.BILL_NEGATIVE_TOTAL_POLICY
        if policy == NEGATIVE_TOTAL_CLAMP:
            final = ZERO
        else:
            raise ValidationError({'discountAmount': 'discount exceeds the bill total'})

    return BillTotals(
        consultation_fee=money(fee),
        subtotal=subtotal,
        cgst_amount=cgst,
        sgst_amount=sgst,
        discount_amount=money(discount),
        final_amount=money(final),
        items=tuple(
            PricedLine(
                item_type=p.item_type, item_name=p.item_name, quantity=p.quantity,
                unit_price=money(p.unit_price), gst_rate=p.gst_rate,
                total_amount=money(p.total_amount), gst_amount=money(p.gst_amount),
            )
            for p in priced
        ),
        pending=tuple(pending),
    )


# ---------------------------------------------------------------------
# Prescription parsing
# ---------------------------------------------------------------------
_NUMBER = re.compile(r'\d+(?:\.\d+)?')


def _leading_int(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return int(value)
    match = _NUMBER.search(str(value or ''))
    return int(float(match.group(0))) if match else 0


def doses_per_day(frequency: Any) -> int:
    text = str(frequency or '').lower()
    if 'once' in text:
        return 1
    if 'twice' in text or 'two' in text:
        return 2
    if 'thrice' in text or 'three' in text:
        return 3
    if 'four' in text:
        return 4
    if 'every 6' in text:
        return 4
    if 'every 8' in text:
        return 3
    if 'every 12' in text:
        return 2
    return 1


def duration_days(duration: Any) -> int:
    text = str(duration or '').lower()
    count = _leading_int(text) or 1
    if 'week' in text:
        return count * 7
    if 'month' in text:
        return count * 30
    return count


def _load_bundle(raw: str) -> Optional[dict]:
    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError):
        return None
    if isinstance(parsed, dict) and any(parsed.get(k) for k in ('medicines', 'labTests', 'therapies')):
        return parsed
    return None


def _resolve_list(raw: Any, bundle: Optional[dict], key: str) -> list:
    if isinstance(raw, list):
        return raw
    if isinstance(raw, str) and raw.strip():
        try:
            parsed = json.loads(raw)
        except ValueError:
            return [{'name': line.strip()} for line in raw.splitlines() if line.strip()]
        if isinstance(parsed, list):
            return parsed
    if bundle and isinstance(bundle.get(key), list):
        return bundle[key]
    return []


def _item_name(entry: Any, fallback: str) -> str:
    if isinstance(entry, dict):
        return str(entry.get('name') or entry.get('itemName') or fallback)
    return str(entry)


def prescription_bill_items(prescription: Prescription) -> list[BillLine]:
    """Derive pending bill lines from a prescription's encoded item lists."""
    bundle = _load_bundle(prescription.medicines) if prescription.medicines else None
    lines: list[BillLine] = []

    for med in _resolve_list(prescription.medicines, bundle, 'medicines'):
        med = med if isinstance(med, dict) else {'name': str(med)}
        dosage = str(med.get('dosage') or '')
        quantity = max(1, (_leading_int(dosage) or 1) * doses_per_day(med.get('frequency'))
                       * duration_days(med.get('duration')))
        name = _item_name(med, 'Medicine')
        lines.append(BillLine(
            item_type=BillItem.TYPE_MEDICINE,
            item_name=f'{name} - {dosage}' if dosage else name,
            quantity=quantity,
            gst_rate=DEFAULT_GST_RATES[BillItem.TYPE_MEDICINE],
        ))

    for test in _resolve_list(prescription.lab_tests, bundle, 'labTests'):
        lines.append(BillLine(
            item_type=BillItem.TYPE_LAB_TEST,
            item_name=_item_name(test, 'Lab test'),
            gst_rate=DEFAULT_GST_RATES[BillItem.TYPE_LAB_TEST],
        ))

    for therapy in _resolve_list(prescription.therapies, bundle, 'therapies'):
        sessions = _leading_int(therapy.get('sessions')) if isinstance(therapy, dict) else 0
        lines.append(BillLine(
            item_type=BillItem.TYPE_THERAPY,
            item_name=_item_name(therapy, 'Therapy'),
            quantity=sessions or 1,
            gst_rate=DEFAULT_GST_RATES[BillItem.TYPE_THERAPY],
        ))
    return lines


# ---------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------
def generate_bill_number() -> str:
    return f"BILL-{timezone.localdate():%y%m%d}-{secrets.token_hex(3).upper()}"


def create_bill(*, user: Optional[User] = None, patient_id: Optional[int] = None,
                prescription_id: Optional[int] = None, appointment_id: Optional[int] = None,
                doctor_id: Optional[int] = None, consultation_fee: Any = None,
                items: Optional[Iterable[LineInput]] = None, discount_amount: Any = ZERO,
                payment_method: str = Bill.PAYMENT_CASH, payment_status: str = Bill.PAYMENT_PAID,
                notes: str = '') -> Bill:
    """Create a bill and its priced items in one transaction."""
    prescription = None
    if prescription_id is not None:
        prescription = (
            Prescription.objects.select_related('patient', 'doctor', 'appointment')
            .filter(id=prescription_id).first()
        )
        if not prescription:
            raise NotFoundError('prescription not found')
        if Bill.objects.filter(prescription=prescription).exists():
            raise ConflictError('this prescription has already been billed')

    if prescription is not None:
        patient = prescription.patient
    elif patient_id is not None:
        patient = Patient.objects.filter(id=patient_id).first()
        if not patient:
            raise NotFoundError('patient not found')
    else:
        raise ValidationError({'patientId': 'a patient or a prescription is required'})

    doctor = prescription.doctor if prescription else None
    if doctor_id is not None:
        doctor = User.objects.filter(id=doctor_id, role=User.ROLE_DOCTOR).first()
        if not doctor:
            raise NotFoundError('doctor not found')

    appointment = prescription.appointment if prescription else None
    if appointment_id is not None:
        appointment = Appointment.objects.filter(id=appointment_id).first()
        if not appointment:
            raise NotFoundError('appointment not found')

    if consultation_fee is None:
        consultation_fee = doctor.consultation_fee if doctor else ZERO
    totals = compute_bill(consultation_fee, items, discount_amount, prescription=prescription)

    try:
        with transaction.atomic():
            bill = Bill.objects.create(
                bill_number=generate_bill_number(),
                patient=patient,
                prescription=prescription,
                appointment=appointment,
                doctor=doctor,
                consultation_fee=totals.consultation_fee,
                total_amount=totals.subtotal,
                cgst_amount=totals.cgst_amount,
                sgst_amount=totals.sgst_amount,
                discount_amount=totals.discount_amount,
                final_amount=totals.final_amount,
                payment_method=payment_method,
                payment_status=payment_status,
                notes=notes,
                created_by=user,
            )
            BillItem.objects.bulk_create([
                BillItem(
                    bill=bill,
                    item_type=line.item_type,
                    item_name=line.item_name,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                    gst_rate=line.gst_rate,
                    total_amount=line.total_amount,
                    gst_amount=line.gst_amount,
                )
                for line in totals.items
            ])
    except IntegrityError as exc:
        raise ConflictError('bill could not be created, it clashes with an existing bill') from exc

    log_action(user=user, action='bill_create', object_type='bill', object_id=bill.id,
               detail={'billNumber': bill.bill_number, 'finalAmount': str(bill.final_amount),
                       'pendingItems': len(totals.pending)})
    logger.info('bill %s created for patient %s: final %s (%d items, %d pending)',
                bill.bill_number, patient.id, bill.final_amount, len(totals.items), len(totals.pending))
    return bill


def pending_prescriptions(*, date=None, doctor_id: Optional[int] = None):
    """Prescriptions that have no bill yet, newest first."""
    qs = (
        Prescription.objects.select_related('patient', 'doctor', 'appointment')
        .filter(bill__isnull=True)
    )
    if date:
        qs = qs.filter(created_at__date=date)
    if doctor_id:
        qs = qs.filter(doctor_id=doctor_id)
    return qs.order_by('-created_at')
