import json
import re
from decimal import Decimal

import pytest

from clinic.exceptions import ConflictError, NotFoundError, ValidationError
from clinic.models import Bill, BillItem, Prescription
from clinic.services.billing import (
    compute_bill,
    create_bill,
    doses_per_day,
    duration_days,
    pending_prescriptions,
    prescription_bill_items,
)
from clinic.services.prescriptions import create_prescription, update_prescription

MEDICINE_LINE = {"itemType": "MEDICINE", "itemName": "Amoxicillin 500mg", "unitPrice": 100, "quantity": 2, "gstRate": 12}


def test_consultation_fee_medicine_and_discount():
    totals = compute_bill(500, [MEDICINE_LINE], 50)
    assert totals.subtotal == Decimal("700.00")
    assert totals.cgst_amount == Decimal("12.00")
    assert totals.sgst_amount == Decimal("12.00")
    assert totals.final_amount == Decimal("674.00")
    assert len(totals.items) == 1
    assert totals.items[0].total_amount == Decimal("200.00")
    assert totals.items[0].gst_amount == Decimal("24.00")


def test_same_input_same_totals():
    assert compute_bill(500, [MEDICINE_LINE], 50) == compute_bill(500, [MEDICINE_LINE], 50)


def test_unpriced_lines_are_pending():
    lines = [MEDICINE_LINE, {"itemType": "LAB_TEST", "itemName": "CBC", "unitPrice": None, "gstRate": 5}]
    totals = compute_bill(500, lines, 0)
    assert totals.subtotal == Decimal("700.00")
    assert [p.item_name for p in totals.pending] == ["CBC"]
    data = totals.as_dict()
    assert data["pendingItems"][0]["itemName"] == "CBC"
    assert [i["itemName"] for i in data["items"]] == ["Amoxicillin 500mg"]


def test_odd_cent_of_tax_goes_to_cgst():
    totals = compute_bill(0, [{"itemName": "Dressing", "unitPrice": "0.25", "quantity": 1, "gstRate": 20}], 0)
    assert totals.cgst_amount == Decimal("0.03")
    assert totals.sgst_amount == Decimal("0.02")
    assert totals.final_amount == Decimal("0.30")


def test_tax_halves_add_up_to_line_tax():
    dressing = {"itemName": "Dressing", "unitPrice": "0.25", "quantity": 1, "gstRate": 20}
    totals = compute_bill(0, [dressing, dressing, dressing], 0)
    assert sum(i.gst_amount for i in totals.items) == Decimal("0.15")
    assert totals.cgst_amount + totals.sgst_amount == Decimal("0.15")
    assert totals.final_amount == Decimal("0.90")

    # per-line rounding: three lines of 0.005 tax each are 0.01 apiece
    swab = {"itemName": "Swab", "unitPrice": "0.10", "quantity": 1, "gstRate": 5}
    totals = compute_bill(0, [swab, swab, swab], 0)
    assert [i.gst_amount for i in totals.items] == [Decimal("0.01")] * 3
    assert totals.cgst_amount + totals.sgst_amount == Decimal("0.03")


def test_missing_gst_rate_is_untaxed():
    totals = compute_bill(0, [{"itemName": "Procedure", "unitPrice": 300}], 0)
    assert totals.cgst_amount == Decimal("0.00")
    assert totals.final_amount == Decimal("300.00")


@pytest.mark.parametrize("line", [
    {"itemName": "x", "unitPrice": -1, "quantity": 1},
    {"itemName": "x", "unitPrice": 10, "quantity": 0},
    {"itemName": "x", "unitPrice": 10, "quantity": 1, "gstRate": 101},
    {"itemName": "x", "unitPrice": 10, "quantity": 1, "gstRate": -5},
])
def test_invalid_lines_are_rejected(line):
    with pytest.raises(ValidationError):
        compute_bill(0, [line], 0)


def test_negative_fee_or_discount_rejected():
    with pytest.raises(ValidationError):
        compute_bill(-1, [], 0)
    with pytest.raises(ValidationError):
        compute_bill(100, [], -1)


def test_discount_above_total(settings):
    with pytest.raises(ValidationError):
        compute_bill(100, [], 150)
    assert compute_bill(100, [], 150, negative_policy="clamp").final_amount == Decimal("0.00")
    settings.BILL_NEGATIVE_TOTAL_POLICY = "clamp"
    assert compute_bill(100, [], 150).final_amount == Decimal("0.00")


@pytest.mark.parametrize("text,expected", [
    ("once daily", 1), ("Twice a day", 2), ("thrice daily", 3), ("four times", 4),
    ("every 8 hours", 3), ("every 12 hours", 2), ("", 1),
])
def test_doses_per_day(text, expected):
    assert doses_per_day(text) == expected


@pytest.mark.parametrize("text,expected", [("5 days", 5), ("2 weeks", 14), ("1 month", 30), (None, 1)])
def test_duration_days(text, expected):
    assert duration_days(text) == expected


def test_prescription_lines_are_derived_and_pending():
    prescription = Prescription(
        medicines=json.dumps([{"name": "Paracetamol", "dosage": "1 tablet", "frequency": "twice daily",
                               "duration": "5 days"}]),
        lab_tests="CBC\nLFT",
        therapies=json.dumps([{"name": "Physiotherapy", "sessions": "4"}]),
    )
    lines = prescription_bill_items(prescription)
    assert [(line.item_type, line.quantity) for line in lines] == [
        (BillItem.TYPE_MEDICINE, 10),
        (BillItem.TYPE_LAB_TEST, 1),
        (BillItem.TYPE_LAB_TEST, 1),
        (BillItem.TYPE_THERAPY, 4),
    ]
    assert lines[0].item_name == "Paracetamol - 1 tablet"
    assert [line.gst_rate for line in lines] == [Decimal("12"), Decimal("5"), Decimal("5"), Decimal("18")]
    assert not any(line.is_priced for line in lines)

    totals = compute_bill(300, prescription=prescription)
    assert totals.final_amount == Decimal("300.00")
    assert len(totals.pending) == 4


def test_bundle_stored_in_medicines_field():
    prescription = Prescription(
        medicines=json.dumps({"medicines": [{"name": "Cetirizine"}], "labTests": ["Lipid profile"]}),
        lab_tests="",
        therapies="",
    )
    names = [line.item_name for line in prescription_bill_items(prescription)]
    assert names == ["Cetirizine", "Lipid profile"]


@pytest.mark.django_db
def test_create_bill_for_prescription(patient, doctor):
    prescription = create_prescription(doctor, patient_id=patient.id, diagnosis="viral fever",
                                       medicines=[{"name": "Paracetamol", "dosage": "1", "frequency": "once",
                                                   "duration": "3 days"}])
    assert prescription.doctor_id == doctor.id
    assert list(pending_prescriptions()) == [prescription]

    bill = create_bill(user=doctor, prescription_id=prescription.id, items=[MEDICINE_LINE], discount_amount=50)
    assert re.fullmatch(r"BILL-\d{6}-[0-9A-F]{6}", bill.bill_number)
    assert bill.patient_id == patient.id
    assert bill.consultation_fee == Decimal("500.00")
    assert bill.final_amount == Decimal("674.00")
    assert bill.items.count() == 1
    assert list(pending_prescriptions()) == []

    with pytest.raises(ConflictError):
        create_bill(user=doctor, prescription_id=prescription.id, items=[MEDICINE_LINE])
    assert Bill.objects.count() == 1


@pytest.mark.django_db
def test_stored_bill_leaves_out_unpriced_lines(patient):
    dressing = {"itemType": "PROCEDURE", "itemName": "Dressing", "unitPrice": "0.25", "quantity": 1, "gstRate": 20}
    lab = {"itemType": "LAB_TEST", "itemName": "CBC", "unitPrice": None, "quantity": 1, "gstRate": 5}
    bill = create_bill(patient_id=patient.id, consultation_fee=0, items=[dressing, dressing, dressing, lab])
    stored = list(bill.items.order_by("id"))
    assert [i.item_name for i in stored] == ["Dressing"] * 3
    assert not BillItem.objects.filter(bill=bill, item_name="CBC").exists()
    assert bill.cgst_amount + bill.sgst_amount == sum(i.gst_amount for i in stored)
    assert bill.final_amount == bill.total_amount + bill.cgst_amount + bill.sgst_amount


@pytest.mark.django_db
def test_create_bill_needs_patient_or_prescription(patient):
    with pytest.raises(ValidationError):
        create_bill(items=[MEDICINE_LINE])
    with pytest.raises(NotFoundError):
        create_bill(prescription_id=424242)
    bill = create_bill(patient_id=patient.id, consultation_fee=0, items=[MEDICINE_LINE])
    assert bill.final_amount == Decimal("224.00")


@pytest.mark.django_db
def test_completed_prescription_is_frozen(patient, doctor):
    prescription = create_prescription(doctor, patient_id=patient.id, symptoms="cough")
    update_prescription(doctor, prescription.id, {"diagnosis": "bronchitis", "status": Prescription.STATUS_COMPLETED})
    prescription.refresh_from_db()
    assert prescription.diagnosis == "bronchitis"
    with pytest.raises(ConflictError):
        update_prescription(doctor, prescription.id, {"notes": "late edit"})
