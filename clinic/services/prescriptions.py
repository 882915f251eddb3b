"""
Prescription records.

The medicine, lab test and therapy lists are kept as strings: lists
and objects sent by the client are stored as JSON, plain text is kept
as typed (one item per line).  A prescription can be edited until it
is marked COMPLETED.
"""
import json
from typing import Any, Optional

from django.db import transaction

from clinic.exceptions import ConflictError, NotFoundError, ValidationError
from clinic.models import Appointment, Patient, Prescription, User
from clinic.services.audit import log_action

TEXT_FIELDS = ('symptoms', 'diagnosis', 'notes')
ITEM_FIELDS = ('medicines', 'lab_tests', 'therapies')


def encode_items(value: Any) -> str:
    if value is None:
        return ''
    if isinstance(value, (list, dict)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


def get_prescription(prescription_id) -> Prescription:
    prescription = (
        Prescription.objects.select_related('patient', 'doctor', 'appointment')
        .filter(id=prescription_id).first()
    )
    if not prescription:
        raise NotFoundError('prescription not found')
    return prescription


def create_prescription(user: Optional[User], *, patient_id, doctor_id=None, appointment_id=None,
                        status: str = Prescription.STATUS_DRAFT, **fields) -> Prescription:
    patient = Patient.objects.filter(id=patient_id).first()
    if not patient:
        raise NotFoundError('patient not found')
    if doctor_id is not None:
        doctor = User.objects.filter(id=doctor_id, role=User.ROLE_DOCTOR).first()
        if not doctor:
            raise ValidationError({'doctorId': 'doctor not found'})
    elif user is not None and user.role == User.ROLE_DOCTOR:
        doctor = user
    else:
        raise ValidationError({'doctorId': 'doctor is required'})
    appointment = None
    if appointment_id is not None:
        appointment = Appointment.objects.filter(id=appointment_id, patient=patient).first()
        if not appointment:
            raise NotFoundError('appointment not found for this patient')

    data = {k: fields[k] for k in TEXT_FIELDS if k in fields}
    data.update({k: encode_items(fields[k]) for k in ITEM_FIELDS if k in fields})
    prescription = Prescription.objects.create(
        patient=patient, doctor=doctor, appointment=appointment, status=status, **data
    )
    log_action(user=user, action='prescription_create', object_type='prescription', object_id=prescription.id)
    return prescription


def update_prescription(user: Optional[User], prescription_id, changes: dict) -> Prescription:
    with transaction.atomic():
        prescription = Prescription.objects.select_for_update().filter(id=prescription_id).first()
        if not prescription:
            raise NotFoundError('prescription not found')
        if prescription.status == Prescription.STATUS_COMPLETED:
            raise ConflictError('a completed prescription cannot be changed')
        fields = [k for k in TEXT_FIELDS if k in changes]
        for name in fields:
            setattr(prescription, name, changes[name])
        for name in ITEM_FIELDS:
            if name in changes:
                setattr(prescription, name, encode_items(changes[name]))
                fields.append(name)
        if changes.get('status') in dict(Prescription.STATUS_CHOICES):
            prescription.status = changes['status']
            fields.append('status')
        if fields:
            prescription.save(update_fields=fields + ['updated_at'])
    if fields:
        log_action(user=user, action='prescription_update', object_type='prescription',
                   object_id=prescription.id, detail={'fields': fields})
    return prescription
