from typing import Optional

from django.db.models import Q

from clinic.exceptions import NotFoundError
from clinic.models import Patient, User
from clinic.services.audit import log_action

UPDATABLE_FIELDS = ('first_name', 'last_name', 'phone', 'email', 'gender', 'date_of_birth', 'address')


def search_patients(q: Optional[str] = None):
    qs = Patient.objects.all()
    if q:
        qs = qs.filter(
            Q(first_name__icontains=q) | Q(last_name__icontains=q) | Q(phone__icontains=q) | Q(email__icontains=q)
        )
    return qs.order_by('-id')


def get_patient(patient_id) -> Patient:
    patient = Patient.objects.filter(id=patient_id).first()
    if not patient:
        raise NotFoundError('patient not found')
    return patient


def register_patient(current_user: Optional[User], **fields) -> Patient:
    patient = Patient.objects.create(**{k: v for k, v in fields.items() if k in UPDATABLE_FIELDS})
    log_action(user=current_user, action='patient_register', object_type='patient', object_id=patient.id)
    return patient


def update_patient(current_user: Optional[User], patient_id, changes: dict) -> Patient:
    patient = get_patient(patient_id)
    fields = [f for f in UPDATABLE_FIELDS if f in changes]
    for name in fields:
        setattr(patient, name, changes[name])
    if fields:
        patient.save(update_fields=fields + ['updated_at'])
        log_action(user=current_user, action='patient_update', object_type='patient', object_id=patient.id,
                   detail={'fields': fields})
    return patient
