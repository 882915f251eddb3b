from rest_framework import serializers

from clinic.models import Prescription

from .common import CleanCharField, PageQuerySerializer

STATUSES = [c[0] for c in Prescription.STATUS_CHOICES]


class PrescriptionCreateSerializer(serializers.Serializer):
    patientId = serializers.IntegerField()
    doctorId = serializers.IntegerField(required=False, allow_null=True)
    appointmentId = serializers.IntegerField(required=False, allow_null=True)
    symptoms = CleanCharField(required=False, allow_blank=True)
    diagnosis = CleanCharField(required=False, allow_blank=True)
    notes = CleanCharField(required=False, allow_blank=True)
    # list, bundle object or newline separated text
    medicines = serializers.JSONField(required=False)
    labTests = serializers.JSONField(required=False)
    therapies = serializers.JSONField(required=False)
    status = serializers.ChoiceField(choices=STATUSES, required=False, default=Prescription.STATUS_DRAFT)

    FIELD_MAP = {
        'symptoms': 'symptoms',
        'diagnosis': 'diagnosis',
        'notes': 'notes',
        'medicines': 'medicines',
        'labTests': 'lab_tests',
        'therapies': 'therapies',
        'status': 'status',
    }

    def model_fields(self) -> dict:
        return {self.FIELD_MAP[k]: v for k, v in self.validated_data.items() if k in self.FIELD_MAP}


class PrescriptionUpdateSerializer(PrescriptionCreateSerializer):
    patientId = serializers.IntegerField(required=False)
    status = serializers.ChoiceField(choices=STATUSES, required=False)


class PrescriptionListQuerySerializer(PageQuerySerializer):
    patientId = serializers.IntegerField(required=False)
    doctorId = serializers.IntegerField(required=False)
    status = serializers.ChoiceField(choices=STATUSES, required=False)
