from rest_framework import serializers

from clinic.models import Patient

from .common import CleanCharField, PageQuerySerializer


class PatientCreateSerializer(serializers.Serializer):
    firstName = CleanCharField(max_length=100)
    lastName = CleanCharField(max_length=100, required=False, allow_blank=True)
    phone = CleanCharField(max_length=20, required=False, allow_blank=True)
    email = serializers.EmailField(required=False, allow_blank=True)
    gender = serializers.ChoiceField(choices=[c[0] for c in Patient.GENDER_CHOICES], required=False, allow_blank=True)
    dateOfBirth = serializers.DateField(required=False, allow_null=True)
    address = CleanCharField(required=False, allow_blank=True)

    FIELD_MAP = {
        'firstName': 'first_name',
        'lastName': 'last_name',
        'phone': 'phone',
        'email': 'email',
        'gender': 'gender',
        'dateOfBirth': 'date_of_birth',
        'address': 'address',
    }

    def validate_firstName(self, v):
        if not v:
            raise serializers.ValidationError('first name is required')
        return v

    def model_fields(self) -> dict:
        return {self.FIELD_MAP[k]: v for k, v in self.validated_data.items() if k in self.FIELD_MAP}


class PatientUpdateSerializer(PatientCreateSerializer):
    firstName = CleanCharField(max_length=100, required=False)


class PatientListQuerySerializer(PageQuerySerializer):
    q = serializers.CharField(required=False, allow_blank=True)
