from rest_framework import serializers

from .common import CleanCharField


class SessionCreateSerializer(serializers.Serializer):
    date = serializers.DateField()
    name = CleanCharField(max_length=100)
    shortCode = CleanCharField(max_length=20)
    startTime = serializers.TimeField(format='%H:%M')
    endTime = serializers.TimeField(format='%H:%M')
    maxTokens = serializers.IntegerField(min_value=1)
    isActive = serializers.BooleanField(required=False, default=True)
    doctorId = serializers.IntegerField(required=False, allow_null=True)


class SessionUpdateSerializer(serializers.Serializer):
    name = CleanCharField(max_length=100, required=False)
    shortCode = CleanCharField(max_length=20, required=False)
    startTime = serializers.TimeField(required=False)
    endTime = serializers.TimeField(required=False)
    maxTokens = serializers.IntegerField(min_value=1, required=False)
    isActive = serializers.BooleanField(required=False)
    doctorId = serializers.IntegerField(required=False, allow_null=True)

    FIELD_MAP = {
        'name': 'name',
        'shortCode': 'short_code',
        'startTime': 'start_time',
        'endTime': 'end_time',
        'maxTokens': 'max_tokens',
        'isActive': 'is_active',
        'doctorId': 'doctor_id',
    }

    def changes(self) -> dict:
        return {self.FIELD_MAP[k]: v for k, v in self.validated_data.items()}


class SessionListQuerySerializer(serializers.Serializer):
    date = serializers.DateField(required=False)
    includeInactive = serializers.BooleanField(required=False, default=False)


class EnsureSessionsSerializer(serializers.Serializer):
    date = serializers.DateField(required=False)
