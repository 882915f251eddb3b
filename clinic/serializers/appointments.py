from rest_framework import serializers

from clinic.models import Appointment

from .common import CleanCharField, PageQuerySerializer

STATUSES = [c[0] for c in Appointment.STATUS_CHOICES]
PRIORITIES = [c[0] for c in Appointment.PRIORITY_CHOICES]
TYPES = [c[0] for c in Appointment.TYPE_CHOICES]


class AppointmentCreateSerializer(serializers.Serializer):
    sessionId = serializers.IntegerField(error_messages={'required': 'session id is required'})
    patientId = serializers.IntegerField()
    doctorId = serializers.IntegerField(required=False, allow_null=True)
    type = serializers.ChoiceField(choices=TYPES, required=False, default=Appointment.TYPE_CONSULTATION)
    priority = serializers.ChoiceField(choices=PRIORITIES, required=False, default=Appointment.PRIORITY_NORMAL)
    notes = CleanCharField(required=False, allow_blank=True, default='')


class AppointmentStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=STATUSES)
    reason = CleanCharField(required=False, allow_blank=True, max_length=255, default='')


class AppointmentPrioritySerializer(serializers.Serializer):
    priority = serializers.ChoiceField(choices=PRIORITIES)


class CheckInSerializer(serializers.Serializer):
    tokenNumber = CleanCharField(max_length=32)
    doctorId = serializers.IntegerField()


class AppointmentListQuerySerializer(PageQuerySerializer):
    date = serializers.DateField(required=False)
    sessionId = serializers.IntegerField(required=False)
    doctorId = serializers.IntegerField(required=False)
    patientId = serializers.IntegerField(required=False)
    status = serializers.ChoiceField(choices=STATUSES, required=False)
