from rest_framework import serializers

from .common import CleanCharField


class SessionTemplateSerializer(serializers.Serializer):
    name = CleanCharField(max_length=100)
    shortCode = CleanCharField(max_length=10)
    startTime = serializers.TimeField(format='%H:%M', input_formats=['%H:%M'])
    endTime = serializers.TimeField(format='%H:%M', input_formats=['%H:%M'])
    maxTokens = serializers.IntegerField(min_value=1)
    isActive = serializers.BooleanField(required=False, default=True)

    def validate(self, attrs):
        if attrs['endTime'] <= attrs['startTime']:
            raise serializers.ValidationError({'endTime': 'end time must be after start time'})
        return attrs

    def to_storage(self, attrs) -> dict:
        return {
            'name': attrs['name'],
            'shortCode': attrs['shortCode'],
            'startTime': attrs['startTime'].strftime('%H:%M'),
            'endTime': attrs['endTime'].strftime('%H:%M'),
            'maxTokens': attrs['maxTokens'],
            'isActive': attrs['isActive'],
        }


class HospitalSettingsSerializer(serializers.Serializer):
    name = CleanCharField(max_length=255, required=False)
    tagline = CleanCharField(max_length=255, required=False, allow_blank=True)
    phone = CleanCharField(max_length=30, required=False, allow_blank=True)
    email = serializers.EmailField(required=False, allow_blank=True)
    address = CleanCharField(required=False, allow_blank=True)
    tokenPrefix = CleanCharField(max_length=5, required=False, allow_blank=True)
    maxTokensPerSession = serializers.IntegerField(min_value=1, required=False)
    allowPublicBooking = serializers.BooleanField(required=False)
    sessionTemplates = SessionTemplateSerializer(many=True, required=False)

    def validate_sessionTemplates(self, value):
        codes = [t['shortCode'] for t in value]
        if len(codes) != len(set(codes)):
            raise serializers.ValidationError('session template short codes must be unique')
        return value

    def changes(self) -> dict:
        out = dict(self.validated_data)
        if 'sessionTemplates' in out:
            tpl = SessionTemplateSerializer()
            out['sessionTemplates'] = [tpl.to_storage(t) for t in out['sessionTemplates']]
        return out
