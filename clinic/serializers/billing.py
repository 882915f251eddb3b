from rest_framework import serializers

from clinic.models import Bill, BillItem

from .common import CleanCharField, PageQuerySerializer

ITEM_TYPES = [c[0] for c in BillItem.TYPE_CHOICES]


class BillItemSerializer(serializers.Serializer):
    itemType = serializers.ChoiceField(choices=ITEM_TYPES, required=False, default=BillItem.TYPE_OTHER)
    itemName = CleanCharField(max_length=255)
    quantity = serializers.IntegerField(required=False, default=1)
    # null keeps the line pending: it is reported back but not billed
    unitPrice = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, allow_null=True, default=None)
    gstRate = serializers.DecimalField(max_digits=5, decimal_places=2, required=False, allow_null=True, default=None)


class BillPreviewSerializer(serializers.Serializer):
    prescriptionId = serializers.IntegerField(required=False, allow_null=True)
    consultationFee = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, allow_null=True)
    items = BillItemSerializer(many=True, required=False)
    discountAmount = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, default=0)


class BillCreateSerializer(BillPreviewSerializer):
    patientId = serializers.IntegerField(required=False, allow_null=True)
    appointmentId = serializers.IntegerField(required=False, allow_null=True)
    doctorId = serializers.IntegerField(required=False, allow_null=True)
    paymentMethod = serializers.ChoiceField(choices=[c[0] for c in Bill.PAYMENT_METHOD_CHOICES],
                                            required=False, default=Bill.PAYMENT_CASH)
    paymentStatus = serializers.ChoiceField(choices=[c[0] for c in Bill.PAYMENT_STATUS_CHOICES],
                                            required=False, default=Bill.PAYMENT_PAID)
    notes = CleanCharField(required=False, allow_blank=True, default='')

    def validate(self, attrs):
        if not attrs.get('patientId') and not attrs.get('prescriptionId'):
            raise serializers.ValidationError({'patientId': 'a patient or a prescription is required'})
        return attrs


class BillListQuerySerializer(PageQuerySerializer):
    patientId = serializers.IntegerField(required=False)
    dateFrom = serializers.DateField(required=False)
    dateTo = serializers.DateField(required=False)
    paymentStatus = serializers.ChoiceField(choices=[c[0] for c in Bill.PAYMENT_STATUS_CHOICES], required=False)


class PendingBillingQuerySerializer(serializers.Serializer):
    date = serializers.DateField(required=False)
    doctorId = serializers.IntegerField(required=False)
