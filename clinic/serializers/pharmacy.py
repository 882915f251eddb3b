from rest_framework import serializers

from clinic.services.stock import ADJUSTMENT_TYPES

from .common import CleanCharField, DateOrDateTimeField, PageQuerySerializer


class MedicineCreateSerializer(serializers.Serializer):
    genericName = CleanCharField(max_length=255)
    brand = CleanCharField(max_length=255, required=False, allow_blank=True, default='')
    manufacturer = CleanCharField(max_length=255, required=False, allow_blank=True, default='')
    dosageForm = CleanCharField(max_length=50, required=False, allow_blank=True, default='')
    strength = CleanCharField(max_length=50, required=False, allow_blank=True, default='')
    category = CleanCharField(max_length=100, required=False, allow_blank=True, default='')
    gstRate = serializers.DecimalField(max_digits=5, decimal_places=2, min_value=0, max_value=100,
                                       required=False, default=12)


class SupplierCreateSerializer(serializers.Serializer):
    name = CleanCharField(max_length=255)
    phone = CleanCharField(max_length=20, required=False, allow_blank=True, default='')
    email = serializers.EmailField(required=False, allow_blank=True, default='')
    address = CleanCharField(required=False, allow_blank=True, default='')


class CatalogQuerySerializer(PageQuerySerializer):
    search = serializers.CharField(required=False, allow_blank=True)


class StockCreateSerializer(serializers.Serializer):
    medicineId = serializers.IntegerField()
    supplierId = serializers.IntegerField()
    batchNumber = CleanCharField(max_length=64)
    quantity = serializers.IntegerField(min_value=1)
    purchasePrice = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0)
    mrp = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0)
    expiryDate = DateOrDateTimeField()
    manufacturingDate = serializers.DateField(required=False, allow_null=True)
    location = CleanCharField(max_length=100, required=False, allow_blank=True, default='')


class StockAdjustSerializer(serializers.Serializer):
    adjustmentType = serializers.ChoiceField(choices=ADJUSTMENT_TYPES)
    quantity = serializers.IntegerField(min_value=0)
    reason = CleanCharField(required=False, allow_blank=True, default='')


class StockUpdateSerializer(serializers.Serializer):
    purchasePrice = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False)
    mrp = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False)
    location = CleanCharField(max_length=100, required=False, allow_blank=True)
    isActive = serializers.BooleanField(required=False)

    FIELD_MAP = {'purchasePrice': 'purchase_price', 'mrp': 'mrp', 'location': 'location', 'isActive': 'is_active'}

    def changes(self) -> dict:
        return {self.FIELD_MAP[k]: v for k, v in self.validated_data.items()}


class StockListQuerySerializer(PageQuerySerializer):
    medicineId = serializers.IntegerField(required=False)
    supplierId = serializers.IntegerField(required=False)
    lowStock = serializers.BooleanField(required=False, default=False)
    nearExpiry = serializers.BooleanField(required=False, default=False)
    expired = serializers.BooleanField(required=False, default=False)
    search = serializers.CharField(required=False, allow_blank=True, default='')
