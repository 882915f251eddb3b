"""
Django admin registrations for the clinic models.
"""

from django.contrib import admin

from .models import (
    Appointment,
    AppointmentSession,
    AppointmentTransition,
    AuditEvent,
    Bill,
    BillItem,
    Medicine,
    MedicineStock,
    Patient,
    Prescription,
    Supplier,
    User,
)


@admin.register(User)
class UserAdmin(admin.ModelAdmin):
    list_display = ('username', 'role', 'department', 'consultation_fee', 'is_staff', 'is_superuser')
    list_filter = ('role', 'department')
    search_fields = ('username', 'first_name', 'last_name')


@admin.register(Patient)
class PatientAdmin(admin.ModelAdmin):
    list_display = ('id', 'first_name', 'last_name', 'phone', 'gender', 'created_at')
    search_fields = ('first_name', 'last_name', 'phone', 'email')


@admin.register(AppointmentSession)
class AppointmentSessionAdmin(admin.ModelAdmin):
    list_display = ('date', 'short_code', 'name', 'start_time', 'end_time', 'current_tokens', 'max_tokens', 'is_active')
    list_filter = ('is_active', 'date')
    readonly_fields = ('current_tokens', 'last_token_number')


class AppointmentTransitionInline(admin.TabularInline):
    model = AppointmentTransition
    extra = 0
    readonly_fields = ('from_status', 'to_status', 'operator', 'reason', 'timestamp')


@admin.register(Appointment)
class AppointmentAdmin(admin.ModelAdmin):
    list_display = ('token_number', 'patient', 'session', 'doctor', 'status', 'priority', 'at_door')
    list_filter = ('status', 'priority', 'appointment_type')
    search_fields = ('token_number', 'patient__first_name', 'patient__phone')
    inlines = [AppointmentTransitionInline]


@admin.register(Prescription)
class PrescriptionAdmin(admin.ModelAdmin):
    list_display = ('id', 'patient', 'doctor', 'status', 'created_at')
    list_filter = ('status',)


class BillItemInline(admin.TabularInline):
    model = BillItem
    extra = 0


@admin.register(Bill)
class BillAdmin(admin.ModelAdmin):
    list_display = ('bill_number', 'patient', 'final_amount', 'payment_method', 'payment_status', 'created_at')
    list_filter = ('payment_status', 'payment_method')
    search_fields = ('bill_number', 'patient__first_name', 'patient__phone')
    inlines = [BillItemInline]


@admin.register(Medicine)
class MedicineAdmin(admin.ModelAdmin):
    list_display = ('generic_name', 'brand', 'strength', 'gst_rate', 'is_active')
    search_fields = ('generic_name', 'brand')


@admin.register(Supplier)
class SupplierAdmin(admin.ModelAdmin):
    list_display = ('name', 'phone', 'email', 'is_active')


@admin.register(MedicineStock)
class MedicineStockAdmin(admin.ModelAdmin):
    list_display = ('medicine', 'batch_number', 'available_quantity', 'expiry_date', 'is_active')
    list_filter = ('is_active',)
    search_fields = ('batch_number', 'medicine__generic_name')


@admin.register(AuditEvent)
class AuditEventAdmin(admin.ModelAdmin):
    list_display = ('created_at', 'user', 'action', 'object_type', 'object_id')
    list_filter = ('action', 'object_type')
    readonly_fields = ('created_at', 'user', 'action', 'object_type', 'object_id', 'detail')
