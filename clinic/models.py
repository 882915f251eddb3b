"""
Database models for the hospital OPD backend.

These models capture the outpatient workflow: staff users, patients,
bookable sessions with a token capacity, appointments queued inside a
session, prescriptions, bills with GST-split line items and pharmacy
stock batches.  Status-like fields are closed choice sets so that an
invalid state cannot be stored through the ORM.
"""
from __future__ import annotations

from decimal import Decimal

from django.contrib.auth.models import AbstractUser
from django.db import models


class User(AbstractUser):
    """Staff user with a hospital role.

    Doctors additionally carry a default consultation fee which is used
    when a bill is created for one of their prescriptions.
    """
    ROLE_ADMIN = 'ADMIN'
    ROLE_DOCTOR = 'DOCTOR'
    ROLE_NURSE = 'NURSE'
    ROLE_RECEPTIONIST = 'RECEPTIONIST'
    ROLE_PHARMACIST = 'PHARMACIST'
    ROLE_CHOICES = [
        (ROLE_ADMIN, 'Administrator'),
        (ROLE_DOCTOR, 'Doctor'),
        (ROLE_NURSE, 'Nurse'),
        (ROLE_RECEPTIONIST, 'Receptionist'),
        (ROLE_PHARMACIST, 'Pharmacist'),
    ]
    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default=ROLE_RECEPTIONIST, db_index=True)
    department = models.CharField(max_length=100, blank=True)
    specialization = models.CharField(max_length=100, blank=True)
    consultation_fee = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0'))

    def __str__(self) -> str:
        return f"{self.username} ({self.role})"


class Patient(models.Model):
    GENDER_CHOICES = [
        ('MALE', 'Male'),
        ('FEMALE', 'Female'),
        ('OTHER', 'Other'),
    ]
    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100, blank=True)
    phone = models.CharField(max_length=20, blank=True, db_index=True)
    email = models.EmailField(blank=True)
    gender = models.CharField(max_length=10, choices=GENDER_CHOICES, blank=True)
    date_of_birth = models.DateField(null=True, blank=True)
    address = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __str__(self) -> str:
        return self.full_name


class AppointmentSession(models.Model):
    """A bookable time block on a date with a bounded number of tokens.

    ``current_tokens`` counts the tokens currently held against the
    capacity.  ``last_token_number`` is the monotonic sequence used to
    number tokens; it never goes down, so token numbers are never
    reused even when a cancellation frees a slot.
    """
    date = models.DateField(db_index=True)
    name = models.CharField(max_length=100)
    short_code = models.CharField(max_length=20)
    start_time = models.TimeField()
    end_time = models.TimeField()
    max_tokens = models.PositiveIntegerField(default=50)
    current_tokens = models.PositiveIntegerField(default=0)
    last_token_number = models.PositiveIntegerField(default=0)
    is_active = models.BooleanField(default=True)
    doctor = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='sessions'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['date', 'short_code'], name='uniq_session_date_short_code'),
        ]

    def __str__(self) -> str:
        return f"{self.name} ({self.short_code}) {self.date}"


class Appointment(models.Model):
    STATUS_SCHEDULED = 'SCHEDULED'
    STATUS_ARRIVED = 'ARRIVED'
    STATUS_WAITING = 'WAITING'
    STATUS_IN_CONSULTATION = 'IN_CONSULTATION'
    STATUS_COMPLETED = 'COMPLETED'
    STATUS_CANCELLED = 'CANCELLED'
    STATUS_NO_SHOW = 'NO_SHOW'
    STATUS_CHOICES = [
        (STATUS_SCHEDULED, 'Scheduled'),
        (STATUS_ARRIVED, 'Arrived'),
        (STATUS_WAITING, 'Waiting'),
        (STATUS_IN_CONSULTATION, 'In consultation'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_CANCELLED, 'Cancelled'),
        (STATUS_NO_SHOW, 'No show'),
    ]
    ACTIVE_STATUSES = (STATUS_SCHEDULED, STATUS_ARRIVED, STATUS_WAITING, STATUS_IN_CONSULTATION)

    PRIORITY_EMERGENCY = 'EMERGENCY'
    PRIORITY_HIGH = 'HIGH'
    PRIORITY_NORMAL = 'NORMAL'
    PRIORITY_LOW = 'LOW'
    PRIORITY_CHOICES = [
        (PRIORITY_EMERGENCY, 'Emergency'),
        (PRIORITY_HIGH, 'High'),
        (PRIORITY_NORMAL, 'Normal'),
        (PRIORITY_LOW, 'Low'),
    ]

    TYPE_CONSULTATION = 'CONSULTATION'
    TYPE_FOLLOW_UP = 'FOLLOW_UP'
    TYPE_EMERGENCY = 'EMERGENCY'
    TYPE_ROUTINE_CHECKUP = 'ROUTINE_CHECKUP'
    TYPE_CHOICES = [
        (TYPE_CONSULTATION, 'Consultation'),
        (TYPE_FOLLOW_UP, 'Follow up'),
        (TYPE_EMERGENCY, 'Emergency'),
        (TYPE_ROUTINE_CHECKUP, 'Routine checkup'),
    ]

    patient = models.ForeignKey(Patient, on_delete=models.PROTECT, related_name='appointments')
    doctor = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='appointments'
    )
    session = models.ForeignKey(AppointmentSession, on_delete=models.PROTECT, related_name='appointments')
    date_time = models.DateTimeField(db_index=True)
    token_number = models.CharField(max_length=32)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_SCHEDULED, db_index=True)
    priority = models.CharField(max_length=10, choices=PRIORITY_CHOICES, default=PRIORITY_NORMAL, db_index=True)
    appointment_type = models.CharField(max_length=20, choices=TYPE_CHOICES, default=TYPE_CONSULTATION)
    notes = models.TextField(blank=True)
    at_door = models.BooleanField(default=False)
    at_door_at = models.DateTimeField(null=True, blank=True)
    created_by = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='booked_appointments'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['session', 'token_number'], name='uniq_appointment_session_token'),
        ]
        indexes = [
            models.Index(fields=['doctor', 'date_time'], name='appt_doctor_datetime_idx'),
        ]

    def __str__(self) -> str:
        return f"{self.token_number} ({self.status})"


class AppointmentTransition(models.Model):
    """Records a status transition for an appointment."""
    appointment = models.ForeignKey(Appointment, related_name='transitions', on_delete=models.CASCADE)
    from_status = models.CharField(max_length=20, null=True, blank=True)
    to_status = models.CharField(max_length=20)
    operator = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='appointment_transitions'
    )
    reason = models.CharField(max_length=255, blank=True)
    timestamp = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return f"{self.appointment_id}: {self.from_status} → {self.to_status}"


class Prescription(models.Model):
    """A doctor's record of medicines, lab tests and therapies.

    The three item lists are stored as strings.  Each may hold a JSON
    array, a newline separated list, or (in ``medicines``) a JSON object
    bundling all three lists.
    """
    STATUS_DRAFT = 'DRAFT'
    STATUS_COMPLETED = 'COMPLETED'
    STATUS_CHOICES = [
        (STATUS_DRAFT, 'Draft'),
        (STATUS_COMPLETED, 'Completed'),
    ]
    patient = models.ForeignKey(Patient, on_delete=models.PROTECT, related_name='prescriptions')
    doctor = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='prescriptions'
    )
    appointment = models.ForeignKey(
        Appointment, null=True, blank=True, on_delete=models.SET_NULL, related_name='prescriptions'
    )
    symptoms = models.TextField(blank=True)
    diagnosis = models.TextField(blank=True)
    notes = models.TextField(blank=True)
    medicines = models.TextField(blank=True, default='')
    lab_tests = models.TextField(blank=True, default='')
    therapies = models.TextField(blank=True, default='')
    status = models.CharField(max_length=12, choices=STATUS_CHOICES, default=STATUS_DRAFT, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"Prescription {self.id} for {self.patient_id}"


class Bill(models.Model):
    PAYMENT_CASH = 'CASH'
    PAYMENT_UPI = 'UPI'
    PAYMENT_CARD = 'CARD'
    PAYMENT_CHEQUE = 'CHEQUE'
    PAYMENT_METHOD_CHOICES = [
        (PAYMENT_CASH, 'Cash'),
        (PAYMENT_UPI, 'UPI'),
        (PAYMENT_CARD, 'Card'),
        (PAYMENT_CHEQUE, 'Cheque'),
    ]
    PAYMENT_PAID = 'PAID'
    PAYMENT_PENDING = 'PENDING'
    PAYMENT_STATUS_CHOICES = [
        (PAYMENT_PAID, 'Paid'),
        (PAYMENT_PENDING, 'Pending'),
    ]

    bill_number = models.CharField(max_length=32, unique=True)
    patient = models.ForeignKey(Patient, on_delete=models.PROTECT, related_name='bills')
    prescription = models.OneToOneField(
        Prescription, null=True, blank=True, on_delete=models.PROTECT, related_name='bill'
    )
    appointment = models.ForeignKey(
        Appointment, null=True, blank=True, on_delete=models.SET_NULL, related_name='bills'
    )
    doctor = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='bills'
    )
    consultation_fee = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))
    # Subtotal: consultation fee plus priced line items, before tax and discount
    total_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))
    cgst_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))
    sgst_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))
    discount_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))
    final_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))
    payment_method = models.CharField(max_length=10, choices=PAYMENT_METHOD_CHOICES, default=PAYMENT_CASH)
    payment_status = models.CharField(
        max_length=10, choices=PAYMENT_STATUS_CHOICES, default=PAYMENT_PAID, db_index=True
    )
    notes = models.TextField(blank=True)
    created_by = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='bills_created'
    )
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    def __str__(self) -> str:
        return self.bill_number


class BillItem(models.Model):
    TYPE_CONSULTATION = 'CONSULTATION'
    TYPE_MEDICINE = 'MEDICINE'
    TYPE_LAB_TEST = 'LAB_TEST'
    TYPE_THERAPY = 'THERAPY'
    TYPE_PROCEDURE = 'PROCEDURE'
    TYPE_OTHER = 'OTHER'
    TYPE_CHOICES = [
        (TYPE_CONSULTATION, 'Consultation'),
        (TYPE_MEDICINE, 'Medicine'),
        (TYPE_LAB_TEST, 'Lab test'),
        (TYPE_THERAPY, 'Therapy'),
        (TYPE_PROCEDURE, 'Procedure'),
        (TYPE_OTHER, 'Other'),
    ]
    bill = models.ForeignKey(Bill, on_delete=models.CASCADE, related_name='items')
    item_type = models.CharField(max_length=20, choices=TYPE_CHOICES, default=TYPE_OTHER)
    item_name = models.CharField(max_length=255)
    quantity = models.PositiveIntegerField(default=1)
    unit_price = models.DecimalField(max_digits=12, decimal_places=2)
    gst_rate = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal('0'))
    total_amount = models.DecimalField(max_digits=12, decimal_places=2)
    gst_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))

    def __str__(self) -> str:
        return f"{self.item_name} x{self.quantity}"


class Medicine(models.Model):
    generic_name = models.CharField(max_length=255, db_index=True)
    brand = models.CharField(max_length=255, blank=True)
    manufacturer = models.CharField(max_length=255, blank=True)
    dosage_form = models.CharField(max_length=50, blank=True)
    strength = models.CharField(max_length=50, blank=True)
    category = models.CharField(max_length=100, blank=True)
    gst_rate = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal('12'))
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return f"{self.brand or self.generic_name} {self.strength}".strip()


class Supplier(models.Model):
    name = models.CharField(max_length=255)
    phone = models.CharField(max_length=20, blank=True)
    email = models.EmailField(blank=True)
    address = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return self.name


class MedicineStock(models.Model):
    """A received batch of a medicine from a supplier.

    The stock status (expired, low stock, ...) is derived at read time
    and never stored.
    """
    medicine = models.ForeignKey(Medicine, on_delete=models.PROTECT, related_name='stocks')
    supplier = models.ForeignKey(Supplier, on_delete=models.PROTECT, related_name='stocks')
    batch_number = models.CharField(max_length=64)
    quantity = models.PositiveIntegerField()
    available_quantity = models.PositiveIntegerField()
    purchase_price = models.DecimalField(max_digits=12, decimal_places=2)
    mrp = models.DecimalField(max_digits=12, decimal_places=2)
    manufacturing_date = models.DateField(null=True, blank=True)
    expiry_date = models.DateTimeField(db_index=True)
    location = models.CharField(max_length=100, blank=True)
    is_active = models.BooleanField(default=True, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=['medicine', 'batch_number'],
                condition=models.Q(is_active=True),
                name='uniq_active_batch_per_medicine',
            ),
        ]

    def __str__(self) -> str:
        return f"{self.medicine_id}/{self.batch_number}"


class AuditEvent(models.Model):
    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True)
    action = models.CharField(max_length=64)
    object_type = models.CharField(max_length=64, blank=True, null=True)
    object_id = models.IntegerField(blank=True, null=True)
    detail = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=['action', 'created_at'], name='audit_action_created_idx'),
            models.Index(fields=['object_type', 'object_id', 'created_at'], name='audit_object_created_idx'),
        ]

    def __str__(self) -> str:
        return f"{self.action}:{self.user_id}@{self.created_at:%F %T}"
