"""
URL mappings for the OPD backend API.

Trailing slashes are omitted; ``APPEND_SLASH`` is off.
"""
from django.urls import include, path

from .auth_views import jwt_logout_view, jwt_refresh_view, login_view, me_view
from .views import appointments, bills, health, patients, pharmacy, prescriptions, sessions
from .views.dashboard import admin_dashboard
from .views.settings import hospital_settings, upload_logo

urlpatterns = [
    path('metrics', include('django_prometheus.urls')),
    path('healthz', health.healthz),
    # Authentication
    path('api/auth/login', login_view, name='login_view'),
    path('api/auth/refresh', jwt_refresh_view),
    path('api/auth/logout', jwt_logout_view),
    path('api/auth/me', me_view),
    # Dashboard and settings
    path('api/admin/dashboard', admin_dashboard),
    path('api/settings', hospital_settings),
    path('api/settings/logo', upload_logo),
    # Patients
    path('api/patients', patients.patients),
    path('api/patients/<int:pk>', patients.patient_detail),
    # Sessions
    path('api/sessions', sessions.sessions),
    path('api/sessions/ensure', sessions.ensure_sessions),
    path('api/sessions/<int:pk>', sessions.session_detail),
    path('api/sessions/<int:pk>/queue', sessions.session_queue_view),
    # Appointments
    path('api/appointments', appointments.list_appointments),
    path('api/appointments/book', appointments.book_appointment),
    path('api/appointments/check-in', appointments.appointment_check_in),
    path('api/appointments/<int:pk>', appointments.appointment_detail),
    path('api/appointments/<int:pk>/status', appointments.appointment_update_status),
    path('api/appointments/<int:pk>/priority', appointments.appointment_set_priority),
    # Prescriptions
    path('api/prescriptions', prescriptions.list_prescriptions),
    path('api/prescriptions/create', prescriptions.create_prescription),
    path('api/prescriptions/<int:pk>', prescriptions.prescription_detail),
    # Billing
    path('api/bills', bills.list_bills),
    path('api/bills/create', bills.create_bill),
    path('api/bills/preview', bills.preview_bill),
    path('api/bills/pending', bills.pending_billing),
    path('api/bills/<int:pk>', bills.bill_detail),
    # Pharmacy
    path('api/pharmacy/medicines', pharmacy.medicines),
    path('api/pharmacy/suppliers', pharmacy.suppliers),
    path('api/pharmacy/stock', pharmacy.stock),
    path('api/pharmacy/stock/<int:pk>', pharmacy.stock_detail),
    path('api/pharmacy/stock/<int:pk>/adjust', pharmacy.stock_adjust),
]
