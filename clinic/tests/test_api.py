"""
Integration tests for the OPD backend API.

These tests exercise booking against session capacity, the appointment
state machine, door check-in, billing and pharmacy stock through the
HTTP layer using Django REST Framework's APIClient.

To run the tests:

```
pytest -q clinic/tests
```
"""
from datetime import time, timedelta
from decimal import Decimal

from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient, APITestCase

from ..models import Appointment, AppointmentSession, Medicine, MedicineStock, Patient, Supplier, User


class ClinicAPITests(APITestCase):
    def setUp(self) -> None:
        """Staff for every role, one patient and a two-token session for today."""
        self.admin_user = User.objects.create_user(username="admin1", password="P@ssw0rd1", role=User.ROLE_ADMIN)
        self.receptionist = User.objects.create_user(
            username="reception1", password="P@ssw0rd1", role=User.ROLE_RECEPTIONIST,
        )
        self.doctor = User.objects.create_user(
            username="doctor1", password="P@ssw0rd1", role=User.ROLE_DOCTOR, consultation_fee=Decimal("500.00"),
        )
        self.pharmacist = User.objects.create_user(
            username="pharmacy1", password="P@ssw0rd1", role=User.ROLE_PHARMACIST,
        )
        self.patient = Patient.objects.create(first_name="Ravi", last_name="Kumar", phone="9811111111")
        self.session = AppointmentSession.objects.create(
            date=timezone.localdate(),
            name="Morning",
            short_code="",
            start_time=time(9, 0),
            end_time=time(13, 0),
            max_tokens=2,
            doctor=self.doctor,
        )

    def authenticate(self, user: User) -> APIClient:
        """Return an authenticated APIClient for the given user."""
        client = APIClient()
        client.force_authenticate(user=user)
        return client

    def book(self, client: APIClient, **extra):
        payload = {"sessionId": self.session.id, "patientId": self.patient.id}
        payload.update(extra)
        return client.post("/api/appointments/book", payload, format="json")

    def test_booking_until_session_is_full(self):
        client = self.authenticate(self.receptionist)
        first = self.book(client)
        self.assertEqual(first.status_code, status.HTTP_201_CREATED)
        self.assertEqual(first.data["data"]["tokenNumber"], "T1")
        self.assertEqual(first.data["data"]["status"], Appointment.STATUS_SCHEDULED)
        self.assertEqual(first.data["data"]["doctorId"], self.doctor.id)

        second = self.book(client, priority=Appointment.PRIORITY_EMERGENCY)
        self.assertEqual(second.data["data"]["tokenNumber"], "T2")

        third = self.book(client)
        self.assertEqual(third.status_code, status.HTTP_409_CONFLICT)
        self.assertFalse(third.data["ok"])
        self.assertEqual(third.data["error"]["code"], "capacity_exceeded")
        self.session.refresh_from_db()
        self.assertEqual(self.session.current_tokens, 2)

        detail = client.get(f"/api/sessions/{self.session.id}")
        self.assertEqual(detail.data["data"]["availableSlots"], 0)

        queue = client.get(f"/api/sessions/{self.session.id}/queue")
        self.assertEqual([row["tokenNumber"] for row in queue.data["data"]], ["T2", "T1"])

    def test_booking_errors(self):
        client = self.authenticate(self.receptionist)
        missing = client.post("/api/appointments/book", {"patientId": self.patient.id}, format="json")
        self.assertEqual(missing.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(missing.data["error"]["code"], "validation_error")

        unknown = self.book(client, sessionId=999999)
        self.assertEqual(unknown.status_code, status.HTTP_404_NOT_FOUND)

        self.session.is_active = False
        self.session.save()
        inactive = self.book(client)
        self.assertEqual(inactive.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(inactive.data["error"]["code"], "session_inactive")

    def test_pharmacist_cannot_book_and_anonymous_is_rejected(self):
        response = self.book(self.authenticate(self.pharmacist))
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data["error"]["code"], "permission_denied")
        anonymous = self.book(APIClient())
        self.assertIn(anonymous.status_code, (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN))

    def test_status_changes_are_recorded(self):
        client = self.authenticate(self.receptionist)
        appointment_id = self.book(client).data["data"]["id"]

        bad = client.post(f"/api/appointments/{appointment_id}/status", {"status": "COMPLETED"}, format="json")
        self.assertEqual(bad.status_code, status.HTTP_400_BAD_REQUEST)

        ok = client.post(f"/api/appointments/{appointment_id}/status",
                         {"status": "ARRIVED", "reason": "at reception"}, format="json")
        self.assertEqual(ok.status_code, status.HTTP_200_OK)
        self.assertEqual(ok.data["newStatus"], "ARRIVED")

        detail = client.get(f"/api/appointments/{appointment_id}")
        history = detail.data["data"]["transitionHistory"]
        self.assertEqual([h["to"] for h in history], ["SCHEDULED", "ARRIVED"])
        self.assertEqual(history[1]["operator"], "reception1")
        self.assertEqual(history[1]["reason"], "at reception")

    def test_check_in_returns_position(self):
        client = self.authenticate(self.receptionist)
        self.book(client)
        self.book(client)
        response = client.post("/api/appointments/check-in",
                               {"tokenNumber": "T2", "doctorId": self.doctor.id}, format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["data"]["position"], 1)
        self.assertTrue(Appointment.objects.get(token_number="T2").at_door)

    def test_only_admin_creates_sessions(self):
        payload = {
            "date": timezone.localdate().isoformat(), "name": "Evening", "shortCode": "E",
            "startTime": "17:00", "endTime": "20:00", "maxTokens": 30,
        }
        denied = self.authenticate(self.receptionist).post("/api/sessions", payload, format="json")
        self.assertEqual(denied.status_code, status.HTTP_403_FORBIDDEN)

        client = self.authenticate(self.admin_user)
        created = client.post("/api/sessions", payload, format="json")
        self.assertEqual(created.status_code, status.HTTP_201_CREATED)
        self.assertEqual(created.data["data"]["availableSlots"], 30)
        duplicate = client.post("/api/sessions", payload, format="json")
        self.assertEqual(duplicate.status_code, status.HTTP_409_CONFLICT)

        backwards = client.post("/api/sessions", dict(payload, shortCode="Z", endTime="16:00"), format="json")
        self.assertEqual(backwards.status_code, status.HTTP_400_BAD_REQUEST)

    def test_bill_preview_and_create(self):
        client = self.authenticate(self.doctor)
        created = client.post("/api/prescriptions/create", {
            "patientId": self.patient.id,
            "diagnosis": "gastritis",
            "medicines": [{"name": "Pantoprazole", "dosage": "1", "frequency": "once daily", "duration": "7 days"}],
        }, format="json")
        self.assertEqual(created.status_code, status.HTTP_201_CREATED)
        prescription_id = created.data["data"]["id"]

        pending = client.get("/api/bills/pending")
        self.assertEqual([p["id"] for p in pending.data["data"]], [prescription_id])
        self.assertEqual(pending.data["data"][0]["pendingItems"][0]["quantity"], 7)

        items = [{"itemType": "MEDICINE", "itemName": "Pantoprazole 40mg", "unitPrice": "100", "quantity": 2,
                  "gstRate": "12"}]
        preview = client.post("/api/bills/preview", {
            "prescriptionId": prescription_id, "items": items, "discountAmount": "50",
        }, format="json")
        self.assertEqual(preview.status_code, status.HTTP_200_OK)
        self.assertEqual(preview.data["data"]["finalAmount"], Decimal("674.00"))

        bill = client.post("/api/bills/create", {
            "prescriptionId": prescription_id, "items": items, "discountAmount": "50", "paymentMethod": "UPI",
        }, format="json")
        self.assertEqual(bill.status_code, status.HTTP_201_CREATED)
        self.assertEqual(bill.data["data"]["cgstAmount"], Decimal("12.00"))
        self.assertEqual(bill.data["data"]["finalAmount"], Decimal("674.00"))
        self.assertEqual(len(bill.data["data"]["items"]), 1)

        again = client.post("/api/bills/create", {"prescriptionId": prescription_id, "items": items}, format="json")
        self.assertEqual(again.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(client.get("/api/bills/pending").data["data"], [])

    def test_stock_listing_is_classified(self):
        medicine = Medicine.objects.create(generic_name="Azithromycin", brand="Azee")
        supplier = Supplier.objects.create(name="Apex Pharma")
        MedicineStock.objects.create(
            medicine=medicine, supplier=supplier, batch_number="AZ-1", quantity=20, available_quantity=5,
            purchase_price=Decimal("10"), mrp=Decimal("15"), expiry_date=timezone.now() + timedelta(days=10),
        )
        denied = self.authenticate(self.receptionist).get("/api/pharmacy/stock")
        self.assertEqual(denied.status_code, status.HTTP_403_FORBIDDEN)

        client = self.authenticate(self.pharmacist)
        response = client.get("/api/pharmacy/stock")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        row = response.data["data"][0]
        self.assertEqual(row["status"], "NEAR_EXPIRY")
        self.assertEqual(row["alerts"], ["EXPIRING_SOON", "LOW_STOCK"])

        adjusted = client.post(f"/api/pharmacy/stock/{row['id']}/adjust",
                               {"adjustmentType": "DECREASE", "quantity": 5, "reason": "dispensed"}, format="json")
        self.assertEqual(adjusted.data["data"]["status"], "OUT_OF_STOCK")

    def test_dashboard_counts(self):
        self.book(self.authenticate(self.receptionist))
        response = self.authenticate(self.admin_user).get("/api/admin/dashboard")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["data"]["appointments"]["byStatus"]["SCHEDULED"], 1)
        denied = self.authenticate(self.doctor).get("/api/admin/dashboard")
        self.assertEqual(denied.status_code, status.HTTP_403_FORBIDDEN)
