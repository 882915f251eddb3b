from datetime import time

import pytest
from django.core.cache import cache
from django.utils import timezone

from clinic.models import AppointmentSession, Patient, User


@pytest.fixture(autouse=True)
def isolated_hospital_settings(settings, tmp_path):
    """Throttle counters and the settings document must not leak between tests."""
    settings.HOSPITAL_SETTINGS_FILE = tmp_path / "hospital-settings.json"
    settings.TOKEN_NUMBER_PADDING = 0
    settings.CANCELLATION_RELEASES_TOKEN = False
    settings.BILL_NEGATIVE_TOTAL_POLICY = "reject"
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def patient(db):
    return Patient.objects.create(first_name="Asha", last_name="Rao", phone="9800000001")


@pytest.fixture
def doctor(db):
    return User.objects.create_user(
        username="dr_mehta", password="P@ssw0rd1", role=User.ROLE_DOCTOR, consultation_fee="500.00",
    )


@pytest.fixture
def make_session(db):
    def _make(**overrides):
        values = {
            "date": timezone.localdate(),
            "name": "Morning",
            "short_code": "",
            "start_time": time(9, 0),
            "end_time": time(13, 0),
            "max_tokens": 50,
        }
        values.update(overrides)
        return AppointmentSession.objects.create(**values)
    return _make
