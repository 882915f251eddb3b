import pytest
from django.core.files.uploadedfile import SimpleUploadedFile
from django.urls import reverse
from rest_framework.test import APIClient

from clinic.models import User
from clinic.services.hospital_settings import get_hospital_settings

pytestmark = pytest.mark.django_db


def test_no_role_bypass_in_login():
    client = APIClient()
    u = User.objects.create_user(username='u1', password='P@ssw0rd1', role=User.ROLE_RECEPTIONIST)
    # Try to bypass by sending role
    r = client.post(reverse('login_view'), {'username': 'u1', 'password': 'P@ssw0rd1', 'role': 'ADMIN'}, format='json')
    assert r.status_code == 200
    assert r.data['role'] == User.ROLE_RECEPTIONIST
    u.refresh_from_db()
    assert u.role == User.ROLE_RECEPTIONIST


def test_login_returns_jwt_and_legacy_token():
    client = APIClient()
    User.objects.create_user(username='u_jwt', password='P@ssw0rd1', role=User.ROLE_DOCTOR)
    r = client.post(reverse('login_view'), {'username': 'u_jwt', 'password': 'P@ssw0rd1'}, format='json')
    assert r.status_code == 200
    assert 'jwt_access' in r.data and r.data['jwt_access']
    assert 'jwt_refresh' in r.data and r.data['jwt_refresh']
    assert 'token' in r.data and r.data['token']

    client.credentials(HTTP_AUTHORIZATION=f"Token {r.data['token']}")
    me = client.get('/api/auth/me')
    assert me.status_code == 200
    assert me.data['user']['username'] == 'u_jwt'

    jwt_client = APIClient()
    jwt_client.credentials(HTTP_AUTHORIZATION=f"Bearer {r.data['jwt_access']}")
    assert jwt_client.get('/api/auth/me').status_code == 200


def test_wrong_password_is_rejected():
    User.objects.create_user(username='u2', password='P@ssw0rd1')
    r = APIClient().post(reverse('login_view'), {'username': 'u2', 'password': 'nope'}, format='json')
    assert r.status_code == 400
    assert r.data['error']['code'] == 'invalid_credentials'


def test_free_text_is_sanitised():
    client = APIClient()
    client.force_authenticate(User.objects.create_user(username='rec', password='x', role=User.ROLE_RECEPTIONIST))
    r = client.post('/api/patients', {'firstName': '<script>alert(1)</script>Meena', 'phone': '98'}, format='json')
    assert r.status_code == 201
    assert '<script>' not in r.data['data']['firstName']


def test_only_admin_changes_hospital_settings():
    admin = User.objects.create_user(username='adm', password='x', role=User.ROLE_ADMIN)
    nurse = User.objects.create_user(username='nurse', password='x', role=User.ROLE_NURSE)
    client = APIClient()

    client.force_authenticate(nurse)
    assert client.get('/api/settings').data['data']['tokenPrefix'] == 'T'
    assert client.put('/api/settings', {'tokenPrefix': 'Q'}, format='json').status_code == 403

    client.force_authenticate(admin)
    templates = [{'name': 'Night', 'shortCode': 'N', 'startTime': '20:00', 'endTime': '23:00', 'maxTokens': 10}]
    r = client.put('/api/settings', {'tokenPrefix': 'Q', 'sessionTemplates': templates}, format='json')
    assert r.status_code == 200
    stored = get_hospital_settings()
    assert stored['tokenPrefix'] == 'Q'
    assert stored['sessionTemplates'] == [dict(templates[0], isActive=True)]


def test_logo_upload_checks_type(settings, tmp_path):
    settings.MEDIA_ROOT = tmp_path / 'media'
    admin = User.objects.create_user(username='adm2', password='x', role=User.ROLE_ADMIN)
    client = APIClient()
    client.force_authenticate(admin)

    text = SimpleUploadedFile('notes.txt', b'hello', content_type='text/plain')
    assert client.post('/api/settings/logo', {'file': text}, format='multipart').status_code == 400

    png = SimpleUploadedFile('logo.PNG', b'\x89PNG\r\n\x1a\n', content_type='image/png')
    r = client.post('/api/settings/logo', {'file': png}, format='multipart')
    assert r.status_code == 201
    assert r.data['data']['logo'].startswith('/media/logos/')
    assert r.data['data']['logo'].endswith('.png')
