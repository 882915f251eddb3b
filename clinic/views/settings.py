"""
Hospital settings endpoints.

Any signed-in user may read the settings; only administrators change
them or upload a new logo.
"""
from __future__ import annotations

from rest_framework.decorators import api_view, parser_classes, permission_classes
from rest_framework.parsers import FormParser, MultiPartParser
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from clinic.exceptions import ValidationError
from clinic.permissions import IsAdminRole
from clinic.serializers.settings import HospitalSettingsSerializer
from clinic.services.audit import log_action
from clinic.services.hospital_settings import get_hospital_settings, update_hospital_settings
from clinic.services.storage import store_upload


@api_view(['GET', 'PUT'])
@permission_classes([IsAuthenticated])
def hospital_settings(request):
    if request.method == 'GET':
        return Response({'ok': True, 'data': get_hospital_settings()})
    if not IsAdminRole().has_permission(request, None):
        return Response({'ok': False, 'error': {'code': 'permission_denied',
                                                'message': 'only administrators can change settings'}}, status=403)
    s = HospitalSettingsSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    changes = s.changes()
    data = update_hospital_settings(changes)
    log_action(user=request.user, action='settings_update', object_type='hospital_settings', object_id=None,
               detail={'fields': sorted(changes)})
    return Response({'ok': True, 'data': data})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
@parser_classes([MultiPartParser, FormParser])
def upload_logo(request):
    f = request.FILES.get('file')
    if f is None:
        raise ValidationError({'file': 'no file uploaded'})
    url = store_upload(f, 'logos')
    data = update_hospital_settings({'logo': url})
    log_action(user=request.user, action='settings_logo', object_type='hospital_settings', object_id=None,
               detail={'logo': url})
    return Response({'ok': True, 'data': data}, status=201)
