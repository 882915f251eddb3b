"""
Domain errors and the project-wide DRF exception handler.

Every error leaves the API as ``{'ok': False, 'error': {'code', 'message'}}``.
Domain services raise the classes below; anything DRF does not know
about becomes a logged 500.
"""
import logging

from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

logger = logging.getLogger(__name__)


class ValidationError(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'invalid input'
    default_code = 'validation_error'


class NotFoundError(APIException):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = 'not found'
    default_code = 'not_found'


class SessionNotFoundError(NotFoundError):
    default_detail = 'session not found'


class SessionInactiveError(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'session is not active'
    default_code = 'session_inactive'


class CapacityExceededError(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'no slots available in this session'
    default_code = 'capacity_exceeded'


class ConflictError(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'conflict'
    default_code = 'conflict'


def _error_code(exc) -> str:
    code = getattr(exc, 'default_code', None)
    if isinstance(exc, APIException) and code:
        # DRF's own ValidationError carries 'invalid' as its code
        if code == 'invalid':
            return 'validation_error'
        return code
    return 'api_error'


def api_exception_handler(exc, context):
    resp = drf_exception_handler(exc, context)
    if resp is None:
        logger.exception('unhandled error in %s', context.get('view'))
        return Response({'ok': False, 'error': {'code': 'server_error', 'message': str(exc)}}, status=500)
    # normalize response
    if isinstance(resp.data, dict):
        detail = resp.data.get('detail') or resp.data
    elif isinstance(resp.data, list):
        detail = resp.data[0] if len(resp.data) == 1 else resp.data
    else:
        detail = str(resp.data)
    out = Response({'ok': False, 'error': {'code': _error_code(exc), 'message': detail}}, status=resp.status_code)
    for header in ('WWW-Authenticate', 'Retry-After'):
        if header in resp:
            out[header] = resp[header]
    return out
