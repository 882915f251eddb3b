import logging
import time

from django.conf import settings

logger = logging.getLogger(__name__)


class RequestTimingMiddleware:
    """Log method, path, status and duration of every API request."""
    PREFIX = '/api/'

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        path = request.path or ''
        if not path.startswith(self.PREFIX):
            return self.get_response(request)
        started = time.monotonic()
        response = self.get_response(request)
        elapsed_ms = (time.monotonic() - started) * 1000
        level = logging.WARNING if elapsed_ms > settings.SLOW_REQUEST_MS else logging.INFO
        logger.log(level, '%s %s -> %s in %.1fms', request.method, path, response.status_code, elapsed_ms)
        return response
