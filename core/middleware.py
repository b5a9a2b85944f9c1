import logging
import time
import uuid

logger = logging.getLogger(__name__)


class RequestIDMiddleware:
    """Attach an ``X-Request-ID`` to every request and log its outcome."""
    HEADER = 'HTTP_X_REQUEST_ID'

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        request_id = (request.META.get(self.HEADER) or '').strip()[:64] or uuid.uuid4().hex
        request.request_id = request_id
        started = time.monotonic()
        response = self.get_response(request)
        elapsed_ms = (time.monotonic() - started) * 1000
        response['X-Request-ID'] = request_id
        logger.info('%s %s -> %s (%.1fms) rid=%s',
                    request.method, request.path, response.status_code, elapsed_ms, request_id)
        return response
