"""
API error taxonomy and the unified exception handler.

Every error leaves the API as ``{'ok': False, 'error': {'code', 'message'}}``.
The domain exceptions below are raised from the service layer; views never
build error responses by hand.
"""
import logging

from rest_framework import status
from rest_framework.exceptions import APIException, ValidationError
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

logger = logging.getLogger(__name__)


class NotFoundOrForbidden(APIException):
    """Entity absent, or the caller lacks the relationship to it.

    The two cases share one response so existence is never leaked.
    """
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = 'Not found.'
    default_code = 'not_found'


class StateConflict(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'Entity is not in the required state for this operation.'
    default_code = 'invalid_state'


class ResultTampered(APIException):
    """Recomputed digest differs from the stored one."""
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Result integrity check failed; the stored payload does not match its digest.'
    default_code = 'result_tampered'


class AccessDenied(APIException):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = 'Access denied.'
    default_code = 'access_denied'


class StorageFailure(APIException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = 'Storage error.'
    default_code = 'storage_error'


def _error_code(exc, default: str) -> str:
    if isinstance(exc, ValidationError):
        return 'invalid'
    return getattr(exc, 'default_code', None) or default


def api_exception_handler(exc, context):
    resp = drf_exception_handler(exc, context)
    if resp is None:
        view = context.get('view')
        logger.exception('unhandled error in %s', getattr(view, '__class__', type(view)).__name__, exc_info=exc)
        return Response({'ok': False, 'error': {'code': 'server_error', 'message': 'Internal server error.'}}, status=500)
    # normalize response
    if isinstance(resp.data, dict) and set(resp.data) == {'detail'}:
        detail = resp.data['detail']
    else:
        detail = resp.data
    return Response(
        {'ok': False, 'error': {'code': _error_code(exc, 'api_error'), 'message': detail}},
        status=resp.status_code,
        headers={k: v for k, v in resp.items() if k in ('WWW-Authenticate', 'Retry-After')},
    )
