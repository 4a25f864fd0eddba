"""
Domain errors for the hostel API and the DRF exception handler that renders them.

Every error response has the same shape::

    {"status": "error", "kind": "<stable code>", "message": "...", "errors": [...]}

``kind`` is machine readable and never changes for a given failure, so clients
can branch on it without parsing messages.
"""

import logging

from django.core.exceptions import PermissionDenied as DjangoPermissionDenied
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import DatabaseError, IntegrityError
from django.http import Http404
from django.utils.translation import gettext_lazy as _
from rest_framework import status
from rest_framework.exceptions import APIException, ValidationError
from rest_framework.fields import get_error_detail
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class NotFound(APIException):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = _('Not found.')
    default_code = 'not_found'


class Forbidden(APIException):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = _('You are not allowed to perform this action.')
    default_code = 'forbidden'


class InvalidState(APIException):
    """The entity exists but its current state does not allow the operation."""
    status_code = status.HTTP_409_CONFLICT
    default_detail = _('Operation not allowed in the current state.')
    default_code = 'invalid_state'


class Conflict(APIException):
    """
    Uniqueness or idempotency violation.

    Callers may pass a more specific code, e.g. ``already_upvoted``.
    """
    status_code = status.HTTP_409_CONFLICT
    default_detail = _('Conflicting request.')
    default_code = 'conflict'


class InvalidInput(ValidationError):
    """
    Field-level validation failure raised from services.

    Args:
        field: name of the offending field
        message: human readable reason
    """
    default_code = 'validation_error'

    def __init__(self, field, message):
        super().__init__({field: [message]}, code='validation_error')


class ServiceUnavailable(APIException):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = _('The service is temporarily unavailable, try again later.')
    default_code = 'unavailable'


KIND_ALIASES = {
    'permission_denied': 'forbidden',
    'invalid': 'validation_error',
    'required': 'validation_error',
    'parse_error': 'validation_error',
}


def _flatten_errors(detail, field=None):
    """Turn DRF's nested error detail into a flat [{field, message}] list."""
    errors = []
    if isinstance(detail, dict):
        for key, value in detail.items():
            name = key if field is None else f"{field}.{key}"
            errors.extend(_flatten_errors(value, name))
    elif isinstance(detail, list):
        for item in detail:
            errors.extend(_flatten_errors(item, field))
    else:
        errors.append({'field': field or 'non_field_errors', 'message': str(detail)})
    return errors


def _kind_for(exc):
    if isinstance(exc, ValidationError):
        return 'validation_error'
    code = getattr(exc.detail, 'code', None) or exc.default_code
    return KIND_ALIASES.get(code, code)


def api_exception_handler(exc, context):
    """
    Render every API error in the shared envelope.

    Django validation errors become 400s, integrity races become conflicts and
    other database failures become 503 so storage outages are distinguishable
    from domain rejections.
    """
    if isinstance(exc, Http404):
        exc = NotFound()
    elif isinstance(exc, DjangoPermissionDenied):
        exc = Forbidden()
    elif isinstance(exc, DjangoValidationError):
        exc = ValidationError(detail=get_error_detail(exc))
    elif isinstance(exc, IntegrityError):
        logger.warning(f"Integrity error mapped to conflict: {exc}")
        exc = Conflict()
    elif isinstance(exc, DatabaseError):
        logger.error(f"Database unavailable: {exc}")
        exc = ServiceUnavailable()

    response = exception_handler(exc, context)
    if response is None:
        return None

    kind = _kind_for(exc)
    if isinstance(exc, ValidationError):
        errors = _flatten_errors(exc.detail)
        message = str(_('Validation failed'))
    else:
        errors = []
        message = str(exc.detail)

    if response.status_code >= 500:
        logger.error(f"{kind}: {message}")
    elif kind not in ('not_authenticated', 'validation_error'):
        view = context.get('view')
        logger.warning(f"{kind} in {view.__class__.__name__ if view else 'api'}: {message}")

    response.data = {
        'status': 'error',
        'kind': kind,
        'message': message,
        'errors': errors,
    }
    return response
