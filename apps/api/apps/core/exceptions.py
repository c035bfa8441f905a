"""
Project-wide API error envelope.

Every error leaves the API as::

    {"error": {"code": "...", "message": "...", "details": {...}}}

Domain services raise DomainError subclasses; DRF's own exceptions
(validation, authentication, throttling, ...) are folded into the same
shape by api_exception_handler.
"""

import logging

from django.core.exceptions import PermissionDenied as DjangoPermissionDenied
from django.http import Http404
from rest_framework import exceptions as drf_exceptions
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

from .observability.metrics import metrics

logger = logging.getLogger(__name__)


class DomainError(Exception):
    """Base class for errors raised by domain services."""

    code = 'DOMAIN_ERROR'
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = 'Domain rule violated'

    def __init__(self, message=None, details=None):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)


_DRF_CODES = {
    drf_exceptions.ValidationError: 'VALIDATION_ERROR',
    drf_exceptions.ParseError: 'VALIDATION_ERROR',
    drf_exceptions.NotAuthenticated: 'UNAUTHENTICATED',
    drf_exceptions.AuthenticationFailed: 'UNAUTHENTICATED',
    drf_exceptions.PermissionDenied: 'FORBIDDEN',
    drf_exceptions.NotFound: 'NOT_FOUND',
    drf_exceptions.MethodNotAllowed: 'METHOD_NOT_ALLOWED',
    drf_exceptions.Throttled: 'THROTTLED',
}


def error_response(code, message, details=None, status_code=400):
    return Response(
        {'error': {'code': code, 'message': message, 'details': details or {}}},
        status=status_code,
    )


def api_exception_handler(exc, context):
    """DRF EXCEPTION_HANDLER producing the error envelope."""
    view_name = context.get('view').__class__.__name__ if context.get('view') else 'unknown'

    if isinstance(exc, DomainError):
        metrics.exceptions_total.labels(
            exception_type=exc.__class__.__name__,
            location=view_name,
        ).inc()
        return error_response(exc.code, exc.message, exc.details, exc.status_code)

    if isinstance(exc, Http404):
        exc = drf_exceptions.NotFound()
    elif isinstance(exc, DjangoPermissionDenied):
        exc = drf_exceptions.PermissionDenied()

    response = exception_handler(exc, context)
    if response is None:
        metrics.exceptions_total.labels(
            exception_type=exc.__class__.__name__,
            location=view_name,
        ).inc()
        logger.exception(
            'Unhandled API exception',
            extra={'event': 'unhandled_exception', 'view': view_name},
            exc_info=exc,
        )
        return error_response(
            'INTERNAL_ERROR',
            'An unexpected error occurred',
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    code = 'ERROR'
    for exc_class, mapped in _DRF_CODES.items():
        if isinstance(exc, exc_class):
            code = mapped
            break

    if isinstance(exc, drf_exceptions.ValidationError):
        message = 'Invalid request'
        details = exc.detail if isinstance(exc.detail, dict) else {'non_field_errors': exc.detail}
    else:
        message = str(exc.detail) if hasattr(exc, 'detail') else str(exc)
        details = {}

    response.data = {'error': {'code': code, 'message': message, 'details': details}}
    return response
