"""
Request correlation middleware.

Generates/propagates X-Request-ID and injects it into logs. The actor
context is bound twice: once from the session user (if any) when the
request enters, and again from DRF views once JWT authentication has
resolved ``request.user``.
"""
import uuid
import time
import logging
from django.utils.deprecation import MiddlewareMixin
from threading import local

# Thread-local storage for request context
_request_context = local()

logger = logging.getLogger(__name__)


def get_request_id():
    """Get current request ID from thread-local storage."""
    return getattr(_request_context, 'request_id', None)


def get_trace_id():
    """Get current trace ID from thread-local storage."""
    return getattr(_request_context, 'trace_id', None)


def get_user_id():
    """Get current user ID from thread-local storage."""
    return getattr(_request_context, 'user_id', None)


def get_user_roles():
    """Get current user roles from thread-local storage."""
    return getattr(_request_context, 'user_roles', [])


def bind_user_context(user):
    """Store the authenticated actor (id + role names) for log correlation."""
    if user is not None and user.is_authenticated:
        _request_context.user_id = str(user.id)
        _request_context.user_roles = sorted(
            user.user_roles.values_list('role__name', flat=True)
        )
    else:
        _request_context.user_id = None
        _request_context.user_roles = []


class RequestCorrelationMiddleware(MiddlewareMixin):
    """
    Middleware to handle request correlation.

    - Generates/propagates X-Request-ID
    - Extracts trace context from headers
    - Stores context in thread-local for logging
    - Adds correlation headers to response
    - Tracks request duration and counts requests
    """

    REQUEST_ID_HEADER = 'HTTP_X_REQUEST_ID'
    TRACE_ID_HEADER = 'HTTP_X_TRACE_ID'

    def process_request(self, request):
        """Process incoming request and setup correlation context."""
        request_id = request.META.get(self.REQUEST_ID_HEADER) or str(uuid.uuid4())
        trace_id = request.META.get(self.TRACE_ID_HEADER)

        request.request_id = request_id
        request.trace_id = trace_id
        request.start_time = time.time()

        _request_context.request_id = request_id
        _request_context.trace_id = trace_id

        bind_user_context(getattr(request, 'user', None))

    def process_response(self, request, response):
        """Add correlation headers to response."""
        from .metrics import metrics

        if hasattr(request, 'request_id'):
            response['X-Request-ID'] = request.request_id

        if getattr(request, 'trace_id', None):
            response['X-Trace-ID'] = request.trace_id

        metrics.http_requests_total.labels(
            path=_route_template(request),
            method=request.method,
            status=str(response.status_code),
        ).inc()

        if hasattr(request, 'start_time'):
            duration_ms = (time.time() - request.start_time) * 1000

            logger.info(
                'Request completed',
                extra={
                    'event': 'http_request_completed',
                    'path': request.path,
                    'method': request.method,
                    'status_code': response.status_code,
                    'duration_ms': round(duration_ms, 2),
                }
            )

        clear_request_context()
        return response

    def process_exception(self, request, exception):
        """Log exceptions with correlation context."""
        from .metrics import metrics

        duration_ms = 0
        if hasattr(request, 'start_time'):
            duration_ms = (time.time() - request.start_time) * 1000

        metrics.exceptions_total.labels(
            exception_type=exception.__class__.__name__,
            location='middleware',
        ).inc()

        logger.error(
            f'Request failed: {exception.__class__.__name__}',
            exc_info=True,
            extra={
                'event': 'http_request_exception',
                'path': request.path,
                'method': request.method,
                'exception_type': exception.__class__.__name__,
                'duration_ms': round(duration_ms, 2),
            }
        )


def _route_template(request):
    """Use the matched URL pattern as the metric label to keep cardinality bounded."""
    match = getattr(request, 'resolver_match', None)
    if match is not None and match.route:
        return match.route
    return 'unmatched'


def clear_request_context():
    """Clear thread-local request context (useful for testing)."""
    for attr in ['request_id', 'trace_id', 'user_id', 'user_roles']:
        if hasattr(_request_context, attr):
            delattr(_request_context, attr)
