"""
Structured logging with PHI/PII protection.

Anamnesis content (intake answers, diff values) and request fingerprints
must never reach log sinks; everything that goes through the JSON
formatter or sanitize_dict is scrubbed against SENSITIVE_FIELDS.
"""
import json
import logging
from datetime import datetime, timezone

from .correlation import get_request_id, get_trace_id, get_user_id, get_user_roles


REDACTED = '[REDACTED]'

# Fields that should NEVER be logged (PHI/PII)
SENSITIVE_FIELDS = {
    'password',
    'token',
    'secret',
    'api_key',
    'first_name',
    'last_name',
    'email',
    'phone',
    'birth_date',
    # Anamnesis content
    'chief_complaint',
    'payload',
    'old_value',
    'new_value',
    'old_value_display',
    'new_value_display',
    'reason',
    'notes',
    # Request fingerprints
    'ip_address',
    'user_agent',
    'session_id',
}

# Standard LogRecord attributes that are not copied as extra fields
_RESERVED_ATTRS = {
    'name', 'msg', 'args', 'created', 'filename', 'funcName', 'levelname',
    'levelno', 'lineno', 'module', 'msecs', 'pathname', 'process',
    'processName', 'relativeCreated', 'thread', 'threadName', 'exc_info',
    'exc_text', 'stack_info', 'taskName', 'message', 'asctime',
}


class CorrelationFilter(logging.Filter):
    """
    Logging filter that injects correlation context into log records.
    """

    def filter(self, record):
        """Add correlation fields to log record."""
        record.request_id = get_request_id() or '-'
        record.trace_id = get_trace_id() or '-'
        record.user_id = get_user_id() or '-'
        record.user_roles = ','.join(get_user_roles()) or '-'
        return True


class SanitizedJSONFormatter(logging.Formatter):
    """
    JSON formatter that sanitizes sensitive fields.
    """

    def format(self, record):
        log_data = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'request_id': getattr(record, 'request_id', '-'),
            'trace_id': getattr(record, 'trace_id', '-'),
            'user_id': getattr(record, 'user_id', '-'),
            'user_roles': getattr(record, 'user_roles', '-'),
        }

        # Extra fields (from extra={} in logging calls)
        for key, value in record.__dict__.items():
            if key in log_data or key.startswith('_') or key in _RESERVED_ATTRS:
                continue
            if key.lower() in SENSITIVE_FIELDS:
                log_data[key] = REDACTED
            else:
                log_data[key] = _sanitize_value(value)

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def _sanitize_value(value):
    """Sanitize a value recursively."""
    if isinstance(value, dict):
        return sanitize_dict(value)
    if isinstance(value, (list, tuple)):
        return [_sanitize_value(v) for v in value]
    return value


def get_sanitized_logger(name):
    """
    Get a logger with correlation filter applied.

    Usage:
        logger = get_sanitized_logger(__name__)
        logger.info('Event', extra={'event': 'anamnesis_committed', 'version_number': 3})
    """
    logger = logging.getLogger(name)

    if not any(isinstance(f, CorrelationFilter) for f in logger.filters):
        logger.addFilter(CorrelationFilter())

    return logger


def sanitize_dict(data):
    """
    Return a copy of ``data`` with sensitive keys redacted at any depth.
    """
    if not isinstance(data, dict):
        return data

    sanitized = {}
    for key, value in data.items():
        if str(key).lower() in SENSITIVE_FIELDS:
            sanitized[key] = REDACTED
        else:
            sanitized[key] = _sanitize_value(value)

    return sanitized
