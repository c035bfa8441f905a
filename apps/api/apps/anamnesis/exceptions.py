"""
Anamnesis domain errors.

All of them render through apps.core.exceptions.api_exception_handler
as ``{"error": {"code", "message", "details"}}``.
"""
from rest_framework import status

from apps.core.exceptions import DomainError


class NotFound(DomainError):
    """Aggregate, version or audit entry absent, or not owned by the path's patient."""
    code = 'NOT_FOUND'
    status_code = status.HTTP_404_NOT_FOUND
    default_message = 'Resource not found'


class Forbidden(DomainError):
    code = 'FORBIDDEN'
    status_code = status.HTTP_403_FORBIDDEN
    default_message = 'Your role does not allow this operation'


class ValidationError(DomainError):
    code = 'VALIDATION_ERROR'
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = 'Invalid request'


class VersionConflict(DomainError):
    """
    Optimistic concurrency failure: the stored version number no longer
    matches the one the caller based its change on. Re-read and retry.
    """
    code = 'VERSION_CONFLICT'
    status_code = status.HTTP_409_CONFLICT
    default_message = 'The anamnesis was modified by another user. Reload and try again.'

    def __init__(self, expected_version_number=None, actual_version_number=None, message=None):
        self.expected_version_number = expected_version_number
        self.actual_version_number = actual_version_number
        super().__init__(
            message,
            details={
                'expected_version_number': expected_version_number,
                'current_version_number': actual_version_number,
            },
        )


class IntegrityViolation(DomainError):
    """A stored version's content no longer matches its integrity hash."""
    code = 'INTEGRITY_VIOLATION'
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_message = 'Stored version failed integrity verification'

    def __init__(self, version_id=None, version_number=None, message=None):
        self.version_id = version_id
        self.version_number = version_number
        super().__init__(
            message,
            details={
                'version_id': str(version_id) if version_id else None,
                'version_number': version_number,
            },
        )


class ImmutableRecordError(RuntimeError):
    """Raised when code attempts to update or delete an append-only row."""
