"""
Domain events logging helpers.

Provides structured event logging for anamnesis operations.
"""
from typing import Dict, Optional
from .logging import get_sanitized_logger, sanitize_dict

logger = get_sanitized_logger(__name__)


def log_domain_event(
    event_name: str,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    entity_ids: Optional[Dict[str, str]] = None,
    result: str = 'success',
    **extra_fields
):
    """
    Log a domain event with structured data.

    Args:
        event_name: Name of the event (e.g., 'anamnesis_committed')
        entity_type: Type of entity (e.g., 'PatientAnamnesis')
        entity_id: ID of primary entity
        entity_ids: Dictionary of related entity IDs
        result: Result of operation (success, failure, conflict, ...)
        **extra_fields: Additional fields to log (will be sanitized)

    Example:
        log_domain_event(
            'anamnesis_committed',
            entity_type='PatientAnamnesis',
            entity_id=str(anamnesis.id),
            entity_ids={'patient_id': str(anamnesis.patient_id)},
            action='UPDATE',
            version_number=4,
        )
    """
    event_data = {
        'event': event_name,
        'result': result,
    }

    if entity_type:
        event_data['entity_type'] = entity_type

    if entity_id:
        event_data['entity_id'] = entity_id

    if entity_ids:
        event_data.update(entity_ids)

    event_data.update(sanitize_dict(extra_fields))

    if result in ['failure', 'error', 'integrity_violation']:
        logger.error(f'Domain event: {event_name}', extra=event_data)
    elif result in ['warning', 'conflict', 'denied']:
        logger.warning(f'Domain event: {event_name}', extra=event_data)
    else:
        logger.info(f'Domain event: {event_name}', extra=event_data)


def log_consistency_checkpoint(
    checkpoint_name: str,
    entity_ids: Dict[str, str],
    checks_passed: Dict[str, bool],
    **extra_fields
):
    """
    Log a consistency checkpoint event.

    Used to verify data integrity at critical points (e.g. a stored
    version's hash before it is restored).
    """
    all_passed = all(checks_passed.values())

    event_data = {
        'event': 'consistency_checkpoint',
        'checkpoint': checkpoint_name,
        'status': 'passed' if all_passed else 'failed',
        'checks': checks_passed,
    }
    event_data.update(entity_ids)
    event_data.update(sanitize_dict(extra_fields))

    if all_passed:
        logger.info(f'Checkpoint passed: {checkpoint_name}', extra=event_data)
    else:
        logger.error(f'Checkpoint FAILED: {checkpoint_name}', extra=event_data)


def log_anamnesis_committed(anamnesis, action, version_number, changed_fields_count, critical_count, **extra):
    """Log a successful anamnesis mutation."""
    log_domain_event(
        'anamnesis_committed',
        entity_type='PatientAnamnesis',
        entity_id=str(anamnesis.id),
        entity_ids={'patient_id': str(anamnesis.patient_id)},
        action=action,
        version_number=version_number,
        changed_fields_count=changed_fields_count,
        critical_changes_count=critical_count,
        **extra
    )


def log_version_conflict(patient_id, expected_version, actual_version, action):
    """Log an optimistic concurrency rejection."""
    log_domain_event(
        'anamnesis_version_conflict',
        entity_type='PatientAnamnesis',
        entity_ids={'patient_id': str(patient_id)},
        result='conflict',
        action=action,
        expected_version=expected_version,
        actual_version=actual_version,
    )


def log_audit_access_denied(user, capability, role):
    """Log a capability check that failed."""
    log_domain_event(
        'anamnesis_audit_access_denied',
        entity_ids={'actor_id': str(user.id) if user else None},
        result='denied',
        capability=capability,
        role=role,
    )
