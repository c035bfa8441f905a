"""
Celery tasks for the anamnesis secondary audit trail.
"""
from celery import Task, shared_task
from django.db import DatabaseError

from apps.core.observability import log_domain_event, metrics


class SecondaryAuditTask(Task):
    """Counts and logs runs that exhausted their retries."""

    def on_failure(self, exc, task_id, args, kwargs, einfo):
        metrics.anamnesis_secondary_audit_failures_total.labels(stage='task').inc()
        log_domain_event(
            'secondary_audit_failed',
            entity_type='AnamnesisAuditLog',
            entity_id=str(args[0]) if args else None,
            result='failure',
            task_id=task_id,
            error=exc.__class__.__name__,
        )


_CLINICAL_ACTIONS = {
    'CREATE': 'create',
    'UPDATE': 'update',
    'DELETE': 'delete',
    'RESTORE': 'restore',
}


@shared_task(
    name='apps.anamnesis.tasks.record_secondary_audit',
    base=SecondaryAuditTask,
    autoretry_for=(DatabaseError,),
    retry_backoff=True,
    max_retries=3,
)
def record_secondary_audit(audit_log_id):
    """
    Mirror an anamnesis mutation into ClinicalAuditLog.

    At-least-once delivery: a second run for the same entry is a no-op.

    Args:
        audit_log_id: AnamnesisAuditLog ID
    """
    from apps.clinical.models import AuditEntityTypeChoices, ClinicalAuditLog, log_clinical_audit
    from .models import AnamnesisAuditLog

    entry = AnamnesisAuditLog.objects.filter(id=audit_log_id).first()
    if entry is None:
        return f"Audit entry {audit_log_id} not found"

    action = _CLINICAL_ACTIONS.get(entry.action)
    if action is None:
        return f"Audit entry {audit_log_id} is not a mutation"

    already_mirrored = ClinicalAuditLog.objects.filter(
        entity_type=AuditEntityTypeChoices.ANAMNESIS,
        metadata__anamnesis_audit_log_id=str(entry.id),
    ).exists()
    if already_mirrored:
        return f"Audit entry {audit_log_id} already mirrored"

    log_clinical_audit(
        actor=entry.actor_id,
        entity_type=AuditEntityTypeChoices.ANAMNESIS,
        entity_id=entry.anamnesis_id,
        action=action,
        changed_fields=entry.changes_summary.get('fields_changed'),
        patient_id=entry.patient_id,
        appointment_id=entry.appointment_id,
        extra_metadata={
            'anamnesis_audit_log_id': str(entry.id),
            'severity': entry.severity,
            'previous_version_number': entry.previous_version_number,
            'new_version_number': entry.new_version_number,
            'is_outside_consultation': entry.is_outside_consultation,
            'information_source': entry.information_source or None,
        },
        request_meta={'ip': entry.ip_address, 'user_agent': entry.user_agent},
    )
    return f"Audit entry {audit_log_id} mirrored"
