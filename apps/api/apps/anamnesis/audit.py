"""
Audit log writer for the anamnesis aggregate.

Mutation entries (CREATE, UPDATE, DELETE, RESTORE) are written inside the
caller's transaction together with the version they describe. Access
entries (VIEW, EXPORT, PRINT) are best-effort: a failure is logged and
counted but never fails the read that triggered it.

Every entry is indexed by patient and, when known, by appointment in
AuditContextLink at write time.
"""
from typing import Iterable, Optional

from django.db import DatabaseError, connection, transaction
from django.utils import timezone
from kombu.exceptions import KombuError

from apps.core.observability import log_domain_event, metrics

from .context import EditContext
from .diff import FieldDiff, classify_severity, summarize
from .models import (
    AnamnesisAuditLog,
    AnamnesisFieldDiff,
    AuditActionChoices,
    AuditContextLink,
    ContextTypeChoices,
)

MUTATION_ACTIONS = frozenset({
    AuditActionChoices.CREATE.value,
    AuditActionChoices.UPDATE.value,
    AuditActionChoices.DELETE.value,
    AuditActionChoices.RESTORE.value,
})

ACCESS_ACTIONS = frozenset({
    AuditActionChoices.VIEW.value,
    AuditActionChoices.EXPORT.value,
    AuditActionChoices.PRINT.value,
})


def _context_links(patient_id, appointment_id, occurred_at, **target):
    links = [
        AuditContextLink(
            context_type=ContextTypeChoices.PATIENT,
            context_id=patient_id,
            occurred_at=occurred_at,
            **target
        )
    ]
    if appointment_id:
        links.append(
            AuditContextLink(
                context_type=ContextTypeChoices.APPOINTMENT,
                context_id=appointment_id,
                occurred_at=occurred_at,
                **target
            )
        )
    return links


def index_audit_entry(entry: AnamnesisAuditLog):
    AuditContextLink.objects.bulk_create(
        _context_links(
            entry.patient_id,
            entry.appointment_id,
            entry.performed_at,
            anamnesis_audit_log=entry,
        )
    )


def index_clinical_audit_entry(clinical_log):
    """Index a general-purpose ClinicalAuditLog entry by its patient/appointment."""
    if not clinical_log.patient_id:
        return
    AuditContextLink.objects.bulk_create(
        _context_links(
            clinical_log.patient_id,
            clinical_log.appointment_id,
            clinical_log.created_at,
            clinical_audit_log=clinical_log,
        ),
        ignore_conflicts=True,
    )


def write_audit_entry(
    *,
    anamnesis_id,
    patient_id,
    action,
    actor,
    actor_role,
    context,
    version=None,
    appointment_id=None,
    diffs: Iterable[FieldDiff] = (),
    previous_version_number: Optional[int] = None,
    new_version_number: Optional[int] = None,
    reason: str = '',
    edit_context: Optional[EditContext] = None,
) -> AnamnesisAuditLog:
    """
    Persist one audit entry with its ordered field diffs and context links.

    Mutation actions must run inside the caller's atomic block so the entry
    commits or rolls back together with the version it describes.
    edit_context is given for CREATE/UPDATE; an UPDATE touching a
    critical field is marked requires_review.
    """
    action = str(action)
    if action in MUTATION_ACTIONS and not connection.in_atomic_block:
        raise RuntimeError(f'{action} audit entries must be written inside a transaction')

    diffs = list(diffs)
    edit_fields = {}
    if edit_context is not None:
        edit_fields = edit_context.as_model_fields(
            requires_review=action == AuditActionChoices.UPDATE.value and any(item.is_critical for item in diffs)
        )
    entry = AnamnesisAuditLog.objects.create(
        anamnesis_id=anamnesis_id,
        patient_id=patient_id,
        version=version,
        appointment_id=appointment_id,
        action=action,
        severity=classify_severity(diffs, action),
        actor_id=getattr(actor, 'pk', actor),
        actor_role=str(actor_role or ''),
        performed_at=timezone.now(),
        previous_version_number=previous_version_number,
        new_version_number=new_version_number,
        changes_summary=summarize(diffs),
        reason=reason or '',
        integrity_hash=version.integrity_hash if version is not None else '',
        **context.as_model_fields(),
        **edit_fields
    )
    AnamnesisFieldDiff.objects.bulk_create([
        AnamnesisFieldDiff(audit_log=entry, position=position, **item.as_dict())
        for position, item in enumerate(diffs)
    ])
    index_audit_entry(entry)
    return entry


def record_access(
    *,
    anamnesis_id,
    patient_id,
    action,
    actor,
    actor_role,
    context,
    version=None,
    appointment_id=None,
    reason: str = '',
) -> Optional[AnamnesisAuditLog]:
    """
    Best-effort VIEW/EXPORT/PRINT entry in its own savepoint.

    Returns None when the write failed.
    """
    action = str(action)
    if action not in ACCESS_ACTIONS:
        raise ValueError(f'{action} is not an access action')

    try:
        with transaction.atomic():
            entry = write_audit_entry(
                anamnesis_id=anamnesis_id,
                patient_id=patient_id,
                action=action,
                actor=actor,
                actor_role=actor_role,
                context=context,
                version=version,
                appointment_id=appointment_id,
                reason=reason,
            )
    except DatabaseError as exc:
        metrics.anamnesis_access_events_total.labels(action=action, result='failure').inc()
        log_domain_event(
            'audit_access_log_failed',
            entity_type='PatientAnamnesis',
            entity_id=str(anamnesis_id),
            entity_ids={'patient_id': str(patient_id)},
            result='failure',
            action=action,
            error=exc.__class__.__name__,
        )
        return None

    metrics.anamnesis_access_events_total.labels(action=action, result='success').inc()
    return entry


def _dispatch_secondary_audit(entry_id):
    from .tasks import record_secondary_audit

    try:
        record_secondary_audit.delay(str(entry_id))
    except (KombuError, OSError) as exc:
        metrics.anamnesis_secondary_audit_failures_total.labels(stage='dispatch').inc()
        log_domain_event(
            'secondary_audit_dispatch_failed',
            entity_type='AnamnesisAuditLog',
            entity_id=str(entry_id),
            result='failure',
            error=exc.__class__.__name__,
        )


def schedule_secondary_audit(entry: AnamnesisAuditLog):
    """Mirror ``entry`` into the general-purpose clinical audit trail once the transaction commits."""
    entry_id = entry.id
    transaction.on_commit(lambda: _dispatch_secondary_audit(entry_id))
