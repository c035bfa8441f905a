"""
Anamnesis services: the write path and the read operations behind the API.

Every mutation is one transaction writing the aggregate update, the new
version, the audit entry with its field diffs and context links, and any
pending reviews. The secondary audit entry is dispatched after commit.
"""
import datetime
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from django.conf import settings
from django.db import DatabaseError, transaction
from django.utils import timezone

from apps.clinical.models import Appointment, ClinicalAuditLog, Patient
from apps.core.observability import log_domain_event, metrics
from apps.core.observability.events import log_anamnesis_committed, log_version_conflict

from .audit import record_access, schedule_secondary_audit, write_audit_entry
from .context import EditContext
from .diff import diff, summarize
from .exceptions import Forbidden, NotFound, ValidationError, VersionConflict
from .models import (
    AnamnesisAuditLog,
    AnamnesisTypeChoices,
    AnamnesisVersion,
    AuditActionChoices,
    AuditContextLink,
    ContextTypeChoices,
)
from .permissions import capabilities_for
from .repository import AnamnesisRecord, AnamnesisRepository, SnapshotStore
from .restore import RestoreOrchestrator, RestoreResult
from .reviews import enqueue_critical, list_pending
from .schema import AnamnesisState


class AnamnesisStatus:
    NO_ANAMNESIS = 'NO_ANAMNESIS'
    PENDING_REVIEW = 'PENDING_REVIEW'
    EXPIRED = 'EXPIRED'
    VALID = 'VALID'


class ConsultationContext:
    FIRST_TIME = 'FIRST_TIME'
    FOLLOW_UP = 'FOLLOW_UP'


@dataclass
class SaveResult:
    record: AnamnesisRecord
    created: bool
    version: Optional[AnamnesisVersion] = None
    audit_entry: Optional[AnamnesisAuditLog] = None
    reviews: List[Any] = field(default_factory=list)

    @property
    def changed(self):
        return self.version is not None

    @property
    def consultation_context(self):
        return ConsultationContext.FIRST_TIME if self.created else ConsultationContext.FOLLOW_UP


repository = AnamnesisRepository()
snapshots = SnapshotStore()


# ============================================================================
# Helpers
# ============================================================================

def get_patient(patient_id) -> Patient:
    try:
        return Patient.objects.get(pk=patient_id, is_deleted=False)
    except (Patient.DoesNotExist, ValueError):
        raise NotFound('Patient not found')


def get_record(patient_id) -> AnamnesisRecord:
    """Current anamnesis of a patient; NotFound when the patient or the record is missing."""
    patient = get_patient(patient_id)
    record = repository.find_by_patient(patient.id)
    if record is None:
        raise NotFound('Patient has no anamnesis')
    return record


def _check_appointment(patient_id, appointment_id):
    if appointment_id is None:
        return
    if not Appointment.objects.filter(pk=appointment_id, patient_id=patient_id, is_deleted=False).exists():
        raise ValidationError(
            'Appointment does not belong to this patient',
            details={'appointment_id': ['Appointment does not belong to this patient']},
        )


def anamnesis_status(record: Optional[AnamnesisRecord], now=None) -> str:
    if record is None:
        return AnamnesisStatus.NO_ANAMNESIS
    if record.has_pending_reviews:
        return AnamnesisStatus.PENDING_REVIEW
    now = now or timezone.now()
    if now - record.updated_at > datetime.timedelta(days=settings.ANAMNESIS_EXPIRY_DAYS):
        return AnamnesisStatus.EXPIRED
    return AnamnesisStatus.VALID


def default_anamnesis_type(patient: Patient) -> str:
    age = patient.age_on(timezone.localdate())
    if age is not None and age < settings.ANAMNESIS_PEDIATRIC_AGE_LIMIT:
        return AnamnesisTypeChoices.PEDIATRIC.value
    return AnamnesisTypeChoices.ADULT.value


def _count_conflict(exc: VersionConflict, patient_id, action):
    metrics.anamnesis_version_conflicts_total.inc()
    metrics.anamnesis_mutations_total.labels(action=action, result='conflict').inc()
    log_version_conflict(patient_id, exc.expected_version_number, exc.actual_version_number, action)


# ============================================================================
# Write path
# ============================================================================

@metrics.track_duration(metrics.anamnesis_commit_duration_seconds)
def save_anamnesis(
    patient_id,
    data: Dict[str, Any],
    expected_version_number: Optional[int],
    actor,
    role,
    context,
    appointment_id=None,
    reason: str = '',
    information_source: str = '',
    verified_with_patient: Optional[bool] = None,
) -> SaveResult:
    """
    Create or update a patient's anamnesis.

    ``data`` holds only the fields being changed; they are merged onto the
    current content. A save that changes nothing creates no version.

    This operation:
    1. Creates the aggregate at version 1 (expected version absent or 0), or
    2. Diffs the merged content against the current content and
       compare-and-swaps the aggregate from ``expected_version_number``
    3. Appends the version, the audit entry and its field diffs
    4. Queues a pending review per critical field (updates only)
    5. Schedules the secondary audit entry after commit

    Raises:
        Forbidden: role may not edit
        NotFound: patient missing
        ValidationError: missing expected version on update, foreign appointment
        VersionConflict: expected version is stale
    """
    if not capabilities_for(role).can_edit:
        raise Forbidden()

    patient = get_patient(patient_id)
    _check_appointment(patient.id, appointment_id)
    action = AuditActionChoices.UPDATE.value

    try:
        with transaction.atomic():
            current = repository.find_by_patient(patient.id)

            if current is None:
                action = AuditActionChoices.CREATE.value
                if expected_version_number not in (None, 0):
                    raise VersionConflict(
                        expected_version_number=expected_version_number,
                        actual_version_number=0,
                    )
                values = dict(data)
                values.setdefault('anamnesis_type', default_anamnesis_type(patient))
                new_state = AnamnesisState(**values)
                diffs = diff(None, new_state)
                record = repository.create(patient.id, new_state, actor)
                previous_number, new_number = None, record.version_number
            else:
                if expected_version_number is None:
                    raise ValidationError(
                        'expected_version_number is required when updating',
                        details={'expected_version_number': ['This field is required.']},
                    )
                if expected_version_number != current.version_number:
                    raise VersionConflict(
                        expected_version_number=expected_version_number,
                        actual_version_number=current.version_number,
                    )
                new_state = current.state.replace(**data)
                diffs = diff(current.state, new_state)
                if not diffs:
                    return SaveResult(record=current, created=False)
                new_number = repository.commit(current.id, expected_version_number, new_state, actor)
                previous_number = current.version_number
                record = current

            version = snapshots.append(
                record.id,
                new_number,
                new_state,
                actor,
                context,
                appointment_id=appointment_id,
                reason=reason,
                change_summary=summarize(diffs),
            )
            entry = write_audit_entry(
                anamnesis_id=record.id,
                patient_id=patient.id,
                action=action,
                actor=actor,
                actor_role=role,
                context=context,
                version=version,
                appointment_id=appointment_id,
                diffs=diffs,
                previous_version_number=previous_number,
                new_version_number=new_number,
                reason=reason,
                edit_context=EditContext(
                    appointment_id=appointment_id,
                    information_source=information_source,
                    verified_with_patient=verified_with_patient,
                ),
            )
            reviews = []
            if action == AuditActionChoices.UPDATE.value:
                reviews = enqueue_critical(entry, diffs, actor, reason)
            schedule_secondary_audit(entry)
            record = repository.get(record.id)
    except VersionConflict as exc:
        _count_conflict(exc, patient.id, action)
        raise

    metrics.anamnesis_mutations_total.labels(action=action, result='success').inc()
    log_anamnesis_committed(
        record,
        action,
        record.version_number,
        len(diffs),
        sum(1 for item in diffs if item.is_critical),
        pending_reviews_count=len(reviews),
    )
    return SaveResult(
        record=record,
        created=action == AuditActionChoices.CREATE.value,
        version=version,
        audit_entry=entry,
        reviews=reviews,
    )


def restore_version(patient_id, version_id, actor, role, reason, context, expected_version_number=None) -> RestoreResult:
    if not capabilities_for(role).can_restore:
        raise Forbidden()
    record = get_record(patient_id)
    return RestoreOrchestrator(repository, snapshots).restore_version(
        record.id,
        version_id,
        actor,
        role,
        reason,
        context,
        expected_version_number=expected_version_number,
    )


# ============================================================================
# Reads
# ============================================================================

def get_current(patient_id, actor, role, context) -> Optional[AnamnesisRecord]:
    """Current record (None when the patient has none yet). Logs a VIEW entry."""
    patient = get_patient(patient_id)
    record = repository.find_by_patient(patient.id)
    if record is None:
        return None
    record_access(
        anamnesis_id=record.id,
        patient_id=patient.id,
        action=AuditActionChoices.VIEW,
        actor=actor,
        actor_role=role,
        context=context,
        version=snapshots.get_by_number(record.id, record.version_number),
    )
    return record


def record_access_event(patient_id, action, actor, role, context, appointment_id=None, reason='') -> Optional[AnamnesisAuditLog]:
    """EXPORT / PRINT of the current record. None when the entry could not be written."""
    record = get_record(patient_id)
    _check_appointment(record.patient_id, appointment_id)
    return record_access(
        anamnesis_id=record.id,
        patient_id=record.patient_id,
        action=action,
        actor=actor,
        actor_role=role,
        context=context,
        version=snapshots.get_by_number(record.id, record.version_number),
        appointment_id=appointment_id,
        reason=reason,
    )


def list_versions(patient_id, date_from=None, date_to=None):
    record = get_record(patient_id)
    return snapshots.list(record.id, date_from=date_from, date_to=date_to)


def get_version(patient_id, version_id):
    """Version with a flag telling whether its content still matches its hash."""
    record = get_record(patient_id)
    version = snapshots.get(record.id, version_id)
    integrity_valid = snapshots.verify(version)
    if not integrity_valid:
        metrics.anamnesis_integrity_violations_total.inc()
        log_domain_event(
            'anamnesis_integrity_violation',
            entity_type='AnamnesisVersion',
            entity_id=str(version.id),
            entity_ids={'patient_id': str(record.patient_id)},
            result='integrity_violation',
            version_number=version.version_number,
        )
    return version, integrity_valid


def compare_versions(patient_id, version_a_id, version_b_id) -> Dict[str, Any]:
    """Field differences going from version A to version B."""
    record = get_record(patient_id)
    version_a = snapshots.get(record.id, version_a_id)
    version_b = snapshots.get(record.id, version_b_id)
    diffs = diff(snapshots.state_of(version_a), snapshots.state_of(version_b))
    return {
        'version_a': version_a,
        'version_b': version_b,
        'diffs': diffs,
        'summary': summarize(diffs),
    }


def list_audit_logs(patient_id, action=None, severity=None, date_from=None, date_to=None):
    record = get_record(patient_id)
    queryset = AnamnesisAuditLog.objects.filter(anamnesis_id=record.id).select_related('actor')
    if action:
        queryset = queryset.filter(action=action)
    if severity:
        queryset = queryset.filter(severity=severity)
    if date_from:
        queryset = queryset.filter(performed_at__date__gte=date_from)
    if date_to:
        queryset = queryset.filter(performed_at__date__lte=date_to)
    return queryset.order_by('-performed_at')


def get_audit_log(patient_id, log_id) -> AnamnesisAuditLog:
    record = get_record(patient_id)
    try:
        return AnamnesisAuditLog.objects.select_related('actor').prefetch_related(
            'field_diffs'
        ).get(pk=log_id, anamnesis_id=record.id)
    except (AnamnesisAuditLog.DoesNotExist, ValueError):
        raise NotFound('Audit entry not found')


def list_pending_reviews(patient_id):
    record = get_record(patient_id)
    return list_pending(record.id)


def _require_context_subject(context_type, context_id):
    if context_type == ContextTypeChoices.PATIENT.value:
        exists = Patient.objects.filter(pk=context_id, is_deleted=False).exists()
    else:
        exists = Appointment.objects.filter(pk=context_id, is_deleted=False).exists()
    if not exists:
        raise NotFound(f'{context_type.capitalize()} not found')


def list_contextual_audit(context_type, context_id, limit=None) -> List[Any]:
    """
    Anamnesis and clinical audit entries linked to a patient or appointment,
    newest first, capped at ``limit``.

    Clinical entries come from the general-purpose trail; if it cannot be
    read the anamnesis entries are still returned.
    """
    _require_context_subject(context_type, context_id)
    limit = limit or settings.ANAMNESIS_CONTEXTUAL_AUDIT_LIMIT

    links = list(
        AuditContextLink.objects.filter(
            context_type=context_type,
            context_id=context_id,
        ).order_by('-occurred_at')[:limit]
    )
    anamnesis_ids = [link.anamnesis_audit_log_id for link in links if link.anamnesis_audit_log_id]
    clinical_ids = [link.clinical_audit_log_id for link in links if link.clinical_audit_log_id]

    entries = list(
        AnamnesisAuditLog.objects.filter(id__in=anamnesis_ids).select_related('actor')
    )
    try:
        entries.extend(
            ClinicalAuditLog.objects.filter(id__in=clinical_ids).select_related('actor_user')
        )
    except DatabaseError as exc:
        metrics.anamnesis_secondary_audit_failures_total.labels(stage='merge').inc()
        log_domain_event(
            'contextual_audit_merge_failed',
            entity_ids={'context_type': context_type, 'context_id': str(context_id)},
            result='failure',
            error=exc.__class__.__name__,
        )

    entries.sort(key=_entry_timestamp, reverse=True)
    return entries[:limit]


def _entry_timestamp(entry):
    if isinstance(entry, AnamnesisAuditLog):
        return entry.performed_at
    return entry.created_at
