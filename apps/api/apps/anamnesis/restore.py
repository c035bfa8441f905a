"""
Restore orchestrator.

Brings an earlier version back as the current anamnesis. A restore never
rewrites history: it appends a new version whose content equals the
target and whose restored_from_version points at it.
"""
from dataclasses import dataclass
from typing import List, Optional

from django.db import transaction

from apps.core.observability import log_domain_event, metrics
from apps.core.observability.events import log_consistency_checkpoint, log_version_conflict

from .audit import schedule_secondary_audit, write_audit_entry
from .diff import diff, summarize
from .exceptions import Forbidden, IntegrityViolation, VersionConflict
from .models import AnamnesisAuditLog, AnamnesisPendingReview, AnamnesisVersion, AuditActionChoices
from .permissions import capabilities_for
from .repository import AnamnesisRecord, AnamnesisRepository, SnapshotStore
from .reviews import enqueue_critical


@dataclass
class RestoreResult:
    record: AnamnesisRecord
    version: AnamnesisVersion
    audit_entry: AnamnesisAuditLog
    reviews: List[AnamnesisPendingReview]


class RestoreOrchestrator:

    def __init__(self, repository=None, snapshots=None):
        self.repository = repository or AnamnesisRepository()
        self.snapshots = snapshots or SnapshotStore()

    def _verify_target(self, anamnesis_id, target: AnamnesisVersion):
        valid = self.snapshots.verify(target)
        log_consistency_checkpoint(
            'anamnesis_restore_target',
            entity_ids={'anamnesis_id': str(anamnesis_id), 'version_id': str(target.id)},
            checks_passed={'integrity_hash_matches': valid},
            version_number=target.version_number,
        )
        if not valid:
            metrics.anamnesis_integrity_violations_total.inc()
            metrics.anamnesis_mutations_total.labels(
                action=AuditActionChoices.RESTORE.value,
                result='integrity_violation',
            ).inc()
            raise IntegrityViolation(version_id=target.id, version_number=target.version_number)

    def restore_version(
        self,
        anamnesis_id,
        version_id,
        actor,
        role,
        reason: str,
        context,
        expected_version_number: Optional[int] = None,
    ) -> RestoreResult:
        """
        Restore ``version_id`` as the current content of ``anamnesis_id``.

        This operation:
        1. Checks the role may restore (before any data access)
        2. Loads the target version and verifies its integrity hash
        3. Diffs the current content against the target
        4. In one transaction: commits the aggregate, appends the new
           version, writes the RESTORE audit entry and queues a pending
           review per critical field
        5. Schedules the secondary audit entry after commit

        Raises:
            Forbidden: role lacks the restore capability
            NotFound: aggregate or version absent, or version foreign
            IntegrityViolation: stored target no longer matches its hash
            VersionConflict: another mutation committed first
        """
        if not capabilities_for(role).can_restore:
            raise Forbidden()

        target = self.snapshots.get(anamnesis_id, version_id)
        self._verify_target(anamnesis_id, target)
        target_state = self.snapshots.state_of(target)

        current = None
        try:
            with transaction.atomic():
                current = self.repository.get(anamnesis_id)
                if expected_version_number is not None and expected_version_number != current.version_number:
                    raise VersionConflict(
                        expected_version_number=expected_version_number,
                        actual_version_number=current.version_number,
                    )

                diffs = diff(current.state, target_state)
                new_number = self.repository.commit(
                    anamnesis_id, current.version_number, target_state, actor
                )
                version = self.snapshots.append(
                    anamnesis_id,
                    new_number,
                    target_state,
                    actor,
                    context,
                    reason=reason,
                    change_summary=summarize(diffs),
                    restored_from_version_id=target.id,
                )
                entry = write_audit_entry(
                    anamnesis_id=anamnesis_id,
                    patient_id=current.patient_id,
                    action=AuditActionChoices.RESTORE,
                    actor=actor,
                    actor_role=role,
                    context=context,
                    version=version,
                    diffs=diffs,
                    previous_version_number=current.version_number,
                    new_version_number=new_number,
                    reason=reason,
                )
                reviews = enqueue_critical(entry, diffs, actor, reason)
                schedule_secondary_audit(entry)
                record = self.repository.get(anamnesis_id)
        except VersionConflict as exc:
            metrics.anamnesis_version_conflicts_total.inc()
            metrics.anamnesis_mutations_total.labels(
                action=AuditActionChoices.RESTORE.value, result='conflict'
            ).inc()
            log_version_conflict(
                current.patient_id if current else None,
                exc.expected_version_number,
                exc.actual_version_number,
                AuditActionChoices.RESTORE.value,
            )
            raise

        metrics.anamnesis_mutations_total.labels(
            action=AuditActionChoices.RESTORE.value, result='success'
        ).inc()
        log_domain_event(
            'anamnesis_restored',
            entity_type='PatientAnamnesis',
            entity_id=str(record.id),
            entity_ids={
                'patient_id': str(record.patient_id),
                'version_id': str(version.id),
                'restored_from_version_id': str(target.id),
            },
            version_number=record.version_number,
            restored_from_version_number=target.version_number,
            changed_fields_count=len(diffs),
            critical_changes_count=len(reviews),
        )
        return RestoreResult(record=record, version=version, audit_entry=entry, reviews=reviews)
