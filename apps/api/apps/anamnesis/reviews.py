"""
Secondary review queue for critical anamnesis changes.

BUSINESS RULE: every critical field touched by an UPDATE or RESTORE gets
its own pending review. Resolution belongs to the external review
workflow; this module only enqueues and lists.
"""
from typing import Iterable, List

from django.db import transaction

from apps.core.observability import log_domain_event, metrics

from .diff import FieldDiff
from .models import AnamnesisAuditLog, AnamnesisPendingReview, SeverityChoices
from .repository import AnamnesisRepository


def _review_severity(audit_entry: AnamnesisAuditLog, field_diff: FieldDiff) -> str:
    """Critical fields are always CRITICAL; anything else inherits the entry's severity."""
    if field_diff.is_critical:
        return SeverityChoices.CRITICAL.value
    return audit_entry.severity


def _count_reviews(severities):
    for severity in severities:
        metrics.anamnesis_pending_reviews_total.labels(severity=severity).inc()


def enqueue(audit_entry: AnamnesisAuditLog, field_diff: FieldDiff, actor, reason='') -> AnamnesisPendingReview:
    return AnamnesisPendingReview.objects.create(
        anamnesis_id=audit_entry.anamnesis_id,
        patient_id=audit_entry.patient_id,
        audit_log=audit_entry,
        field_path=field_diff.field_path,
        field_label=field_diff.field_label,
        old_value=field_diff.old_value,
        new_value=field_diff.new_value,
        old_value_display=field_diff.old_value_display,
        new_value_display=field_diff.new_value_display,
        reason=reason or '',
        severity=_review_severity(audit_entry, field_diff),
        created_by_id=getattr(actor, 'pk', actor),
    )


def enqueue_critical(audit_entry: AnamnesisAuditLog, diffs: Iterable[FieldDiff], actor, reason='') -> List[AnamnesisPendingReview]:
    """
    One review per critical diff; flags the aggregate when anything was queued.

    The pending review counter moves only once the caller's transaction commits.
    """
    reviews = [
        enqueue(audit_entry, item, actor, reason)
        for item in diffs if item.is_critical
    ]
    if reviews:
        AnamnesisRepository().mark_pending_reviews(audit_entry.anamnesis_id)
        severities = [review.severity for review in reviews]
        transaction.on_commit(lambda: _count_reviews(severities))
        log_domain_event(
            'pending_review_enqueued',
            entity_type='PatientAnamnesis',
            entity_id=str(audit_entry.anamnesis_id),
            entity_ids={
                'patient_id': str(audit_entry.patient_id),
                'audit_log_id': str(audit_entry.id),
            },
            reviews_count=len(reviews),
            field_paths=[review.field_path for review in reviews],
        )
    return reviews


def list_pending(anamnesis_id):
    """Unresolved reviews, newest first."""
    return AnamnesisPendingReview.objects.filter(
        anamnesis_id=anamnesis_id,
        reviewed_at__isnull=True,
    ).select_related('created_by', 'audit_log').order_by('-created_at')
