"""
Anamnesis signals - index general-purpose clinical audit entries by context.
"""
from django.db.models.signals import post_save
from django.dispatch import receiver

from apps.clinical.models import AuditEntityTypeChoices, ClinicalAuditLog

from .audit import index_clinical_audit_entry


@receiver(post_save, sender=ClinicalAuditLog)
def on_clinical_audit_created(sender, instance, created, **kwargs):
    """
    Link new clinical entries to their patient and appointment.

    Anamnesis mirrors are skipped: the primary anamnesis entry is
    already indexed.
    """
    if created and instance.entity_type != AuditEntityTypeChoices.ANAMNESIS:
        index_clinical_audit_entry(instance)
