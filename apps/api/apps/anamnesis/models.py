"""
Anamnesis models: patient_anamnesis, anamnesis_version, anamnesis_audit_log,
anamnesis_field_diff, anamnesis_pending_review, audit_context_link

PatientAnamnesis is the single mutable projection of a patient's intake
record. Every accepted mutation appends one AnamnesisVersion and one
AnamnesisAuditLog in the same transaction; those tables are append-only.
"""
import uuid
from django.db import models
from django.db.models import Q
from django.conf import settings
from django.utils import timezone

from .exceptions import ImmutableRecordError


# ============================================================================
# Enums
# ============================================================================

class AnamnesisTypeChoices(models.TextChoices):
    ADULT = 'ADULT', 'Adult'
    PEDIATRIC = 'PEDIATRIC', 'Pediatric'


class PerceivedUrgencyChoices(models.TextChoices):
    ROUTINE = 'ROUTINE', 'Routine'
    PRIORITY = 'PRIORITY', 'Priority'
    URGENT = 'URGENT', 'Urgent'


class AuditActionChoices(models.TextChoices):
    """
    Mutation actions (CREATE, UPDATE, DELETE, RESTORE) are written in the
    same transaction as the version they describe; access actions (VIEW,
    EXPORT, PRINT) are best-effort.
    """
    CREATE = 'CREATE', 'Create'
    UPDATE = 'UPDATE', 'Update'
    DELETE = 'DELETE', 'Delete'
    VIEW = 'VIEW', 'View'
    RESTORE = 'RESTORE', 'Restore'
    EXPORT = 'EXPORT', 'Export'
    PRINT = 'PRINT', 'Print'


class SeverityChoices(models.TextChoices):
    CRITICAL = 'CRITICAL', 'Critical'
    HIGH = 'HIGH', 'High'
    MEDIUM = 'MEDIUM', 'Medium'
    LOW = 'LOW', 'Low'


class ChangeTypeChoices(models.TextChoices):
    ADDED = 'ADDED', 'Added'
    REMOVED = 'REMOVED', 'Removed'
    MODIFIED = 'MODIFIED', 'Modified'


class ContextTypeChoices(models.TextChoices):
    PATIENT = 'patient', 'Patient'
    APPOINTMENT = 'appointment', 'Appointment'


class InformationSourceChoices(models.TextChoices):
    """How the information reached the clinic when it was edited outside a consultation."""
    IN_PERSON = 'IN_PERSON', 'In person'
    PHONE = 'PHONE', 'Phone'
    EMAIL = 'EMAIL', 'Email'
    DOCUMENT = 'DOCUMENT', 'Document'
    PATIENT_PORTAL = 'PATIENT_PORTAL', 'Patient portal'
    OTHER = 'OTHER', 'Other'


# ============================================================================
# Base classes
# ============================================================================

class AppendOnlyQuerySet(models.QuerySet):
    """Bulk update/delete are refused for append-only tables."""

    def update(self, **kwargs):
        raise ImmutableRecordError(f'{self.model.__name__} rows are append-only')

    def delete(self):
        raise ImmutableRecordError(f'{self.model.__name__} rows are append-only')


class AppendOnlyModel(models.Model):
    """Rows can be inserted once and never updated or deleted."""

    objects = AppendOnlyQuerySet.as_manager()

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ImmutableRecordError(f'{self.__class__.__name__} rows are append-only')
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ImmutableRecordError(f'{self.__class__.__name__} rows are append-only')


class AnamnesisFields(models.Model):
    """
    Structured intake fields shared by the aggregate and its snapshots.

    - anamnesis_type: ADULT | PEDIATRIC
    - chief_complaint: free text
    - has_pain / pain_intensity (0-10) / perceived_urgency
    - has_chronic_diseases, has_allergies, has_current_medication
    - is_pregnant (nullable: not asked for every patient)
    - habits and hygiene: exposed_to_tobacco_smoke, bruxism,
      brushings_per_day, uses_dental_floss, last_dental_visit
    - pediatric: has_sucking_habits, breastfeeding_recorded
    - payload: less-structured answers (allergy/medication/antecedent
      lists, women/pediatric specific sections, custom notes)
    """
    anamnesis_type = models.CharField(
        max_length=10,
        choices=AnamnesisTypeChoices.choices,
        default=AnamnesisTypeChoices.ADULT
    )
    chief_complaint = models.TextField(blank=True, null=True)
    has_pain = models.BooleanField(default=False)
    pain_intensity = models.PositiveSmallIntegerField(blank=True, null=True)
    perceived_urgency = models.CharField(
        max_length=10,
        choices=PerceivedUrgencyChoices.choices,
        blank=True,
        null=True
    )
    has_chronic_diseases = models.BooleanField(default=False)
    has_allergies = models.BooleanField(default=False)
    has_current_medication = models.BooleanField(default=False)
    is_pregnant = models.BooleanField(blank=True, null=True)
    exposed_to_tobacco_smoke = models.BooleanField(blank=True, null=True)
    bruxism = models.BooleanField(blank=True, null=True)
    brushings_per_day = models.PositiveSmallIntegerField(blank=True, null=True)
    uses_dental_floss = models.BooleanField(blank=True, null=True)
    last_dental_visit = models.DateField(blank=True, null=True)
    has_sucking_habits = models.BooleanField(blank=True, null=True)
    breastfeeding_recorded = models.BooleanField(blank=True, null=True)
    payload = models.JSONField(default=dict, blank=True)

    class Meta:
        abstract = True


class TechnicalContextFields(models.Model):
    """Request fingerprint captured with each version and audit entry."""
    ip_address = models.GenericIPAddressField(blank=True, null=True)
    user_agent = models.TextField(blank=True, default='')
    session_id = models.CharField(max_length=255, blank=True, default='')
    request_path = models.CharField(max_length=500, blank=True, default='')

    class Meta:
        abstract = True


# ============================================================================
# Aggregate
# ============================================================================

class PatientAnamnesis(AnamnesisFields):
    """
    Current anamnesis of a patient (one per patient).

    BUSINESS RULE: never edited directly. current_version_number is only
    advanced by AnamnesisRepository.commit through a compare-and-swap
    UPDATE, in the same transaction that appends the matching version.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    patient = models.OneToOneField(
        'clinical.Patient',
        on_delete=models.PROTECT,
        related_name='anamnesis'
    )
    current_version_number = models.PositiveIntegerField(default=1)
    has_pending_reviews = models.BooleanField(default=False)

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        blank=True,
        null=True,
        related_name='created_anamneses'
    )
    updated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        blank=True,
        null=True,
        related_name='updated_anamneses'
    )
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = 'patient_anamnesis'
        verbose_name = 'Patient Anamnesis'
        verbose_name_plural = 'Patient Anamneses'
        constraints = [
            models.CheckConstraint(
                condition=Q(current_version_number__gte=1),
                name='chk_anamnesis_version_positive'
            ),
            models.CheckConstraint(
                condition=Q(pain_intensity__isnull=True) | Q(pain_intensity__lte=10),
                name='chk_anamnesis_pain_scale'
            ),
        ]

    def __str__(self):
        return f"Anamnesis {self.patient_id} v{self.current_version_number}"


# ============================================================================
# Append-only history
# ============================================================================

class AnamnesisVersion(AnamnesisFields, TechnicalContextFields, AppendOnlyModel):
    """
    Immutable full copy of the anamnesis at one accepted mutation.

    - version_number: unique per anamnesis, strictly increasing
    - appointment: consultation the change is attributed to (optional)
    - restored_from_version: set only on versions produced by a restore
    - integrity_hash: SHA-256 of the canonical field set
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    anamnesis = models.ForeignKey(
        PatientAnamnesis,
        on_delete=models.PROTECT,
        related_name='versions'
    )
    version_number = models.PositiveIntegerField()
    appointment = models.ForeignKey(
        'clinical.Appointment',
        on_delete=models.SET_NULL,
        blank=True,
        null=True,
        related_name='anamnesis_versions'
    )
    restored_from_version = models.ForeignKey(
        'self',
        on_delete=models.PROTECT,
        blank=True,
        null=True,
        related_name='restorations'
    )
    reason = models.TextField(blank=True, default='')
    change_summary = models.JSONField(default=dict, blank=True)
    integrity_hash = models.CharField(max_length=64)
    field_schema_version = models.PositiveSmallIntegerField()

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        blank=True,
        null=True,
        related_name='anamnesis_versions'
    )
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = 'anamnesis_version'
        verbose_name = 'Anamnesis Version'
        verbose_name_plural = 'Anamnesis Versions'
        ordering = ['-version_number']
        constraints = [
            models.UniqueConstraint(
                fields=['anamnesis', 'version_number'],
                name='uniq_anamnesis_version_number'
            ),
        ]
        indexes = [
            models.Index(fields=['anamnesis', 'created_at'], name='idx_anamnesis_version_created'),
        ]

    def __str__(self):
        return f"Anamnesis {self.anamnesis_id} v{self.version_number}"


class AnamnesisAuditLog(TechnicalContextFields, AppendOnlyModel):
    """
    One entry per accepted mutation or notable read/export/print event.

    Field-level changes live in AnamnesisFieldDiff (ordered by position).
    CREATE/UPDATE entries written without an appointment are flagged
    is_outside_consultation and carry where the information came from.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    anamnesis = models.ForeignKey(
        PatientAnamnesis,
        on_delete=models.PROTECT,
        related_name='audit_logs'
    )
    patient = models.ForeignKey(
        'clinical.Patient',
        on_delete=models.PROTECT,
        related_name='anamnesis_audit_logs'
    )
    version = models.ForeignKey(
        AnamnesisVersion,
        on_delete=models.PROTECT,
        blank=True,
        null=True,
        related_name='audit_logs',
        help_text='Version produced (mutations) or observed (access events)'
    )
    appointment = models.ForeignKey(
        'clinical.Appointment',
        on_delete=models.SET_NULL,
        blank=True,
        null=True,
        related_name='anamnesis_audit_logs'
    )
    action = models.CharField(max_length=10, choices=AuditActionChoices.choices)
    severity = models.CharField(max_length=10, choices=SeverityChoices.choices)
    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        blank=True,
        null=True,
        related_name='anamnesis_audit_logs'
    )
    actor_role = models.CharField(max_length=50, blank=True, default='')
    performed_at = models.DateTimeField(default=timezone.now)
    previous_version_number = models.PositiveIntegerField(blank=True, null=True)
    new_version_number = models.PositiveIntegerField(blank=True, null=True)
    changes_summary = models.JSONField(default=dict, blank=True)
    reason = models.TextField(blank=True, default='')
    integrity_hash = models.CharField(max_length=64, blank=True, default='')
    is_outside_consultation = models.BooleanField(
        default=False,
        help_text='Edited without an appointment (CREATE/UPDATE only)'
    )
    information_source = models.CharField(
        max_length=20,
        choices=InformationSourceChoices.choices,
        blank=True,
        default=''
    )
    verified_with_patient = models.BooleanField(blank=True, null=True)
    requires_review = models.BooleanField(default=False)

    class Meta:
        db_table = 'anamnesis_audit_log'
        verbose_name = 'Anamnesis Audit Log'
        verbose_name_plural = 'Anamnesis Audit Logs'
        ordering = ['-performed_at']
        indexes = [
            models.Index(fields=['anamnesis', 'performed_at'], name='idx_anam_audit_performed'),
            models.Index(fields=['patient'], name='idx_anam_audit_patient'),
            models.Index(fields=['action'], name='idx_anam_audit_action'),
            models.Index(fields=['severity'], name='idx_anam_audit_severity'),
        ]

    def __str__(self):
        return f"{self.action} on anamnesis {self.anamnesis_id} ({self.severity})"


class AnamnesisFieldDiff(AppendOnlyModel):
    """Single field change recorded on an audit entry."""
    audit_log = models.ForeignKey(
        AnamnesisAuditLog,
        on_delete=models.PROTECT,
        related_name='field_diffs'
    )
    position = models.PositiveIntegerField()
    field_path = models.CharField(max_length=255)
    field_label = models.CharField(max_length=255)
    field_type = models.CharField(max_length=20)
    old_value = models.JSONField(blank=True, null=True)
    new_value = models.JSONField(blank=True, null=True)
    old_value_display = models.TextField(blank=True, null=True)
    new_value_display = models.TextField(blank=True, null=True)
    is_critical = models.BooleanField(default=False)
    change_type = models.CharField(max_length=10, choices=ChangeTypeChoices.choices)

    class Meta:
        db_table = 'anamnesis_field_diff'
        verbose_name = 'Anamnesis Field Diff'
        verbose_name_plural = 'Anamnesis Field Diffs'
        ordering = ['audit_log', 'position']
        constraints = [
            models.UniqueConstraint(
                fields=['audit_log', 'position'],
                name='uniq_field_diff_position'
            ),
        ]

    def __str__(self):
        return f"{self.change_type} {self.field_path}"


# ============================================================================
# Secondary review queue
# ============================================================================

class AnamnesisPendingReview(models.Model):
    """
    A critical field change awaiting secondary sign-off.

    Carries enough context (values, severity, originating audit entry) for
    a reviewer to act without re-reading version history. The review
    columns are written by the external review workflow only.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    anamnesis = models.ForeignKey(
        PatientAnamnesis,
        on_delete=models.PROTECT,
        related_name='pending_reviews'
    )
    patient = models.ForeignKey(
        'clinical.Patient',
        on_delete=models.PROTECT,
        related_name='anamnesis_pending_reviews'
    )
    audit_log = models.ForeignKey(
        AnamnesisAuditLog,
        on_delete=models.PROTECT,
        related_name='pending_reviews'
    )
    field_path = models.CharField(max_length=255)
    field_label = models.CharField(max_length=255)
    old_value = models.JSONField(blank=True, null=True)
    new_value = models.JSONField(blank=True, null=True)
    old_value_display = models.TextField(blank=True, null=True)
    new_value_display = models.TextField(blank=True, null=True)
    reason = models.TextField(blank=True, default='')
    severity = models.CharField(max_length=10, choices=SeverityChoices.choices)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        blank=True,
        null=True,
        related_name='created_anamnesis_reviews'
    )
    created_at = models.DateTimeField(default=timezone.now)

    # Review workflow (external)
    reviewed_at = models.DateTimeField(blank=True, null=True)
    reviewed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        blank=True,
        null=True,
        related_name='reviewed_anamnesis_changes'
    )
    is_approved = models.BooleanField(blank=True, null=True)
    review_notes = models.TextField(blank=True, default='')

    class Meta:
        db_table = 'anamnesis_pending_review'
        verbose_name = 'Anamnesis Pending Review'
        verbose_name_plural = 'Anamnesis Pending Reviews'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['anamnesis', 'reviewed_at'], name='idx_anam_review_pending'),
        ]

    def __str__(self):
        return f"Review {self.field_path} ({self.severity})"


# ============================================================================
# Contextual audit index
# ============================================================================

class AuditContextLink(AppendOnlyModel):
    """
    Secondary index (context_type, context_id) -> audit entry.

    Written together with the audit entry it points at, so contextual
    views never query opaque metadata. Exactly one of the two entry
    foreign keys is set.
    """
    context_type = models.CharField(max_length=20, choices=ContextTypeChoices.choices)
    context_id = models.UUIDField()
    occurred_at = models.DateTimeField()
    anamnesis_audit_log = models.ForeignKey(
        AnamnesisAuditLog,
        on_delete=models.PROTECT,
        blank=True,
        null=True,
        related_name='context_links'
    )
    clinical_audit_log = models.ForeignKey(
        'clinical.ClinicalAuditLog',
        on_delete=models.CASCADE,
        blank=True,
        null=True,
        related_name='context_links'
    )

    class Meta:
        db_table = 'audit_context_link'
        verbose_name = 'Audit Context Link'
        verbose_name_plural = 'Audit Context Links'
        constraints = [
            models.CheckConstraint(
                condition=(
                    Q(anamnesis_audit_log__isnull=False, clinical_audit_log__isnull=True)
                    | Q(anamnesis_audit_log__isnull=True, clinical_audit_log__isnull=False)
                ),
                name='chk_context_link_single_target'
            ),
            models.UniqueConstraint(
                fields=['context_type', 'context_id', 'anamnesis_audit_log'],
                condition=Q(anamnesis_audit_log__isnull=False),
                name='uniq_context_link_anamnesis'
            ),
            models.UniqueConstraint(
                fields=['context_type', 'context_id', 'clinical_audit_log'],
                condition=Q(clinical_audit_log__isnull=False),
                name='uniq_context_link_clinical'
            ),
        ]
        indexes = [
            models.Index(fields=['context_type', 'context_id', 'occurred_at'], name='idx_context_link_lookup'),
        ]

    def __str__(self):
        return f"{self.context_type}:{self.context_id}"
