"""
Clinical models: patient, appointment, clinical_audit_log

Patients and appointments are the subjects that anamnesis changes and
audit entries are attributed to; the ClinicalAuditLog is the
general-purpose audit trail shared by every clinical entity.
"""
import uuid
from django.db import models
from django.conf import settings


# ============================================================================
# Enums
# ============================================================================

class SexChoices(models.TextChoices):
    """Patient sex/gender"""
    FEMALE = 'female', 'Female'
    MALE = 'male', 'Male'
    OTHER = 'other', 'Other'
    UNKNOWN = 'unknown', 'Unknown'


class AppointmentStatusChoices(models.TextChoices):
    """Appointment status"""
    DRAFT = 'draft', 'Draft'
    CONFIRMED = 'confirmed', 'Confirmed'
    CHECKED_IN = 'checked_in', 'Checked In'
    COMPLETED = 'completed', 'Completed'
    CANCELLED = 'cancelled', 'Cancelled'
    NO_SHOW = 'no_show', 'No Show'


class AuditActionChoices(models.TextChoices):
    """Clinical audit log action types"""
    CREATE = 'create', 'Create'
    UPDATE = 'update', 'Update'
    DELETE = 'delete', 'Delete'
    RESTORE = 'restore', 'Restore'


class AuditEntityTypeChoices(models.TextChoices):
    """Clinical entity types for audit logging"""
    ANAMNESIS = 'PatientAnamnesis', 'Anamnesis'
    APPOINTMENT = 'Appointment', 'Appointment'
    ODONTOGRAM = 'Odontogram', 'Odontogram'
    CONSENT = 'Consent', 'Consent'


# ============================================================================
# Patient / Appointment
# ============================================================================

class Patient(models.Model):
    """
    Patient demographics.

    Fields:
    - id: UUID PK
    - first_name, last_name
    - birth_date nullable (drives ADULT/PEDIATRIC anamnesis type)
    - sex nullable enum
    - email, phone nullable
    - soft delete flag
    - created_by_user, created_at, updated_at
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100)

    birth_date = models.DateField(blank=True, null=True)
    sex = models.CharField(
        max_length=20,
        choices=SexChoices.choices,
        blank=True,
        null=True
    )

    email = models.EmailField(blank=True, null=True)
    phone = models.CharField(max_length=50, blank=True, null=True)

    is_deleted = models.BooleanField(default=False)

    created_by_user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        blank=True,
        null=True,
        related_name='created_patients'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'patient'
        verbose_name = 'Patient'
        verbose_name_plural = 'Patients'
        indexes = [
            models.Index(fields=['last_name', 'first_name'], name='idx_patient_name'),
            models.Index(fields=['is_deleted'], name='idx_patient_deleted'),
        ]

    def __str__(self):
        return f"{self.first_name} {self.last_name}"

    def age_on(self, day):
        """Age in whole years on ``day``; None when the birth date is unknown."""
        if not self.birth_date:
            return None
        before_birthday = (day.month, day.day) < (self.birth_date.month, self.birth_date.day)
        return day.year - self.birth_date.year - int(before_birthday)


class Appointment(models.Model):
    """
    Scheduled appointment (consultation) for a patient.

    Anamnesis versions and audit entries may be attributed to the
    appointment during which the change was made.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # BUSINESS RULE: Patient is REQUIRED (no appointments without patient)
    patient = models.ForeignKey(
        'Patient',
        on_delete=models.PROTECT,
        related_name='appointments'
    )
    practitioner = models.ForeignKey(
        'authz.Practitioner',
        on_delete=models.SET_NULL,
        blank=True,
        null=True,
        related_name='appointments'
    )
    status = models.CharField(
        max_length=20,
        choices=AppointmentStatusChoices.choices,
        default=AppointmentStatusChoices.DRAFT
    )
    scheduled_start = models.DateTimeField()
    scheduled_end = models.DateTimeField()
    notes = models.TextField(blank=True, null=True)

    is_deleted = models.BooleanField(default=False)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'appointment'
        verbose_name = 'Appointment'
        verbose_name_plural = 'Appointments'
        indexes = [
            models.Index(fields=['patient'], name='idx_appointment_patient'),
            models.Index(fields=['practitioner'], name='idx_appointment_practitioner'),
            models.Index(fields=['scheduled_start'], name='idx_appointment_start'),
            models.Index(fields=['status'], name='idx_appointment_status'),
        ]

    def __str__(self):
        return f"Appointment {self.scheduled_start.date()} - {self.patient}"


# ============================================================================
# General-purpose clinical audit trail
# ============================================================================

class ClinicalAuditLog(models.Model):
    """
    Lightweight audit trail for clinical entity changes.

    BUSINESS RULE: Maintains traceability of clinical changes without locking.
    Anamnesis mutations are mirrored here asynchronously so cross-entity
    views (per patient / per appointment) see them next to appointment
    and odontogram changes.

    Fields:
    - id: UUID PK
    - created_at: timestamp of action
    - actor_user: who made the change (nullable for system actions)
    - action: create|update|delete|restore
    - entity_type: type of entity changed
    - entity_id: UUID of the entity
    - patient: related patient (for easier querying)
    - appointment: related appointment (if applicable)
    - metadata: JSON with changed_fields, version numbers, request info
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    created_at = models.DateTimeField(auto_now_add=True)

    actor_user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        blank=True,
        null=True,
        related_name='clinical_audit_logs',
        help_text='User who performed the action (null for system actions)'
    )

    action = models.CharField(
        max_length=10,
        choices=AuditActionChoices.choices
    )

    entity_type = models.CharField(
        max_length=50,
        choices=AuditEntityTypeChoices.choices,
        help_text='Type of clinical entity (PatientAnamnesis, Appointment, etc.)'
    )

    entity_id = models.UUIDField(
        help_text='UUID of the entity that was changed'
    )

    patient = models.ForeignKey(
        'Patient',
        on_delete=models.SET_NULL,
        blank=True,
        null=True,
        related_name='audit_logs',
        help_text='Related patient (if applicable)'
    )

    appointment = models.ForeignKey(
        'Appointment',
        on_delete=models.SET_NULL,
        blank=True,
        null=True,
        related_name='audit_logs',
        help_text='Related appointment (if applicable)'
    )

    metadata = models.JSONField(
        default=dict,
        help_text='Changed fields, version numbers, request metadata'
    )

    class Meta:
        db_table = 'clinical_audit_log'
        verbose_name = 'Clinical Audit Log'
        verbose_name_plural = 'Clinical Audit Logs'
        indexes = [
            models.Index(fields=['created_at'], name='idx_audit_created_at'),
            models.Index(fields=['actor_user'], name='idx_audit_actor'),
            models.Index(fields=['entity_type'], name='idx_audit_entity_type'),
            models.Index(fields=['entity_id'], name='idx_audit_entity_id'),
            models.Index(fields=['patient'], name='idx_audit_patient'),
            models.Index(fields=['action'], name='idx_audit_action'),
        ]
        ordering = ['-created_at']

    def __str__(self):
        actor = self.actor_user.email if self.actor_user else 'system'
        return f"{self.action} on {self.entity_type}[{str(self.entity_id)[:8]}] by {actor}"


# ============================================================================
# Audit Helper Functions
# ============================================================================

def log_clinical_audit(
    actor,
    entity_type,
    entity_id,
    action,
    changed_fields=None,
    patient_id=None,
    appointment_id=None,
    extra_metadata=None,
    request_meta=None
):
    """
    Helper function to create clinical audit log entries.

    Args:
        actor: User instance, user id or None for system actions
        entity_type: AuditEntityTypeChoices value
        entity_id: UUID of the audited entity
        action: 'create'|'update'|'delete'|'restore'
        changed_fields: List of field paths that changed
        patient_id: Related patient id (optional)
        appointment_id: Related appointment id (optional)
        extra_metadata: Additional JSON-serializable context
        request_meta: Dict with 'ip' / 'user_agent' captured from the request

    Returns:
        ClinicalAuditLog instance
    """
    metadata = {}

    if changed_fields:
        metadata['changed_fields'] = list(changed_fields)

    if extra_metadata:
        metadata.update(extra_metadata)

    if request_meta:
        metadata['request'] = {
            'ip': request_meta.get('ip'),
            'user_agent': (request_meta.get('user_agent') or '')[:200],
        }

    return ClinicalAuditLog.objects.create(
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        patient_id=patient_id,
        appointment_id=appointment_id,
        metadata=metadata,
        actor_user_id=getattr(actor, 'pk', actor),
    )
