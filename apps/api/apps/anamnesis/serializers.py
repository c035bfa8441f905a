"""
Anamnesis serializers: request validation and response shapes.

Output serializers produce plain dicts; role-based redaction is applied
afterwards by apps.anamnesis.visibility.
"""
from django.conf import settings
from rest_framework import serializers

from apps.clinical.models import ClinicalAuditLog

from .models import (
    AnamnesisAuditLog,
    AnamnesisFieldDiff,
    AnamnesisPendingReview,
    AnamnesisTypeChoices,
    AnamnesisVersion,
    AuditActionChoices,
    InformationSourceChoices,
    PerceivedUrgencyChoices,
    SeverityChoices,
)
from .schema import STRUCTURED_FIELD_NAMES, AnamnesisState


def actor_data(user, role=''):
    if user is None:
        return None
    return {
        'id': str(user.id),
        'email': user.email,
        'name': f"{user.first_name} {user.last_name}".strip() or None,
        'role': role or None,
    }


# ============================================================================
# Anamnesis content
# ============================================================================

class AnamnesisContentSerializer(serializers.Serializer):
    """Structured intake fields plus payload. Every field is optional on input."""
    anamnesis_type = serializers.ChoiceField(choices=AnamnesisTypeChoices.choices, required=False)
    chief_complaint = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    has_pain = serializers.BooleanField(required=False)
    pain_intensity = serializers.IntegerField(required=False, allow_null=True, min_value=0, max_value=10)
    perceived_urgency = serializers.ChoiceField(
        choices=PerceivedUrgencyChoices.choices, required=False, allow_null=True
    )
    has_chronic_diseases = serializers.BooleanField(required=False)
    has_allergies = serializers.BooleanField(required=False)
    has_current_medication = serializers.BooleanField(required=False)
    is_pregnant = serializers.BooleanField(required=False, allow_null=True)
    exposed_to_tobacco_smoke = serializers.BooleanField(required=False, allow_null=True)
    bruxism = serializers.BooleanField(required=False, allow_null=True)
    brushings_per_day = serializers.IntegerField(required=False, allow_null=True, min_value=0, max_value=20)
    uses_dental_floss = serializers.BooleanField(required=False, allow_null=True)
    last_dental_visit = serializers.DateField(required=False, allow_null=True)
    has_sucking_habits = serializers.BooleanField(required=False, allow_null=True)
    breastfeeding_recorded = serializers.BooleanField(required=False, allow_null=True)
    payload = serializers.JSONField(required=False)

    def validate_payload(self, value):
        if not isinstance(value, dict):
            raise serializers.ValidationError('Payload must be a JSON object.')
        return value


class AnamnesisWriteSerializer(AnamnesisContentSerializer):
    """PUT body: changed fields plus concurrency token and attribution."""
    expected_version_number = serializers.IntegerField(required=False, allow_null=True, min_value=0)
    appointment_id = serializers.UUIDField(required=False, allow_null=True)
    reason = serializers.CharField(required=False, allow_blank=True, max_length=500, default='')
    information_source = serializers.ChoiceField(
        choices=InformationSourceChoices.choices, required=False, allow_blank=True, default=''
    )
    verified_with_patient = serializers.BooleanField(required=False, allow_null=True, default=None)

    def content(self):
        """Validated content fields only."""
        return {
            name: value for name, value in self.validated_data.items()
            if name in STRUCTURED_FIELD_NAMES or name == 'payload'
        }


class AnamnesisRecordSerializer(serializers.Serializer):
    """Current anamnesis (AnamnesisRecord) with its derived status."""

    def to_representation(self, record):
        data = {
            'id': str(record.id),
            'patient_id': str(record.patient_id),
            'version_number': record.version_number,
            'has_pending_reviews': record.has_pending_reviews,
            'status': self.context.get('status'),
            'consultation_context': self.context.get('consultation_context'),
            'created_by_id': str(record.created_by_id) if record.created_by_id else None,
            'updated_by_id': str(record.updated_by_id) if record.updated_by_id else None,
            'created_at': serializers.DateTimeField().to_representation(record.created_at),
            'updated_at': serializers.DateTimeField().to_representation(record.updated_at),
        }
        data.update(AnamnesisContentSerializer(record.state).data)
        return data


# ============================================================================
# Versions
# ============================================================================

class AnamnesisVersionSerializer(serializers.ModelSerializer):
    appointment_id = serializers.UUIDField(read_only=True)
    restored_from_version_id = serializers.UUIDField(read_only=True)
    restored_from_version_number = serializers.IntegerField(
        source='restored_from_version.version_number', read_only=True, default=None
    )
    created_by = serializers.SerializerMethodField()

    class Meta:
        model = AnamnesisVersion
        fields = [
            'id',
            'version_number',
            'appointment_id',
            'restored_from_version_id',
            'restored_from_version_number',
            'reason',
            'change_summary',
            'field_schema_version',
            'integrity_hash',
            'created_by',
            'created_at',
            'ip_address',
            'user_agent',
            'session_id',
            'request_path',
        ]
        read_only_fields = fields

    def get_created_by(self, obj):
        return actor_data(obj.created_by)


class AnamnesisVersionDetailSerializer(AnamnesisVersionSerializer):
    content = serializers.SerializerMethodField()
    integrity_valid = serializers.SerializerMethodField()

    class Meta(AnamnesisVersionSerializer.Meta):
        fields = AnamnesisVersionSerializer.Meta.fields + ['content', 'integrity_valid']
        read_only_fields = fields

    def get_content(self, obj):
        return AnamnesisContentSerializer(AnamnesisState.from_model(obj)).data

    def get_integrity_valid(self, obj):
        return self.context.get('integrity_valid')


# ============================================================================
# Audit entries
# ============================================================================

class AnamnesisFieldDiffSerializer(serializers.ModelSerializer):
    class Meta:
        model = AnamnesisFieldDiff
        fields = [
            'position',
            'field_path',
            'field_label',
            'field_type',
            'old_value',
            'new_value',
            'old_value_display',
            'new_value_display',
            'is_critical',
            'change_type',
        ]
        read_only_fields = fields


class AnamnesisAuditLogSerializer(serializers.ModelSerializer):
    source = serializers.SerializerMethodField()
    entity_type = serializers.SerializerMethodField()
    entity_id = serializers.UUIDField(source='anamnesis_id', read_only=True)
    patient_id = serializers.UUIDField(read_only=True)
    appointment_id = serializers.UUIDField(read_only=True)
    version_id = serializers.UUIDField(read_only=True)
    actor = serializers.SerializerMethodField()

    class Meta:
        model = AnamnesisAuditLog
        fields = [
            'id',
            'source',
            'entity_type',
            'entity_id',
            'action',
            'severity',
            'performed_at',
            'actor',
            'patient_id',
            'appointment_id',
            'version_id',
            'previous_version_number',
            'new_version_number',
            'changes_summary',
            'reason',
            'integrity_hash',
            'is_outside_consultation',
            'information_source',
            'verified_with_patient',
            'requires_review',
            'ip_address',
            'user_agent',
            'session_id',
            'request_path',
        ]
        read_only_fields = fields

    def get_source(self, obj):
        return 'anamnesis'

    def get_entity_type(self, obj):
        return 'PatientAnamnesis'

    def get_actor(self, obj):
        return actor_data(obj.actor, obj.actor_role)


class AnamnesisAuditLogDetailSerializer(AnamnesisAuditLogSerializer):
    field_diffs = AnamnesisFieldDiffSerializer(many=True, read_only=True)

    class Meta(AnamnesisAuditLogSerializer.Meta):
        fields = AnamnesisAuditLogSerializer.Meta.fields + ['field_diffs']
        read_only_fields = fields


class ClinicalAuditEntrySerializer(serializers.ModelSerializer):
    """General-purpose clinical audit entry in the same shape as anamnesis entries."""
    source = serializers.SerializerMethodField()
    severity = serializers.SerializerMethodField()
    performed_at = serializers.DateTimeField(source='created_at', read_only=True)
    actor = serializers.SerializerMethodField()
    patient_id = serializers.UUIDField(read_only=True)
    appointment_id = serializers.UUIDField(read_only=True)
    changes_summary = serializers.SerializerMethodField()
    ip_address = serializers.SerializerMethodField()
    user_agent = serializers.SerializerMethodField()

    class Meta:
        model = ClinicalAuditLog
        fields = [
            'id',
            'source',
            'entity_type',
            'entity_id',
            'action',
            'severity',
            'performed_at',
            'actor',
            'patient_id',
            'appointment_id',
            'changes_summary',
            'ip_address',
            'user_agent',
        ]
        read_only_fields = fields

    def _request_meta(self, obj):
        return (obj.metadata or {}).get('request') or {}

    def get_source(self, obj):
        return 'clinical'

    def get_severity(self, obj):
        return (obj.metadata or {}).get('severity')

    def get_actor(self, obj):
        return actor_data(obj.actor_user)

    def get_changes_summary(self, obj):
        return {key: value for key, value in (obj.metadata or {}).items() if key != 'request'}

    def get_ip_address(self, obj):
        return self._request_meta(obj).get('ip')

    def get_user_agent(self, obj):
        return self._request_meta(obj).get('user_agent')


def serialize_audit_entry(entry):
    if isinstance(entry, AnamnesisAuditLog):
        return AnamnesisAuditLogSerializer(entry).data
    return ClinicalAuditEntrySerializer(entry).data


# ============================================================================
# Pending reviews
# ============================================================================

class AnamnesisPendingReviewSerializer(serializers.ModelSerializer):
    audit_log_id = serializers.UUIDField(read_only=True)
    created_by = serializers.SerializerMethodField()

    class Meta:
        model = AnamnesisPendingReview
        fields = [
            'id',
            'audit_log_id',
            'field_path',
            'field_label',
            'old_value',
            'new_value',
            'old_value_display',
            'new_value_display',
            'reason',
            'severity',
            'created_by',
            'created_at',
        ]
        read_only_fields = fields

    def get_created_by(self, obj):
        return actor_data(obj.created_by)


# ============================================================================
# Query parameters and action bodies
# ============================================================================

class PaginationQuerySerializer(serializers.Serializer):
    page = serializers.IntegerField(required=False, default=1, min_value=1)
    limit = serializers.IntegerField(
        required=False,
        default=settings.ANAMNESIS_DEFAULT_PAGE_SIZE,
        min_value=1,
        max_value=settings.ANAMNESIS_MAX_PAGE_SIZE,
    )


class DateRangeQuerySerializer(PaginationQuerySerializer):
    date_from = serializers.DateField(required=False)
    date_to = serializers.DateField(required=False)

    def validate(self, attrs):
        date_from = attrs.get('date_from')
        date_to = attrs.get('date_to')
        if date_from and date_to and date_from > date_to:
            raise serializers.ValidationError({'date_to': 'date_to must not be before date_from.'})
        return attrs


class AuditLogQuerySerializer(DateRangeQuerySerializer):
    action = serializers.ChoiceField(choices=AuditActionChoices.choices, required=False)
    severity = serializers.ChoiceField(choices=SeverityChoices.choices, required=False)


class CompareQuerySerializer(serializers.Serializer):
    version_a = serializers.UUIDField()
    version_b = serializers.UUIDField()


class RestoreSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, max_length=500, default='')
    expected_version_number = serializers.IntegerField(required=False, allow_null=True, min_value=1)


class AccessEventSerializer(serializers.Serializer):
    action = serializers.ChoiceField(choices=[
        (AuditActionChoices.EXPORT.value, AuditActionChoices.EXPORT.label),
        (AuditActionChoices.PRINT.value, AuditActionChoices.PRINT.label),
    ])
    appointment_id = serializers.UUIDField(required=False, allow_null=True)
    reason = serializers.CharField(required=False, allow_blank=True, max_length=500, default='')
