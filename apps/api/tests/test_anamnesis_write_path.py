"""
Tests for the anamnesis write path: create, update, optimistic concurrency
and the pending review queue.
"""
import datetime
from unittest import mock

import pytest
from django.db import DatabaseError
from prometheus_client import REGISTRY

from apps.anamnesis import services
from apps.anamnesis.exceptions import Forbidden, NotFound, ValidationError, VersionConflict
from apps.anamnesis.models import (
    AnamnesisAuditLog,
    AnamnesisFieldDiff,
    AnamnesisPendingReview,
    AnamnesisVersion,
    AuditContextLink,
)
from apps.anamnesis.repository import SnapshotStore
from apps.authz.models import RoleChoices
from apps.clinical.models import Appointment, Patient

PRACTITIONER = RoleChoices.PRACTITIONER


def _reviews_counted():
    return REGISTRY.get_sample_value('anamnesis_pending_reviews_total', {'severity': 'CRITICAL'}) or 0


@pytest.fixture
def created(patient, practitioner_user, request_context):
    """Anamnesis at version 1 with no pain recorded."""
    return services.save_anamnesis(
        patient.id,
        {'chief_complaint': 'Sensitivity', 'has_pain': False},
        None,
        practitioner_user,
        PRACTITIONER,
        request_context,
    )


@pytest.mark.django_db
class TestCreate:

    def test_first_save_creates_version_one(self, created, patient, practitioner_user):
        assert created.created is True
        assert created.changed is True
        assert created.consultation_context == 'FIRST_TIME'
        assert created.record.version_number == 1
        assert created.version.version_number == 1
        assert created.version.created_by_id == practitioner_user.id
        assert created.audit_entry.action == 'CREATE'
        assert created.audit_entry.severity == 'LOW'
        assert created.audit_entry.new_version_number == 1
        assert created.audit_entry.previous_version_number is None
        assert created.reviews == []

    def test_create_does_not_queue_reviews(self, created):
        """Critical fields set on creation are baseline data, not changes to review."""
        assert not AnamnesisPendingReview.objects.exists()
        assert created.record.has_pending_reviews is False

    def test_create_stores_hash_of_content(self, created):
        version = AnamnesisVersion.objects.get(pk=created.version.pk)
        assert SnapshotStore.verify(version)
        assert created.audit_entry.integrity_hash == version.integrity_hash

    def test_create_with_nonzero_expected_version_conflicts(self, patient, practitioner_user, request_context):
        with pytest.raises(VersionConflict) as exc_info:
            services.save_anamnesis(patient.id, {}, 3, practitioner_user, PRACTITIONER, request_context)

        assert exc_info.value.actual_version_number == 0

    def test_adult_type_by_default(self, created):
        assert created.record.state.anamnesis_type == 'ADULT'

    def test_minor_patient_defaults_to_pediatric(self, practitioner_user, request_context):
        child = Patient.objects.create(
            first_name='Leo',
            last_name='Martinez',
            birth_date=datetime.date(datetime.date.today().year - 8, 1, 1),
        )

        result = services.save_anamnesis(child.id, {}, None, practitioner_user, PRACTITIONER, request_context)

        assert result.record.state.anamnesis_type == 'PEDIATRIC'

    def test_context_links_written(self, created, patient):
        links = AuditContextLink.objects.filter(anamnesis_audit_log=created.audit_entry)
        assert [(link.context_type, link.context_id) for link in links] == [('patient', patient.id)]

    def test_deleted_patient_is_not_found(self, patient, practitioner_user, request_context):
        Patient.objects.filter(pk=patient.pk).update(is_deleted=True)

        with pytest.raises(NotFound):
            services.save_anamnesis(patient.id, {}, None, practitioner_user, PRACTITIONER, request_context)


@pytest.mark.django_db
class TestUpdate:

    def test_single_field_update(self, created, patient, practitioner_user, request_context):
        """has_pain false -> true: version 2, one diff, no review."""
        result = services.save_anamnesis(
            patient.id, {'has_pain': True}, 1, practitioner_user, PRACTITIONER, request_context
        )

        assert result.created is False
        assert result.consultation_context == 'FOLLOW_UP'
        assert result.record.version_number == 2
        assert result.record.state.has_pain is True
        assert result.record.state.chief_complaint == 'Sensitivity'
        assert result.audit_entry.action == 'UPDATE'
        assert result.audit_entry.previous_version_number == 1
        assert result.audit_entry.new_version_number == 2
        assert result.audit_entry.changes_summary['fields_changed'] == ['has_pain']
        (field_diff,) = AnamnesisFieldDiff.objects.filter(audit_log=result.audit_entry)
        assert field_diff.field_path == 'has_pain'
        assert field_diff.change_type == 'MODIFIED'
        assert field_diff.is_critical is False
        assert result.reviews == []

    def test_unchanged_save_creates_no_version(self, created, patient, practitioner_user, request_context):
        result = services.save_anamnesis(
            patient.id, {'chief_complaint': 'Sensitivity'}, 1, practitioner_user, PRACTITIONER, request_context
        )

        assert result.changed is False
        assert result.record.version_number == 1
        assert AnamnesisVersion.objects.count() == 1
        assert AnamnesisAuditLog.objects.count() == 1

    def test_update_requires_expected_version(self, created, patient, practitioner_user, request_context):
        with pytest.raises(ValidationError) as exc_info:
            services.save_anamnesis(
                patient.id, {'has_pain': True}, None, practitioner_user, PRACTITIONER, request_context
            )

        assert 'expected_version_number' in exc_info.value.details

    def test_stale_expected_version_conflicts(self, created, patient, practitioner_user,
                                              second_practitioner_user, request_context):
        """Second writer based on version 1 loses; nothing of theirs is stored."""
        services.save_anamnesis(patient.id, {'has_pain': True}, 1, practitioner_user, PRACTITIONER, request_context)

        with pytest.raises(VersionConflict) as exc_info:
            services.save_anamnesis(
                patient.id, {'bruxism': True}, 1, second_practitioner_user, PRACTITIONER, request_context
            )

        assert exc_info.value.expected_version_number == 1
        assert exc_info.value.actual_version_number == 2
        record = services.get_record(patient.id)
        assert record.version_number == 2
        assert record.state.bruxism is None
        assert AnamnesisVersion.objects.count() == 2

    def test_failed_audit_write_rolls_back_update(self, created, patient, practitioner_user, request_context):
        """A failure after the aggregate commit leaves version, snapshot and audit trail untouched."""
        with mock.patch('apps.anamnesis.services.write_audit_entry', side_effect=DatabaseError('down')):
            with pytest.raises(DatabaseError):
                services.save_anamnesis(
                    patient.id, {'has_allergies': True}, 1, practitioner_user, PRACTITIONER, request_context
                )

        record = services.get_record(patient.id)
        assert record.version_number == 1
        assert record.state.has_allergies is False
        assert AnamnesisVersion.objects.count() == 1
        assert AnamnesisAuditLog.objects.count() == 1
        assert AnamnesisFieldDiff.objects.filter(audit_log__action='UPDATE').count() == 0
        assert not AnamnesisPendingReview.objects.exists()

    def test_payload_is_replaced_wholesale(self, created, patient, practitioner_user, request_context):
        services.save_anamnesis(
            patient.id, {'payload': {'custom_notes': 'a', 'allergies': []}}, 1,
            practitioner_user, PRACTITIONER, request_context
        )
        result = services.save_anamnesis(
            patient.id, {'payload': {'custom_notes': 'b'}}, 2, practitioner_user, PRACTITIONER, request_context
        )

        assert result.record.state.payload == {'custom_notes': 'b'}

    def test_appointment_link(self, created, patient, appointment, practitioner_user, request_context):
        result = services.save_anamnesis(
            patient.id, {'has_pain': True}, 1, practitioner_user, PRACTITIONER, request_context,
            appointment_id=appointment.id,
        )

        assert result.version.appointment_id == appointment.id
        assert result.audit_entry.appointment_id == appointment.id
        contexts = set(
            AuditContextLink.objects.filter(anamnesis_audit_log=result.audit_entry)
            .values_list('context_type', flat=True)
        )
        assert contexts == {'patient', 'appointment'}

    def test_foreign_appointment_rejected(self, created, patient, other_patient, practitioner_user, request_context):
        start = datetime.datetime(2025, 3, 1, 10, 0, tzinfo=datetime.timezone.utc)
        foreign = Appointment.objects.create(
            patient=other_patient,
            practitioner=practitioner_user.practitioner,
            status='confirmed',
            scheduled_start=start,
            scheduled_end=start + datetime.timedelta(minutes=30),
        )

        with pytest.raises(ValidationError):
            services.save_anamnesis(
                patient.id, {'has_pain': True}, 1, practitioner_user, PRACTITIONER, request_context,
                appointment_id=foreign.id,
            )

    def test_role_without_edit_capability(self, patient, reception_user, request_context):
        with pytest.raises(Forbidden):
            services.save_anamnesis(
                patient.id, {}, None, reception_user, RoleChoices.RECEPTION, request_context
            )
        assert not AnamnesisVersion.objects.exists()


@pytest.mark.django_db
class TestCriticalReviews:

    def test_pregnancy_change_queues_review(self, created, patient, practitioner_user, request_context):
        services.save_anamnesis(
            patient.id, {'is_pregnant': False}, 1, practitioner_user, PRACTITIONER, request_context
        )

        result = services.save_anamnesis(
            patient.id, {'is_pregnant': True}, 2, practitioner_user, PRACTITIONER, request_context,
            reason='Confirmed at check-in',
        )

        assert result.audit_entry.severity == 'CRITICAL'
        assert len(result.reviews) >= 1
        review = result.reviews[0]
        assert review.field_path == 'is_pregnant'
        assert review.severity == 'CRITICAL'
        assert review.audit_log_id == result.audit_entry.id
        assert review.reason == 'Confirmed at check-in'
        assert result.record.has_pending_reviews is True
        assert services.anamnesis_status(result.record) == 'PENDING_REVIEW'

    def test_one_review_per_critical_field(self, created, patient, practitioner_user, request_context):
        result = services.save_anamnesis(
            patient.id,
            {'has_allergies': True, 'has_current_medication': True, 'bruxism': True},
            1, practitioner_user, PRACTITIONER, request_context,
        )

        paths = sorted(review.field_path for review in result.reviews)
        assert paths == ['has_allergies', 'has_current_medication']
        assert {review.severity for review in result.reviews} == {'CRITICAL'}
        assert result.audit_entry.severity == 'HIGH'

    def test_review_counter_moves_on_commit(self, created, patient, practitioner_user, request_context,
                                            django_capture_on_commit_callbacks):
        before = _reviews_counted()

        with django_capture_on_commit_callbacks() as callbacks:
            services.save_anamnesis(
                patient.id, {'has_allergies': True}, 1, practitioner_user, PRACTITIONER, request_context
            )
            assert _reviews_counted() == before

        for callback in callbacks:
            callback()
        assert _reviews_counted() == before + 1

    def test_rolled_back_update_counts_no_review(self, created, patient, practitioner_user, request_context,
                                                 django_capture_on_commit_callbacks):
        before = _reviews_counted()

        with django_capture_on_commit_callbacks(execute=True):
            with mock.patch('apps.anamnesis.services.schedule_secondary_audit',
                            side_effect=DatabaseError('down')):
                with pytest.raises(DatabaseError):
                    services.save_anamnesis(
                        patient.id, {'has_allergies': True}, 1, practitioner_user, PRACTITIONER, request_context
                    )

        assert _reviews_counted() == before
        assert not AnamnesisPendingReview.objects.exists()
        assert services.get_record(patient.id).has_pending_reviews is False

    def test_non_critical_update_keeps_status_valid(self, created, patient, practitioner_user, request_context):
        result = services.save_anamnesis(
            patient.id, {'has_pain': True}, 1, practitioner_user, PRACTITIONER, request_context
        )

        assert services.anamnesis_status(result.record) == 'VALID'

    def test_list_pending_reviews_newest_first(self, created, patient, practitioner_user, request_context):
        services.save_anamnesis(patient.id, {'has_allergies': True}, 1, practitioner_user, PRACTITIONER,
                                request_context)
        services.save_anamnesis(patient.id, {'has_allergies': False}, 2, practitioner_user, PRACTITIONER,
                                request_context)

        reviews = list(services.list_pending_reviews(patient.id))

        assert len(reviews) == 2
        assert reviews[0].created_at >= reviews[1].created_at


@pytest.mark.django_db
class TestOutsideConsultation:
    """Edits without an appointment record where the information came from."""

    def test_edit_without_appointment_is_flagged(self, created, patient, practitioner_user, request_context):
        result = services.save_anamnesis(
            patient.id, {'has_pain': True}, 1, practitioner_user, PRACTITIONER, request_context,
            information_source='PHONE',
            verified_with_patient=True,
        )

        entry = AnamnesisAuditLog.objects.get(pk=result.audit_entry.pk)
        assert entry.is_outside_consultation is True
        assert entry.information_source == 'PHONE'
        assert entry.verified_with_patient is True
        assert entry.requires_review is False

    def test_create_without_appointment_is_flagged(self, created):
        assert created.audit_entry.is_outside_consultation is True
        assert created.audit_entry.information_source == ''
        assert created.audit_entry.verified_with_patient is None

    def test_edit_during_appointment_is_not_flagged(self, created, patient, appointment, practitioner_user,
                                                    request_context):
        result = services.save_anamnesis(
            patient.id, {'has_pain': True}, 1, practitioner_user, PRACTITIONER, request_context,
            appointment_id=appointment.id,
            information_source='IN_PERSON',
        )

        assert result.audit_entry.is_outside_consultation is False
        assert result.audit_entry.information_source == 'IN_PERSON'

    def test_critical_edit_requires_review(self, created, patient, practitioner_user, request_context):
        result = services.save_anamnesis(
            patient.id, {'has_allergies': True}, 1, practitioner_user, PRACTITIONER, request_context,
            information_source='EMAIL',
            verified_with_patient=False,
        )

        assert result.audit_entry.requires_review is True
        assert result.audit_entry.verified_with_patient is False
        assert len(result.reviews) == 1

    def test_access_events_are_not_flagged(self, created, patient, reception_user, request_context):
        services.get_current(patient.id, reception_user, RoleChoices.RECEPTION, request_context)

        entry = AnamnesisAuditLog.objects.get(action='VIEW')
        assert entry.is_outside_consultation is False
        assert entry.requires_review is False


@pytest.mark.django_db
class TestStatus:

    def test_no_record(self):
        assert services.anamnesis_status(None) == 'NO_ANAMNESIS'

    def test_expired_after_a_year(self, created):
        later = created.record.updated_at + datetime.timedelta(days=366)
        assert services.anamnesis_status(created.record, now=later) == 'EXPIRED'

    def test_valid_within_a_year(self, created):
        later = created.record.updated_at + datetime.timedelta(days=30)
        assert services.anamnesis_status(created.record, now=later) == 'VALID'


@pytest.mark.django_db
class TestAccessEvents:

    def test_get_current_logs_view(self, created, patient, reception_user, request_context):
        record = services.get_current(patient.id, reception_user, RoleChoices.RECEPTION, request_context)

        entry = AnamnesisAuditLog.objects.get(action='VIEW')
        assert record.version_number == 1
        assert entry.actor_id == reception_user.id
        assert entry.actor_role == 'reception'
        assert entry.version_id == created.version.id
        assert entry.severity == 'LOW'

    def test_get_current_without_record(self, patient, reception_user, request_context):
        assert services.get_current(patient.id, reception_user, RoleChoices.RECEPTION, request_context) is None
        assert not AnamnesisAuditLog.objects.exists()

    def test_failed_access_log_does_not_fail_the_read(self, created, patient, reception_user, request_context):
        with mock.patch('apps.anamnesis.audit.write_audit_entry', side_effect=DatabaseError('down')):
            record = services.get_current(patient.id, reception_user, RoleChoices.RECEPTION, request_context)

        assert record.version_number == 1
        assert not AnamnesisAuditLog.objects.filter(action='VIEW').exists()

    def test_export_event(self, created, patient, practitioner_user, request_context):
        entry = services.record_access_event(
            patient.id, 'EXPORT', practitioner_user, PRACTITIONER, request_context, reason='Referral'
        )

        assert entry.action == 'EXPORT'
        assert entry.reason == 'Referral'
        assert entry.new_version_number is None
