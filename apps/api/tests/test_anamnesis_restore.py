"""
Tests for restoring an earlier anamnesis version and for the integrity sweep.
"""
import uuid
from io import StringIO
from unittest import mock

import pytest
from django.core.management import call_command
from django.core.management.base import CommandError
from django.db import DatabaseError, models

from apps.anamnesis import services
from apps.anamnesis.diff import diff
from apps.anamnesis.exceptions import Forbidden, IntegrityViolation, NotFound, VersionConflict
from apps.anamnesis.models import AnamnesisAuditLog, AnamnesisPendingReview, AnamnesisVersion
from apps.anamnesis.repository import SnapshotStore
from apps.authz.models import RoleChoices

PRACTITIONER = RoleChoices.PRACTITIONER


@pytest.fixture
def history(patient, practitioner_user, request_context):
    """Four versions: v1 baseline, then three single-field updates."""
    services.save_anamnesis(
        patient.id, {'chief_complaint': 'Sensitivity', 'has_allergies': False}, None,
        practitioner_user, PRACTITIONER, request_context,
    )
    services.save_anamnesis(patient.id, {'has_pain': True}, 1, practitioner_user, PRACTITIONER, request_context)
    services.save_anamnesis(patient.id, {'has_allergies': True}, 2, practitioner_user, PRACTITIONER,
                            request_context)
    services.save_anamnesis(patient.id, {'bruxism': True}, 3, practitioner_user, PRACTITIONER, request_context)
    return {version.version_number: version for version in AnamnesisVersion.objects.all()}


@pytest.mark.django_db
class TestRestore:

    def test_restore_appends_new_version_with_old_content(self, history, patient, practitioner_user,
                                                          request_context):
        """v4 -> restore v1 -> v5 equal to v1; history keeps v1..v4 untouched."""
        target = history[1]

        result = services.restore_version(
            patient.id, target.id, practitioner_user, PRACTITIONER, 'Wrong patient data entered', request_context
        )

        assert result.record.version_number == 5
        assert result.version.version_number == 5
        assert result.version.restored_from_version_id == target.id
        assert result.version.integrity_hash == target.integrity_hash
        assert SnapshotStore.state_of(result.version) == SnapshotStore.state_of(target)
        assert result.record.state == SnapshotStore.state_of(target)
        numbers = list(services.list_versions(patient.id).values_list('version_number', flat=True))
        assert numbers == [5, 4, 3, 2, 1]

    def test_restore_writes_audit_entry(self, history, patient, practitioner_user, request_context):
        result = services.restore_version(
            patient.id, history[1].id, practitioner_user, PRACTITIONER, 'Rollback', request_context
        )

        entry = result.audit_entry
        assert entry.action == 'RESTORE'
        assert entry.reason == 'Rollback'
        assert entry.previous_version_number == 4
        assert entry.new_version_number == 5
        assert entry.version_id == result.version.id
        assert sorted(entry.changes_summary['fields_changed']) == ['bruxism', 'has_allergies', 'has_pain']

        expected = diff(SnapshotStore.state_of(history[4]), SnapshotStore.state_of(history[1]))
        recorded = list(entry.field_diffs.order_by('position').values_list(
            'field_path', 'old_value', 'new_value', 'change_type', 'is_critical'
        ))
        assert recorded == [
            (item.field_path, item.old_value, item.new_value, item.change_type, item.is_critical)
            for item in expected
        ]

    def test_restore_without_reason(self, history, patient, practitioner_user, request_context):
        result = services.restore_version(
            patient.id, history[2].id, practitioner_user, PRACTITIONER, '', request_context
        )

        assert result.record.version_number == 5
        assert result.audit_entry.reason == ''
        assert result.version.reason == ''

    def test_failed_restore_rolls_back_everything(self, history, patient, practitioner_user, request_context):
        """A failure after the aggregate commit leaves no trace of the restore."""
        with mock.patch('apps.anamnesis.restore.write_audit_entry', side_effect=DatabaseError('down')):
            with pytest.raises(DatabaseError):
                services.restore_version(
                    patient.id, history[1].id, practitioner_user, PRACTITIONER, 'Rollback', request_context
                )

        record = services.get_record(patient.id)
        assert record.version_number == 4
        assert record.state == SnapshotStore.state_of(history[4])
        assert record.has_pending_reviews is True
        assert AnamnesisVersion.objects.count() == 4
        assert not AnamnesisAuditLog.objects.filter(action='RESTORE').exists()
        assert AnamnesisPendingReview.objects.count() == 1

    def test_restore_queues_reviews_for_critical_fields(self, history, patient, practitioner_user,
                                                        request_context):
        result = services.restore_version(
            patient.id, history[1].id, practitioner_user, PRACTITIONER, 'Rollback', request_context
        )

        assert [review.field_path for review in result.reviews] == ['has_allergies']
        assert result.record.has_pending_reviews is True

    def test_restore_current_content_still_creates_version(self, history, patient, practitioner_user,
                                                           request_context):
        result = services.restore_version(
            patient.id, history[4].id, practitioner_user, PRACTITIONER, 'Re-confirm', request_context
        )

        assert result.record.version_number == 5
        assert result.audit_entry.changes_summary['total_changes'] == 0
        assert result.reviews == []

    def test_restore_with_stale_expected_version(self, history, patient, practitioner_user, request_context):
        with pytest.raises(VersionConflict) as exc_info:
            services.restore_version(
                patient.id, history[1].id, practitioner_user, PRACTITIONER, 'Rollback', request_context,
                expected_version_number=3,
            )

        assert exc_info.value.actual_version_number == 4
        assert AnamnesisVersion.objects.count() == 4

    def test_reception_cannot_restore(self, history, patient, reception_user, request_context):
        with pytest.raises(Forbidden):
            services.restore_version(
                patient.id, history[1].id, reception_user, RoleChoices.RECEPTION, 'Rollback', request_context
            )
        assert AnamnesisVersion.objects.count() == 4

    def test_foreign_version_is_not_found(self, history, patient, other_patient, practitioner_user,
                                          request_context):
        services.save_anamnesis(other_patient.id, {'has_pain': True}, None, practitioner_user, PRACTITIONER,
                                request_context)
        foreign = AnamnesisVersion.objects.get(anamnesis__patient=other_patient)

        with pytest.raises(NotFound):
            services.restore_version(
                patient.id, foreign.id, practitioner_user, PRACTITIONER, 'Rollback', request_context
            )

    def test_unknown_version_is_not_found(self, history, patient, practitioner_user, request_context):
        with pytest.raises(NotFound):
            services.restore_version(
                patient.id, uuid.uuid4(), practitioner_user, PRACTITIONER, 'Rollback', request_context
            )

    def test_tampered_target_is_rejected(self, history, patient, practitioner_user, request_context):
        target = history[2]
        models.QuerySet(AnamnesisVersion).filter(pk=target.pk).update(chief_complaint='Edited directly')

        with pytest.raises(IntegrityViolation) as exc_info:
            services.restore_version(
                patient.id, target.id, practitioner_user, PRACTITIONER, 'Rollback', request_context
            )

        assert exc_info.value.version_number == 2
        assert services.get_record(patient.id).version_number == 4
        assert not AnamnesisAuditLog.objects.filter(action='RESTORE').exists()


@pytest.mark.django_db
class TestVersionReads:

    def test_get_version_reports_integrity(self, history, patient):
        version, integrity_valid = services.get_version(patient.id, history[3].id)

        assert version.version_number == 3
        assert integrity_valid is True

    def test_get_version_flags_tampering(self, history, patient):
        models.QuerySet(AnamnesisVersion).filter(pk=history[3].pk).update(bruxism=False)

        _, integrity_valid = services.get_version(patient.id, history[3].id)

        assert integrity_valid is False

    def test_compare_versions(self, history, patient):
        result = services.compare_versions(patient.id, history[1].id, history[4].id)

        paths = [item.field_path for item in result['diffs']]
        assert paths == ['has_pain', 'has_allergies', 'bruxism']
        assert result['summary']['critical_changes'] == 1


@pytest.mark.django_db
class TestIntegrityCommand:

    def test_clean_history(self, history):
        out = StringIO()
        call_command('verify_anamnesis_integrity', stdout=out)
        assert '4 versions verified' in out.getvalue()

    def test_tampered_history_fails(self, history, patient):
        models.QuerySet(AnamnesisVersion).filter(pk=history[1].pk).update(has_pain=True)

        err = StringIO()
        with pytest.raises(CommandError):
            call_command('verify_anamnesis_integrity', '--patient', str(patient.id), stderr=err)

        assert 'Integrity mismatch' in err.getvalue()
