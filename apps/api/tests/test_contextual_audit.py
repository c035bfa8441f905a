"""
Tests for contextual audit: anamnesis and clinical entries per patient or
appointment, merged newest first.
"""
import uuid
from unittest import mock

import pytest
from django.db import DatabaseError
from django.urls import reverse
from rest_framework import status

from apps.anamnesis import services
from apps.anamnesis.exceptions import NotFound
from apps.anamnesis.models import AuditContextLink
from apps.authz.models import RoleChoices
from apps.clinical.models import Appointment, AuditEntityTypeChoices, Patient, log_clinical_audit

PRACTITIONER = RoleChoices.PRACTITIONER


@pytest.fixture
def anamnesis_with_appointment(patient, appointment, practitioner_user, request_context):
    services.save_anamnesis(patient.id, {'has_pain': False}, None, practitioner_user, PRACTITIONER,
                            request_context)
    services.save_anamnesis(patient.id, {'has_pain': True}, 1, practitioner_user, PRACTITIONER,
                            request_context, appointment_id=appointment.id)


@pytest.fixture
def appointment_audit(patient, appointment, practitioner_user):
    """General-purpose clinical entry about the appointment itself."""
    return log_clinical_audit(
        actor=practitioner_user,
        entity_type=AuditEntityTypeChoices.APPOINTMENT,
        entity_id=appointment.id,
        action='update',
        changed_fields=['status'],
        patient_id=patient.id,
        appointment_id=appointment.id,
        request_meta={'ip': '10.0.0.9', 'user_agent': 'front-desk'},
    )


@pytest.mark.django_db
class TestContextIndex:

    def test_clinical_entries_are_indexed_on_save(self, appointment_audit, patient, appointment):
        links = AuditContextLink.objects.filter(clinical_audit_log=appointment_audit)
        assert {(link.context_type, link.context_id) for link in links} == {
            ('patient', patient.id),
            ('appointment', appointment.id),
        }

    def test_anamnesis_mirrors_are_not_indexed(self, patient, practitioner_user):
        entry = log_clinical_audit(
            actor=practitioner_user,
            entity_type=AuditEntityTypeChoices.ANAMNESIS,
            entity_id=uuid.uuid4(),
            action='update',
            patient_id=patient.id,
        )
        assert not AuditContextLink.objects.filter(clinical_audit_log=entry).exists()

    def test_entries_without_patient_are_not_indexed(self, practitioner_user):
        entry = log_clinical_audit(
            actor=practitioner_user,
            entity_type=AuditEntityTypeChoices.CONSENT,
            entity_id=uuid.uuid4(),
            action='create',
        )
        assert not AuditContextLink.objects.filter(clinical_audit_log=entry).exists()


@pytest.mark.django_db
class TestContextualAuditService:

    def test_patient_context_merges_sources(self, anamnesis_with_appointment, appointment_audit, patient):
        entries = services.list_contextual_audit('patient', patient.id)

        sources = [entry.__class__.__name__ for entry in entries]
        assert sources.count('AnamnesisAuditLog') == 2
        assert sources.count('ClinicalAuditLog') == 1
        timestamps = [services._entry_timestamp(entry) for entry in entries]
        assert timestamps == sorted(timestamps, reverse=True)

    def test_appointment_context_only_has_linked_entries(self, anamnesis_with_appointment, appointment_audit,
                                                         appointment):
        entries = services.list_contextual_audit('appointment', appointment.id)

        assert len(entries) == 2
        assert all(entry.appointment_id == appointment.id for entry in entries)

    def test_limit(self, anamnesis_with_appointment, appointment_audit, patient):
        assert len(services.list_contextual_audit('patient', patient.id, limit=2)) == 2

    def test_unknown_subject(self):
        with pytest.raises(NotFound):
            services.list_contextual_audit('appointment', uuid.uuid4())

    def test_deleted_patient_is_not_found(self, anamnesis_with_appointment, patient):
        Patient.objects.filter(pk=patient.pk).update(is_deleted=True)

        with pytest.raises(NotFound):
            services.list_contextual_audit('patient', patient.id)

    def test_deleted_appointment_is_not_found(self, anamnesis_with_appointment, appointment):
        Appointment.objects.filter(pk=appointment.pk).update(is_deleted=True)

        with pytest.raises(NotFound):
            services.list_contextual_audit('appointment', appointment.id)

    def test_clinical_read_failure_keeps_anamnesis_entries(self, anamnesis_with_appointment, appointment_audit,
                                                           patient):
        with mock.patch(
            'apps.anamnesis.services.ClinicalAuditLog.objects.filter', side_effect=DatabaseError('down')
        ):
            entries = services.list_contextual_audit('patient', patient.id)

        assert [entry.__class__.__name__ for entry in entries] == ['AnamnesisAuditLog', 'AnamnesisAuditLog']


@pytest.mark.django_db
class TestContextualAuditAPI:

    def test_reception_view_is_redacted(self, anamnesis_with_appointment, appointment_audit, reception_client,
                                        appointment):
        url = reverse('contextual-audit-appointment', kwargs={'context_id': appointment.id})

        response = reception_client.get(url)

        assert response.status_code == status.HTTP_200_OK
        assert response.data['context'] == {'type': 'appointment', 'id': str(appointment.id)}
        assert {entry['source'] for entry in response.data['data']} == {'anamnesis', 'clinical'}
        for entry in response.data['data']:
            assert 'ip_address' not in entry
            assert 'user_agent' not in entry

    def test_admin_sees_clinical_request_details(self, appointment_audit, admin_client, appointment):
        url = reverse('contextual-audit-appointment', kwargs={'context_id': appointment.id})

        response = admin_client.get(url)

        (entry,) = response.data['data']
        assert entry['source'] == 'clinical'
        assert entry['ip_address'] == '10.0.0.9'
        assert entry['changes_summary'] == {'changed_fields': ['status']}

    def test_patient_context_route(self, anamnesis_with_appointment, practitioner_client, patient):
        url = reverse('contextual-audit-patient', kwargs={'context_id': patient.id})

        response = practitioner_client.get(url)

        assert response.status_code == status.HTTP_200_OK
        assert len(response.data['data']) == 2

    def test_accounting_forbidden(self, accounting_client, patient):
        url = reverse('contextual-audit-patient', kwargs={'context_id': patient.id})
        assert accounting_client.get(url).status_code == status.HTTP_403_FORBIDDEN

    def test_deleted_patient_route_is_not_found(self, anamnesis_with_appointment, practitioner_client, patient):
        Patient.objects.filter(pk=patient.pk).update(is_deleted=True)
        url = reverse('contextual-audit-patient', kwargs={'context_id': patient.id})

        response = practitioner_client.get(url)

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.data['error']['code'] == 'NOT_FOUND'
