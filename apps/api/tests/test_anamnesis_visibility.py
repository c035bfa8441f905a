"""
Tests for role-based projections of audit entries.
"""
import uuid

from apps.anamnesis.visibility import AuditContext, in_scope, project, redact
from apps.authz.models import RoleChoices


def _entry(patient_id, appointment_id=None):
    return {
        'id': str(uuid.uuid4()),
        'action': 'UPDATE',
        'patient_id': str(patient_id),
        'appointment_id': str(appointment_id) if appointment_id else None,
        'ip_address': '10.0.0.5',
        'user_agent': 'pytest-agent',
        'session_id': 'session-123',
        'request_path': '/api/v1/clinical/patients/x/anamnesis/',
        'integrity_hash': 'a' * 64,
        'actor': {'id': '1', 'email': 'doctor@test.com', 'name': 'Ana Ruiz', 'role': 'practitioner'},
    }


class TestRedact:

    def test_reception_sees_no_technical_details(self):
        """Reception gets the entry without network, session or hash data."""
        entry = _entry(uuid.uuid4())

        projected = redact(entry, RoleChoices.RECEPTION)

        for field in ('ip_address', 'user_agent', 'session_id', 'request_path', 'integrity_hash'):
            assert field not in projected
        assert 'email' not in projected['actor']
        assert projected['actor']['name'] == 'Ana Ruiz'
        assert projected['action'] == 'UPDATE'

    def test_practitioner_sees_no_technical_details(self):
        projected = redact(_entry(uuid.uuid4()), RoleChoices.PRACTITIONER)
        assert 'ip_address' not in projected

    def test_admin_sees_everything(self):
        entry = _entry(uuid.uuid4())
        assert redact(entry, RoleChoices.ADMIN) == entry

    def test_input_is_not_mutated(self):
        entry = _entry(uuid.uuid4())
        redact(entry, RoleChoices.RECEPTION)
        assert entry['ip_address'] == '10.0.0.5'
        assert entry['actor']['email'] == 'doctor@test.com'

    def test_projection_is_idempotent(self):
        entry = _entry(uuid.uuid4())
        once = redact(entry, RoleChoices.RECEPTION)
        assert redact(once, RoleChoices.RECEPTION) == once

    def test_unknown_role_is_redacted(self):
        assert 'ip_address' not in redact(_entry(uuid.uuid4()), None)

    def test_plain_string_role(self):
        assert 'ip_address' in redact(_entry(uuid.uuid4()), 'admin')


class TestScope:

    def test_patient_context(self):
        patient_id = uuid.uuid4()
        context = AuditContext('patient', str(patient_id))

        assert in_scope(_entry(patient_id), context)
        assert not in_scope(_entry(uuid.uuid4()), context)

    def test_appointment_context(self):
        appointment_id = uuid.uuid4()
        context = AuditContext('appointment', str(appointment_id))

        assert in_scope(_entry(uuid.uuid4(), appointment_id), context)
        assert not in_scope(_entry(uuid.uuid4()), context)

    def test_no_context_keeps_everything(self):
        assert in_scope(_entry(uuid.uuid4()), None)

    def test_project_scopes_then_redacts(self):
        patient_id = uuid.uuid4()
        entries = [_entry(patient_id), _entry(uuid.uuid4()), _entry(patient_id)]

        projected = project(entries, RoleChoices.RECEPTION, AuditContext('patient', str(patient_id)))

        assert len(projected) == 2
        assert all('ip_address' not in entry for entry in projected)
        assert [entry['id'] for entry in projected] == [entries[0]['id'], entries[2]['id']]
