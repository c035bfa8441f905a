"""
Global test fixtures for pytest.

Provides reusable fixtures for API testing:
- Users and authenticated API clients by role
- Model instances (Patient, Appointment, Practitioner)
- A request context and a helper to create an anamnesis through the services
"""
import datetime

import pytest
from django.utils import timezone
from rest_framework.test import APIClient

from apps.anamnesis.context import RequestContext
from apps.authz.models import Practitioner, Role, RoleChoices, User, UserRole
from apps.clinical.models import Appointment, Patient


def _user_with_role(email, role_name, **extra):
    user = User.objects.create_user(
        email=email,
        password='testpass123',
        is_active=True,
        **extra
    )
    role, _ = Role.objects.get_or_create(name=role_name)
    UserRole.objects.create(user=user, role=role)
    return user


def _client_for(user):
    client = APIClient()
    client.force_authenticate(user=user)
    return client


# ============================================================================
# Users
# ============================================================================

@pytest.fixture
def admin_user(db):
    return _user_with_role('admin@test.com', RoleChoices.ADMIN, is_staff=True, is_superuser=True)


@pytest.fixture
def practitioner_user(db):
    user = _user_with_role('practitioner@test.com', RoleChoices.PRACTITIONER, first_name='Ana', last_name='Ruiz')
    Practitioner.objects.create(
        user=user,
        display_name='Dr. Ana Ruiz',
        is_active=True
    )
    return user


@pytest.fixture
def second_practitioner_user(db):
    return _user_with_role('practitioner2@test.com', RoleChoices.PRACTITIONER)


@pytest.fixture
def reception_user(db):
    return _user_with_role('reception@test.com', RoleChoices.RECEPTION)


@pytest.fixture
def accounting_user(db):
    return _user_with_role('accounting@test.com', RoleChoices.ACCOUNTING)


# ============================================================================
# API Clients
# ============================================================================

@pytest.fixture
def api_client():
    """Unauthenticated DRF API client."""
    return APIClient()


@pytest.fixture
def admin_client(admin_user):
    """Admin: full access, including technical request details."""
    return _client_for(admin_user)


@pytest.fixture
def practitioner_client(practitioner_user):
    """Practitioner: edit, restore, audit and reviews; no technical details."""
    return _client_for(practitioner_user)


@pytest.fixture
def reception_client(reception_user):
    """Reception: read the record and its audit trail only."""
    return _client_for(reception_user)


@pytest.fixture
def accounting_client(accounting_user):
    """Accounting: NO access to the anamnesis."""
    return _client_for(accounting_user)


# ============================================================================
# Model Instances
# ============================================================================

@pytest.fixture
def patient(db):
    return Patient.objects.create(
        first_name='Lucia',
        last_name='Martinez',
        birth_date=datetime.date(1988, 4, 12),
        sex='female',
        email='lucia@example.com',
        phone='+34600000000'
    )


@pytest.fixture
def other_patient(db):
    return Patient.objects.create(
        first_name='Pablo',
        last_name='Garcia',
        birth_date=datetime.date(1975, 9, 30),
        sex='male'
    )


@pytest.fixture
def appointment(patient, practitioner_user):
    start = timezone.now()
    return Appointment.objects.create(
        patient=patient,
        practitioner=practitioner_user.practitioner,
        status='confirmed',
        scheduled_start=start,
        scheduled_end=start + datetime.timedelta(minutes=30)
    )


@pytest.fixture
def request_context():
    return RequestContext(
        ip_address='10.0.0.5',
        user_agent='pytest-agent',
        session_id='session-123',
        request_path='/api/v1/clinical/test/'
    )
