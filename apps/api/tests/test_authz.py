"""
Tests for roles: bootstrap migration, role resolution, /auth/me and the
role management commands.
"""
from io import StringIO

import pytest
from django.core.management import call_command
from django.core.management.base import CommandError
from django.urls import reverse

from apps.authz.models import Role, RoleChoices, User, UserRole, resolve_primary_role


@pytest.mark.django_db
class TestRoleBootstrap:
    """The fixed roles are created by migrations."""

    def test_all_roles_exist_after_migrations(self):
        names = set(Role.objects.values_list('name', flat=True))
        assert names == set(RoleChoices.values)


class TestRoleResolution:

    def test_highest_privilege_wins(self):
        assert resolve_primary_role({'reception', 'practitioner'}) == RoleChoices.PRACTITIONER
        assert resolve_primary_role({'admin', 'reception'}) == RoleChoices.ADMIN

    def test_no_roles(self):
        assert resolve_primary_role(set()) is None


@pytest.mark.django_db
class TestCurrentUser:

    def test_practitioner_capabilities(self, practitioner_client):
        response = practitioner_client.get(reverse('current-user'))

        assert response.status_code == 200
        assert response.data['email'] == 'practitioner@test.com'
        assert response.data['role'] == 'practitioner'
        capabilities = response.data['capabilities']
        assert capabilities['can_edit'] is True
        assert capabilities['can_restore'] is True
        assert capabilities['can_view_technical_details'] is False

    def test_reception_capabilities(self, reception_client):
        capabilities = reception_client.get(reverse('current-user')).data['capabilities']

        assert capabilities['can_view_record'] is True
        assert capabilities['can_view_audit'] is True
        assert capabilities['can_edit'] is False
        assert capabilities['can_restore'] is False
        assert capabilities['can_view_pending_reviews'] is False

    def test_accounting_has_no_capabilities(self, accounting_client):
        capabilities = accounting_client.get(reverse('current-user')).data['capabilities']
        assert not any(capabilities.values())

    def test_unauthenticated(self, api_client):
        response = api_client.get(reverse('current-user'))
        assert response.status_code == 401


@pytest.mark.django_db
class TestRoleCommands:

    def test_assign_role(self):
        user = User.objects.create_user(email='new@test.com', password='testpass123')

        out = StringIO()
        call_command('assign_role', 'new@test.com', 'reception', stdout=out)
        call_command('assign_role', 'new@test.com', 'reception', stdout=out)

        assert UserRole.objects.filter(user=user, role__name='reception').count() == 1
        assert 'already has reception role' in out.getvalue()

    def test_assign_role_unknown_user(self):
        with pytest.raises(CommandError):
            call_command('assign_role', 'missing@test.com', 'reception')

    def test_ensure_superuser_assigns_admin_role(self, monkeypatch):
        monkeypatch.setenv('DJANGO_SUPERUSER_EMAIL', 'boot@test.com')
        monkeypatch.setenv('DJANGO_SUPERUSER_PASSWORD', 'bootpass123')

        call_command('ensure_superuser', stdout=StringIO())
        call_command('ensure_superuser', stdout=StringIO())

        user = User.objects.get(email='boot@test.com')
        assert user.is_superuser is True
        assert user.primary_role == RoleChoices.ADMIN
        assert UserRole.objects.filter(user=user).count() == 1
