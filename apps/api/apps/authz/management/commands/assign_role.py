"""
Management command to assign a role to an existing user.

Usage:
    python manage.py assign_role reception@example.com reception

Idempotent: assigning a role the user already holds is a no-op.
"""
from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand, CommandError

from apps.authz.models import Role, RoleChoices, UserRole


class Command(BaseCommand):
    help = 'Assign a role (admin|practitioner|reception|marketing|accounting) to a user'

    def add_arguments(self, parser):
        parser.add_argument('email')
        parser.add_argument('role', choices=RoleChoices.values)

    def handle(self, *args, **options):
        User = get_user_model()

        try:
            user = User.objects.get(email=options['email'])
        except User.DoesNotExist:
            raise CommandError(f"User {options['email']} does not exist")

        role, _ = Role.objects.get_or_create(name=options['role'])
        _, created = UserRole.objects.get_or_create(user=user, role=role)

        if created:
            self.stdout.write(self.style.SUCCESS(f'Assigned {role.name} role to {user.email}'))
        else:
            self.stdout.write(f'User {user.email} already has {role.name} role')

        self.stdout.write(f'Effective role: {user.primary_role}')
