"""
Authz models: auth_user, auth_role, auth_user_role, practitioner

Identity is consumed by the anamnesis engine as ``(actor, role)``; the
role of a user with several assignments is the highest-privilege one
(see ROLE_PRIORITY).
"""
import uuid
from django.db import models
from django.contrib.auth.models import AbstractBaseUser, BaseUserManager, PermissionsMixin


# ============================================================================
# Enums
# ============================================================================

class RoleChoices(models.TextChoices):
    """Fixed role names"""
    ADMIN = 'admin', 'Admin'
    PRACTITIONER = 'practitioner', 'Practitioner'
    RECEPTION = 'reception', 'Reception'
    MARKETING = 'marketing', 'Marketing'
    ACCOUNTING = 'accounting', 'Accounting'


# Highest privilege first
ROLE_PRIORITY = [
    RoleChoices.ADMIN,
    RoleChoices.PRACTITIONER,
    RoleChoices.RECEPTION,
    RoleChoices.ACCOUNTING,
    RoleChoices.MARKETING,
]


# ============================================================================
# User Management
# ============================================================================

class UserManager(BaseUserManager):
    """Custom user manager for email-based authentication."""

    def create_user(self, email, password=None, **extra_fields):
        if not email:
            raise ValueError('Email is required')
        email = self.normalize_email(email)
        user = self.model(email=email, **extra_fields)
        user.set_password(password)
        user.save(using=self._db)
        return user

    def create_superuser(self, email, password=None, **extra_fields):
        extra_fields.setdefault('is_staff', True)
        extra_fields.setdefault('is_superuser', True)
        extra_fields.setdefault('is_active', True)
        return self.create_user(email, password, **extra_fields)


class User(AbstractBaseUser, PermissionsMixin):
    """
    Custom user model for authentication.

    Fields:
    - id: UUID PK
    - email: unique, used as login
    - first_name, last_name
    - is_active, is_staff
    - created_at, updated_at
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    email = models.EmailField(unique=True, max_length=255)
    first_name = models.CharField(max_length=150, blank=True)
    last_name = models.CharField(max_length=150, blank=True)
    is_active = models.BooleanField(default=True)
    is_staff = models.BooleanField(default=False)  # Required for admin access
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = UserManager()

    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS = []

    class Meta:
        db_table = 'auth_user'
        verbose_name = 'User'
        verbose_name_plural = 'Users'
        indexes = [
            models.Index(fields=['email'], name='idx_user_email'),
            models.Index(fields=['is_active'], name='idx_user_active'),
        ]

    def __str__(self):
        return self.email

    @property
    def role_names(self):
        return set(self.user_roles.values_list('role__name', flat=True))

    @property
    def primary_role(self):
        """Highest-privilege role assigned to the user, or None."""
        return resolve_primary_role(self.role_names)


def resolve_primary_role(role_names):
    for role in ROLE_PRIORITY:
        if role.value in role_names:
            return RoleChoices(role)
    return None


class Role(models.Model):
    """
    System roles.

    - id: UUID PK
    - name: unique (admin|practitioner|reception|marketing|accounting)
    - created_at
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(
        max_length=50,
        unique=True,
        choices=RoleChoices.choices
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'auth_role'
        verbose_name = 'Role'
        verbose_name_plural = 'Roles'

    def __str__(self):
        return self.get_name_display()


class UserRole(models.Model):
    """
    Many-to-many relationship between users and roles.

    - user_id: FK -> auth_user
    - role_id: FK -> auth_role
    - Unique (user_id, role_id)
    """
    user = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='user_roles'
    )
    role = models.ForeignKey(
        Role,
        on_delete=models.CASCADE,
        related_name='user_roles'
    )

    class Meta:
        db_table = 'auth_user_role'
        verbose_name = 'User Role'
        verbose_name_plural = 'User Roles'
        unique_together = [('user', 'role')]
        indexes = [
            models.Index(fields=['user'], name='idx_user_role_user'),
            models.Index(fields=['role'], name='idx_user_role_role'),
        ]

    def __str__(self):
        return f"{self.user.email} - {self.role.name}"


class Practitioner(models.Model):
    """
    Clinical staff member linked to a user; appointments are booked
    against a practitioner.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.OneToOneField(
        User,
        on_delete=models.CASCADE,
        related_name='practitioner'
    )
    display_name = models.CharField(max_length=255)
    specialty = models.CharField(max_length=100, default='Dentistry')
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'practitioner'
        verbose_name = 'Practitioner'
        verbose_name_plural = 'Practitioners'
        indexes = [
            models.Index(fields=['is_active'], name='idx_practitioner_active'),
            models.Index(fields=['display_name'], name='idx_practitioner_name'),
        ]

    def __str__(self):
        return self.display_name
