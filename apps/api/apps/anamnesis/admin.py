from django.contrib import admin

from .models import AnamnesisAuditLog, AnamnesisPendingReview, AnamnesisVersion, PatientAnamnesis


class ReadOnlyAdmin(admin.ModelAdmin):
    """Anamnesis history is written by the services only."""

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(PatientAnamnesis)
class PatientAnamnesisAdmin(ReadOnlyAdmin):
    list_display = ['patient', 'anamnesis_type', 'current_version_number', 'has_pending_reviews', 'updated_at']
    list_filter = ['anamnesis_type', 'has_pending_reviews']
    search_fields = ['patient__first_name', 'patient__last_name']


@admin.register(AnamnesisVersion)
class AnamnesisVersionAdmin(ReadOnlyAdmin):
    list_display = ['anamnesis', 'version_number', 'created_by', 'created_at', 'restored_from_version']
    search_fields = ['anamnesis__id']
    ordering = ['-created_at']


@admin.register(AnamnesisAuditLog)
class AnamnesisAuditLogAdmin(ReadOnlyAdmin):
    list_display = ['performed_at', 'action', 'severity', 'actor', 'actor_role', 'patient']
    list_filter = ['action', 'severity', 'is_outside_consultation', 'information_source']
    date_hierarchy = 'performed_at'


@admin.register(AnamnesisPendingReview)
class AnamnesisPendingReviewAdmin(ReadOnlyAdmin):
    list_display = ['field_label', 'severity', 'patient', 'created_at', 'reviewed_at', 'is_approved']
    list_filter = ['severity', 'is_approved']
