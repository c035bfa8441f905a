from django.contrib import admin
from .models import Patient, Appointment, ClinicalAuditLog


@admin.register(Patient)
class PatientAdmin(admin.ModelAdmin):
    list_display = ['first_name', 'last_name', 'birth_date', 'is_deleted', 'created_at']
    list_filter = ['sex', 'is_deleted']
    search_fields = ['first_name', 'last_name', 'email', 'phone']
    readonly_fields = ['id', 'created_at', 'updated_at']
    autocomplete_fields = ['created_by_user']


@admin.register(Appointment)
class AppointmentAdmin(admin.ModelAdmin):
    list_display = ['scheduled_start', 'patient', 'practitioner', 'status']
    list_filter = ['status', 'is_deleted']
    search_fields = ['patient__first_name', 'patient__last_name']
    readonly_fields = ['id', 'created_at', 'updated_at']
    autocomplete_fields = ['patient', 'practitioner']


@admin.register(ClinicalAuditLog)
class ClinicalAuditLogAdmin(admin.ModelAdmin):
    list_display = ['created_at', 'action', 'entity_type', 'entity_id', 'actor_user', 'patient']
    list_filter = ['action', 'entity_type', 'created_at']
    search_fields = ['entity_id', 'actor_user__email']
    readonly_fields = [
        'id', 'created_at', 'actor_user', 'action', 'entity_type', 'entity_id',
        'patient', 'appointment', 'metadata',
    ]

    def has_add_permission(self, request):
        # Audit logs should not be manually created
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        # Audit logs should not be deleted
        return False
