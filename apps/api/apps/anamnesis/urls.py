"""
Anamnesis URLs - current record, versions, audit trail, pending reviews
"""
from django.urls import path

from .models import ContextTypeChoices
from .views import (
    AnamnesisAccessEventView,
    AnamnesisAuditLogDetailView,
    AnamnesisAuditLogListView,
    AnamnesisPendingReviewListView,
    AnamnesisVersionCompareView,
    AnamnesisVersionDetailView,
    AnamnesisVersionListView,
    AnamnesisVersionRestoreView,
    ContextualAuditView,
    PatientAnamnesisView,
)

anamnesis_prefix = 'patients/<uuid:patient_id>/anamnesis/'

urlpatterns = [
    path(anamnesis_prefix, PatientAnamnesisView.as_view(), name='patient-anamnesis'),
    path(f'{anamnesis_prefix}access-events/', AnamnesisAccessEventView.as_view(), name='anamnesis-access-events'),
    path(f'{anamnesis_prefix}versions/', AnamnesisVersionListView.as_view(), name='anamnesis-versions'),
    path(f'{anamnesis_prefix}versions/compare/', AnamnesisVersionCompareView.as_view(), name='anamnesis-versions-compare'),
    path(f'{anamnesis_prefix}versions/<uuid:version_id>/', AnamnesisVersionDetailView.as_view(), name='anamnesis-version-detail'),
    path(f'{anamnesis_prefix}versions/<uuid:version_id>/restore/', AnamnesisVersionRestoreView.as_view(), name='anamnesis-version-restore'),
    path(f'{anamnesis_prefix}audit/', AnamnesisAuditLogListView.as_view(), name='anamnesis-audit'),
    path(f'{anamnesis_prefix}audit/<uuid:log_id>/', AnamnesisAuditLogDetailView.as_view(), name='anamnesis-audit-detail'),
    path(f'{anamnesis_prefix}reviews/', AnamnesisPendingReviewListView.as_view(), name='anamnesis-reviews'),

    # Contextual audit (anamnesis + clinical entries per patient / appointment)
    path(
        'audit/context/patient/<uuid:context_id>/',
        ContextualAuditView.as_view(),
        {'context_type': ContextTypeChoices.PATIENT.value},
        name='contextual-audit-patient',
    ),
    path(
        'audit/context/appointment/<uuid:context_id>/',
        ContextualAuditView.as_view(),
        {'context_type': ContextTypeChoices.APPOINTMENT.value},
        name='contextual-audit-appointment',
    ),
]
