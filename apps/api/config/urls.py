"""
URL configuration for the clinic EMR API.
"""
from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import (
    SpectacularAPIView,
    SpectacularRedocView,
    SpectacularSwaggerView,
)

urlpatterns = [
    # Admin
    path('admin/', admin.site.urls),

    # Core API (health checks, metrics, JWT auth)
    path('api/', include('apps.core.urls')),
    path('api/v1/', include('apps.authz.urls')),  # Authz API (current user + capabilities)
    path('api/v1/clinical/', include('apps.anamnesis.urls')),  # Anamnesis, versions, audit

    # API Schema
    path('api/schema/', SpectacularAPIView.as_view(), name='schema'),
    path('api/schema/swagger-ui/', SpectacularSwaggerView.as_view(url_name='schema'), name='swagger-ui'),
    path('api/schema/redoc/', SpectacularRedocView.as_view(url_name='schema'), name='redoc'),
]
