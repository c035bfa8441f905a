"""
Anamnesis API views.

All routes live under /api/v1/clinical/. Each view declares the capability
it needs per HTTP method in ``required_capabilities``; responses built
from audit entries or versions pass through the visibility filter.
"""
from django.core.paginator import Paginator
from drf_spectacular.utils import extend_schema
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.authz.permissions import get_request_role
from apps.core.observability.correlation import bind_user_context

from . import services
from .context import RequestContext
from .permissions import AnamnesisCapability
from .serializers import (
    AccessEventSerializer,
    AnamnesisAuditLogDetailSerializer,
    AnamnesisAuditLogSerializer,
    AnamnesisPendingReviewSerializer,
    AnamnesisRecordSerializer,
    AnamnesisVersionDetailSerializer,
    AnamnesisVersionSerializer,
    AnamnesisWriteSerializer,
    AuditLogQuerySerializer,
    CompareQuerySerializer,
    DateRangeQuerySerializer,
    RestoreSerializer,
    serialize_audit_entry,
)
from .visibility import AuditContext, project, redact


def paginate(queryset, page, limit, serialize):
    paginator = Paginator(queryset, limit)
    page_obj = paginator.get_page(page)
    # get_page clamps out-of-range pages; report the requested one
    items = page_obj.object_list if page <= max(paginator.num_pages, 1) else []
    return {
        'data': [serialize(item) for item in items],
        'pagination': {
            'page': page,
            'limit': limit,
            'total': paginator.count,
            'total_pages': paginator.num_pages if paginator.count else 0,
            'has_next': page < paginator.num_pages,
            'has_prev': page > 1,
        },
    }


class AnamnesisAPIView(APIView):
    permission_classes = [IsAuthenticated, AnamnesisCapability]
    required_capabilities = {}

    def initial(self, request, *args, **kwargs):
        super().initial(request, *args, **kwargs)
        bind_user_context(request.user)

    @property
    def role(self):
        return get_request_role(self.request)

    def request_context(self):
        return RequestContext.from_request(self.request)

    def query_params(self, serializer_class):
        serializer = serializer_class(data=self.request.query_params)
        serializer.is_valid(raise_exception=True)
        return serializer.validated_data


class PatientAnamnesisView(AnamnesisAPIView):
    """
    GET /api/v1/clinical/patients/{patient_id}/anamnesis/
    PUT /api/v1/clinical/patients/{patient_id}/anamnesis/

    GET returns the current record (logged as VIEW) or
    ``{"data": null, "status": "NO_ANAMNESIS"}``.
    PUT creates the record or updates it from ``expected_version_number``.
    """
    required_capabilities = {'GET': 'can_view_record', 'PUT': 'can_edit'}

    def _record_response(self, record, consultation_context, status_code=status.HTTP_200_OK):
        data = AnamnesisRecordSerializer(
            record,
            context={
                'status': services.anamnesis_status(record),
                'consultation_context': consultation_context,
            },
        ).data
        return Response({'data': data}, status=status_code)

    def get(self, request, patient_id):
        record = services.get_current(patient_id, request.user, self.role, self.request_context())
        if record is None:
            return Response({
                'data': None,
                'status': services.AnamnesisStatus.NO_ANAMNESIS,
                'consultation_context': services.ConsultationContext.FIRST_TIME,
            })
        return self._record_response(record, services.ConsultationContext.FOLLOW_UP)

    @extend_schema(request=AnamnesisWriteSerializer)
    def put(self, request, patient_id):
        serializer = AnamnesisWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = services.save_anamnesis(
            patient_id,
            serializer.content(),
            serializer.validated_data.get('expected_version_number'),
            request.user,
            self.role,
            self.request_context(),
            appointment_id=serializer.validated_data.get('appointment_id'),
            reason=serializer.validated_data.get('reason', ''),
            information_source=serializer.validated_data.get('information_source', ''),
            verified_with_patient=serializer.validated_data.get('verified_with_patient'),
        )
        response = self._record_response(
            result.record,
            result.consultation_context,
            status.HTTP_201_CREATED if result.created else status.HTTP_200_OK,
        )
        response.data['changed'] = result.changed
        response.data['pending_reviews_count'] = len(result.reviews)
        return response


class AnamnesisAccessEventView(AnamnesisAPIView):
    """POST /api/v1/clinical/patients/{patient_id}/anamnesis/access-events/ (EXPORT | PRINT)."""
    required_capabilities = {'POST': 'can_view_record'}

    @extend_schema(request=AccessEventSerializer)
    def post(self, request, patient_id):
        serializer = AccessEventSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        entry = services.record_access_event(
            patient_id,
            serializer.validated_data['action'],
            request.user,
            self.role,
            self.request_context(),
            appointment_id=serializer.validated_data.get('appointment_id'),
            reason=serializer.validated_data.get('reason', ''),
        )
        return Response(
            {'recorded': entry is not None, 'audit_log_id': str(entry.id) if entry else None},
            status=status.HTTP_201_CREATED,
        )


class AnamnesisVersionListView(AnamnesisAPIView):
    """GET /api/v1/clinical/patients/{patient_id}/anamnesis/versions/"""
    required_capabilities = {'GET': 'can_view_audit'}

    def get(self, request, patient_id):
        params = self.query_params(DateRangeQuerySerializer)
        queryset = services.list_versions(
            patient_id,
            date_from=params.get('date_from'),
            date_to=params.get('date_to'),
        )
        return Response(paginate(
            queryset,
            params['page'],
            params['limit'],
            lambda version: redact(AnamnesisVersionSerializer(version).data, self.role),
        ))


class AnamnesisVersionDetailView(AnamnesisAPIView):
    """GET /api/v1/clinical/patients/{patient_id}/anamnesis/versions/{version_id}/"""
    required_capabilities = {'GET': 'can_view_audit'}

    def get(self, request, patient_id, version_id):
        version, integrity_valid = services.get_version(patient_id, version_id)
        data = AnamnesisVersionDetailSerializer(
            version, context={'integrity_valid': integrity_valid}
        ).data
        return Response({'data': redact(data, self.role)})


class AnamnesisVersionCompareView(AnamnesisAPIView):
    """GET /api/v1/clinical/patients/{patient_id}/anamnesis/versions/compare/?version_a&version_b"""
    required_capabilities = {'GET': 'can_view_audit'}

    def get(self, request, patient_id):
        params = self.query_params(CompareQuerySerializer)
        comparison = services.compare_versions(patient_id, params['version_a'], params['version_b'])
        return Response({
            'data': {
                'version_a': redact(AnamnesisVersionSerializer(comparison['version_a']).data, self.role),
                'version_b': redact(AnamnesisVersionSerializer(comparison['version_b']).data, self.role),
                'diffs': [item.as_dict() for item in comparison['diffs']],
                'summary': comparison['summary'],
            }
        })


class AnamnesisVersionRestoreView(AnamnesisAPIView):
    """POST /api/v1/clinical/patients/{patient_id}/anamnesis/versions/{version_id}/restore/"""
    required_capabilities = {'POST': 'can_restore'}

    @extend_schema(request=RestoreSerializer)
    def post(self, request, patient_id, version_id):
        serializer = RestoreSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = services.restore_version(
            patient_id,
            version_id,
            request.user,
            self.role,
            serializer.validated_data.get('reason', ''),
            self.request_context(),
            expected_version_number=serializer.validated_data.get('expected_version_number'),
        )
        record = AnamnesisRecordSerializer(
            result.record,
            context={
                'status': services.anamnesis_status(result.record),
                'consultation_context': services.ConsultationContext.FOLLOW_UP,
            },
        ).data
        return Response({
            'data': record,
            'version': redact(AnamnesisVersionSerializer(result.version).data, self.role),
            'pending_reviews_count': len(result.reviews),
        })


class AnamnesisAuditLogListView(AnamnesisAPIView):
    """GET /api/v1/clinical/patients/{patient_id}/anamnesis/audit/"""
    required_capabilities = {'GET': 'can_view_audit'}

    def get(self, request, patient_id):
        params = self.query_params(AuditLogQuerySerializer)
        queryset = services.list_audit_logs(
            patient_id,
            action=params.get('action'),
            severity=params.get('severity'),
            date_from=params.get('date_from'),
            date_to=params.get('date_to'),
        )
        return Response(paginate(
            queryset,
            params['page'],
            params['limit'],
            lambda entry: redact(AnamnesisAuditLogSerializer(entry).data, self.role),
        ))


class AnamnesisAuditLogDetailView(AnamnesisAPIView):
    """GET /api/v1/clinical/patients/{patient_id}/anamnesis/audit/{log_id}/"""
    required_capabilities = {'GET': 'can_view_audit'}

    def get(self, request, patient_id, log_id):
        entry = services.get_audit_log(patient_id, log_id)
        return Response({'data': redact(AnamnesisAuditLogDetailSerializer(entry).data, self.role)})


class AnamnesisPendingReviewListView(AnamnesisAPIView):
    """GET /api/v1/clinical/patients/{patient_id}/anamnesis/reviews/"""
    required_capabilities = {'GET': 'can_view_pending_reviews'}

    def get(self, request, patient_id):
        reviews = services.list_pending_reviews(patient_id)
        data = AnamnesisPendingReviewSerializer(reviews, many=True).data
        return Response({'data': [redact(item, self.role) for item in data]})


class ContextualAuditView(AnamnesisAPIView):
    """
    GET /api/v1/clinical/audit/context/{patient|appointment}/{context_id}/

    Anamnesis and clinical audit entries linked to the subject, newest first.
    """
    required_capabilities = {'GET': 'can_view_contextual_log'}

    def get(self, request, context_type, context_id):
        entries = services.list_contextual_audit(context_type, context_id)
        data = project(
            [serialize_audit_entry(entry) for entry in entries],
            self.role,
            AuditContext(context_type, str(context_id)),
        )
        return Response({
            'data': data,
            'context': {'type': context_type, 'id': str(context_id)},
        })
