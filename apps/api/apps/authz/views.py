"""
Authz views for the current user.
"""
from dataclasses import asdict

from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.anamnesis.permissions import capabilities_for
from apps.authz.permissions import get_request_role
from apps.authz.serializers import CurrentUserSerializer


class CurrentUserView(APIView):
    """
    GET /api/v1/auth/me/

    Returns the caller's profile, resolved role and capability set so
    clients can hide actions the server would refuse anyway.
    """
    permission_classes = [IsAuthenticated]

    def get(self, request):
        role = get_request_role(request)
        serializer = CurrentUserSerializer(
            request.user,
            context={
                'role': role.value if role else None,
                'capabilities': asdict(capabilities_for(role)),
            },
        )
        return Response(serializer.data)
