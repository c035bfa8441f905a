"""
Authz helpers for resolving the caller's role.
"""

from apps.authz.models import resolve_primary_role


def get_request_role(request):
    """
    Highest-privilege role of the authenticated caller.

    Resolved once per request and cached on the request object.
    """
    if not request.user or not request.user.is_authenticated:
        return None

    if not hasattr(request, '_primary_role'):
        user_roles = set(
            request.user.user_roles.values_list('role__name', flat=True)
        )
        request._primary_role = resolve_primary_role(user_roles)
    return request._primary_role
