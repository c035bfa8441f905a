"""
Anamnesis capabilities per role.

A single table answers every "may this role do X" question for the
anamnesis endpoints. Views declare the capability they need per HTTP
method; AnamnesisCapability consults the table once per request.

- Admin: everything, including technical request details
- Practitioner: everything except technical request details
- Reception: read the current record, its audit trail and contextual logs
- Accounting / Marketing: NO ACCESS
"""
from dataclasses import dataclass
from typing import Optional

from rest_framework import permissions

from apps.authz.models import RoleChoices
from apps.authz.permissions import get_request_role
from apps.core.observability import metrics
from apps.core.observability.events import log_audit_access_denied


@dataclass(frozen=True)
class Capabilities:
    can_view_record: bool = False
    can_edit: bool = False
    can_view_audit: bool = False
    can_restore: bool = False
    can_view_technical_details: bool = False
    can_view_contextual_log: bool = False
    can_view_pending_reviews: bool = False


NO_CAPABILITIES = Capabilities()

CAPABILITY_TABLE = {
    RoleChoices.ADMIN.value: Capabilities(
        can_view_record=True,
        can_edit=True,
        can_view_audit=True,
        can_restore=True,
        can_view_technical_details=True,
        can_view_contextual_log=True,
        can_view_pending_reviews=True,
    ),
    RoleChoices.PRACTITIONER.value: Capabilities(
        can_view_record=True,
        can_edit=True,
        can_view_audit=True,
        can_restore=True,
        can_view_contextual_log=True,
        can_view_pending_reviews=True,
    ),
    RoleChoices.RECEPTION.value: Capabilities(
        can_view_record=True,
        can_view_audit=True,
        can_view_contextual_log=True,
    ),
    RoleChoices.ACCOUNTING.value: NO_CAPABILITIES,
    RoleChoices.MARKETING.value: NO_CAPABILITIES,
}


def capabilities_for(role: Optional[str]) -> Capabilities:
    """Capabilities of ``role``; unknown or missing roles get none."""
    if role is None:
        return NO_CAPABILITIES
    return CAPABILITY_TABLE.get(str(role), NO_CAPABILITIES)


class AnamnesisCapability(permissions.BasePermission):
    """
    Checks the capability a view declares in ``required_capabilities``
    (HTTP method -> capability name). Methods not listed need none.
    """
    message = 'Your role does not allow this operation'

    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False

        capability = getattr(view, 'required_capabilities', {}).get(request.method)
        if capability is None:
            return True

        role = get_request_role(request)
        if getattr(capabilities_for(role), capability):
            return True

        role_label = role.value if role else 'none'
        metrics.anamnesis_audit_access_denied_total.labels(
            role=role_label,
            capability=capability,
        ).inc()
        log_audit_access_denied(request.user, capability, role_label)
        return False
