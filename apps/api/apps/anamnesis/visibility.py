"""
Role-filtered projections of audit entries and versions.

Pure functions over plain dicts (serializer output). They never mutate
their input and are idempotent: projecting a projection changes nothing.
"""
import copy
from dataclasses import dataclass
from typing import Iterable, List, Optional

from .models import ContextTypeChoices
from .permissions import capabilities_for

TECHNICAL_FIELDS = ('ip_address', 'user_agent', 'session_id', 'request_path', 'integrity_hash')

# Nested user references whose email is technical detail
ACTOR_FIELDS = ('actor', 'created_by')

_CONTEXT_KEYS = {
    ContextTypeChoices.PATIENT.value: 'patient_id',
    ContextTypeChoices.APPOINTMENT.value: 'appointment_id',
}


@dataclass(frozen=True)
class AuditContext:
    context_type: str
    context_id: str

    @property
    def key(self):
        return _CONTEXT_KEYS[str(self.context_type)]


def in_scope(entry: dict, context: Optional[AuditContext]) -> bool:
    if context is None:
        return True
    value = entry.get(context.key)
    return value is not None and str(value) == str(context.context_id)


def scope(entries: Iterable[dict], context: Optional[AuditContext]) -> List[dict]:
    """Keep entries whose recorded patient/appointment matches ``context``."""
    return [entry for entry in entries if in_scope(entry, context)]


def redact(entry: dict, role) -> dict:
    """Copy of ``entry`` without technical details unless ``role`` may see them."""
    entry = copy.deepcopy(entry)
    if capabilities_for(role).can_view_technical_details:
        return entry
    for field in TECHNICAL_FIELDS:
        entry.pop(field, None)
    for field in ACTOR_FIELDS:
        if isinstance(entry.get(field), dict):
            entry[field].pop('email', None)
    return entry


def project(entries: Iterable[dict], role, context: Optional[AuditContext] = None) -> List[dict]:
    return [redact(entry, role) for entry in scope(entries, context)]
