"""
Technical request context captured on versions and audit entries.
"""
import ipaddress
from dataclasses import dataclass
from typing import Optional


def _valid_ip(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    value = value.strip()
    try:
        ipaddress.ip_address(value)
    except ValueError:
        return None
    return value


@dataclass(frozen=True)
class RequestContext:
    ip_address: Optional[str] = None
    user_agent: str = ''
    session_id: str = ''
    request_path: str = ''

    @classmethod
    def from_request(cls, request) -> 'RequestContext':
        """
        Extract the client fingerprint from a Django/DRF request.

        Client IP: first X-Forwarded-For hop, then X-Real-IP, then REMOTE_ADDR.
        """
        meta = request.META
        forwarded = meta.get('HTTP_X_FORWARDED_FOR', '')
        ip = _valid_ip(forwarded.split(',')[0]) if forwarded else None
        if ip is None:
            ip = _valid_ip(meta.get('HTTP_X_REAL_IP')) or _valid_ip(meta.get('REMOTE_ADDR'))
        return cls(
            ip_address=ip,
            user_agent=meta.get('HTTP_USER_AGENT', '')[:1000],
            session_id=meta.get('HTTP_X_SESSION_ID', '')[:255],
            request_path=request.path[:500],
        )

    def as_model_fields(self):
        return {
            'ip_address': self.ip_address,
            'user_agent': self.user_agent,
            'session_id': self.session_id,
            'request_path': self.request_path,
        }

    def as_metadata(self):
        """Shape used inside ClinicalAuditLog.metadata['request']."""
        return {
            'ip': self.ip_address,
            'user_agent': self.user_agent,
            'session_id': self.session_id,
            'path': self.request_path,
        }


@dataclass(frozen=True)
class EditContext:
    """
    Circumstances of a CREATE/UPDATE, recorded on its audit entry.

    An edit with no appointment happened outside a consultation; the
    caller may say where the information came from and whether it was
    confirmed with the patient.
    """
    appointment_id: Optional[str] = None
    information_source: str = ''
    verified_with_patient: Optional[bool] = None

    @property
    def is_outside_consultation(self) -> bool:
        return self.appointment_id is None

    def as_model_fields(self, requires_review: bool):
        return {
            'is_outside_consultation': self.is_outside_consultation,
            'information_source': self.information_source or '',
            'verified_with_patient': self.verified_with_patient,
            'requires_review': requires_review,
        }
