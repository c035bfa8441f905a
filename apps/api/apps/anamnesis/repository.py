"""
Typed storage access for the anamnesis aggregate and its version history.

Callers exchange AnamnesisState / AnamnesisRecord values with this module
and never read or write PatientAnamnesis attributes themselves.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple
from uuid import UUID

from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone

from .diff import compute_integrity_hash
from .exceptions import NotFound, VersionConflict
from .models import AnamnesisVersion, PatientAnamnesis
from .schema import FIELD_SCHEMA_VERSION, AnamnesisState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnamnesisRecord:
    id: UUID
    patient_id: UUID
    state: AnamnesisState
    version_number: int
    has_pending_reviews: bool
    created_by_id: Optional[UUID]
    updated_by_id: Optional[UUID]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, instance: PatientAnamnesis) -> 'AnamnesisRecord':
        return cls(
            id=instance.id,
            patient_id=instance.patient_id,
            state=AnamnesisState.from_model(instance),
            version_number=instance.current_version_number,
            has_pending_reviews=instance.has_pending_reviews,
            created_by_id=instance.created_by_id,
            updated_by_id=instance.updated_by_id,
            created_at=instance.created_at,
            updated_at=instance.updated_at,
        )


def _actor_id(actor):
    return getattr(actor, 'pk', actor)


class AnamnesisRepository:
    """
    Aggregate store with an optimistic-concurrency version counter.

    The counter only moves through ``commit``: a single conditional
    UPDATE matching both the id and the expected version number.
    """

    def get(self, anamnesis_id) -> AnamnesisRecord:
        try:
            return AnamnesisRecord.from_model(PatientAnamnesis.objects.get(pk=anamnesis_id))
        except PatientAnamnesis.DoesNotExist:
            raise NotFound('Anamnesis not found')

    def get_current(self, anamnesis_id) -> Tuple[AnamnesisState, int]:
        record = self.get(anamnesis_id)
        return record.state, record.version_number

    def find_by_patient(self, patient_id) -> Optional[AnamnesisRecord]:
        instance = PatientAnamnesis.objects.filter(patient_id=patient_id).first()
        return AnamnesisRecord.from_model(instance) if instance else None

    def create(self, patient_id, state: AnamnesisState, actor) -> AnamnesisRecord:
        """Insert the aggregate at version 1. A concurrent creation surfaces as VersionConflict."""
        now = timezone.now()
        try:
            with transaction.atomic():
                instance = PatientAnamnesis.objects.create(
                    patient_id=patient_id,
                    current_version_number=1,
                    created_by_id=_actor_id(actor),
                    updated_by_id=_actor_id(actor),
                    created_at=now,
                    updated_at=now,
                    **state.model_fields()
                )
        except IntegrityError:
            existing = PatientAnamnesis.objects.filter(patient_id=patient_id).values_list(
                'current_version_number', flat=True
            ).first()
            raise VersionConflict(expected_version_number=0, actual_version_number=existing)
        return AnamnesisRecord.from_model(instance)

    def commit(self, anamnesis_id, expected_version_number: int, new_state: AnamnesisState, actor) -> int:
        """
        Compare-and-swap the aggregate to ``new_state``.

        Returns the new version number. Raises VersionConflict when the
        stored counter differs from ``expected_version_number`` and
        NotFound when the aggregate is gone.
        """
        updated = PatientAnamnesis.objects.filter(
            pk=anamnesis_id,
            current_version_number=expected_version_number,
        ).update(
            current_version_number=F('current_version_number') + 1,
            updated_by_id=_actor_id(actor),
            updated_at=timezone.now(),
            **new_state.model_fields()
        )
        if updated == 0:
            actual = PatientAnamnesis.objects.filter(pk=anamnesis_id).values_list(
                'current_version_number', flat=True
            ).first()
            if actual is None:
                raise NotFound('Anamnesis not found')
            raise VersionConflict(
                expected_version_number=expected_version_number,
                actual_version_number=actual,
            )
        return expected_version_number + 1

    def mark_pending_reviews(self, anamnesis_id):
        PatientAnamnesis.objects.filter(pk=anamnesis_id).update(has_pending_reviews=True)


class SnapshotStore:
    """Append-only store of full anamnesis copies, one per accepted mutation."""

    def append(
        self,
        anamnesis_id,
        version_number: int,
        state: AnamnesisState,
        actor,
        context,
        appointment_id=None,
        reason='',
        change_summary=None,
        restored_from_version_id=None,
    ) -> AnamnesisVersion:
        try:
            with transaction.atomic():
                return AnamnesisVersion.objects.create(
                    anamnesis_id=anamnesis_id,
                    version_number=version_number,
                    appointment_id=appointment_id,
                    restored_from_version_id=restored_from_version_id,
                    reason=reason or '',
                    change_summary=change_summary or {},
                    integrity_hash=compute_integrity_hash(state),
                    field_schema_version=FIELD_SCHEMA_VERSION,
                    created_by_id=_actor_id(actor),
                    **context.as_model_fields(),
                    **state.model_fields()
                )
        except IntegrityError:
            # UNIQUE(anamnesis, version_number) backs up the counter
            logger.warning(
                'Duplicate anamnesis version number rejected',
                extra={
                    'event': 'anamnesis_version_duplicate',
                    'anamnesis_id': str(anamnesis_id),
                    'version_number': version_number,
                }
            )
            raise VersionConflict(
                expected_version_number=version_number - 1,
                actual_version_number=version_number,
            )

    def get(self, anamnesis_id, version_id) -> AnamnesisVersion:
        """Version ``version_id`` of ``anamnesis_id``; NotFound if absent or foreign."""
        try:
            return AnamnesisVersion.objects.select_related(
                'created_by', 'restored_from_version'
            ).get(pk=version_id, anamnesis_id=anamnesis_id)
        except (AnamnesisVersion.DoesNotExist, ValueError):
            raise NotFound('Version not found')

    def get_by_number(self, anamnesis_id, version_number) -> Optional[AnamnesisVersion]:
        return AnamnesisVersion.objects.filter(
            anamnesis_id=anamnesis_id, version_number=version_number
        ).first()

    def list(self, anamnesis_id, date_from=None, date_to=None):
        """Versions newest first, optionally bounded by creation date (inclusive)."""
        queryset = AnamnesisVersion.objects.filter(anamnesis_id=anamnesis_id).select_related(
            'created_by', 'restored_from_version'
        )
        if date_from:
            queryset = queryset.filter(created_at__date__gte=date_from)
        if date_to:
            queryset = queryset.filter(created_at__date__lte=date_to)
        return queryset.order_by('-version_number')

    @staticmethod
    def state_of(version: AnamnesisVersion) -> AnamnesisState:
        return AnamnesisState.from_model(version)

    @staticmethod
    def verify(version: AnamnesisVersion) -> bool:
        """True when the stored content still matches the stored hash."""
        return compute_integrity_hash(AnamnesisState.from_model(version)) == version.integrity_hash
