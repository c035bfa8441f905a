"""
Management command to re-verify stored anamnesis versions against their integrity hash.

Usage:
    python manage.py verify_anamnesis_integrity
    python manage.py verify_anamnesis_integrity --patient <patient_id>

Read-only: mismatches are reported and counted, never repaired.
"""
from django.core.management.base import BaseCommand, CommandError

from apps.core.observability import metrics
from apps.core.observability.events import log_consistency_checkpoint

from apps.anamnesis.models import AnamnesisVersion
from apps.anamnesis.repository import SnapshotStore


class Command(BaseCommand):
    help = 'Verify the integrity hash of every stored anamnesis version'

    def add_arguments(self, parser):
        parser.add_argument('--patient', help='Only check versions of this patient')

    def handle(self, *args, **options):
        queryset = AnamnesisVersion.objects.order_by('anamnesis_id', 'version_number')
        if options['patient']:
            queryset = queryset.filter(anamnesis__patient_id=options['patient'])

        checked = 0
        failures = []
        for version in queryset.iterator():
            checked += 1
            if not SnapshotStore.verify(version):
                failures.append(version)
                metrics.anamnesis_integrity_violations_total.inc()
                self.stderr.write(
                    f'Integrity mismatch: anamnesis {version.anamnesis_id} v{version.version_number} ({version.id})'
                )

        log_consistency_checkpoint(
            'anamnesis_integrity_sweep',
            entity_ids={'patient_id': options['patient'] or 'all'},
            checks_passed={'all_hashes_match': not failures},
            versions_checked=checked,
            mismatches=len(failures),
        )

        if failures:
            raise CommandError(f'{len(failures)} of {checked} versions failed integrity verification')
        self.stdout.write(self.style.SUCCESS(f'{checked} versions verified'))
