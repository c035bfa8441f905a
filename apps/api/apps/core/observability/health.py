"""
Health and metrics endpoints.

/healthz  - process is up
/readyz   - database reachable and every migration applied
/metrics  - Prometheus exposition
"""
import logging

from django.conf import settings
from django.db import DEFAULT_DB_ALIAS, DatabaseError, connections
from django.db.migrations.executor import MigrationExecutor
from django.http import HttpResponse, JsonResponse
from django.views import View
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

logger = logging.getLogger(__name__)


class HealthzView(View):
    """
    Basic health check endpoint.

    Does not check dependencies.
    """

    def get(self, request):
        health_data = {
            'status': 'ok',
            'version': getattr(settings, 'VERSION', 'unknown'),
        }

        commit_hash = getattr(settings, 'COMMIT_HASH', None)
        if commit_hash:
            health_data['commit'] = commit_hash

        return JsonResponse(health_data, status=200)


class ReadyzView(View):
    """
    Readiness check endpoint.

    The append-only audit tables must exist before traffic is accepted,
    so pending migrations make the instance not ready.
    """

    def get(self, request):
        database_ok = self._check_database()
        checks = {
            'database': database_ok,
            'migrations': database_ok and self._check_migrations(),
        }

        all_healthy = all(checks.values())
        response_data = {
            'status': 'ready' if all_healthy else 'not_ready',
            'checks': checks,
        }
        return JsonResponse(response_data, status=200 if all_healthy else 503)

    def _check_database(self):
        try:
            with connections[DEFAULT_DB_ALIAS].cursor() as cursor:
                cursor.execute('SELECT 1')
            return True
        except DatabaseError as e:
            logger.error(
                'Database health check failed',
                extra={
                    'event': 'health_check_failed',
                    'check': 'database',
                    'error': str(e),
                }
            )
            return False

    def _check_migrations(self):
        executor = MigrationExecutor(connections[DEFAULT_DB_ALIAS])
        plan = executor.migration_plan(executor.loader.graph.leaf_nodes())
        if plan:
            logger.warning(
                'Unapplied migrations',
                extra={
                    'event': 'health_check_failed',
                    'check': 'migrations',
                    'pending': len(plan),
                }
            )
            return False
        return True


class MetricsView(View):
    """Expose the default Prometheus registry."""

    def get(self, request):
        return HttpResponse(generate_latest(), content_type=CONTENT_TYPE_LATEST)
