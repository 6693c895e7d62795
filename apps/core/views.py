"""
Core API views.
"""
import logging
from django.core.cache import cache
from django.db import DatabaseError, connection
from drf_spectacular.utils import extend_schema, inline_serializer
from rest_framework import serializers, status
from rest_framework.response import Response
from rest_framework.views import APIView

logger = logging.getLogger(__name__)


HEALTH_CACHE_KEY = 'teamstride:health_check'


def check_database():
    """Run a trivial query; returns an error string or None."""
    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
    except DatabaseError as e:
        logger.error("Database health check failed", exc_info=True)
        return f"Database: {e}"
    return None


def check_cache():
    """Round-trip a key through the cache; returns an error string or None."""
    # Cache backends raise their own client errors (e.g. redis ConnectionError)
    try:
        cache.set(HEALTH_CACHE_KEY, 'ok', timeout=10)
        if cache.get(HEALTH_CACHE_KEY) != 'ok':
            return "Cache: Unable to read test key"
    except Exception as e:
        logger.error("Cache health check failed", exc_info=True)
        return f"Cache: {e}"
    return None


class HealthCheckView(APIView):
    """
    GET /v1/health

    Public and exempt from subdomain resolution and rate limiting.
    Returns 503 when the database or cache does not respond.
    """
    authentication_classes = []
    permission_classes = []

    checks = (
        ('database', check_database),
        ('cache', check_cache),
    )

    @extend_schema(
        tags=['System'],
        summary="Health check",
        description="Database and cache reachability.",
        responses={
            (200, 'application/json'): inline_serializer('HealthStatus', {
                'status': serializers.CharField(),
                'database': serializers.CharField(),
                'cache': serializers.CharField(),
            }),
            (503, 'application/json'): inline_serializer('HealthStatusUnhealthy', {
                'status': serializers.CharField(),
                'database': serializers.CharField(),
                'cache': serializers.CharField(),
                'errors': serializers.ListField(child=serializers.CharField()),
            }),
        }
    )
    def get(self, request):
        body = {'status': 'healthy'}
        errors = []
        for name, check in self.checks:
            error = check()
            body[name] = 'unhealthy' if error else 'healthy'
            if error:
                errors.append(error)

        if errors:
            body['status'] = 'unhealthy'
            body['errors'] = errors
            return Response(body, status=status.HTTP_503_SERVICE_UNAVAILABLE)
        return Response(body)
