"""``/health``: readiness probe for load balancers and the worker fleet.

Each probe returns ``(healthy, details)``.  Only the database and the cache
decide the HTTP status; the outbox backlog is reported for dashboards.
"""

import time
from typing import Any, Callable, Dict, Tuple

import structlog
from django.core.cache import cache
from django.db import DatabaseError, connections
from django.http import HttpRequest, JsonResponse
from django.utils import timezone

from modules.core.models import OutboxEvent

logger = structlog.get_logger(__name__)

Probe = Callable[[], Dict[str, Any]]

CACHE_PROBE_KEY = "health:probe"


def _timed(probe: Probe) -> Tuple[bool, Dict[str, Any]]:
    start = time.monotonic()
    try:
        details = probe()
    except Exception as exc:
        logger.error("health.probe_failed", probe=probe.__name__, error=str(exc))
        return False, {"status": "down"}
    elapsed = round((time.monotonic() - start) * 1000, 2)
    return True, {"status": "up", "response_time_ms": elapsed, **details}


def database_probe() -> Dict[str, Any]:
    conn = connections["default"]
    conn.ensure_connection()
    with conn.cursor() as cursor:
        cursor.execute("SELECT 1")
        if cursor.fetchone() != (1,):
            raise DatabaseError("unexpected probe result")
    return {}


def cache_probe() -> Dict[str, Any]:
    cache.set(CACHE_PROBE_KEY, "ok", 10)
    if cache.get(CACHE_PROBE_KEY) != "ok":
        raise ConnectionError("cache did not return the probe value")
    return {}


def health_check(request: HttpRequest) -> JsonResponse:
    db_ok, db_details = _timed(database_probe)
    cache_ok, cache_details = _timed(cache_probe)
    services: Dict[str, Dict[str, Any]] = {
        "database": db_details,
        "cache": cache_details,
    }
    if db_ok:
        services["outbox"] = OutboxEvent.objects.backlog()

    healthy = db_ok and cache_ok
    status = "healthy" if healthy else "unhealthy"
    logger.info("health.checked", status=status)
    return JsonResponse(
        {"status": status, "timestamp": timezone.now().isoformat(), "services": services},
        status=200 if healthy else 503,
    )
