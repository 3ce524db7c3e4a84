# app/routes/health.py
"""
Health check endpoints.
"""

import time

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from app.db.pool import db_health_check
from app.infrastructure.observability.logging import log_health_check
from app.services.slots.broadcast_hub import broadcast_hub
from app.services.slots.config_cache import config_cache

router = APIRouter()


@router.get("/healthz")
async def healthz():
    """Basic health check - always returns 200 if app is running."""
    return {"status": "ok", "service": "slot-queue-bot"}


@router.get("/readyz")
async def readyz(request: Request):
    """Readiness: database reachable, settings loaded, reply queue consuming."""
    checks = {}
    overall_ok = True

    t0 = time.time()
    try:
        db_health = await db_health_check()
        is_healthy = bool(db_health.get("healthy", False))
        checks["database"] = {"ok": is_healthy, "latency_ms": round((time.time() - t0) * 1000, 1)}
        if "pool_stats" in db_health:
            checks["database"]["pool_stats"] = db_health["pool_stats"]
        if not is_healthy:
            checks["database"]["error"] = db_health.get("error", "Database unhealthy")
        overall_ok = overall_ok and is_healthy
    except Exception as e:
        checks["database"] = {"ok": False, "error": f"{type(e).__name__}: {e}"}
        overall_ok = False
    log_health_check(
        "database",
        checks["database"]["ok"],
        checks["database"].get("latency_ms", 0.0),
        checks["database"].get("error"),
    )

    checks["settings"] = {"ok": config_cache.loaded}
    overall_ok = overall_ok and config_cache.loaded

    serializer = getattr(request.app.state, "reply_serializer", None)
    checks["reply_queue"] = {
        "ok": bool(serializer and serializer.running),
        "pending": serializer.pending if serializer else 0,
        "sent": serializer.sent if serializer else 0,
        "failed": serializer.failed if serializer else 0,
    }
    overall_ok = overall_ok and checks["reply_queue"]["ok"]

    checks["observers"] = {"ok": True, "connected": broadcast_hub.observer_count}

    body = {"overall_ok": overall_ok, "checks": checks}
    return JSONResponse(status_code=200 if overall_ok else 503, content=body)
