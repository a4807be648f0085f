"""Health check endpoints"""
import time
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from shop_auth.database import get_db
from shop_auth.middleware.monitoring import record_revocation_store_status

router = APIRouter(prefix="/health", tags=["health"])

# Track startup time
STARTUP_TIME = time.time()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("")
def health_check():
    """
    Basic health check endpoint

    Returns 200 if service is running
    """
    return {
        "status": "healthy",
        "service": "shop-auth",
        "version": "0.1.0",
        "timestamp": _now()
    }


@router.get("/ready")
def readiness_check(request: Request, db: Session = Depends(get_db)) -> Any:
    """
    Readiness check - verifies all dependencies are available

    Checks:
    - Database connectivity and latency
    - Revocation store reachability

    Returns 200 if ready to serve traffic, 503 if not ready
    """
    checks: Dict[str, Any] = {
        "database": False,
        "database_latency_ms": None,
        "revocation_store": False,
    }

    try:
        start = time.time()
        db.execute(text("SELECT 1"))
        checks["database"] = True
        checks["database_latency_ms"] = round((time.time() - start) * 1000, 2)
    except SQLAlchemyError as e:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "unhealthy", "checks": checks, "message": f"Database check failed: {e}"},
        )

    checks["revocation_store"] = request.app.state.revocation_store.ping()
    record_revocation_store_status(checks["revocation_store"])
    if not checks["revocation_store"]:
        # Authenticated requests are rejected while the blacklist is unreachable
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "unhealthy", "checks": checks, "message": "Revocation store unreachable"},
        )

    return {
        "status": "ready",
        "checks": checks,
        "timestamp": _now()
    }


@router.get("/live")
def liveness_check():
    """
    Liveness check - verifies service is alive

    Used by Kubernetes liveness probe
    """
    return {
        "status": "alive",
        "uptime_seconds": round(time.time() - STARTUP_TIME, 2),
        "timestamp": _now()
    }
