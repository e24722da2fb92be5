"""Health checks for the permit service.

- /health: process is up
- /health/live: liveness, no external calls
- /health/ready: database reachable with the permit schema in place, and the
  notification broker answering
"""

from typing import Dict, Any

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy import inspect, text
from sqlalchemy.orm import Session
import redis

from worksafe import __version__
from worksafe.api.deps import get_db
from worksafe.api.schemas.common import HealthResponse
from worksafe.core.config import get_settings
from worksafe.core.timeutil import utcnow

router = APIRouter(tags=["health"])

# Tables the workflows cannot run without
REQUIRED_TABLES = ("permits", "permit_approvals", "permit_extensions", "site_role_assignments")


def check_database(db: Session) -> Dict[str, Any]:
    """Check connectivity and that the permit tables exist."""
    try:
        db.execute(text("SELECT 1")).fetchone()
        present = set(inspect(db.get_bind()).get_table_names())
    except Exception as e:
        return {"status": "unhealthy", "error": str(e)}

    missing = [name for name in REQUIRED_TABLES if name not in present]
    if missing:
        return {"status": "unhealthy", "error": f"missing tables: {', '.join(missing)}"}
    return {"status": "healthy"}


def check_broker() -> Dict[str, Any]:
    """Check the Celery broker that carries notification events."""
    try:
        client = redis.from_url(get_settings().celery_broker, socket_connect_timeout=2, socket_timeout=2)
        client.ping()
        client.close()
        return {"status": "healthy"}
    except Exception as e:
        return {"status": "unhealthy", "error": str(e)}


@router.get("/health", response_model=HealthResponse)
def health_check():
    return {
        "status": "healthy",
        "version": __version__,
        "timestamp": utcnow().isoformat(),
    }


@router.get("/health/live")
def liveness():
    return {"status": "alive"}


@router.get("/health/ready")
def readiness(db: Session = Depends(get_db)):
    checks = {"database": check_database(db)}
    if get_settings().notifications_enabled:
        checks["broker"] = check_broker()

    failed = [name for name, check in checks.items() if check["status"] != "healthy"]
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE if failed else status.HTTP_200_OK,
        content={"status": "not_ready" if failed else "ready", "checks": checks, "failed": failed},
    )
