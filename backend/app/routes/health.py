# backend/app/routes/health.py
"""
Health check endpoint for the application.

Reports database connectivity and, when configured, the Redis instance
backing the session transition locks.
"""

import logging

from fastapi import APIRouter, Depends, Response
from sqlalchemy import text
from sqlalchemy.orm import Session

from ..api.dependencies.database import get_db
from ..api.dependencies.services import get_session_lock
from ..core.session_lock import SessionTransitionLock
from ..schemas.base_responses import HealthCheckResponse

logger = logging.getLogger(__name__)
router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthCheckResponse)
def health_check(
    response: Response,
    db: Session = Depends(get_db),
    lock: SessionTransitionLock = Depends(get_session_lock),
) -> HealthCheckResponse:
    """
    Basic health check endpoint.

    Returns:
        Simple status indicating the service is running.
    """
    response.headers["Cache-Control"] = "no-store"
    checks = {}

    # Check database connectivity
    try:
        db.execute(text("SELECT 1"))
        checks["database"] = True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        checks["database"] = False

    if lock.redis is not None:
        try:
            checks["redis"] = bool(lock.redis.ping())
        except Exception as e:
            # Locks fail open, so Redis being down only degrades the service
            logger.warning(f"Redis health check failed: {e}")
            checks["redis"] = False

    if not checks["database"]:
        status = "unhealthy"
    elif all(checks.values()):
        status = "healthy"
    else:
        status = "degraded"
    return HealthCheckResponse(status=status, checks=checks)
