from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from inventory_tracker.database import get_db
from inventory_tracker.utils.cache import cache_service

router = APIRouter(prefix="/health", tags=["Health"])


@router.get(
    "",
    summary="Health check",
    description="Basic health check endpoint."
)
def health_check():
    """Simple health check."""
    return {"status": "healthy"}


@router.get(
    "/ready",
    summary="Readiness check",
    description="Check if the database and Redis are reachable."
)
def readiness_check(db: Session = Depends(get_db)):
    """
    Readiness check for all dependencies.

    The API works without Redis (the cache degrades to database reads), so
    only the database decides readiness.
    """
    checks = {
        "database": False,
        "redis": cache_service.ping()
    }

    try:
        db.execute(text("SELECT 1"))
        checks["database"] = True
    except SQLAlchemyError as e:
        checks["database_error"] = str(e)

    return {
        "status": "ready" if checks["database"] else "not_ready",
        "checks": checks
    }
