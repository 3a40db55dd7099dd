from datetime import UTC, datetime

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from loguru import logger
from sqlalchemy import text
from sqlalchemy.orm import Session

from storestats.core.config import get_settings
from storestats.core.database import get_db
from storestats.core.timeout import is_access_stats_enabled

router = APIRouter(tags=["health"])


@router.get("/health")
def health_check(db: Session = Depends(get_db)):
    settings = get_settings()
    services: dict[str, str] = {}
    health_status: dict[str, object] = {
        "status": "healthy",
        "timestamp": datetime.now(UTC).isoformat(),
        "services": services,
        "environment": settings.environment,
    }

    try:
        db.scalar(text("SELECT 1"))
        services["database"] = "healthy"
    except Exception as e:
        logger.error(f"Error en health check de BD: {e}")
        services["database"] = "unhealthy"
        health_status["status"] = "degraded"

    services["access_stats"] = "enabled" if is_access_stats_enabled(settings) else "disabled"

    status_code = 200 if health_status["status"] == "healthy" else 503
    return JSONResponse(content=health_status, status_code=status_code)


@router.get("/health/live")
def liveness():
    return {"status": "alive", "timestamp": datetime.now(UTC).isoformat()}
