import time
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..app_logger import get_logger
from ..config import settings
from ..database import get_db_session

router = APIRouter(prefix="/health", tags=["Health"])
logger = get_logger("health")

STARTED_AT = time.monotonic()


def _basic_status() -> dict:
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime": round(time.monotonic() - STARTED_AT, 2),
        "environment": settings.app_env,
        "version": settings.app_version,
    }


@router.get("")
def health():
    return _basic_status()


@router.get("/detailed")
def detailed_health(db: Session = Depends(get_db_session)):
    body = _basic_status()
    started = time.perf_counter()
    try:
        db.execute(text("SELECT 1"))
        database = {"status": "connected"}
    except SQLAlchemyError as exc:
        logger.error("Database health check failed: %s", exc)
        database = {"status": "disconnected", "error": str(exc)}
        body["status"] = "degraded"
    database["latency_ms"] = round((time.perf_counter() - started) * 1000, 2)
    body["database"] = database
    return body
