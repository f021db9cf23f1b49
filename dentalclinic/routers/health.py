# dentalclinic/routers/health.py
from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from datetime import datetime, timezone

from ..database import get_db
from ..services.notification_service import dispatcher

import logging

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/health",
    tags=["Health Checks"],
)

@router.get("")
def health_check(db: Session = Depends(get_db)):
    """Liveness plus a database round trip. No authentication."""
    database = "ok"
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error(f"Health check database error: {e}")
        database = "error"

    return {
        "status": "ok" if database == "ok" else "degraded",
        "database": database,
        "gateway": getattr(dispatcher.gateway, "backend", "custom"),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
