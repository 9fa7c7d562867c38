import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from listingsync.database import get_db
from listingsync.models import RunLease

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check(db: Session = Depends(get_db)):
    """Database reachability plus the number of worker runs currently holding a lease."""
    try:
        db.execute(text("SELECT 1"))
        running = db.query(RunLease).filter(
            RunLease.expires_at > datetime.now(timezone.utc)
        ).count()
    except SQLAlchemyError as e:
        logger.warning(f"Health check could not reach the database: {e}")
        return {"status": "degraded", "database": f"unhealthy: {e}", "runs_in_progress": None}

    return {"status": "ok", "database": "healthy", "runs_in_progress": running}
