"""Health routes - service, database and integration readiness."""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Response
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from studysync.api.deps import get_db
from studysync.core.config import settings
from studysync.schemas.api import HealthResponse
from studysync.services.data_service import DataService

router = APIRouter(prefix="/health", tags=["health"])


def _google_oauth_state() -> str:
    return "configured" if settings.google_configured else "missing"


@router.get("", response_model=HealthResponse)
def health(response: Response, db: Session = Depends(get_db)):
    """
    Liveness plus a summary of what the service can currently do.

    Reports database connectivity, the outcome of the most recent sync run
    across all users and whether Google OAuth client credentials are set
    (without them Classroom and Gmail cannot sync). Answers 503 only when the
    database is unreachable.
    """
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        response.status_code = 503
        return HealthResponse(database=f"down: {exc}", last_sync_status=None, google_oauth=_google_oauth_state())

    latest = DataService(db).get_latest_sync()
    return HealthResponse(
        database="ok",
        last_sync_status=latest.status if latest else None,
        google_oauth=_google_oauth_state(),
    )


@router.get("/ready")
def readiness(response: Response, db: Session = Depends(get_db)):
    """Readiness probe: 200 once the database answers, 503 otherwise."""
    checked_at = datetime.now(timezone.utc).isoformat()
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        response.status_code = 503
        return {"status": "not_ready", "error": str(exc), "timestamp": checked_at}
    return {"status": "ready", "timestamp": checked_at}
