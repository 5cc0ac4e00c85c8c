# cobrina/routes/ops.py
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..db import get_db
from ..settings import get_settings

router = APIRouter(prefix="/ops", tags=["operations"])
settings = get_settings()


@router.get("/health")
def health_check(db: Session = Depends(get_db)):
    """
    Deep health check: verifies the database answers.
    Used by load balancers and uptime probes.
    """
    status = {"api": "online", "version": settings.APP_VERSION, "env": settings.ENV, "checks": {}}

    try:
        db.execute(text("SELECT 1"))
        status["checks"]["database"] = "ok"
    except SQLAlchemyError as e:
        status["checks"]["database"] = f"failed: {str(e)}"
        raise HTTPException(503, detail=status)

    return status
