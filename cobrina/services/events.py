# cobrina/services/events.py
import json

from sqlalchemy.orm import Session

from .. import models
from ..logging_config import log_event, log_failure
from ..settings import get_settings

settings = get_settings()


def record_event(
    db: Session,
    action: models.ActionEnum,
    entity_id: str | None,
    payload: dict,
    actor: str = "SYSTEM",
    commit: bool = True,
):
    """Log the action and persist it to the events table."""
    log_event(action.value, f"{action.value} {entity_id or ''}".strip(), {"actor": actor, **payload})
    evt = models.Event(
        entity_id=entity_id,
        action=action,
        actor=actor,
        payload=json.dumps(payload, ensure_ascii=False, default=str),
        app_version=settings.APP_VERSION,
    )
    db.add(evt)
    if commit:
        db.commit()
    return evt


def record_failure(db: Session, stage: str, error: Exception | str, error_code: str, context: dict | None = None) -> str:
    payload = log_failure(error_code, {"stage": stage, "error": str(error), **(context or {})})
    evt = models.Event(
        action=models.ActionEnum.FAILURE_LOG,
        actor="SYSTEM",
        payload=json.dumps(payload, ensure_ascii=False, default=str),
        app_version=settings.APP_VERSION,
    )
    db.add(evt)
    db.commit()
    db.refresh(evt)
    return str(evt.id)
