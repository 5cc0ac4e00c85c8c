import json

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth import Identity, require_elevated
from ..db import get_db
from ..models import Event

router = APIRouter(prefix="/events", tags=["events"])


@router.get("/recent")
def recent_events(
    limit: int = 50,
    entity_id: str | None = None,
    identity: Identity = Depends(require_elevated),
    db: Session = Depends(get_db),
):
    limit = max(1, min(limit, 200))
    q = db.query(Event)
    if entity_id:
        q = q.filter(Event.entity_id == entity_id)
    rows = q.order_by(Event.created_at.desc(), Event.id.desc()).limit(limit).all()
    return [
        {
            "id": r.id,
            "entity_id": r.entity_id,
            "action": (r.action.value if hasattr(r.action, "value") else str(r.action)),
            "actor": r.actor,
            "payload": json.loads(r.payload or "{}"),
            "created_at": r.created_at,
        }
        for r in rows
    ]
