# cobrina/routes/stickies.py
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy import func
from sqlalchemy.orm import Session

from .. import models, schemas
from ..auth import Identity, get_identity
from ..db import get_db
from ..errors import NotFound, ValidationFailed
from ..settings import get_settings

router = APIRouter(prefix="/stickies", tags=["stickies"])
settings = get_settings()

STICKY_COLORS = ("yellow", "green", "blue", "pink", "orange", "purple")


def _own_note(db: Session, identity: Identity, note_id: str) -> models.StickyNote:
    note = (
        db.query(models.StickyNote)
        .filter(models.StickyNote.id == note_id, models.StickyNote.user_id == identity.user_id)
        .first()
    )
    if note is None:
        raise NotFound("Nota no encontrada")
    return note


@router.get("/mine", response_model=List[schemas.StickyOut])
def mine(identity: Identity = Depends(get_identity), db: Session = Depends(get_db)):
    return (
        db.query(models.StickyNote)
        .filter(models.StickyNote.user_id == identity.user_id)
        .order_by(models.StickyNote.order.asc(), models.StickyNote.updated_at.desc())
        .all()
    )


@router.post("/", response_model=schemas.StickyOut, status_code=201)
def crear(body: schemas.StickyIn, identity: Identity = Depends(get_identity), db: Session = Depends(get_db)):
    count = db.query(models.StickyNote).filter(models.StickyNote.user_id == identity.user_id).count()
    if count >= settings.STICKY_MAX_PER_USER:
        raise ValidationFailed(f"Límite de {settings.STICKY_MAX_PER_USER} notas alcanzado")

    max_order = (
        db.query(func.max(models.StickyNote.order))
        .filter(models.StickyNote.user_id == identity.user_id)
        .scalar()
    )
    note = models.StickyNote(
        user_id=identity.user_id,
        text=body.text,
        color=body.color if body.color in STICKY_COLORS else "yellow",
        order=0 if max_order is None else max_order + 1,
    )
    db.add(note)
    db.commit()
    db.refresh(note)
    return note


# declared before /{note_id} so "reorder" is never read as an id
@router.put("/reorder/all")
def reorder(body: schemas.ReorderIn, identity: Identity = Depends(get_identity), db: Session = Depends(get_db)):
    own = {
        n.id: n
        for n in db.query(models.StickyNote)
        .filter(models.StickyNote.user_id == identity.user_id, models.StickyNote.id.in_(body.ids))
    }
    order = 0
    for note_id in body.ids:
        note = own.get(note_id)
        if note is None:
            continue
        note.order = order
        order += 1
    db.commit()
    return {"ok": True, "reordenadas": order}


@router.put("/{note_id}", response_model=schemas.StickyOut)
def editar(note_id: str, body: schemas.StickyUpdate, identity: Identity = Depends(get_identity), db: Session = Depends(get_db)):
    note = _own_note(db, identity, note_id)
    if body.text is not None:
        note.text = body.text
    if body.color in STICKY_COLORS:
        note.color = body.color
    db.commit()
    db.refresh(note)
    return note


@router.delete("/{note_id}")
def eliminar(note_id: str, identity: Identity = Depends(get_identity), db: Session = Depends(get_db)):
    db.delete(_own_note(db, identity, note_id))
    db.commit()
    return {"ok": True}
