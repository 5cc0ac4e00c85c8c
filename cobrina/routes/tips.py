# cobrina/routes/tips.py
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy import or_
from sqlalchemy.orm import Session

from .. import models, schemas
from ..auth import Identity, get_identity, require_super_admin
from ..db import get_db
from ..errors import NotFound, ValidationFailed

router = APIRouter(prefix="/tips", tags=["tips"])

VISIBILITIES = ("all", "admin")


def _serialize(t: models.Tip) -> dict:
    return {
        "id": t.id,
        "title": t.title,
        "bodyMd": t.body_md,
        "categories": t.categories or [],
        "visibility": t.visibility,
        "isActive": bool(t.is_active),
        "createdBy": t.created_by,
        "updatedBy": t.updated_by,
        "updatedAt": t.updated_at.isoformat() if t.updated_at else None,
    }


def _get(db: Session, tip_id: str) -> models.Tip:
    tip = db.get(models.Tip, tip_id)
    if tip is None:
        raise NotFound("Tip no encontrado")
    return tip


def _check_visibility(v: Optional[str]) -> None:
    if v is not None and v not in VISIBILITIES:
        raise ValidationFailed(f"visibility debe ser uno de {', '.join(VISIBILITIES)}")


@router.get("/")
def listar(
    q: Optional[str] = None,
    categories: Optional[str] = None,
    onlyActive: bool = True,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
):
    query = db.query(models.Tip)
    if onlyActive:
        query = query.filter(models.Tip.is_active.is_(True))
    if not identity.is_elevated:
        query = query.filter(models.Tip.visibility == "all")
    if q:
        like = f"%{q.strip()}%"
        query = query.filter(or_(
            models.Tip.title.ilike(like),
            models.Tip.body_md.ilike(like),
            models.Tip.categories.ilike(like),
        ))

    tips = query.order_by(models.Tip.updated_at.desc()).all()

    # categories live in a JSON text column, so the membership test runs here
    wanted = {c.strip() for c in (categories or "").split(",") if c.strip()}
    if wanted:
        tips = [t for t in tips if wanted.intersection(t.categories or [])]

    return [_serialize(t) for t in tips]


@router.post("/", status_code=201)
def crear(body: schemas.TipIn, identity: Identity = Depends(require_super_admin), db: Session = Depends(get_db)):
    _check_visibility(body.visibility)
    tip = models.Tip(
        title=body.title.strip(),
        body_md=body.body_md,
        categories=[c.strip() for c in body.categories if c.strip()],
        visibility=body.visibility,
        is_active=body.is_active,
        created_by=identity.user_id,
        updated_by=identity.user_id,
    )
    db.add(tip)
    db.commit()
    db.refresh(tip)
    return _serialize(tip)


@router.put("/{tip_id}")
def editar(tip_id: str, body: schemas.TipUpdate, identity: Identity = Depends(require_super_admin), db: Session = Depends(get_db)):
    tip = _get(db, tip_id)
    _check_visibility(body.visibility)
    data = body.model_dump(exclude_unset=True)
    for field, value in data.items():
        if value is not None:
            setattr(tip, field, value)
    tip.updated_by = identity.user_id
    db.commit()
    db.refresh(tip)
    return _serialize(tip)


@router.patch("/{tip_id}/toggle")
def toggle(tip_id: str, identity: Identity = Depends(require_super_admin), db: Session = Depends(get_db)):
    tip = _get(db, tip_id)
    tip.is_active = not tip.is_active
    tip.updated_by = identity.user_id
    db.commit()
    db.refresh(tip)
    return _serialize(tip)


@router.delete("/{tip_id}")
def eliminar(tip_id: str, identity: Identity = Depends(require_super_admin), db: Session = Depends(get_db)):
    db.delete(_get(db, tip_id))
    db.commit()
    return {"ok": True}
