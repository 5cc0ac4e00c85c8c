# cobrina/routes/entidades.py
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import models, schemas
from ..auth import Identity, get_identity, require_super_admin
from ..db import get_db
from ..errors import Conflict, NotFound

router = APIRouter(tags=["catalogos"])


def _commit_unique(db: Session, what: str) -> None:
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict(f"{what} ya existe")


# -------------------------
# Entidades
# -------------------------
@router.get("/entidades", response_model=List[schemas.EntidadOut])
def listar_entidades(identity: Identity = Depends(get_identity), db: Session = Depends(get_db)):
    return db.query(models.Entidad).order_by(models.Entidad.numero).all()


@router.post("/entidades", response_model=schemas.EntidadOut, status_code=201)
def crear_entidad(body: schemas.EntidadIn, identity: Identity = Depends(require_super_admin), db: Session = Depends(get_db)):
    ent = models.Entidad(numero=body.numero, nombre=body.nombre.strip().upper())
    db.add(ent)
    _commit_unique(db, "Entidad")
    db.refresh(ent)
    return ent


@router.put("/entidades/{entidad_id}", response_model=schemas.EntidadOut)
def editar_entidad(
    entidad_id: str,
    body: schemas.EntidadIn,
    identity: Identity = Depends(require_super_admin),
    db: Session = Depends(get_db),
):
    ent = db.get(models.Entidad, entidad_id)
    if ent is None:
        raise NotFound("Entidad no encontrada")
    ent.numero = body.numero
    ent.nombre = body.nombre.strip().upper()
    _commit_unique(db, "Entidad")
    db.refresh(ent)
    return ent


@router.delete("/entidades/{entidad_id}")
def eliminar_entidad(entidad_id: str, identity: Identity = Depends(require_super_admin), db: Session = Depends(get_db)):
    ent = db.get(models.Entidad, entidad_id)
    if ent is None:
        raise NotFound("Entidad no encontrada")
    if db.query(models.Proyeccion).filter(models.Proyeccion.entidad_id == entidad_id).first():
        raise Conflict("La entidad tiene proyecciones asociadas")
    if db.query(models.Cuota.id).filter(models.Cuota.entidad_id == entidad_id).first():
        raise Conflict("La entidad tiene cuotas asociadas")
    db.delete(ent)
    db.commit()
    return {"ok": True}


# -------------------------
# Subcesiones
# -------------------------
@router.get("/subcesiones", response_model=List[schemas.SubCesionOut])
def listar_subcesiones(identity: Identity = Depends(get_identity), db: Session = Depends(get_db)):
    return db.query(models.SubCesion).order_by(models.SubCesion.nombre).all()


@router.post("/subcesiones", response_model=schemas.SubCesionOut, status_code=201)
def crear_subcesion(body: schemas.SubCesionIn, identity: Identity = Depends(require_super_admin), db: Session = Depends(get_db)):
    sub = models.SubCesion(nombre=body.nombre.strip())
    db.add(sub)
    _commit_unique(db, "Subcesión")
    db.refresh(sub)
    return sub


@router.put("/subcesiones/{subcesion_id}", response_model=schemas.SubCesionOut)
def editar_subcesion(
    subcesion_id: str,
    body: schemas.SubCesionIn,
    identity: Identity = Depends(require_super_admin),
    db: Session = Depends(get_db),
):
    sub = db.get(models.SubCesion, subcesion_id)
    if sub is None:
        raise NotFound("Subcesión no encontrada")
    sub.nombre = body.nombre.strip()
    _commit_unique(db, "Subcesión")
    db.refresh(sub)
    return sub


@router.delete("/subcesiones/{subcesion_id}")
def eliminar_subcesion(subcesion_id: str, identity: Identity = Depends(require_super_admin), db: Session = Depends(get_db)):
    sub = db.get(models.SubCesion, subcesion_id)
    if sub is None:
        raise NotFound("Subcesión no encontrada")
    if db.query(models.Proyeccion).filter(models.Proyeccion.subcesion_id == subcesion_id).first():
        raise Conflict("La subcesión tiene proyecciones asociadas")
    if db.query(models.Cuota.id).filter(models.Cuota.subcesion_id == subcesion_id).first():
        raise Conflict("La subcesión tiene cuotas asociadas")
    db.delete(sub)
    db.commit()
    return {"ok": True}
