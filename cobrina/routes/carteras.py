# cobrina/routes/carteras.py
from fastapi import APIRouter, Depends
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import models, schemas
from ..auth import Identity, get_identity, require_elevated
from ..db import get_db
from ..errors import Conflict, NotFound, ValidationFailed

router = APIRouter(prefix="/certificados", tags=["carteras"])


def _serialize(c: models.Cartera) -> dict:
    return {
        "id": c.id,
        "nombre": c.nombre,
        "datosHtml": c.datos_html,
        "direccion": c.direccion,
        "editadoPor": c.editado_por,
        "createdAt": c.created_at.isoformat() if c.created_at else None,
        "updatedAt": c.updated_at.isoformat() if c.updated_at else None,
    }


def _required(value: str, label: str) -> str:
    value = value.strip()
    if not value:
        raise ValidationFailed(f"{label} es obligatorio")
    return value


def _flush_unique(db: Session) -> None:
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        raise Conflict("Ese nombre de cartera ya existe")


def _get(db: Session, cartera_id: str) -> models.Cartera:
    c = db.get(models.Cartera, cartera_id)
    if c is None:
        raise NotFound("Cartera no encontrada")
    return c


@router.get("/carteras")
def listar(identity: Identity = Depends(get_identity), db: Session = Depends(get_db)):
    return [_serialize(c) for c in db.query(models.Cartera).order_by(models.Cartera.nombre).all()]


@router.post("/carteras", status_code=201)
def crear(body: schemas.CarteraIn, identity: Identity = Depends(require_elevated), db: Session = Depends(get_db)):
    c = models.Cartera(
        nombre=_required(body.nombre, "El nombre"),
        datos_html=_required(body.datos_html, "Los datos HTML"),
        direccion=_required(body.direccion, "La dirección"),
        editado_por=identity.username,
    )
    db.add(c)
    _flush_unique(db)
    db.commit()
    db.refresh(c)
    return {"message": "Cartera creada", "cartera": _serialize(c)}


@router.put("/carteras/{cartera_id}")
def editar(
    cartera_id: str,
    body: schemas.CarteraUpdate,
    identity: Identity = Depends(require_elevated),
    db: Session = Depends(get_db),
):
    c = _get(db, cartera_id)
    anterior = c.nombre

    if body.nombre is not None:
        c.nombre = _required(body.nombre, "El nombre")
    if body.datos_html is not None:
        c.datos_html = _required(body.datos_html, "Los datos HTML")
    if body.direccion is not None:
        c.direccion = _required(body.direccion, "La dirección")
    c.editado_por = identity.username
    _flush_unique(db)

    # cuotas reference the cartera by name
    if c.nombre != anterior:
        db.query(models.Cuota).filter(models.Cuota.cartera == anterior).update(
            {models.Cuota.cartera: c.nombre}, synchronize_session=False
        )
    db.commit()
    db.refresh(c)
    return {"message": "Cartera actualizada", "cartera": _serialize(c)}


@router.delete("/carteras/{cartera_id}")
def eliminar(cartera_id: str, identity: Identity = Depends(require_elevated), db: Session = Depends(get_db)):
    c = _get(db, cartera_id)
    if db.query(models.Cuota.id).filter(models.Cuota.cartera == c.nombre).first():
        raise Conflict("La cartera tiene cuotas asociadas")
    db.delete(c)
    db.commit()
    return {"message": "Cartera eliminada"}
