# cobrina/routes/empleados.py
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import models, schemas
from ..auth import ROLES, Identity, hash_password, require_super_admin
from ..db import get_db
from ..errors import Conflict, Forbidden, NotFound, ValidationFailed
from ..logging_config import log_event
from ..utils.emails import es_email_valido

router = APIRouter(prefix="/empleados", tags=["empleados"])

SUPER = models.RoleEnum.SUPER_ADMIN.value


def _serialize(e: models.Empleado) -> dict:
    return schemas.EmpleadoOut(
        id=e.id,
        username=e.username,
        nombre=e.nombre,
        email=e.email,
        role=e.role.value,
        is_active=e.is_active,
    ).model_dump()


def _get(db: Session, empleado_id: str) -> models.Empleado:
    emp = db.get(models.Empleado, empleado_id)
    if emp is None:
        raise NotFound("Empleado no encontrado")
    return emp


def _clean_role(role: str) -> str:
    role = (role or "").strip().lower()
    if role not in ROLES:
        raise ValidationFailed(f"Rol inválido: {role}")
    return role


def _clean_email(email: str) -> str:
    email = (email or "").strip().lower()
    if not es_email_valido(email):
        raise ValidationFailed("Email inválido")
    return email


def _commit_unique(db: Session) -> None:
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict("Username o email ya registrado")


@router.get("/")
def listar(
    q: Optional[str] = None,
    role: Optional[str] = None,
    includeInactive: bool = False,
    page: int = 1,
    limit: int = 100,
    identity: Identity = Depends(require_super_admin),
    db: Session = Depends(get_db),
):
    lim = max(1, min(limit, 500))
    page = max(1, page)

    query = db.query(models.Empleado)
    if q:
        like = f"%{q.strip()}%"
        query = query.filter(or_(models.Empleado.username.ilike(like), models.Empleado.email.ilike(like)))
    if role:
        query = query.filter(models.Empleado.role == models.RoleEnum(_clean_role(role)))
    if not includeInactive:
        query = query.filter(models.Empleado.is_active.is_(True))

    total = query.count()
    rows = query.order_by(models.Empleado.username).offset((page - 1) * lim).limit(lim).all()
    return {"total": total, "page": page, "limit": lim, "items": [_serialize(e) for e in rows]}


@router.post("/", status_code=201)
def crear(body: schemas.EmpleadoCreate, identity: Identity = Depends(require_super_admin), db: Session = Depends(get_db)):
    role = _clean_role(body.role)
    if role == SUPER:
        raise Forbidden("No se puede crear otro super-admin")

    emp = models.Empleado(
        username=body.username.strip().lower(),
        nombre=body.nombre.strip(),
        email=_clean_email(body.email),
        password_hash=hash_password(body.password),
        role=models.RoleEnum(role),
        is_active=True,
    )
    db.add(emp)
    _commit_unique(db)
    db.refresh(emp)
    log_event("CREATE_EMPLEADO", f"empleado {emp.username}", {"role": role, "actor": identity.username})
    return _serialize(emp)


@router.put("/{empleado_id}")
def editar(
    empleado_id: str,
    body: schemas.EmpleadoUpdate,
    identity: Identity = Depends(require_super_admin),
    db: Session = Depends(get_db),
):
    emp = _get(db, empleado_id)

    if body.role is not None:
        role = _clean_role(body.role)
        if (emp.role.value == SUPER) != (role == SUPER):
            raise Forbidden("El rol super-admin no puede asignarse ni quitarse")
        emp.role = models.RoleEnum(role)
    if body.username is not None:
        emp.username = body.username.strip().lower()
    if body.nombre is not None:
        emp.nombre = body.nombre.strip()
    if body.email is not None:
        emp.email = _clean_email(body.email)
    if body.password:
        emp.password_hash = hash_password(body.password)

    _commit_unique(db)
    db.refresh(emp)
    return _serialize(emp)


@router.patch("/{empleado_id}/toggle")
def toggle(empleado_id: str, identity: Identity = Depends(require_super_admin), db: Session = Depends(get_db)):
    emp = _get(db, empleado_id)
    if emp.id == identity.user_id:
        raise Forbidden("No podés desactivar tu propio usuario")
    emp.is_active = not emp.is_active
    db.commit()
    db.refresh(emp)
    log_event("TOGGLE_EMPLEADO", f"empleado {emp.username}", {"isActive": emp.is_active, "actor": identity.username})
    return _serialize(emp)
