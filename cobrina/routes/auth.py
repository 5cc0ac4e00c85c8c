# cobrina/routes/auth.py
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .. import models, schemas
from ..auth import Identity, create_access_token, get_identity, verify_password
from ..db import get_db
from ..errors import Forbidden, Unauthorized
from ..logging_config import log_event

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=schemas.TokenOut)
def login(body: schemas.LoginIn, db: Session = Depends(get_db)):
    username = body.username.strip().lower()
    emp = db.query(models.Empleado).filter(models.Empleado.username == username).first()
    if emp is None or not verify_password(emp.password_hash, body.password):
        raise Unauthorized("Usuario o contraseña incorrectos")
    if not emp.is_active:
        raise Forbidden("Usuario inactivo")

    emp.ultima_actividad = datetime.now(timezone.utc)
    db.commit()
    log_event("LOGIN", f"login {emp.username}", {"role": emp.role.value})

    return {"token": create_access_token(emp), "id": emp.id, "username": emp.username, "role": emp.role.value}


@router.get("/me")
def me(identity: Identity = Depends(get_identity)):
    return {"id": identity.user_id, "username": identity.username, "role": identity.role}
