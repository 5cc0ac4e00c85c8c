# cobrina/auth.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError
from argon2.low_level import Type
from fastapi import Depends, Request
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from .db import get_db
from .errors import Forbidden, Unauthorized
from .models import Empleado, RoleEnum
from .settings import get_settings

settings = get_settings()

ROLES = tuple(r.value for r in RoleEnum)
ELEVATED_ROLES = (RoleEnum.ADMIN.value, RoleEnum.SUPER_ADMIN.value)

_ph = PasswordHasher(
    time_cost=2, memory_cost=102400, parallelism=8, hash_len=32, type=Type.ID
)


@dataclass(frozen=True)
class Identity:
    user_id: str
    username: str
    role: str

    @property
    def is_elevated(self) -> bool:
        return self.role in ELEVATED_ROLES

    @property
    def is_super_admin(self) -> bool:
        return self.role == RoleEnum.SUPER_ADMIN.value


# -------------------------
# Passwords
# -------------------------
def hash_password(password: str) -> str:
    return _ph.hash(password)


def verify_password(password_hash: str, password: str) -> bool:
    try:
        return _ph.verify(password_hash, password)
    except (VerificationError, InvalidHashError):
        return False


# -------------------------
# Tokens
# -------------------------
def create_access_token(empleado: Empleado) -> str:
    role = empleado.role.value if hasattr(empleado.role, "value") else str(empleado.role)
    payload = {
        "id": empleado.id,
        "username": empleado.username,
        "role": role,
        "exp": datetime.now(timezone.utc) + timedelta(hours=settings.JWT_EXPIRE_HOURS),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def _decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        raise Unauthorized("Token inválido o expirado")


def get_identity(request: Request, db: Session = Depends(get_db)) -> Identity:
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        raise Unauthorized("Token requerido")

    payload = _decode_token(auth_header[len("Bearer "):].strip())
    user_id = payload.get("id")
    if not user_id:
        raise Unauthorized("Token inválido")

    # re-read so deactivation and role changes apply immediately
    emp = db.get(Empleado, user_id)
    if emp is None:
        raise Unauthorized("Usuario inexistente")
    if not emp.is_active:
        raise Forbidden("Usuario inactivo")

    role = emp.role.value if hasattr(emp.role, "value") else str(emp.role)
    return Identity(user_id=emp.id, username=emp.username, role=role)


def require_roles(*roles: str):
    """Dependency factory: only the listed roles get through."""

    def _dep(identity: Identity = Depends(get_identity)) -> Identity:
        if identity.role not in roles:
            raise Forbidden("Acceso denegado para este rol")
        return identity

    return _dep


require_elevated = require_roles(*ELEVATED_ROLES)
require_super_admin = require_roles(RoleEnum.SUPER_ADMIN.value)


# -------------------------
# Ownership
# -------------------------
def owner_scope(identity: Identity, only_mine: bool = False) -> str | None:
    """Owner id to filter by, or None when the caller may see every owner."""
    if identity.is_elevated and not only_mine:
        return None
    return identity.user_id


def ensure_owner_or_elevated(identity: Identity, owner_id: str | None) -> None:
    if identity.is_elevated:
        return
    if owner_id != identity.user_id:
        raise Forbidden("No autorizado")
