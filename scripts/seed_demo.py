import os

from cobrina.auth import hash_password
from cobrina.db import SessionLocal
from cobrina import models
from cobrina.main import _ensure_db_ready

ENTIDADES = [(1, "BANCO NORTE"), (2, "FINANCIERA DEL SUR"), (3, "TARJETA AZUL")]
SUBCESIONES = ["Tramo A", "Tramo B", "Judicial"]


def seed_demo():
    _ensure_db_ready()
    db = SessionLocal()
    try:
        if not db.query(models.Empleado).filter(models.Empleado.role == models.RoleEnum.SUPER_ADMIN).first():
            db.add(models.Empleado(
                username=os.getenv("COBRINA_ADMIN_USER", "admin"),
                nombre="Administrador",
                email=os.getenv("COBRINA_ADMIN_EMAIL", "admin@cobrina.local"),
                password_hash=hash_password(os.getenv("COBRINA_ADMIN_PASSWORD", "cambiar123")),
                role=models.RoleEnum.SUPER_ADMIN,
                is_active=True,
            ))

        if not db.query(models.Entidad).first():
            db.add_all(models.Entidad(numero=n, nombre=nombre) for n, nombre in ENTIDADES)
        if not db.query(models.SubCesion).first():
            db.add_all(models.SubCesion(nombre=nombre) for nombre in SUBCESIONES)

        db.commit()
        print("Seeded demo data.")
    finally:
        db.close()


if __name__ == "__main__":
    seed_demo()
