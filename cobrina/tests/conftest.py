# cobrina/tests/conftest.py
import os
import tempfile

# must happen before anything imports cobrina.settings
_DB_PATH = os.path.join(tempfile.gettempdir(), f"cobrina_test_{os.getpid()}.db")
if os.path.exists(_DB_PATH):
    os.remove(_DB_PATH)
os.environ["DATABASE_URL"] = f"sqlite:///{_DB_PATH}"
os.environ.setdefault("JWT_SECRET", "test_secret")

import pytest  # noqa: E402

from cobrina.main import app  # noqa: E402,F401
from cobrina import models  # noqa: E402
from cobrina.auth import Identity, create_access_token, hash_password  # noqa: E402
from cobrina.db import Base, SessionLocal  # noqa: E402
from cobrina.services import gestiones as gestiones_svc  # noqa: E402

PASSWORD = "secret123"
_PASSWORD_HASH = hash_password(PASSWORD)


@pytest.fixture(autouse=True)
def _clean_db():
    db = SessionLocal()
    try:
        for table in reversed(Base.metadata.sorted_tables):
            db.execute(table.delete())
        db.commit()
    finally:
        db.close()
    gestiones_svc.summary_cache.clear()
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def make_user(username: str, role: str = "operador", is_active: bool = True) -> dict:
    """Insert an employee and return its id, identity and auth headers."""
    session = SessionLocal()
    try:
        emp = models.Empleado(
            username=username,
            nombre=username.title(),
            email=f"{username}@cobrina.test",
            password_hash=_PASSWORD_HASH,
            role=models.RoleEnum(role),
            is_active=is_active,
        )
        session.add(emp)
        session.commit()
        session.refresh(emp)
        token = create_access_token(emp)
        return {
            "id": emp.id,
            "username": emp.username,
            "identity": Identity(user_id=emp.id, username=emp.username, role=role),
            "headers": {"Authorization": f"Bearer {token}"},
        }
    finally:
        session.close()


@pytest.fixture
def operador():
    return make_user("juan", "operador")


@pytest.fixture
def otro_operador():
    return make_user("maria", "operador-vip")


@pytest.fixture
def admin():
    return make_user("auditora", "admin")


@pytest.fixture
def super_admin():
    return make_user("jefa", "super-admin")


@pytest.fixture
def entidad():
    session = SessionLocal()
    try:
        ent = models.Entidad(numero=1, nombre="BANCO NORTE")
        session.add(ent)
        session.commit()
        return ent.id
    finally:
        session.close()


@pytest.fixture
def subcesion():
    session = SessionLocal()
    try:
        sub = models.SubCesion(nombre="Tramo A")
        session.add(sub)
        session.commit()
        return sub.id
    finally:
        session.close()


@pytest.fixture
def usuario_inactivo():
    return make_user("baja", "operador", is_active=False)


@pytest.fixture
def cartera():
    session = SessionLocal()
    try:
        c = models.Cartera(
            nombre="NORTE",
            datos_html="<p>Transferir a Banco Norte</p>",
            direccion="Av. Corrientes 1234",
            editado_por="jefa",
        )
        session.add(c)
        session.commit()
        return {"id": c.id, "nombre": c.nombre}
    finally:
        session.close()
