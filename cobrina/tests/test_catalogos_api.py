# cobrina/tests/test_catalogos_api.py
from fastapi.testclient import TestClient

from cobrina.main import app

client = TestClient(app)

# matches the fixture users in conftest
PASSWORD = "secret123"


def test_root_and_deep_health():
    assert client.get("/").json()["status"] == "ok"
    r = client.get("/ops/health")
    assert r.status_code == 200
    assert r.json()["checks"]["database"] == "ok"


# -------------------------
# Auth
# -------------------------
def test_login_returns_usable_token(operador):
    r = client.post("/auth/login", json={"username": "JUAN", "password": PASSWORD})
    assert r.status_code == 200
    body = r.json()
    assert body["username"] == "juan"
    assert body["role"] == "operador"

    me = client.get("/auth/me", headers={"Authorization": f"Bearer {body['token']}"})
    assert me.json() == {"id": operador["id"], "username": "juan", "role": "operador"}


def test_login_wrong_password(operador):
    r = client.post("/auth/login", json={"username": "juan", "password": "nope"})
    assert r.status_code == 401


def test_login_inactive_user(usuario_inactivo):
    r = client.post("/auth/login", json={"username": "baja", "password": PASSWORD})
    assert r.status_code == 403


# -------------------------
# Empleados
# -------------------------
def test_only_super_admin_manages_employees(admin):
    r = client.get("/empleados/", headers=admin["headers"])
    assert r.status_code == 403


def test_employee_lifecycle(super_admin):
    h = super_admin["headers"]
    r = client.post("/empleados/", json={
        "username": "Pedro", "email": "PEDRO@cobrina.test", "password": "clave123", "role": "operador-vip",
    }, headers=h)
    assert r.status_code == 201, r.text
    emp = r.json()
    assert emp["username"] == "pedro"
    assert emp["email"] == "pedro@cobrina.test"

    dup = client.post("/empleados/", json={
        "username": "pedro", "email": "otro@cobrina.test", "password": "clave123",
    }, headers=h)
    assert dup.status_code == 409

    r = client.put(f"/empleados/{emp['id']}", json={"role": "super-admin"}, headers=h)
    assert r.status_code == 403

    r = client.put(f"/empleados/{emp['id']}", json={"role": "admin", "nombre": "Pedro Gil"}, headers=h)
    assert r.json()["role"] == "admin"

    r = client.patch(f"/empleados/{emp['id']}/toggle", headers=h)
    assert r.json()["is_active"] is False

    listed = client.get("/empleados/", headers=h).json()
    assert "pedro" not in [e["username"] for e in listed["items"]]
    listed = client.get("/empleados/", params={"includeInactive": True}, headers=h).json()
    assert "pedro" in [e["username"] for e in listed["items"]]


def test_cannot_create_super_admin_or_toggle_self(super_admin):
    h = super_admin["headers"]
    r = client.post("/empleados/", json={
        "username": "otra", "email": "otra@cobrina.test", "password": "clave123", "role": "super-admin",
    }, headers=h)
    assert r.status_code == 403

    r = client.patch(f"/empleados/{super_admin['id']}/toggle", headers=h)
    assert r.status_code == 403


def test_invalid_email_rejected(super_admin):
    r = client.post("/empleados/", json={
        "username": "x", "email": "no-es-mail", "password": "clave123",
    }, headers=super_admin["headers"])
    assert r.status_code == 400


# -------------------------
# Entidades / subcesiones
# -------------------------
def test_entities_read_for_all_write_for_super_admin(operador, super_admin):
    r = client.post("/entidades", json={"numero": 7, "nombre": "banco sur"}, headers=operador["headers"])
    assert r.status_code == 403

    r = client.post("/entidades", json={"numero": 7, "nombre": "banco sur"}, headers=super_admin["headers"])
    assert r.status_code == 201
    assert r.json()["nombre"] == "BANCO SUR"

    r = client.post("/entidades", json={"numero": 7, "nombre": "otro"}, headers=super_admin["headers"])
    assert r.status_code == 409

    r = client.get("/entidades", headers=operador["headers"])
    assert [e["nombre"] for e in r.json()] == ["BANCO SUR"]


def test_entity_in_use_cannot_be_deleted(operador, super_admin, entidad, subcesion):
    client.post("/proyecciones/", json={
        "dni": "1", "nombreTitular": "X", "importe": 10, "estado": "Pendiente", "concepto": "Cuota",
        "fechaPromesa": "2030-01-01", "fechaProximoLlamado": "2030-01-01",
        "entidadId": entidad, "subCesionId": subcesion,
    }, headers=operador["headers"])

    r = client.delete(f"/entidades/{entidad}", headers=super_admin["headers"])
    assert r.status_code == 409
    r = client.delete(f"/subcesiones/{subcesion}", headers=super_admin["headers"])
    assert r.status_code == 409


def test_subcesion_crud(super_admin):
    h = super_admin["headers"]
    sub = client.post("/subcesiones", json={"nombre": "Tramo B"}, headers=h).json()
    r = client.put(f"/subcesiones/{sub['id']}", json={"nombre": "Tramo C"}, headers=h)
    assert r.json()["nombre"] == "Tramo C"
    assert client.delete(f"/subcesiones/{sub['id']}", headers=h).json() == {"ok": True}
    assert client.get("/subcesiones", headers=h).json() == []


# -------------------------
# Stickies
# -------------------------
def test_sticky_limit_and_reorder(operador, otro_operador):
    h = operador["headers"]
    ids = []
    for i in range(10):
        r = client.post("/stickies/", json={"text": f"nota {i}", "color": "green"}, headers=h)
        assert r.status_code == 201
        assert r.json()["order"] == i
        ids.append(r.json()["id"])

    r = client.post("/stickies/", json={"text": "una más"}, headers=h)
    assert r.status_code == 400

    r = client.put("/stickies/reorder/all", json={"ids": list(reversed(ids))}, headers=h)
    assert r.json()["reordenadas"] == 10
    mine = client.get("/stickies/mine", headers=h).json()
    assert mine[0]["id"] == ids[-1]

    # other users cannot see or edit someone else's notes
    r = client.put(f"/stickies/{ids[0]}", json={"text": "hack"}, headers=otro_operador["headers"])
    assert r.status_code == 404
    assert client.get("/stickies/mine", headers=otro_operador["headers"]).json() == []


def test_sticky_edit_and_delete(operador):
    h = operador["headers"]
    note = client.post("/stickies/", json={"text": "a", "color": "nope"}, headers=h).json()
    assert note["color"] == "yellow"

    r = client.put(f"/stickies/{note['id']}", json={"text": "b", "color": "blue"}, headers=h)
    assert r.json()["text"] == "b"
    assert r.json()["color"] == "blue"

    assert client.delete(f"/stickies/{note['id']}", headers=h).json() == {"ok": True}
    assert client.get("/stickies/mine", headers=h).json() == []


# -------------------------
# Tips
# -------------------------
def test_tip_visibility(super_admin, admin, operador):
    h = super_admin["headers"]
    client.post("/tips/", json={"title": "Saludo", "bodyMd": "Buen día", "categories": ["apertura"]}, headers=h)
    interno = client.post("/tips/", json={"title": "Interno", "visibility": "admin"}, headers=h).json()

    assert [t["title"] for t in client.get("/tips/", headers=operador["headers"]).json()] == ["Saludo"]
    assert len(client.get("/tips/", headers=admin["headers"]).json()) == 2

    r = client.get("/tips/", params={"categories": "apertura"}, headers=admin["headers"])
    assert [t["title"] for t in r.json()] == ["Saludo"]

    r = client.patch(f"/tips/{interno['id']}/toggle", headers=h)
    assert r.json()["isActive"] is False
    assert len(client.get("/tips/", headers=admin["headers"]).json()) == 1
    assert len(client.get("/tips/", params={"onlyActive": False}, headers=admin["headers"]).json()) == 2


def test_tip_write_is_super_admin_only(admin, super_admin):
    r = client.post("/tips/", json={"title": "x"}, headers=admin["headers"])
    assert r.status_code == 403

    r = client.post("/tips/", json={"title": "x", "visibility": "nadie"}, headers=super_admin["headers"])
    assert r.status_code == 400

    tip = client.post("/tips/", json={"title": "x"}, headers=super_admin["headers"]).json()
    r = client.put(f"/tips/{tip['id']}", json={"title": "y", "isActive": False}, headers=super_admin["headers"])
    assert r.json()["title"] == "y"
    assert r.json()["isActive"] is False
    assert client.delete(f"/tips/{tip['id']}", headers=super_admin["headers"]).json() == {"ok": True}


# -------------------------
# Events
# -------------------------
def test_recent_events_for_elevated_only(operador, admin, entidad, subcesion):
    r = client.post("/proyecciones/", json={
        "dni": "1", "nombreTitular": "X", "importe": 10, "estado": "Pendiente", "concepto": "Cuota",
        "fechaPromesa": "2030-01-01", "fechaProximoLlamado": "2030-01-01",
        "entidadId": entidad, "subCesionId": subcesion,
    }, headers=operador["headers"])
    pid = r.json()["proyeccion"]["id"]

    assert client.get("/events/recent", headers=operador["headers"]).status_code == 403

    r = client.get("/events/recent", params={"entity_id": pid}, headers=admin["headers"])
    events = r.json()
    assert [e["action"] for e in events] == ["CREATE_PROYECCION"]
    assert events[0]["actor"] == "juan"


# -------------------------
# Carteras
# -------------------------
def test_carteras_read_for_all_write_for_elevated(operador, admin):
    body = {"nombre": "SUR", "datosHtml": "<p>CBU 123</p>", "direccion": "San Martín 50"}
    assert client.post("/certificados/carteras", json=body, headers=operador["headers"]).status_code == 403

    r = client.post("/certificados/carteras", json=body, headers=admin["headers"])
    assert r.status_code == 201
    assert r.json()["cartera"]["editadoPor"] == "auditora"

    assert client.post("/certificados/carteras", json=body, headers=admin["headers"]).status_code == 409
    r = client.post("/certificados/carteras", json={**body, "nombre": "   "}, headers=admin["headers"])
    assert r.status_code == 400

    listed = client.get("/certificados/carteras", headers=operador["headers"]).json()
    assert [c["nombre"] for c in listed] == ["SUR"]


def test_cartera_rename_follows_installments(operador, super_admin, cartera, entidad, subcesion):
    r = client.post("/colchon/", json={
        "cartera": cartera["nombre"], "dni": "5", "nombre": "X", "importeCuota": 100, "vencimiento": 1,
        "entidadId": entidad, "subCesionId": subcesion,
    }, headers=operador["headers"])
    cuota_id = r.json()["id"]

    r = client.delete(f"/certificados/carteras/{cartera['id']}", headers=super_admin["headers"])
    assert r.status_code == 409

    r = client.put(f"/certificados/carteras/{cartera['id']}", json={"nombre": "NORTE II"}, headers=super_admin["headers"])
    assert r.json()["cartera"]["nombre"] == "NORTE II"
    assert client.get(f"/colchon/{cuota_id}", headers=operador["headers"]).json()["cartera"] == "NORTE II"
    assert client.get("/colchon/carteras", headers=operador["headers"]).json() == [
        {"id": cartera["id"], "nombre": "NORTE II"}
    ]


def test_cartera_delete(super_admin, cartera):
    r = client.delete(f"/certificados/carteras/{cartera['id']}", headers=super_admin["headers"])
    assert r.json() == {"message": "Cartera eliminada"}
    assert client.delete(f"/certificados/carteras/{cartera['id']}", headers=super_admin["headers"]).status_code == 404
