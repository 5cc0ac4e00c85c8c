# cobrina/tests/test_colchon_api.py
from fastapi.testclient import TestClient

from cobrina.main import app

client = TestClient(app)


def _body(cartera, entidad, subcesion, **extra):
    body = {
        "cartera": cartera["nombre"],
        "dni": "30111222",
        "nombre": "Ana Pérez",
        "importeCuota": 1500,
        "vencimiento": 10,
        "cuotaNumero": 3,
        "entidadId": entidad,
        "subCesionId": subcesion,
        "turno": "mañana",
    }
    body.update(extra)
    return body


def _crear(user, cartera, entidad, subcesion, **extra):
    r = client.post("/colchon/", json=_body(cartera, entidad, subcesion, **extra), headers=user["headers"])
    assert r.status_code == 201, r.text
    return r.json()


# -------------------------
# Access
# -------------------------
def test_admin_is_kept_out(admin):
    r = client.get("/colchon/", headers=admin["headers"])
    assert r.status_code == 403


def test_create_and_read(operador, cartera, entidad, subcesion):
    c = _crear(operador, cartera, entidad, subcesion)
    assert c["estado"] == "A cuota"
    assert c["empleado"] == "juan"
    assert c["idCuotaLogico"] == f"30111222-{entidad}-{subcesion}-3"
    assert c["saldoPendiente"] == 0.0

    r = client.get(f"/colchon/{c['id']}", headers=operador["headers"])
    assert r.json()["nombre"] == "Ana Pérez"


def test_operators_only_see_their_own(operador, otro_operador, super_admin, cartera, entidad, subcesion):
    c = _crear(operador, cartera, entidad, subcesion)

    assert client.get(f"/colchon/{c['id']}", headers=otro_operador["headers"]).status_code == 403
    assert client.get("/colchon/", headers=otro_operador["headers"]).json()["total"] == 0
    assert client.delete(f"/colchon/{c['id']}", headers=otro_operador["headers"]).status_code == 403

    r = client.get("/colchon/", headers=super_admin["headers"])
    assert r.json()["total"] == 1


# -------------------------
# Validation
# -------------------------
def test_missing_fields_are_listed(operador, entidad, subcesion):
    r = client.post("/colchon/", json={"dni": "1", "entidadId": entidad, "subCesionId": subcesion},
                    headers=operador["headers"])
    assert r.status_code == 400
    detail = r.json()["detail"]
    assert "cartera" in detail
    assert "importeCuota" in detail
    assert "vencimiento" in detail


def test_bad_values_rejected(operador, cartera, entidad, subcesion):
    h = operador["headers"]
    assert client.post("/colchon/", json=_body(cartera, entidad, subcesion, vencimiento=32), headers=h).status_code == 400
    assert client.post("/colchon/", json=_body(cartera, entidad, subcesion, dni="12²"), headers=h).status_code == 400
    assert client.post("/colchon/", json=_body(cartera, entidad, subcesion, estado="Perdida"), headers=h).status_code == 400
    assert client.post("/colchon/", json=_body(cartera, entidad, subcesion, saldoPendiente=-1), headers=h).status_code == 400

    r = client.post("/colchon/", json=_body({"nombre": "NO EXISTE"}, entidad, subcesion), headers=h)
    assert r.status_code == 404


def test_same_installment_twice_conflicts(operador, cartera, entidad, subcesion):
    _crear(operador, cartera, entidad, subcesion)
    r = client.post("/colchon/", json=_body(cartera, entidad, subcesion), headers=operador["headers"])
    assert r.status_code == 409

    # next installment of the same debt is a different key
    _crear(operador, cartera, entidad, subcesion, cuotaNumero=4)


def test_only_super_admin_assigns_to_others(operador, otro_operador, super_admin, cartera, entidad, subcesion):
    r = client.post("/colchon/", json=_body(cartera, entidad, subcesion, empleadoId=otro_operador["id"]),
                    headers=operador["headers"])
    assert r.status_code == 403

    c = _crear(super_admin, cartera, entidad, subcesion, empleadoId=otro_operador["id"])
    assert c["empleado"] == "maria"
    assert client.get(f"/colchon/{c['id']}", headers=otro_operador["headers"]).status_code == 200


def test_update_recomputes_key(operador, cartera, entidad, subcesion):
    c = _crear(operador, cartera, entidad, subcesion)
    r = client.put(f"/colchon/{c['id']}", json={"cuotaNumero": 5, "estado": "Cuota 30"}, headers=operador["headers"])
    assert r.status_code == 200
    assert r.json()["idCuotaLogico"].endswith("-5")
    assert r.json()["estado"] == "Cuota 30"
    assert r.json()["nombre"] == "Ana Pérez"


# -------------------------
# Payments
# -------------------------
def test_reported_payment_review_flow(operador, cartera, entidad, subcesion):
    h = operador["headers"]
    c = _crear(operador, cartera, entidad, subcesion)

    r = client.post(f"/colchon/{c['id']}/informar-pago", json={"fecha": "2024-05-10", "monto": 1500}, headers=h)
    assert r.status_code == 200
    assert r.json()["totalInformado"] == 1500
    pago_id = r.json()["pagosInformados"][0]["id"]

    dup = client.post(f"/colchon/{c['id']}/informar-pago", json={"fecha": "10/05/2024", "monto": 1500}, headers=h)
    assert dup.status_code == 409
    assert dup.json()["error"] == "DUPLICATE"

    pend = client.get("/colchon/informar-pago/pendientes", headers=h).json()
    assert [(p["cuotaId"], p["pago"]["id"]) for p in pend] == [(c["id"], pago_id)]

    r = client.put(f"/colchon/{c['id']}/informar-pago/{pago_id}/erroneo", json={"motivo": "no figura"}, headers=h)
    pago = r.json()["pagosInformados"][0]
    assert pago["erroneo"] is True
    assert pago["motivoError"] == "no figura"
    assert r.json()["totalInformado"] == 0
    assert client.get("/colchon/informar-pago/pendientes", headers=h).json() == []

    # an erroneous report never blocks the same one
    r = client.post(f"/colchon/{c['id']}/informar-pago", json={"fecha": "2024-05-10", "monto": 1500}, headers=h)
    assert r.status_code == 200
    nuevo = [p for p in r.json()["pagosInformados"] if not p["erroneo"]][0]

    r = client.put(f"/colchon/{c['id']}/informar-pago/{nuevo['id']}/visto", headers=h)
    assert [p["visto"] for p in r.json()["pagosInformados"] if p["id"] == nuevo["id"]] == [True]
    assert client.get("/colchon/informar-pago/pendientes", headers=h).json() == []

    r = client.delete(f"/colchon/{c['id']}/informar-pago/{nuevo['id']}", headers=h)
    assert len(r.json()["pagosInformados"]) == 1


def test_real_payments_are_super_admin_only(operador, super_admin, cartera, entidad, subcesion):
    c = _crear(operador, cartera, entidad, subcesion)

    r = client.post(f"/colchon/{c['id']}/pagos", json={"fecha": "2024-05-10", "monto": 700}, headers=operador["headers"])
    assert r.status_code == 403

    r = client.post(f"/colchon/{c['id']}/pagos", json={"fecha": "2024-05-10", "monto": 700}, headers=super_admin["headers"])
    assert r.json()["totalPagado"] == 700
    pago_id = r.json()["pagos"][0]["id"]

    r = client.delete(f"/colchon/{c['id']}/pago/{pago_id}", headers=super_admin["headers"])
    assert r.json()["pagos"] == []
    assert client.delete(f"/colchon/{c['id']}/pago/{pago_id}", headers=super_admin["headers"]).status_code == 404


def test_clear_and_register_contact(operador, cartera, entidad, subcesion):
    h = operador["headers"]
    c = _crear(operador, cartera, entidad, subcesion)
    client.post(f"/colchon/{c['id']}/informar-pago", json={"fecha": "2024-05-10", "monto": 100}, headers=h)

    r = client.put(f"/colchon/gestionar/{c['id']}", json={"observacionesOperador": "pide nuevo plan"}, headers=h)
    assert r.json()["vecesTocada"] == 1
    assert r.json()["observacionesOperador"] == "pide nuevo plan"
    assert r.json()["ultimaGestion"] is not None

    r = client.put(f"/colchon/{c['id']}/limpiar", headers=h)
    assert r.json()["pagosInformados"] == []
    assert r.json()["observacionesOperador"] == ""
    assert r.json()["vecesTocada"] == 1


# -------------------------
# Stats / export / wipe
# -------------------------
def test_stats(operador, super_admin, cartera, entidad, subcesion):
    a = _crear(operador, cartera, entidad, subcesion)
    _crear(operador, cartera, entidad, subcesion, cuotaNumero=4, importeCuota=500, estado="Cuota 30", saldoPendiente=1000)
    client.post(f"/colchon/{a['id']}/pagos", json={"fecha": "2024-05-10", "monto": 300}, headers=super_admin["headers"])

    s = client.get("/colchon/estadisticas", headers=operador["headers"]).json()
    assert s["total"] == 2
    assert s["porEstado"] == {"A cuota": 1, "Cuota 30": 1, "Cuota 60": 0, "Cuota 90": 0, "Caída": 0}
    assert s["importeTotal"] == 2000
    assert s["saldoPendiente"] == 1000
    assert s["totalPagado"] == 300
    assert s["porcentajeCobrado"] == 15.0
    assert s["porCartera"]["NORTE"]["cuotas"] == 2


def test_list_filters(operador, cartera, entidad, subcesion):
    _crear(operador, cartera, entidad, subcesion, vencimiento=5)
    _crear(operador, cartera, entidad, subcesion, cuotaNumero=4, vencimiento=20, nombre="Carlos Gómez", dni="777")

    r = client.get("/colchon/", params={"vencimientoDesde": 10}, headers=operador["headers"])
    assert [c["vencimiento"] for c in r.json()["cuotas"]] == [20]

    r = client.get("/colchon/", params={"buscar": "gómez"}, headers=operador["headers"])
    assert [c["dni"] for c in r.json()["cuotas"]] == [777]

    r = client.get("/colchon/", headers=operador["headers"])
    assert [c["vencimiento"] for c in r.json()["cuotas"]] == [5, 20]


def test_export_csv(operador, cartera, entidad, subcesion):
    _crear(operador, cartera, entidad, subcesion)
    r = client.get("/colchon/exportar", headers=operador["headers"])
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/csv")
    lines = r.text.strip().splitlines()
    assert lines[0].startswith("dni,nombre,turno,cartera")
    assert "BANCO NORTE" in lines[1]

    r = client.get("/colchon/exportar-pagos", headers=operador["headers"])
    assert r.text.strip().splitlines() == ["dni,nombre,cartera,tipo,fecha,monto,visto,erroneo,motivo_error"]


def test_wipe_is_super_admin_only(operador, super_admin, cartera, entidad, subcesion):
    _crear(operador, cartera, entidad, subcesion)
    assert client.delete("/colchon/vaciar", headers=operador["headers"]).status_code == 403

    r = client.delete("/colchon/vaciar", headers=super_admin["headers"])
    assert r.json() == {"ok": True, "eliminadas": 1}
    assert client.get("/colchon/", headers=super_admin["headers"]).json()["total"] == 0


def test_entity_with_installments_cannot_be_deleted(operador, super_admin, cartera, entidad, subcesion):
    _crear(operador, cartera, entidad, subcesion)
    r = client.delete(f"/entidades/{entidad}", headers=super_admin["headers"])
    assert r.status_code == 409
