# cobrina/tests/test_auditorias_api.py
from fastapi.testclient import TestClient

from cobrina.engine.criteria import ALL_IDS
from cobrina.main import app

client = TestClient(app)

BASE = "/api/auditorias"


def _item(**extra):
    it = {"telefono": "1155550000", "tipoInteraccion": "LLAMADA_SALIENTE", "duracionSegundos": 95}
    it.update(extra)
    return it


def _crear(user, operador_username, items, **extra):
    body = {
        "operadorUsername": operador_username,
        "fechaAuditoria": "2024-03-10",
        "motivosSeleccion": ["aleatorio"],
        "items": items,
    }
    body.update(extra)
    return client.post(f"{BASE}/crear", json=body, headers=user["headers"])


def test_operators_cannot_reach_audits(operador):
    r = client.get(f"{BASE}/ping", headers=operador["headers"])
    assert r.status_code == 403
    assert r.json()["error"] == "FORBIDDEN"


def test_catalogs_list_operators_and_criteria(admin, operador, otro_operador):
    r = client.get(f"{BASE}/catalogos", headers=admin["headers"])
    assert r.status_code == 200
    body = r.json()
    assert body["operadores"] == ["juan", "maria"]
    assert len(body["criterios"]["lista"]) == 24
    assert body["criterios"]["umbrales"] == {"bajo": 6.5, "alto": 7.5}
    assert "LLAMADA_SALIENTE" in body["tiposInteraccion"]


def test_create_scores_and_persists(admin, operador):
    r = _crear(admin, "JUAN", [_item(fallosIds=[]), _item(okIds=[])])
    assert r.status_code == 201, r.text
    aud = r.json()["item"]
    assert aud["operadorUsername"] == "juan"
    assert aud["auditorUsername"] == "auditora"
    assert aud["scoreFinal"] == 5.0
    assert aud["semaforo"] == "bajo"
    assert len(aud["items"]) == 2
    assert aud["items"][1]["fallosIds"] == list(ALL_IDS)
    assert aud["items"][0]["duracionSegundos"] == 95

    r = client.get(f"{BASE}/{aud['id']}", headers=admin["headers"])
    assert r.json()["item"]["scoreBloques"]["cierre"] == 5.0


def test_create_rejects_unknown_operator(admin):
    r = _crear(admin, "fantasma", [_item(fallosIds=[])])
    assert r.status_code == 400
    assert r.json()["detail"] == "Operador no existe."


def test_create_rejects_inactive_operator(admin, usuario_inactivo):
    r = _crear(admin, "baja", [_item(fallosIds=[])])
    assert r.json()["detail"] == "Operador inactivo."


def test_create_item_limits(admin, operador):
    r = _crear(admin, "juan", [])
    assert r.status_code == 400
    assert r.json()["error"] == "EMPTY_OR_OVERSIZED"

    r = _crear(admin, "juan", [_item(fallosIds=[]) for _ in range(6)])
    assert r.json()["error"] == "EMPTY_OR_OVERSIZED"


def test_call_without_duration_rejected(admin, operador):
    r = _crear(admin, "juan", [_item(fallosIds=[], duracionSegundos=0)])
    assert r.status_code == 400
    assert "item #1" in r.json()["detail"]

    r = _crear(admin, "juan", [_item(fallosIds=[], duracionSegundos=0, tipoInteraccion="MENSAJE_SALIENTE")])
    assert r.status_code == 201


def test_list_filters_and_soft_delete(admin, super_admin, operador, otro_operador):
    a = _crear(admin, "juan", [_item(fallosIds=[])]).json()["item"]
    _crear(admin, "maria", [_item(fallosIds=list(ALL_IDS))], fechaAuditoria="2024-04-01")
    _crear(super_admin, "maria", [_item(fallosIds=[1, 2])])

    r = client.get(f"{BASE}/listar", headers=admin["headers"])
    assert r.json()["total"] == 3

    r = client.get(f"{BASE}/listar", params={"onlyMine": True}, headers=admin["headers"])
    assert r.json()["total"] == 2

    r = client.get(f"{BASE}/listar", params={"operador": "MARIA", "semaforo": "bajo"}, headers=admin["headers"])
    assert r.json()["total"] == 1

    r = client.get(f"{BASE}/listar", params={"desde": "2024-04-01", "hasta": "2024-04-01"}, headers=admin["headers"])
    assert r.json()["total"] == 1

    r = client.get(f"{BASE}/listar", params={"page": "x", "limit": "9999"}, headers=admin["headers"])
    assert r.json()["page"] == 1
    assert r.json()["limit"] == 200

    r = client.delete(f"{BASE}/{a['id']}", headers=admin["headers"])
    assert r.json() == {"ok": True, "id": a["id"]}
    assert client.get(f"{BASE}/{a['id']}", headers=admin["headers"]).status_code == 404
    assert client.get(f"{BASE}/listar", headers=admin["headers"]).json()["total"] == 2


def test_update_replaces_items(admin, operador):
    a = _crear(admin, "juan", [_item(fallosIds=list(ALL_IDS)), _item(fallosIds=[])]).json()["item"]

    r = client.put(
        f"{BASE}/{a['id']}",
        json={"items": [_item(fallosIds=[])], "observacionesGenerales": "mejoró"},
        headers=admin["headers"],
    )
    assert r.status_code == 200
    item = r.json()["item"]
    assert len(item["items"]) == 1
    assert item["scoreFinal"] == 10.0
    assert item["semaforo"] == "alto"
    assert item["observacionesGenerales"] == "mejoró"
    assert item["operadorUsername"] == "juan"


def test_analytics_summary(admin, operador, otro_operador):
    _crear(admin, "juan", [_item(fallosIds=[1, 4])])
    _crear(admin, "juan", [_item(fallosIds=[4])])
    _crear(admin, "maria", [_item(fallosIds=list(ALL_IDS))])

    r = client.get(f"{BASE}/analytics/resumen", headers=admin["headers"])
    assert r.status_code == 200
    body = r.json()
    assert body["resumen"]["auditorias"] == 3
    assert body["resumen"]["audios"] == 3
    assert [x["operadorUsername"] for x in body["porOperador"]] == ["maria", "juan"]
    assert body["topFallos"][0]["id"] == 4
    assert body["topFallos"][0]["count"] == 3
    semaforos = {x["semaforo"]: x["count"] for x in body["semaforos"]}
    assert semaforos["bajo"] == 1
