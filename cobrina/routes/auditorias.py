# cobrina/routes/auditorias.py
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from .. import schemas
from ..abort import ensure_connected
from ..auth import Identity, require_elevated
from ..db import get_db
from ..engine.criteria import CRITERIOS, MOTIVOS_SELECCION, PESOS, TIPOS_INTERACCION, UMBRAL_ALTO, UMBRAL_BAJO
from ..services import auditorias as svc

# operators never reach this router
router = APIRouter(prefix="/api/auditorias", tags=["auditorias"])


@router.get("/ping")
def ping(identity: Identity = Depends(require_elevated)):
    return {"ok": True, "module": "auditorias", "ts": datetime.now(timezone.utc).isoformat()}


@router.get("/catalogos")
async def catalogos(request: Request, identity: Identity = Depends(require_elevated), db: Session = Depends(get_db)):
    await ensure_connected(request)
    operadores = await run_in_threadpool(svc.active_operators, db)
    return {
        "ok": True,
        "operadores": operadores,
        "motivos": list(MOTIVOS_SELECCION),
        "tiposInteraccion": list(TIPOS_INTERACCION),
        "criterios": {
            "pesos": PESOS,
            "umbrales": {"bajo": UMBRAL_BAJO, "alto": UMBRAL_ALTO},
            "lista": CRITERIOS,
        },
    }


@router.post("/crear", status_code=201)
def crear(body: schemas.AuditoriaIn, identity: Identity = Depends(require_elevated), db: Session = Depends(get_db)):
    aud = svc.create_audit(db, identity, body.model_dump(by_alias=True))
    return {"ok": True, "item": svc.serialize_audit(aud)}


@router.get("/listar")
async def listar(
    request: Request,
    desde: Optional[str] = None,
    hasta: Optional[str] = None,
    operador: Optional[str] = None,
    auditor: Optional[str] = None,
    semaforo: Optional[str] = None,
    onlyMine: bool = False,
    page: Optional[str] = None,
    limit: Optional[str] = None,
    identity: Identity = Depends(require_elevated),
    db: Session = Depends(get_db),
):
    filtros = {
        "desde": desde, "hasta": hasta, "operador": operador, "auditor": auditor,
        "semaforo": semaforo, "only_mine": onlyMine,
    }
    p, lim = svc.page_params(page, limit)
    q = svc.filtered_query(db, identity, filtros)

    await ensure_connected(request)
    total = await run_in_threadpool(q.count)
    await ensure_connected(request)
    items = await run_in_threadpool(svc.list_page, q, p, lim)

    return {"ok": True, "page": p, "limit": lim, "total": total, "items": items}


@router.get("/analytics/resumen")
async def analytics_resumen(
    request: Request,
    desde: Optional[str] = None,
    hasta: Optional[str] = None,
    operador: Optional[str] = None,
    onlyMine: bool = False,
    identity: Identity = Depends(require_elevated),
    db: Session = Depends(get_db),
):
    q = svc.filtered_query(db, identity, {"desde": desde, "hasta": hasta, "operador": operador, "only_mine": onlyMine})

    await ensure_connected(request)
    resumen = await run_in_threadpool(svc.summary_totals, q)
    await ensure_connected(request)
    semaforos = await run_in_threadpool(svc.semaforo_histogram, q)
    await ensure_connected(request)
    por_operador = await run_in_threadpool(svc.per_operator, q)
    await ensure_connected(request)
    top = await run_in_threadpool(svc.top_failures, q)

    return {"ok": True, "resumen": resumen, "semaforos": semaforos, "porOperador": por_operador, "topFallos": top}


@router.get("/{auditoria_id}")
def detalle(
    auditoria_id: str,
    onlyMine: bool = False,
    identity: Identity = Depends(require_elevated),
    db: Session = Depends(get_db),
):
    return {"ok": True, "item": svc.serialize_audit(svc.get_audit(db, identity, auditoria_id, onlyMine))}


@router.put("/{auditoria_id}")
def editar(
    auditoria_id: str,
    body: schemas.AuditoriaIn,
    identity: Identity = Depends(require_elevated),
    db: Session = Depends(get_db),
):
    aud = svc.update_audit(db, identity, auditoria_id, body.model_dump(by_alias=True))
    return {"ok": True, "item": svc.serialize_audit(aud)}


@router.delete("/{auditoria_id}")
def borrar(auditoria_id: str, identity: Identity = Depends(require_elevated), db: Session = Depends(get_db)):
    return {"ok": True, "id": svc.soft_delete_audit(db, identity, auditoria_id)}
