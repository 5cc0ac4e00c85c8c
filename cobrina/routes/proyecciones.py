# cobrina/routes/proyecciones.py
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse
from starlette.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from .. import schemas
from ..abort import ensure_connected
from ..auth import Identity, ensure_owner_or_elevated, get_identity, require_super_admin
from ..db import get_db
from ..services import proyecciones as svc

router = APIRouter(prefix="/proyecciones", tags=["proyecciones"])


def _filters(
    estado: Optional[str] = None,
    concepto: Optional[str] = None,
    entidadId: Optional[str] = None,
    subCesionId: Optional[str] = None,
    mes: Optional[int] = None,
    anio: Optional[int] = None,
    desde: Optional[str] = None,
    hasta: Optional[str] = None,
    buscar: Optional[str] = None,
    orden: str = "desc",
    usuarioId: Optional[str] = None,
    onlyMine: bool = False,
    page: int = 1,
    limit: int = 10,
) -> dict:
    return {
        "estado": estado,
        "concepto": concepto,
        "entidad_id": entidadId,
        "subcesion_id": subCesionId,
        "mes": mes,
        "anio": anio,
        "desde": desde,
        "hasta": hasta,
        "buscar": buscar,
        "orden": orden,
        "usuario_id": usuarioId,
        "only_mine": onlyMine,
        "page": page,
        "limit": limit,
    }


@router.post("/", status_code=201)
def crear(body: schemas.ProyeccionIn, identity: Identity = Depends(get_identity), db: Session = Depends(get_db)):
    out = svc.create_promise(db, identity, body.model_dump(exclude_unset=True))
    return {
        "proyeccion": svc.serialize_promise(out["proyeccion"]),
        "cerradaAnterior": out["cerradaAnterior"],
    }


@router.get("/mias")
async def mias(request: Request, identity: Identity = Depends(get_identity), db: Session = Depends(get_db)):
    await ensure_connected(request)
    return await run_in_threadpool(svc.list_own, db, identity)


@router.get("/filtrar")
async def filtrar(
    request: Request,
    filters: dict = Depends(_filters),
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
):
    await ensure_connected(request)
    return await run_in_threadpool(svc.list_promises, db, identity, filters)


@router.get("/estadisticas")
async def estadisticas(request: Request, identity: Identity = Depends(get_identity), db: Session = Depends(get_db)):
    await ensure_connected(request)
    return await run_in_threadpool(svc.own_stats, db, identity)


@router.get("/admin/resumen")
async def admin_resumen(
    request: Request,
    identity: Identity = Depends(require_super_admin),
    db: Session = Depends(get_db),
):
    await ensure_connected(request)
    resumen = await run_in_threadpool(svc.global_summary, db)
    await ensure_connected(request)
    resumen["porMes"] = await run_in_threadpool(svc.monthly_counts, db)
    return resumen


@router.get("/exportar/csv")
def exportar_csv(
    filters: dict = Depends(_filters),
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
):
    body = svc.export_csv(db, identity, filters)
    return StreamingResponse(
        iter([body]),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": 'attachment; filename="proyecciones.csv"'},
    )


@router.put("/{proyeccion_id}")
def actualizar(
    proyeccion_id: str,
    body: schemas.ProyeccionIn,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
):
    p = svc.update_promise(db, identity, proyeccion_id, body.model_dump(exclude_unset=True))
    return svc.serialize_promise(p)


@router.delete("/{proyeccion_id}")
def eliminar(proyeccion_id: str, identity: Identity = Depends(get_identity), db: Session = Depends(get_db)):
    return {"ok": True, "id": svc.delete_promise(db, identity, proyeccion_id)}


@router.post("/{proyeccion_id}/gestion")
def registrar_gestion(proyeccion_id: str, identity: Identity = Depends(get_identity), db: Session = Depends(get_db)):
    return svc.serialize_promise(svc.register_contact(db, identity, proyeccion_id))


@router.post("/{proyeccion_id}/recalcular")
def recalcular(proyeccion_id: str, identity: Identity = Depends(get_identity), db: Session = Depends(get_db)):
    p = svc.get_promise(db, proyeccion_id)
    ensure_owner_or_elevated(identity, p.empleado_id)
    changed = svc.recompute_state(db, p, actor=identity.username)
    return {"changed": changed, "proyeccion": svc.serialize_promise(p)}


# -------------------------
# Payments
# -------------------------
@router.post("/{proyeccion_id}/informar-pago")
def informar_pago(
    proyeccion_id: str,
    body: schemas.PagoIn,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
):
    p = svc.record_payment(db, identity, proyeccion_id, body.fecha, body.monto)
    return svc.serialize_promise(p)


@router.get("/{proyeccion_id}/pagos-informados")
def pagos_informados(proyeccion_id: str, identity: Identity = Depends(get_identity), db: Session = Depends(get_db)):
    p = svc.get_promise(db, proyeccion_id)
    ensure_owner_or_elevated(identity, p.empleado_id)
    return {
        "importe": p.importe,
        "importePagado": p.importe_pagado or 0.0,
        "pagos": [svc.serialize_payment(x) for x in p.pagos],
    }


@router.patch("/{proyeccion_id}/pagos/limpiar")
def limpiar_pagos(proyeccion_id: str, identity: Identity = Depends(get_identity), db: Session = Depends(get_db)):
    return svc.serialize_promise(svc.clear_payments(db, identity, proyeccion_id))


@router.patch("/{proyeccion_id}/pagos/{pago_id}/erroneo")
def marcar_erroneo(
    proyeccion_id: str,
    pago_id: str,
    body: Optional[schemas.MarcarPagoIn] = None,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
):
    motivo = body.motivo if body else ""
    p = svc.mark_payment_erroneous(db, identity, proyeccion_id, pago_id, True, motivo)
    return svc.serialize_promise(p)


@router.patch("/{proyeccion_id}/pagos/{pago_id}/erroneo/quitar")
def quitar_erroneo(
    proyeccion_id: str,
    pago_id: str,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
):
    p = svc.mark_payment_erroneous(db, identity, proyeccion_id, pago_id, False)
    return svc.serialize_promise(p)


@router.patch("/{proyeccion_id}/observaciones/limpiar")
def limpiar_observaciones(proyeccion_id: str, identity: Identity = Depends(get_identity), db: Session = Depends(get_db)):
    return svc.serialize_promise(svc.clear_observations(db, identity, proyeccion_id))
