# cobrina/routes/colchon.py
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from .. import schemas
from ..abort import ensure_connected
from ..auth import Identity, require_roles, require_super_admin
from ..db import get_db
from ..models import RoleEnum
from ..services import colchon as svc

router = APIRouter(prefix="/colchon", tags=["colchon"])

# admins are left out on purpose
require_colchon = require_roles(
    RoleEnum.SUPER_ADMIN.value, RoleEnum.OPERADOR.value, RoleEnum.OPERADOR_VIP.value
)


def _filters(
    cartera: Optional[str] = None,
    fiduciario: Optional[str] = None,
    estado: Optional[str] = None,
    entidadId: Optional[str] = None,
    subCesionId: Optional[str] = None,
    vencimientoDesde: Optional[int] = None,
    vencimientoHasta: Optional[int] = None,
    buscar: Optional[str] = None,
    usuarioId: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
) -> dict:
    return {
        "cartera": cartera,
        "fiduciario": fiduciario,
        "estado": estado,
        "entidad_id": entidadId,
        "subcesion_id": subCesionId,
        "vencimiento_desde": vencimientoDesde,
        "vencimiento_hasta": vencimientoHasta,
        "buscar": buscar,
        "usuario_id": usuarioId,
        "page": page,
        "limit": limit,
    }


def _csv(body: str, filename: str) -> StreamingResponse:
    return StreamingResponse(
        iter([body]),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# -------------------------
# Fixed paths
# -------------------------
@router.get("/carteras")
def carteras(identity: Identity = Depends(require_colchon), db: Session = Depends(get_db)):
    return svc.carteras_for_select(db)


@router.get("/estadisticas")
async def estadisticas(
    request: Request,
    filters: dict = Depends(_filters),
    identity: Identity = Depends(require_colchon),
    db: Session = Depends(get_db),
):
    await ensure_connected(request)
    return await run_in_threadpool(svc.stats, db, identity, filters)


@router.get("/exportar")
def exportar(filters: dict = Depends(_filters), identity: Identity = Depends(require_colchon), db: Session = Depends(get_db)):
    return _csv(svc.export_csv(db, identity, filters), "colchon.csv")


@router.get("/exportar-pagos")
def exportar_pagos(
    filters: dict = Depends(_filters),
    identity: Identity = Depends(require_colchon),
    db: Session = Depends(get_db),
):
    return _csv(svc.export_payments_csv(db, identity, filters), "colchon_pagos.csv")


@router.get("/informar-pago/pendientes")
def pendientes(identity: Identity = Depends(require_colchon), db: Session = Depends(get_db)):
    return svc.pending_review(db, identity)


@router.put("/gestionar/{cuota_id}")
def gestionar(
    cuota_id: str,
    body: Optional[schemas.GestionCuotaIn] = None,
    identity: Identity = Depends(require_colchon),
    db: Session = Depends(get_db),
):
    observacion = body.observaciones_operador if body else None
    return svc.serialize_cuota(svc.register_contact(db, identity, cuota_id, observacion))


@router.delete("/vaciar")
def vaciar(identity: Identity = Depends(require_super_admin), db: Session = Depends(get_db)):
    return {"ok": True, "eliminadas": svc.delete_all(db, identity)}


# -------------------------
# CRUD
# -------------------------
@router.get("/")
async def listar(
    request: Request,
    filters: dict = Depends(_filters),
    identity: Identity = Depends(require_colchon),
    db: Session = Depends(get_db),
):
    await ensure_connected(request)
    return await run_in_threadpool(svc.list_cuotas, db, identity, filters)


@router.post("/", status_code=201)
def crear(body: schemas.CuotaIn, identity: Identity = Depends(require_colchon), db: Session = Depends(get_db)):
    return svc.serialize_cuota(svc.create_cuota(db, identity, body.model_dump(exclude_unset=True)))


@router.get("/{cuota_id}")
def detalle(cuota_id: str, identity: Identity = Depends(require_colchon), db: Session = Depends(get_db)):
    return svc.serialize_cuota(svc.get_cuota(db, identity, cuota_id))


@router.put("/{cuota_id}")
def editar(
    cuota_id: str,
    body: schemas.CuotaIn,
    identity: Identity = Depends(require_colchon),
    db: Session = Depends(get_db),
):
    return svc.serialize_cuota(svc.update_cuota(db, identity, cuota_id, body.model_dump(exclude_unset=True)))


@router.delete("/{cuota_id}")
def eliminar(cuota_id: str, identity: Identity = Depends(require_colchon), db: Session = Depends(get_db)):
    return {"ok": True, "id": svc.delete_cuota(db, identity, cuota_id)}


@router.put("/{cuota_id}/limpiar")
def limpiar(cuota_id: str, identity: Identity = Depends(require_colchon), db: Session = Depends(get_db)):
    return svc.serialize_cuota(svc.clear_cuota(db, identity, cuota_id))


# -------------------------
# Payments
# -------------------------
@router.post("/{cuota_id}/pagos")
def agregar_pago(
    cuota_id: str,
    body: schemas.PagoIn,
    identity: Identity = Depends(require_super_admin),
    db: Session = Depends(get_db),
):
    return svc.serialize_cuota(svc.add_payment(db, identity, cuota_id, body.fecha, body.monto))


@router.delete("/{cuota_id}/pago/{pago_id}")
def eliminar_pago(
    cuota_id: str,
    pago_id: str,
    identity: Identity = Depends(require_super_admin),
    db: Session = Depends(get_db),
):
    return svc.serialize_cuota(svc.delete_payment(db, identity, cuota_id, pago_id))


@router.post("/{cuota_id}/informar-pago")
def informar_pago(
    cuota_id: str,
    body: schemas.PagoIn,
    identity: Identity = Depends(require_colchon),
    db: Session = Depends(get_db),
):
    return svc.serialize_cuota(svc.inform_payment(db, identity, cuota_id, body.fecha, body.monto))


@router.put("/{cuota_id}/informar-pago/{pago_id}/visto")
def marcar_visto(
    cuota_id: str,
    pago_id: str,
    identity: Identity = Depends(require_colchon),
    db: Session = Depends(get_db),
):
    return svc.serialize_cuota(svc.mark_informed(db, identity, cuota_id, pago_id, visto=True))


@router.put("/{cuota_id}/informar-pago/{pago_id}/erroneo")
def marcar_erroneo(
    cuota_id: str,
    pago_id: str,
    body: Optional[schemas.MarcarInformadoIn] = None,
    identity: Identity = Depends(require_colchon),
    db: Session = Depends(get_db),
):
    body = body or schemas.MarcarInformadoIn()
    c = svc.mark_informed(db, identity, cuota_id, pago_id, erroneo=body.erroneo, motivo=body.motivo or "")
    return svc.serialize_cuota(c)


@router.delete("/{cuota_id}/informar-pago/{pago_id}")
def eliminar_pago_informado(
    cuota_id: str,
    pago_id: str,
    identity: Identity = Depends(require_colchon),
    db: Session = Depends(get_db),
):
    return svc.serialize_cuota(svc.delete_informed(db, identity, cuota_id, pago_id))
