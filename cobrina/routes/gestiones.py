# cobrina/routes/gestiones.py
from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from .. import schemas
from ..abort import ensure_connected
from ..auth import Identity, require_elevated
from ..db import get_db
from ..services import gestiones as svc

router = APIRouter(prefix="/api/reportes-gestiones", tags=["gestiones"])


def _filters(
    desde: Optional[str] = None,
    hasta: Optional[str] = None,
    operador: Optional[str] = None,
    entidad: Optional[str] = None,
    tipoContacto: Optional[str] = None,
    estadoCuenta: Optional[str] = None,
    dni: Optional[str] = None,
) -> dict:
    return {
        "desde": desde,
        "hasta": hasta,
        "operador": operador,
        "entidad": entidad,
        "tipoContacto": tipoContacto,
        "estadoCuenta": estadoCuenta,
        "dni": dni,
    }


@router.post("/cargar")
def cargar(body: schemas.CargarGestionesIn, identity: Identity = Depends(require_elevated), db: Session = Depends(get_db)):
    return svc.load_rows(db, identity, body.filas, body.fuente_archivo, body.reemplazar_todo)


@router.get("/listar")
async def listar(
    request: Request,
    filters: dict = Depends(_filters),
    page: Optional[str] = None,
    limit: Optional[str] = None,
    sortKey: Optional[str] = None,
    sortDir: Optional[str] = None,
    identity: Identity = Depends(require_elevated),
    db: Session = Depends(get_db),
):
    await ensure_connected(request)
    query = {**filters, "page": page, "limit": limit, "sortKey": sortKey, "sortDir": sortDir}
    return await run_in_threadpool(svc.list_rows, db, query)


@router.delete("/limpiar")
def limpiar(
    body: Optional[schemas.LimpiarGestionesIn] = None,
    identity: Identity = Depends(require_elevated),
    db: Session = Depends(get_db),
):
    filtros = body.filtros if body else {}
    return {"ok": True, "borrados": svc.delete_rows(db, identity, filtros)}


@router.get("/catalogos")
async def catalogos(
    request: Request,
    desde: Optional[str] = None,
    hasta: Optional[str] = None,
    identity: Identity = Depends(require_elevated),
    db: Session = Depends(get_db),
):
    await ensure_connected(request)
    return await run_in_threadpool(svc.catalogs, db, {"desde": desde, "hasta": hasta})


@router.get("/analytics/resumen")
async def analytics_resumen(
    request: Request,
    filters: dict = Depends(_filters),
    identity: Identity = Depends(require_elevated),
    db: Session = Depends(get_db),
):
    await ensure_connected(request)
    return await run_in_threadpool(svc.cached_summary, db, filters)


@router.get("/analytics/resumen-dia")
async def analytics_resumen_dia(
    request: Request,
    fecha: Optional[str] = None,
    operador: Optional[str] = None,
    entidad: Optional[str] = None,
    tipoContacto: Optional[str] = None,
    estadoCuenta: Optional[str] = None,
    identity: Identity = Depends(require_elevated),
    db: Session = Depends(get_db),
):
    await ensure_connected(request)
    return await run_in_threadpool(svc.day_summary, db, {
        "fecha": fecha, "operador": operador, "entidad": entidad,
        "tipoContacto": tipoContacto, "estadoCuenta": estadoCuenta,
    })


@router.get("/analytics/ultima-actualizacion")
def ultima_actualizacion(identity: Identity = Depends(require_elevated), db: Session = Depends(get_db)):
    return svc.last_update(db)
