# cobrina/services/colchon.py
"""
Installment tracking ("colchón").

Each `Cuota` is a monthly installment an operator follows up. Operators
report payments (`PagoCuotaInformado`), the back office reviews them
(`visto` / `erroneo`) and books the confirmed ones as `PagoCuota`.
Admins never reach this module; super-admins see everything and operators
only their own cuotas.
"""
from __future__ import annotations

import csv
import math
from datetime import datetime, timezone
from io import StringIO
from typing import Any, Dict, Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import models
from ..auth import Identity
from ..engine import cuotas as cu
from ..engine import lifecycle as lc
from ..errors import Conflict, DuplicatePayment, Forbidden, NotFound, ValidationFailed
from ..settings import get_settings
from ..utils.fechas import to_date_only
from .events import record_event, record_failure
from .proyecciones import is_dni, parse_amount

settings = get_settings()

A = models.ActionEnum

REQUIRED_FIELDS = (
    ("cartera", "cartera"),
    ("dni", "dni"),
    ("nombre", "nombre"),
    ("importe_cuota", "importeCuota"),
    ("vencimiento", "vencimiento"),
    ("entidad_id", "entidadId"),
    ("subcesion_id", "subCesionId"),
)

TEXT_FIELDS = ("estado_original", "turno", "fiduciario", "gestor", "telefono", "observaciones", "observaciones_operador")

EDITABLE_FIELDS = tuple(k for k, _ in REQUIRED_FIELDS) + (
    "estado", "cuota_numero", "saldo_pendiente", "empleado_id",
) + TEXT_FIELDS


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _ensure_owner_or_super(identity: Identity, owner_id: str | None) -> None:
    if identity.is_super_admin:
        return
    if owner_id != identity.user_id:
        raise Forbidden("No autorizado")


def _parse_int(raw, label: str) -> int:
    try:
        value = float(str(raw).strip())
    except (TypeError, ValueError):
        raise ValidationFailed(f"{label} inválido")
    if not math.isfinite(value) or value != int(value):
        raise ValidationFailed(f"{label} inválido")
    return int(value)


def _parse_saldo(raw) -> float:
    if raw in (None, ""):
        return 0.0
    try:
        value = float(str(raw).replace(",", ".")) if isinstance(raw, str) else float(raw)
    except (TypeError, ValueError):
        raise ValidationFailed("Saldo pendiente inválido")
    if not math.isfinite(value) or value < 0:
        raise ValidationFailed("Saldo pendiente inválido")
    return value


def validate_cuota_fields(db: Session, identity: Identity, data: Dict[str, Any]) -> Dict[str, Any]:
    missing = [label for key, label in REQUIRED_FIELDS if data.get(key) in (None, "")]
    if missing:
        raise ValidationFailed(f"Faltan campos obligatorios: {', '.join(missing)}")

    dni_raw = str(data["dni"]).strip()
    if not is_dni(dni_raw):
        raise ValidationFailed("dni inválido")

    vencimiento = _parse_int(data["vencimiento"], "Vencimiento")
    if not cu.is_valid_vencimiento(vencimiento):
        raise ValidationFailed("El vencimiento debe ser un día entre 1 y 31")

    cuota_numero = None
    if data.get("cuota_numero") not in (None, ""):
        cuota_numero = _parse_int(data["cuota_numero"], "Número de cuota")
        if cuota_numero < 0:
            raise ValidationFailed("Número de cuota inválido")

    estado = str(data.get("estado") or cu.A_CUOTA).strip()
    if estado not in cu.ESTADOS_CUOTA:
        raise ValidationFailed(f"Estado inválido: {estado}")

    cartera = str(data["cartera"]).strip()
    if db.query(models.Cartera).filter(models.Cartera.nombre == cartera).first() is None:
        raise NotFound("Cartera no encontrada")
    if db.get(models.Entidad, data["entidad_id"]) is None:
        raise NotFound("Entidad no encontrada")
    if db.get(models.SubCesion, data["subcesion_id"]) is None:
        raise NotFound("Subcesión no encontrada")

    clean = {
        "cartera": cartera,
        "dni": int(dni_raw),
        "nombre": str(data["nombre"]).strip(),
        "importe_cuota": parse_amount(data["importe_cuota"], "Importe de cuota"),
        "saldo_pendiente": _parse_saldo(data.get("saldo_pendiente")),
        "vencimiento": vencimiento,
        "cuota_numero": cuota_numero,
        "estado": estado,
        "entidad_id": data["entidad_id"],
        "subcesion_id": data["subcesion_id"],
    }
    for k in TEXT_FIELDS:
        clean[k] = str(data.get(k) or "").strip()

    # only super-admins assign cuotas to someone else
    empleado_id = data.get("empleado_id") or identity.user_id
    if empleado_id != identity.user_id:
        if not identity.is_super_admin:
            raise Forbidden("Solo un super-admin puede asignar cuotas a otro operador")
        emp = db.get(models.Empleado, empleado_id)
        if emp is None or not emp.is_active:
            raise NotFound("Operador no encontrado o inactivo")
    clean["empleado_id"] = empleado_id
    return clean


# -------------------------
# Lookups
# -------------------------
def get_cuota(db: Session, identity: Identity, cuota_id: str) -> models.Cuota:
    c = db.get(models.Cuota, cuota_id)
    if c is None:
        raise NotFound("Cuota no encontrada")
    _ensure_owner_or_super(identity, c.empleado_id)
    return c


def _key_taken(db: Session, clave: str, exclude_id: str | None = None) -> bool:
    q = db.query(models.Cuota.id).filter(models.Cuota.id_cuota_logico == clave)
    if exclude_id:
        q = q.filter(models.Cuota.id != exclude_id)
    return q.first() is not None


# -------------------------
# Create / update / delete
# -------------------------
def create_cuota(db: Session, identity: Identity, data: Dict[str, Any]) -> models.Cuota:
    clean = validate_cuota_fields(db, identity, data)
    clave = cu.cuota_key(clean["dni"], clean["entidad_id"], clean["subcesion_id"], clean["cuota_numero"])
    if _key_taken(db, clave):
        raise Conflict("Ya existe esa cuota para el DNI, entidad y subcesión")

    nueva = models.Cuota(**clean, id_cuota_logico=clave, creado=_now(), ultima_modificacion=_now())
    try:
        db.add(nueva)
        db.flush()
        record_event(db, A.CREATE_CUOTA, nueva.id, {"clave": clave, "importe": nueva.importe_cuota},
                     actor=identity.username, commit=False)
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        record_failure(db, "create_cuota", exc, "CONFLICT", {"clave": clave})
        raise Conflict("Ya existe esa cuota para el DNI, entidad y subcesión")

    db.refresh(nueva)
    return nueva


def update_cuota(db: Session, identity: Identity, cuota_id: str, patch: Dict[str, Any]) -> models.Cuota:
    c = get_cuota(db, identity, cuota_id)

    view = {k: getattr(c, k) for k in EDITABLE_FIELDS}
    view.update({k: v for k, v in patch.items() if k in EDITABLE_FIELDS})
    clean = validate_cuota_fields(db, identity, view)

    clave = cu.cuota_key(clean["dni"], clean["entidad_id"], clean["subcesion_id"], clean["cuota_numero"])
    if clave != c.id_cuota_logico and _key_taken(db, clave, exclude_id=c.id):
        raise Conflict("Ya existe esa cuota para el DNI, entidad y subcesión")

    for k, v in clean.items():
        setattr(c, k, v)
    c.id_cuota_logico = clave
    c.ultima_modificacion = _now()

    try:
        record_event(db, A.UPDATE_CUOTA, c.id, {"campos": sorted(patch.keys())},
                     actor=identity.username, commit=False)
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict("Ya existe esa cuota para el DNI, entidad y subcesión")

    db.refresh(c)
    return c


def delete_cuota(db: Session, identity: Identity, cuota_id: str) -> str:
    c = get_cuota(db, identity, cuota_id)
    db.delete(c)
    record_event(db, A.DELETE_CUOTA, cuota_id, {"dni": c.dni}, actor=identity.username, commit=False)
    db.commit()
    return cuota_id


def delete_all(db: Session, identity: Identity) -> int:
    cuotas = db.query(models.Cuota).all()
    for c in cuotas:
        db.delete(c)
    record_event(db, A.VACIAR_COLCHON, None, {"eliminadas": len(cuotas)}, actor=identity.username, commit=False)
    db.commit()
    return len(cuotas)


def register_contact(db: Session, identity: Identity, cuota_id: str, observacion: Optional[str] = None) -> models.Cuota:
    c = get_cuota(db, identity, cuota_id)
    c.veces_tocada = (c.veces_tocada or 0) + 1
    c.ultima_gestion = _now()
    c.usuario_ultimo_tocado = identity.user_id
    if observacion is not None:
        c.observaciones_operador = observacion.strip()
    record_event(db, A.GESTIONAR_CUOTA, c.id, {"vecesTocada": c.veces_tocada},
                 actor=identity.username, commit=False)
    db.commit()
    db.refresh(c)
    return c


def clear_cuota(db: Session, identity: Identity, cuota_id: str) -> models.Cuota:
    """Drop reported payments (operators only their own) and the operator notes."""
    c = get_cuota(db, identity, cuota_id)

    if identity.is_super_admin:
        removed = len(c.pagos_informados)
        c.pagos_informados.clear()
    else:
        own = [x for x in c.pagos_informados if x.operador_id == identity.user_id]
        removed = len(own)
        for x in own:
            c.pagos_informados.remove(x)

    c.observaciones_operador = ""
    c.ultima_modificacion = _now()
    record_event(db, A.LIMPIAR_CUOTA, c.id, {"eliminados": removed}, actor=identity.username, commit=False)
    db.commit()
    db.refresh(c)
    return c


# -------------------------
# Back-office payments
# -------------------------
def add_payment(db: Session, identity: Identity, cuota_id: str, fecha_raw, monto_raw) -> models.Cuota:
    c = get_cuota(db, identity, cuota_id)
    fecha = to_date_only(fecha_raw)
    if fecha is None:
        raise ValidationFailed("Fecha de pago inválida")
    monto = parse_amount(monto_raw, "Monto")

    c.pagos.append(models.PagoCuota(fecha=fecha, monto=monto, registrado_por=identity.user_id))
    c.ultima_modificacion = _now()
    record_event(db, A.PAGO_CUOTA, c.id, {"fecha": fecha, "monto": monto}, actor=identity.username, commit=False)
    db.commit()
    db.refresh(c)
    return c


def delete_payment(db: Session, identity: Identity, cuota_id: str, pago_id: str) -> models.Cuota:
    c = get_cuota(db, identity, cuota_id)
    pago = next((x for x in c.pagos if x.id == pago_id), None)
    if pago is None:
        raise NotFound("Pago no encontrado")

    c.pagos.remove(pago)
    c.ultima_modificacion = _now()
    record_event(db, A.ELIMINAR_PAGO_CUOTA, c.id, {"pagoId": pago_id, "monto": pago.monto},
                 actor=identity.username, commit=False)
    db.commit()
    db.refresh(c)
    return c


# -------------------------
# Reported payments
# -------------------------
def _find_informado(c: models.Cuota, pago_id: str) -> models.PagoCuotaInformado:
    pago = next((x for x in c.pagos_informados if x.id == pago_id), None)
    if pago is None:
        raise NotFound("Pago informado no encontrado")
    return pago


def inform_payment(db: Session, identity: Identity, cuota_id: str, fecha_raw, monto_raw) -> models.Cuota:
    c = get_cuota(db, identity, cuota_id)
    fecha = to_date_only(fecha_raw)
    if fecha is None:
        raise ValidationFailed("Fecha de pago inválida")
    monto = parse_amount(monto_raw, "Monto")

    if lc.is_duplicate_payment(c.pagos_informados, fecha, monto):
        raise DuplicatePayment("Ya existe un pago informado con la misma fecha y monto")

    c.pagos_informados.append(models.PagoCuotaInformado(
        fecha=fecha, monto=monto, operador_id=identity.user_id, visto=False, erroneo=False,
    ))
    c.ultima_modificacion = _now()
    record_event(db, A.INFORMAR_PAGO_CUOTA, c.id, {"fecha": fecha, "monto": monto},
                 actor=identity.username, commit=False)
    db.commit()
    db.refresh(c)
    return c


def mark_informed(
    db: Session,
    identity: Identity,
    cuota_id: str,
    pago_id: str,
    visto: Optional[bool] = None,
    erroneo: Optional[bool] = None,
    motivo: str = "",
) -> models.Cuota:
    c = get_cuota(db, identity, cuota_id)
    pago = _find_informado(c, pago_id)

    if visto is not None:
        pago.visto = bool(visto)
    if erroneo is not None:
        pago.erroneo = bool(erroneo)
        pago.motivo_error = str(motivo or "").strip() if erroneo else ""
    pago.marcado_por = identity.user_id
    pago.marcado_en = _now()
    c.ultima_modificacion = _now()

    record_event(db, A.MARCAR_PAGO_CUOTA, c.id,
                 {"pagoId": pago_id, "visto": pago.visto, "erroneo": pago.erroneo},
                 actor=identity.username, commit=False)
    db.commit()
    db.refresh(c)
    return c


def delete_informed(db: Session, identity: Identity, cuota_id: str, pago_id: str) -> models.Cuota:
    c = get_cuota(db, identity, cuota_id)
    pago = _find_informado(c, pago_id)
    if not identity.is_super_admin and pago.operador_id != identity.user_id:
        raise Forbidden("Solo podés eliminar tus propios pagos informados")

    c.pagos_informados.remove(pago)
    c.ultima_modificacion = _now()
    record_event(db, A.ELIMINAR_PAGO_INFORMADO_CUOTA, c.id, {"pagoId": pago_id},
                 actor=identity.username, commit=False)
    db.commit()
    db.refresh(c)
    return c


def pending_review(db: Session, identity: Identity) -> list:
    """Reported payments nobody has reviewed yet, oldest first."""
    PI = models.PagoCuotaInformado
    q = (
        db.query(PI, models.Cuota)
        .join(models.Cuota, models.Cuota.id == PI.cuota_id)
        .filter(PI.visto.is_(False), PI.erroneo.is_(False))
    )
    if not identity.is_super_admin:
        q = q.filter(models.Cuota.empleado_id == identity.user_id)

    out = []
    for pago, c in q.order_by(PI.fecha.asc(), PI.created_at.asc()).all():
        out.append({
            "cuotaId": c.id,
            "dni": c.dni,
            "nombre": c.nombre,
            "cartera": c.cartera,
            "pago": serialize_informed(pago),
        })
    return out


# -------------------------
# Listing / stats
# -------------------------
def _filtered_query(db: Session, identity: Identity, f: Dict[str, Any]):
    C = models.Cuota
    q = db.query(C)

    if not identity.is_super_admin:
        q = q.filter(C.empleado_id == identity.user_id)
    elif f.get("usuario_id"):
        q = q.filter(C.empleado_id == f["usuario_id"])

    for key in ("cartera", "fiduciario", "estado", "entidad_id", "subcesion_id"):
        if f.get(key):
            q = q.filter(getattr(C, key) == f[key])

    if f.get("vencimiento_desde") not in (None, ""):
        q = q.filter(C.vencimiento >= _parse_int(f["vencimiento_desde"], "Vencimiento desde"))
    if f.get("vencimiento_hasta") not in (None, ""):
        q = q.filter(C.vencimiento <= _parse_int(f["vencimiento_hasta"], "Vencimiento hasta"))

    buscar = str(f.get("buscar") or "").strip()
    if buscar:
        like = f"%{buscar}%"
        conds = [C.nombre.ilike(like), C.observaciones.ilike(like), C.fiduciario.ilike(like)]
        if is_dni(buscar):
            conds.append(C.dni == int(buscar))
        q = q.filter(or_(*conds))

    return q


def list_cuotas(db: Session, identity: Identity, filters: Dict[str, Any]) -> dict:
    page = max(1, int(filters.get("page") or 1))
    limit = max(1, min(int(filters.get("limit") or 10), settings.MAX_PAGE_COLCHON))

    q = _filtered_query(db, identity, filters)
    total = q.count()
    rows = (
        q.order_by(models.Cuota.vencimiento.asc(), models.Cuota.nombre.asc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {"total": total, "cuotas": [serialize_cuota(c) for c in rows]}


def stats(db: Session, identity: Identity, filters: Dict[str, Any]) -> dict:
    rows = _filtered_query(db, identity, filters).all()

    por_estado = {e: 0 for e in cu.ESTADOS_CUOTA}
    por_cartera: Dict[str, dict] = {}
    importe = saldo = pagado = informado = 0.0
    pendientes = erroneos = 0
    for c in rows:
        por_estado[c.estado] = por_estado.get(c.estado, 0) + 1
        importe += float(c.importe_cuota or 0)
        saldo += float(c.saldo_pendiente or 0)
        pagado += cu.total_pagado(c.pagos)
        informado += cu.total_informado(c.pagos_informados)
        pendientes += len(cu.pendientes_de_revision(c.pagos_informados))
        erroneos += sum(1 for p in c.pagos_informados if p.erroneo)

        bucket = por_cartera.setdefault(c.cartera or "Sin cartera", {"cuotas": 0, "importe": 0.0, "pagado": 0.0})
        bucket["cuotas"] += 1
        bucket["importe"] = round(bucket["importe"] + float(c.importe_cuota or 0), 2)
        bucket["pagado"] = round(bucket["pagado"] + cu.total_pagado(c.pagos), 2)

    return {
        "total": len(rows),
        "porEstado": por_estado,
        "porCartera": dict(sorted(por_cartera.items())),
        "importeTotal": round(importe, 2),
        "saldoPendiente": round(saldo, 2),
        "totalPagado": round(pagado, 2),
        "totalInformado": round(informado, 2),
        "informadosPendientes": pendientes,
        "informadosErroneos": erroneos,
        "porcentajeCobrado": round(pagado / importe * 100, 1) if importe else 0.0,
    }


def carteras_for_select(db: Session) -> list:
    return [{"id": c.id, "nombre": c.nombre} for c in db.query(models.Cartera).order_by(models.Cartera.nombre).all()]


# -------------------------
# Serialization / export
# -------------------------
def serialize_payment(x: models.PagoCuota) -> dict:
    return {
        "id": x.id,
        "fecha": x.fecha.isoformat() if x.fecha else None,
        "monto": x.monto,
        "registradoPor": x.registrado_por,
    }


def serialize_informed(x: models.PagoCuotaInformado) -> dict:
    return {
        "id": x.id,
        "fecha": x.fecha.isoformat() if x.fecha else None,
        "monto": x.monto,
        "operadorId": x.operador_id,
        "visto": bool(x.visto),
        "erroneo": bool(x.erroneo),
        "motivoError": x.motivo_error or "",
        "marcadoPor": x.marcado_por,
        "marcadoEn": x.marcado_en.isoformat() if x.marcado_en else None,
    }


def serialize_cuota(c: models.Cuota) -> dict:
    return {
        "id": c.id,
        "estado": c.estado,
        "estadoOriginal": c.estado_original,
        "dni": c.dni,
        "nombre": c.nombre,
        "cartera": c.cartera,
        "entidadId": c.entidad_id,
        "subCesionId": c.subcesion_id,
        "idCuotaLogico": c.id_cuota_logico,
        "empleadoId": c.empleado_id,
        "empleado": c.empleado.username if c.empleado else None,
        "turno": c.turno,
        "vencimiento": c.vencimiento,
        "cuotaNumero": c.cuota_numero,
        "importeCuota": c.importe_cuota,
        "saldoPendiente": c.saldo_pendiente,
        "totalPagado": cu.total_pagado(c.pagos),
        "totalInformado": cu.total_informado(c.pagos_informados),
        "pagos": [serialize_payment(x) for x in c.pagos],
        "pagosInformados": [serialize_informed(x) for x in c.pagos_informados],
        "observaciones": c.observaciones,
        "observacionesOperador": c.observaciones_operador,
        "fiduciario": c.fiduciario,
        "gestor": c.gestor,
        "telefono": c.telefono,
        "vecesTocada": c.veces_tocada or 0,
        "ultimaGestion": c.ultima_gestion.isoformat() if c.ultima_gestion else None,
        "usuarioUltimoTocado": c.usuario_ultimo_tocado,
        "creado": c.creado.isoformat() if c.creado else None,
        "ultimaModificacion": c.ultima_modificacion.isoformat() if c.ultima_modificacion else None,
    }


CSV_COLUMNS = [
    "dni", "nombre", "turno", "cartera", "estado", "importe_cuota", "saldo_pendiente",
    "vencimiento", "cuota_numero", "entidad", "operador", "total_pagado",
]

PAGOS_CSV_COLUMNS = ["dni", "nombre", "cartera", "tipo", "fecha", "monto", "visto", "erroneo", "motivo_error"]


def _names(db: Session) -> Dict[str, str]:
    return {e.id: e.nombre for e in db.query(models.Entidad).all()}


def export_csv(db: Session, identity: Identity, filters: Dict[str, Any]) -> str:
    rows = _filtered_query(db, identity, filters).order_by(models.Cuota.vencimiento.asc()).all()
    entidades = _names(db)

    buf = StringIO()
    w = csv.writer(buf)
    w.writerow(CSV_COLUMNS)
    for c in rows:
        w.writerow([
            c.dni, c.nombre, c.turno, c.cartera, c.estado, c.importe_cuota, c.saldo_pendiente,
            c.vencimiento, "" if c.cuota_numero is None else c.cuota_numero,
            entidades.get(c.entidad_id, ""),
            c.empleado.username if c.empleado else "",
            cu.total_pagado(c.pagos),
        ])
    return buf.getvalue()


def export_payments_csv(db: Session, identity: Identity, filters: Dict[str, Any]) -> str:
    rows = _filtered_query(db, identity, filters).order_by(models.Cuota.nombre.asc()).all()

    buf = StringIO()
    w = csv.writer(buf)
    w.writerow(PAGOS_CSV_COLUMNS)
    for c in rows:
        for p in c.pagos:
            w.writerow([c.dni, c.nombre, c.cartera, "real", p.fecha.isoformat(), p.monto, "", "", ""])
        for p in c.pagos_informados:
            w.writerow([
                c.dni, c.nombre, c.cartera, "informado", p.fecha.isoformat(), p.monto,
                int(bool(p.visto)), int(bool(p.erroneo)), p.motivo_error or "",
            ])
    return buf.getvalue()
