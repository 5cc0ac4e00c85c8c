# cobrina/services/proyecciones.py
"""
Persistence side of the promise lifecycle.

The rules live in `cobrina.engine.lifecycle`; this module loads and saves
`Proyeccion` rows around them. Every operation takes an explicit `today` so
date-driven transitions are deterministic under test.
"""
from __future__ import annotations

import csv
import math
import re
from datetime import date, datetime, timezone
from io import StringIO
from typing import Any, Dict, Optional

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import models
from ..auth import Identity, ensure_owner_or_elevated, owner_scope
from ..engine import lifecycle as lc
from ..errors import (
    Conflict,
    DuplicatePayment,
    Forbidden,
    ForbiddenClosed,
    NotFound,
    ValidationFailed,
)
from ..settings import get_settings
from ..utils.fechas import to_date_only
from .events import record_event, record_failure

settings = get_settings()

A = models.ActionEnum

REQUIRED_FIELDS = (
    ("dni", "dni"),
    ("nombre_titular", "nombreTitular"),
    ("importe", "importe"),
    ("estado", "estado"),
    ("concepto", "concepto"),
    ("fecha_promesa", "fechaPromesa"),
    ("fecha_proximo_llamado", "fechaProximoLlamado"),
    ("entidad_id", "entidadId"),
    ("subcesion_id", "subCesionId"),
)

EDITABLE_FIELDS = tuple(k for k, _ in REQUIRED_FIELDS) + ("telefono", "observaciones")

_DNI_RE = re.compile(r"\d+", re.ASCII)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _today(today: Optional[date]) -> date:
    return today or date.today()


def is_dni(raw: str) -> bool:
    return _DNI_RE.fullmatch(raw) is not None


def parse_amount(raw, label: str) -> float:
    try:
        value = float(str(raw).replace(",", ".")) if isinstance(raw, str) else float(raw)
    except (TypeError, ValueError):
        raise ValidationFailed(f"{label} inválido")
    if not math.isfinite(value) or value <= 0:
        raise ValidationFailed(f"{label} debe ser un número mayor a 0")
    return value


def validate_promise_fields(db: Session, data: Dict[str, Any]) -> Dict[str, Any]:
    """Required-field, format and catalog checks shared by create and update."""
    missing = [label for key, label in REQUIRED_FIELDS if data.get(key) in (None, "")]
    if missing:
        raise ValidationFailed(f"Faltan campos obligatorios: {', '.join(missing)}")

    dni_raw = str(data["dni"]).strip()
    if not is_dni(dni_raw):
        raise ValidationFailed("dni inválido")

    fecha_promesa = to_date_only(data["fecha_promesa"])
    if fecha_promesa is None:
        raise ValidationFailed("Fecha de promesa inválida")
    fecha_proximo = to_date_only(data["fecha_proximo_llamado"])
    if fecha_proximo is None:
        raise ValidationFailed("Fecha próximo llamado inválida")

    importe = parse_amount(data["importe"], "Importe")

    estado = str(data["estado"]).strip()
    if estado not in lc.ESTADOS_ABIERTOS:
        raise ValidationFailed(f"Estado inválido: {estado}")
    concepto = str(data["concepto"]).strip()
    if concepto not in lc.CONCEPTOS:
        raise ValidationFailed(f"Concepto inválido: {concepto}")

    if db.get(models.Entidad, data["entidad_id"]) is None:
        raise NotFound("Entidad no encontrada")
    if db.get(models.SubCesion, data["subcesion_id"]) is None:
        raise NotFound("Subcesión no encontrada")

    return {
        "dni": int(dni_raw),
        "nombre_titular": str(data["nombre_titular"]).strip(),
        "importe": importe,
        "estado": estado,
        "concepto": concepto,
        "fecha_promesa": fecha_promesa,
        "fecha_proximo_llamado": fecha_proximo,
        "entidad_id": data["entidad_id"],
        "subcesion_id": data["subcesion_id"],
        "telefono": str(data.get("telefono") or "").strip(),
        "observaciones": str(data.get("observaciones") or ""),
    }


# -------------------------
# Lookups
# -------------------------
def get_promise(db: Session, proyeccion_id: str) -> models.Proyeccion:
    p = db.get(models.Proyeccion, proyeccion_id)
    if p is None:
        raise NotFound("Proyección no encontrada")
    return p


def find_active_by_key(db: Session, dni: int, entidad_id: str, subcesion_id: str, exclude_id: str | None = None):
    q = db.query(models.Proyeccion).filter(
        models.Proyeccion.dni == dni,
        models.Proyeccion.entidad_id == entidad_id,
        models.Proyeccion.subcesion_id == subcesion_id,
        models.Proyeccion.is_activa.is_(True),
    )
    if exclude_id:
        q = q.filter(models.Proyeccion.id != exclude_id)
    return q.first()


def _ensure_open(p: models.Proyeccion) -> None:
    if lc.is_terminal(p.estado, p.is_activa):
        raise ForbiddenClosed("La proyección está cerrada y no admite cambios")


# -------------------------
# State
# -------------------------
def recompute_state(db: Session, p: models.Proyeccion, today: Optional[date] = None, actor: str = "SYSTEM") -> bool:
    """Persist the derived state. Returns True only when something was written."""
    nuevo = lc.derive_state(
        p.estado,
        p.importe,
        p.importe_pagado or 0.0,
        p.fecha_promesa,
        _today(today),
        is_activa=p.is_activa,
    )
    if nuevo == p.estado:
        return False

    anterior = p.estado
    p.estado = nuevo
    p.ultima_modificacion = _now()
    record_event(db, A.RECOMPUTE_STATE, p.id, {"from": anterior, "to": nuevo}, actor=actor, commit=False)
    db.commit()
    return True


def estado_visual(p: models.Proyeccion, today: date) -> str:
    """Live display state for listings; storage is left untouched."""
    if lc.is_terminal(p.estado, p.is_activa) or p.estado in (lc.PAGADO, lc.PAGADO_PARCIAL):
        return p.estado
    return lc.classify_by_date(p.fecha_promesa, today)


# -------------------------
# Create / update / delete
# -------------------------
def create_promise(db: Session, identity: Identity, data: Dict[str, Any], today: Optional[date] = None) -> dict:
    today = _today(today)
    clean = validate_promise_fields(db, data)
    clave = lc.logical_key(clean["dni"], clean["entidad_id"], clean["subcesion_id"])

    cerrada = None
    try:
        prior = find_active_by_key(db, clean["dni"], clean["entidad_id"], clean["subcesion_id"])
        if prior is not None:
            prior.estado = lc.determine_close_state(prior.importe, lc.paid_to_date(prior.pagos))
            prior.is_activa = False
            prior.ultima_modificacion = _now()
            db.flush()
            cerrada = {"id": prior.id, "estado": prior.estado}
            record_event(db, A.CLOSE_PROYECCION, prior.id, {"estado": prior.estado, "clave": clave},
                         actor=identity.username, commit=False)

        nueva = models.Proyeccion(
            **clean,
            fecha_promesa_inicial=clean["fecha_promesa"],
            importe_pagado=0.0,
            is_activa=True,
            id_logico=clave,
            empleado_id=identity.user_id,
            mes=clean["fecha_promesa"].month,
            anio=clean["fecha_promesa"].year,
            creado=_now(),
            ultima_modificacion=_now(),
        )
        # hot recompute before the row exists
        nueva.estado = lc.derive_state(nueva.estado, nueva.importe, 0.0, nueva.fecha_promesa, today)

        db.add(nueva)
        db.flush()
        record_event(db, A.CREATE_PROYECCION, nueva.id,
                     {"clave": clave, "estado": nueva.estado, "importe": nueva.importe},
                     actor=identity.username, commit=False)
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        record_failure(db, "create_promise", exc, "CONFLICT", {"clave": clave})
        raise Conflict("Ya existe una proyección activa para ese DNI, entidad y subcesión")

    db.refresh(nueva)
    return {"proyeccion": nueva, "cerradaAnterior": cerrada}


def update_promise(
    db: Session,
    identity: Identity,
    proyeccion_id: str,
    patch: Dict[str, Any],
    today: Optional[date] = None,
) -> models.Proyeccion:
    p = get_promise(db, proyeccion_id)
    ensure_owner_or_elevated(identity, p.empleado_id)
    _ensure_open(p)

    view = {k: getattr(p, k) for k in EDITABLE_FIELDS}
    view.update({k: v for k, v in patch.items() if k in EDITABLE_FIELDS})
    clean = validate_promise_fields(db, view)

    key_changed = (clean["dni"], clean["entidad_id"], clean["subcesion_id"]) != (p.dni, p.entidad_id, p.subcesion_id)
    if key_changed and find_active_by_key(
        db, clean["dni"], clean["entidad_id"], clean["subcesion_id"], exclude_id=p.id
    ):
        raise Conflict("Ya existe otra proyección activa con ese DNI, entidad y subcesión")

    fecha_cambio = clean["fecha_promesa"] != p.fecha_promesa
    for k, v in clean.items():
        setattr(p, k, v)
    p.id_logico = lc.logical_key(p.dni, p.entidad_id, p.subcesion_id)
    if fecha_cambio:
        p.mes = p.fecha_promesa.month
        p.anio = p.fecha_promesa.year
    p.ultima_modificacion = _now()

    try:
        record_event(db, A.UPDATE_PROYECCION, p.id, {"campos": sorted(patch.keys())},
                     actor=identity.username, commit=False)
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict("Ya existe otra proyección activa con ese DNI, entidad y subcesión")

    recompute_state(db, p, today, actor=identity.username)
    db.refresh(p)
    return p


def delete_promise(db: Session, identity: Identity, proyeccion_id: str) -> str:
    p = get_promise(db, proyeccion_id)
    ensure_owner_or_elevated(identity, p.empleado_id)
    db.delete(p)
    record_event(db, A.DELETE_PROYECCION, proyeccion_id, {"dni": p.dni}, actor=identity.username, commit=False)
    db.commit()
    return proyeccion_id


def register_contact(db: Session, identity: Identity, proyeccion_id: str) -> models.Proyeccion:
    p = get_promise(db, proyeccion_id)
    if p.empleado_id != identity.user_id:
        raise Forbidden("Solo el operador dueño puede registrar gestiones")
    _ensure_open(p)

    p.veces_tocada = (p.veces_tocada or 0) + 1
    p.ultima_gestion = _now()
    record_event(db, A.REGISTRAR_GESTION, p.id, {"vecesTocada": p.veces_tocada},
                 actor=identity.username, commit=False)
    db.commit()
    db.refresh(p)
    return p


def clear_observations(db: Session, identity: Identity, proyeccion_id: str) -> models.Proyeccion:
    p = get_promise(db, proyeccion_id)
    ensure_owner_or_elevated(identity, p.empleado_id)
    _ensure_open(p)

    p.observaciones = ""
    p.ultima_modificacion = _now()
    record_event(db, A.LIMPIAR_OBSERVACIONES, p.id, {}, actor=identity.username, commit=False)
    db.commit()
    db.refresh(p)
    return p


# -------------------------
# Payments
# -------------------------
def _sync_paid(p: models.Proyeccion) -> None:
    p.importe_pagado = lc.paid_to_date(p.pagos)
    p.ultima_modificacion = _now()


def record_payment(
    db: Session,
    identity: Identity,
    proyeccion_id: str,
    fecha_raw,
    monto_raw,
    today: Optional[date] = None,
) -> models.Proyeccion:
    p = get_promise(db, proyeccion_id)
    ensure_owner_or_elevated(identity, p.empleado_id)
    _ensure_open(p)

    fecha = to_date_only(fecha_raw)
    if fecha is None:
        raise ValidationFailed("Fecha de pago inválida")
    monto = parse_amount(monto_raw, "Monto")

    if lc.is_duplicate_payment(p.pagos, fecha, monto):
        raise DuplicatePayment("Ya existe un pago informado con la misma fecha y monto")

    p.pagos.append(models.PagoInformado(fecha=fecha, monto=monto, operador_id=identity.user_id, erroneo=False))
    _sync_paid(p)
    record_event(db, A.INFORMAR_PAGO, p.id, {"fecha": fecha, "monto": monto, "pagado": p.importe_pagado},
                 actor=identity.username, commit=False)
    db.commit()

    recompute_state(db, p, today, actor=identity.username)
    db.refresh(p)
    return p


def mark_payment_erroneous(
    db: Session,
    identity: Identity,
    proyeccion_id: str,
    pago_id: str,
    erroneo: bool,
    motivo: str = "",
    today: Optional[date] = None,
) -> models.Proyeccion:
    p = get_promise(db, proyeccion_id)
    ensure_owner_or_elevated(identity, p.empleado_id)
    _ensure_open(p)

    pago = next((x for x in p.pagos if x.id == pago_id), None)
    if pago is None:
        raise NotFound("Pago no encontrado")

    pago.erroneo = bool(erroneo)
    pago.motivo_error = str(motivo or "").strip() if erroneo else ""
    pago.marcado_por = identity.user_id
    pago.marcado_en = _now()
    _sync_paid(p)
    record_event(db, A.MARCAR_PAGO, p.id,
                 {"pagoId": pago_id, "erroneo": pago.erroneo, "pagado": p.importe_pagado},
                 actor=identity.username, commit=False)
    db.commit()

    recompute_state(db, p, today, actor=identity.username)
    db.refresh(p)
    return p


def clear_payments(db: Session, identity: Identity, proyeccion_id: str, today: Optional[date] = None) -> models.Proyeccion:
    p = get_promise(db, proyeccion_id)
    ensure_owner_or_elevated(identity, p.empleado_id)
    _ensure_open(p)

    if identity.is_elevated:
        removed = len(p.pagos)
        p.pagos.clear()
    else:
        own = [x for x in p.pagos if x.operador_id == identity.user_id]
        removed = len(own)
        for x in own:
            p.pagos.remove(x)

    _sync_paid(p)
    record_event(db, A.LIMPIAR_PAGOS, p.id, {"eliminados": removed, "pagado": p.importe_pagado},
                 actor=identity.username, commit=False)
    db.commit()

    recompute_state(db, p, today, actor=identity.username)
    db.refresh(p)
    return p


# -------------------------
# Listing
# -------------------------
def _filtered_query(db: Session, identity: Identity, f: Dict[str, Any]):
    P = models.Proyeccion
    q = db.query(P)

    owner = owner_scope(identity, bool(f.get("only_mine")))
    if owner is not None:
        q = q.filter(P.empleado_id == owner)
    elif f.get("usuario_id"):
        q = q.filter(P.empleado_id == f["usuario_id"])

    if f.get("estado"):
        q = q.filter(P.estado == f["estado"])
    if f.get("concepto"):
        q = q.filter(P.concepto == f["concepto"])
    if f.get("entidad_id"):
        q = q.filter(P.entidad_id == f["entidad_id"])
    if f.get("subcesion_id"):
        q = q.filter(P.subcesion_id == f["subcesion_id"])
    if f.get("mes"):
        q = q.filter(P.mes == int(f["mes"]))
    if f.get("anio"):
        q = q.filter(P.anio == int(f["anio"]))

    desde = to_date_only(f.get("desde"))
    hasta = to_date_only(f.get("hasta"))
    if desde:
        q = q.filter(P.fecha_promesa >= desde)
    if hasta:
        q = q.filter(P.fecha_promesa <= hasta)

    buscar = str(f.get("buscar") or "").strip()
    if buscar:
        like = f"%{buscar}%"
        conds = [P.nombre_titular.ilike(like), P.concepto.ilike(like), P.estado.ilike(like)]
        if is_dni(buscar):
            conds.append(P.dni == int(buscar))
        q = q.filter(or_(*conds))

    return q


def list_promises(db: Session, identity: Identity, filters: Dict[str, Any], today: Optional[date] = None) -> dict:
    today = _today(today)
    page = max(1, int(filters.get("page") or 1))
    limit = max(1, min(int(filters.get("limit") or 10), settings.MAX_PAGE_PROYECCIONES))
    orden = models.Proyeccion.fecha_promesa.asc() if filters.get("orden") == "asc" else models.Proyeccion.fecha_promesa.desc()

    q = _filtered_query(db, identity, filters)
    total = q.count()
    rows = q.order_by(orden, models.Proyeccion.creado.desc()).offset((page - 1) * limit).limit(limit).all()
    return {"total": total, "resultados": [serialize_promise(p, today) for p in rows]}


def list_own(db: Session, identity: Identity, today: Optional[date] = None) -> list:
    today = _today(today)
    rows = (
        db.query(models.Proyeccion)
        .filter(models.Proyeccion.empleado_id == identity.user_id)
        .order_by(models.Proyeccion.creado.desc())
        .all()
    )
    return [serialize_promise(p, today) for p in rows]


# -------------------------
# Stats
# -------------------------
def own_stats(db: Session, identity: Identity, today: Optional[date] = None) -> dict:
    today = _today(today)
    rows = db.query(models.Proyeccion).filter(models.Proyeccion.empleado_id == identity.user_id).all()

    visuales = [(p, estado_visual(p, today)) for p in rows]
    por_dia: Dict[str, int] = {}
    for p, _ in visuales:
        if p.fecha_promesa:
            k = p.fecha_promesa.isoformat()
            por_dia[k] = por_dia.get(k, 0) + 1

    return {
        "total": len(rows),
        "cumplidas": sum(1 for _, e in visuales if e in (lc.PAGADO, lc.CERRADA_CUMPLIDA)),
        "caidas": sum(1 for _, e in visuales if e == lc.PROMESA_CAIDA),
        "produccion": sum(1 for p, _ in visuales if p.concepto in lc.CONCEPTOS_PRODUCCION),
        "cuota": sum(1 for p, _ in visuales if p.concepto == "Cuota"),
        "porDia": dict(sorted(por_dia.items())),
    }


def global_summary(db: Session) -> dict:
    rows = (
        db.query(models.Proyeccion, models.Empleado.username)
        .outerjoin(models.Empleado, models.Empleado.id == models.Proyeccion.empleado_id)
        .all()
    )

    total_importe = 0.0
    total_pagado = 0.0
    pagadas = 0
    por_usuario: Dict[str, dict] = {}
    for p, username in rows:
        usuario = username or "Desconocido"
        total_importe += float(p.importe or 0)
        total_pagado += float(p.importe_pagado or 0)
        bucket = por_usuario.setdefault(usuario, {"total": 0, "pagadas": 0})
        bucket["total"] += 1
        if p.estado in (lc.PAGADO, lc.CERRADA_CUMPLIDA):
            pagadas += 1
            bucket["pagadas"] += 1

    ranking = sorted(
        (
            {"usuario": u, "total": d["total"], "pagadas": d["pagadas"],
             "porcentaje": round(d["pagadas"] / d["total"] * 100, 1)}
            for u, d in por_usuario.items()
        ),
        key=lambda r: (-r["porcentaje"], r["usuario"]),
    )

    return {
        "total": len(rows),
        "pagadas": pagadas,
        "totalImporte": round(total_importe, 2),
        "totalPagado": round(total_pagado, 2),
        "porUsuario": por_usuario,
        "rankingCumplimiento": ranking,
        "porcentajeGlobal": round(pagadas / len(rows) * 100, 1) if rows else 0.0,
    }


def monthly_counts(db: Session) -> dict:
    rows = (
        db.query(models.Proyeccion.anio, models.Proyeccion.mes, func.count(models.Proyeccion.id))
        .group_by(models.Proyeccion.anio, models.Proyeccion.mes)
        .all()
    )
    return {f"{anio}-{mes:02d}": n for anio, mes, n in sorted(rows)}


# -------------------------
# Serialization / export
# -------------------------
def serialize_payment(x: models.PagoInformado) -> dict:
    return {
        "id": x.id,
        "fecha": x.fecha.isoformat() if x.fecha else None,
        "monto": x.monto,
        "operadorId": x.operador_id,
        "erroneo": bool(x.erroneo),
        "motivoError": x.motivo_error or "",
        "marcadoPor": x.marcado_por,
        "marcadoEn": x.marcado_en.isoformat() if x.marcado_en else None,
    }


def serialize_promise(p: models.Proyeccion, today: Optional[date] = None) -> dict:
    today = _today(today)
    return {
        "id": p.id,
        "dni": p.dni,
        "nombreTitular": p.nombre_titular,
        "importe": p.importe,
        "importePagado": p.importe_pagado or 0.0,
        "concepto": p.concepto,
        "estado": p.estado,
        "estadoVisual": estado_visual(p, today),
        "isActiva": bool(p.is_activa),
        "fechaPromesa": p.fecha_promesa.isoformat() if p.fecha_promesa else None,
        "fechaPromesaInicial": p.fecha_promesa_inicial.isoformat() if p.fecha_promesa_inicial else None,
        "fechaProximoLlamado": p.fecha_proximo_llamado.isoformat() if p.fecha_proximo_llamado else None,
        "entidadId": p.entidad_id,
        "subCesionId": p.subcesion_id,
        "idLogico": p.id_logico,
        "telefono": p.telefono,
        "observaciones": p.observaciones,
        "empleadoId": p.empleado_id,
        "empleado": p.empleado.username if p.empleado else None,
        "mes": p.mes,
        "anio": p.anio,
        "vecesTocada": p.veces_tocada or 0,
        "ultimaGestion": p.ultima_gestion.isoformat() if p.ultima_gestion else None,
        "creado": p.creado.isoformat() if p.creado else None,
        "ultimaModificacion": p.ultima_modificacion.isoformat() if p.ultima_modificacion else None,
        "pagos": [serialize_payment(x) for x in p.pagos],
    }


CSV_COLUMNS = [
    "id", "dni", "nombre_titular", "importe", "importe_pagado", "concepto",
    "estado", "estado_visual", "fecha_promesa", "fecha_proximo_llamado",
    "entidad", "subcesion", "operador", "is_activa", "creado",
]


def export_csv(db: Session, identity: Identity, filters: Dict[str, Any], today: Optional[date] = None) -> str:
    today = _today(today)
    rows = _filtered_query(db, identity, filters).order_by(models.Proyeccion.fecha_promesa.desc()).all()

    entidades = {e.id: e.nombre for e in db.query(models.Entidad).all()}
    subcesiones = {s.id: s.nombre for s in db.query(models.SubCesion).all()}

    buf = StringIO()
    w = csv.writer(buf)
    w.writerow(CSV_COLUMNS)
    for p in rows:
        w.writerow([
            p.id, p.dni, p.nombre_titular, p.importe, p.importe_pagado or 0.0, p.concepto or "",
            p.estado, estado_visual(p, today),
            p.fecha_promesa.isoformat() if p.fecha_promesa else "",
            p.fecha_proximo_llamado.isoformat() if p.fecha_proximo_llamado else "",
            entidades.get(p.entidad_id, ""), subcesiones.get(p.subcesion_id, ""),
            p.empleado.username if p.empleado else "",
            int(bool(p.is_activa)),
            p.creado.isoformat() if p.creado else "",
        ])
    return buf.getvalue()
