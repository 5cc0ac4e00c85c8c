# cobrina/services/gestiones.py
from __future__ import annotations

import re
from typing import Any, Dict, List

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import models
from ..auth import Identity
from ..cache import TTLCache, filter_key
from ..errors import ValidationFailed
from ..settings import get_settings
from ..utils.emails import extraer_emails
from ..utils.fechas import hora_a_segundos, normalizar_hora, to_date_only
from .events import record_event

settings = get_settings()

A = models.ActionEnum
G = models.ReporteGestion

summary_cache = TTLCache(settings.ANALYTICS_CACHE_TTL_SECONDS)

# spreadsheet header -> camelCase key
COLUMNAS = {
    "dni": ("DNI", "dni"),
    "nombre_deudor": ("NOMBRE DEUDOR", "nombreDeudor"),
    "fecha": ("FECHA", "fecha"),
    "hora": ("HORA", "hora"),
    "usuario": ("USUARIO", "usuario"),
    "tipo_contacto": ("TIPO CONTACTO", "tipoContacto"),
    "resultado_gestion": ("RESULTADO GESTION", "resultadoGestion"),
    "estado_cuenta": ("ESTADO DE LA CUENTA", "estadoCuenta"),
    "tel_mail_marcado": ("TEL-MAIL MARCADO", "telMailMarcado"),
    "observacion_gestion": ("OBSERVACION GESTION", "observacionGestion", "observacion"),
    "entidad": ("ENTIDAD", "entidad"),
}

SORTABLE = {
    "dni": G.dni,
    "nombreDeudor": G.nombre_deudor,
    "fecha": G.fecha,
    "hora": G.hora,
    "usuario": G.usuario,
    "tipoContacto": G.tipo_contacto,
    "resultadoGestion": G.resultado_gestion,
    "estadoCuenta": G.estado_cuenta,
    "telMailMarcado": G.tel_mail_marcado,
    "observacionGestion": G.observacion_gestion,
    "entidad": G.entidad,
}

FILTER_KEYS = ("desde", "hasta", "operador", "entidad", "tipoContacto", "estadoCuenta", "dni")


def _cell(row: Dict[str, Any], field: str) -> str:
    for key in COLUMNAS[field]:
        v = row.get(key)
        if v is not None:
            return str(v).strip()
    return ""


def parse_dni_list(raw) -> List[str]:
    """'123, 456  789' -> ['123', '456', '789'] (digits only)."""
    if not raw:
        return []
    parts = re.split(r"[\s,;]+", str(raw))
    return [d for d in (re.sub(r"\D", "", p) for p in parts) if d]


# -------------------------
# Load
# -------------------------
def load_rows(
    db: Session,
    identity: Identity,
    filas: List[Dict[str, Any]],
    fuente_archivo: str = "",
    reemplazar_todo: bool = False,
) -> dict:
    if not filas:
        raise ValidationFailed("No hay filas para cargar.")

    if reemplazar_todo:
        db.query(G).delete(synchronize_session=False)
        db.commit()

    usuarios = {
        u.lower()
        for (u,) in db.query(models.Empleado.username).filter(models.Empleado.is_active.is_(True))
    }
    entidades = {(n or "").upper() for (n,) in db.query(models.Entidad.nombre)}

    errores: List[dict] = []
    seen: set = set()
    docs: List[tuple] = []

    for idx, f in enumerate(filas):
        fila = idx + 2  # header is row 1

        dni = re.sub(r"\D", "", _cell(f, "dni"))
        fecha_str = _cell(f, "fecha")
        usuario_raw = _cell(f, "usuario")
        entidad_raw = _cell(f, "entidad")

        if not dni or not fecha_str or not usuario_raw or not entidad_raw:
            errores.append({"fila": fila, "motivo": "Faltan campos obligatorios (DNI, FECHA, USUARIO o ENTIDAD)"})
            continue

        fecha = to_date_only(fecha_str)
        if fecha is None:
            errores.append({
                "fila": fila,
                "motivo": f"Fecha invalida o no soportada ({fecha_str}). "
                          "Use dd/mm/yyyy, dd-mm-yyyy, yyyy-mm-dd o serial Excel.",
            })
            continue

        usuario = usuario_raw.lower()
        entidad = entidad_raw.upper()[:120]

        if usuario not in usuarios:
            errores.append({"fila": fila, "motivo": f'Usuario "{usuario_raw}" no existe como username activo.'})
            continue
        if entidad not in entidades:
            errores.append({"fila": fila, "motivo": f'Entidad "{entidad_raw}" no existe.'})
            continue

        hora = normalizar_hora(_cell(f, "hora"))
        tipo_contacto = _cell(f, "tipo_contacto")
        resultado = _cell(f, "resultado_gestion")
        estado_cuenta = _cell(f, "estado_cuenta")

        key = (dni, fecha, hora, usuario, tipo_contacto, resultado, estado_cuenta, entidad)
        if key in seen:
            errores.append({"fila": fila, "motivo": "Duplicado dentro del archivo"})
            continue
        seen.add(key)

        tel_mail = _cell(f, "tel_mail_marcado")
        docs.append((fila, dict(
            dni=dni,
            nombre_deudor=_cell(f, "nombre_deudor"),
            fecha=fecha,
            hora=hora,
            usuario=usuario,
            tipo_contacto=tipo_contacto,
            resultado_gestion=resultado,
            estado_cuenta=estado_cuenta,
            tel_mail_marcado=tel_mail[:1000],
            observacion_gestion=_cell(f, "observacion_gestion")[:3000],
            entidad=entidad,
            mails_detectados=extraer_emails(tel_mail),
            fuente_archivo=str(fuente_archivo or "")[:260],
            propietario=identity.user_id,
        )))

    insertados = 0
    duplicados_bd = 0
    for fila, values in docs:
        db.add(G(**values))
        try:
            db.commit()
            insertados += 1
        except IntegrityError:
            db.rollback()
            duplicados_bd += 1
            errores.append({"fila": fila, "motivo": "Gestion duplicada en BD"})

    summary_cache.clear()
    record_event(db, A.CARGAR_GESTIONES, None,
                 {"insertados": insertados, "duplicadosEnBD": duplicados_bd,
                  "errores": len(errores), "fuente": fuente_archivo, "reemplazarTodo": reemplazar_todo},
                 actor=identity.username)

    return {
        "ok": True,
        "insertados": insertados,
        "duplicadosEnBD": duplicados_bd,
        "totalProcesados": len(filas),
        "errores": sorted(errores, key=lambda e: e["fila"]),
    }


# -------------------------
# Queries
# -------------------------
def _ieq(col, value):
    return func.lower(col) == str(value).strip().lower()


def filtered_query(db: Session, f: Dict[str, Any]):
    q = db.query(G).filter(G.borrado.is_(False))

    desde = to_date_only(f.get("desde")) if f.get("desde") else None
    hasta = to_date_only(f.get("hasta")) if f.get("hasta") else None
    if desde:
        q = q.filter(G.fecha >= desde)
    if hasta:
        q = q.filter(G.fecha <= hasta)

    dnis = parse_dni_list(f.get("dni"))
    if len(dnis) == 1:
        q = q.filter(G.dni == dnis[0])
    elif dnis:
        q = q.filter(G.dni.in_(dnis))

    if f.get("operador"):
        q = q.filter(_ieq(G.usuario, f["operador"]))
    if f.get("entidad"):
        q = q.filter(_ieq(G.entidad, f["entidad"]))
    if f.get("tipoContacto"):
        q = q.filter(_ieq(G.tipo_contacto, f["tipoContacto"]))
    if f.get("estadoCuenta"):
        q = q.filter(_ieq(G.estado_cuenta, f["estadoCuenta"]))
    return q


def list_rows(db: Session, f: Dict[str, Any]) -> dict:
    try:
        page = max(1, int(f.get("page") or 1))
    except (TypeError, ValueError):
        page = 1
    try:
        limit = min(settings.MAX_PAGE_GESTIONES, max(1, int(f.get("limit") or 200)))
    except (TypeError, ValueError):
        limit = 200

    sort_key = f.get("sortKey") if f.get("sortKey") in SORTABLE else "fecha"
    asc = str(f.get("sortDir") or "").lower() == "asc"

    def _dir(col):
        return col.asc() if asc else col.desc()

    if sort_key == "fecha":
        order = [_dir(G.fecha), _dir(G.hora), G.id.asc()]
    elif sort_key == "hora":
        order = [_dir(G.hora), _dir(G.fecha), G.id.asc()]
    else:
        order = [_dir(SORTABLE[sort_key]), G.fecha.desc(), G.hora.desc(), G.id.asc()]

    q = filtered_query(db, f)
    total = q.count()
    rows = q.order_by(*order).offset((page - 1) * limit).limit(limit).all()
    return {
        "ok": True,
        "total": total,
        "page": page,
        "pages": max(1, -(-total // limit)),
        "items": [serialize_row(r) for r in rows],
    }


def delete_rows(db: Session, identity: Identity, f: Dict[str, Any]) -> int:
    ids = [r.id for r in filtered_query(db, f).with_entities(G.id)]
    borrados = 0
    if ids:
        borrados = db.query(G).filter(G.id.in_(ids)).delete(synchronize_session=False)
    record_event(db, A.LIMPIAR_GESTIONES, None,
                 {"borrados": borrados, "filtros": {k: f.get(k) for k in FILTER_KEYS if f.get(k)}},
                 actor=identity.username, commit=False)
    db.commit()
    summary_cache.clear()
    return borrados


def catalogs(db: Session, f: Dict[str, Any]) -> dict:
    base = filtered_query(db, {"desde": f.get("desde"), "hasta": f.get("hasta")})

    operadores = [
        u for (u,) in db.query(models.Empleado.username)
        .filter(models.Empleado.is_active.is_(True))
        .order_by(models.Empleado.username)
    ]
    entidades = [n for (n,) in db.query(models.Entidad.nombre).order_by(models.Entidad.numero)]

    def _distinct(col):
        vals = {str(v or "").strip() for (v,) in base.with_entities(col).distinct()}
        return sorted((v for v in vals if v), key=str.lower)

    return {
        "ok": True,
        "operadores": sorted(operadores, key=str.lower),
        "entidades": sorted(entidades, key=str.lower),
        "tiposContacto": _distinct(G.tipo_contacto),
        "estadosCuenta": _distinct(G.estado_cuenta),
    }


# -------------------------
# Analytics
# -------------------------
def _counts_by(q, col, label: str) -> list:
    rows = q.with_entities(col, func.count(G.id)).group_by(col).all()
    out = [{label: k, "gestiones": n} for k, n in rows]
    return sorted(out, key=lambda r: (-r["gestiones"], str(r[label])))


def compute_summary(db: Session, f: Dict[str, Any]) -> dict:
    q = filtered_query(db, f)
    total = q.count()
    dnis = q.with_entities(func.count(func.distinct(G.dni))).scalar() or 0

    por_operador = []
    rows = (
        q.with_entities(G.usuario, func.count(G.id), func.count(func.distinct(G.dni)))
        .group_by(G.usuario)
        .all()
    )
    for usuario, n, unicos in rows:
        por_operador.append({"usuario": usuario, "gestiones": n, "dnisUnicos": unicos})
    por_operador.sort(key=lambda r: (-r["gestiones"], r["usuario"]))

    return {
        "ok": True,
        "total": total,
        "dnisUnicos": dnis,
        "porOperador": por_operador,
        "porTipoContacto": _counts_by(q, G.tipo_contacto, "tipoContacto"),
        "porEstadoCuenta": _counts_by(q, G.estado_cuenta, "estadoCuenta"),
    }


def cached_summary(db: Session, f: Dict[str, Any]) -> dict:
    key = filter_key("gestiones:resumen", {k: f.get(k) for k in FILTER_KEYS})
    return summary_cache.get_or_compute(key, lambda: compute_summary(db, f))


def _span_hhmm(secs: int) -> str:
    secs = max(0, secs)
    return f"{secs // 3600}:{(secs // 60) % 60:02d}"


def day_summary(db: Session, f: Dict[str, Any]) -> dict:
    fecha = to_date_only(f.get("fecha"))
    if fecha is None:
        raise ValidationFailed("Falta parametro fecha (YYYY-MM-DD) o es invalida")

    filtros = {k: f.get(k) for k in ("operador", "entidad", "tipoContacto", "estadoCuenta")}
    q = filtered_query(db, {**filtros, "desde": fecha, "hasta": fecha})
    rows = (
        q.with_entities(
            G.usuario,
            func.count(G.id),
            func.count(func.distinct(G.dni)),
            func.min(G.hora),
            func.max(G.hora),
        )
        .group_by(G.usuario)
        .order_by(G.usuario)
        .all()
    )

    out = []
    for usuario, n, unicos, min_hora, max_hora in rows:
        out.append({
            "usuario": usuario,
            "gestiones": n,
            "dnisUnicos": unicos,
            "primeraHora": (min_hora or "")[:5],
            "ultimaHora": (max_hora or "")[:5],
            "horasTrabajadasHHMM": _span_hhmm(hora_a_segundos(max_hora) - hora_a_segundos(min_hora)),
        })
    return {"ok": True, "fecha": fecha.isoformat(), "rows": out}


def last_update(db: Session) -> dict:
    ts = db.query(func.max(G.created_at)).scalar()
    return {"ok": True, "ultimaActualizacion": ts.isoformat() if ts else None}


def serialize_row(r: models.ReporteGestion) -> dict:
    return {
        "id": r.id,
        "dni": r.dni,
        "nombreDeudor": r.nombre_deudor,
        "fecha": r.fecha.isoformat() if r.fecha else None,
        "hora": r.hora,
        "usuario": r.usuario,
        "tipoContacto": r.tipo_contacto,
        "resultadoGestion": r.resultado_gestion,
        "estadoCuenta": r.estado_cuenta,
        "telMailMarcado": r.tel_mail_marcado,
        "observacionGestion": r.observacion_gestion,
        "entidad": r.entidad,
        "mailsDetectados": r.mails_detectados or [],
    }
