# cobrina/services/auditorias.py
from __future__ import annotations

from collections import Counter
from datetime import datetime, timezone
from typing import Any, Dict

from sqlalchemy import func
from sqlalchemy.orm import Session

from .. import models
from ..auth import Identity, owner_scope
from ..engine.criteria import GRUPOS, get_criterio
from ..engine.scoring import AuditResult, submit_audit
from ..errors import NotFound, ValidationFailed
from ..settings import get_settings
from ..utils.fechas import day_bounds_utc, to_date_only
from .events import record_event

settings = get_settings()

A = models.ActionEnum
OPERATIVE_ROLES = (models.RoleEnum.OPERADOR, models.RoleEnum.OPERADOR_VIP)


def _clean_text(v) -> str:
    return str(v or "").strip()


def _fecha_auditoria(raw) -> datetime | None:
    d = to_date_only(raw)
    if d is None:
        return None
    return datetime(d.year, d.month, d.day, tzinfo=timezone.utc)


def _check_operator(db: Session, username: str) -> str:
    username = _clean_text(username).lower()
    if not username:
        raise ValidationFailed("operadorUsername es obligatorio.")
    op = db.query(models.Empleado).filter(models.Empleado.username == username).first()
    if op is None:
        raise ValidationFailed("Operador no existe.")
    if not op.is_active:
        raise ValidationFailed("Operador inactivo.")
    return username


def _apply_scores(aud: models.Auditoria, result: AuditResult) -> None:
    aud.items = [
        models.AuditoriaItem(
            posicion=i,
            telefono=it.telefono,
            dni=it.dni,
            cartera=it.cartera,
            duracion_segundos=it.duracion_segundos,
            fecha_audio=it.fecha_audio,
            hora_aprox=it.hora_aprox,
            tipo_interaccion=it.tipo_interaccion,
            referencia=it.referencia,
            fallos_ids=it.fallos_ids,
            score_audio=it.score_audio,
            score_presentacion=it.score_bloques["presentacion"],
            score_negociacion=it.score_bloques["negociacion"],
            score_cierre=it.score_bloques["cierre"],
            score_calidad=it.score_bloques["calidad"],
        )
        for i, it in enumerate(result.items)
    ]
    aud.score_final = result.score_final
    aud.score_presentacion = result.score_bloques["presentacion"]
    aud.score_negociacion = result.score_bloques["negociacion"]
    aud.score_cierre = result.score_bloques["cierre"]
    aud.score_calidad = result.score_bloques["calidad"]
    aud.semaforo = result.semaforo


def create_audit(db: Session, identity: Identity, body: Dict[str, Any]) -> models.Auditoria:
    operador = _check_operator(db, body.get("operadorUsername"))
    # scores are computed before anything is written
    result = submit_audit(body.get("items") or [])

    aud = models.Auditoria(
        operador_username=operador,
        auditor_username=identity.username.lower(),
        fecha_auditoria=_fecha_auditoria(body.get("fechaAuditoria")) or datetime.now(timezone.utc),
        motivos_seleccion=list(body.get("motivosSeleccion") or []),
        observaciones_generales=_clean_text(body.get("observacionesGenerales")),
        puntos_positivos=_clean_text(body.get("puntosPositivos")),
        puntos_a_mejorar=_clean_text(body.get("puntosAMejorar")),
        propietario=identity.user_id,
        borrado=False,
    )
    _apply_scores(aud, result)
    db.add(aud)
    db.flush()
    record_event(db, A.CREATE_AUDITORIA, aud.id,
                 {"operador": operador, "scoreFinal": aud.score_final, "semaforo": aud.semaforo},
                 actor=identity.username, commit=False)
    db.commit()
    db.refresh(aud)
    return aud


def get_audit(db: Session, identity: Identity, auditoria_id: str, only_mine: bool = False) -> models.Auditoria:
    q = db.query(models.Auditoria).filter(
        models.Auditoria.id == auditoria_id,
        models.Auditoria.borrado.is_(False),
    )
    owner = owner_scope(identity, only_mine)
    if owner is not None:
        q = q.filter(models.Auditoria.propietario == owner)
    aud = q.first()
    if aud is None:
        raise NotFound("Auditoría no encontrada.")
    return aud


def update_audit(db: Session, identity: Identity, auditoria_id: str, body: Dict[str, Any]) -> models.Auditoria:
    aud = get_audit(db, identity, auditoria_id)

    result = submit_audit(body.get("items") or [])

    if body.get("operadorUsername"):
        aud.operador_username = _check_operator(db, body["operadorUsername"])
    if body.get("fechaAuditoria"):
        aud.fecha_auditoria = _fecha_auditoria(body["fechaAuditoria"]) or aud.fecha_auditoria
    if isinstance(body.get("motivosSeleccion"), list):
        aud.motivos_seleccion = body["motivosSeleccion"]

    aud.observaciones_generales = _clean_text(body.get("observacionesGenerales"))
    aud.puntos_positivos = _clean_text(body.get("puntosPositivos"))
    aud.puntos_a_mejorar = _clean_text(body.get("puntosAMejorar"))

    _apply_scores(aud, result)
    record_event(db, A.UPDATE_AUDITORIA, aud.id,
                 {"scoreFinal": aud.score_final, "semaforo": aud.semaforo},
                 actor=identity.username, commit=False)
    db.commit()
    db.refresh(aud)
    return aud


def soft_delete_audit(db: Session, identity: Identity, auditoria_id: str) -> str:
    aud = get_audit(db, identity, auditoria_id)
    aud.borrado = True
    record_event(db, A.DELETE_AUDITORIA, aud.id, {}, actor=identity.username, commit=False)
    db.commit()
    return auditoria_id


# -------------------------
# Queries
# -------------------------
def filtered_query(db: Session, identity: Identity, f: Dict[str, Any]):
    Au = models.Auditoria
    q = db.query(Au).filter(Au.borrado.is_(False))

    owner = owner_scope(identity, bool(f.get("only_mine")))
    if owner is not None:
        q = q.filter(Au.propietario == owner)

    desde = day_bounds_utc(f.get("desde")) if f.get("desde") else None
    hasta = day_bounds_utc(f.get("hasta")) if f.get("hasta") else None
    if desde:
        q = q.filter(Au.fecha_auditoria >= desde[0])
    if hasta:
        q = q.filter(Au.fecha_auditoria <= hasta[1])

    if f.get("operador"):
        q = q.filter(Au.operador_username == _clean_text(f["operador"]).lower())
    if f.get("auditor"):
        q = q.filter(Au.auditor_username == _clean_text(f["auditor"]).lower())
    if f.get("semaforo"):
        q = q.filter(Au.semaforo == _clean_text(f["semaforo"]).lower())
    return q


def page_params(page, limit) -> tuple[int, int]:
    try:
        p = max(1, int(page or 1))
    except (TypeError, ValueError):
        p = 1
    try:
        lim = min(settings.MAX_PAGE_AUDITS, max(1, int(limit or 50)))
    except (TypeError, ValueError):
        lim = 50
    return p, lim


def list_page(q, page: int, limit: int) -> list:
    """One page of serialized audits, items included."""
    rows = (
        q.order_by(models.Auditoria.fecha_auditoria.desc(), models.Auditoria.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return [serialize_audit(a) for a in rows]


def active_operators(db: Session) -> list[str]:
    rows = (
        db.query(models.Empleado.username)
        .filter(models.Empleado.is_active.is_(True), models.Empleado.role.in_(OPERATIVE_ROLES))
        .order_by(models.Empleado.username)
        .all()
    )
    return [r[0] for r in rows]


# -------------------------
# Analytics
# -------------------------
def summary_totals(q) -> dict:
    rows = q.all()
    n = len(rows)

    def _avg(values) -> float:
        values = list(values)
        return round(sum(values) / len(values), 4) if values else 0.0

    return {
        "auditorias": n,
        "audios": sum(len(a.items) for a in rows),
        "scorePromedio": _avg(a.score_final for a in rows),
        "bloquesPromedio": {g: _avg(getattr(a, f"score_{g}") for a in rows) for g in GRUPOS},
    }


def semaforo_histogram(q) -> list:
    rows = (
        q.with_entities(models.Auditoria.semaforo, func.count(models.Auditoria.id))
        .group_by(models.Auditoria.semaforo)
        .all()
    )
    return [{"semaforo": s, "count": c} for s, c in rows]


def per_operator(q) -> list:
    rows = (
        q.with_entities(
            models.Auditoria.operador_username,
            func.count(models.Auditoria.id),
            func.avg(models.Auditoria.score_final),
        )
        .group_by(models.Auditoria.operador_username)
        .all()
    )
    out = [
        {"operadorUsername": u, "auditorias": c, "avgFinal": round(float(avg or 0), 4)}
        for u, c, avg in rows
    ]
    return sorted(out, key=lambda r: (r["avgFinal"], r["operadorUsername"]))


def top_failures(q, limit: int = 10) -> list:
    ids = [a.id for a in q.with_entities(models.Auditoria.id).all()]
    if not ids:
        return []
    counts: Counter = Counter()
    for item in q.session.query(models.AuditoriaItem).filter(models.AuditoriaItem.auditoria_id.in_(ids)):
        counts.update(item.fallos_ids or [])

    out = []
    for cid, count in sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))[:limit]:
        crit = get_criterio(cid) or {}
        out.append({
            "id": cid,
            "label": crit.get("label", f"Criterio {cid}"),
            "grupo": crit.get("grupo", ""),
            "count": count,
        })
    return out


# -------------------------
# Serialization
# -------------------------
def serialize_item(it: models.AuditoriaItem) -> dict:
    return {
        "posicion": it.posicion,
        "telefono": it.telefono,
        "dni": it.dni,
        "cartera": it.cartera,
        "duracionSegundos": it.duracion_segundos,
        "fechaAudio": it.fecha_audio.isoformat() if it.fecha_audio else None,
        "horaAprox": it.hora_aprox,
        "tipoInteraccion": it.tipo_interaccion,
        "referencia": it.referencia,
        "fallosIds": it.fallos_ids or [],
        "scoreAudio": it.score_audio,
        "scoreBloques": {g: getattr(it, f"score_{g}") for g in GRUPOS},
    }


def serialize_audit(a: models.Auditoria) -> dict:
    return {
        "id": a.id,
        "operadorUsername": a.operador_username,
        "auditorUsername": a.auditor_username,
        "fechaAuditoria": a.fecha_auditoria.isoformat() if a.fecha_auditoria else None,
        "motivosSeleccion": a.motivos_seleccion or [],
        "observacionesGenerales": a.observaciones_generales,
        "puntosPositivos": a.puntos_positivos,
        "puntosAMejorar": a.puntos_a_mejorar,
        "items": [serialize_item(it) for it in a.items],
        "scoreFinal": a.score_final,
        "scoreBloques": {g: getattr(a, f"score_{g}") for g in GRUPOS},
        "semaforo": a.semaforo,
        "propietario": a.propietario,
        "createdAt": a.created_at.isoformat() if a.created_at else None,
        "updatedAt": a.updated_at.isoformat() if a.updated_at else None,
    }
