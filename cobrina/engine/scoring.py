# cobrina/engine/scoring.py
from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, List, Mapping, Union

from cobrina.errors import EmptyOrOversized, ValidationFailed
from cobrina.utils.fechas import normalizar_hora, to_date_only

from .criteria import (
    ALL_IDS,
    CRITERIOS_BY_ID,
    GRUPOS,
    PESOS,
    TIPOS_INTERACCION,
    TOTALES,
    UMBRAL_ALTO,
    UMBRAL_BAJO,
)

MAX_ITEMS = 5
MAX_DURACION_SEGUNDOS = 8 * 60 * 60

_DURACION_KEYS = (
    "duracionSegundos",
    "duracion",
    "duracionSeconds",
    "segundos",
    "duracion_s",
    "duracionEnSegundos",
)


# -------------------------
# Checklist shapes
# -------------------------
@dataclass(frozen=True)
class FailedIds:
    ids: tuple


@dataclass(frozen=True)
class PassedIds:
    ids: tuple


@dataclass(frozen=True)
class CheckMap:
    checks: Mapping[Any, Any]


@dataclass(frozen=True)
class Unspecified:
    """No recognisable checklist: scored as if every criterion failed."""


FailureSpec = Union[FailedIds, PassedIds, CheckMap, Unspecified]


def resolve_failure_spec(payload: Mapping[str, Any]) -> FailureSpec:
    fallos = payload.get("fallosIds")
    if isinstance(fallos, (list, tuple)):
        return FailedIds(tuple(fallos))

    ok = payload.get("okIds")
    if isinstance(ok, (list, tuple)):
        return PassedIds(tuple(ok))

    checks = payload.get("checks")
    if isinstance(checks, Mapping):
        return CheckMap(dict(checks))

    return Unspecified()


def _as_ids(values) -> set[int]:
    out: set[int] = set()
    for v in values:
        try:
            n = float(v)
        except (TypeError, ValueError):
            continue
        if n.is_integer():
            out.add(int(n))
    return out


def normalize_failures(spec: FailureSpec) -> List[int]:
    if isinstance(spec, FailedIds):
        fallos = _as_ids(spec.ids)
    elif isinstance(spec, PassedIds):
        ok = _as_ids(spec.ids)
        fallos = {i for i in ALL_IDS if i not in ok}
    elif isinstance(spec, CheckMap):
        ok = _as_ids(k for k, v in spec.checks.items() if v)
        fallos = {i for i in ALL_IDS if i not in ok}
    else:
        fallos = set(ALL_IDS)

    return sorted(i for i in fallos if i in CRITERIOS_BY_ID)


# -------------------------
# Scores
# -------------------------
@dataclass
class ItemScores:
    bloques: Dict[str, float]
    score: float


def compute_scores(fallos_ids) -> ItemScores:
    fallos = set(fallos_ids)
    ok_count = {g: 0 for g in GRUPOS}
    for cid in ALL_IDS:
        if cid not in fallos:
            ok_count[CRITERIOS_BY_ID[cid]["grupo"]] += 1

    bloques = {
        g: (ok_count[g] / TOTALES[g]) * 10 if TOTALES[g] else 0.0
        for g in GRUPOS
    }
    weighted = sum((bloques[g] / 10) * PESOS[g] for g in GRUPOS)
    return ItemScores(bloques=bloques, score=round(weighted * 10, 6))


def classify(score: float) -> str:
    if score < UMBRAL_BAJO:
        return "bajo"
    if score >= UMBRAL_ALTO:
        return "alto"
    return "medio"


# -------------------------
# Items
# -------------------------
def parse_duration_seconds(item: Mapping[str, Any]) -> int:
    raw = None
    for key in _DURACION_KEYS:
        if item.get(key) is not None:
            raw = item.get(key)
            break
    if raw is None or raw == "":
        return 0
    try:
        n = float(str(raw).replace(",", "."))
    except ValueError:
        return 0
    if not math.isfinite(n):
        return 0
    return max(0, min(MAX_DURACION_SEGUNDOS, math.floor(n + 0.5)))


def is_llamada(tipo_interaccion: str) -> bool:
    return str(tipo_interaccion or "").upper().startswith("LLAMADA")


@dataclass
class PreparedItem:
    telefono: str
    dni: str
    cartera: str
    fecha_audio: date | None
    hora_aprox: str
    tipo_interaccion: str
    referencia: str
    duracion_segundos: int
    fallos_ids: List[int]
    score_audio: float
    score_bloques: Dict[str, float]


def prepare_item(payload: Mapping[str, Any], index: int) -> PreparedItem:
    """Validate one audited interaction and score it. `index` is 0-based."""
    n = index + 1
    telefono = str(payload.get("telefono") or "").strip()
    if not telefono:
        raise ValidationFailed(f"Cada item debe incluir telefono. (item #{n})")

    tipo = str(payload.get("tipoInteraccion") or "LLAMADA_SALIENTE").strip().upper()
    if tipo not in TIPOS_INTERACCION:
        raise ValidationFailed(f"tipoInteraccion inválido '{tipo}' en item #{n}.")

    duracion = parse_duration_seconds(payload)
    if is_llamada(tipo) and duracion <= 0:
        raise ValidationFailed(f"Falta duración (segundos) para llamada en item #{n}.")

    fecha_raw = payload.get("fechaAudio")
    hora_raw = payload.get("horaAprox")

    fallos = normalize_failures(resolve_failure_spec(payload))
    scores = compute_scores(fallos)

    return PreparedItem(
        telefono=telefono[:60],
        dni=str(payload.get("dni") or "").strip()[:40],
        cartera=str(payload.get("cartera") or "").strip().upper()[:120],
        fecha_audio=to_date_only(fecha_raw) if fecha_raw else None,
        hora_aprox=normalizar_hora(hora_raw) if hora_raw else "",
        tipo_interaccion=tipo,
        referencia=str(payload.get("referencia") or "").strip()[:300],
        duracion_segundos=duracion,
        fallos_ids=fallos,
        score_audio=scores.score,
        score_bloques=scores.bloques,
    )


@dataclass
class AuditResult:
    items: List[PreparedItem]
    score_final: float
    score_bloques: Dict[str, float]
    semaforo: str


def submit_audit(items_in) -> AuditResult:
    """
    Score a whole audit (1..5 items).

    Pure: returns the prepared items and aggregates; the caller persists.
    """
    items_in = list(items_in or [])
    if len(items_in) < 1:
        raise EmptyOrOversized("Debe incluir al menos 1 audio/item.")
    if len(items_in) > MAX_ITEMS:
        raise EmptyOrOversized(f"Máximo {MAX_ITEMS} audios/items por auditoría.")

    items = [prepare_item(it, idx) for idx, it in enumerate(items_in)]

    count = len(items)
    score_final = round(sum(x.score_audio for x in items) / count, 6)
    score_bloques = {
        g: round(sum(x.score_bloques[g] for x in items) / count, 6)
        for g in GRUPOS
    }
    return AuditResult(
        items=items,
        score_final=score_final,
        score_bloques=score_bloques,
        semaforo=classify(score_final),
    )
