# cobrina/engine/lifecycle.py
from __future__ import annotations

from datetime import date
from typing import Iterable, Optional

PENDIENTE = "Pendiente"
PROMESA_ACTIVA = "Promesa activa"
PROMESA_CAIDA = "Promesa caída"
PAGADO_PARCIAL = "Pagado parcial"
PAGADO = "Pagado"
REPROGRAMADO = "Reprogramado"
SIN_CONTACTO = "Sin contacto"

CERRADA_CUMPLIDA = "Cerrada cumplida"
CERRADA_PAGO_PARCIAL = "Cerrada pago parcial"
CERRADA_INCUMPLIDA = "Cerrada incumplida"

ESTADOS_ABIERTOS = (
    PENDIENTE,
    PROMESA_ACTIVA,
    PROMESA_CAIDA,
    PAGADO_PARCIAL,
    PAGADO,
    REPROGRAMADO,
    SIN_CONTACTO,
)
ESTADOS_CERRADOS = (CERRADA_CUMPLIDA, CERRADA_PAGO_PARCIAL, CERRADA_INCUMPLIDA)

CONCEPTOS = ("Ant-Can", "Anticipo", "Cancelación", "Parcial", "Posible", "Cuota")

# conceptos counted as "produccion" in operator stats
CONCEPTOS_PRODUCCION = ("Cancelación", "Anticipo", "Parcial", "Ant-Can")


def is_terminal(estado: Optional[str], is_activa: bool = True) -> bool:
    return (not is_activa) or str(estado or "").startswith("Cerrada")


def classify_by_date(fecha_promesa: Optional[date], today: date) -> str:
    """Read-time view: never persisted by listings."""
    if fecha_promesa is None:
        return PENDIENTE
    if fecha_promesa >= today:
        return PROMESA_ACTIVA
    return PROMESA_CAIDA


def derive_state(
    estado: str,
    importe: float,
    pagado: float,
    fecha_promesa: Optional[date],
    today: date,
    is_activa: bool = True,
) -> str:
    """
    State a promise should hold given its payment and date facts.

    Terminal promises keep their state. Returns the current `estado` when
    no rule applies.
    """
    if is_terminal(estado, is_activa):
        return estado

    if pagado >= importe:
        return PAGADO
    if 0 < pagado < importe:
        return PAGADO_PARCIAL
    if pagado == 0 and fecha_promesa is not None:
        if fecha_promesa < today:
            return PROMESA_CAIDA
        if fecha_promesa == today:
            return PENDIENTE
        return PROMESA_ACTIVA
    return estado


def determine_close_state(importe: float, pagado: float) -> str:
    if importe > 0 and pagado >= importe:
        return CERRADA_CUMPLIDA
    if 0 < pagado < importe:
        return CERRADA_PAGO_PARCIAL
    return CERRADA_INCUMPLIDA


def paid_to_date(pagos: Iterable) -> float:
    """Sum of non-erroneous payment amounts."""
    return float(sum(float(p.monto or 0) for p in pagos if not p.erroneo))


def is_duplicate_payment(pagos: Iterable, fecha: date, monto: float) -> bool:
    """Same calendar day and same amount as a non-erroneous payment."""
    for p in pagos:
        if p.erroneo:
            continue
        if p.fecha == fecha and float(p.monto) == float(monto):
            return True
    return False


def logical_key(dni, entidad_id, subcesion_id) -> str:
    return f"{dni}-{entidad_id}-{subcesion_id}"
