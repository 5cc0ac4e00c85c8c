# cobrina/engine/cuotas.py
from __future__ import annotations

from typing import Iterable, Optional

from .lifecycle import logical_key, paid_to_date

A_CUOTA = "A cuota"
CUOTA_30 = "Cuota 30"
CUOTA_60 = "Cuota 60"
CUOTA_90 = "Cuota 90"
CAIDA = "Caída"

# ordered from current to fully in arrears
ESTADOS_CUOTA = (A_CUOTA, CUOTA_30, CUOTA_60, CUOTA_90, CAIDA)


def cuota_key(dni, entidad_id, subcesion_id, cuota_numero: Optional[int] = None) -> str:
    base = logical_key(dni, entidad_id, subcesion_id)
    return f"{base}-{cuota_numero}" if cuota_numero is not None else base


def is_valid_vencimiento(dia) -> bool:
    return isinstance(dia, int) and 1 <= dia <= 31


def total_pagado(pagos: Iterable) -> float:
    """Back-office payments have no error flag; every one counts."""
    return float(sum(float(p.monto or 0) for p in pagos))


def total_informado(pagos_informados: Iterable) -> float:
    return paid_to_date(pagos_informados)


def pendientes_de_revision(pagos_informados: Iterable) -> list:
    return [p for p in pagos_informados if not p.visto and not p.erroneo]
