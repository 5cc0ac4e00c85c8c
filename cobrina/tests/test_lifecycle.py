# cobrina/tests/test_lifecycle.py
from dataclasses import dataclass
from datetime import date

import pytest

from cobrina.engine import cuotas as cu
from cobrina.engine import lifecycle as lc

TODAY = date(2024, 5, 10)


@dataclass
class Pago:
    fecha: date
    monto: float
    erroneo: bool = False


@pytest.mark.parametrize(
    "pagado,fecha,expected",
    [
        (100, date(2024, 5, 1), lc.PAGADO),
        (150, date(2024, 6, 1), lc.PAGADO),
        (40, date(2024, 5, 1), lc.PAGADO_PARCIAL),
        (0, date(2024, 5, 9), lc.PROMESA_CAIDA),
        (0, TODAY, lc.PENDIENTE),
        (0, date(2024, 5, 11), lc.PROMESA_ACTIVA),
    ],
)
def test_derive_state_rules(pagado, fecha, expected):
    assert lc.derive_state(lc.PENDIENTE, 100, pagado, fecha, TODAY) == expected


def test_derive_state_without_date_keeps_state():
    assert lc.derive_state(lc.REPROGRAMADO, 100, 0, None, TODAY) == lc.REPROGRAMADO


def test_terminal_states_are_frozen():
    for estado in lc.ESTADOS_CERRADOS:
        assert lc.derive_state(estado, 100, 100, date(2024, 1, 1), TODAY) == estado
    # inactive promise is terminal whatever its label
    assert lc.derive_state(lc.PENDIENTE, 100, 100, None, TODAY, is_activa=False) == lc.PENDIENTE


@pytest.mark.parametrize(
    "importe,pagado,expected",
    [
        (100, 100, lc.CERRADA_CUMPLIDA),
        (100, 120, lc.CERRADA_CUMPLIDA),
        (100, 30, lc.CERRADA_PAGO_PARCIAL),
        (100, 0, lc.CERRADA_INCUMPLIDA),
        (0, 0, lc.CERRADA_INCUMPLIDA),
    ],
)
def test_determine_close_state(importe, pagado, expected):
    assert lc.determine_close_state(importe, pagado) == expected


def test_classify_by_date():
    assert lc.classify_by_date(None, TODAY) == lc.PENDIENTE
    assert lc.classify_by_date(TODAY, TODAY) == lc.PROMESA_ACTIVA
    assert lc.classify_by_date(date(2024, 5, 9), TODAY) == lc.PROMESA_CAIDA


def test_paid_to_date_ignores_erroneous():
    pagos = [Pago(TODAY, 100), Pago(TODAY, 50, erroneo=True), Pago(TODAY, 25)]
    assert lc.paid_to_date(pagos) == 125

    pagos[2] = Pago(TODAY, 25, erroneo=True)
    assert lc.paid_to_date(pagos) == 100


def test_duplicate_payment_same_day_same_amount():
    pagos = [Pago(TODAY, 50), Pago(date(2024, 5, 11), 70, erroneo=True)]
    assert lc.is_duplicate_payment(pagos, TODAY, 50.0)
    assert not lc.is_duplicate_payment(pagos, TODAY, 51)
    # erroneous payments never block a new one
    assert not lc.is_duplicate_payment(pagos, date(2024, 5, 11), 70)


def test_logical_key():
    assert lc.logical_key("30111222", 1, 2) == "30111222-1-2"


# -------------------------
# Colchón installments
# -------------------------
@dataclass
class PagoInformado:
    fecha: date
    monto: float
    visto: bool = False
    erroneo: bool = False


def test_cuota_key_appends_installment_number():
    assert cu.cuota_key(123, "e", "s") == "123-e-s"
    assert cu.cuota_key(123, "e", "s", 0) == "123-e-s-0"


@pytest.mark.parametrize("dia,ok", [(1, True), (31, True), (0, False), (32, False), ("5", False)])
def test_vencimiento_is_a_day_of_month(dia, ok):
    assert cu.is_valid_vencimiento(dia) is ok


def test_reported_totals_and_pending_review():
    pagos = [
        PagoInformado(TODAY, 100),
        PagoInformado(TODAY, 40, visto=True),
        PagoInformado(TODAY, 60, erroneo=True),
    ]
    assert cu.total_informado(pagos) == 140
    assert cu.pendientes_de_revision(pagos) == [pagos[0]]
    assert cu.total_pagado([Pago(TODAY, 10), Pago(TODAY, 5)]) == 15
