# cobrina/engine/criteria.py
from collections import Counter

# Checklist of the "Auditoría de Contactos Directos" spreadsheet.
CRITERIOS = [
    # Presentación (3)
    {"id": 1, "grupo": "presentacion", "label": "Se presenta cordial y correctamente"},
    {"id": 2, "grupo": "presentacion", "label": "Solicita por titular o encargado de pago"},
    {"id": 3, "grupo": "presentacion", "label": "Expone motivo del llamado"},

    # Negociación (7)
    {"id": 4, "grupo": "negociacion", "label": "Solicita saldo actualizado"},
    {"id": 5, "grupo": "negociacion", "label": "Consulta motivos de atraso"},
    {"id": 6, "grupo": "negociacion", "label": "Negocia el saldo a abonar"},
    {"id": 7, "grupo": "negociacion", "label": "Argumenta ante historial de gestion"},
    {"id": 8, "grupo": "negociacion", "label": "Refuta argumentos frente a negativa de pago"},
    {"id": 9, "grupo": "negociacion", "label": "Informa consecuencias de atraso"},
    {"id": 10, "grupo": "negociacion", "label": "Brinda información relevante"},

    # Cierre (6)
    {"id": 11, "grupo": "cierre", "label": "Comprometió al titular o encargado de pago"},
    {"id": 12, "grupo": "cierre", "label": "Solicita teléfonos alternativos / implementa otro medio"},
    {"id": 13, "grupo": "cierre", "label": "Informa saldo deudor negociado"},
    {"id": 14, "grupo": "cierre", "label": "Fecha de pago o de nueva comunicación (Acuerdo/Contacto)"},
    {"id": 15, "grupo": "cierre", "label": "Holdeo correcto (Promesa o fecha de nueva comunicación)"},
    {"id": 16, "grupo": "cierre", "label": "Informa y/o confirma medios de pago"},

    # Calidad de gestión (8)
    {"id": 17, "grupo": "calidad", "label": "Formalidad"},
    {"id": 18, "grupo": "calidad", "label": "Transmite urgencia con seguridad y firmeza"},
    {"id": 19, "grupo": "calidad", "label": "Aplica gestion MORA TARDIA"},
    {"id": 20, "grupo": "calidad", "label": "Manejo de conflicto"},
    {"id": 21, "grupo": "calidad", "label": "Analiza el comportamiento del titular"},
    {"id": 22, "grupo": "calidad", "label": "Resolución de conflicto"},
    {"id": 23, "grupo": "calidad", "label": "Observaciones correctas y completas (Mango)"},
    {"id": 24, "grupo": "calidad", "label": "Cierre de gestión (Mango)"},
]

PESOS = {
    "presentacion": 0.1,
    "negociacion": 0.4,
    "cierre": 0.3,
    "calidad": 0.2,
}

GRUPOS = tuple(PESOS.keys())

UMBRAL_BAJO = 6.5
UMBRAL_ALTO = 7.5

ALL_IDS = tuple(c["id"] for c in CRITERIOS)
CRITERIOS_BY_ID = {c["id"]: c for c in CRITERIOS}

# Totals come from the catalog so they can never drift from it.
TOTALES = {g: n for g, n in Counter(c["grupo"] for c in CRITERIOS).items()}

TIPOS_INTERACCION = (
    "LLAMADA_ENTRANTE",
    "LLAMADA_SALIENTE",
    "MENSAJE_ENTRANTE",
    "MENSAJE_SALIENTE",
    "EMAIL_ENTRANTE",
    "EMAIL_SALIENTE",
)

MOTIVOS_SELECCION = (
    "aleatorio",
    "prueba",
    "bajo-rendimiento",
    "caso-nuevo",
    "reclamo-conflicto",
    "pedido-cliente",
    "otro",
)


def get_criterio(criterio_id: int):
    return CRITERIOS_BY_ID.get(criterio_id)
