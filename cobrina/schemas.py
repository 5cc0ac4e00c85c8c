# cobrina/schemas.py
from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class _CamelIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# -------------------------
# Auth / employees
# -------------------------
class LoginIn(BaseModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class TokenOut(BaseModel):
    token: str
    id: str
    username: str
    role: str


class EmpleadoCreate(BaseModel):
    username: str = Field(..., min_length=1, max_length=50)
    nombre: str = ""
    email: str
    password: str = Field(..., min_length=6)
    role: str = "operador"


class EmpleadoUpdate(BaseModel):
    username: Optional[str] = None
    nombre: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = Field(None, min_length=6)
    role: Optional[str] = None


class EmpleadoOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    username: str
    nombre: str
    email: str
    role: str
    is_active: bool


# -------------------------
# Catalogs
# -------------------------
class EntidadIn(BaseModel):
    numero: int
    nombre: str = Field(..., min_length=1)


class EntidadOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    numero: int
    nombre: str


class SubCesionIn(BaseModel):
    nombre: str = Field(..., min_length=1)


class SubCesionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    nombre: str


class StickyIn(BaseModel):
    text: str = Field("", max_length=1000)
    color: Optional[str] = "yellow"


class StickyUpdate(BaseModel):
    text: Optional[str] = Field(None, max_length=1000)
    color: Optional[str] = None


class StickyOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    text: str
    color: str
    order: int


class ReorderIn(BaseModel):
    ids: List[str]


class TipIn(_CamelIn):
    title: str = Field(..., min_length=1)
    body_md: str = Field("", alias="bodyMd")
    categories: List[str] = Field(default_factory=list)
    visibility: str = "all"
    is_active: bool = Field(True, alias="isActive")


class TipUpdate(_CamelIn):
    title: Optional[str] = None
    body_md: Optional[str] = Field(None, alias="bodyMd")
    categories: Optional[List[str]] = None
    visibility: Optional[str] = None
    is_active: Optional[bool] = Field(None, alias="isActive")


# -------------------------
# Promises
# -------------------------
class ProyeccionIn(_CamelIn):
    """Everything optional here; required-field checks happen in the service."""

    dni: Optional[Union[int, str]] = None
    nombre_titular: Optional[str] = Field(None, alias="nombreTitular")
    importe: Optional[Union[float, str]] = None
    estado: Optional[str] = None
    concepto: Optional[str] = None
    fecha_promesa: Optional[str] = Field(None, alias="fechaPromesa")
    fecha_proximo_llamado: Optional[str] = Field(None, alias="fechaProximoLlamado")
    entidad_id: Optional[str] = Field(None, alias="entidadId")
    subcesion_id: Optional[str] = Field(None, alias="subCesionId")
    telefono: Optional[str] = None
    observaciones: Optional[str] = None


class PagoIn(BaseModel):
    fecha: Optional[str] = None
    monto: Optional[Union[float, str]] = None


class MarcarPagoIn(BaseModel):
    motivo: Optional[str] = ""


# -------------------------
# Colchón / carteras
# -------------------------
class CuotaIn(_CamelIn):
    cartera: Optional[str] = None
    dni: Optional[Union[int, str]] = None
    nombre: Optional[str] = None
    importe_cuota: Optional[Union[float, str]] = Field(None, alias="importeCuota")
    saldo_pendiente: Optional[Union[float, str]] = Field(None, alias="saldoPendiente")
    vencimiento: Optional[Union[int, str]] = None
    cuota_numero: Optional[Union[int, str]] = Field(None, alias="cuotaNumero")
    estado: Optional[str] = None
    estado_original: Optional[str] = Field(None, alias="estadoOriginal")
    entidad_id: Optional[str] = Field(None, alias="entidadId")
    subcesion_id: Optional[str] = Field(None, alias="subCesionId")
    empleado_id: Optional[str] = Field(None, alias="empleadoId")
    turno: Optional[str] = None
    fiduciario: Optional[str] = None
    gestor: Optional[str] = None
    telefono: Optional[str] = None
    observaciones: Optional[str] = None
    observaciones_operador: Optional[str] = Field(None, alias="observacionesOperador")


class MarcarInformadoIn(BaseModel):
    erroneo: bool = True
    motivo: Optional[str] = ""


class GestionCuotaIn(_CamelIn):
    observaciones_operador: Optional[str] = Field(None, alias="observacionesOperador")


class CarteraIn(_CamelIn):
    nombre: str = Field(..., min_length=1)
    datos_html: str = Field(..., min_length=1, alias="datosHtml")
    direccion: str = Field(..., min_length=1)


class CarteraUpdate(_CamelIn):
    nombre: Optional[str] = Field(None, min_length=1)
    datos_html: Optional[str] = Field(None, min_length=1, alias="datosHtml")
    direccion: Optional[str] = Field(None, min_length=1)


# -------------------------
# Audits
# -------------------------
class AuditoriaIn(_CamelIn):
    operador_username: Optional[str] = Field(None, alias="operadorUsername")
    fecha_auditoria: Optional[str] = Field(None, alias="fechaAuditoria")
    motivos_seleccion: Optional[List[str]] = Field(None, alias="motivosSeleccion")
    observaciones_generales: Optional[str] = Field(None, alias="observacionesGenerales")
    puntos_positivos: Optional[str] = Field(None, alias="puntosPositivos")
    puntos_a_mejorar: Optional[str] = Field(None, alias="puntosAMejorar")
    # item shapes vary (fallosIds / okIds / checks), scoring resolves them
    items: List[Dict[str, Any]] = Field(default_factory=list)


# -------------------------
# Gestiones
# -------------------------
class CargarGestionesIn(_CamelIn):
    filas: List[Dict[str, Any]] = Field(default_factory=list)
    fuente_archivo: str = Field("", alias="fuenteArchivo")
    reemplazar_todo: bool = Field(False, alias="reemplazarTodo")


class LimpiarGestionesIn(BaseModel):
    filtros: Dict[str, Any] = Field(default_factory=dict)
