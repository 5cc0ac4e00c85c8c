# cobrina/models.py
from __future__ import annotations

import enum
import uuid
import json
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    String,
    Enum as SAEnum,
    ForeignKey,
    DateTime,
    Date,
    Float,
    Boolean,
    Integer,
    Text,
    Index,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.types import TypeDecorator, TEXT

from .db import Base


# -------------------------
# SQLite-safe JSON list
# -------------------------
class JsonList(TypeDecorator):
    impl = TEXT
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return "[]"
        if isinstance(value, (list, tuple)):
            return json.dumps(list(value), ensure_ascii=False)
        if isinstance(value, str):
            s = value.strip()
            return s if s else "[]"
        return "[]"

    def process_result_value(self, value, dialect):
        if not value:
            return []
        try:
            parsed = json.loads(value)
            return parsed if isinstance(parsed, list) else []
        except ValueError:
            return []


class RoleEnum(str, enum.Enum):
    OPERADOR = "operador"
    OPERADOR_VIP = "operador-vip"
    ADMIN = "admin"
    SUPER_ADMIN = "super-admin"


class ActionEnum(str, enum.Enum):
    CREATE_PROYECCION = "CREATE_PROYECCION"
    CLOSE_PROYECCION = "CLOSE_PROYECCION"
    UPDATE_PROYECCION = "UPDATE_PROYECCION"
    DELETE_PROYECCION = "DELETE_PROYECCION"
    RECOMPUTE_STATE = "RECOMPUTE_STATE"
    INFORMAR_PAGO = "INFORMAR_PAGO"
    MARCAR_PAGO = "MARCAR_PAGO"
    LIMPIAR_PAGOS = "LIMPIAR_PAGOS"
    LIMPIAR_OBSERVACIONES = "LIMPIAR_OBSERVACIONES"
    REGISTRAR_GESTION = "REGISTRAR_GESTION"
    CREATE_AUDITORIA = "CREATE_AUDITORIA"
    UPDATE_AUDITORIA = "UPDATE_AUDITORIA"
    DELETE_AUDITORIA = "DELETE_AUDITORIA"
    CARGAR_GESTIONES = "CARGAR_GESTIONES"
    LIMPIAR_GESTIONES = "LIMPIAR_GESTIONES"
    CREATE_CUOTA = "CREATE_CUOTA"
    UPDATE_CUOTA = "UPDATE_CUOTA"
    DELETE_CUOTA = "DELETE_CUOTA"
    VACIAR_COLCHON = "VACIAR_COLCHON"
    PAGO_CUOTA = "PAGO_CUOTA"
    ELIMINAR_PAGO_CUOTA = "ELIMINAR_PAGO_CUOTA"
    INFORMAR_PAGO_CUOTA = "INFORMAR_PAGO_CUOTA"
    MARCAR_PAGO_CUOTA = "MARCAR_PAGO_CUOTA"
    ELIMINAR_PAGO_INFORMADO_CUOTA = "ELIMINAR_PAGO_INFORMADO_CUOTA"
    LIMPIAR_CUOTA = "LIMPIAR_CUOTA"
    GESTIONAR_CUOTA = "GESTIONAR_CUOTA"
    FAILURE_LOG = "FAILURE_LOG"


def _uuid() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# -------------------------
# Reference catalogs
# -------------------------
class Empleado(Base):
    __tablename__ = "empleados"

    id = Column(String, primary_key=True, default=_uuid)
    username = Column(String(50), nullable=False, unique=True, index=True)
    nombre = Column(String(120), nullable=False, default="")
    email = Column(String, nullable=False, unique=True)
    password_hash = Column(String, nullable=False)
    role = Column(SAEnum(RoleEnum, values_callable=lambda e: [x.value for x in e]), nullable=False, default=RoleEnum.OPERADOR)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    ultima_actividad = Column(DateTime(timezone=True), default=_utcnow)

    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


class Entidad(Base):
    __tablename__ = "entidades"

    id = Column(String, primary_key=True, default=_uuid)
    numero = Column(Integer, nullable=False, unique=True)
    nombre = Column(String, nullable=False, unique=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


class SubCesion(Base):
    __tablename__ = "subcesiones"

    id = Column(String, primary_key=True, default=_uuid)
    nombre = Column(String, nullable=False, unique=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


class Cartera(Base):
    __tablename__ = "carteras"

    id = Column(String, primary_key=True, default=_uuid)
    nombre = Column(String, nullable=False, unique=True)
    datos_html = Column(Text, nullable=False, default="")
    direccion = Column(String, nullable=False, default="")
    editado_por = Column(String, nullable=False, default="")

    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


class StickyNote(Base):
    __tablename__ = "sticky_notes"

    id = Column(String, primary_key=True, default=_uuid)
    user_id = Column(String, ForeignKey("empleados.id"), nullable=False, index=True)
    text = Column(String(1000), nullable=False, default="")
    color = Column(String, nullable=False, default="yellow")
    order = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


class Tip(Base):
    __tablename__ = "tips"

    id = Column(String, primary_key=True, default=_uuid)
    title = Column(String, nullable=False)
    body_md = Column(Text, nullable=False, default="")
    categories = Column(JsonList, default=list, nullable=False)
    visibility = Column(String, nullable=False, default="all")  # all / admin
    is_active = Column(Boolean, nullable=False, default=True)

    created_by = Column(String, nullable=True)
    updated_by = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


# -------------------------
# Promises ("proyecciones")
# -------------------------
class Proyeccion(Base):
    __tablename__ = "proyecciones"

    id = Column(String, primary_key=True, default=_uuid)

    dni = Column(Integer, nullable=False, index=True)
    nombre_titular = Column(String, nullable=False, default="")
    importe = Column(Float, nullable=False)
    concepto = Column(String, nullable=True)

    fecha_promesa = Column(Date, nullable=True, index=True)
    fecha_promesa_inicial = Column(Date, nullable=True)
    fecha_proximo_llamado = Column(Date, nullable=True, index=True)

    importe_pagado = Column(Float, nullable=False, default=0.0)
    estado = Column(String, nullable=False, default="Pendiente", index=True)
    is_activa = Column(Boolean, nullable=False, default=True, index=True)

    entidad_id = Column(String, ForeignKey("entidades.id"), nullable=False, index=True)
    subcesion_id = Column(String, ForeignKey("subcesiones.id"), nullable=False, index=True)
    id_logico = Column(String, nullable=False, index=True)

    telefono = Column(String, nullable=False, default="")
    observaciones = Column(Text, nullable=False, default="")

    empleado_id = Column(String, ForeignKey("empleados.id"), nullable=False, index=True)

    mes = Column(Integer, nullable=False)
    anio = Column(Integer, nullable=False)

    veces_tocada = Column(Integer, nullable=False, default=0)
    ultima_gestion = Column(DateTime(timezone=True), nullable=True)

    creado = Column(DateTime(timezone=True), default=_utcnow)
    ultima_modificacion = Column(DateTime(timezone=True), default=_utcnow)

    pagos = relationship(
        "PagoInformado",
        back_populates="proyeccion",
        cascade="all, delete-orphan",
        order_by="PagoInformado.fecha",
    )
    empleado = relationship("Empleado")

    __table_args__ = (
        # one active promise per dni + entidad + subcesion
        Index(
            "uq_proyeccion_activa_por_clave",
            "dni",
            "entidad_id",
            "subcesion_id",
            unique=True,
            sqlite_where=is_activa.is_(True),
            postgresql_where=is_activa.is_(True),
        ),
        Index("ix_proyeccion_anio_mes", "anio", "mes"),
    )


class PagoInformado(Base):
    __tablename__ = "pagos_informados"

    id = Column(String, primary_key=True, default=_uuid)
    proyeccion_id = Column(String, ForeignKey("proyecciones.id", ondelete="CASCADE"), nullable=False, index=True)

    fecha = Column(Date, nullable=False, index=True)
    monto = Column(Float, nullable=False)
    operador_id = Column(String, ForeignKey("empleados.id"), nullable=False)

    erroneo = Column(Boolean, nullable=False, default=False)
    motivo_error = Column(String, nullable=False, default="")
    marcado_por = Column(String, nullable=True)
    marcado_en = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow)

    proyeccion = relationship("Proyeccion", back_populates="pagos")


# -------------------------
# Installment tracking ("colchón")
# -------------------------
class Cuota(Base):
    __tablename__ = "colchon_cuotas"

    id = Column(String, primary_key=True, default=_uuid)

    estado = Column(String, nullable=False, default="A cuota", index=True)
    estado_original = Column(String, nullable=False, default="")

    entidad_id = Column(String, ForeignKey("entidades.id"), nullable=False, index=True)
    subcesion_id = Column(String, ForeignKey("subcesiones.id"), nullable=False, index=True)

    dni = Column(Integer, nullable=False, index=True)
    nombre = Column(String, nullable=False)
    empleado_id = Column(String, ForeignKey("empleados.id"), nullable=False, index=True)
    turno = Column(String, nullable=False, default="")
    cartera = Column(String, nullable=False, default="", index=True)

    # dni-entidad-subcesion[-cuotaNumero]
    id_cuota_logico = Column(String, nullable=False, unique=True)

    vencimiento = Column(Integer, nullable=False, index=True)  # day of month
    cuota_numero = Column(Integer, nullable=True)
    importe_cuota = Column(Float, nullable=False)
    saldo_pendiente = Column(Float, nullable=False, default=0.0)

    observaciones = Column(Text, nullable=False, default="")
    observaciones_operador = Column(Text, nullable=False, default="")
    fiduciario = Column(String, nullable=False, default="")
    gestor = Column(String, nullable=False, default="")
    telefono = Column(String, nullable=False, default="")

    veces_tocada = Column(Integer, nullable=False, default=0)
    ultima_gestion = Column(DateTime(timezone=True), nullable=True)
    usuario_ultimo_tocado = Column(String, ForeignKey("empleados.id"), nullable=True)

    creado = Column(DateTime(timezone=True), default=_utcnow)
    ultima_modificacion = Column(DateTime(timezone=True), default=_utcnow, index=True)

    pagos = relationship(
        "PagoCuota",
        back_populates="cuota",
        cascade="all, delete-orphan",
        order_by="PagoCuota.fecha",
    )
    pagos_informados = relationship(
        "PagoCuotaInformado",
        back_populates="cuota",
        cascade="all, delete-orphan",
        order_by="PagoCuotaInformado.fecha",
    )
    empleado = relationship("Empleado", foreign_keys=[empleado_id])

    __table_args__ = (
        Index("ix_cuota_empleado_vencimiento", "empleado_id", "vencimiento"),
        Index("ix_cuota_entidad_subcesion_estado", "entidad_id", "subcesion_id", "estado"),
    )


class PagoCuota(Base):
    """Payment confirmed by the back office."""

    __tablename__ = "colchon_pagos"

    id = Column(String, primary_key=True, default=_uuid)
    cuota_id = Column(String, ForeignKey("colchon_cuotas.id", ondelete="CASCADE"), nullable=False, index=True)
    fecha = Column(Date, nullable=False)
    monto = Column(Float, nullable=False)
    registrado_por = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow)

    cuota = relationship("Cuota", back_populates="pagos")


class PagoCuotaInformado(Base):
    """Payment reported by an operator, pending back-office review."""

    __tablename__ = "colchon_pagos_informados"

    id = Column(String, primary_key=True, default=_uuid)
    cuota_id = Column(String, ForeignKey("colchon_cuotas.id", ondelete="CASCADE"), nullable=False, index=True)

    fecha = Column(Date, nullable=False)
    monto = Column(Float, nullable=False)
    operador_id = Column(String, ForeignKey("empleados.id"), nullable=False)

    visto = Column(Boolean, nullable=False, default=False, index=True)
    erroneo = Column(Boolean, nullable=False, default=False)
    motivo_error = Column(String, nullable=False, default="")
    marcado_por = Column(String, nullable=True)
    marcado_en = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow)

    cuota = relationship("Cuota", back_populates="pagos_informados")


# -------------------------
# Call-quality audits
# -------------------------
class Auditoria(Base):
    __tablename__ = "auditorias"

    id = Column(String, primary_key=True, default=_uuid)

    operador_username = Column(String(120), nullable=False, index=True)
    auditor_username = Column(String(120), nullable=False, index=True)
    fecha_auditoria = Column(DateTime(timezone=True), nullable=False, default=_utcnow, index=True)
    motivos_seleccion = Column(JsonList, default=list, nullable=False)

    observaciones_generales = Column(Text, nullable=False, default="")
    puntos_positivos = Column(Text, nullable=False, default="")
    puntos_a_mejorar = Column(Text, nullable=False, default="")

    score_final = Column(Float, nullable=False, default=0.0, index=True)
    score_presentacion = Column(Float, nullable=False, default=0.0)
    score_negociacion = Column(Float, nullable=False, default=0.0)
    score_cierre = Column(Float, nullable=False, default=0.0)
    score_calidad = Column(Float, nullable=False, default=0.0)
    semaforo = Column(String, nullable=False, default="medio", index=True)

    propietario = Column(String, ForeignKey("empleados.id"), nullable=True, index=True)
    borrado = Column(Boolean, nullable=False, default=False, index=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    items = relationship(
        "AuditoriaItem",
        back_populates="auditoria",
        cascade="all, delete-orphan",
        order_by="AuditoriaItem.posicion",
    )


class AuditoriaItem(Base):
    __tablename__ = "auditoria_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    auditoria_id = Column(String, ForeignKey("auditorias.id", ondelete="CASCADE"), nullable=False, index=True)
    posicion = Column(Integer, nullable=False, default=0)

    telefono = Column(String(60), nullable=False)
    dni = Column(String(40), nullable=False, default="")
    cartera = Column(String(120), nullable=False, default="")
    duracion_segundos = Column(Integer, nullable=False, default=0)
    fecha_audio = Column(Date, nullable=True)
    hora_aprox = Column(String(20), nullable=False, default="")
    tipo_interaccion = Column(String, nullable=False, default="LLAMADA_SALIENTE", index=True)
    referencia = Column(String(300), nullable=False, default="")

    fallos_ids = Column(JsonList, default=list, nullable=False)

    score_audio = Column(Float, nullable=False, default=0.0)
    score_presentacion = Column(Float, nullable=False, default=0.0)
    score_negociacion = Column(Float, nullable=False, default=0.0)
    score_cierre = Column(Float, nullable=False, default=0.0)
    score_calidad = Column(Float, nullable=False, default=0.0)

    auditoria = relationship("Auditoria", back_populates="items")


# -------------------------
# Call-center activity logs
# -------------------------
class ReporteGestion(Base):
    __tablename__ = "reportes_gestion"

    id = Column(String, primary_key=True, default=_uuid)

    dni = Column(String(20), nullable=False, index=True)
    nombre_deudor = Column(String(240), nullable=False, default="")
    fecha = Column(Date, nullable=False, index=True)
    hora = Column(String(8), nullable=False, default="00:00:00")
    usuario = Column(String(120), nullable=False, index=True)
    tipo_contacto = Column(String(180), nullable=False, default="")
    resultado_gestion = Column(String(240), nullable=False, default="")
    estado_cuenta = Column(String(180), nullable=False, default="")
    tel_mail_marcado = Column(String(1000), nullable=False, default="")
    observacion_gestion = Column(String(3000), nullable=False, default="")
    entidad = Column(String(120), nullable=False, default="", index=True)
    mails_detectados = Column(JsonList, default=list, nullable=False)

    fuente_archivo = Column(String(260), nullable=False, default="")
    propietario = Column(String, nullable=True, index=True)
    borrado = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        UniqueConstraint(
            "dni",
            "fecha",
            "hora",
            "usuario",
            "tipo_contacto",
            "resultado_gestion",
            "estado_cuenta",
            "entidad",
            name="uq_gestion_clave_negocio",
        ),
        Index("ix_gestion_usuario_fecha", "usuario", "fecha"),
    )


class Event(Base):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, autoincrement=True)

    entity_id = Column(String, nullable=True, index=True)
    action = Column(SAEnum(ActionEnum), nullable=False)
    actor = Column(String, default="SYSTEM")
    payload = Column(Text, default="{}")

    app_version = Column(String, default="dev")

    created_at = Column(DateTime(timezone=True), default=_utcnow)
