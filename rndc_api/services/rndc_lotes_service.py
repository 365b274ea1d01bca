from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from fastapi import HTTPException
from sqlalchemy import func
from sqlalchemy.orm import Session

from rndc_api.models.rndc_lote import RndcLote
from rndc_api.models.rndc_envio import RndcEnvio
from rndc_api.rndc.rndc_types import (
    CODIGO_ERROR_CONEXION,
    EstadoEnvio,
    EstadoLote,
    RndcResultado,
    TipoLote,
)
from rndc_api.rndc.xml_builder import construir_xml
from rndc_api.schemas.rndc_mensajes import CredencialesRndc

logger = logging.getLogger("rndc.lotes")


# Tipo de lote -> tipo de mensaje que acepta
TIPO_MENSAJE_POR_LOTE = {
    TipoLote.PUNTOS_CONTROL: "punto_control",
    TipoLote.REMESA: "remesa",
    TipoLote.MANIFIESTO: "manifiesto",
    TipoLote.CUMPLIDO_REMESA: "cumplido_remesa",
    TipoLote.CUMPLIDO_MANIFIESTO: "cumplido_manifiesto",
}

MENSAJE_INTERRUMPIDO = (
    "Envío interrumpido por reinicio del servidor; "
    "no se pudo confirmar si el RNDC lo recibió. Verifique antes de reenviar."
)

MENSAJE_SIN_RESULTADO = (
    "No se pudo registrar el resultado del envío al cerrar el lote; "
    "verifique en el RNDC antes de reenviar."
)


@dataclass
class EnvioNuevo:
    xml_request: str
    datos: Optional[Dict[str, Any]] = None
    referencia: Optional[str] = None
    num_placa: Optional[str] = None


def _now() -> datetime:
    return datetime.now(timezone.utc)


# =====================================================
# Preparación (mensajes tipados -> XML)
# =====================================================
def preparar_envios(
    *,
    tipo: str,
    credenciales: CredencialesRndc,
    items: Sequence[Any],
) -> List[EnvioNuevo]:
    esperado = TIPO_MENSAJE_POR_LOTE.get(tipo)
    if esperado is None:
        raise HTTPException(status_code=422, detail=f"Tipo de lote no soportado: {tipo}")

    envios: List[EnvioNuevo] = []
    for idx, item in enumerate(items):
        if item.tipo != esperado:
            raise HTTPException(
                status_code=422,
                detail=f"Item {idx}: tipo '{item.tipo}' no corresponde a un lote '{tipo}'",
            )
        try:
            xml_request = construir_xml(credenciales, item)
        except ValueError as e:
            # lxml rechaza texto que no es XML válido
            raise HTTPException(status_code=422, detail=f"Item {idx}: {e}")
        envios.append(EnvioNuevo(
            xml_request=xml_request,
            datos=item.model_dump(mode="json"),
            referencia=item.referencia,
            num_placa=item.placa,
        ))
    return envios


# =====================================================
# Creación
# =====================================================
def crear_lote(
    db: Session,
    *,
    tipo: str,
    envios: Sequence[EnvioNuevo],
    ws_url: Optional[str] = None,
    lote_origen_id: Optional[str] = None,
    observacion: Optional[str] = None,
) -> RndcLote:
    if not envios:
        raise HTTPException(status_code=422, detail="El lote debe tener al menos un registro")
    if tipo not in TipoLote.TODOS:
        raise HTTPException(status_code=422, detail=f"Tipo de lote no soportado: {tipo}")

    total = len(envios)
    lote = RndcLote(
        tipo=tipo,
        estado=EstadoLote.PROCESANDO,
        total_registros=total,
        total_exitosos=0,
        total_errores=0,
        total_pendientes=total,
        ws_url=ws_url,
        lote_origen_id=lote_origen_id,
        observacion=observacion,
    )
    db.add(lote)
    db.flush()

    # ✅ Crear envíos en orden (FIFO)
    for orden, e in enumerate(envios):
        db.add(RndcEnvio(
            lote_id=lote.id,
            orden=orden,
            tipo=tipo,
            datos=e.datos,
            referencia=e.referencia,
            num_placa=e.num_placa,
            xml_request=e.xml_request,
            estado=EstadoEnvio.PENDIENTE,
        ))

    db.commit()
    db.refresh(lote)

    logger.info("Lote %s creado: tipo=%s total=%s", lote.id, tipo, total)
    return lote


# =====================================================
# Lecturas
# =====================================================
def obtener_lote(db: Session, *, lote_id: str) -> RndcLote:
    lote = db.get(RndcLote, lote_id)
    if not lote:
        raise HTTPException(status_code=404, detail="Lote no encontrado")
    return lote


def listar_lotes(db: Session, *, tipo: Optional[str] = None, limit: int = 50) -> List[RndcLote]:
    q = db.query(RndcLote)
    if tipo:
        q = q.filter(RndcLote.tipo == tipo)
    return q.order_by(RndcLote.created_at.desc()).limit(limit).all()


def listar_envios_lote(db: Session, *, lote_id: str) -> List[RndcEnvio]:
    obtener_lote(db, lote_id=lote_id)
    return (
        db.query(RndcEnvio)
        .filter(RndcEnvio.lote_id == lote_id)
        .order_by(RndcEnvio.orden.asc())
        .all()
    )


def listar_envios_pendientes(db: Session, *, lote_id: str) -> List[str]:
    rows = (
        db.query(RndcEnvio.id)
        .filter(RndcEnvio.lote_id == lote_id, RndcEnvio.estado == EstadoEnvio.PENDIENTE)
        .order_by(RndcEnvio.orden.asc())
        .all()
    )
    return [r.id for r in rows]


def obtener_envio(db: Session, *, envio_id: str) -> RndcEnvio:
    envio = db.get(RndcEnvio, envio_id)
    if not envio:
        raise HTTPException(status_code=404, detail="Envío no encontrado")
    return envio


def listar_envios_recientes(
    db: Session,
    *,
    tipo: Optional[str] = None,
    num_placa: Optional[str] = None,
    limit: int = 100,
) -> List[RndcEnvio]:
    q = db.query(RndcEnvio)
    if tipo:
        q = q.filter(RndcEnvio.tipo == tipo)
    if num_placa:
        q = q.filter(RndcEnvio.num_placa == "".join(num_placa.split()).upper())
    return q.order_by(RndcEnvio.created_at.desc(), RndcEnvio.orden.desc()).limit(limit).all()


def conteos_terminales(db: Session, *, lote_id: str) -> Tuple[int, int]:
    """(exitosos, errores) según el estado real de los envíos del lote."""
    rows = (
        db.query(RndcEnvio.estado, func.count(RndcEnvio.id))
        .filter(RndcEnvio.lote_id == lote_id)
        .group_by(RndcEnvio.estado)
        .all()
    )
    por_estado = {estado: int(n) for estado, n in rows}
    return por_estado.get(EstadoEnvio.EXITOSO, 0), por_estado.get(EstadoEnvio.ERROR, 0)


def lotes_en_proceso(db: Session) -> List[RndcLote]:
    return (
        db.query(RndcLote)
        .filter(RndcLote.estado == EstadoLote.PROCESANDO)
        .order_by(RndcLote.created_at.asc())
        .all()
    )


# =====================================================
# Transiciones
# =====================================================
def actualizar_conteos_lote(lote: RndcLote, *, exitosos: int, errores: int) -> None:
    pendientes = lote.total_registros - exitosos - errores
    if pendientes < 0:
        raise ValueError(
            f"Lote {lote.id}: conteos inconsistentes (total={lote.total_registros}, "
            f"exitosos={exitosos}, errores={errores})"
        )
    lote.total_exitosos = exitosos
    lote.total_errores = errores
    lote.total_pendientes = pendientes


def marcar_envio_en_proceso(db: Session, *, envio: RndcEnvio) -> None:
    envio.estado = EstadoEnvio.PROCESANDO
    db.commit()


def registrar_resultado_envio(
    db: Session,
    *,
    envio: RndcEnvio,
    resultado: RndcResultado,
    lote: RndcLote,
    exitosos: int,
    errores: int,
) -> None:
    # Estado terminal del envío + conteos del lote en el mismo commit
    envio.estado = EstadoEnvio.EXITOSO if resultado.success else EstadoEnvio.ERROR
    envio.codigo_respuesta = resultado.code
    envio.mensaje_respuesta = resultado.message
    envio.xml_response = resultado.raw_xml
    envio.processed_at = _now()

    actualizar_conteos_lote(lote, exitosos=exitosos, errores=errores)
    db.commit()


def marcar_envio_error(
    db: Session,
    *,
    envio_id: str,
    mensaje: str,
    lote_id: str,
    exitosos: int,
    errores: int,
    codigo: str = "ERROR",
) -> None:
    envio = db.get(RndcEnvio, envio_id)
    if envio is not None and envio.estado not in EstadoEnvio.TERMINALES:
        envio.estado = EstadoEnvio.ERROR
        envio.codigo_respuesta = codigo
        envio.mensaje_respuesta = mensaje
        envio.processed_at = _now()

    lote = db.get(RndcLote, lote_id)
    if lote is not None:
        actualizar_conteos_lote(lote, exitosos=exitosos, errores=errores)
    db.commit()


def completar_lote(db: Session, *, lote_id: str) -> RndcLote:
    """
    Cierra el lote con los conteos tomados del estado real de los envíos.
    Un envío que siga abierto (su resultado no se pudo guardar) se cierra como error.
    """
    lote = obtener_lote(db, lote_id=lote_id)
    abiertos = (
        db.query(RndcEnvio)
        .filter(RndcEnvio.lote_id == lote_id, RndcEnvio.estado.notin_(list(EstadoEnvio.TERMINALES)))
        .all()
    )
    for envio in abiertos:
        envio.estado = EstadoEnvio.ERROR
        envio.codigo_respuesta = CODIGO_ERROR_CONEXION
        envio.mensaje_respuesta = MENSAJE_SIN_RESULTADO
        envio.processed_at = _now()
    if abiertos:
        db.flush()
        logger.warning("Lote %s: %s envío(s) sin resultado cerrados como error", lote_id, len(abiertos))

    exitosos, errores = conteos_terminales(db, lote_id=lote_id)
    actualizar_conteos_lote(lote, exitosos=exitosos, errores=errores)
    lote.estado = EstadoLote.COMPLETADO
    lote.completed_at = _now()
    db.commit()
    db.refresh(lote)

    logger.info(
        "Lote %s completado: exitosos=%s errores=%s total=%s",
        lote.id, lote.total_exitosos, lote.total_errores, lote.total_registros,
    )
    return lote


def cerrar_envios_interrumpidos(db: Session, *, lote_id: str) -> int:
    """
    Envíos que quedaron en 'processing' por una caída del proceso.
    No se reenvían (el RNDC pudo haberlos registrado): pasan a error.
    """
    envios = (
        db.query(RndcEnvio)
        .filter(RndcEnvio.lote_id == lote_id, RndcEnvio.estado == EstadoEnvio.PROCESANDO)
        .all()
    )
    for envio in envios:
        envio.estado = EstadoEnvio.ERROR
        envio.codigo_respuesta = "INTERRUMPIDO"
        envio.mensaje_respuesta = MENSAJE_INTERRUMPIDO
        envio.processed_at = _now()

    if envios:
        db.flush()
        lote = obtener_lote(db, lote_id=lote_id)
        exitosos, errores = conteos_terminales(db, lote_id=lote_id)
        actualizar_conteos_lote(lote, exitosos=exitosos, errores=errores)
        db.commit()
        logger.warning("Lote %s: %s envío(s) interrumpido(s) cerrados como error", lote_id, len(envios))
    return len(envios)


# =====================================================
# Reintento de errores (lote nuevo)
# =====================================================
def reintentar_errores_lote(db: Session, *, lote_id: str) -> RndcLote:
    origen = obtener_lote(db, lote_id=lote_id)
    if origen.estado != EstadoLote.COMPLETADO:
        raise HTTPException(status_code=409, detail="El lote aún está en proceso")

    fallidos = (
        db.query(RndcEnvio)
        .filter(RndcEnvio.lote_id == lote_id, RndcEnvio.estado == EstadoEnvio.ERROR)
        .order_by(RndcEnvio.orden.asc())
        .all()
    )
    if not fallidos:
        raise HTTPException(status_code=422, detail="El lote no tiene envíos con error")

    envios = [
        EnvioNuevo(
            xml_request=e.xml_request,
            datos=e.datos,
            referencia=e.referencia,
            num_placa=e.num_placa,
        )
        for e in fallidos
    ]
    return crear_lote(
        db,
        tipo=origen.tipo,
        envios=envios,
        ws_url=origen.ws_url,
        lote_origen_id=origen.id,
        observacion=f"Reintento de {len(envios)} envío(s) con error del lote {origen.id}",
    )
