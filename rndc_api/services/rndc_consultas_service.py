from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from fastapi import HTTPException
from sqlalchemy.orm import Session

from rndc_api.models.rndc_consulta import RndcConsulta
from rndc_api.models.rndc_manifiesto import RndcManifiesto, RndcPuntoControl
from rndc_api.rndc.response_parser import extraer_documentos
from rndc_api.rndc.rndc_types import RndcResultado, CODIGO_ERROR_CONEXION
from rndc_api.rndc.soap_client import RndcSoapClient
from rndc_api.rndc.xml_builder import (
    construir_xml_consulta_terceros,
    construir_xml_consulta_vehiculo,
    construir_xml_consulta_cantidad_remesa,
    construir_xml_monitoreo,
)
from rndc_api.schemas.rndc_mensajes import CredencialesRndc, ConsultaMonitoreoDatos
from rndc_api.services.utils import norm_placa, primer_valor

logger = logging.getLogger("rndc.consultas")


def _now() -> datetime:
    return datetime.now(timezone.utc)


# =====================================================
# Consulta individual (no va en lote)
# =====================================================
async def ejecutar_consulta(
    db: Session,
    cliente: RndcSoapClient,
    *,
    xml_request: str,
    ws_url: Optional[str] = None,
    tipo_consulta: str = "libre",
    nombre_consulta: Optional[str] = None,
    nit_empresa: Optional[str] = None,
    num_id_tercero: Optional[str] = None,
) -> Dict[str, Any]:
    consulta = RndcConsulta(
        tipo_consulta=tipo_consulta,
        nombre_consulta=nombre_consulta,
        nit_empresa=nit_empresa,
        num_id_tercero=num_id_tercero,
        xml_request=xml_request,
        estado="processing",
    )
    db.add(consulta)
    db.commit()
    db.refresh(consulta)

    try:
        resultado = await cliente.enviar(xml_request, ws_url)
    except Exception as e:
        logger.exception("Consulta %s: excepción enviando al RNDC", consulta.id)
        resultado = RndcResultado(
            success=False,
            code=CODIGO_ERROR_CONEXION,
            message=f"Error inesperado: {e}",
        )

    datos = extraer_documentos(resultado.raw_xml) if resultado.success else []

    consulta.estado = "success" if resultado.success else "error"
    consulta.codigo_respuesta = resultado.code
    consulta.mensaje_respuesta = resultado.message
    consulta.xml_response = resultado.raw_xml
    consulta.datos_respuesta = datos
    consulta.processed_at = _now()
    db.commit()

    logger.info(
        "Consulta %s (%s): success=%s code=%s registros=%s",
        consulta.id, tipo_consulta, resultado.success, resultado.code, len(datos),
    )

    return {
        "consulta_id": consulta.id,
        "success": resultado.success,
        "code": resultado.code,
        "message": resultado.message,
        "datos": datos,
        "raw_xml": resultado.raw_xml,
    }


async def consultar_tercero(
    db: Session,
    cliente: RndcSoapClient,
    *,
    credenciales: CredencialesRndc,
    nit_empresa: str,
    num_id_tercero: str,
    ws_url: Optional[str] = None,
) -> Dict[str, Any]:
    xml = construir_xml_consulta_terceros(
        credenciales, nit_empresa=nit_empresa, num_id_tercero=num_id_tercero
    )
    return await ejecutar_consulta(
        db,
        cliente,
        xml_request=xml,
        ws_url=ws_url,
        tipo_consulta="terceros",
        nombre_consulta="Consulta de terceros",
        nit_empresa=nit_empresa,
        num_id_tercero=num_id_tercero,
    )


async def consultar_vehiculo(
    db: Session,
    cliente: RndcSoapClient,
    *,
    credenciales: CredencialesRndc,
    nit_empresa: str,
    num_placa: str,
    ws_url: Optional[str] = None,
) -> Dict[str, Any]:
    placa = norm_placa(num_placa)
    xml = construir_xml_consulta_vehiculo(credenciales, nit_empresa=nit_empresa, num_placa=placa)
    return await ejecutar_consulta(
        db,
        cliente,
        xml_request=xml,
        ws_url=ws_url,
        tipo_consulta="vehiculos",
        nombre_consulta="Consulta de vehículos",
        nit_empresa=nit_empresa,
        num_id_tercero=placa,
    )


# =====================================================
# Cumplidos de remesa: cantidad cargada registrada
# =====================================================
async def preparar_cumplidos_remesa(
    db: Session,
    cliente: RndcSoapClient,
    *,
    credenciales: CredencialesRndc,
    filas: Sequence[Any],
    ws_url: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """
    Para cada fila consulta la CANTIDADCARGADA de la remesa (tipo 3 / procesoid 3)
    y arma el cumplido listo para el lote. Filas sin cantidad quedan con error.
    """
    out: List[Dict[str, Any]] = []
    for fila in filas:
        xml = construir_xml_consulta_cantidad_remesa(
            credenciales,
            nit_empresa=fila.nit_empresa,
            consecutivo_remesa=fila.consecutivo_remesa,
        )
        r = await ejecutar_consulta(
            db,
            cliente,
            xml_request=xml,
            ws_url=ws_url,
            tipo_consulta="remesa",
            nombre_consulta="Cantidad cargada de remesa",
            nit_empresa=fila.nit_empresa,
            num_id_tercero=fila.consecutivo_remesa,
        )

        doc = r["datos"][0] if r["datos"] else {}
        cantidad = primer_valor(doc, "CANTIDADCARGADA")

        item: Optional[Dict[str, Any]] = None
        error: Optional[str] = None
        if cantidad is None:
            error = r["message"] if not r["success"] else "El RNDC no devolvió CANTIDADCARGADA para la remesa"
        else:
            item = {
                "tipo": "cumplido_remesa",
                "nit_empresa": fila.nit_empresa,
                "consecutivo_remesa": fila.consecutivo_remesa,
                "cantidad_cargada": str(cantidad),
                # Se entrega lo mismo que se cargó salvo que la fila indique otra cosa
                "cantidad_entregada": fila.cantidad_entregada or str(cantidad),
                "fecha_entrada_cargue": fila.fecha_entrada_cargue,
                "hora_entrada_cargue": fila.hora_entrada_cargue,
                "fecha_entrada_descargue": fila.fecha_entrada_descargue,
                "hora_entrada_descargue": fila.hora_entrada_descargue,
            }

        out.append({
            "consecutivo_remesa": fila.consecutivo_remesa,
            "consulta_id": r["consulta_id"],
            "item": item,
            "error": error,
        })
    return out


# =====================================================
# Monitoreo GPS (tipo 9 / procesoid 4)
# =====================================================
def _puntos_desde_doc(doc: Dict[str, Any]) -> List[Dict[str, Any]]:
    puntos = doc.get("PUNTOSCONTROL")
    if not puntos:
        return []
    if isinstance(puntos, dict) and "PUNTOCONTROL" in puntos:
        puntos = puntos["PUNTOCONTROL"]
    if not isinstance(puntos, list):
        puntos = [puntos]
    return [p for p in puntos if isinstance(p, dict) and p.get("CODPUNTOCONTROL")]


def _manifiesto_desde_doc(doc: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "ingreso_id_manifiesto": primer_valor(doc, "INGRESOIDMANIFIESTO") or "",
        "num_nit_empresa_transporte": primer_valor(doc, "NUMNITEMPRESATRANSPORTE") or "",
        "num_manifiesto_carga": primer_valor(doc, "NUMMANIFIESTOCARGA") or "",
        "fecha_expedicion_manifiesto": primer_valor(doc, "FECHAEXPEDICIONMANIFIESTO"),
        "codigo_empresa": primer_valor(doc, "CODIGOEMPRESA"),
        "num_placa": norm_placa(primer_valor(doc, "NUMPLACA")) or "",
        "puntos_control": [
            {
                "cod_punto_control": str(p.get("CODPUNTOCONTROL")),
                "cod_municipio": primer_valor(p, "CODMUNICIPIO"),
                "direccion": primer_valor(p, "DIRECCION"),
                "fecha_cita": primer_valor(p, "FECHACITA"),
                "hora_cita": primer_valor(p, "HORACITA"),
                "latitud": primer_valor(p, "LATITUD"),
                "longitud": primer_valor(p, "LONGITUD"),
                "tiempo_pactado": primer_valor(p, "TIEMPOPACTADO"),
            }
            for p in _puntos_desde_doc(doc)
        ],
    }


def guardar_manifiestos(db: Session, *, consulta_id: Optional[str], manifiestos: Sequence[Dict[str, Any]]) -> int:
    guardados = 0
    for m in manifiestos:
        ingreso_id = m.get("ingreso_id_manifiesto")
        if not ingreso_id:
            continue
        existente = (
            db.query(RndcManifiesto.id)
            .filter(RndcManifiesto.ingreso_id_manifiesto == ingreso_id)
            .first()
        )
        if existente:
            continue

        try:
            manifiesto = RndcManifiesto(
                consulta_id=consulta_id,
                ingreso_id_manifiesto=ingreso_id,
                num_nit_empresa_transporte=m.get("num_nit_empresa_transporte"),
                fecha_expedicion_manifiesto=m.get("fecha_expedicion_manifiesto"),
                codigo_empresa=m.get("codigo_empresa"),
                num_manifiesto_carga=m.get("num_manifiesto_carga"),
                num_placa=m.get("num_placa"),
            )
            for p in m.get("puntos_control") or []:
                manifiesto.puntos_control.append(RndcPuntoControl(**p))
            db.add(manifiesto)
            db.commit()
            guardados += 1
        except Exception:
            db.rollback()
            logger.exception("No se pudo guardar el manifiesto %s", ingreso_id)

    logger.info("Monitoreo: %s manifiesto(s) nuevo(s) guardado(s)", guardados)
    return guardados


async def consultar_monitoreo(
    db: Session,
    cliente: RndcSoapClient,
    *,
    credenciales: CredencialesRndc,
    datos: ConsultaMonitoreoDatos,
    ws_url: Optional[str] = None,
) -> Dict[str, Any]:
    xml = construir_xml_monitoreo(credenciales, datos)
    r = await ejecutar_consulta(
        db,
        cliente,
        xml_request=xml,
        ws_url=ws_url,
        tipo_consulta="monitoreo",
        nombre_consulta=datos.tipo_consulta,
        num_id_tercero=datos.num_id_gps,
    )

    if not r["success"]:
        return {
            "consulta_id": r["consulta_id"],
            "success": False,
            "code": r["code"],
            "message": r["message"],
            "manifiestos": [],
            "total_manifiestos": 0,
            "guardados": 0,
            "raw_xml": r["raw_xml"],
        }

    manifiestos = [_manifiesto_desde_doc(d) for d in r["datos"]]
    guardados = guardar_manifiestos(db, consulta_id=r["consulta_id"], manifiestos=manifiestos)

    return {
        "consulta_id": r["consulta_id"],
        "success": True,
        "code": r["code"],
        "message": r["message"],
        "manifiestos": manifiestos,
        "total_manifiestos": len(manifiestos),
        "guardados": guardados,
        "raw_xml": r["raw_xml"],
    }


# =====================================================
# Lecturas
# =====================================================
def listar_consultas(db: Session, *, tipo_consulta: Optional[str] = None, limit: int = 50) -> List[RndcConsulta]:
    q = db.query(RndcConsulta)
    if tipo_consulta:
        q = q.filter(RndcConsulta.tipo_consulta == tipo_consulta)
    return q.order_by(RndcConsulta.created_at.desc()).limit(limit).all()


def obtener_consulta(db: Session, *, consulta_id: str) -> RndcConsulta:
    consulta = db.get(RndcConsulta, consulta_id)
    if not consulta:
        raise HTTPException(status_code=404, detail="Consulta no encontrada")
    return consulta


def listar_manifiestos(
    db: Session,
    *,
    num_placa: Optional[str] = None,
    ingreso_id_manifiesto: Optional[str] = None,
    num_manifiesto_carga: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
) -> Dict[str, Any]:
    q = db.query(RndcManifiesto)
    if num_placa:
        q = q.filter(RndcManifiesto.num_placa == norm_placa(num_placa))
    if ingreso_id_manifiesto:
        q = q.filter(RndcManifiesto.ingreso_id_manifiesto == ingreso_id_manifiesto.strip())
    if num_manifiesto_carga:
        q = q.filter(RndcManifiesto.num_manifiesto_carga == num_manifiesto_carga.strip())

    total = q.count()
    data = (
        q.order_by(RndcManifiesto.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {"data": data, "page": page, "limit": limit, "total": total}


def obtener_puntos_control(db: Session, *, manifiesto_id: str) -> List[RndcPuntoControl]:
    manifiesto = db.get(RndcManifiesto, manifiesto_id)
    if not manifiesto:
        raise HTTPException(status_code=404, detail="Manifiesto no encontrado")
    return list(manifiesto.puntos_control)
