from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from rndc_api.core.db import get_db
from rndc_api.rndc.soap_client import RndcSoapClient, get_rndc_client
from rndc_api.schemas.rndc_consultas import (
    ConsultaEjecutarRequest,
    ConsultaTerceroRequest,
    ConsultaVehiculoRequest,
    ConsultaResultadoResponse,
    ConsultaResponse,
    ConsultaDetalleResponse,
    PingRequest,
    PingResponse,
    PrepararCumplidosRequest,
    CumplidoPreparado,
)
from rndc_api.services.rndc_consultas_service import (
    ejecutar_consulta,
    consultar_tercero,
    consultar_vehiculo,
    preparar_cumplidos_remesa,
    listar_consultas,
    obtener_consulta,
)

router = APIRouter(prefix="/rndc", tags=["RNDC - Consultas"])


@router.post("/consultas/ejecutar", response_model=ConsultaResultadoResponse)
async def ejecutar(
    payload: ConsultaEjecutarRequest,
    db: Session = Depends(get_db),
    cliente: RndcSoapClient = Depends(get_rndc_client),
):
    return await ejecutar_consulta(
        db,
        cliente,
        xml_request=payload.xml_request,
        ws_url=payload.ws_url,
        tipo_consulta=payload.tipo_consulta,
        nombre_consulta=payload.nombre_consulta,
        nit_empresa=payload.nit_empresa,
        num_id_tercero=payload.num_id_tercero,
    )


@router.post("/consultas/terceros", response_model=ConsultaResultadoResponse)
async def terceros(
    payload: ConsultaTerceroRequest,
    db: Session = Depends(get_db),
    cliente: RndcSoapClient = Depends(get_rndc_client),
):
    return await consultar_tercero(
        db,
        cliente,
        credenciales=payload.credenciales,
        nit_empresa=payload.nit_empresa,
        num_id_tercero=payload.num_id_tercero,
        ws_url=payload.ws_url,
    )


@router.post("/consultas/vehiculos", response_model=ConsultaResultadoResponse)
async def vehiculos(
    payload: ConsultaVehiculoRequest,
    db: Session = Depends(get_db),
    cliente: RndcSoapClient = Depends(get_rndc_client),
):
    return await consultar_vehiculo(
        db,
        cliente,
        credenciales=payload.credenciales,
        nit_empresa=payload.nit_empresa,
        num_placa=payload.num_placa,
        ws_url=payload.ws_url,
    )


@router.get("/consultas", response_model=List[ConsultaResponse])
def historial(
    tipo_consulta: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
):
    return listar_consultas(db, tipo_consulta=tipo_consulta, limit=limit)


@router.get("/consultas/{consulta_id}", response_model=ConsultaDetalleResponse)
def detalle(consulta_id: str, db: Session = Depends(get_db)):
    return obtener_consulta(db, consulta_id=consulta_id)


@router.post("/cumplidos/remesas/preparar", response_model=List[CumplidoPreparado])
async def preparar_cumplidos(
    payload: PrepararCumplidosRequest,
    db: Session = Depends(get_db),
    cliente: RndcSoapClient = Depends(get_rndc_client),
):
    """Consulta la cantidad cargada de cada remesa y arma los cumplidos para POST /rndc/lotes."""
    filas = [
        f.model_copy(update={"nit_empresa": f.nit_empresa or payload.nit_empresa})
        for f in payload.filas
    ]
    return await preparar_cumplidos_remesa(
        db,
        cliente,
        credenciales=payload.credenciales,
        filas=filas,
        ws_url=payload.ws_url,
    )


@router.post("/ping", response_model=PingResponse)
async def ping(
    payload: Optional[PingRequest] = None,
    cliente: RndcSoapClient = Depends(get_rndc_client),
):
    return await cliente.ping(payload.ws_url if payload else None)
