from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import ValidationError
from sqlalchemy.orm import Session

from rndc_api.core.db import get_db
from rndc_api.rndc.soap_client import RndcSoapClient, get_rndc_client
from rndc_api.schemas.rndc_consultas import (
    MonitoreoRequest,
    MonitoreoResponse,
    PageManifiestoResponse,
    PuntoControlResponse,
)
from rndc_api.schemas.rndc_mensajes import ConsultaMonitoreoDatos
from rndc_api.services.rndc_consultas_service import (
    consultar_monitoreo,
    listar_manifiestos,
    obtener_puntos_control,
)

router = APIRouter(prefix="/rndc", tags=["RNDC - Monitoreo GPS"])


@router.post("/monitoreo", response_model=MonitoreoResponse)
async def monitoreo(
    payload: MonitoreoRequest,
    db: Session = Depends(get_db),
    cliente: RndcSoapClient = Depends(get_rndc_client),
):
    try:
        datos = ConsultaMonitoreoDatos(
            num_id_gps=payload.num_id_gps,
            tipo_consulta=payload.tipo_consulta,
            ingreso_id_manifiesto=payload.ingreso_id_manifiesto,
        )
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors(include_url=False, include_context=False))

    return await consultar_monitoreo(
        db,
        cliente,
        credenciales=payload.credenciales,
        datos=datos,
        ws_url=payload.ws_url,
    )


@router.get("/manifiestos", response_model=PageManifiestoResponse)
def manifiestos(
    num_placa: Optional[str] = Query(None),
    ingreso_id_manifiesto: Optional[str] = Query(None),
    num_manifiesto_carga: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    db: Session = Depends(get_db),
):
    return listar_manifiestos(
        db,
        num_placa=num_placa,
        ingreso_id_manifiesto=ingreso_id_manifiesto,
        num_manifiesto_carga=num_manifiesto_carga,
        page=page,
        limit=limit,
    )


@router.get("/manifiestos/{manifiesto_id}/puntos-control", response_model=List[PuntoControlResponse])
def puntos_control(manifiesto_id: str, db: Session = Depends(get_db)):
    return obtener_puntos_control(db, manifiesto_id=manifiesto_id)
