from typing import Annotated, List, Optional

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.orm import Session

from rndc_api.core.db import get_db
from rndc_api.rndc.rndc_types import TipoLote
from rndc_api.rndc.soap_client import RndcSoapClient, get_rndc_client
from rndc_api.schemas.rndc_lotes import (
    LoteCrearRequest,
    LoteCrearResponse,
    LoteResponse,
    LoteDetalleResponse,
    EnvioResponse,
    EnvioDetalleResponse,
    EnvioIndividualRequest,
    EnvioIndividualResponse,
)
from rndc_api.services.rndc_lotes_service import (
    TIPO_MENSAJE_POR_LOTE,
    preparar_envios,
    crear_lote,
    obtener_lote,
    listar_lotes,
    listar_envios_lote,
    obtener_envio,
    listar_envios_recientes,
    reintentar_errores_lote,
)
from rndc_api.services.rndc_orquestador import (
    LoteWorker,
    get_lote_worker,
    crear_y_lanzar,
    ejecutar_lote,
)

router = APIRouter(prefix="/rndc", tags=["RNDC - Lotes"])

_LOTE_POR_TIPO_MENSAJE = {v: k for k, v in TIPO_MENSAJE_POR_LOTE.items()}


# =====================================================
# Lotes
# =====================================================
@router.post("/lotes", response_model=LoteCrearResponse)
async def crear_lote_rndc(
    payload: Annotated[LoteCrearRequest, Body(discriminator="tipo")],
    db: Session = Depends(get_db),
    worker: LoteWorker = Depends(get_lote_worker),
):
    """
    Crea el lote y arranca el envío en segundo plano.
    Retorna de inmediato; el avance se consulta en GET /rndc/lotes/{lote_id}.
    """
    envios = preparar_envios(tipo=payload.tipo, credenciales=payload.credenciales, items=payload.items)
    lote = crear_y_lanzar(db, worker, tipo=payload.tipo, envios=envios, ws_url=payload.ws_url)
    return LoteCrearResponse(
        lote_id=lote.id,
        total_registros=lote.total_registros,
        mensaje=f"Lote creado con {lote.total_registros} registro(s). Procesando en segundo plano.",
    )


@router.get("/lotes", response_model=List[LoteResponse])
def listar(
    tipo: Optional[str] = Query(None, description="|".join(TipoLote.TODOS)),
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
):
    return listar_lotes(db, tipo=tipo, limit=limit)


@router.get("/lotes/{lote_id}", response_model=LoteResponse)
def estado_lote(lote_id: str, db: Session = Depends(get_db)):
    # Lectura liviana para polling
    return obtener_lote(db, lote_id=lote_id)


@router.get("/lotes/{lote_id}/envios", response_model=LoteDetalleResponse)
def detalle_lote(lote_id: str, db: Session = Depends(get_db)):
    lote = obtener_lote(db, lote_id=lote_id)
    envios = listar_envios_lote(db, lote_id=lote_id)
    return {"lote": lote, "envios": envios}


@router.post("/lotes/{lote_id}/reintentar-errores", response_model=LoteCrearResponse)
async def reintentar_errores(
    lote_id: str,
    db: Session = Depends(get_db),
    worker: LoteWorker = Depends(get_lote_worker),
):
    nuevo = reintentar_errores_lote(db, lote_id=lote_id)
    worker.iniciar(nuevo.id, ws_url=nuevo.ws_url)
    return LoteCrearResponse(
        lote_id=nuevo.id,
        total_registros=nuevo.total_registros,
        mensaje=f"Reintento creado con {nuevo.total_registros} envío(s) del lote {lote_id}.",
    )


# =====================================================
# Envíos
# =====================================================
@router.get("/envios", response_model=List[EnvioResponse])
def envios_recientes(
    tipo: Optional[str] = Query(None),
    num_placa: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    db: Session = Depends(get_db),
):
    return listar_envios_recientes(db, tipo=tipo, num_placa=num_placa, limit=limit)


@router.get("/envios/{envio_id}", response_model=EnvioDetalleResponse)
def detalle_envio(envio_id: str, db: Session = Depends(get_db)):
    return obtener_envio(db, envio_id=envio_id)


@router.post("/envio-individual", response_model=EnvioIndividualResponse)
async def envio_individual(
    payload: EnvioIndividualRequest,
    db: Session = Depends(get_db),
    cliente: RndcSoapClient = Depends(get_rndc_client),
):
    """Un solo mensaje: lote de 1 procesado en la misma petición."""
    tipo = _LOTE_POR_TIPO_MENSAJE[payload.mensaje.tipo]
    envios = preparar_envios(tipo=tipo, credenciales=payload.credenciales, items=[payload.mensaje])
    lote = crear_lote(db, tipo=tipo, envios=envios, ws_url=payload.ws_url)

    await ejecutar_lote(lote.id, ws_url=payload.ws_url, cliente=cliente, pausa_segundos=0)

    db.expire_all()
    envio = listar_envios_lote(db, lote_id=lote.id)[0]
    return EnvioIndividualResponse(
        lote_id=lote.id,
        envio_id=envio.id,
        success=envio.estado == "success",
        code=envio.codigo_respuesta,
        message=envio.mensaje_respuesta,
        raw_xml=envio.xml_response,
    )
