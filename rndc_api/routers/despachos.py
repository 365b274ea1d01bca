import json
from typing import Annotated, Any, Dict, List

from fastapi import APIRouter, Body, Depends
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from rndc_api.core.db import SessionLocal, get_db
from rndc_api.rndc.soap_client import RndcSoapClient, get_rndc_client
from rndc_api.schemas.despachos import (
    ValidarDespachosRequest,
    DespachoValidado,
    EnviarDespachosRequest,
)
from rndc_api.services.despachos_validacion_service import (
    validar_despachos,
    validar_despachos_stream,
    enviar_lote_stream,
)
from rndc_api.services.rndc_lotes_service import preparar_envios
from rndc_api.services.rndc_orquestador import LoteWorker, get_lote_worker

router = APIRouter(prefix="/despachos", tags=["Despachos"])

SSE_HEADERS = {"Cache-Control": "no-cache", "X-Accel-Buffering": "no"}


def _sse(evento: Dict[str, Any]) -> str:
    return f"data: {json.dumps(evento, ensure_ascii=False, default=str)}\n\n"


@router.post("/validar", response_model=List[DespachoValidado])
async def validar(
    payload: ValidarDespachosRequest,
    db: Session = Depends(get_db),
    cliente: RndcSoapClient = Depends(get_rndc_client),
):
    return await validar_despachos(
        db,
        cliente,
        credenciales=payload.credenciales,
        nit_empresa=payload.nit_empresa,
        filas=payload.filas,
        ws_url=payload.ws_url,
    )


@router.post("/validar/stream")
async def validar_stream(
    payload: ValidarDespachosRequest,
    cliente: RndcSoapClient = Depends(get_rndc_client),
):
    """
    Server-sent events: {progress, total, current} por fila y al final {done: true, rows}.
    """

    async def _gen():
        # Sesión propia: vive lo que dure el stream
        with SessionLocal() as db:
            async for evento in validar_despachos_stream(
                db,
                cliente,
                credenciales=payload.credenciales,
                nit_empresa=payload.nit_empresa,
                filas=payload.filas,
                ws_url=payload.ws_url,
            ):
                yield _sse(evento)

    return StreamingResponse(_gen(), media_type="text/event-stream", headers=SSE_HEADERS)


@router.post("/enviar/stream")
async def enviar_stream(
    payload: Annotated[EnviarDespachosRequest, Body(discriminator="tipo")],
    worker: LoteWorker = Depends(get_lote_worker),
):
    """
    Remesas / manifiestos: crea el lote, lo procesa en el worker y transmite el avance.
    El último evento es {done: true, lote}. Si el cliente corta, el lote sigue en segundo plano.
    """
    envios = preparar_envios(tipo=payload.tipo, credenciales=payload.credenciales, items=payload.items)

    async def _gen():
        with SessionLocal() as db:
            async for evento in enviar_lote_stream(
                db,
                worker,
                tipo=payload.tipo,
                envios=envios,
                ws_url=payload.ws_url,
            ):
                yield _sse(evento)

    return StreamingResponse(_gen(), media_type="text/event-stream", headers=SSE_HEADERS)
