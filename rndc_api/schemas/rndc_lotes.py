from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, model_validator

from rndc_api.core.config import settings
from rndc_api.schemas.rndc_mensajes import (
    CredencialesRndc,
    DatosEnvio,
    PuntoControlDatos,
    RemesaDatos,
    ManifiestoDatos,
    CumplidoRemesaDatos,
    CumplidoManifiestoDatos,
)


def validar_ws_url(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    v = v.strip()
    if not v:
        return None
    # Atajos para los dos ambientes del RNDC
    if v.lower() == "pruebas":
        return settings.RNDC_URL_PRUEBAS
    if v.lower() == "produccion":
        return settings.RNDC_URL_PRODUCCION
    if not (v.startswith("http://") or v.startswith("https://")):
        raise ValueError("ws_url debe ser una URL http(s)")
    return v


WsUrl = Annotated[Optional[str], AfterValidator(validar_ws_url)]


class _LoteBase(BaseModel):
    credenciales: CredencialesRndc
    # NIT de la empresa de transporte: se copia a los items que no lo traen
    nit_empresa: Optional[str] = None
    ws_url: WsUrl = None

    @model_validator(mode="before")
    @classmethod
    def _propagar_nit(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        nit = data.get("nit_empresa")
        items = data.get("items")
        if nit and isinstance(items, list):
            data = {
                **data,
                "items": [
                    {**it, "nit_empresa": nit} if isinstance(it, dict) and not it.get("nit_empresa") else it
                    for it in items
                ],
            }
        return data


class LotePuntosControlRequest(_LoteBase):
    tipo: Literal["puntos_control"]
    items: List[PuntoControlDatos] = Field(..., min_length=1)


class LoteRemesaRequest(_LoteBase):
    tipo: Literal["remesa"]
    items: List[RemesaDatos] = Field(..., min_length=1)


class LoteManifiestoRequest(_LoteBase):
    tipo: Literal["manifiesto"]
    items: List[ManifiestoDatos] = Field(..., min_length=1)


class LoteCumplidoRemesaRequest(_LoteBase):
    tipo: Literal["cumplido_remesa"]
    items: List[CumplidoRemesaDatos] = Field(..., min_length=1)


class LoteCumplidoManifiestoRequest(_LoteBase):
    tipo: Literal["cumplido_manifiesto"]
    items: List[CumplidoManifiestoDatos] = Field(..., min_length=1)


# Se usa como Body(discriminator="tipo") en el router
LoteCrearRequest = Union[
    LotePuntosControlRequest,
    LoteRemesaRequest,
    LoteManifiestoRequest,
    LoteCumplidoRemesaRequest,
    LoteCumplidoManifiestoRequest,
]


class LoteCrearResponse(BaseModel):
    lote_id: str
    total_registros: int
    mensaje: str


class LoteResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    tipo: str
    estado: str
    total_registros: int
    total_exitosos: int
    total_errores: int
    total_pendientes: int
    ws_url: Optional[str] = None
    lote_origen_id: Optional[str] = None
    observacion: Optional[str] = None
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class EnvioResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    lote_id: str
    orden: int
    tipo: str
    referencia: Optional[str] = None
    num_placa: Optional[str] = None
    estado: str
    codigo_respuesta: Optional[str] = None
    mensaje_respuesta: Optional[str] = None
    created_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None


class EnvioDetalleResponse(EnvioResponse):
    datos: Optional[Dict[str, Any]] = None
    xml_request: str
    xml_response: Optional[str] = None


class LoteDetalleResponse(BaseModel):
    lote: LoteResponse
    envios: List[EnvioDetalleResponse]


class EnvioIndividualRequest(BaseModel):
    credenciales: CredencialesRndc
    mensaje: DatosEnvio
    ws_url: WsUrl = None


class EnvioIndividualResponse(BaseModel):
    lote_id: str
    envio_id: str
    success: bool
    code: Optional[str] = None
    message: Optional[str] = None
    raw_xml: Optional[str] = None
