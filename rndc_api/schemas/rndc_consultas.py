from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from rndc_api.schemas.rndc_lotes import WsUrl
from rndc_api.schemas.rndc_mensajes import CredencialesRndc


class ConsultaEjecutarRequest(BaseModel):
    xml_request: str = Field(..., min_length=1)
    ws_url: WsUrl = None
    tipo_consulta: str = "libre"
    nombre_consulta: Optional[str] = None
    nit_empresa: Optional[str] = None
    num_id_tercero: Optional[str] = None


class ConsultaTerceroRequest(BaseModel):
    credenciales: CredencialesRndc
    nit_empresa: str = Field(..., min_length=1)
    num_id_tercero: str = Field(..., min_length=1)
    ws_url: WsUrl = None


class ConsultaVehiculoRequest(BaseModel):
    credenciales: CredencialesRndc
    nit_empresa: str = Field(..., min_length=1)
    num_placa: str = Field(..., min_length=1)
    ws_url: WsUrl = None


class ConsultaResultadoResponse(BaseModel):
    consulta_id: str
    success: bool
    code: Optional[str] = None
    message: Optional[str] = None
    datos: List[Dict[str, Any]] = []
    raw_xml: Optional[str] = None


class ConsultaResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    tipo_consulta: str
    nombre_consulta: Optional[str] = None
    nit_empresa: Optional[str] = None
    num_id_tercero: Optional[str] = None
    estado: str
    codigo_respuesta: Optional[str] = None
    mensaje_respuesta: Optional[str] = None
    created_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None


class ConsultaDetalleResponse(ConsultaResponse):
    xml_request: str
    xml_response: Optional[str] = None
    datos_respuesta: Optional[List[Dict[str, Any]]] = None


# =====================================================
# Ping
# =====================================================
class PingRequest(BaseModel):
    ws_url: WsUrl = None


class PingResponse(BaseModel):
    status: Literal["online", "offline", "timeout", "error"]
    latencia_ms: int
    status_code: Optional[int] = None
    error: Optional[str] = None


# =====================================================
# Cumplidos de remesa (consulta previa de cantidades)
# =====================================================
class CumplidoRemesaFila(BaseModel):
    nit_empresa: Optional[str] = None
    consecutivo_remesa: str = Field(..., min_length=1)
    cantidad_entregada: Optional[str] = None
    fecha_entrada_cargue: str
    hora_entrada_cargue: str
    fecha_entrada_descargue: str
    hora_entrada_descargue: str


class PrepararCumplidosRequest(BaseModel):
    credenciales: CredencialesRndc
    nit_empresa: str = Field(..., min_length=1)
    filas: List[CumplidoRemesaFila] = Field(..., min_length=1)
    ws_url: WsUrl = None


class CumplidoPreparado(BaseModel):
    consecutivo_remesa: str
    consulta_id: str
    item: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


# =====================================================
# Monitoreo GPS
# =====================================================
class MonitoreoRequest(BaseModel):
    credenciales: CredencialesRndc
    num_id_gps: str = Field(..., min_length=1)
    tipo_consulta: Literal["NUEVOS", "TODOS", "ESPECIFICO"] = "NUEVOS"
    ingreso_id_manifiesto: Optional[str] = None
    ws_url: WsUrl = None


class PuntoControlResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    cod_punto_control: Optional[str] = None
    cod_municipio: Optional[str] = None
    direccion: Optional[str] = None
    fecha_cita: Optional[str] = None
    hora_cita: Optional[str] = None
    latitud: Optional[str] = None
    longitud: Optional[str] = None
    tiempo_pactado: Optional[str] = None


class ManifiestoResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    consulta_id: Optional[str] = None
    ingreso_id_manifiesto: str
    num_nit_empresa_transporte: Optional[str] = None
    fecha_expedicion_manifiesto: Optional[str] = None
    codigo_empresa: Optional[str] = None
    num_manifiesto_carga: Optional[str] = None
    num_placa: Optional[str] = None
    created_at: Optional[datetime] = None


class PageManifiestoResponse(BaseModel):
    data: List[ManifiestoResponse]
    page: int
    limit: int
    total: int


class MonitoreoResponse(BaseModel):
    consulta_id: str
    success: bool
    code: Optional[str] = None
    message: Optional[str] = None
    manifiestos: List[Dict[str, Any]] = []
    total_manifiestos: int = 0
    guardados: int = 0
    raw_xml: Optional[str] = None
